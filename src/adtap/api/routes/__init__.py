"""Route registration.

PUBLIC API:
  - include_routes: Register all API route modules with FastAPI app

Route Modules:
  - data.py: Summary, phase and event queries
  - load.py: Load control and click endpoints
"""

from fastapi import FastAPI


def include_routes(app: FastAPI):
    """Include all route modules.

    Args:
        app: FastAPI application instance
    """
    from adtap.api.routes import data, load

    app.include_router(data.router)
    app.include_router(load.router)
