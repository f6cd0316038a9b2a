"""Load control and click-exit endpoints."""

import asyncio
import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter

import adtap.api.app as app_module
from adtap.api.models import ClickResolutionModel, LoadRequest, ResolveRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/load")
async def start_load(request: LoadRequest) -> dict[str, Any]:
    """Start monitoring a bundle or URL in Chrome."""
    if not app_module.app_state:
        return {"error": "adtap not initialized"}

    if (request.source is None) == (request.url is None):
        return {"error": "Specify exactly one of 'source' or 'url'"}

    def run_load():
        assert app_module.app_state is not None
        return app_module.app_state.service.monitor_page(
            source=request.source, url=request.url, port=request.port, page=request.page
        )

    try:
        return await asyncio.to_thread(run_load)
    except (RuntimeError, ValueError, FileNotFoundError, TimeoutError, IndexError) as e:
        logger.error(f"Load failed: {e}")
        return {"error": str(e)}


@router.post("/stop")
async def stop_load() -> dict[str, Any]:
    """Tear down the current load."""
    if not app_module.app_state:
        return {"error": "adtap not initialized"}
    return await asyncio.to_thread(app_module.app_state.service.stop)


@router.post("/click/simulate")
async def simulate_click() -> dict[str, Any]:
    """Click the creative."""
    if not app_module.app_state:
        return {"error": "adtap not initialized"}
    try:
        clicked = await asyncio.to_thread(app_module.app_state.service.simulate_click)
    except (RuntimeError, TimeoutError) as e:
        return {"error": str(e)}
    return {"clicked": clicked}


@router.post("/click/resolve")
async def resolve_click(request: ResolveRequest) -> dict[str, Any]:
    """Check a click destination: ok, http-error or unknown."""
    if not app_module.app_state:
        return {"error": "adtap not initialized"}

    def run_resolve():
        assert app_module.app_state is not None
        return app_module.app_state.service.resolve_click(request.url)

    result = await asyncio.to_thread(run_resolve)
    if result is None:
        return {"error": "No click destination reported"}
    return {"resolution": ClickResolutionModel(**asdict(result)).model_dump()}
