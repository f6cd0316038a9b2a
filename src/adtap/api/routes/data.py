"""Summary, phase and event endpoints."""

import asyncio
import os
from typing import Any

from fastapi import APIRouter

import adtap.api.app as app_module

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Quick health check."""
    return {"status": "ok", "pid": os.getpid()}


@router.get("/status")
async def get_status() -> dict[str, Any]:
    """Current load and aggregator state."""
    if not app_module.app_state:
        return {"active": False, "error": "adtap not initialized"}
    return app_module.app_state.service.status()


@router.get("/summary")
async def get_summary() -> dict[str, Any]:
    """Latest summary snapshot. Missing fields have not been measured."""
    if not app_module.app_state:
        return {"summary": None, "error": "adtap not initialized"}

    view = app_module.app_state.service.summary()
    return {"summary": view.to_dict() if view.measured else None, "sequence": view.sequence}


@router.get("/phases")
async def get_phases() -> dict[str, Any]:
    """Requests and bytes per load phase; null where unknown."""
    if not app_module.app_state:
        return {"phases": {}, "error": "adtap not initialized"}
    return {"phases": app_module.app_state.service.phases()}


@router.get("/events")
async def get_events(limit: int = 50, type: str | None = None) -> dict[str, Any]:
    """Recent wire events, oldest first.

    Args:
        limit: Maximum results to return
        type: Only events of this wire type
    """
    if not app_module.app_state:
        return {"events": [], "error": "adtap not initialized"}

    def query_events():
        assert app_module.app_state is not None
        return app_module.app_state.service.events(limit=limit, event_type=type)

    events = await asyncio.to_thread(query_events)
    return {"events": events}
