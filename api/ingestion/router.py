"""
Sync status endpoint for container health probes.
"""

from __future__ import annotations

from fastapi import APIRouter

from . import service

router = APIRouter()


@router.get("/health")
async def health() -> dict:
    """
    Liveness plus the sync loop's last-cycle status. A failing sync does not
    make the service unhealthy: /nodes keeps serving what is stored.
    """
    return {"status": "ok", "sync": service.status.as_dict()}
