"""
Node read API endpoint.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Response, status

from . import service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/nodes")
async def list_nodes() -> Response:
    """
    All stored nodes as a JSON array of {publicKey, alias, capacity, firstSeen}.
    """
    try:
        nodes = await service.export_nodes()
    except service.NodeStoreError as exc:
        logger.exception("node_export_failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Node store is unavailable.",
        ) from exc

    return Response(content=service.render_export(nodes), media_type="application/json")
