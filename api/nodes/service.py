"""
Node export (the read path).

Used two ways:
- `GET /nodes` returns the compact JSON array
- `print_export()` writes the pretty-printed array to stdout once
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import TextIO

import asyncpg

from . import repository
from .schemas import StoredNode

logger = logging.getLogger(__name__)


class NodeStoreError(RuntimeError):
    pass


# asyncio.TimeoutError is the command_timeout error and is not an OSError before 3.11.
_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


async def export_nodes() -> list[StoredNode]:
    """
    Read every stored node. An empty table is a valid, empty result.
    """
    try:
        rows = await repository.list_nodes()
    except _STORE_ERRORS as exc:
        raise NodeStoreError(f"Failed to read nodes: {exc}") from exc

    return [
        StoredNode(
            public_key=str(row["public_key"]),
            alias=str(row["alias"]),
            capacity=str(row["capacity"]),
            first_seen=str(row["first_seen"]),
        )
        for row in rows
    ]


def render_export(nodes: list[StoredNode], *, pretty: bool = False) -> str:
    payload = [node.to_public() for node in nodes]
    if pretty:
        return json.dumps(payload, indent=2, ensure_ascii=False)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


async def print_export(stream: TextIO | None = None) -> int:
    """
    One-shot export: print all nodes as pretty JSON. Returns the node count.
    """
    nodes = await export_nodes()
    out = stream or sys.stdout
    out.write(render_export(nodes, pretty=True))
    out.write("\n")
    out.flush()
    logger.info("export_complete nodes=%s", len(nodes))
    return len(nodes)
