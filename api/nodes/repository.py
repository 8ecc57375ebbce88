"""
Node table DDL and read path.
"""

from __future__ import annotations

from typing import Any

from core import db

# No migrations: the table is created if missing and otherwise left alone.
CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS node (
        public_key text PRIMARY KEY,
        alias text NOT NULL,
        capacity text NOT NULL,
        first_seen text NOT NULL
    )
"""


async def ensure_table() -> None:
    await db.execute(CREATE_TABLE_SQL)


async def list_nodes() -> list[dict[str, Any]]:
    """
    Full scan of the node table in whatever order Postgres returns it.
    """
    return await db.fetch_all(
        """
        SELECT public_key, alias, capacity, first_seen
        FROM node
        """
    )
