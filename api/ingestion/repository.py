"""
Node write path.

Each call is a single statement, so every row is atomic on its own and there
is no transaction spanning a sync cycle.
"""

from __future__ import annotations

import enum

from core import db
from core.settings import WRITE_POLICY_INSERT_ONLY, WRITE_POLICY_UPSERT

from .normalize import NormalizedNode


class WriteOutcome(str, enum.Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


# `xmax = 0` only holds for a freshly inserted tuple; an updated one carries
# the updating transaction id. No row back means the conflict was ignored.
INSERT_IF_ABSENT_SQL = """
    INSERT INTO node (public_key, alias, capacity, first_seen)
    VALUES ($1, $2, $3, $4)
    ON CONFLICT (public_key) DO NOTHING
    RETURNING (xmax = 0) AS inserted
"""

# first_seen is never revised, even when refreshing the other columns.
UPSERT_SQL = """
    INSERT INTO node (public_key, alias, capacity, first_seen)
    VALUES ($1, $2, $3, $4)
    ON CONFLICT (public_key) DO UPDATE
    SET alias = EXCLUDED.alias,
        capacity = EXCLUDED.capacity
    WHERE node.alias IS DISTINCT FROM EXCLUDED.alias
       OR node.capacity IS DISTINCT FROM EXCLUDED.capacity
    RETURNING (xmax = 0) AS inserted
"""

_SQL_BY_POLICY = {
    WRITE_POLICY_INSERT_ONLY: INSERT_IF_ABSENT_SQL,
    WRITE_POLICY_UPSERT: UPSERT_SQL,
}


async def write_node(node: NormalizedNode, *, policy: str = WRITE_POLICY_INSERT_ONLY) -> WriteOutcome:
    """
    Write one node and report whether it was inserted, updated (upsert
    policy only) or skipped because the key already existed unchanged.
    """
    sql = _SQL_BY_POLICY.get(policy)
    if sql is None:
        raise ValueError(f"Unknown write policy: {policy}")

    row = await db.fetch_one(
        sql,
        node.public_key,
        node.alias,
        node.capacity,
        node.first_seen,
    )
    if row is None:
        return WriteOutcome.SKIPPED
    return WriteOutcome.INSERTED if row["inserted"] else WriteOutcome.UPDATED
