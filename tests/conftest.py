"""
Shared fixtures: an in-memory node table and a mocked mempool.space API.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from core.settings import WRITE_POLICY_INSERT_ONLY, WRITE_POLICY_UPSERT, Settings
from ingestion import repository as ingestion_repository
from ingestion.repository import WriteOutcome
from ingestion.normalize import NormalizedNode
from nodes import repository as nodes_repository

API_URL = "https://mempool.test/api/v1/lightning/nodes/rankings/connectivity"

ACINQ = {
    "publicKey": "03864ef025fde8fb587d989186ce6a4a186895ee44a926bfc370e2c366597a3f8f",
    "alias": "ACINQ",
    "channels": 2908,
    "capacity": 150_000_000,
    "firstSeen": 1601429940,
    "updatedAt": 1700000000,
    "city": None,
    "country": {"en": "France"},
}
BITFINEX = {
    "publicKey": "033d8656219478701227199cbd6f670335c8d408a92ae88b962c49d4dc0e83e025",
    "alias": "bfx-lnd0",
    "channels": 120,
    "capacity": 0,
    "firstSeen": 1546300800,
}


class FakeNodeStore:
    """
    Dict-backed stand-in for the `node` table with the same conflict rules
    as the SQL in ingestion/repository.py.
    """

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, str]] = {}
        self.writes = 0
        self.fail_on: set[str] = set()

    async def write_node(self, node: NormalizedNode, *, policy: str = WRITE_POLICY_INSERT_ONLY) -> WriteOutcome:
        self.writes += 1
        if node.public_key in self.fail_on:
            raise ConnectionResetError(f"connection lost writing {node.public_key}")

        existing = self.rows.get(node.public_key)
        if existing is None:
            self.rows[node.public_key] = {
                "public_key": node.public_key,
                "alias": node.alias,
                "capacity": node.capacity,
                "first_seen": node.first_seen,
            }
            return WriteOutcome.INSERTED

        if policy == WRITE_POLICY_UPSERT:
            if existing["alias"] == node.alias and existing["capacity"] == node.capacity:
                return WriteOutcome.SKIPPED
            existing["alias"] = node.alias
            existing["capacity"] = node.capacity
            return WriteOutcome.UPDATED
        return WriteOutcome.SKIPPED

    async def list_nodes(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.rows.values()]

    def snapshot(self) -> dict[str, dict[str, str]]:
        return {k: dict(v) for k, v in self.rows.items()}


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> FakeNodeStore:
    fake = FakeNodeStore()
    monkeypatch.setattr(ingestion_repository, "write_node", fake.write_node)
    monkeypatch.setattr(nodes_repository, "list_nodes", fake.list_nodes)
    return fake


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_response(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        content=json.dumps(data).encode(),
        headers={"content-type": "application/json"},
    )


def serve(*bodies: Any) -> Callable[[httpx.Request], httpx.Response]:
    """
    Handler that returns the given bodies in order, repeating the last one.
    An Exception instance is raised instead of returned; an httpx.Response
    is returned as-is.
    """
    queue = list(bodies)

    def handler(request: httpx.Request) -> httpx.Response:
        body = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(body, Exception):
            raise body
        if isinstance(body, httpx.Response):
            # Fresh copy per request; a Response object is single-use.
            return httpx.Response(body.status_code, content=body.content, headers=body.headers)
        return json_response(body)

    return handler


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="postgresql://test@localhost/test",
        nodes_api_url=API_URL,
        sync_interval_s=10.0,
        sync_max_backoff_s=60.0,
        fetch_timeout_s=5.0,
        write_policy=WRITE_POLICY_INSERT_ONLY,
        export_on_startup=False,
        sync_enabled=False,
        log_level="INFO",
    )
