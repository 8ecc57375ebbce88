"""
mempool.space HTTP client helpers.

Used endpoint:
- GET /api/v1/lightning/nodes/rankings/connectivity
    -> [{"publicKey": "...", "alias": "...", "capacity": 123, "firstSeen": 1601429940, ...}, ...]

One request per call, no retries. Retrying is the sync loop's job.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from ingestion.schemas import RawNode

_NODE_LIST = TypeAdapter(list[RawNode])


# Remote API failures are explicit and separable from store errors.
class MempoolError(RuntimeError):
    pass


def _normalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise MempoolError("NODES_API_URL is empty.")
    return url


async def _get(client: httpx.AsyncClient, url: str) -> httpx.Response:
    try:
        return await client.get(url, headers={"Accept": "application/json"})
    except httpx.HTTPError as exc:
        raise MempoolError(f"Node ranking request failed: {exc.__class__.__name__}: {exc}") from exc


async def fetch_nodes(
    *,
    url: str,
    timeout_s: float = 20.0,
    client: httpx.AsyncClient | None = None,
) -> list[RawNode]:
    """
    Fetch the node ranking and validate every entry.

    Raises MempoolError on network failure, timeout, non-2xx status, a body
    that is not a JSON array, or an entry with a missing or mistyped field.
    """
    url = _normalize_url(url)

    if client is None:
        async with httpx.AsyncClient(timeout=timeout_s) as owned:
            resp = await _get(owned, url)
    else:
        resp = await _get(client, url)

    if not resp.is_success:
        # Avoid dumping huge bodies; include a small snippet.
        body = resp.text[:500]
        raise MempoolError(f"Node ranking request failed: {resp.status_code} {body}")

    try:
        data: Any = resp.json()
    except ValueError as exc:
        raise MempoolError("Node ranking response is not valid JSON.") from exc

    if not isinstance(data, list):
        raise MempoolError(f"Node ranking response is not a JSON array (got {type(data).__name__}).")

    try:
        return _NODE_LIST.validate_python(data)
    except ValidationError as exc:
        raise MempoolError(f"Node ranking response has an unexpected shape: {exc.error_count()} error(s): {exc}") from exc
