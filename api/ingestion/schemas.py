"""
Wire model for one entry of the mempool.space node ranking.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class RawNode(BaseModel):
    # Strict: "123" or true for an integer field is a shape error, not coerced.
    model_config = ConfigDict(strict=True, extra="ignore", frozen=True, populate_by_name=True)

    public_key: str = Field(..., alias="publicKey")
    alias: str
    capacity: int = Field(..., ge=0)
    first_seen: int = Field(..., alias="firstSeen")
