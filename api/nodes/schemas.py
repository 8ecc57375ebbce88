"""
Pydantic schemas for the node read path.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StoredNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    public_key: str = Field(..., serialization_alias="publicKey")
    alias: str
    capacity: str
    first_seen: str = Field(..., serialization_alias="firstSeen")

    def to_public(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)
