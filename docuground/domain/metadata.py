from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


ExtensionValue = str | int | float | bool


class ChunkMetadata(BaseModel):
    # Closed record stored in document_chunks.metadata_json; bump version on shape changes.
    model_config = ConfigDict(extra="forbid", frozen=True)

    version: int = 1
    document_id: str
    chunk_index: int
    content_length: int
    extensions: dict[str, ExtensionValue] = Field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_row(cls, value: dict[str, Any] | None, **fallback: Any) -> "ChunkMetadata":
        # Rows written before versioning only carried the three known fields.
        data = dict(fallback)
        data.update(value or {})
        known = set(cls.model_fields)
        extras = {k: v for k, v in data.items() if k not in known}
        payload = {k: v for k, v in data.items() if k in known}
        if extras:
            payload["extensions"] = {**payload.get("extensions", {}), **extras}
        return cls.model_validate(payload)


class UsageMetadata(BaseModel):
    # Optional context attached to a usage_tracking row.
    model_config = ConfigDict(extra="forbid", frozen=True)

    version: int = 1
    model: str | None = None
    relevant_chunks: int | None = None
    project_id: str | None = None
    extensions: dict[str, ExtensionValue] = Field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
