from __future__ import annotations

from datetime import datetime
from typing import Final, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

IndexingStage = Literal[
    "pending",
    "extracting",
    "chunking",
    "embedding",
    "indexing",
    "ready",
    "error",
]

TERMINAL_STAGES: Final[frozenset[str]] = frozenset({"ready", "error"})

_WIRE_CONFIG = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class IndexingJobStatus(BaseModel):
    model_config = _WIRE_CONFIG

    document_id: str
    status: IndexingStage
    progress: int = Field(..., ge=0, le=100)
    message: str | None = None
    error: str | None = None
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STAGES


class DocumentUploadResponse(BaseModel):
    model_config = _WIRE_CONFIG

    document_id: str
    filename: str
    status: IndexingJobStatus
