"""Document, chunk and position records shared by extraction, chunking and retrieval."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class BoundingBox(BaseModel):
    """Page-relative rectangle, bottom-left origin, in PDF points."""

    model_config = ConfigDict(
        extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)


class TextPosition(BaseModel):
    """One highlightable span of a page."""

    model_config = ConfigDict(
        extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    page_number: int = Field(..., ge=1)
    bounding_box: BoundingBox | None = None
    char_offset: int = Field(..., ge=0)
    char_length: int = Field(..., ge=0)
    page_width: float | None = None
    page_height: float | None = None


class PositionCodec:
    """JSON codec for the position payload stored next to each indexed chunk."""

    def __init__(self, *, exclude_none: bool = True) -> None:
        self._adapter: TypeAdapter[list[TextPosition]] = TypeAdapter(list[TextPosition])
        self._exclude_none = exclude_none

    def dumps(self, positions: Sequence[TextPosition]) -> str:
        payload = self._adapter.dump_json(
            list(positions), by_alias=True, exclude_none=self._exclude_none
        )
        return payload.decode("utf-8")

    def loads(self, payload: str | None) -> list[TextPosition] | None:
        if not payload:
            return None
        return self._adapter.validate_json(payload)


@dataclass(frozen=True)
class ExtractedParagraph:
    content: str
    char_offset: int
    char_length: int
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class ExtractedPage:
    page_number: int
    content: str
    width: float | None = None
    height: float | None = None
    paragraphs: tuple[ExtractedParagraph, ...] = ()


@dataclass(frozen=True)
class ExtractedDocument:
    document_id: str
    pages: tuple[ExtractedPage, ...] = ()


@dataclass(frozen=True)
class TextChunk:
    content: str
    chunk_index: int
    page_number: int
    start_offset: int
    end_offset: int
    positions: tuple[TextPosition, ...] | None = None


def chunk_id(document_id: str, chunk_index: int) -> str:
    return f"{document_id}_{chunk_index}"


@dataclass(frozen=True)
class DocumentChunk:
    id: str
    document_id: str
    chunk_index: int
    page_number: int
    content: str
    content_vector: list[float] = field(default_factory=list)
    positions_json: str | None = None

    @classmethod
    def create(
        cls,
        *,
        document_id: str,
        chunk: TextChunk,
        vector: Sequence[float],
        codec: PositionCodec,
    ) -> DocumentChunk:
        return cls(
            id=chunk_id(document_id, chunk.chunk_index),
            document_id=document_id,
            chunk_index=chunk.chunk_index,
            page_number=chunk.page_number,
            content=chunk.content,
            content_vector=[float(value) for value in vector],
            positions_json=codec.dumps(chunk.positions) if chunk.positions else None,
        )

    def get_positions(self, codec: PositionCodec) -> list[TextPosition] | None:
        return codec.loads(self.positions_json)


@dataclass(frozen=True)
class ChunkSearchResult:
    chunk: DocumentChunk
    score: float
