from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Literal

DEFAULT_INDEX_NAME: Final[str] = "document-chunks"

FIELD_ID: Final[str] = "id"
FIELD_DOCUMENT_ID: Final[str] = "documentId"
FIELD_CHUNK_INDEX: Final[str] = "chunkIndex"
FIELD_PAGE_NUMBER: Final[str] = "pageNumber"
FIELD_CONTENT: Final[str] = "content"
FIELD_CONTENT_VECTOR: Final[str] = "contentVector"
FIELD_POSITIONS_JSON: Final[str] = "positionsJson"

# Everything a caller reads back. The vector is write-only.
RETRIEVABLE_FIELDS: Final[tuple[str, ...]] = (
    FIELD_ID,
    FIELD_DOCUMENT_ID,
    FIELD_CHUNK_INDEX,
    FIELD_PAGE_NUMBER,
    FIELD_CONTENT,
    FIELD_POSITIONS_JSON,
)

FieldType = Literal["string", "int32", "vector"]


@dataclass(frozen=True)
class IndexField:
    name: str
    type: FieldType
    key: bool = False
    filterable: bool = False
    searchable: bool = False
    analyzer: str | None = None
    dimensions: int | None = None


@dataclass(frozen=True)
class VectorSearchConfig:
    """Approximate nearest neighbour (HNSW) parameters for the vector field."""

    metric: Literal["cosine"] = "cosine"
    m: int = 4
    ef_construction: int = 400
    ef_search: int = 500


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    fields: tuple[IndexField, ...]
    vector_search: VectorSearchConfig = VectorSearchConfig()

    def field(self, name: str) -> IndexField:
        for candidate in self.fields:
            if candidate.name == name:
                return candidate
        raise KeyError(name)

    @property
    def key_field(self) -> IndexField:
        return next(candidate for candidate in self.fields if candidate.key)

    @property
    def vector_dimensions(self) -> int:
        dimensions = self.field(FIELD_CONTENT_VECTOR).dimensions
        if dimensions is None:  # pragma: no cover
            raise ValueError("vector field is missing its dimensions")
        return dimensions


def build_chunk_index_definition(
    *,
    name: str = DEFAULT_INDEX_NAME,
    dimensions: int = 1536,
    vector_search: VectorSearchConfig | None = None,
) -> IndexDefinition:
    if dimensions <= 0:
        raise ValueError("dimensions must be greater than zero")

    return IndexDefinition(
        name=name,
        fields=(
            IndexField(name=FIELD_ID, type="string", key=True, filterable=True),
            IndexField(name=FIELD_DOCUMENT_ID, type="string", filterable=True),
            IndexField(name=FIELD_CHUNK_INDEX, type="int32", filterable=True),
            IndexField(name=FIELD_PAGE_NUMBER, type="int32", filterable=True),
            IndexField(name=FIELD_CONTENT, type="string", searchable=True, analyzer="en"),
            IndexField(name=FIELD_CONTENT_VECTOR, type="vector", dimensions=dimensions),
            IndexField(name=FIELD_POSITIONS_JSON, type="string"),
        ),
        vector_search=vector_search or VectorSearchConfig(),
    )
