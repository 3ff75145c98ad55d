# =============================================================================
# Typed Records — Store and Service Boundary
# =============================================================================
#
# Everything returned by the document store is validated into one of these
# records before the pipeline touches it. A row with a missing or wrongly
# typed field becomes an UpstreamServiceError at the boundary instead of an
# AttributeError three calls later.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class DocumentRecord(BaseModel):
    """An ingested source page. `url` is unique across the store."""

    id: int
    url: str = Field(min_length=1)
    title: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ChunkRecord(BaseModel):
    """A chunk ready to be written: content, its vector and its position."""

    chunk_index: int = Field(ge=0)
    content: str = Field(min_length=1)
    embedding: list[float] = Field(min_length=1)


class RetrievalMatch(BaseModel):
    """
    One ranked similarity-search hit. Lives for a single request.

    `score` is cosine similarity (1 - cosine distance), higher is closer.
    """

    document_id: int
    content: str
    score: float

    model_config = ConfigDict(from_attributes=True)


class Citation(BaseModel):
    """Source attribution shown under an answer."""

    label: str
    url: str
