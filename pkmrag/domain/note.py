"""Note and chunk domain models."""

from typing import Annotated

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer

SNAPSHOT_VERSION = 2
MAX_DESCRIPTION_LENGTH = 500


class Note(BaseModel):
    """A fully parsed note as produced by a notes provider.

    Attributes:
        id: Stable identity of the note (e.g. a UUID from front matter)
        modified: Opaque change token, bumped by the source on every edit
        title: Note title, usually the file stem
        description: Optional short description prepended to the content
        aliases: Alternative titles other notes may link with
        tags: Tags without the leading ``#``
        content: Cleaned text to be chunked and embedded
        location: Path of the note relative to the vault root
        outgoing_links: Titles of the notes this note links to
    """

    model_config = ConfigDict(frozen=True)

    id: str
    modified: str
    title: str
    description: str = ""
    aliases: frozenset[str] = frozenset()
    tags: frozenset[str] = frozenset()
    content: str
    location: str
    outgoing_links: frozenset[str] = frozenset()


def sorted_values(values: frozenset[str] | set[str]) -> list[str]:
    return sorted(v for v in values if v)


class ChunkMetadata(BaseModel):
    """Denormalized copy of the owning note's fields, stored on every chunk."""

    note_id: str
    modified: str
    title: str
    description: str = ""
    aliases: list[str] = []
    tags: list[str] = []
    outgoing_links: list[str] = []
    chunk_index: int
    total_chunks: int
    location: str = ""

    @property
    def tag_set(self) -> set[str]:
        return set(self.tags)

    @property
    def alias_set(self) -> set[str]:
        return set(self.aliases)

    @property
    def link_set(self) -> set[str]:
        return set(self.outgoing_links)

    @classmethod
    def from_note(cls, note: Note, chunk_index: int, total_chunks: int) -> "ChunkMetadata":
        return cls(
            note_id=note.id,
            modified=note.modified,
            title=note.title,
            description=note.description[:MAX_DESCRIPTION_LENGTH],
            aliases=sorted_values(note.aliases),
            tags=sorted_values(note.tags),
            outgoing_links=sorted_values(note.outgoing_links),
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            location=note.location,
        )


def make_chunk_id(note_id: str, chunk_index: int) -> str:
    return f"{note_id}_chunk_{chunk_index}"


def nd_array_before_validator(x: list[float]) -> NDArray[np.float32]:
    return np.array(x, dtype=np.float32)


def nd_array_serializer(x: NDArray[np.float32]) -> list[float]:
    return x.tolist()  # type: ignore


NumPyArray = Annotated[
    np.ndarray,
    BeforeValidator(nd_array_before_validator),
    PlainSerializer(nd_array_serializer, return_type=list),
]


class Chunk(BaseModel):
    """A contiguous piece of a note together with its embedding."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    embedding: NumPyArray
    text: str
    metadata: ChunkMetadata

    @property
    def note_id(self) -> str:
        return self.metadata.note_id


class IndexConfig(BaseModel):
    """Parameters under which a set of stored vectors is comparable."""

    model_config = ConfigDict(frozen=True)

    embedding_model_name: str = ""
    chunk_size: int = 0
    chunk_overlap: int = 0


class IndexSnapshot(BaseModel):
    """On-disk layout of a persisted index."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    version: int
    embedding_model_name: str = ""
    chunk_size: int = 0
    chunk_overlap: int = 0
    chunks: list[Chunk] = []

    @property
    def config(self) -> IndexConfig:
        return IndexConfig(
            embedding_model_name=self.embedding_model_name,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )


class EmbedStats(BaseModel):
    """Counters reported by an indexing run."""

    new: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: int = 0

    def merge(self, other: "EmbedStats") -> "EmbedStats":
        return EmbedStats(
            new=self.new + other.new,
            updated=self.updated + other.updated,
            unchanged=self.unchanged + other.unchanged,
            skipped=self.skipped + other.skipped,
            deleted=self.deleted + other.deleted,
            errors=self.errors + other.errors,
        )

    def summary(self) -> str:
        return (
            f"{self.new} new, {self.updated} updated, {self.unchanged} unchanged, "
            f"{self.skipped} skipped, {self.deleted} deleted, {self.errors} errors"
        )
