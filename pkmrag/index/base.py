from typing import Iterable, NamedTuple, Protocol

import numpy as np

from pkmrag.domain.note import Chunk, IndexConfig


class SearchResult(NamedTuple):
    chunk: Chunk
    similarity: float


class VectorIndex(Protocol):
    @property
    def total_chunks(self) -> int: ...

    @property
    def total_notes(self) -> int: ...

    @property
    def dirty(self) -> bool: ...

    @property
    def config(self) -> IndexConfig: ...

    def upsert(self, note_id: str, chunks: list[Chunk]) -> None:
        """Replace all chunks of a note with the given ones."""
        ...

    def delete_by_note(self, note_id: str) -> None:
        """Delete all chunks belonging to a note."""
        ...

    def search(
        self,
        query_embedding: np.ndarray,
        top_k: int,
        exclude_note_ids: Iterable[str] | None = None,
        required_tags: Iterable[str] | None = None,
    ) -> list[SearchResult]:
        """Get the ``top_k`` chunks most similar to a query vector."""
        ...

    def get_by_note(self, note_id: str) -> list[Chunk]:
        """Get the chunks of a note ordered by chunk index."""
        ...

    def get_by_title(self, title: str) -> list[Chunk]:
        """Get the chunks of every note with the given title."""
        ...

    def get_links_to(self, title: str, aliases: Iterable[str] = ()) -> list[Chunk]:
        """Get chunks from other notes that link to the title or one of its aliases."""
        ...

    def resolve_title(self, title: str) -> str | None:
        """Get the id of the note carrying a title."""
        ...

    def get_embedded_state(self) -> dict[str, str]:
        """Map every indexed note id to the change token it was embedded with."""
        ...

    def note_ids(self) -> set[str]:
        """Get all indexed note ids."""
        ...

    def get_note_id_by_location(self, location: str) -> str | None: ...

    def update_location(self, old_location: str, new_location: str) -> None: ...

    def get_all_tags(self) -> list[str]: ...

    def get_all_titles(self) -> list[str]: ...

    def validate_config(self, config: IndexConfig) -> bool:
        """Check whether stored vectors are valid under ``config``."""
        ...

    def set_config(self, config: IndexConfig) -> None: ...

    def clear(self) -> None:
        """Clear all chunks from the index."""
        ...

    def persist(self) -> None:
        """Write the index to disk if it changed since the last write."""
        ...

    def load(self) -> None:
        """Replace the in-memory state with the snapshot on disk."""
        ...
