"""In-memory vector index persisted as a single JSON snapshot."""

import heapq
import json
import os
import threading
from pathlib import Path
from typing import Iterable

import numpy as np
from loguru import logger

from pkmrag.domain.note import (
    SNAPSHOT_VERSION,
    Chunk,
    ChunkMetadata,
    IndexConfig,
    IndexSnapshot,
)
from pkmrag.errors import SnapshotVersionMismatch
from pkmrag.index.base import SearchResult, VectorIndex


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors, 0.0 when either has zero norm."""
    denominator = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(a, b) / denominator)


class LocalVectorIndex(VectorIndex):
    """Chunk store with secondary indexes by note id, title and link target.

    Chunks of one note are always replaced as a set. Every public method holds
    the same re-entrant lock, so mutations never interleave with each other or
    with reads.
    """

    def __init__(self, filepath: str | Path | None = None) -> None:
        """Initialize LocalVectorIndex.

        Args:
            filepath: Path of the snapshot file. If provided and it exists, the
                     snapshot is loaded. If not provided, the index lives in
                     memory only and ``persist()`` raises once there is
                     something to write.
        """
        self._filepath = str(filepath) if filepath else None
        self._lock = threading.RLock()
        self._chunks: dict[str, Chunk] = {}
        self._note_index: dict[str, list[str]] = {}
        self._title_index: dict[str, set[str]] = {}
        self._link_index: dict[str, set[str]] = {}
        self._config = IndexConfig()
        self._dirty = False

        if self._filepath and Path(self._filepath).exists():
            self.load()

    @classmethod
    def from_chunks(
        cls, chunks: Iterable[Chunk], config: IndexConfig | None = None
    ) -> "LocalVectorIndex":
        """Create an in-memory index from chunks (useful for testing)."""
        instance = cls(filepath=None)
        instance._insert_grouped(chunks)
        instance._config = config or IndexConfig()
        return instance

    @property
    def filepath(self) -> str | None:
        return self._filepath

    @property
    def total_chunks(self) -> int:
        return len(self._chunks)

    @property
    def total_notes(self) -> int:
        return len(self._note_index)

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def config(self) -> IndexConfig:
        return self._config

    def upsert(self, note_id: str, chunks: list[Chunk]) -> None:
        """Replace all chunks of a note with the given ones."""
        if not chunks:
            return

        foreign = [chunk.id for chunk in chunks if chunk.note_id != note_id]
        if foreign:
            raise ValueError(f"Chunks {foreign} do not belong to note {note_id}")
        chunk_ids = [chunk.id for chunk in chunks]
        if len(set(chunk_ids)) != len(chunk_ids):
            raise ValueError(f"Duplicate chunk ids in upsert for note {note_id}")

        ordered = sorted(chunks, key=lambda c: c.metadata.chunk_index)
        with self._lock:
            self._remove_note(note_id)
            self._insert_note(note_id, ordered)
            self._dirty = True

    def delete_by_note(self, note_id: str) -> None:
        """Delete all chunks of a note. Unknown note ids are ignored."""
        with self._lock:
            if self._remove_note(note_id):
                self._dirty = True

    def search(
        self,
        query_embedding: np.ndarray,
        top_k: int,
        exclude_note_ids: Iterable[str] | None = None,
        required_tags: Iterable[str] | None = None,
    ) -> list[SearchResult]:
        """Get the ``top_k`` chunks most similar to a query vector.

        Only the best ``top_k`` candidates are kept in a min-heap while
        scanning. Equal similarities are ranked by insertion order.
        """
        if top_k <= 0:
            return []

        query = np.asarray(query_embedding, dtype=np.float32)
        excluded = set(exclude_note_ids or ())
        tags = set(required_tags or ())

        with self._lock:
            heap: list[tuple[float, int, str]] = []
            mismatched = 0
            for position, chunk in enumerate(self._chunks.values()):
                if chunk.note_id in excluded:
                    continue
                if chunk.embedding.shape != query.shape:
                    mismatched += 1
                    continue
                if tags and not chunk.metadata.tag_set & tags:
                    continue

                entry = (cosine_similarity(query, chunk.embedding), -position, chunk.id)
                if len(heap) < top_k:
                    heapq.heappush(heap, entry)
                elif entry > heap[0]:
                    heapq.heapreplace(heap, entry)

            if mismatched:
                logger.warning(
                    f"Skipped {mismatched} chunks whose embedding dimension differs from the "
                    f"query ({query.shape[0]}), reindex after changing the embedding model"
                )
            return [
                SearchResult(chunk=self._chunks[chunk_id], similarity=similarity)
                for similarity, _, chunk_id in sorted(heap, reverse=True)
            ]

    def get_by_note(self, note_id: str) -> list[Chunk]:
        with self._lock:
            return [self._chunks[chunk_id] for chunk_id in self._note_index.get(note_id, [])]

    def get_by_title(self, title: str) -> list[Chunk]:
        with self._lock:
            chunks = [
                chunk
                for note_id in self._title_index.get(title, set())
                for chunk in self.get_by_note(note_id)
            ]
        return sorted(chunks, key=lambda c: (c.note_id, c.metadata.chunk_index))

    def resolve_title(self, title: str) -> str | None:
        with self._lock:
            note_ids = sorted(self._title_index.get(title, set()))
        return note_ids[0] if note_ids else None

    def get_links_to(self, title: str, aliases: Iterable[str] = ()) -> list[Chunk]:
        """Get chunks from other notes whose outgoing links name the title or an alias."""
        targets = {title} | {alias for alias in aliases if alias}
        with self._lock:
            target_id = self.resolve_title(title)
            note_ids: set[str] = set()
            for target in targets:
                note_ids |= self._link_index.get(target, set())
            chunks = [
                chunk
                for note_id in note_ids
                for chunk in self.get_by_note(note_id)
                if chunk.note_id != target_id
            ]
        return sorted(
            chunks, key=lambda c: (c.metadata.title, c.note_id, c.metadata.chunk_index)
        )

    def get_embedded_state(self) -> dict[str, str]:
        with self._lock:
            return {
                note_id: self._chunks[chunk_ids[0]].metadata.modified
                for note_id, chunk_ids in self._note_index.items()
                if chunk_ids
            }

    def note_ids(self) -> set[str]:
        with self._lock:
            return set(self._note_index)

    def get_note_id_by_location(self, location: str) -> str | None:
        with self._lock:
            for note_id, chunk_ids in self._note_index.items():
                if self._chunks[chunk_ids[0]].metadata.location == location:
                    return note_id
        return None

    def update_location(self, old_location: str, new_location: str) -> None:
        with self._lock:
            for chunk in self._chunks.values():
                if chunk.metadata.location == old_location:
                    chunk.metadata.location = new_location
                    self._dirty = True

    def get_all_tags(self) -> list[str]:
        with self._lock:
            tags = set()
            for chunk in self._chunks.values():
                tags |= chunk.metadata.tag_set
        return sorted(tags)

    def get_all_titles(self) -> list[str]:
        with self._lock:
            return sorted(title for title, note_ids in self._title_index.items() if note_ids)

    def validate_config(self, config: IndexConfig) -> bool:
        with self._lock:
            return not self._chunks or self._config == config

    def set_config(self, config: IndexConfig) -> None:
        with self._lock:
            if config != self._config:
                self._config = config
                self._dirty = True

    def clear(self) -> None:
        with self._lock:
            self._reset()
            self._dirty = True

    def persist(self) -> None:
        """Write the snapshot to disk. Does nothing when nothing changed."""
        with self._lock:
            if not self._dirty:
                return
            if not self._filepath:
                raise ValueError("No filepath set for the index, cannot persist")

            snapshot = IndexSnapshot(
                version=SNAPSHOT_VERSION,
                embedding_model_name=self._config.embedding_model_name,
                chunk_size=self._config.chunk_size,
                chunk_overlap=self._config.chunk_overlap,
                chunks=list(self._chunks.values()),
            )
            path = Path(self._filepath)
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + ".tmp")
            with open(tmp_path, "w") as f:
                json.dump(snapshot.model_dump(), f)
            os.replace(tmp_path, path)
            self._dirty = False
            logger.debug(f"Persisted {len(self._chunks)} chunks to {path}")

    def load(self) -> None:
        """Replace the in-memory state with the snapshot on disk.

        A snapshot from another schema version, or one that cannot be read,
        leaves the index empty.
        """
        if not self._filepath:
            raise ValueError("No filepath set for the index, cannot load")

        with self._lock:
            self._reset()
            self._config = IndexConfig()
            self._dirty = False

            path = Path(self._filepath)
            if not path.exists():
                return
            try:
                snapshot = self._read_snapshot(path)
            except SnapshotVersionMismatch as e:
                logger.warning(f"{e}, starting with an empty index")
                return
            except (OSError, ValueError) as e:
                logger.error(f"Failed to load index from {path}: {e}")
                return

            self._config = snapshot.config
            self._insert_grouped(snapshot.chunks)
            logger.info(f"Loaded {len(self._chunks)} chunks for {len(self._note_index)} notes")

    @staticmethod
    def _read_snapshot(path: Path) -> IndexSnapshot:
        with open(path, "r") as f:
            data = json.load(f)
        version = data.get("version") if isinstance(data, dict) else None
        if version != SNAPSHOT_VERSION:
            raise SnapshotVersionMismatch(version, SNAPSHOT_VERSION)
        return IndexSnapshot.model_validate(data)

    def _insert_grouped(self, chunks: Iterable[Chunk]) -> None:
        by_note: dict[str, list[Chunk]] = {}
        for chunk in chunks:
            by_note.setdefault(chunk.note_id, []).append(chunk)
        for note_id, note_chunks in by_note.items():
            self._insert_note(note_id, sorted(note_chunks, key=lambda c: c.metadata.chunk_index))

    def _insert_note(self, note_id: str, ordered: list[Chunk]) -> None:
        for chunk in ordered:
            self._chunks[chunk.id] = chunk
        self._note_index[note_id] = [chunk.id for chunk in ordered]
        self._index_metadata(note_id, ordered[0].metadata)

    def _remove_note(self, note_id: str) -> bool:
        chunk_ids = self._note_index.pop(note_id, None)
        if chunk_ids is None:
            return False
        if chunk_ids:
            self._unindex_metadata(note_id, self._chunks[chunk_ids[0]].metadata)
        for chunk_id in chunk_ids:
            self._chunks.pop(chunk_id, None)
        return True

    def _index_metadata(self, note_id: str, metadata: ChunkMetadata) -> None:
        self._title_index.setdefault(metadata.title, set()).add(note_id)
        for target in metadata.link_set:
            self._link_index.setdefault(target, set()).add(note_id)

    def _unindex_metadata(self, note_id: str, metadata: ChunkMetadata) -> None:
        for index, keys in (
            (self._title_index, {metadata.title}),
            (self._link_index, metadata.link_set),
        ):
            for key in keys:
                note_ids = index.get(key)
                if note_ids is None:
                    continue
                note_ids.discard(note_id)
                if not note_ids:
                    del index[key]

    def _reset(self) -> None:
        self._chunks.clear()
        self._note_index.clear()
        self._title_index.clear()
        self._link_index.clear()
