"""Incremental indexing of a note corpus into the vector index."""

import threading
from typing import Callable

from loguru import logger

from pkmrag.backends.base import EmbeddingBackend
from pkmrag.domain.note import Chunk, ChunkMetadata, EmbedStats, IndexConfig, Note, make_chunk_id
from pkmrag.errors import BackendUnavailable
from pkmrag.index.base import VectorIndex
from pkmrag.ingestion.splitter import DEFAULT_SEPARATORS, RecursiveCharacterTextSplitter
from pkmrag.ingestion.vault import NotesProvider

ProgressCallback = Callable[[str], None]


class Indexer:
    """Keeps the vector index in sync with a corpus of notes."""

    def __init__(
        self,
        *,
        index: VectorIndex,
        backend: EmbeddingBackend,
        config: IndexConfig,
        min_chunk_length: int = 50,
        separators: list[str] | None = None,
    ):
        """Initialize the indexer with required services.

        Args:
            index: Vector index holding the chunks
            backend: Backend used to embed chunk texts
            config: Embedding model and chunking parameters for new chunks
            min_chunk_length: Minimum characters for a note, and for each chunk, to be indexed
            separators: Splitter separators in priority order
        """
        self.index = index
        self.backend = backend
        self.min_chunk_length = min_chunk_length
        self.separators = list(DEFAULT_SEPARATORS if separators is None else separators)
        self.config = config
        self._run_lock = threading.RLock()

    def update_config(self, config: IndexConfig, min_chunk_length: int | None = None) -> None:
        with self._run_lock:
            self.config = config
            if min_chunk_length is not None:
                self.min_chunk_length = min_chunk_length

    def reindex_all(
        self,
        notes_provider: NotesProvider,
        force_full: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> EmbedStats:
        """Bring the index up to date with every note the provider knows about.

        Notes whose change token matches the indexed one are left alone, notes
        that disappeared from the corpus are deleted. A failing note is counted
        and logged without stopping the run.

        Args:
            notes_provider: Source of the corpus
            force_full: Drop every chunk and embed all notes again
            on_progress: Called with a status message for each note

        Returns:
            Counters for the run
        """
        with self._run_lock:
            if force_full:
                logger.info("Forced full reindex, clearing index")
                self.index.clear()
            elif not self.index.validate_config(self.config):
                logger.info(f"Index config changed to {self.config}, clearing index")
                if on_progress:
                    on_progress("Config changed, clearing embeddings...")
                self.index.clear()
            self.index.set_config(self.config)

            embedded_state = self.index.get_embedded_state()
            stats = EmbedStats()
            seen_note_ids: set[str] = set()
            attempted = 0
            unreachable = 0

            locations = notes_provider.list_locations()
            for i, location in enumerate(locations, start=1):
                if on_progress:
                    on_progress(f"Processing {i}/{len(locations)}: {location}")
                try:
                    note = notes_provider.read_note(location)
                    if note is None:
                        stats.skipped += 1
                        continue
                    seen_note_ids.add(note.id)
                    if embedded_state.get(note.id) == note.modified:
                        stats.unchanged += 1
                        continue
                    attempted += 1
                    self._index_note(note, embedded_state.get(note.id) is not None, stats)
                except BackendUnavailable as e:
                    unreachable += 1
                    logger.error(f"Error processing {location}: {e}")
                    stats.errors += 1
                except Exception as e:
                    logger.exception(f"Error processing {location}: {e}")
                    stats.errors += 1

            if attempted and unreachable == attempted:
                raise BackendUnavailable(
                    f"Embedding backend unreachable for all {attempted} notes to index"
                )

            for note_id in embedded_state.keys() - seen_note_ids:
                self.index.delete_by_note(note_id)
                stats.deleted += 1

            logger.info(f"Reindex complete: {stats.summary()}")
            return stats

    def reindex_one(self, note: Note) -> EmbedStats:
        """Index a single note without looking for deleted notes."""
        with self._run_lock:
            stats = EmbedStats()
            existing_modified = self.index.get_embedded_state().get(note.id)
            if existing_modified == note.modified:
                stats.unchanged += 1
                return stats
            try:
                self._index_note(note, existing_modified is not None, stats)
            except Exception as e:
                logger.exception(f"Error embedding {note.location}: {e}")
                stats.errors += 1
            return stats

    def reindex_location(self, notes_provider: NotesProvider, location: str) -> EmbedStats:
        """Parse the note at a location and index it."""
        try:
            note = notes_provider.read_note(location)
        except Exception as e:
            logger.exception(f"Error reading {location}: {e}")
            return EmbedStats(errors=1)
        if note is None:
            return EmbedStats(skipped=1)
        return self.reindex_one(note)

    def remove_location(self, location: str) -> bool:
        with self._run_lock:
            note_id = self.index.get_note_id_by_location(location)
            if note_id is None:
                return False
            self.index.delete_by_note(note_id)
            logger.info(f"Removed {location} from index")
            return True

    def rename_location(self, old_location: str, new_location: str) -> None:
        with self._run_lock:
            self.index.update_location(old_location, new_location)

    def _index_note(self, note: Note, previously_indexed: bool, stats: EmbedStats) -> None:
        chunks = self.chunk_and_embed(note)
        if not chunks:
            # Too short to index now; whatever was indexed before is stale
            self.index.delete_by_note(note.id)
            stats.skipped += 1
            return
        self.index.upsert(note.id, chunks)
        if previously_indexed:
            stats.updated += 1
        else:
            stats.new += 1

    def chunk_and_embed(self, note: Note) -> list[Chunk]:
        """Split a note into chunks and embed them in one batch.

        The description, when present, is prepended to the content. Notes and
        chunks shorter than ``min_chunk_length`` are not indexed.
        """
        full_text = note.content
        if note.description:
            full_text = f"{note.description}\n\n{note.content}"
        if len(full_text.strip()) < self.min_chunk_length:
            return []

        splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.config.chunk_size,
            chunk_overlap=self.config.chunk_overlap,
            separators=self.separators,
        )
        texts = [t for t in splitter.split_text(full_text) if len(t) >= self.min_chunk_length]
        if not texts:
            return []

        embeddings = self.backend.embed_batch(texts)
        logger.debug(f"Embedded {len(texts)} chunks for {note.location}")
        return [
            Chunk(
                id=make_chunk_id(note.id, i),
                embedding=embedding,
                text=text,
                metadata=ChunkMetadata.from_note(note, chunk_index=i, total_chunks=len(texts)),
            )
            for i, (text, embedding) in enumerate(zip(texts, embeddings, strict=True))
        ]
