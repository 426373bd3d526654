"""Long-lived owner of the index, indexer and backend for one vault."""

from typing import Callable, Iterable

from loguru import logger

from pkmrag.backends.base import EmbeddingBackend, TokenSink
from pkmrag.backends.ollama_backend import OllamaBackend
from pkmrag.config import Settings
from pkmrag.domain.note import EmbedStats
from pkmrag.domain.query import ModeResult, QueryConfig, SimilarNote
from pkmrag.index.local_index import LocalVectorIndex
from pkmrag.ingestion.debounce import DebouncedReindexer
from pkmrag.ingestion.indexer import Indexer
from pkmrag.ingestion.vault import MarkdownVaultProvider, NotesProvider
from pkmrag.rag import modes
from pkmrag.rag.modes import ChatMode, InputType
from pkmrag.rag.retrieval import find_similar_notes


class KnowledgeBase:
    """Forwards host events and user actions to the index and query modes.

    Args:
        index: The single index for the vault
        backend: Embedding and chat backend
        notes_provider: Source of notes for the vault
        indexer: Indexer writing into ``index``
        query_config: Retrieval parameters for the query modes
        enable_streaming: Pass token sinks through to the chat backend
        auto_embed_delay: Seconds to wait after the last modification of a
            note before reindexing it. None disables automatic reindexing.
    """

    def __init__(
        self,
        *,
        index: LocalVectorIndex,
        backend: EmbeddingBackend,
        notes_provider: NotesProvider,
        indexer: Indexer,
        query_config: QueryConfig,
        enable_streaming: bool = True,
        auto_embed_delay: float | None = None,
    ) -> None:
        self.index = index
        self.backend = backend
        self.notes_provider = notes_provider
        self.indexer = indexer
        self.query_config = query_config
        self.enable_streaming = enable_streaming
        self.debouncer = (
            DebouncedReindexer(self._auto_reindex, auto_embed_delay)
            if auto_embed_delay is not None
            else None
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "KnowledgeBase":
        index = LocalVectorIndex(filepath=settings.index_path)
        backend = OllamaBackend(
            base_url=settings.ollama_url,
            embed_model=settings.embed_model,
            chat_model=settings.chat_model,
            timeout=settings.request_timeout,
        )
        notes_provider = MarkdownVaultProvider(
            vault_path=settings.vault_path,
            required_key=settings.required_frontmatter_key,
            modified_key=settings.modified_frontmatter_key,
            description_key=settings.description_frontmatter_key,
            content_mode=settings.content_mode,
            section_header_name=settings.note_section_header_name,
            section_header_level=settings.note_section_header_level,
            excluded_folders=settings.excluded_folders,
            included_folders=settings.included_folders,
        )
        indexer = Indexer(
            index=index,
            backend=backend,
            config=settings.index_config(),
            min_chunk_length=settings.min_chunk_length,
            separators=settings.chunk_separators,
        )
        return cls(
            index=index,
            backend=backend,
            notes_provider=notes_provider,
            indexer=indexer,
            query_config=settings.query_config(),
            enable_streaming=settings.enable_streaming,
            auto_embed_delay=(
                settings.auto_embed_debounce_seconds if settings.enable_auto_embed else None
            ),
        )

    def status(self) -> dict:
        return {
            "total_chunks": self.index.total_chunks,
            "total_notes": self.index.total_notes,
            "config": self.index.config.model_dump(),
            "tags": self.index.get_all_tags(),
            "backend_available": self.backend.is_available(),
        }

    def reindex_vault(
        self, force: bool = False, on_progress: Callable[[str], None] | None = None
    ) -> EmbedStats:
        stats = self.indexer.reindex_all(
            self.notes_provider, force_full=force, on_progress=on_progress
        )
        self.index.persist()
        return stats

    def reindex_note(self, location: str) -> EmbedStats:
        stats = self.indexer.reindex_location(self.notes_provider, location)
        self.index.persist()
        return stats

    def on_modified(self, location: str) -> None:
        if self.debouncer is not None:
            self.debouncer.trigger(location)

    def on_deleted(self, location: str) -> None:
        if self.debouncer is not None:
            self.debouncer.cancel(location)
        if self.indexer.remove_location(location):
            self.index.persist()

    def on_renamed(self, old_location: str, new_location: str) -> None:
        if self.debouncer is not None and old_location in self.debouncer.pending():
            self.debouncer.cancel(old_location)
            self.debouncer.trigger(new_location)
        self.indexer.rename_location(old_location, new_location)
        self.index.persist()

    def ask(
        self,
        mode: ChatMode,
        text: str,
        *,
        concepts: list[str] | None = None,
        input_type: InputType = "idea",
        filter_tags: Iterable[str] | None = None,
        on_token: TokenSink | None = None,
    ) -> ModeResult:
        """Run one of the query modes.

        ``text`` is the question, topic or note title, depending on the mode.
        """
        sink = on_token if self.enable_streaming else None
        kwargs = dict(
            index=self.index,
            backend=self.backend,
            config=self.query_config,
            on_token=sink,
            filter_tags=filter_tags,
        )
        if mode == "explore":
            return modes.run_explore_mode(text, **kwargs)
        if mode == "connect":
            selected = concepts or [c.strip() for c in text.split(",") if c.strip()]
            return modes.run_connect_mode(selected, **kwargs)
        if mode == "gap":
            return modes.run_gap_mode(text, **kwargs)
        if mode == "devils_advocate":
            return modes.run_devils_advocate_mode(text, **kwargs)
        if mode == "redundancy":
            return modes.run_redundancy_mode(text, input_type, **kwargs)
        if mode == "updater":
            return modes.run_updater_mode(text, **kwargs)
        raise ValueError(f"Unknown mode: {mode}")

    def similar_notes(
        self,
        title: str,
        filter_linked: bool | None = None,
        filter_tags: Iterable[str] | None = None,
    ) -> list[SimilarNote]:
        if filter_linked is None:
            filter_linked = self.query_config.filter_linked_by_default
        return find_similar_notes(
            title,
            index=self.index,
            top_k=self.query_config.similar_top_k,
            threshold=self.query_config.similarity_threshold,
            filter_linked=filter_linked,
            filter_tags=filter_tags,
        )

    def shutdown(self) -> None:
        if self.debouncer is not None:
            self.debouncer.cancel_all()
        self.index.persist()

    def _auto_reindex(self, location: str) -> None:
        stats = self.indexer.reindex_location(self.notes_provider, location)
        self.index.persist()
        logger.info(f"Auto reindex of {location}: {stats.summary()}")
