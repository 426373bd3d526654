from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from pkmrag.domain.note import IndexConfig
from pkmrag.domain.query import QueryConfig
from pkmrag.ingestion.splitter import DEFAULT_SEPARATORS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PKMRAG_", env_file=".env", extra="ignore")

    # Backend settings
    ollama_url: str = "http://localhost:11434"
    embed_model: str = "nomic-embed-text"
    chat_model: str = "llama3.1:8b"
    request_timeout: float = 120.0
    enable_streaming: bool = True

    # Vault settings
    vault_path: Path = Path(".")
    excluded_folders: list[str] = [".obsidian", ".trash"]
    included_folders: list[str] = []
    content_mode: Literal["section", "full"] = "section"
    note_section_header_name: str = "Notes"
    note_section_header_level: int = 2
    required_frontmatter_key: str = "UUID"
    modified_frontmatter_key: str = "Modified"
    description_frontmatter_key: str = "Description"

    # Chunking settings
    chunk_size: int = 800
    chunk_overlap: int = 100
    min_chunk_length: int = 50
    chunk_separators: list[str] = DEFAULT_SEPARATORS

    # Retrieval settings
    top_k: int = 5
    similar_top_k: int = 10
    gap_analysis_top_k: int = 15
    similarity_threshold: float = 0.5
    redundancy_threshold: float = 0.7
    enable_query_rewrite: bool = False
    filter_linked_by_default: bool = True

    # Index settings
    index_path: str = ".pkm-embeddings/embeddings.json"
    enable_auto_embed: bool = True
    auto_embed_debounce_seconds: float = 30.0

    log_level: str = "INFO"  # Can be DEBUG, INFO, WARNING, ERROR, CRITICAL

    def index_config(self) -> IndexConfig:
        return IndexConfig(
            embedding_model_name=self.embed_model,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def query_config(self) -> QueryConfig:
        return QueryConfig(
            top_k=self.top_k,
            similar_top_k=self.similar_top_k,
            gap_analysis_top_k=self.gap_analysis_top_k,
            similarity_threshold=self.similarity_threshold,
            redundancy_threshold=self.redundancy_threshold,
            enable_query_rewrite=self.enable_query_rewrite,
            filter_linked_by_default=self.filter_linked_by_default,
        )


settings = Settings()
