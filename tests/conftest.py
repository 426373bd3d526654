from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from pkmrag.api import create_app
from pkmrag.domain.note import IndexConfig, Note
from pkmrag.domain.query import QueryConfig
from pkmrag.index.local_index import LocalVectorIndex
from pkmrag.ingestion.indexer import Indexer
from pkmrag.service import KnowledgeBase
from tests.fakes import FakeEmbeddingBackend, FakeNotesProvider, make_chunk, make_note


@pytest.fixture
def index_config() -> IndexConfig:
    return IndexConfig(embedding_model_name="fake-embed", chunk_size=200, chunk_overlap=20)


@pytest.fixture
def fake_backend() -> FakeEmbeddingBackend:
    return FakeEmbeddingBackend(
        vectors={
            "apples": [1.0, 0.0, 0.0],
            "gardening": [0.9, 0.1, 0.0],
            "databases": [0.0, 1.0, 0.0],
            "sailing": [0.0, 0.0, 1.0],
        },
        responses=["The notes ", "say apples ", "grow on trees."],
    )


@pytest.fixture
def vault_notes() -> list[Note]:
    """Small corpus: two notes about fruit, one about databases, one linking to apples."""
    return [
        make_note(
            "n1",
            title="Apples",
            content="Apples grow on trees and ripen in autumn in most orchards.",
            description="Fruit basics",
            tags={"fruit"},
            aliases={"Malus"},
        ),
        make_note(
            "n2",
            title="Gardening",
            content="Gardening tips for apple trees, pruning and watering schedules.",
            tags={"fruit", "garden"},
            links={"Apples"},
        ),
        make_note(
            "n3",
            title="Postgres",
            content="Relational databases store rows in tables and support transactions.",
            tags={"tech"},
        ),
        make_note(
            "n4",
            title="Orchard log",
            content="Sailing past the orchard, a note about Malus varieties seen there.",
            links={"Malus"},
        ),
    ]


@pytest.fixture
def notes_provider(vault_notes: list[Note]) -> FakeNotesProvider:
    return FakeNotesProvider(vault_notes)


@pytest.fixture
def fruit_index() -> LocalVectorIndex:
    """Index with hand-placed vectors for the query mode tests."""
    return LocalVectorIndex.from_chunks(
        [
            make_chunk(
                "n1",
                [1.0, 0.0, 0.0],
                title="Apples",
                text="Apples grow on trees.",
                description="Fruit basics",
                tags={"fruit"},
                aliases={"Malus"},
            ),
            make_chunk(
                "n1",
                [0.8, 0.2, 0.0],
                title="Apples",
                text="Apples ripen in autumn.",
                chunk_index=1,
                total_chunks=2,
                description="Fruit basics",
                tags={"fruit"},
                aliases={"Malus"},
            ),
            make_chunk(
                "n2",
                [0.9, 0.1, 0.0],
                title="Gardening",
                text="Prune apple trees in winter.",
                tags={"fruit", "garden"},
                links={"Apples"},
            ),
            make_chunk("n3", [0.0, 1.0, 0.0], title="Postgres", text="Rows live in tables."),
            make_chunk(
                "n4",
                [0.1, 0.0, 1.0],
                title="Orchard log",
                text="Saw several Malus varieties.",
                links={"Malus"},
            ),
        ]
    )


@pytest.fixture
def query_config() -> QueryConfig:
    return QueryConfig(top_k=5, similar_top_k=10, similarity_threshold=0.5)


@pytest.fixture
def indexer(
    tmp_path: Path, fake_backend: FakeEmbeddingBackend, index_config: IndexConfig
) -> Indexer:
    return Indexer(
        index=LocalVectorIndex(filepath=tmp_path / "embeddings.json"),
        backend=fake_backend,
        config=index_config,
        min_chunk_length=10,
    )


@pytest.fixture
def knowledge_base(
    indexer: Indexer,
    fake_backend: FakeEmbeddingBackend,
    notes_provider: FakeNotesProvider,
    query_config: QueryConfig,
) -> KnowledgeBase:
    return KnowledgeBase(
        index=indexer.index,
        backend=fake_backend,
        notes_provider=notes_provider,
        indexer=indexer,
        query_config=query_config,
    )


@pytest.fixture
def test_client(knowledge_base: KnowledgeBase) -> TestClient:
    """Create test client with fake implementations."""
    return TestClient(create_app(knowledge_base=knowledge_base))
