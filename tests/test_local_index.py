"""Tests for LocalVectorIndex functionality."""

import json
from pathlib import Path

import numpy as np
import pytest

from pkmrag.domain.note import IndexConfig
from pkmrag.index.local_index import LocalVectorIndex, cosine_similarity
from tests.fakes import make_chunk


@pytest.fixture
def config() -> IndexConfig:
    return IndexConfig(embedding_model_name="nomic-embed-text", chunk_size=800, chunk_overlap=100)


@pytest.fixture
def abc_index() -> LocalVectorIndex:
    """Three single-chunk notes A, B and C."""
    return LocalVectorIndex.from_chunks(
        [
            make_chunk("a", [1.0, 0.0], title="A", tags={"x"}),
            make_chunk("b", [0.0, 1.0], title="B", tags={"y"}),
            make_chunk("c", [0.9, 0.1], title="C", tags={"y"}),
        ]
    )


def test_upsert_and_get_by_note() -> None:
    """Test that upserted chunks come back ordered by chunk index."""
    index = LocalVectorIndex()
    chunks = [
        make_chunk("n1", [0.0, 1.0], chunk_index=i, total_chunks=3) for i in reversed(range(3))
    ]

    index.upsert("n1", chunks)

    stored = index.get_by_note("n1")
    assert [c.metadata.chunk_index for c in stored] == [0, 1, 2], "Chunks should be ordered"
    assert index.total_chunks == 3, "Should store three chunks"
    assert index.total_notes == 1, "Should store one note"
    assert index.dirty, "Upsert should mark the index dirty"


def test_upsert_replaces_all_previous_chunks() -> None:
    """Test that a second upsert leaves no chunk of the first one behind."""
    index = LocalVectorIndex()
    index.upsert(
        "n1", [make_chunk("n1", [1.0, 0.0], chunk_index=i, total_chunks=3) for i in range(3)]
    )

    index.upsert("n1", [make_chunk("n1", [0.0, 1.0], text="Rewritten note")])

    stored = index.get_by_note("n1")
    assert [c.id for c in stored] == ["n1_chunk_0"], "Only the new chunk should remain"
    assert stored[0].text == "Rewritten note", "New chunk should replace the old one"
    assert index.total_chunks == 1, "Old chunks should not linger in the store"


def test_upsert_empty_is_noop() -> None:
    """Test that upserting no chunks changes nothing."""
    index = LocalVectorIndex()

    index.upsert("n1", [])

    assert index.total_chunks == 0, "Nothing should be stored"
    assert not index.dirty, "Index should stay clean"


def test_upsert_rejects_chunks_of_other_notes() -> None:
    """Test that chunks must belong to the upserted note."""
    index = LocalVectorIndex()

    with pytest.raises(ValueError, match="do not belong to note n1"):
        index.upsert("n1", [make_chunk("n2", [1.0, 0.0])])


def test_delete_unknown_note_is_noop() -> None:
    """Test deleting a note that was never indexed."""
    index = LocalVectorIndex()

    index.delete_by_note("missing")

    assert not index.dirty, "Deleting an unknown note should not mark the index dirty"


def test_delete_removes_note_from_all_lookups() -> None:
    """Test that deleting a note clears it from the title and link lookups."""
    index = LocalVectorIndex.from_chunks(
        [
            make_chunk("n1", [1.0, 0.0], title="Apples"),
            make_chunk("n2", [0.0, 1.0], title="Orchard", links={"Apples"}),
        ]
    )

    index.delete_by_note("n2")

    assert index.get_by_note("n2") == [], "Chunks should be gone"
    assert index.get_by_title("Orchard") == [], "Title lookup should be gone"
    assert index.get_links_to("Apples") == [], "Backlinks from the deleted note should be gone"
    assert index.get_all_titles() == ["Apples"], "Only the remaining title should be listed"


def test_search_ranks_by_similarity(abc_index: LocalVectorIndex) -> None:
    """Test that search returns the most similar chunks first."""
    results = abc_index.search(np.array([1.0, 0.0]), top_k=2)

    assert [r.chunk.metadata.title for r in results] == ["A", "C"], "A then C should be closest"
    assert results[0].similarity == pytest.approx(1.0), "Identical vector should score 1"
    assert results[0].similarity >= results[1].similarity, "Results should be sorted"


def test_search_excludes_notes_and_limits_results(abc_index: LocalVectorIndex) -> None:
    """Test that excluded notes never appear and fewer eligible chunks shrink the result."""
    results = abc_index.search(np.array([1.0, 0.0]), top_k=5, exclude_note_ids={"a"})

    assert [r.chunk.note_id for r in results] == ["c", "b"], "Excluded note should be skipped"
    assert abc_index.search(np.array([1.0, 0.0]), top_k=0) == [], "top_k 0 should return nothing"


def test_search_filters_by_tags(abc_index: LocalVectorIndex) -> None:
    """Test that only chunks with at least one required tag are considered."""
    results = abc_index.search(np.array([1.0, 0.0]), top_k=3, required_tags={"y"})

    assert [r.chunk.metadata.title for r in results] == ["C", "B"], "Only tagged notes should match"


def test_cosine_similarity_zero_vector() -> None:
    """Test that a zero vector has similarity 0 with anything."""
    assert cosine_similarity(np.zeros(3), np.array([1.0, 2.0, 3.0])) == 0.0
    assert cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0])) == pytest.approx(1.0)


def test_persist_and_load_round_trip(tmp_path: Path, config: IndexConfig) -> None:
    """Test saving to and loading from file."""
    filepath = tmp_path / "nested" / "embeddings.json"
    index = LocalVectorIndex(filepath=filepath)
    index.set_config(config)
    index.upsert(
        "n1",
        [
            make_chunk("n1", [0.1, 0.2, 0.3], title="Apples", tags={"fruit"}, aliases={"Malus"}),
            make_chunk("n1", [0.3, 0.2, 0.1], title="Apples", chunk_index=1, total_chunks=2),
        ],
    )
    index.upsert("n2", [make_chunk("n2", [0.0, 1.0, 0.0], title="Orchard", links={"Malus"})])

    index.persist()

    assert filepath.exists(), "File should be created after persist"
    assert not index.dirty, "Persist should clear the dirty flag"
    data = json.loads(filepath.read_text())
    assert data["version"] == 2, "Snapshot should carry the schema version"
    assert data["chunk_size"] == 800, "Snapshot should carry the index config"

    loaded = LocalVectorIndex(filepath=filepath)

    assert loaded.config == config, "Config should be restored"
    assert loaded.note_ids() == {"n1", "n2"}, "All notes should be restored"
    original = index.get_by_note("n1")
    restored = loaded.get_by_note("n1")
    assert [c.id for c in restored] == [c.id for c in original], "Chunk ids should match"
    for a, b in zip(original, restored):
        assert np.allclose(a.embedding, b.embedding), "Embeddings should match"
        assert a.metadata == b.metadata, "Metadata should match"
    assert [c.note_id for c in loaded.get_links_to("Apples", {"Malus"})] == ["n2"], (
        "Link lookup should be rebuilt on load"
    )


def test_persist_skips_clean_index(tmp_path: Path) -> None:
    """Test that nothing is written when nothing changed."""
    filepath = tmp_path / "embeddings.json"
    index = LocalVectorIndex(filepath=filepath)

    index.persist()

    assert not filepath.exists(), "A clean index should not be written"


def test_persist_without_filepath() -> None:
    """Test that persist() raises when there is something to write but nowhere to write it."""
    index = LocalVectorIndex()
    index.upsert("n1", [make_chunk("n1", [1.0, 0.0])])

    with pytest.raises(ValueError, match="No filepath set"):
        index.persist()


def test_load_version_mismatch_starts_empty(tmp_path: Path) -> None:
    """Test that a snapshot from another schema version is discarded."""
    filepath = tmp_path / "embeddings.json"
    filepath.write_text(json.dumps({"version": 99, "chunks": [{"id": "x"}]}))

    index = LocalVectorIndex(filepath=filepath)

    assert index.total_chunks == 0, "Index should start empty"
    assert index.config == IndexConfig(), "Config should be the empty default"


def test_load_corrupted_file_starts_empty(tmp_path: Path) -> None:
    """Test that an unreadable snapshot leaves the index empty."""
    filepath = tmp_path / "embeddings.json"
    filepath.write_text("{not json")

    index = LocalVectorIndex(filepath=filepath)

    assert index.total_chunks == 0, "Index should start empty"
    assert not index.dirty, "Index should not be dirty after loading"


def test_validate_config(config: IndexConfig) -> None:
    """Test that an empty index accepts any config and a populated one only its own."""
    index = LocalVectorIndex()
    assert index.validate_config(config), "Empty index should accept any config"

    index.set_config(config)
    index.upsert("n1", [make_chunk("n1", [1.0, 0.0])])

    assert index.validate_config(config), "Same config should be valid"
    for changed in (
        config.model_copy(update={"embedding_model_name": "other-model"}),
        config.model_copy(update={"chunk_size": 400}),
        config.model_copy(update={"chunk_overlap": 0}),
    ):
        assert not index.validate_config(changed), f"{changed} should be invalid"


def test_clear_keeps_config(config: IndexConfig) -> None:
    """Test clearing all chunks."""
    index = LocalVectorIndex.from_chunks([make_chunk("n1", [1.0, 0.0])], config=config)

    index.clear()

    assert index.total_chunks == 0, "Chunks should be gone after clearing"
    assert index.dirty, "Clearing should mark the index dirty"
    assert index.config == config, "Clearing should keep the config"


def test_get_links_to_matches_title_and_aliases() -> None:
    """Test that backlinks by title or alias are found, ordered by title then chunk."""
    index = LocalVectorIndex.from_chunks(
        [
            make_chunk("target", [1.0, 0.0], title="Apples", aliases={"Malus"}),
            make_chunk("z", [1.0, 0.0], title="Zoo", links={"Apples"}),
            make_chunk("m1", [1.0, 0.0], title="Malus notes", links={"Malus"}, total_chunks=2),
            make_chunk(
                "m1",
                [0.0, 1.0],
                title="Malus notes",
                links={"Malus"},
                chunk_index=1,
                total_chunks=2,
            ),
            make_chunk("other", [1.0, 0.0], title="Other", links={"Pears"}),
        ]
    )

    backlinks = index.get_links_to("Apples", {"Malus"})

    assert [(c.metadata.title, c.metadata.chunk_index) for c in backlinks] == [
        ("Malus notes", 0),
        ("Malus notes", 1),
        ("Zoo", 0),
    ], "Backlinks should be sorted by title and chunk index"


def test_lookups_by_title_and_location() -> None:
    """Test title resolution, location lookup and location updates."""
    index = LocalVectorIndex.from_chunks(
        [
            make_chunk("n2", [1.0, 0.0], title="Apples", location="b/Apples.md"),
            make_chunk("n1", [0.0, 1.0], title="Apples", location="a/Apples.md"),
        ]
    )

    assert index.resolve_title("Apples") == "n1", "Colliding titles should resolve to smallest id"
    assert index.resolve_title("Pears") is None, "Unknown title should not resolve"
    assert [c.note_id for c in index.get_by_title("Apples")] == ["n1", "n2"], (
        "Chunks with the same title should be ordered by note id"
    )
    assert index.get_note_id_by_location("b/Apples.md") == "n2", "Location should map to note id"

    index.update_location("b/Apples.md", "c/Apples.md")

    assert index.get_note_id_by_location("c/Apples.md") == "n2", "New location should be found"
    assert index.get_note_id_by_location("b/Apples.md") is None, "Old location should be gone"
    assert index.dirty, "Location update should mark the index dirty"


def test_embedded_state_and_tags() -> None:
    """Test the per-note change tokens and the tag listing."""
    index = LocalVectorIndex.from_chunks(
        [
            make_chunk("n1", [1.0, 0.0], modified="2024-01-01", tags={"fruit", "garden"}),
            make_chunk("n2", [0.0, 1.0], modified="2024-02-01", tags={"tech"}),
        ]
    )

    assert index.get_embedded_state() == {"n1": "2024-01-01", "n2": "2024-02-01"}
    assert index.get_all_tags() == ["fruit", "garden", "tech"], "Tags should be sorted and unique"


def test_titles_with_commas_keep_their_links(tmp_path: Path) -> None:
    """Test that links, aliases and tags containing commas survive indexing and reloading."""
    filepath = tmp_path / "embeddings.json"
    index = LocalVectorIndex(filepath=filepath)
    index.upsert(
        "t",
        [
            make_chunk(
                "t",
                [1.0, 0.0],
                title="Thinking, Fast and Slow",
                aliases={"Kahneman, 2011"},
                tags={"books, psychology"},
            )
        ],
    )
    index.upsert(
        "r", [make_chunk("r", [0.0, 1.0], title="Reading list", links={"Thinking, Fast and Slow"})]
    )
    index.upsert("k", [make_chunk("k", [0.0, 1.0], title="Citations", links={"Kahneman, 2011"})])
    index.persist()

    for candidate in (index, LocalVectorIndex(filepath=filepath)):
        first = candidate.get_by_note("t")[0]
        assert first.metadata.alias_set == {"Kahneman, 2011"}, "Alias should not be split"
        assert first.metadata.tag_set == {"books, psychology"}, "Tag should not be split"
        assert candidate.get_by_note("r")[0].metadata.link_set == {"Thinking, Fast and Slow"}
        backlinks = candidate.get_links_to("Thinking, Fast and Slow", first.metadata.alias_set)
        assert [c.note_id for c in backlinks] == ["k", "r"], (
            "Notes linking by a title or alias with a comma should be found"
        )


def test_search_skips_chunks_with_other_dimension() -> None:
    """Test that vectors from another embedding model are skipped instead of failing."""
    index = LocalVectorIndex.from_chunks(
        [
            make_chunk("old", [1.0, 0.0]),
            make_chunk("new", [1.0, 0.0, 0.0]),
        ]
    )

    results = index.search(np.array([1.0, 0.0, 0.0]), top_k=5)

    assert [r.chunk.note_id for r in results] == ["new"], "Only matching dimensions should score"


def test_notes_sharing_a_title() -> None:
    """Test that notes with the same title stay grouped and can link to each other."""
    index = LocalVectorIndex.from_chunks(
        [
            make_chunk(
                "n2", [1.0, 0.0], title="Apples", chunk_index=0, total_chunks=2, links={"Apples"}
            ),
            make_chunk("n1", [1.0, 0.0], title="Apples", chunk_index=1, total_chunks=2),
            make_chunk("n1", [1.0, 0.0], title="Apples", chunk_index=0, total_chunks=2),
            make_chunk(
                "n2", [1.0, 0.0], title="Apples", chunk_index=1, total_chunks=2, links={"Apples"}
            ),
        ]
    )

    assert [(c.note_id, c.metadata.chunk_index) for c in index.get_by_title("Apples")] == [
        ("n1", 0),
        ("n1", 1),
        ("n2", 0),
        ("n2", 1),
    ], "Chunks should be grouped by note, then ordered by chunk index"

    backlinks = index.get_links_to("Apples")
    assert {c.note_id for c in backlinks} == {"n2"}, (
        "Another note with the same title that links to the target is a backlink"
    )
