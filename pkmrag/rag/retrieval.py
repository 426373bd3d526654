"""Semantic retrieval over the vector index."""

from typing import Iterable, NamedTuple

from pkmrag.backends.base import EmbeddingBackend
from pkmrag.domain.note import Chunk
from pkmrag.domain.query import SimilarNote, SourceInfo
from pkmrag.index.base import VectorIndex

CONTEXT_SEPARATOR = "\n\n---\n\n"
SIMILAR_OVERFETCH = 20


class RetrievalResult(NamedTuple):
    formatted_context: str
    sources: list[SourceInfo]


def format_source_header(
    title: str,
    description: str = "",
    *,
    similarity: float | None = None,
    description_separator: str = "\n",
) -> str:
    header = f"[Source: {title}]"
    if similarity is not None:
        header += f" (Similarity: {similarity})"
    if description:
        header += f"{description_separator}Description: {description}"
    return header


def source_from_chunk(chunk: Chunk) -> SourceInfo:
    return SourceInfo(
        title=chunk.metadata.title or "Unknown",
        description=chunk.metadata.description,
        location=chunk.metadata.location,
    )


def deduplicate_sources(sources: Iterable[SourceInfo]) -> list[SourceInfo]:
    """Drop sources whose title was already seen, keeping first-seen order."""
    seen: set[str] = set()
    unique = []
    for source in sources:
        if source.title not in seen:
            seen.add(source.title)
            unique.append(source)
    return unique


def tag_filter(filter_tags: Iterable[str] | None) -> set[str] | None:
    tags = {t for t in filter_tags or () if t}
    return tags or None


def retrieve_context(
    query: str,
    *,
    index: VectorIndex,
    backend: EmbeddingBackend,
    top_k: int,
    threshold: float,
    filter_tags: Iterable[str] | None = None,
) -> RetrievalResult:
    """Embed a query and collect the matching chunks as prompt context.

    Chunks scoring below ``threshold`` are dropped. Sources are deduplicated by
    title in the order they were first seen.
    """
    query_embedding = backend.embed(query)
    results = index.search(query_embedding, top_k, required_tags=tag_filter(filter_tags))

    context_parts = []
    sources = []
    for chunk, similarity in results:
        if similarity < threshold:
            continue
        source = source_from_chunk(chunk)
        header = format_source_header(
            source.title, source.description, description_separator=" | "
        )
        context_parts.append(f"{header}\n{chunk.text}")
        sources.append(source)

    return RetrievalResult(CONTEXT_SEPARATOR.join(context_parts), deduplicate_sources(sources))


def linked_titles(index: VectorIndex, title: str) -> set[str]:
    """Titles linked from the note, or linking to it by title or alias."""
    note_id = index.resolve_title(title)
    if note_id is None:
        return set()
    chunks = index.get_by_note(note_id)
    if not chunks:
        return set()

    metadata = chunks[0].metadata
    titles = set(metadata.link_set)
    titles |= {chunk.metadata.title for chunk in index.get_links_to(title, metadata.alias_set)}
    titles.discard(title)
    return titles


def find_similar_notes(
    title: str,
    *,
    index: VectorIndex,
    top_k: int,
    threshold: float,
    filter_linked: bool = False,
    filter_tags: Iterable[str] | None = None,
) -> list[SimilarNote]:
    """Find notes similar to the note with the given title.

    The stored embedding of the note's first chunk is the query, so the
    backend is never called.
    """
    note_id = index.resolve_title(title)
    if note_id is None:
        return []
    target_chunks = index.get_by_note(note_id)
    if not target_chunks:
        return []

    excluded_titles = linked_titles(index, title) if filter_linked else set()
    results = index.search(
        target_chunks[0].embedding,
        top_k + SIMILAR_OVERFETCH,
        exclude_note_ids={note_id},
        required_tags=tag_filter(filter_tags),
    )

    similar: list[SimilarNote] = []
    seen_titles: set[str] = set()
    for chunk, similarity in results:
        if similarity < threshold:
            continue
        note_title = chunk.metadata.title or "Unknown"
        if note_title in seen_titles or note_title in excluded_titles:
            continue
        seen_titles.add(note_title)
        similar.append(
            SimilarNote(
                title=note_title,
                description=chunk.metadata.description,
                similarity=round(similarity, 3),
                location=chunk.metadata.location,
            )
        )
        if len(similar) >= top_k:
            break

    return similar
