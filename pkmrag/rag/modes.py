"""Query modes composing retrieval, prompts and the chat backend."""

from typing import Iterable, Literal

from loguru import logger

from pkmrag.backends.base import EmbeddingBackend, TokenSink
from pkmrag.backends.schemas import ChatMessage
from pkmrag.domain.note import Chunk
from pkmrag.domain.query import ModeResult, QueryConfig, SourceInfo
from pkmrag.errors import BackendError
from pkmrag.index.base import VectorIndex
from pkmrag.rag import prompts
from pkmrag.rag.retrieval import (
    CONTEXT_SEPARATOR,
    deduplicate_sources,
    format_source_header,
    retrieve_context,
    source_from_chunk,
    tag_filter,
)

ChatMode = Literal["explore", "connect", "gap", "devils_advocate", "redundancy", "updater"]
InputType = Literal["note", "idea"]

DEVILS_ADVOCATE_OVERFETCH = 5


def _ask(
    backend: EmbeddingBackend,
    system_prompt: str,
    prompt: str,
    on_token: TokenSink | None,
) -> str:
    messages = [
        ChatMessage(role="system", content=system_prompt),
        ChatMessage(role="user", content=prompt),
    ]
    return backend.chat(messages, on_token=on_token)


def _target_chunks(index: VectorIndex, title: str) -> list[Chunk]:
    note_id = index.resolve_title(title)
    return index.get_by_note(note_id) if note_id is not None else []


def _note_not_found(title: str) -> ModeResult:
    return ModeResult(answer=f'No note found with title "{title}".')


def rewrite_query(question: str, backend: EmbeddingBackend) -> str:
    """Ask the chat model for a retrieval-friendly rewrite, falling back to the question."""
    try:
        rewritten = backend.chat(
            [
                ChatMessage(
                    role="user",
                    content=prompts.QUERY_REWRITE_PROMPT.format(question=question),
                )
            ]
        ).strip()
    except BackendError as e:
        logger.warning(f"Query rewrite failed, using original question: {e}")
        return question
    return rewritten or question


def run_explore_mode(
    question: str,
    *,
    index: VectorIndex,
    backend: EmbeddingBackend,
    config: QueryConfig,
    on_token: TokenSink | None = None,
    filter_tags: Iterable[str] | None = None,
) -> ModeResult:
    """Answer a question from the notes most similar to it."""
    search_query = question
    if config.enable_query_rewrite:
        search_query = rewrite_query(question, backend)

    context, sources = retrieve_context(
        search_query,
        index=index,
        backend=backend,
        top_k=config.top_k,
        threshold=config.similarity_threshold,
        filter_tags=filter_tags,
    )
    if not context:
        return ModeResult(answer=prompts.NO_INFORMATION_ANSWER)

    # The original question goes into the prompt, the rewrite is only for search
    answer = _ask(
        backend,
        prompts.EXPLORE_SYSTEM_PROMPT,
        prompts.format_explore_prompt(context, question),
        on_token,
    )
    return ModeResult(answer=answer, sources=sources)


def run_connect_mode(
    concepts: list[str],
    *,
    index: VectorIndex,
    backend: EmbeddingBackend,
    config: QueryConfig,
    on_token: TokenSink | None = None,
    filter_tags: Iterable[str] | None = None,
) -> ModeResult:
    """Look for connections between several concepts or note titles."""
    concept_contexts: dict[str, str] = {}
    all_sources: list[SourceInfo] = []
    found_any = False

    for concept in concepts:
        context, sources = retrieve_context(
            concept,
            index=index,
            backend=backend,
            top_k=config.top_k,
            threshold=config.similarity_threshold,
            filter_tags=filter_tags,
        )
        found_any = found_any or bool(context)
        concept_contexts[concept] = context or "No notes found."
        all_sources.extend(sources)

    if not found_any:
        return ModeResult(answer=prompts.NO_INFORMATION_ANSWER)

    answer = _ask(
        backend,
        prompts.CONNECT_SYSTEM_PROMPT,
        prompts.format_connect_prompt(concept_contexts),
        on_token,
    )
    return ModeResult(answer=answer, sources=deduplicate_sources(all_sources))


def run_gap_mode(
    topic: str,
    *,
    index: VectorIndex,
    backend: EmbeddingBackend,
    config: QueryConfig,
    on_token: TokenSink | None = None,
    filter_tags: Iterable[str] | None = None,
) -> ModeResult:
    """Report what the notes on a topic cover and what they are missing."""
    context, sources = retrieve_context(
        topic,
        index=index,
        backend=backend,
        top_k=config.gap_analysis_top_k,
        threshold=config.similarity_threshold,
        filter_tags=filter_tags,
    )
    if not context:
        return ModeResult(answer=f'No notes found related to "{topic}".')

    answer = _ask(
        backend, prompts.GAP_SYSTEM_PROMPT, prompts.format_gap_prompt(context, topic), on_token
    )
    return ModeResult(answer=answer, sources=sources)


def run_devils_advocate_mode(
    title: str,
    *,
    index: VectorIndex,
    backend: EmbeddingBackend,
    config: QueryConfig,
    on_token: TokenSink | None = None,
    filter_tags: Iterable[str] | None = None,
) -> ModeResult:
    """Challenge a note using the notes most similar to it."""
    target_chunks = _target_chunks(index, title)
    if not target_chunks:
        return _note_not_found(title)

    first = target_chunks[0]
    results = index.search(
        first.embedding,
        config.top_k + DEVILS_ADVOCATE_OVERFETCH,
        exclude_note_ids={first.note_id},
        required_tags=tag_filter(filter_tags),
    )

    related_parts = []
    sources = [source_from_chunk(first)]
    for chunk, similarity in results:
        if similarity < config.similarity_threshold:
            continue
        source = source_from_chunk(chunk)
        header = format_source_header(source.title, source.description)
        related_parts.append(f"{header}\n{chunk.text}")
        sources.append(source)

    if not related_parts:
        return ModeResult(
            answer=f'No related notes found to challenge "{title}".',
            sources=sources[:1],
        )

    note_context = "\n\n".join(chunk.text for chunk in target_chunks)
    answer = _ask(
        backend,
        prompts.DEVILS_ADVOCATE_SYSTEM_PROMPT,
        prompts.format_devils_advocate_prompt(
            title, note_context, CONTEXT_SEPARATOR.join(related_parts)
        ),
        on_token,
    )
    return ModeResult(answer=answer, sources=deduplicate_sources(sources))


def run_redundancy_mode(
    text: str,
    input_type: InputType,
    *,
    index: VectorIndex,
    backend: EmbeddingBackend,
    config: QueryConfig,
    on_token: TokenSink | None = None,
    filter_tags: Iterable[str] | None = None,
) -> ModeResult:
    """Check whether an existing note, or a new idea, duplicates other notes.

    For ``input_type="note"`` ``text`` is a note title and its stored
    embedding is reused. For ``"idea"`` the text is embedded.
    """
    if input_type == "note":
        target_chunks = _target_chunks(index, text)
        if not target_chunks:
            return _note_not_found(text)
        query_embedding = target_chunks[0].embedding
        target_content = "\n\n".join(chunk.text for chunk in target_chunks)
        excluded = {target_chunks[0].note_id}
    else:
        query_embedding = backend.embed(text)
        target_content = text
        excluded = set()

    results = index.search(
        query_embedding,
        config.similar_top_k,
        exclude_note_ids=excluded,
        required_tags=tag_filter(filter_tags),
    )

    similar_parts = []
    scores = []
    sources: list[SourceInfo] = []
    seen_titles: set[str] = set()
    for chunk, similarity in results:
        if similarity < config.redundancy_threshold:
            continue
        source = source_from_chunk(chunk)
        if source.title in seen_titles:
            continue
        seen_titles.add(source.title)

        score = round(similarity, 3)
        scores.append(f"{source.title}: {score}")
        header = format_source_header(source.title, source.description, similarity=score)
        similar_parts.append(f"{header}\n{chunk.text}")
        sources.append(source)

    if not similar_parts:
        return ModeResult(answer=f"No similar notes found. This {input_type} appears unique.")

    answer = _ask(
        backend,
        prompts.REDUNDANCY_SYSTEM_PROMPT,
        prompts.format_redundancy_prompt(
            target_content, input_type, CONTEXT_SEPARATOR.join(similar_parts), "\n".join(scores)
        ),
        on_token,
    )
    return ModeResult(answer=answer, sources=sources)


def run_updater_mode(
    title: str,
    *,
    index: VectorIndex,
    backend: EmbeddingBackend,
    config: QueryConfig,
    on_token: TokenSink | None = None,
    filter_tags: Iterable[str] | None = None,
) -> ModeResult:
    """Surface what notes linking to a note say that the note itself does not."""
    target_chunks = _target_chunks(index, title)
    if not target_chunks:
        return _note_not_found(title)

    first = target_chunks[0]
    backlink_chunks = index.get_links_to(title, first.metadata.alias_set)
    tags = tag_filter(filter_tags)
    if tags:
        backlink_chunks = [c for c in backlink_chunks if c.metadata.tag_set & tags]

    if not backlink_chunks:
        return ModeResult(
            answer=f'No other notes link to "{title}". There are no backlink insights to review.'
        )

    backlink_parts = []
    sources = [source_from_chunk(first)]
    for chunk in backlink_chunks:
        source = source_from_chunk(chunk)
        header = format_source_header(source.title, source.description)
        backlink_parts.append(f"{header}\n{chunk.text}")
        sources.append(source)

    note_context = "\n\n".join(chunk.text for chunk in target_chunks)
    answer = _ask(
        backend,
        prompts.UPDATER_SYSTEM_PROMPT,
        prompts.format_updater_prompt(title, note_context, CONTEXT_SEPARATOR.join(backlink_parts)),
        on_token,
    )
    return ModeResult(answer=answer, sources=deduplicate_sources(sources))
