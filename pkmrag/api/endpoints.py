import json
import queue
import threading
from typing import Callable, Generator

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from loguru import logger

from pkmrag.api.schemas import AskRequest, NoteEvent, ReindexRequest, RenameEvent
from pkmrag.backends.base import TokenSink
from pkmrag.domain.note import EmbedStats
from pkmrag.domain.query import ModeResult, SimilarNote
from pkmrag.errors import BackendError
from pkmrag.rag.modes import ChatMode, InputType
from pkmrag.service import KnowledgeBase

_DONE = object()


def format_event(content: str, event: str | None = None) -> str:
    """Format a payload as an SSE event, prefixing every line with ``data: ``."""
    data = "\n".join(f"data: {line}" for line in content.split("\n"))
    if event:
        return f"event: {event}\n{data}\n\n"
    return f"{data}\n\n"


def stream_response(run: Callable[[TokenSink], ModeResult]) -> Generator[str, None, None]:
    """Run a query mode in a worker thread and relay its tokens as SSE events.

    Emits one data event per token, then a ``sources`` event and ``done``.
    If the mode answers without streaming (e.g. nothing relevant was found),
    the whole answer is sent as a single data event.
    """
    events: queue.Queue = queue.Queue()

    def worker() -> None:
        try:
            events.put(("result", run(lambda token: events.put(("token", token)))))
        except Exception as e:
            events.put(("error", e))
        finally:
            events.put((_DONE, None))

    threading.Thread(target=worker, daemon=True).start()

    streamed = False
    while True:
        kind, payload = events.get()
        if kind is _DONE:
            break
        if kind == "token":
            streamed = True
            yield format_event(payload)
        elif kind == "result":
            if not streamed:
                yield format_event(payload.answer)
            sources = json.dumps([s.model_dump() for s in payload.sources])
            yield format_event(sources, event="sources")
            yield "event: done\ndata:\n\n"
        elif kind == "error":
            logger.error(f"Error in stream: {payload}")
            yield format_event(str(payload), event="error")


def _backend_http_error(e: BackendError) -> HTTPException:
    logger.error(f"Backend error: {e}")
    return HTTPException(status_code=502, detail=str(e))


def get_endpoints_router(*, knowledge_base: KnowledgeBase) -> APIRouter:  # noqa: C901
    router = APIRouter()

    @router.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @router.get("/api/status")
    def status():
        return knowledge_base.status()

    @router.post("/api/reindex")
    def reindex(request: ReindexRequest) -> EmbedStats:
        try:
            return knowledge_base.reindex_vault(force=request.force)
        except BackendError as e:
            raise _backend_http_error(e) from e

    @router.post("/api/notes/reindex")
    def reindex_note(event: NoteEvent) -> EmbedStats:
        return knowledge_base.reindex_note(event.location)

    @router.post("/api/events/modified", status_code=202)
    def note_modified(event: NoteEvent):
        knowledge_base.on_modified(event.location)
        return {"status": "scheduled"}

    @router.post("/api/events/deleted")
    def note_deleted(event: NoteEvent):
        knowledge_base.on_deleted(event.location)
        return {"status": "ok"}

    @router.post("/api/events/renamed")
    def note_renamed(event: RenameEvent):
        knowledge_base.on_renamed(event.old_location, event.new_location)
        return {"status": "ok"}

    @router.post("/api/ask")
    def ask(request: AskRequest) -> ModeResult:
        try:
            return knowledge_base.ask(
                request.mode,
                request.text,
                concepts=request.concepts,
                input_type=request.input_type,
                filter_tags=request.tags,
            )
        except BackendError as e:
            raise _backend_http_error(e) from e

    @router.get("/api/notes/similar")
    def similar_notes(
        title: str,
        filter_linked: bool | None = None,
        tags: list[str] = Query(default=[]),  # noqa: B008
    ) -> list[SimilarNote]:
        return knowledge_base.similar_notes(title, filter_linked=filter_linked, filter_tags=tags)

    @router.get("/chat")
    def chat(
        message: str = "",
        mode: ChatMode = "explore",
        input_type: InputType = "idea",
        tags: list[str] = Query(default=[]),  # noqa: B008
    ) -> StreamingResponse:
        if not message:
            return StreamingResponse(
                iter(["event: error\ndata: No message provided\n\n"]),
                media_type="text/event-stream",
            )

        def run(on_token: TokenSink) -> ModeResult:
            return knowledge_base.ask(
                mode, message, input_type=input_type, filter_tags=tags, on_token=on_token
            )

        return StreamingResponse(
            stream_response(run),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )

    return router
