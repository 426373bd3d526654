"""Embedding and chat backend talking to a local Ollama server."""

import codecs
import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable

import numpy as np
import requests
from loguru import logger

from pkmrag.backends.base import ProgressCallback, TokenSink
from pkmrag.backends.schemas import ChatMessage
from pkmrag.errors import BackendBadResponse, BackendUnavailable

EMBED_CONCURRENCY = 3


class OllamaBackend:
    def __init__(
        self,
        *,
        base_url: str,
        embed_model: str,
        chat_model: str,
        timeout: float = 120.0,
        concurrency: int = EMBED_CONCURRENCY,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.embed_model = embed_model
        self.chat_model = chat_model
        self.timeout = timeout
        self.concurrency = concurrency
        self.session = requests.Session()

    def is_available(self) -> bool:
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=5)
        except requests.RequestException:
            return False
        return response.status_code == 200

    def embed(self, text: str) -> np.ndarray:
        data = self._post_json("/api/embeddings", {"model": self.embed_model, "prompt": text})
        embedding = data.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise BackendBadResponse("Ollama embed response has no embedding")
        return np.array(embedding, dtype=np.float32)

    def embed_batch(
        self, texts: list[str], on_progress: ProgressCallback | None = None
    ) -> list[np.ndarray]:
        """Embed texts with a bounded number of requests in flight.

        ``Executor.map`` yields results in submission order, so the output lines
        up with ``texts`` regardless of which request finishes first.
        """
        if not texts:
            return []

        results: list[np.ndarray] = []
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            for done, embedding in enumerate(executor.map(self.embed, texts), start=1):
                results.append(embedding)
                if on_progress:
                    on_progress(done, len(texts))
        return results

    def chat(self, messages: list[ChatMessage], on_token: TokenSink | None = None) -> str:
        if on_token is not None:
            return self.chat_stream(messages, on_token)

        data = self._post_json(
            "/api/chat",
            {
                "model": self.chat_model,
                "messages": [m.model_dump() for m in messages],
                "stream": False,
            },
        )
        try:
            return data["message"]["content"]
        except (KeyError, TypeError) as e:
            raise BackendBadResponse("Ollama chat response has no message content") from e

    def chat_stream(self, messages: list[ChatMessage], on_token: TokenSink) -> str:
        payload = {
            "model": self.chat_model,
            "messages": [m.model_dump() for m in messages],
            "stream": True,
        }
        try:
            response = self.session.post(
                f"{self.base_url}/api/chat", json=payload, stream=True, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise BackendUnavailable(f"Ollama stream failed: {e}") from e

        with response:
            if not response.ok:
                raise BackendBadResponse(f"Ollama stream failed: {response.status_code}")
            try:
                tokens = iter_stream_tokens(response.iter_content(chunk_size=None))
                parts = []
                for token in tokens:
                    parts.append(token)
                    on_token(token)
            except requests.RequestException as e:
                raise BackendUnavailable(f"Ollama stream read failed: {e}") from e

        return "".join(parts)

    def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.base_url}{path}", json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise BackendUnavailable(f"Cannot reach Ollama at {self.base_url}: {e}") from e

        if response.status_code != 200:
            raise BackendBadResponse(f"Ollama request to {path} failed: {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise BackendBadResponse(f"Ollama returned invalid JSON for {path}") from e


def iter_stream_tokens(chunks: Iterable[bytes]) -> Iterable[str]:
    """Yield message tokens from a newline-delimited JSON byte stream.

    A line split across two reads is kept in the buffer until its newline
    arrives; whatever is left once the stream ends is parsed as a final line.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    for chunk in chunks:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            token = _parse_token(line)
            if token:
                yield token

    buffer += decoder.decode(b"", final=True)
    token = _parse_token(buffer)
    if token:
        yield token


def _parse_token(line: str) -> str | None:
    if not line.strip():
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed stream line: {}", line[:80])
        return None
    if not isinstance(data, dict):
        return None
    message = data.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
    return None
