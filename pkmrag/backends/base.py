from typing import Callable, Protocol

import numpy as np

from pkmrag.backends.schemas import ChatMessage

TokenSink = Callable[[str], None]
ProgressCallback = Callable[[int, int], None]


class EmbeddingBackend(Protocol):
    def embed(self, text: str) -> np.ndarray:
        """Embed a single text."""
        ...

    def embed_batch(
        self, texts: list[str], on_progress: ProgressCallback | None = None
    ) -> list[np.ndarray]:
        """Embed many texts, returning vectors in input order."""
        ...

    def chat(self, messages: list[ChatMessage], on_token: TokenSink | None = None) -> str:
        """Run a chat completion, streaming tokens into ``on_token`` when given."""
        ...

    def chat_stream(self, messages: list[ChatMessage], on_token: TokenSink) -> str:
        """Stream a chat completion token by token, returning the full answer."""
        ...

    def is_available(self) -> bool:
        """Check whether the backend is reachable."""
        ...
