from tests.fakes.builders import make_chunk, make_note
from tests.fakes.fake_backend import FakeEmbeddingBackend
from tests.fakes.fake_notes_provider import FakeNotesProvider

__all__ = ["FakeEmbeddingBackend", "FakeNotesProvider", "make_chunk", "make_note"]
