"""Recursive character text splitter for note content."""

DEFAULT_SEPARATORS = ["\n## ", "\n### ", "\n\n", "\n1. ", "\n- ", "\n", ". ", " "]


class RecursiveCharacterTextSplitter:
    """Split text into overlapping chunks along a hierarchy of separators.

    The highest-priority separator found in the text is used to cut it into
    pieces. Small pieces are packed together up to ``chunk_size`` characters,
    keeping up to ``chunk_overlap`` trailing characters as the start of the
    next chunk. Pieces that are too large on their own are split again with
    the remaining, lower-priority separators.
    """

    def __init__(
        self,
        chunk_size: int = 800,
        chunk_overlap: int = 100,
        separators: list[str] | None = None,
    ):
        """Initialize the splitter.

        Args:
            chunk_size: Maximum characters per chunk
            chunk_overlap: Maximum characters carried over between consecutive chunks
            separators: Separators in priority order. An empty string splits into characters.
        """
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = list(DEFAULT_SEPARATORS if separators is None else separators)

    def split_text(self, text: str) -> list[str]:
        if not text:
            return []
        return self._split_text(text, self.separators)

    def _split_text(self, text: str, separators: list[str]) -> list[str]:
        final_chunks: list[str] = []

        separator = separators[-1] if separators else ""
        remaining: list[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1 :]
                break

        splits = [s for s in text.split(separator) if s] if separator else list(text)

        good_splits: list[str] = []
        for piece in splits:
            if len(piece) < self.chunk_size:
                good_splits.append(piece)
                continue

            if good_splits:
                final_chunks.extend(self._merge_splits(good_splits, separator))
                good_splits = []
            if remaining:
                final_chunks.extend(self._split_text(piece, remaining))
            else:
                final_chunks.append(piece)

        if good_splits:
            final_chunks.extend(self._merge_splits(good_splits, separator))

        return final_chunks

    def _merge_splits(self, splits: list[str], separator: str) -> list[str]:
        docs: list[str] = []
        current: list[str] = []
        total = 0

        for piece in splits:
            length = len(piece)
            sep_len = len(separator) if current else 0

            if total + length + sep_len > self.chunk_size and current:
                doc = self._join_docs(current, separator)
                if doc is not None:
                    docs.append(doc)
                # Drop pieces from the front until only the overlap seed is left
                while current and (
                    total > self.chunk_overlap
                    or (total + length + sep_len > self.chunk_size and total > 0)
                ):
                    removed = current.pop(0)
                    total -= len(removed) + (len(separator) if current else 0)
                sep_len = len(separator) if current else 0

            current.append(piece)
            total += length + sep_len

        doc = self._join_docs(current, separator)
        if doc is not None:
            docs.append(doc)
        return docs

    @staticmethod
    def _join_docs(docs: list[str], separator: str) -> str | None:
        text = separator.join(docs).strip()
        return text or None


def split(text: str, chunk_size: int, chunk_overlap: int, separators: list[str]) -> list[str]:
    """Split ``text`` with a one-off :class:`RecursiveCharacterTextSplitter`."""
    return RecursiveCharacterTextSplitter(chunk_size, chunk_overlap, separators).split_text(text)
