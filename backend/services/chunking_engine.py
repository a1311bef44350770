"""Chunking engine: recursive character splitting with overlap."""
import logging
from typing import List

logger = logging.getLogger(__name__)


class ChunkingEngine:
    """Segments document text into overlapping, size-bounded chunks."""

    def __init__(self, chunk_size: int = 4000, chunk_overlap: int = 400):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Maximum chunk length in characters
            chunk_overlap: Characters carried over from the previous chunk
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be between 0 and chunk_size")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

        # Separators for recursive splitting (in priority order)
        self.separators = ["\n\n", "\n", ". ", " ", ""]

    def split_text(self, text: str) -> List[str]:
        """
        Split text into chunks no longer than ``chunk_size`` characters.

        Args:
            text: Full document text

        Returns:
            Ordered list of non-empty chunk texts
        """
        if not text or not text.strip():
            return []

        chunks = self._recursive_split(text, self.separators)
        logger.debug(f"Split {len(text)} characters into {len(chunks)} chunks")
        return chunks

    def _recursive_split(self, text: str, separators: List[str]) -> List[str]:
        """Split on the first separator present, recursing into oversized pieces."""
        separator = separators[-1]
        remaining = []
        for index, candidate in enumerate(separators):
            if candidate == "" or candidate in text:
                separator = candidate
                remaining = separators[index + 1:]
                break

        pieces = text.split(separator) if separator else list(text)

        chunks: List[str] = []
        mergeable: List[str] = []
        for piece in pieces:
            if not piece:
                continue
            if len(piece) <= self.chunk_size:
                mergeable.append(piece)
                continue
            if mergeable:
                chunks.extend(self._merge(mergeable, separator))
                mergeable = []
            if remaining:
                chunks.extend(self._recursive_split(piece, remaining))
            else:
                chunks.append(piece)

        if mergeable:
            chunks.extend(self._merge(mergeable, separator))

        return chunks

    def _merge(self, pieces: List[str], separator: str) -> List[str]:
        """Pack small pieces into chunks, carrying ``chunk_overlap`` characters forward."""
        chunks = []
        window: List[str] = []
        total = 0

        for piece in pieces:
            extra = len(piece) + (len(separator) if window else 0)
            if window and total + extra > self.chunk_size:
                chunk = separator.join(window).strip()
                if chunk:
                    chunks.append(chunk)

                # Drop pieces from the front until only the overlap remains
                while window and (total > self.chunk_overlap or total + extra > self.chunk_size):
                    total -= len(window[0]) + (len(separator) if len(window) > 1 else 0)
                    window.pop(0)

            window.append(piece)
            total += len(piece) + (len(separator) if len(window) > 1 else 0)

        chunk = separator.join(window).strip()
        if chunk:
            chunks.append(chunk)
        return chunks
