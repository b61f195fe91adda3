"""Text chunking with overlap for RAG pipeline.

Implements whitespace-token windows so chunk sizes do not depend on the
embedding model's tokenizer.
"""
from typing import List, Optional
from dataclasses import dataclass
import structlog

from ragchat import config
from ragchat.errors import InvalidChunkConfig

logger = structlog.get_logger()


@dataclass
class TextChunk:
    """Represents a chunk of text with token position information."""

    content: str
    token_start: int
    token_end: int
    chunk_index: int


class TextChunker:
    """Whitespace-token chunker with overlap support."""

    def __init__(
        self,
        window_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
    ):
        """Initialize the text chunker.

        Args:
            window_size: Tokens per chunk (default from config)
            overlap_size: Tokens shared by consecutive chunks (default from config)

        Raises:
            InvalidChunkConfig: If the window does not advance by at least one token
        """
        self.window_size = config.CHUNK_WINDOW_SIZE if window_size is None else window_size
        self.overlap_size = config.CHUNK_OVERLAP_SIZE if overlap_size is None else overlap_size

        # Validate parameters
        if self.window_size < 1:
            raise InvalidChunkConfig(
                f"Window size must be at least 1, got {self.window_size}"
            )
        if self.overlap_size < 0:
            raise InvalidChunkConfig(
                f"Overlap must not be negative, got {self.overlap_size}"
            )
        if self.overlap_size >= self.window_size:
            raise InvalidChunkConfig(
                f"Overlap ({self.overlap_size}) must be less than "
                f"window size ({self.window_size})"
            )

        logger.debug(
            "chunker_initialized",
            window_size=self.window_size,
            overlap_size=self.overlap_size,
        )

    @property
    def stride(self) -> int:
        return self.window_size - self.overlap_size

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping token windows.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects, in document order
        """
        tokens = text.split() if text else []
        if not tokens:
            return []

        token_count = len(tokens)
        chunks = []
        start = 0

        while True:
            end = min(start + self.window_size, token_count)
            chunks.append(
                TextChunk(
                    content=" ".join(tokens[start:end]),
                    token_start=start,
                    token_end=end,
                    chunk_index=len(chunks),
                )
            )

            # Last window reached the end of the text
            if end >= token_count:
                break
            start += self.stride

        logger.debug(
            "text_chunked",
            token_count=token_count,
            chunk_count=len(chunks),
        )

        return chunks

    def split(self, text: str) -> List[str]:
        """Split text into overlapping chunks and return only their text."""
        return [chunk.content for chunk in self.chunk_text(text)]

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_tokens": 0,
                "min_chunk_tokens": 0,
                "max_chunk_tokens": 0,
            }

        chunk_sizes = [c.token_end - c.token_start for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_tokens": chunks[-1].token_end,
            "min_chunk_tokens": min(chunk_sizes),
            "max_chunk_tokens": max(chunk_sizes),
            "overlap": self.overlap_size,
        }


# Convenience function
def split_text(text: str, window_size: int, overlap_size: int) -> List[str]:
    """Split text into overlapping whitespace-token chunks.

    Args:
        text: Text to chunk
        window_size: Tokens per chunk
        overlap_size: Tokens shared by consecutive chunks

    Returns:
        List of chunk strings

    Raises:
        InvalidChunkConfig: If overlap_size >= window_size
    """
    return TextChunker(window_size=window_size, overlap_size=overlap_size).split(text)
