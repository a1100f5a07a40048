import logging
import re
from typing import Callable, Iterator, List, Optional, Tuple

from langchain_core.documents import Document

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace to single spaces and trim"""
    return _WHITESPACE.sub(" ", text or "").strip()


def sliding_windows(length: int, chunk_size: int, overlap: int) -> Iterator[Tuple[int, int]]:
    """
    Yield (start, end) windows over a string of ``length`` characters.

    Each window after the first starts ``overlap`` characters before the end
    of the previous one. The last window ends exactly at ``length``.
    """
    if chunk_size <= 0:
        raise ValueError(f"Invalid chunk size: {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(f"Overlap must be in [0, chunk_size) (overlap={overlap}, size={chunk_size})")

    start = 0
    while start < length:
        end = min(start + chunk_size, length)
        yield start, end
        if end >= length:
            break
        start = max(end - overlap, 0)


class DocumentProcessor:
    """Splits extracted document text into overlapping fixed-size chunks"""

    def __init__(
        self,
        chunk_size: int = 1200,
        chunk_overlap: int = 150,
        max_chunks: int = 300,
        min_chunk_chars: int = 50,
        memory_probe: Optional[Callable[[], float]] = None,
        memory_ceiling_mb: Optional[float] = None,
        memory_check_every: int = 100,
    ):
        if max_chunks <= 0:
            raise ValueError(f"Invalid max chunks: {max_chunks}")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_chunks = max_chunks
        self.min_chunk_chars = min_chunk_chars
        self.memory_probe = memory_probe
        self.memory_ceiling_mb = memory_ceiling_mb
        self.memory_check_every = memory_check_every

    def split_text(self, text: str, source: Optional[str] = None) -> List[Document]:
        """
        Chunk ``text`` into at most ``max_chunks`` documents.

        Windows shorter than ``min_chunk_chars`` after trimming are dropped.
        Reaching ``max_chunks`` truncates silently.
        """
        cleaned = normalize_whitespace(text)
        if not cleaned:
            logger.warning("Chunking skipped: empty text")
            return []

        pieces: List[str] = []
        for start, end in sliding_windows(len(cleaned), self.chunk_size, self.chunk_overlap):
            if len(pieces) >= self.max_chunks:
                logger.warning(f"Chunk cap reached ({self.max_chunks}), truncating remaining text")
                break

            piece = cleaned[start:end]
            if len(piece.strip()) < self.min_chunk_chars:
                continue
            pieces.append(piece)

            if self._memory_exceeded(len(pieces)):
                break

        chunks = [
            Document(
                id=f"p_{position}",
                page_content=piece,
                metadata={
                    "source": source or "",
                    "position": position,
                    "total": len(pieces),
                },
            )
            for position, piece in enumerate(pieces)
        ]

        logger.info(
            f"Created {len(chunks)} chunks from {len(cleaned)} characters "
            f"({round(len(cleaned) / 1024)}KB)"
        )
        return chunks

    def _memory_exceeded(self, produced: int) -> bool:
        if self.memory_probe is None or self.memory_ceiling_mb is None:
            return False
        if produced % self.memory_check_every != 0:
            return False
        used = self.memory_probe()
        if used > self.memory_ceiling_mb:
            logger.warning(f"Memory usage high ({round(used)}MB), limiting chunks to {produced}")
            return True
        return False

    def get_chunk_statistics(self, chunks: List[Document]) -> dict:
        """Get statistics about chunks"""
        if not chunks:
            return {}

        chunk_lengths = [len(chunk.page_content) for chunk in chunks]

        return {
            "total_chunks": len(chunks),
            "avg_chunk_length": sum(chunk_lengths) / len(chunk_lengths),
            "min_chunk_length": min(chunk_lengths),
            "max_chunk_length": max(chunk_lengths),
        }


def chunk_text(
    text: str,
    chunk_size: int = 1200,
    overlap: int = 150,
    max_chunks: int = 300,
    min_chunk_chars: int = 50,
) -> List[Document]:
    """Pure chunking over ``text`` with the given limits"""
    processor = DocumentProcessor(
        chunk_size=chunk_size,
        chunk_overlap=overlap,
        max_chunks=max_chunks,
        min_chunk_chars=min_chunk_chars,
    )
    return processor.split_text(text)
