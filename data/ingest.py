"""
Document ingestion: PDF bytes -> text -> chunks -> vector collection

Runs as background work. Every outcome, including failures, is returned
as an IngestResult; nothing is raised past ``ingest``.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

import psutil
from langchain_core.documents import Document

from config.settings import Settings
from data.loader import ExtractionError, PDFLoader
from data.processor import DocumentProcessor
from models.schemas import IngestResult, IngestStatus

logger = logging.getLogger(__name__)

_PDF_MIME = re.compile("pdf", re.IGNORECASE)


def process_memory_mb() -> float:
    """Resident memory of this process in MB"""
    return psutil.Process().memory_info().rss / 1024 / 1024


class IngestionPipeline:
    """Extracts, chunks and upserts one uploaded document"""

    def __init__(
        self,
        gateway,
        settings: Settings,
        loader: Optional[PDFLoader] = None,
        memory_probe: Callable[[], float] = process_memory_mb,
    ):
        self.gateway = gateway
        self.settings = settings
        self.loader = loader or PDFLoader()
        self.memory_probe = memory_probe

    def ingest(
        self,
        collection_id: str,
        file_bytes: bytes,
        filename: str,
        metadata: Optional[Dict] = None,
        mime_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> IngestResult:
        try:
            return self._run(collection_id, file_bytes, filename, metadata or {}, mime_type, size_bytes)
        except Exception as e:
            logger.exception(f"✗ PDF ingest failed for {filename}")
            return IngestResult(
                segments=0,
                status=IngestStatus.FAILED,
                error="PDF processing failed",
                details=str(e),
                collection_id=collection_id,
            )

    def _run(
        self,
        collection_id: str,
        file_bytes: bytes,
        filename: str,
        metadata: Dict,
        mime_type: Optional[str],
        size_bytes: Optional[int],
    ) -> IngestResult:
        self._stage(filename, IngestStatus.RECEIVED)

        # Admission control
        if not mime_type or not _PDF_MIME.search(mime_type):
            logger.warning(f"Skipping ingestion for non-PDF file: {filename}")
            return self._stop(collection_id, IngestStatus.SKIPPED, "Not a PDF file")

        max_bytes = self.settings.ingest_max_bytes
        size = size_bytes if size_bytes is not None else len(file_bytes or b"")
        logger.info(
            f"Processing PDF: {filename}, Size: {round(size / 1024)}KB, "
            f"Max allowed: {round(max_bytes / 1024 / 1024)}MB"
        )
        if size > max_bytes:
            logger.warning(f"Skipping ingestion for large PDF ({round(size / 1024 / 1024)}MB): {filename}")
            return self._stop(collection_id, IngestStatus.SKIPPED, "File too large")

        if not file_bytes:
            logger.warning(f"Empty upload: {filename}")
            return self._stop(collection_id, IngestStatus.FAILED, "Empty file", "Zero-byte upload")

        initial_memory = self.memory_probe()
        if initial_memory > self.settings.ingest_heap_guard_mb:
            logger.warning(f"High initial memory usage ({round(initial_memory)}MB), PDF processing may be limited")

        # Extraction
        try:
            text = self.loader.extract_text(file_bytes, max_pages=self.settings.ingest_max_pages)
        except ExtractionError as e:
            logger.error(f"✗ Extraction failed ({e.kind.value}) for {filename}: {e.details}")
            return self._stop(collection_id, IngestStatus.FAILED, e.guidance, e.details)
        self._stage(filename, IngestStatus.TEXT_EXTRACTED)

        # Chunking
        processor = DocumentProcessor(
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
            max_chunks=self.settings.ingest_max_chunks,
            min_chunk_chars=self.settings.min_chunk_chars,
            memory_probe=self.memory_probe,
            memory_ceiling_mb=self.settings.chunk_memory_ceiling_mb,
        )
        chunks = processor.split_text(text, source=collection_id)
        del text
        self._stage(filename, IngestStatus.CHUNKED)

        if not chunks:
            return self._stop(
                collection_id,
                IngestStatus.FAILED,
                "No readable text content found in PDF.",
                "No chunk met the minimum content length",
            )

        # Upsert
        self._stage(filename, IngestStatus.BATCH_UPSERTING)
        successful, failed = self._upsert_batches(collection_id, chunks, filename, metadata)

        batch_size = self.settings.ingest_batch_size
        segments = successful * batch_size
        final_memory = self.memory_probe()
        self._stage(filename, IngestStatus.DONE)
        logger.info(f"✓ Ingested {segments} segments from {filename} into collection {collection_id}")

        return IngestResult(
            segments=segments,
            status=IngestStatus.DONE,
            collection_id=collection_id,
            total_chunks=len(chunks),
            successful_batches=successful,
            failed_batches=failed,
            memory_usage={"initial": round(initial_memory), "final": round(final_memory)},
        )

    def _upsert_batches(self, collection_id: str, chunks: List[Document], filename: str, metadata: Dict):
        batch_size = self.settings.ingest_batch_size
        total_batches = (len(chunks) + batch_size - 1) // batch_size
        successful = 0
        failed = 0

        for start in range(0, len(chunks), batch_size):
            batch_number = start // batch_size + 1

            used = self.memory_probe()
            if used > self.settings.batch_memory_ceiling_mb:
                logger.warning(
                    f"Memory usage too high ({round(used)}MB), "
                    f"abandoning {total_batches - batch_number + 1} remaining batches"
                )
                break

            batch = [
                Document(
                    id=f"{chunk.id}_{start + offset}",
                    page_content=chunk.page_content,
                    metadata={
                        "filename": filename,
                        **metadata,
                        "idx": start + offset,
                        "totalChunks": len(chunks),
                        "batchNumber": batch_number,
                    },
                )
                for offset, chunk in enumerate(chunks[start:start + batch_size])
            ]

            try:
                self.gateway.upsert_documents(collection_id, batch)
            except Exception as e:
                failed += 1
                logger.error(f"✗ Failed batch {batch_number}/{total_batches} for {filename}: {e}")
                continue

            successful += 1
            logger.info(f"✓ Batch {batch_number}/{total_batches} ({len(batch)} documents) for {filename}")

        return successful, failed

    def _stage(self, filename: str, stage: IngestStatus):
        logger.info(f"[{filename}] {stage.value}")

    def _stop(self, collection_id: str, status: IngestStatus, error: str, details: Optional[str] = None):
        logger.info(f"Ingestion ended: {status.value} ({error})")
        return IngestResult(
            segments=0,
            status=status,
            error=error,
            details=details,
            collection_id=collection_id,
        )
