"""
Upload intake: register a collection for new study material and hand the
ingestion to a background executor.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from pydantic import BaseModel

from config.settings import Settings
from data.ingest import IngestionPipeline, process_memory_mb
from models.schemas import IngestResult, UploadJob

logger = logging.getLogger(__name__)


class IntakeReceipt(BaseModel):
    """What the upload handler gets back immediately"""
    collection_id: str
    filename: str
    ingestion_scheduled: bool
    reason: Optional[str] = None


class MaterialIntake:
    """
    Entry point for uploaded material.

    Ingestion runs on a single background worker so batches from different
    uploads never interleave; the caller is never told how it went.
    """

    def __init__(
        self,
        gateway,
        pipeline: IngestionPipeline,
        settings: Settings,
        memory_probe: Callable[[], float] = process_memory_mb,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.gateway = gateway
        self.pipeline = pipeline
        self.settings = settings
        self.memory_probe = memory_probe
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingest")
        self._pending = []

    def handle_upload(self, job: UploadJob) -> IntakeReceipt:
        # Creation errors propagate
        collection_id = self.gateway.create_collection(job.filename)

        if not self.settings.ingest_enabled:
            logger.info(f"Ingestion disabled, stored {job.filename} without indexing")
            return IntakeReceipt(
                collection_id=collection_id,
                filename=job.filename,
                ingestion_scheduled=False,
                reason="Ingestion disabled",
            )

        used = self.memory_probe()
        if used >= self.settings.ingest_heap_guard_mb:
            logger.warning(
                f"Skipping PDF ingestion due to high memory usage: "
                f"{round(used)}MB >= {round(self.settings.ingest_heap_guard_mb)}MB"
            )
            return IntakeReceipt(
                collection_id=collection_id,
                filename=job.filename,
                ingestion_scheduled=False,
                reason="Memory guard",
            )

        try:
            verified = self.gateway.exists(collection_id)
        except Exception as e:
            logger.error(f"Failed to verify collection {collection_id}: {e}")
            verified = None
        if not verified:
            logger.error(f"Collection {collection_id} does not exist. Cannot ingest {job.filename}")
            return IntakeReceipt(
                collection_id=collection_id,
                filename=job.filename,
                ingestion_scheduled=False,
                reason="Collection not verified",
            )

        self.submit(collection_id, job)
        return IntakeReceipt(collection_id=collection_id, filename=job.filename, ingestion_scheduled=True)

    def submit(self, collection_id: str, job: UploadJob) -> Future:
        """Queue ingestion of ``job`` into ``collection_id``"""
        future = self.executor.submit(
            self.pipeline.ingest,
            collection_id,
            job.file_bytes,
            job.filename,
            job.ingest_metadata(),
            job.mime_type,
            job.size_bytes,
        )
        future.add_done_callback(lambda done: self._log_outcome(job.filename, done))
        self._pending = [f for f in self._pending if not f.done()]
        self._pending.append(future)
        logger.info(f"Queued ingestion of {job.filename} into {collection_id}")
        return future

    def _log_outcome(self, filename: str, future: Future):
        if future.cancelled():
            logger.warning(f"Ingestion of {filename} was cancelled")
            return

        error = future.exception()
        if error is not None:
            logger.error(f"✗ PDF ingestion error for {filename}: {error}")
            return

        result: IngestResult = future.result()
        if result.error:
            logger.error(f"✗ PDF ingestion failed for {filename}: {result.error}")
            if result.details:
                logger.error(f"  Details: {result.details}")
        else:
            logger.info(f"✓ PDF ingestion successful for {filename}: {result.segments} segments processed")

    def wait(self):
        """Block until every queued ingestion has finished"""
        pending, self._pending = self._pending, []
        for future in pending:
            future.exception()

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)
