"""
Audit Queue Service.

A single asyncio.Queue feeds a bounded pool of persistent worker tasks.
Callers just call enqueue_audit(); retries and backoff live here.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, Mapping

from modaudit.configuration.audit_settings import AuditSettings
from modaudit.datatypes.content_datatypes import ContentType
from modaudit.services.audit_job import AuditJob, AuditPipeline, run_with_retries
from modaudit.util.logger import get_logger

logger = get_logger("audit_queue_service")


class AuditQueueService:
    """
    Queue of audit jobs processed by ``worker_count`` workers.

    Design notes
    ------------
    * Workers are started lazily on the first enqueue and run until
      ``shutdown()``. A crashed worker is replaced on the next enqueue.
    * Jobs sharing ``(content_type, content_id, user_id)`` are serialised by
      a keyed asyncio.Lock, retries and backoff included. Jobs in other
      processes are not coordinated.
    """

    def __init__(self, pipeline: AuditPipeline, settings: AuditSettings) -> None:
        self.pipeline = pipeline
        self.settings = settings
        self._queue: asyncio.Queue[AuditJob] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._locks: Dict[tuple, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._active: Dict[tuple, int] = defaultdict(int)

    # ------------------------------------------------------
    # Public API
    # ------------------------------------------------------

    async def enqueue_audit(
        self,
        content_type: ContentType | str,
        content_id: int | None,
        user_id: int,
        changes: Mapping[str, Any] | None = None,
        log_id: int | None = None,
    ) -> AuditJob:
        """Queue an audit and make sure workers are running."""
        job = AuditJob(
            content_type=ContentType.parse(content_type),
            content_id=content_id,
            user_id=user_id,
            changes=dict(changes or {}),
            log_id=log_id,
            tries=max(1, self.settings.job_tries),
            backoff=self.settings.job_backoff_seconds,
        )
        await self._queue.put(job)
        self._ensure_workers()
        logger.debug("[QUEUE SERVICE] Enqueued %s (queue size %d)", job.display_name, self._queue.qsize())
        return job

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def shutdown(self) -> None:
        """Cancel all worker tasks."""
        for task in self._workers:
            if not task.done():
                task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        logger.info("[QUEUE SERVICE] All audit workers shut down.")

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # -------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------

    def _ensure_workers(self) -> None:
        self._workers = [task for task in self._workers if not task.done()]
        while len(self._workers) < max(1, self.settings.worker_count):
            index = len(self._workers)
            self._workers.append(asyncio.create_task(self._worker(index), name=f"audit-worker-{index}"))
            logger.debug("[QUEUE SERVICE] Started audit worker %d", index)

    async def process(self, job: AuditJob) -> None:
        """Run ``job`` with retries while holding its content lock."""
        key = job.key
        self._active[key] += 1
        try:
            async with self._locks[key]:
                await run_with_retries(self.pipeline, job)
        finally:
            self._active[key] -= 1
            if self._active[key] == 0:
                del self._active[key]
                self._locks.pop(key, None)

    async def _worker(self, index: int) -> None:
        while True:
            try:
                job = await self._queue.get()
            except asyncio.CancelledError:
                logger.info("[QUEUE SERVICE] Audit worker %d cancelled", index)
                return

            try:
                await self.process(job)
            except asyncio.CancelledError:
                self._queue.task_done()
                return
            except Exception:
                logger.exception("[QUEUE SERVICE] Unexpected error processing %s", job.display_name)
            self._queue.task_done()
