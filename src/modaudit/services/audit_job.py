"""
One content audit: load → extract → request → record → act.

:class:`AuditJob` is the serialisable job payload. :class:`AuditPipeline`
runs a single attempt of it, and :func:`run_with_retries` applies the retry
budget and fixed backoff around the attempts.

Every step writes the audit log in its own committed transaction, so the
audited-content snapshot is durable before the request snapshot, which is
durable before the LLM is called.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from modaudit.ai.llm_client import LLMClient
from modaudit.configuration.audit_settings import AuditSettings
from modaudit.database.database import Database
from modaudit.datatypes.audit_datatypes import AuditLog, AuditStatus
from modaudit.datatypes.content_datatypes import AuditSubject, ContentType, UserProfile
from modaudit.datatypes.payload_datatypes import AuditPayload
from modaudit.exceptions import ConfigurationError, ContentNotFoundError
from modaudit.extraction.content_extractor import ContentExtractor
from modaudit.extraction.message_builder import build_messages
from modaudit.interfaces import ContentStore
from modaudit.services.result_handler import ResultHandler
from modaudit.util.logger import get_logger

logger = get_logger("audit_job")

DEFAULT_CONCLUSION = "No conclusion provided"

# Failures that will not go away by retrying
NON_RETRYABLE = (ContentNotFoundError, ConfigurationError)


class JobState(Enum):
    PENDING = "pending"
    EXTRACTING = "extracting"
    REQUESTING = "requesting"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class AuditJob:
    """Payload of one queued audit.

    ``log_id`` is set once the first attempt creates the audit log, or up
    front when an operator re-runs an existing log.
    """

    content_type: ContentType
    content_id: int | None
    user_id: int
    changes: Dict[str, Any] = field(default_factory=dict)
    log_id: int | None = None
    tries: int = 3
    backoff: float = 60.0
    attempts: int = 0
    state: JobState = JobState.PENDING

    @property
    def key(self) -> tuple[str, int | None, int]:
        return (self.content_type.value, self.content_id, self.user_id)

    @property
    def display_name(self) -> str:
        return f"Audit {self.content_type} #{self.content_id}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditPipeline:
    """Runs single attempts of audit jobs against the configured collaborators."""

    def __init__(
        self,
        settings: AuditSettings,
        database: Database,
        content_store: ContentStore,
        extractor: ContentExtractor,
        llm_client: LLMClient,
        result_handler: ResultHandler,
    ) -> None:
        self.settings = settings
        self.database = database
        self.content_store = content_store
        self.extractor = extractor
        self.llm_client = llm_client
        self.result_handler = result_handler

    async def run(self, job: AuditJob) -> AuditLog | None:
        """
        Execute one attempt of ``job``.

        Returns:
            AuditLog | None: The completed log, or None when auditing is
            skipped because the LLM client is not configured.

        Raises:
            ContentNotFoundError: The content or its owner no longer exists;
                the log is failed without consuming an attempt.
            Exception: Any other failure, after the log is marked failed and
                its retry count incremented.
        """
        logger.info("[AUDIT JOB] Starting %s (user #%s, attempt %d)", job.display_name, job.user_id, job.attempts)

        if not self.llm_client.is_configured():
            logger.warning("[AUDIT JOB] LLM client not configured, skipping %s", job.display_name)
            job.state = JobState.SKIPPED
            await self._release_rerun(job)
            return None

        log = await self._open_log(job)

        try:
            content, user = await self._load(job)

            job.state = JobState.EXTRACTING
            if log.audited_content is None:
                payload = await self.extractor.extract(job.content_type, content, job.changes)
                log.audited_content = payload.to_dict()
                await self.database.save_log(log)
            else:
                # Re-runs submit exactly what the first attempt captured
                payload = AuditPayload.from_dict(log.audited_content)

            messages = build_messages(payload, self.llm_client.system_prompt)
            log.api_request = {
                "messages": messages,
                "model": self.settings.model,
                "timestamp": _now_iso(),
            }
            await self.database.save_log(log)

            job.state = JobState.REQUESTING
            logger.debug("[AUDIT JOB] Calling LLM for log #%s", log.id)
            try:
                verdict = await self.llm_client.audit(messages)
            finally:
                exchange = self.llm_client.last_exchange
                if exchange is not None and exchange.response is not None:
                    log.api_response = exchange.response
                    log.response_format_version = exchange.response_format_version

            log.confidence = verdict.confidence
            log.actions_taken = list(verdict.actions)
            log.conclusion = verdict.conclusion or DEFAULT_CONCLUSION
            log.mark_completed()
            await self.database.save_log(log)
        except NON_RETRYABLE as exc:
            job.state = JobState.FAILED
            log.mark_failed(str(exc), count_attempt=False)
            await self.database.save_log(log)
            logger.warning("[AUDIT JOB] %s failed permanently: %s", job.display_name, exc)
            raise
        except Exception as exc:
            job.state = JobState.FAILED
            log.mark_failed(str(exc) or type(exc).__name__)
            await self.database.save_log(log)
            logger.error("[AUDIT JOB] %s failed on attempt %d: %s", job.display_name, job.attempts, exc)
            raise

        job.state = JobState.COMPLETED
        logger.info(
            "[AUDIT JOB] Log #%s completed: confidence=%.2f actions=%s",
            log.id, log.confidence, log.actions_taken,
        )

        try:
            await self.result_handler.handle(log, user, content)
        except Exception:
            # The verdict is already recorded; re-running would repeat the LLM call and actions
            logger.exception("[AUDIT JOB] Result handling failed for log #%s", log.id)
        return log

    async def on_failure(self, job: AuditJob, exc: BaseException) -> None:
        """Mark the newest unfinished log failed once the retry budget is spent."""
        log = await self.database.find_latest_unfinished_log(job.content_type, job.content_id, job.user_id)
        if log is None:
            logger.warning("[AUDIT JOB] No unfinished log to fail for %s", job.display_name)
            return
        log.mark_failed(f"All retry attempts exhausted: {exc}", count_attempt=False)
        await self.database.save_log(log)
        logger.error("[AUDIT JOB] %s exhausted %d attempt(s): %s", job.display_name, job.tries, exc)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _release_rerun(self, job: AuditJob) -> None:
        """Fail a log an operator queued for re-run when the job cannot run at all."""
        if job.log_id is None:
            return
        log = await self.database.get_log(job.log_id)
        if log is None or log.status is not AuditStatus.RETRYING:
            return
        log.mark_failed("LLM client not configured", count_attempt=False)
        await self.database.save_log(log)

    async def _open_log(self, job: AuditJob) -> AuditLog:
        if job.log_id is not None:
            log = await self.database.get_log(job.log_id)
            if log is not None:
                log.reset_for_rerun()
                await self.database.save_log(log)
                return log
            logger.warning("[AUDIT JOB] Log #%s not found, creating a new one", job.log_id)

        log = await self.database.create_log(
            AuditLog(content_type=job.content_type, content_id=job.content_id, user_id=job.user_id)
        )
        job.log_id = log.id
        return log

    async def _load(self, job: AuditJob) -> tuple[AuditSubject, UserProfile]:
        content: AuditSubject | None
        match job.content_type:
            case ContentType.USER_PROFILE:
                content = await self.content_store.load_user(job.user_id)
            case ContentType.POST | ContentType.DISCUSSION | ContentType.UPLOAD:
                content = (
                    await self.content_store.load_content(job.content_type, job.content_id)
                    if job.content_id is not None
                    else None
                )
        if content is None:
            raise ContentNotFoundError(job.content_type.value, job.content_id)

        if isinstance(content, UserProfile) and content.id == job.user_id:
            return content, content
        user = await self.content_store.load_user(job.user_id)
        if user is None:
            raise ContentNotFoundError("user", job.user_id)
        return content, user


Sleep = Callable[[float], Awaitable[Any]]


async def run_with_retries(pipeline: AuditPipeline, job: AuditJob, sleep: Sleep = asyncio.sleep) -> AuditLog | None:
    """
    Run ``job`` until it succeeds, fails permanently or spends ``job.tries``.

    Non-retryable failures end the job at once without touching the retry
    budget. After the last failed attempt :meth:`AuditPipeline.on_failure`
    records the exhaustion.
    """
    while True:
        job.attempts += 1
        try:
            return await pipeline.run(job)
        except NON_RETRYABLE:
            return None
        except Exception as exc:
            if job.attempts >= job.tries:
                await pipeline.on_failure(job, exc)
                return None
            logger.info(
                "[AUDIT JOB] Retrying %s in %.0fs (attempt %d/%d)",
                job.display_name, job.backoff, job.attempts + 1, job.tries,
            )
            await sleep(job.backoff)
