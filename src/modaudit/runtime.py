"""
Wiring of the audit pipeline.

:func:`build_runtime` assembles every component from one :class:`AppConfig`
and the host's collaborators. The host keeps the returned
:class:`AuditRuntime` for the lifetime of the process, routes its save
events through :meth:`AuditRuntime.trigger` and calls
:meth:`AuditRuntime.shutdown` on exit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from modaudit.ai.llm_client import LLMClient
from modaudit.configuration.app_configuration import AppConfig
from modaudit.configuration.audit_settings import AuditSettings
from modaudit.database.database import Database
from modaudit.extraction.content_extractor import ContentExtractor
from modaudit.interfaces import ContentStore, EventDispatcher, LocalDiskStorage, MessageSender, StorageReader
from modaudit.services.audit_admin import AuditAdminService
from modaudit.services.audit_job import AuditJob, AuditPipeline
from modaudit.services.audit_queue_service import AuditQueueService
from modaudit.services.audit_trigger import AuditTask, dispatch_tasks
from modaudit.services.flag_service import FlagLabels, FlagService
from modaudit.services.message_notifier import MessageNotifier
from modaudit.services.result_handler import ResultHandler
from modaudit.util.logger import get_logger

logger = get_logger("runtime")


@dataclass(slots=True)
class AuditRuntime:
    settings: AuditSettings
    database: Database
    content_store: ContentStore
    llm_client: LLMClient
    flag_service: FlagService
    pipeline: AuditPipeline
    queue: AuditQueueService
    admin: AuditAdminService

    async def trigger(self, tasks: Iterable[AuditTask]) -> List[AuditJob]:
        """Dispatch the tasks returned by one of the ``audit_trigger.on_*`` functions."""
        return await dispatch_tasks(tasks, self.queue, self.content_store, self.flag_service)

    async def shutdown(self) -> None:
        await self.queue.shutdown()
        await self.database.shutdown()


def build_runtime(
    app_config: AppConfig,
    content_store: ContentStore,
    database: Database | None = None,
    message_sender: MessageSender | None = None,
    events: EventDispatcher | None = None,
    storage: StorageReader | None = None,
) -> AuditRuntime:
    """
    Create every pipeline component from ``app_config``.

    The database is not opened here; call ``await runtime.database.initialize()``
    before queueing audits. Without an explicit ``storage`` the configured
    storage disks are read from the local filesystem.
    """
    settings = app_config.settings
    database = database or Database(app_config.database_path)
    storage = storage or LocalDiskStorage(settings.storage_disks)

    llm_client = LLMClient(settings)
    labels = app_config.get("flags")
    flag_service = FlagService(database, FlagLabels.from_mapping(labels if isinstance(labels, dict) else None))
    result_handler = ResultHandler(
        settings,
        database,
        content_store,
        MessageNotifier(settings, message_sender),
        flag_service,
        events,
    )
    pipeline = AuditPipeline(
        settings,
        database,
        content_store,
        ContentExtractor(settings, storage),
        llm_client,
        result_handler,
    )
    queue = AuditQueueService(pipeline, settings)

    if not llm_client.is_configured():
        logger.warning("[RUNTIME] No API key or model configured; audits will be skipped")

    return AuditRuntime(
        settings=settings,
        database=database,
        content_store=content_store,
        llm_client=llm_client,
        flag_service=flag_service,
        pipeline=pipeline,
        queue=queue,
        admin=AuditAdminService(database, queue, content_store),
    )
