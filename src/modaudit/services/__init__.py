"""
Audit orchestration services.

- **audit_job.py**: AuditJob payload, the single-attempt AuditPipeline and
  the retry loop.
- **audit_queue_service.py**: asyncio worker pool; serializes jobs on the
  same content.
- **result_handler.py**: Applies a completed verdict (approve, hide, revert,
  suspend) and records the execution log.
- **flag_service.py**: Idempotent moderation flags on posts.
- **message_notifier.py**: Violation notices to content owners.
- **audit_trigger.py**: Decides which audits and follow-up tasks a content
  save triggers.
- **audit_admin.py**: Listing, inspection, retry and manual audits.
"""
