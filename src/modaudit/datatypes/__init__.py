"""
Core data structures for the audit pipeline.

- **content_datatypes.py**: ContentType, ProfileField, the host entities
  (UserProfile, Post, Discussion, UploadedFile) and image references
  (InlineImage, RemoteImage, LocalFileImage).
- **payload_datatypes.py**: AuditPayload and PayloadImage, the normalized
  LLM-ready snapshot of audited content.
- **action_datatypes.py**: ActionType, Verdict, ActionOutcome and
  ExecutionLog describing what was decided and what was done.
- **audit_datatypes.py**: AuditLog and its lifecycle states.
"""
