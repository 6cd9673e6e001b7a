"""
modaudit - LLM Content Audit Pipeline for Web Forums

modaudit intercepts newly created or edited forum content, submits it to an
OpenAI-compatible chat-completion endpoint and applies moderation actions
based on the model's structured verdict.

Core Components:

- **Extraction**: Normalizes posts, discussion titles, profile fields and
  uploads into text plus inline or referenced images
- **AI Client**: Sends strict JSON-schema requests and parses the verdict
- **Audit Jobs**: Queue of async workers with a retry budget; every step is
  recorded on a persistent audit log
- **Result Handling**: Confidence thresholding, hide/revert/suspend actions,
  moderation flags and violation notices
- **Administration**: Browse, retry and manually trigger audits

The host forum is reached only through the protocols in ``interfaces.py``.
"""
