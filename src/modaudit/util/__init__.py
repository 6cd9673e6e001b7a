"""
Utility helpers for modaudit.

- **logger.py**: Centralized logging configuration with colored console output
  through prompt_toolkit, rotating per-session log files, and suppression of
  noisy libraries (openai, httpx, aiosqlite, PIL). Provides the global
  exception hook used by the entry point.
"""
