"""
Logging for modaudit.

Every component logs through a child of the ``modaudit`` logger
(``get_logger("audit_job")`` is ``modaudit.audit_job``). The console and
file handlers hang off that package logger once, so a host can raise the
console level for the whole pipeline with :func:`configure_logging`.

Environment:
    MODAUDIT_LOG_DIR: directory for ``modaudit-<date>.log`` files (``./logs``).
    MODAUDIT_LOG_LEVEL: console level name (``INFO``); the file always gets DEBUG.
"""

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from datetime import date
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# -------------------- Configuration --------------------
ROOT_LOGGER_NAME = "modaudit"

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

DEFAULT_CONSOLE_LEVEL = logging.INFO
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

LOG_COLORS = {
    "DEBUG": "\033[36m",      # Cyan
    "INFO": "\033[32m",       # Green
    "WARNING": "\033[33m",    # Yellow
    "ERROR": "\033[31m",      # Red
    "CRITICAL": "\033[38;5;88m",  # Dark Red (ANSI 256-color)
}
RESET_COLOR = "\033[0m"

# HTTP, SQLite and imaging chatter only surfaces at ERROR
NOISY_LOGGERS = [
    "openai", "openai._base_client", "httpx", "httpcore",
    "urllib3", "aiosqlite", "PIL", "asyncio",
]


# -------------------- Formatters --------------------
class ColorFormatter(logging.Formatter):
    """Wraps each formatted record in the ANSI color of its level."""

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """
    Console handler that prints through prompt_toolkit.

    ``print_formatted_text`` keeps ANSI sequences intact on every platform and
    does not garble an interactive prompt running in the same terminal.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """Return True when stderr is attached to a TTY."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


# -------------------- Levels and paths --------------------

def resolve_level(level: int | str | None) -> int:
    """
    Turn a level name or number into a logging level.

    None reads ``MODAUDIT_LOG_LEVEL``. Unknown names fall back to INFO.
    """
    if level is None:
        level = os.getenv("MODAUDIT_LOG_LEVEL", "")
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(level.strip().upper(), DEFAULT_CONSOLE_LEVEL)


def log_file_path(log_dir: Path | None = None, today: date | None = None) -> Path:
    """One file per day; restarts on the same day append to it."""
    directory = log_dir or Path(os.getenv("MODAUDIT_LOG_DIR", "./logs"))
    day = today or date.today()
    return directory.resolve() / f"modaudit-{day.isoformat()}.log"


# -------------------- Setup --------------------

def _console_handler(root: logging.Logger) -> PromptToolkitHandler | None:
    return next((h for h in root.handlers if isinstance(h, PromptToolkitHandler)), None)


def quiet_libraries() -> None:
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
        noisy.handlers = []


def configure_logging(console_level: int | str | None = None, log_dir: Path | None = None) -> logging.Logger:
    """
    Attach the console and rotating file handlers to the ``modaudit`` logger.

    Safe to call repeatedly: handlers are added once and later calls only
    re-apply the console level, so a host can call this after loading its
    environment.

    Args:
        console_level: Level name or number; None reads ``MODAUDIT_LOG_LEVEL``.
        log_dir: Directory for the log file; only used on the first call.

    Returns:
        logging.Logger: The package logger.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    level = resolve_level(console_level)

    console = _console_handler(root)
    if console is not None:
        console.setLevel(level)
        return root

    root.setLevel(logging.DEBUG)
    root.propagate = False

    formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else None
    console = PromptToolkitHandler(formatter=formatter or logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    console.setLevel(level)
    root.addHandler(console)

    path = log_file_path(log_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(file_handler)

    quiet_libraries()
    return root


def get_logger(component: str) -> logging.Logger:
    """Return the ``modaudit.<component>`` logger, configuring output on first use."""
    configure_logging_once()
    if component == ROOT_LOGGER_NAME or component.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(component)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


def configure_logging_once() -> None:
    if not logging.getLogger(ROOT_LOGGER_NAME).handlers:
        configure_logging()


# -------------------- Exception Handling --------------------
def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    ``sys.excepthook`` that records uncaught exceptions in the modaudit log.

    KeyboardInterrupt goes to the default hook so Ctrl+C still stops the
    process normally.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.getLogger(ROOT_LOGGER_NAME).critical(
        "Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback)
    )
