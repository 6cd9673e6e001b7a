"""
modaudit Standalone Check
=========================

Validates a modaudit deployment outside the host forum: loads the
environment and configuration, creates the audit database schema and sends
a test request to the configured LLM endpoint.

Hosts embed the pipeline through :func:`modaudit.runtime.build_runtime`.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory that holds ``config/``, ``data/`` and ``logs/``.

    Resolution order:
    1. MODAUDIT_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, the current working directory.
    """
    if env_home := os.getenv("MODAUDIT_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path.cwd()


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
from dotenv import load_dotenv

from modaudit.ai.llm_client import LLMClient
from modaudit.configuration.app_configuration import AppConfig
from modaudit.database.database import Database
from modaudit.util.logger import configure_logging, get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> None:
    """Load ``.env`` from the base directory; existing variables win."""
    load_dotenv(dotenv_path=BASE_DIR / ".env")


async def async_main() -> int:
    """Run the deployment checks, returning an exit code.

    Returns
    -------
    int
        0 when the database and the LLM endpoint are usable, 1 otherwise.
    """
    load_environment()
    configure_logging()
    app_config = AppConfig()
    settings = app_config.settings

    database = Database(app_config.database_path)
    if not await database.initialize():
        logger.critical("Failed to initialize the audit database at %s", app_config.database_path)
        return 1

    try:
        client = LLMClient(settings)
        if not client.is_configured():
            logger.critical("No API key or model configured; set MODAUDIT_API_KEY or audit.api_key")
            return 1

        logger.info("Testing LLM endpoint %s with model %s…", settings.api_endpoint, settings.model)
        check = await client.test_connection()
        if not check.success:
            logger.critical("LLM connection test failed: %s", check.error)
            return 1

        logger.info("LLM connection test succeeded: %s", check.verdict)
        return 0
    finally:
        await database.shutdown()


def main() -> int:
    """Entrypoint that runs the async checks and returns the process code."""
    sys.excepthook = handle_exception
    logger.info("Starting modaudit deployment check…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Check interrupted by user.")
        return 130
    except Exception as exc:
        logger.critical("An unexpected error occurred during the check: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
