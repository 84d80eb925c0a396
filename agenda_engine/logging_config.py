"""
Central logging configuration for agenda_engine.

Keeps the engine's own loggers at DEBUG when troubleshooting while holding
chatty third-party HTTP and event-loop loggers at WARNING.
"""

import logging
import os
from typing import Optional

ENGINE_MODULES = [
    "agenda_engine",
    "agenda_engine.recurrence_expander",
    "agenda_engine.conflict_detector",
    "agenda_engine.event_merger",
    "agenda_engine.availability",
    "agenda_engine.draft_manager",
    "agenda_engine.event_mutation",
    "agenda_engine.selection",
    "agenda_engine.external_events",
]

THIRD_PARTY_LEVELS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
}


def _env_truthy(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def configure_agenda_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for agenda_engine.

    Args:
        debug_mode: Whether to enable debug logging for agenda_engine modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        AGENDA_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        AGENDA_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_log_level = os.getenv("AGENDA_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif _env_truthy("AGENDA_DEBUG"):
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Handlers are installed by agenda_engine._init_logging; only levels change here
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config = dict(THIRD_PARTY_LEVELS)
    engine_level = logging.DEBUG if final_debug else logging.INFO
    for module in ENGINE_MODULES:
        logger_config[module] = engine_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for agenda_engine modules.")
    else:
        root_logger.debug("Standard logging configuration applied.")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["agenda_engine", *THIRD_PARTY_LEVELS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
