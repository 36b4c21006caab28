"""Logging setup for the command line and user-facing error reporting."""

from __future__ import annotations

from collections.abc import Callable
import logging
import os
from typing import Any, Optional, TypeVar, Union

from bioreactor_opt.errors import (
    BioreactorOptError,
    CatalogError,
    ConfigError,
    OptimizationError,
    ValidationError,
)

DEFAULT_LOGGER_NAME = "bioreactor_opt"
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVEL_ENV = "BIOREACTOR_OPT_LOG_LEVEL"
# Loggers that stay at WARNING unless debugging.
QUIET_LOGGERS = ("hydra", "omegaconf")

ERROR_LABELS: dict[type, str] = {
    ConfigError: "Configuration error",
    CatalogError: "Catalog error",
    ValidationError: "Invalid input",
    OptimizationError: "Optimization failed",
}

_T = TypeVar("_T")


def resolve_log_level(level: Union[int, str, None] = None) -> int:
    """Numeric level from ``level``, the environment, or the default."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ConfigError(f"Unknown log level: {level!r}.")
    return value


def configure_logging(
    level: Union[int, str, None] = None,
    *,
    logger_name: str = DEFAULT_LOGGER_NAME,
    fmt: str = DEFAULT_LOG_FORMAT,
    force: bool = False,
) -> logging.Logger:
    resolved = resolve_log_level(level)
    logging.basicConfig(level=resolved, format=fmt, force=force)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    logger = logging.getLogger(logger_name)
    logger.setLevel(resolved)
    return logger


def _label(exc: BioreactorOptError) -> Optional[str]:
    for cls in type(exc).__mro__:
        if cls in ERROR_LABELS:
            return ERROR_LABELS[cls]
    return None


def get_user_message(exc: BaseException) -> str:
    if isinstance(exc, BioreactorOptError):
        label = _label(exc)
        return f"{label}: {exc.user_message}" if label else exc.user_message
    return f"Unexpected error: {exc}"


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    *,
    show_traceback: bool = False,
) -> str:
    user_message = get_user_message(exc)
    logger.error(user_message)
    if isinstance(exc, BioreactorOptError) and exc.context:
        logger.debug("Error context: %s", exc.context)
    if show_traceback:
        logger.error("Detailed traceback:", exc_info=exc)
    else:
        logger.debug("Detailed traceback:", exc_info=exc)
    return user_message


def run_with_error_handling(
    func: Callable[..., _T],
    *args: Any,
    logger: logging.Logger,
    show_traceback: bool = False,
    **kwargs: Any,
) -> _T:
    try:
        return func(*args, **kwargs)
    except Exception as exc:
        log_exception(logger, exc, show_traceback=show_traceback)
        raise


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_FORMAT",
    "ERROR_LABELS",
    "LOG_LEVEL_ENV",
    "configure_logging",
    "get_user_message",
    "log_exception",
    "resolve_log_level",
    "run_with_error_handling",
]
