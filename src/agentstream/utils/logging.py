"""Logging setup shared by the server and the terminal client.

Every record carries a ``run`` attribute. Server code that handles a
request logs through :func:`run_logger`, which fills it with the run and
thread ids; all other records show ``-``.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, MutableMapping

__all__ = ["RunLogAdapter", "get_log_path", "run_logger", "setup_logging"]

_DEFAULT_LOG_DIR = Path.home() / ".agentstream" / "logs"
_LOG_DIR_ENV = "AGENTSTREAM_LOG_DIR"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(run)s | %(message)s"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai", "uvicorn.access")
_CONFIGURED = False
_LOG_PATH: Path | None = None


class _RunDefaultFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run"):
            record.run = "-"
        return True


class RunLogAdapter(logging.LoggerAdapter):
    """Tag records with ``<run id>/<thread id>``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("run", self.extra["run"] if self.extra else "-")
        kwargs["extra"] = extra
        return msg, kwargs


def run_logger(logger: logging.Logger, *, run_id: str, thread_id: str | None) -> RunLogAdapter:
    return RunLogAdapter(logger, {"run": f"{run_id}/{thread_id or '-'}"})


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install a rotating file handler and, when ``console``, a stderr handler.

    Calling again is a no-op unless ``force`` is set. uvicorn is started
    without its own log config, so its records land in the same handlers.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / "agentstream.log"

    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    run_filter = _RunDefaultFilter()

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(run_filter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_noisy_loggers(level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging` ran."""

    return _LOG_PATH


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _quiet_noisy_loggers(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
