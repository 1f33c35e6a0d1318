"""Logging setup for a ProtoPilot process, driven by :class:`Settings`.

The log file lives under the state directory (``<state_dir>/logs``) unless
``PROTOPILOT_LOG_DIR`` points elsewhere. The configured API token is masked
in every rendered record so request debugging never leaks it.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Iterable

from ..services.settings import Settings, default_state_dir, redact_secret

__all__ = ["LOG_DIR_ENV", "SecretRedactingFilter", "get_log_path", "resolve_log_dir", "setup_logging"]

LOG_DIR_ENV = "PROTOPILOT_LOG_DIR"
LOG_FILE_NAME = "protopilot.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "asyncio")
_CONFIGURED = False
_LOG_PATH: Path | None = None


class SecretRedactingFilter(logging.Filter):
    """Replaces known secrets in a record's message with their redacted form."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self._masks = {secret: redact_secret(secret) for secret in secrets if secret and secret.strip()}

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._masks:
            return True
        message = record.getMessage()
        masked = message
        for secret, mask in self._masks.items():
            masked = masked.replace(secret, mask)
        if masked != message:
            record.msg, record.args = masked, None
        return True


def resolve_log_dir(settings: Settings | None = None) -> Path:
    override = os.environ.get(LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    state_dir = settings.resolved_state_dir() if settings is not None else default_state_dir()
    return state_dir / "logs"


def setup_logging(
    settings: Settings | None = None,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install rotating-file (and optionally console) handlers on the root logger.

    ``settings.debug_logging`` selects DEBUG over INFO. Calling again without
    ``force`` keeps the first configuration and returns its log path.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    level = logging.DEBUG if settings is not None and settings.debug_logging else logging.INFO
    target_dir = Path(log_dir).expanduser() if log_dir else resolve_log_dir(settings)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILE_NAME

    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    redactor = SecretRedactingFilter([settings.api_token] if settings is not None else [])
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    # Transport libraries log every request at DEBUG.
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    return _LOG_PATH
