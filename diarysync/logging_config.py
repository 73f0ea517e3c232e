"""Logging setup and structured log helpers for the diary sync backend."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the ``diarysync`` logger tree.

    Safe to call more than once; later calls only adjust the level.
    """
    global _configured
    root = logging.getLogger("diarysync")
    root.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``diarysync`` namespace."""
    if not name.startswith("diarysync"):
        name = f"diarysync.{name}"
    return logging.getLogger(name)


_sync_logger = get_logger("diarysync.sync.ops")
_auth_logger = get_logger("diarysync.auth.events")


def log_sync_operation(
    owner_id: str,
    operation: str,
    diary_id: str | None,
    success: bool,
    detail: str | None = None,
) -> None:
    """Log one sync decision in a single greppable line."""
    status = "OK" if success else "FAIL"
    message = f"SYNC {status} | {owner_id} | {operation} | {diary_id}"
    if detail:
        message += f" | {detail}"
    if success:
        _sync_logger.info(message)
    else:
        _sync_logger.warning(message)


def log_auth_event(
    event: str,
    owner_id: str | None,
    success: bool,
    detail: str | None = None,
) -> None:
    """Log an authentication event."""
    status = "OK" if success else "FAIL"
    message = f"AUTH {status} | {event} | {owner_id or '-'}"
    if detail:
        message += f" | {detail}"
    if success:
        _auth_logger.info(message)
    else:
        _auth_logger.warning(message)
