"""
Shared helpers.
"""
import logging
import sys
from datetime import datetime, timezone

from entitlements.core import config


_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root = logging.getLogger("entitlements")
    root.addHandler(handler)
    root.setLevel(config.LOG_LEVEL)
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the project namespace.

    Usage:
        log = get_logger(__name__)
        log.info("Activated %s", module_code)
    """
    _configure_root()
    if not name.startswith("entitlements"):
        name = f"entitlements.{name}"
    return logging.getLogger(name)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)
