"""
Centralized logger factory.

Every module obtains its logger through `get_logger`, optionally with a bracketed
prefix that identifies the subsystem in log lines:

```python
from brandlink.managers.logging_manager import get_logger

logger = get_logger(prefix="[SecurityService]")
logger.info("Session %s created for %s", session_id, user_id)
```

The root handler is configured once per process, using `LOG_LEVEL` from settings.
"""

import logging
import sys
from typing import Any, MutableMapping, Tuple

from brandlink.config import settings

DEFAULT_LOGGER_NAME = "BrandLink"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_configured = False


class PrefixAdapter(logging.LoggerAdapter):
    """Prepends a fixed prefix to every message."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        prefix = self.extra.get("prefix") if self.extra else ""
        if prefix:
            return f"{prefix} {msg}", kwargs
        return msg, kwargs


def _configure_root(level: str) -> None:
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    base = logging.getLogger(DEFAULT_LOGGER_NAME)
    base.setLevel(getattr(logging, level.upper(), logging.INFO))
    base.addHandler(handler)
    base.propagate = False
    _configured = True


def get_logger(name: str = DEFAULT_LOGGER_NAME, prefix: str = "") -> logging.LoggerAdapter:
    """
    Return a logger for `name` that prefixes messages with `prefix`.

    Args:
        name: Logger name. Names outside the application namespace are nested under it.
        prefix: Optional bracketed tag, e.g. `"[DATABASE]"`.

    Returns:
        logging.LoggerAdapter: Adapter supporting the standard logging API.
    """
    _configure_root(settings.LOG_LEVEL)
    if name != DEFAULT_LOGGER_NAME and not name.startswith(f"{DEFAULT_LOGGER_NAME}."):
        name = f"{DEFAULT_LOGGER_NAME}.{name}"
    return PrefixAdapter(logging.getLogger(name), {"prefix": prefix})
