"""Logging setup for the codecontext package.

Library modules only call ``logging.getLogger(__name__)``; the CLI and the
server call :func:`setup_logging` once to attach a rich handler.
"""

from __future__ import annotations

import logging
import os

from rich.logging import RichHandler

_ROOT_LOGGER = "codecontext"
_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Attach a RichHandler to the ``codecontext`` logger.

    ``CODECONTEXT_LOG_LEVEL`` overrides *level* when set.
    """
    global _configured
    if _configured:
        return

    log_level = getattr(logging, level.upper(), logging.INFO)
    env_level = os.getenv("CODECONTEXT_LOG_LEVEL")
    if env_level:
        log_level = getattr(logging, env_level.upper(), log_level)

    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(log_level)
    root.handlers.clear()

    handler = RichHandler(rich_tracebacks=False, show_path=False, markup=False)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)
    root.propagate = False

    _configured = True
