from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

_configured = False

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "chromadb", "sentence_transformers", "transformers")


def configure_logging(level: str = "INFO", use_rich: bool = True, force: bool = False) -> None:
    """Install a single root handler for scripts and notebooks.

    Library modules only create loggers via ``logging.getLogger(__name__)``;
    handlers are left to the application, which calls this once at startup.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...).
        use_rich: Render through Rich instead of a plain stream handler.
        force: Reconfigure even if logging was already set up.
    """
    global _configured

    if _configured and not force:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if use_rich:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"))
    handler.setLevel(numeric_level)
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
