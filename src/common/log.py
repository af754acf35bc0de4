from __future__ import annotations

import logging
import sys
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: Optional[Union[str, int]] = None) -> None:
    """Attach a single stderr handler to the root logger.

    Lambda pre-installs a root handler; in that case only the level changes.
    """
    resolved = level if level is not None else "INFO"
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    root = logging.getLogger()
    root.setLevel(resolved)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    # boto's wire logging is noisy at DEBUG
    logging.getLogger("botocore").setLevel(max(resolved, logging.INFO))
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))
