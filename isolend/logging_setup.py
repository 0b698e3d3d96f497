"""Logging configuration."""
from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_NOISY_LOGGERS = ("aiohttp", "web3", "urllib3", "asyncio")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging. Unknown level names fall back to INFO."""
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger()
    root.setLevel(numeric)

    if not any(getattr(h, "_isolend", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._isolend = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
