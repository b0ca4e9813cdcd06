"""Logging utilities for sdksync commands."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "sdksync"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the sdksync hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the sdksync logger with console output and optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI is invoked repeatedly.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("[sdksync] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


class RevisionLogger(logging.LoggerAdapter):
    """Prefix records with the short id of the upstream revision being replayed."""

    def process(self, msg, kwargs):  # type: ignore[no-untyped-def]
        revision = str(self.extra.get("revision", "")) if self.extra else ""
        return f"[{revision[:10]}] {msg}", kwargs


def revision_logger(logger: logging.Logger, revision: str) -> RevisionLogger:
    """Return an adapter tagging every record from ``logger`` with ``revision``."""
    return RevisionLogger(logger, {"revision": revision})


__all__ = ["RevisionLogger", "configure_logging", "get_logger", "revision_logger"]
