"""Logging helpers."""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure application logging once for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


def get_logger() -> logging.Logger:
    """Return the module logger used across the package."""
    return logging.getLogger("contact_discovery")


class CorrelationAdapter(logging.LoggerAdapter):
    """Prefix every message with the correlation id of one search."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['correlation_id']}] {msg}", kwargs


def bind_correlation(logger: logging.Logger, correlation_id: str) -> CorrelationAdapter:
    """Return a logger adapter that threads a correlation id through messages."""
    return CorrelationAdapter(logger, {"correlation_id": correlation_id})
