"""
Logging helpers for sitepull.

All loggers live under the ``sitepull`` namespace. ``setup_logging`` installs a
rich console handler once; later calls only change the level.
"""

from __future__ import annotations

import logging

from rich.logging import RichHandler

ROOT_LOGGER = "sitepull"
MASK = "***MASKED***"


class KeyMaskingFilter(logging.Filter):
    """Redact the access key from formatted log messages."""

    def __init__(self, secret: str) -> None:
        super().__init__()
        self._secret = secret

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secret:
            message = record.getMessage()
            if self._secret in message:
                record.msg = message.replace(self._secret, MASK)
                record.args = None
        return True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the sitepull namespace."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: int | str = logging.INFO,
    secret: str | None = None,
    rich: bool = True,
) -> logging.Logger:
    """
    Configure the sitepull root logger.

    Args:
        level: Log level for the sitepull namespace.
        secret: Access key to redact from every record.
        rich: Use RichHandler (True) or a plain stream handler.

    Returns:
        The configured root logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    if not any(getattr(h, "_sitepull", False) for h in logger.handlers):
        if rich:
            handler: logging.Handler = RichHandler(
                show_path=False,
                rich_tracebacks=True,
                markup=False,
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[sitepull] %(message)s"))
        handler._sitepull = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.propagate = False

    if secret:
        # Handler-level so records from child loggers are masked too
        for handler in logger.handlers:
            for existing in list(handler.filters):
                if isinstance(existing, KeyMaskingFilter):
                    handler.removeFilter(existing)
            handler.addFilter(KeyMaskingFilter(secret))

    return logger


__all__ = ["get_logger", "setup_logging", "KeyMaskingFilter"]
