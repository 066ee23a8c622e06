"""
mockscribe.logging - Package logger and CLI logging setup.

Library code logs through ``logger``; only the CLI configures handlers.
"""

from __future__ import annotations

import logging

logger = logging.getLogger("mockscribe")

# Log every request/model step at INFO; hidden unless --verbose.
THIRD_PARTY_LOGGERS = ("httpx", "httpcore", "faster_whisper")


def configure_logging(verbose: bool = False) -> None:
    """Configure logging for a mockscribe command.

    Args:
        verbose: If True, DEBUG for mockscribe and INFO for the HTTP and
            model libraries; otherwise WARNING everywhere
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )
    logger.setLevel(level)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)
