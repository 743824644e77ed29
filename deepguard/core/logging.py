# deepguard/core/logging.py
import sys

from loguru import logger

_sink_id = None


def configure_logging(level: str = "INFO") -> None:
    """
    Replace loguru's default handler with a single stderr sink.
    Safe to call more than once; the previous sink is swapped out.
    """
    global _sink_id

    if _sink_id is None:
        # Always remove the default handler
        logger.remove()
    else:
        logger.remove(_sink_id)

    _sink_id = logger.add(sys.stderr, level=level.upper(), colorize=True)
