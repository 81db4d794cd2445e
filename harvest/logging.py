"""Logger setup for harvest runs.

Every module logs through the single ``harvest`` logger: round progress and
stop reasons at INFO, dropped fetches at WARNING or INFO, and per-signature
classification skips at DEBUG. Pass ``log_level="DEBUG"`` to see why each
signature was left out of the ledger.
"""

import logging

LOGGER_NAME = "harvest"


def get_logger(name: str = LOGGER_NAME, level: str = "INFO") -> logging.Logger:
    """Return a configured logger instance without duplicating handlers."""
    logger = logging.getLogger(name)
    if not getattr(logger, "_harvest_configured", False):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
        setattr(logger, "_harvest_configured", True)

    logger.setLevel(level.upper())
    return logger
