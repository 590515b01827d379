"""Logging setup for scripts and embedding applications."""

import logging

from fieldcrm.config import Config

DEV_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
PROD_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level=None, verbose: bool = True) -> None:
    """Attach a stream handler to the ``fieldcrm`` logger.

    Calling it twice replaces the previous handler instead of stacking.
    """
    resolved = _coerce_level(level if level is not None else Config.LOG_LEVEL)
    pkg_logger = logging.getLogger("fieldcrm")
    pkg_logger.setLevel(resolved)
    pkg_logger.propagate = False
    for handler in pkg_logger.handlers[:]:
        pkg_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(DEV_FORMAT if verbose else PROD_FORMAT)
    )
    pkg_logger.addHandler(handler)

    if resolved > logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def _coerce_level(raw_level) -> int:
    if isinstance(raw_level, int):
        return raw_level
    if isinstance(raw_level, str):
        candidate = raw_level.strip().upper()
        value = getattr(logging, candidate, logging.INFO)
        return value if isinstance(value, int) else logging.INFO
    return logging.INFO
