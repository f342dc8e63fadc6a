"""
Console logging that coexists with the tqdm progress bar used while
submitting statements.
"""
import logging
from typing import Union

from tqdm import tqdm

LOG_FORMAT = " - %(asctime)s - %(levelname)s - %(message)s"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes through ``tqdm.write`` so log lines land above
    an active progress bar instead of breaking it.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record))
        except Exception:
            self.handleError(record)


def resolve_level(level: Union[int, str]) -> int:
    """Return a numeric logging level for an int or a name such as ``"DEBUG"``."""
    if isinstance(level, str):
        resolved = getattr(logging, level.upper(), None)
        if not isinstance(resolved, int):
            raise ValueError(f"Invalid logging level string: {level!r}")
        return resolved
    if not isinstance(level, int):
        raise ValueError(f"Invalid logging level type: {type(level).__name__}")
    return level


def setup_tqdm_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    Install a single tqdm-aware console handler on the root logger.

    Existing root handlers are removed so repeated calls never double-print.

    Raises
    ------
    ValueError
        If `level` cannot be resolved to a logging level.
    """
    level = resolve_level(level)

    logger = logging.getLogger()
    logger.setLevel(level)
    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = TqdmLoggingHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger
