"""Logging helpers.

``setup_logging`` hands back a :class:`PprintLogger`, a thin wrapper around a
stdlib logger that pretty-prints structured messages. Pydantic models (documents,
spans, run results) are rendered as indented JSON so a failing document's state
can be read straight out of the log.
"""

import inspect
import logging
from pprint import pformat
from typing import Any

from pydantic import BaseModel

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class PprintLogger:
    """Logger wrapper that formats non-string messages before emitting them."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _format_message(self, msg: Any, pprint: bool = True) -> str:
        if isinstance(msg, str) or not pprint:
            return str(msg)
        if isinstance(msg, BaseModel):
            return msg.model_dump_json(indent=2)
        return pformat(msg, width=120)

    def _log(self, level: int, msg: Any, args: tuple, pprint: bool, kwargs: dict) -> None:
        if not self._logger.isEnabledFor(level):
            return
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, self._format_message(msg, pprint=pprint), *args, **kwargs)

    def debug(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.DEBUG, msg, args, pprint, kwargs)

    def info(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.INFO, msg, args, pprint, kwargs)

    def warning(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.WARNING, msg, args, pprint, kwargs)

    def error(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        self._log(logging.ERROR, msg, args, pprint, kwargs)

    def exception(self, msg: Any, *args, pprint: bool = True, **kwargs) -> None:
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, pprint, kwargs)

    def __getattr__(self, name: str) -> Any:
        """Delegate everything else (setLevel, handlers, ...) to the wrapped logger."""
        return getattr(self._logger, name)


def setup_logging(name: str | None = None, level: int = logging.INFO) -> PprintLogger:
    """Configure and return a PprintLogger.

    When ``name`` is omitted the caller's module name is used, so
    ``logger = setup_logging()`` at module level yields ``clinspan.runner`` and
    so on. A stream handler is attached once per logger.
    """
    if name is None:
        frame = inspect.currentframe().f_back  # type: ignore[union-attr]
        name = frame.f_globals.get("__name__", "clinspan")  # type: ignore[union-attr]
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return PprintLogger(logger)


def set_level(level: int) -> None:
    """Set the level of every clinspan logger created so far."""
    for name, existing in logging.root.manager.loggerDict.items():
        if name.startswith("clinspan") and isinstance(existing, logging.Logger):
            existing.setLevel(level)
            for handler in existing.handlers:
                handler.setLevel(level)
