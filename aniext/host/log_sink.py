"""
Extension Logging - Per-extension logging sink.

Messages written by extensions go to a dedicated ``aniext.ext.<id>``
logger so they can be filtered and leveled independently from the
runtime's own logs. The most recent records are also kept in memory for
diagnostics.
"""

import logging
from collections import deque
from typing import Any, Deque, List, Tuple


class ExtensionLogger:
    """The ``log`` object handed to extensions."""

    def __init__(self, extension_id: str, history: int = 50):
        self.extension_id = extension_id
        self._logger = logging.getLogger(f"aniext.ext.{extension_id}")
        self._recent: Deque[Tuple[str, str]] = deque(maxlen=history)

    def _emit(self, level: int, message: Any) -> None:
        text = str(message)
        self._recent.append((logging.getLevelName(level), text))
        self._logger.log(level, text)

    def debug(self, message: Any) -> None:
        self._emit(logging.DEBUG, message)

    def info(self, message: Any) -> None:
        self._emit(logging.INFO, message)

    def warning(self, message: Any) -> None:
        self._emit(logging.WARNING, message)

    # Script authors coming from JS reach for warn()
    warn = warning

    def error(self, message: Any) -> None:
        self._emit(logging.ERROR, message)

    def recent(self) -> List[Tuple[str, str]]:
        return list(self._recent)


__all__ = ["ExtensionLogger"]
