"""
Persistent sync log.

StoreLogHandler is a logging.Handler that appends formatted lines to one key
of a durable store, keeping only the newest `max_lines`. It lets a user look
at what the last syncs did after the process has exited (`schedcache log`).
"""

from __future__ import annotations

import logging
import threading
from typing import List

from schedcache.config import LOG_MAX_LINES
from schedcache.storage import MemoryStore

KEY_LOG = "log_text"


class StoreLogHandler(logging.Handler):
    def __init__(self, store: MemoryStore, max_lines: int = LOG_MAX_LINES, level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self.store = store
        self.max_lines = max_lines
        self._append_lock = threading.Lock()
        self.setFormatter(logging.Formatter("[%(asctime)s][%(name)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record).replace("\n", " | ")
            with self._append_lock:
                lines = read_log(self.store)
                lines.append(line)
                self.store.put_string(KEY_LOG, "\n".join(lines[-self.max_lines :]))
        except Exception:
            self.handleError(record)


def read_log(store: MemoryStore) -> List[str]:
    text = store.get_string(KEY_LOG) or ""
    return text.split("\n") if text else []


def clear_log(store: MemoryStore) -> None:
    store.remove(KEY_LOG)
