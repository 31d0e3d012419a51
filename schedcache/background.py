"""
Background syncs on a bounded worker pool.

The UI should not wait for the network. It hands months to a
BackgroundSyncer, keeps reading from the fast query paths, and later
collects the SyncResults. Nothing is fire-and-forget: every finished task
(including one that crashed) ends up in `results` or `failures`.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional, Tuple

from schedcache.config import SYNC_WORKERS
from schedcache.model import month_label
from schedcache.query import QueryService
from schedcache.sync import SyncOutcome, SyncResult

_LOGGER = logging.getLogger(__name__)


class BackgroundSyncer:
    def __init__(self, service: QueryService, workers: int = SYNC_WORKERS) -> None:
        self.service = service
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="schedcache-sync")
        self._lock = threading.Lock()
        # month -> future still running; a second request for the same month joins it
        self._pending: Dict[Tuple[int, int], Future] = {}
        self.results: List[SyncResult] = []
        self.failures: List[Tuple[Tuple[int, int], str]] = []

    def submit(self, month: Tuple[int, int]) -> Future:
        with self._lock:
            fut = self._pending.get(month)
            if fut is not None:
                return fut
            fut = self._pool.submit(self._run, month)
            self._pending[month] = fut
        return fut

    def submit_many(self, months: Iterable[Tuple[int, int]]) -> List[Future]:
        return [self.submit(m) for m in months]

    def _run(self, month: Tuple[int, int]) -> SyncResult:
        # results are recorded before the future resolves, so wait() sees them
        try:
            result = self.service.ensure_month_cached(month)
        except Exception as e:
            _LOGGER.exception("Background sync of %s crashed", month_label(month))
            with self._lock:
                self._pending.pop(month, None)
                self.failures.append((month, repr(e)))
            raise

        with self._lock:
            self._pending.pop(month, None)
            self.results.append(result)
            if result.outcome is SyncOutcome.FAILED:
                self.failures.append((month, result.error or "sync failed"))
        return result

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for all submitted syncs. Returns False if some are still
        running when the timeout expires.
        """
        with self._lock:
            futures = list(self._pending.values())
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def drain(self) -> List[SyncResult]:
        """Hand over and forget the results collected so far."""
        with self._lock:
            out, self.results = self.results, []
        return out

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._pool.shutdown(wait=wait_for_tasks)

    def __enter__(self) -> "BackgroundSyncer":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
