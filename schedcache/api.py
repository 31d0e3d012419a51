from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from schedcache.codec import events_from_api
from schedcache.config import API_BASE_URL, CONNECT_TIMEOUT, HEALTH_TIMEOUT, READ_TIMEOUT
from schedcache.errors import RemoteFetchError, SnapshotDecodeError
from schedcache.model import EntityKind, Event

_LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

SCHEDULE_PATHS = {
    EntityKind.GROUP: "api/groups/{id}/schedule",
    EntityKind.TEACHER: "api/teachers/{id}/schedule",
    EntityKind.ROOM: "api/auditoriums/{id}/schedule",
}
HEALTH_PATH = "api/health"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ScheduleApiClient:
    """
    Remote schedule source.

    fetch_schedule() raises RemoteFetchError for network problems, bad HTTP
    statuses and unsuccessful envelopes, and SnapshotDecodeError when the
    payload does not look like a list of events.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        connect_timeout: float = CONNECT_TIMEOUT,
        read_timeout: float = READ_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = (connect_timeout, read_timeout)
        self.session = session if session is not None else requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Any = None) -> requests.Response:
        t0 = time.monotonic()
        _LOGGER.debug("→ GET %s %s", url, params or "")
        try:
            resp = self.session.get(url, params=params, timeout=timeout or self.timeout)
        except requests.RequestException as e:
            ms = int((time.monotonic() - t0) * 1000)
            _LOGGER.warning("✖ GET %s failed: %s: %s (%sms)", url, type(e).__name__, e, ms)
            raise
        ms = int((time.monotonic() - t0) * 1000)
        _LOGGER.debug("← %s %s (%sms) %s", resp.status_code, resp.reason, ms, url)
        return resp

    def has_connectivity(self) -> bool:
        """
        Return True if the API answers its health endpoint with 2xx.
        Never raises.
        """
        try:
            resp = self._get(self._url(HEALTH_PATH), timeout=HEALTH_TIMEOUT)
        except requests.RequestException:
            return False
        return resp.ok

    def fetch_schedule(self, kind: EntityKind, entity_id: int, start: int, end: int) -> List[Event]:
        """
        Fetch all events of one entity in the epoch-second window [start, end].
        """
        url = self._url(SCHEDULE_PATHS[kind].format(id=entity_id))
        params = {"startedAt": start, "endedAt": end}

        try:
            resp = self._get(url, params=params)
        except requests.RequestException as e:
            raise RemoteFetchError(f"GET {url} failed: {e}") from e

        if not resp.ok:
            raise RemoteFetchError(f"GET {url} returned HTTP {resp.status_code}", status=resp.status_code)

        try:
            body = resp.json()
        except ValueError as e:
            raise SnapshotDecodeError(f"GET {url}: response is not JSON") from e

        if not isinstance(body, dict):
            raise SnapshotDecodeError(f"GET {url}: expected response envelope object")
        if body.get("success") is False:
            raise RemoteFetchError(f"GET {url}: {body.get('message') or body.get('error') or 'request failed'}")

        events = events_from_api(body.get("data"))
        _LOGGER.debug("API response: %s events for %s %s", len(events), kind, entity_id)
        return events
