"""
Unit tests for the HTTP schedule client (requests session mocked).
"""

import unittest
from unittest.mock import MagicMock

import requests

from schedcache.api import ScheduleApiClient
from schedcache.errors import RemoteFetchError, SnapshotDecodeError
from schedcache.model import EntityKind

EVENT = {
    "id": 1,
    "startedAt": 1772431200,
    "endedAt": 1772436900,
    "type": "Лк",
    "auditorium": {"id": 7, "name": "ФЛ-1"},
    "numberPair": 1,
    "subject": {"id": 9, "title": "Вища математика", "brief": "ВМ"},
    "groups": [],
    "teachers": [],
}


def _response(status: int = 200, body=None, json_error: bool = False) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.reason = "OK" if status == 200 else "Error"
    resp.ok = 200 <= status < 300
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = body
    return resp


class TestScheduleApiClient(unittest.TestCase):
    def setUp(self) -> None:
        self.session = MagicMock()
        self.client = ScheduleApiClient("https://example.test/", session=self.session)

    def test_fetch_builds_url_and_params(self) -> None:
        self.session.get.return_value = _response(body={"success": True, "data": [EVENT], "message": ""})
        events = self.client.fetch_schedule(EntityKind.ROOM, 7, 100, 200)

        self.assertEqual([ev.id for ev in events], [1])
        args, kwargs = self.session.get.call_args
        self.assertEqual(args[0], "https://example.test/api/auditoriums/7/schedule")
        self.assertEqual(kwargs["params"], {"startedAt": 100, "endedAt": 200})
        self.assertEqual(kwargs["timeout"], (10.0, 15.0))

    def test_unsuccessful_envelope_raises(self) -> None:
        self.session.get.return_value = _response(body={"success": False, "data": None, "message": "Group not found"})
        with self.assertRaises(RemoteFetchError) as ctx:
            self.client.fetch_schedule(EntityKind.GROUP, 10, 0, 1)
        self.assertIn("Group not found", str(ctx.exception))

    def test_http_error_raises_with_status(self) -> None:
        self.session.get.return_value = _response(status=503)
        with self.assertRaises(RemoteFetchError) as ctx:
            self.client.fetch_schedule(EntityKind.TEACHER, 5, 0, 1)
        self.assertEqual(ctx.exception.status, 503)

    def test_network_error_raises(self) -> None:
        self.session.get.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(RemoteFetchError):
            self.client.fetch_schedule(EntityKind.GROUP, 10, 0, 1)

    def test_non_json_body_raises(self) -> None:
        self.session.get.return_value = _response(json_error=True)
        with self.assertRaises(SnapshotDecodeError):
            self.client.fetch_schedule(EntityKind.GROUP, 10, 0, 1)

    def test_connectivity(self) -> None:
        self.session.get.return_value = _response(status=200, body={})
        self.assertTrue(self.client.has_connectivity())
        self.assertEqual(self.session.get.call_args[0][0], "https://example.test/api/health")

        self.session.get.side_effect = requests.Timeout("slow")
        self.assertFalse(self.client.has_connectivity())


if __name__ == "__main__":
    unittest.main()
