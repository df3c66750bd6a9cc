"""
Tests for the FastAPI backend.
"""

import base64
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from database import MockDatabase
import config
import main

CALCULATION = {
    "droneId": 1,
    "droneName": "Alpha-1",
    "controller": {"altitude": 1.5, "lat": 32.08, "lng": 34.78},
    "drone": {
        "altitude": 120,
        "lat": 32.08,
        "lng": 34.79,
        "area": [
            {"lat": 32.08, "lng": 34.78},
            {"lat": 32.09, "lng": 34.79},
            {"lat": 32.07, "lng": 34.80},
        ],
    },
}


def history_record(status, approved=None):
    return {
        "droneId": 1,
        "droneName": "Alpha-1",
        "droneType": "patrol",
        "controllerAltitude": 1.5,
        "controllerLat": 32.08,
        "controllerLng": 34.78,
        "droneAltitude": 120,
        "droneLat": 32.08,
        "droneLng": 34.79,
        "operationalArea": CALCULATION["drone"]["area"],
        "status": status,
        "controlCenterApproved": approved,
    }


class BackendTestCase(unittest.TestCase):

    def setUp(self):
        main.db = MockDatabase()
        for name, value in (('CALCULATION_DELAY', 0), ('APPROVAL_DELAY', 0)):
            patcher = patch.object(config, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)
        self.client = TestClient(main.app)


class TestAuth(BackendTestCase):

    def test_login_known_operator(self):
        response = self.client.post("/api/auth/login", json={"serialNumber": "X7-99-ALPHA"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["user"]["serialNumber"], "X7-99-ALPHA")
        self.assertEqual(body["token"], f"token-{body['user']['id']}")

    def test_login_unknown_serial_creates_operator(self):
        body = self.client.post("/api/auth/login", json={"serialNumber": "ZZ-1"}).json()
        self.assertEqual(body["user"]["name"], "Operator ZZ-1")
        self.assertEqual(len(main.db.users), len(config.MOCK_USERS) + 1)

    def test_login_requires_serial(self):
        response = self.client.post("/api/auth/login", json={"serialNumber": ""})
        self.assertEqual(response.status_code, 422)

    def test_verify(self):
        self.assertTrue(self.client.get("/api/auth/verify", params={"token": "token-1"}).json()["valid"])
        self.assertFalse(self.client.get("/api/auth/verify", params={"token": "token-99"}).json()["valid"])
        self.assertFalse(self.client.get("/api/auth/verify", params={"token": "garbage"}).json()["valid"])


class TestDroneDirectory(BackendTestCase):

    def test_search_is_case_insensitive(self):
        names = [d["name"] for d in self.client.get("/api/drones/search", params={"query": "alpha"}).json()]
        self.assertIn("Alpha-1", names)

    def test_search_excludes_maintenance(self):
        drones = self.client.get("/api/drones/search", params={"query": "relay"}).json()
        self.assertTrue(all(d["status"] != "maintenance" for d in drones))

    def test_empty_search(self):
        self.assertEqual(self.client.get("/api/drones/search", params={"query": "  "}).json(), [])

    def test_get_drone(self):
        drone = self.client.get("/api/drones/1").json()
        self.assertEqual(drone["name"], "Alpha-1")
        self.assertIn("batteryLevel", drone)

        response = self.client.get("/api/drones/999")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["detail"], "Drone not found")

    def test_list_drones(self):
        self.assertEqual(len(self.client.get("/api/drones").json()), len(config.MOCK_DRONES))

    def test_pin_and_unpin(self):
        headers = {"X-User-Id": "7"}
        pin = {
            "droneId": 1,
            "droneName": "Alpha-1",
            "config": {"controllerAltitude": 1.5, "droneArea": CALCULATION["drone"]["area"]},
        }

        first = self.client.post("/api/drones/pinned", json=pin, headers=headers).json()
        again = self.client.post("/api/drones/pinned", json=pin, headers=headers).json()
        self.assertFalse(first["alreadyPinned"])
        self.assertTrue(again["alreadyPinned"])

        pinned = self.client.get("/api/drones/pinned", headers=headers).json()
        self.assertEqual(len(pinned), 1)
        self.assertEqual(pinned[0]["type"], "patrol")
        self.assertEqual(pinned[0]["controllerAltitude"], 1.5)
        self.assertEqual(len(pinned[0]["droneArea"]), 3)

        self.assertEqual(self.client.get("/api/drones/pinned", headers={"X-User-Id": "8"}).json(), [])

        self.client.delete("/api/drones/pinned/1", headers=headers)
        self.assertEqual(self.client.get("/api/drones/pinned", headers=headers).json(), [])

    def test_recently_used_newest_first(self):
        headers = {"X-User-Id": "7"}
        for drone_id, name in ((1, "Alpha-1"), (3, "Cam-7"), (1, "Alpha-1")):
            self.client.post("/api/drones/recent", json={"droneId": drone_id, "droneName": name},
                             headers=headers)

        recent = self.client.get("/api/drones/recent", headers=headers).json()
        self.assertEqual([r["droneId"] for r in recent], [1, 3])


class TestFlight(BackendTestCase):

    def test_calculate(self):
        response = self.client.post("/api/flight/calculate", json=CALCULATION)

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertTrue(body["imageData"].startswith("data:image/svg+xml;base64,"))
        self.assertIn("calculatedAt", body)

        svg = base64.b64decode(body["imageData"].split(",", 1)[1]).decode("utf-8")
        self.assertIn("<svg", svg)

    def test_calculate_rejects_short_area(self):
        request = dict(CALCULATION, drone=dict(CALCULATION["drone"], area=CALCULATION["drone"]["area"][:2]))
        self.assertEqual(self.client.post("/api/flight/calculate", json=request).status_code, 422)

    def test_calculate_rejects_zero_altitude(self):
        request = dict(CALCULATION, controller=dict(CALCULATION["controller"], altitude=0))
        self.assertEqual(self.client.post("/api/flight/calculate", json=request).status_code, 422)

    def test_approval(self):
        request = {"droneId": 1, "droneName": "Alpha-1"}
        with patch.object(config, 'APPROVAL_PROBABILITY', 1.0):
            self.assertTrue(self.client.post("/api/flight/approval", json=request).json()["approved"])
        with patch.object(config, 'APPROVAL_PROBABILITY', 0.0):
            body = self.client.post("/api/flight/approval", json=request).json()
        self.assertFalse(body["approved"])
        self.assertIn("respondedAt", body)

    def test_history_lists_launched_only(self):
        headers = {"X-User-Id": "1"}
        launched = self.client.post("/api/flight/history", json=history_record("Launched", True),
                                    headers=headers).json()
        self.client.post("/api/flight/history", json=history_record("Not Launched", False), headers=headers)

        self.assertTrue(launched["success"])
        history = self.client.get("/api/flight/history", headers=headers).json()
        self.assertEqual([f["id"] for f in history], [launched["flightId"]])
        self.assertEqual(history[0]["status"], "Launched")
        self.assertEqual(history[0]["userId"], "1")

        self.assertEqual(self.client.get("/api/flight/history", headers={"X-User-Id": "2"}).json(), [])

    def test_history_rejects_unknown_status(self):
        response = self.client.post("/api/flight/history", json=history_record("Crashed"))
        self.assertEqual(response.status_code, 422)


class TestHealth(BackendTestCase):

    def test_health(self):
        body = self.client.get("/api/health").json()
        self.assertEqual(body["status"], "ok")


if __name__ == '__main__':
    unittest.main()
