import unittest
from datetime import timedelta

import httpx
from fastapi.testclient import TestClient

from fluidwatch.alerts import AlertManager
from fluidwatch.api import create_app
from fluidwatch.errors import UpstreamUnavailable
from fluidwatch.ingest import SensorSync, ThingSpeakClient
from fluidwatch.service import BalanceService

from tests.helpers import T0, memory_repository


class TestApi(unittest.TestCase):

    def setUp(self):
        self.repo, self.engine = memory_repository()
        self.alerts = AlertManager()
        self.service = BalanceService(
            self.repo, alert_manager=self.alerts, clock=lambda: T0 + timedelta(hours=13)
        )
        feed = {"entry_id": 1, "created_at": "2025-03-01T08:00:00Z", "field1": "50", "field2": "20"}
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"feeds": [feed]}))
        sync = SensorSync(self.repo, ThingSpeakClient(transport=transport))
        self.client = TestClient(create_app(self.service, sensor_sync=sync, alert_manager=self.alerts))
        self.patient = self.repo.create_patient("Ana", weight_kg=60, height_cm=160, created_at=T0)

    def tearDown(self):
        self.engine.dispose()

    def test_health(self):
        self.assertEqual(self.client.get("/health").json()["status"], "ok")

    def test_root_serves_no_static_files(self):
        self.assertEqual(self.client.get("/").status_code, 404)
        self.assertEqual(self.client.get("/index.html").status_code, 404)

    def test_create_and_get_patient(self):
        resp = self.client.post("/patients", json={"name": "Luis", "weight_kg": 80, "height_cm": 200})
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["bmi"], 20.0)
        self.assertEqual(self.client.get(f"/patients/{body['id']}").json()["name"], "Luis")

    def test_update_patient_recomputes_bmi(self):
        resp = self.client.patch(f"/patients/{self.patient.id}", json={"weight_kg": 80})
        self.assertEqual(resp.json()["bmi"], 31.25)

    def test_unknown_patient_is_404(self):
        self.assertEqual(self.client.get("/patients/999").status_code, 404)
        self.assertEqual(self.client.get("/patients/999/balance").status_code, 404)

    def test_manual_event_and_balance(self):
        pid = self.patient.id
        self.client.post(f"/patients/{pid}/events", json={"direction": "intake", "volume_ml": 500, "category": "iv"})
        resp = self.client.post(
            f"/patients/{pid}/events", json={"direction": "output", "weight_g": 120, "category": "urine"}
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["volume_ml"], 120)

        data = self.client.get(f"/patients/{pid}/balance").json()
        self.assertAlmostEqual(data["balance"]["total_intake_ml"], 512.0)
        self.assertAlmostEqual(data["balance"]["total_output_ml"], 150.0)
        self.assertEqual(data["risk"]["tier"], "neutral")
        self.assertEqual(data["kdigo"]["stage"], 2)
        self.assertEqual(self.repo.get_kdigo_state(pid).stage, 2)

    def test_event_requires_volume(self):
        resp = self.client.post(f"/patients/{self.patient.id}/events", json={"direction": "intake"})
        self.assertEqual(resp.status_code, 422)

    def test_unknown_manual_category_rejected(self):
        resp = self.client.post(
            f"/patients/{self.patient.id}/events",
            json={"direction": "output", "volume_ml": 50, "category": "oral"},
        )
        self.assertEqual(resp.status_code, 422)

    def test_weight_only_for_output(self):
        resp = self.client.post(
            f"/patients/{self.patient.id}/events",
            json={"direction": "intake", "weight_g": 200, "category": "oral"},
        )
        self.assertEqual(resp.status_code, 422)
        self.assertEqual(self.repo.list_events(self.patient.id), [])

    def test_negative_volume_rejected(self):
        resp = self.client.post(
            f"/patients/{self.patient.id}/events", json={"direction": "intake", "volume_ml": -5}
        )
        self.assertEqual(resp.status_code, 422)

    def test_reset(self):
        pid = self.patient.id
        self.client.post(f"/patients/{pid}/events", json={"direction": "intake", "volume_ml": 100})
        self.client.get(f"/patients/{pid}/balance")
        resp = self.client.post(f"/patients/{pid}/reset")
        self.assertEqual(resp.json()["deleted_events"], 1)
        self.assertEqual(self.client.get(f"/patients/{pid}/events").json(), [])
        self.assertIsNone(self.repo.get_kdigo_state(pid))

    def test_delete_patient(self):
        resp = self.client.delete(f"/patients/{self.patient.id}")
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(self.client.get(f"/patients/{self.patient.id}").status_code, 404)

    def test_sync_and_trend(self):
        device = self.client.post("/devices", json={"name": "bed-1", "channel_id": "42"}).json()
        self.client.patch(f"/patients/{self.patient.id}", json={"device_id": device["id"]})
        self.assertEqual(self.client.post("/sync").json()["inserted"], 2)
        trend = self.client.get(f"/patients/{self.patient.id}/trend").json()
        self.assertEqual(len(trend), 2)

    def test_database_failure_is_503(self):
        def broken(*args, **kwargs):
            raise UpstreamUnavailable("database unavailable")

        self.repo.get_patient = broken
        resp = self.client.get(f"/patients/{self.patient.id}/balance")
        self.assertEqual(resp.status_code, 503)
        self.assertTrue(resp.json()["retryable"])

    def test_recent_alerts(self):
        pid = self.patient.id
        self.client.post(f"/patients/{pid}/events", json={"direction": "intake", "volume_ml": 3000})
        self.client.get(f"/patients/{pid}/balance")
        alerts = self.client.get("/alerts/recent").json()
        self.assertEqual(alerts[0]["kind"], "balance")
        self.assertEqual(alerts[0]["severity"], "Critical")


if __name__ == "__main__":
    unittest.main()
