"""
Tests for the prompt import routes and the job events socket.
"""

import json

import pytest
from starlette.websockets import WebSocketDisconnect

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
ADMIN = {"X-User-Id": "ops", "X-User-Role": "admin"}

SWARM_EXPORT = {
    "sui_image_params": {
        "model": "sdxl_base",
        "vae": "Automatic",
        "loras": "styleA,missingStyle",
    }
}


def _import(client, payload=SWARM_EXPORT, headers=ALICE, fmt="auto"):
    return client.post("/prompts/import", json={"payload": payload, "format": fmt}, headers=headers)


class TestImportRoute:
    def test_requires_identity(self, client):
        response = client.post("/prompts/import", json={"payload": SWARM_EXPORT})
        assert response.status_code == 401

    def test_blank_identity_rejected(self, client):
        response = _import(client, headers={"X-User-Id": "   "})
        assert response.status_code == 401

    def test_accepted(self, client):
        response = _import(client)

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "analyzing"
        assert data["job_id"]

    def test_payload_as_json_text(self, client):
        response = _import(client, payload=json.dumps({"prompt": "<lora:styleA:1>"}), fmt="a1111")
        assert response.status_code == 202

    def test_unparseable_payload(self, client):
        response = _import(client, payload="{not json")

        assert response.status_code == 400
        assert response.json()["error"].startswith("Failed to create import job:")

    def test_missing_payload_is_validation_error(self, client):
        response = client.post("/prompts/import", json={}, headers=ALICE)
        assert response.status_code == 422


class TestJobRoute:
    def test_owner_gets_snapshot(self, client):
        job_id = _import(client).json()["job_id"]

        response = client.get(f"/prompts/jobs/{job_id}", headers=ALICE)

        assert response.status_code == 200
        data = response.json()
        assert data["job_id"] == job_id
        assert data["status"] == "partiallycompleted"
        assert data["progress"] == 1.0
        assert [d["reference"] for d in data["dependencies"]] == ["sdxl_base", "styleA", "missingStyle"]
        assert [d["status"] for d in data["dependencies"]] == ["resolved", "resolved", "failed"]
        assert "resolved_path" not in data["dependencies"][2]

    def test_other_user_forbidden(self, client):
        job_id = _import(client).json()["job_id"]

        response = client.get(f"/prompts/jobs/{job_id}", headers=BOB)

        assert response.status_code == 403
        assert response.json() == {"error": "Permission denied."}

    def test_admin_can_read(self, client):
        job_id = _import(client).json()["job_id"]
        assert client.get(f"/prompts/jobs/{job_id}", headers=ADMIN).status_code == 200

    def test_unknown_job(self, client):
        response = client.get("/prompts/jobs/does-not-exist", headers=ALICE)

        assert response.status_code == 404
        assert response.json() == {"error": "Job not found."}


class TestEventsSocket:
    def test_rejects_anonymous_socket(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/prompts/events") as ws:
                ws.receive_json()
        assert exc.value.code == 1008

    def test_subscription_streams_until_terminal(self, client):
        job_id = _import(client).json()["job_id"]

        with client.websocket_connect("/prompts/events", headers=ALICE) as ws:
            assert ws.receive_json() == {"status": "connected"}
            ws.send_json({"subscribe_job": job_id})
            first = ws.receive_json()
            final = ws.receive_json()

        assert first["job_id"] == job_id
        assert final["status"] == "partiallycompleted"
        assert len(final["dependencies"]) == 3

    def test_several_subscriptions_on_one_socket(self, client):
        first_id = _import(client).json()["job_id"]
        second_id = _import(client, payload={"seed": 3}).json()["job_id"]

        with client.websocket_connect("/prompts/events", headers=ALICE) as ws:
            ws.receive_json()
            ws.send_json({"subscribe_job": first_id})
            ws.receive_json()
            ws.receive_json()
            ws.send_json({"subscribe_job": second_id})
            snapshot = ws.receive_json()

        assert snapshot["job_id"] == second_id
        assert snapshot["status"] == "completed"

    def test_unknown_job(self, client):
        with client.websocket_connect("/prompts/events", headers=ALICE) as ws:
            ws.receive_json()
            ws.send_json({"subscribe_job": "nope"})
            assert ws.receive_json() == {"error": "Job not found."}

    def test_foreign_job(self, client):
        job_id = _import(client).json()["job_id"]

        with client.websocket_connect("/prompts/events", headers=BOB) as ws:
            ws.receive_json()
            ws.send_json({"subscribe_job": job_id})
            assert ws.receive_json() == {"error": "Permission denied."}

    def test_malformed_messages(self, client):
        with client.websocket_connect("/prompts/events", headers=ALICE) as ws:
            ws.receive_json()
            ws.send_text("hello")
            assert ws.receive_json() == {"error": "Messages must be JSON objects."}
            ws.send_json({"watch": "x"})
            assert ws.receive_json() == {"error": "Expected a subscribe_job field."}
