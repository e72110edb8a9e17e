import pytest
from fastapi.testclient import TestClient

from conftest import NOW, OTHER_PRODUCER, PRODUCER, clean_batch, ts
from orahproof import ConfigurationError, Settings, hash_readings
from orahproof.service import create_app

SUBMIT = "/api/verification/submit"
ANCHOR = "/api/verification/anchor"


def request_body(batch_id="BATCH-1", readings=None, producer=PRODUCER):
    return {
        "batchId": batch_id,
        "producerAddress": producer,
        "iotData": readings if readings is not None else clean_batch(),
    }


def anchor(client, api_key, **kwargs):
    return client.post(ANCHOR, json=request_body(**kwargs), headers={"X-API-Key": api_key})


# Health
def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["service"] == "Orah Verification Service"
    assert body["ledger"] == "memory"


def test_request_id_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


# Submit: validation and proof only
def test_submit_valid_batch(client):
    readings = clean_batch()
    r = client.post(SUBMIT, json=request_body(readings=readings))
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    proof = body["proofData"]
    assert proof["batchId"] == "BATCH-1"
    assert proof["iotDataHash"] == hash_readings(readings)
    assert proof["timestamp"] == "2025-06-01T12:00:00.000Z"
    assert len(proof["proofHash"]) == 64
    assert proof["validation"]["isValid"] is True
    assert proof["validation"]["score"] == 100
    assert proof["validation"]["issues"] == []
    assert body["message"].startswith("IoT data verified successfully")
    assert f"Use the proofHash: {proof['proofHash']}" in body["nextSteps"]


def test_submit_invalid_batch_still_returns_proof(client):
    r = client.post(SUBMIT, json=request_body(readings=[{"timestamp": ts(hours=-1), "temperature": 200}]))
    assert r.status_code == 200
    body = r.json()
    validation = body["proofData"]["validation"]
    assert validation["isValid"] is False
    assert validation["score"] == 90
    assert validation["errorCount"] == 1
    assert validation["issues"][0]["field"] == "readings[0].temperature"
    assert body["nextSteps"] == ["Fix the validation errors and resubmit"]


def test_submit_keeps_extra_reading_fields(client):
    readings = clean_batch()
    readings[0]["sensorId"] = "probe-7"
    r = client.post(SUBMIT, json=request_body(readings=readings))
    assert r.json()["proofData"]["iotDataHash"] == hash_readings(readings)


def test_submit_is_deterministic(client):
    first = client.post(SUBMIT, json=request_body()).json()["proofData"]
    second = client.post(SUBMIT, json=request_body()).json()["proofData"]
    assert first["proofHash"] == second["proofHash"]


@pytest.mark.parametrize("body", [
    {"producerAddress": PRODUCER, "iotData": [{"timestamp": "2025-01-01T00:00:00Z"}]},
    {"batchId": "", "producerAddress": PRODUCER, "iotData": [{"timestamp": "2025-01-01T00:00:00Z"}]},
    {"batchId": "B", "producerAddress": "0x123", "iotData": [{"timestamp": "2025-01-01T00:00:00Z"}]},
    {"batchId": "B", "producerAddress": PRODUCER, "iotData": []},
    {"batchId": "B", "producerAddress": PRODUCER, "iotData": [{"temperature": 20}]},
])
def test_submit_schema_errors(client, body):
    r = client.post(SUBMIT, json=body)
    assert r.status_code == 400
    payload = r.json()
    assert payload["success"] is False
    assert payload["error"] == "Validation error"
    assert payload["details"]
    assert {"loc", "msg", "type"} <= set(payload["details"][0])


# Status
def test_status_not_registered(client):
    r = client.get("/api/verification/status/NOPE")
    assert r.status_code == 404
    assert r.json()["verified"] is False


def test_status_registered(client, gateway):
    gateway.create_proof("BATCH-1", metadata_cid="QmX")
    r = client.get("/api/verification/status/BATCH-1")
    assert r.status_code == 200
    body = r.json()
    assert body["verified"] is False
    assert body["record"]["metadataCID"] == "QmX"


def test_status_ledger_unreachable(client, gateway):
    gateway.unreachable = True
    r = client.get("/api/verification/status/BATCH-1")
    assert r.status_code == 503
    assert r.json()["retryable"] is True


# API keys
def test_generate_api_key(client):
    r = client.post("/api/verification/generate-api-key", json={"producerAddress": PRODUCER})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert len(body["apiKey"]) == 64
    assert body["producerAddress"] == PRODUCER


@pytest.mark.parametrize("body", [{}, {"producerAddress": "0xnope"}])
def test_generate_api_key_bad_address(client, body):
    r = client.post("/api/verification/generate-api-key", json=body)
    assert r.status_code == 400
    assert r.json()["error"] == "Valid Ethereum address required"


def test_revoke_api_key(client, api_key, gateway):
    gateway.create_proof("BATCH-1")
    r = client.post("/api/verification/revoke-api-key", json={"apiKey": api_key})
    assert r.status_code == 200
    assert anchor(client, api_key).status_code == 401


def test_revoke_unknown_api_key(client):
    r = client.post("/api/verification/revoke-api-key", json={"apiKey": "missing"})
    assert r.status_code == 404


# Anchor: validation, proof and ledger submission
def test_anchor_requires_api_key(client):
    r = client.post(ANCHOR, json=request_body())
    assert r.status_code == 401


def test_anchor_rejects_unknown_api_key(client):
    assert anchor(client, "f" * 64).status_code == 401


def test_anchor_rejects_other_producer(client, api_key):
    r = anchor(client, api_key, producer=OTHER_PRODUCER)
    assert r.status_code == 403


def test_anchor_success(client, api_key, gateway):
    gateway.create_proof("BATCH-1", producer=PRODUCER)
    r = anchor(client, api_key)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["state"] == "SUBMITTED"
    assert body["transaction"]["blockNumber"] == 1
    assert body["transaction"]["transactionHash"].startswith("0x")
    assert "explorerUrl" not in body

    status = client.get("/api/verification/status/BATCH-1").json()
    assert status["verified"] is True
    assert status["record"]["proofHash"] == body["proofData"]["proofHash"]


def test_anchor_invalid_data_not_submitted(client, api_key, gateway):
    gateway.create_proof("BATCH-1")
    r = anchor(client, api_key, readings=[{"timestamp": ts(hours=1)}])
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is False
    assert body["state"] == "PROOF_BUILT"
    assert body["proofData"]["validationResult"]["isValid"] is False
    assert client.get("/api/verification/status/BATCH-1").json()["verified"] is False


def test_anchor_unregistered_batch(client, api_key):
    r = anchor(client, api_key, batch_id="UNKNOWN")
    assert r.status_code == 502
    body = r.json()
    assert body["state"] == "SUBMISSION_FAILED"
    assert body["error"]["error"] == "LedgerRejectedSubmission"
    assert body["error"]["retryable"] is True
    assert body["error"]["detail"] == "Proof does not exist"


def test_anchor_twice(client, api_key, gateway):
    gateway.create_proof("BATCH-1")
    assert anchor(client, api_key).status_code == 200
    assert anchor(client, api_key).status_code == 502


def test_anchor_ledger_unreachable(client, api_key, gateway):
    gateway.create_proof("BATCH-1")
    gateway.unreachable = True
    r = anchor(client, api_key)
    assert r.status_code == 503
    assert r.json()["error"]["error"] == "LedgerUnreachableSubmission"


# Startup
def test_startup_rejects_bad_configuration():
    app = create_app(settings=Settings(ledger_backend="web3", log_json=False), clock=lambda: NOW)
    with pytest.raises(ConfigurationError):
        with TestClient(app):
            pass


def test_docs_disabled_in_production(gateway):
    app = create_app(settings=Settings(env="prod", log_json=False), gateway=gateway)
    with TestClient(app) as c:
        assert c.get("/docs").status_code == 404
