from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from orahproof.config import Settings
from orahproof.ledger import InMemoryLedgerGateway
from orahproof.service import create_app
from orahproof.util import format_instant

NOW = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
PRODUCER = "0x" + "ab" * 20
OTHER_PRODUCER = "0x" + "cd" * 20


def ts(**delta) -> str:
    """ISO timestamp relative to NOW, e.g. ts(hours=-1)."""
    return format_instant(NOW + timedelta(**delta))


def clean_batch():
    return [
        {"timestamp": ts(hours=-2), "temperature": 21.5, "humidity": 55,
         "location": {"latitude": 10.0, "longitude": 20.0}},
        {"timestamp": ts(hours=-1), "temperature": 22, "humidity": 57,
         "location": {"latitude": 10.01, "longitude": 20.01}},
    ]


@pytest.fixture
def gateway():
    return InMemoryLedgerGateway()


@pytest.fixture
def settings():
    return Settings(log_json=False)


@pytest.fixture
def app(settings, gateway):
    return create_app(settings=settings, gateway=gateway, clock=lambda: NOW)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def api_key(client):
    r = client.post("/api/verification/generate-api-key", json={"producerAddress": PRODUCER})
    assert r.status_code == 200
    return r.json()["apiKey"]
