from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from alerting.alerts import AbnormalAlerter
from alerting.notifier import Notifier
from api.db import JsonStore, generate_id
from api.main import app, get_alerter, get_notifier, get_store
from api.schemas import Machine, Thresholds


class RecordingNotifier(Notifier):
    """Keeps every message instead of mailing it."""

    def __init__(self, recipient="ops@example.com"):
        super().__init__(recipient)
        self.sent = []

    def _dispatch(self, subject, body):
        self.sent.append((subject, body))
        return True


def _make_machine(**overrides) -> Machine:
    fields = {
        "id": generate_id(),
        "name": "Press 1",
        "code": "P-1",
        "location": "Hall A",
        "next_maintenance_date": "2026-12-01",
        "thresholds": Thresholds(),
        "created_at": datetime(2026, 10, 1, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Machine(**fields)


@pytest.fixture
def make_machine():
    return _make_machine


@pytest.fixture
def store(tmp_path):
    s = JsonStore(tmp_path / "db.json")
    s.load()
    return s


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(store, notifier):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_alerter] = lambda: AbnormalAlerter(store, notifier, min_gap_minutes=30)
    yield TestClient(app)
    app.dependency_overrides.clear()
