import threading
import time
from datetime import timedelta

from conftest import RecordingNotifier

from alerting.alerts import AbnormalAlerter
from api.main import app, get_alerter
from api.db import JsonStore
from shared.timeutil import parse_timestamp, utcnow


class SlowNotifier(RecordingNotifier):
    def _dispatch(self, subject, body):
        time.sleep(0.2)
        return super()._dispatch(subject, body)


def _create(client, **body):
    payload = {"name": "Lathe", "nextMaintenanceDate": "2026-11-01"}
    payload.update(body)
    r = client.post("/machines", json=payload)
    assert r.status_code == 201, r.text
    return r.json()


def test_health_reports_machine_count(client):
    assert client.get("/health").json() == {"status": "ok", "machineCount": 0}
    _create(client)
    assert client.get("/health").json() == {"status": "ok", "machineCount": 1}


def test_create_machine_defaults(client, store):
    machine = _create(client, code="L-7")

    assert machine["id"]
    assert machine["code"] == "L-7"
    assert machine["location"] == ""
    assert machine["thresholds"] == {"temperature": 80, "vibration": 10, "pressure": 200}
    assert machine["lastMaintenanceReminderSent"] is None
    assert machine["lastAbnormalAlertSent"] is None
    assert machine["createdAt"]

    reloaded = JsonStore(store.path)
    reloaded.load()
    assert [m.id for m in reloaded.list_machines()] == [machine["id"]]


def test_create_machine_keeps_custom_thresholds(client):
    machine = _create(client, thresholds={"temperature": 95, "vibration": 4, "pressure": 150})
    assert machine["thresholds"] == {"temperature": 95, "vibration": 4, "pressure": 150}


def test_create_machine_requires_name_and_date(client, store):
    r = client.post("/machines", json={"nextMaintenanceDate": "2026-11-01"})
    assert r.status_code == 400
    assert "name" in r.json()["message"]

    r = client.post("/machines", json={"name": "Lathe", "nextMaintenanceDate": ""})
    assert r.status_code == 400

    assert client.get("/machines").json() == []
    assert not store.path.exists()


def test_list_machines_in_insertion_order(client):
    ids = [_create(client, name=f"M{i}")["id"] for i in range(3)]
    assert [m["id"] for m in client.get("/machines").json()] == ids


def test_update_machine_merges_fields(client):
    machine = _create(client)
    r = client.put(f"/machines/{machine['id']}", json={"location": "Hall B", "id": "hijack"})
    assert r.status_code == 200
    updated = r.json()
    assert updated["id"] == machine["id"]
    assert updated["location"] == "Hall B"
    assert updated["name"] == "Lathe"


def test_update_unknown_machine_is_404(client):
    r = client.put("/machines/nope", json={"name": "x"})
    assert r.status_code == 404
    assert r.json() == {"message": "Machine not found"}


def test_delete_machine_cascades_to_its_vitals(client):
    keep = _create(client, name="Keep")
    drop = _create(client, name="Drop")
    for m in (keep, drop):
        client.post(f"/machines/{m['id']}/vitals", json={"temperature": 50})

    assert client.delete(f"/machines/{drop['id']}").status_code == 204
    assert client.delete(f"/machines/{drop['id']}").status_code == 404

    assert [m["id"] for m in client.get("/machines").json()] == [keep["id"]]
    assert client.get(f"/machines/{drop['id']}/vitals").json() == []
    assert len(client.get(f"/machines/{keep['id']}/vitals").json()) == 1


def test_vitals_sorted_ascending_and_capped(client):
    machine = _create(client)
    base = utcnow()
    for minutes in (30, 10, 50, 20, 40):
        ts = (base - timedelta(minutes=minutes)).isoformat()
        client.post(f"/machines/{machine['id']}/vitals", json={"temperature": minutes, "timestamp": ts})

    vitals = client.get(f"/machines/{machine['id']}/vitals").json()
    stamps = [parse_timestamp(v["timestamp"]) for v in vitals]
    assert stamps == sorted(stamps)
    assert [v["temperature"] for v in vitals] == [50, 40, 30, 20, 10]

    latest = client.get(f"/machines/{machine['id']}/vitals", params={"limit": 2}).json()
    assert [v["temperature"] for v in latest] == [20, 10]


def test_append_vital_to_unknown_machine_is_404(client):
    assert client.post("/machines/nope/vitals", json={"temperature": 1}).status_code == 404


def test_append_vital_drops_non_numeric_values(client):
    machine = _create(client)
    r = client.post(
        f"/machines/{machine['id']}/vitals",
        json={"temperature": "hot", "vibration": True, "pressure": 120.5},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["abnormal"] is False
    vital = body["vital"]
    assert vital["machineId"] == machine["id"]
    assert vital["temperature"] is None
    assert vital["vibration"] is None
    assert vital["pressure"] == 120.5
    assert vital["timestamp"]


def test_abnormal_vital_notifies_once_within_gap(client, notifier):
    machine = _create(client, name="Boiler")
    url = f"/machines/{machine['id']}/vitals"

    first = client.post(url, json={"temperature": 90}).json()
    second = client.post(url, json={"temperature": 91}).json()

    assert first["abnormal"] is True
    assert second["abnormal"] is True
    assert len(notifier.sent) == 1
    subject, body = notifier.sent[0]
    assert "Boiler" in subject
    assert "Temperature 90°C > 80°C" in body

    stamped = client.get("/machines").json()[0]["lastAbnormalAlertSent"]
    assert stamped is not None


def test_abnormal_vital_notifies_again_after_gap(client, notifier):
    machine = _create(client)
    long_ago = (utcnow() - timedelta(minutes=31)).isoformat()
    client.put(f"/machines/{machine['id']}", json={"lastAbnormalAlertSent": long_ago})

    r = client.post(f"/machines/{machine['id']}/vitals", json={"pressure": 250})
    assert r.json()["abnormal"] is True
    assert len(notifier.sent) == 1


def test_normal_vital_does_not_notify(client, notifier):
    machine = _create(client)
    r = client.post(f"/machines/{machine['id']}/vitals", json={"temperature": 70})
    assert r.json()["abnormal"] is False
    assert notifier.sent == []


def test_simulate_vital_stays_under_thresholds(client, notifier):
    machine = _create(client)
    r = client.post(f"/machines/{machine['id']}/vitals/simulate")
    assert r.status_code == 201
    vital = r.json()
    assert 62 <= vital["temperature"] <= 78
    assert 4 <= vital["vibration"] <= 10
    assert 150 <= vital["pressure"] <= 190
    assert notifier.sent == []
    assert len(client.get(f"/machines/{machine['id']}/vitals").json()) == 1


def test_simulate_unknown_machine_is_404(client):
    assert client.post("/machines/nope/vitals/simulate").status_code == 404


def test_malformed_body_is_400(client):
    r = client.post("/machines", json=["not", "an", "object"])
    assert r.status_code == 400
    assert "message" in r.json()


def test_simultaneous_abnormal_posts_notify_once(client, store):
    slow = SlowNotifier()
    app.dependency_overrides[get_alerter] = lambda: AbnormalAlerter(store, slow, min_gap_minutes=30)
    machine = _create(client)
    barrier = threading.Barrier(2)
    statuses = []

    def post():
        barrier.wait()
        r = client.post(f"/machines/{machine['id']}/vitals", json={"temperature": 95})
        statuses.append(r.status_code)

    threads = [threading.Thread(target=post) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert statuses == [201, 201]
    assert len(slow.sent) == 1
