"""
Tests for the batch sync endpoint (POST /api/sync).
"""
import pytest
from unittest.mock import Mock

from fieldsync import create_app
from fieldsync.models import db
from fieldsync.offline.connectivity import ConnectivityMonitor
from fieldsync.offline.errors import PermanentError, TransientError
from fieldsync.offline.queue import MutationQueue
from fieldsync.offline.registry import ReplayRegistry
from fieldsync.rate_limit import limiter

AUTH = {"Authorization": "Bearer secret"}


@pytest.fixture(autouse=True)
def reset_rate_limit():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def handlers():
    return {
        "update_phase_status": Mock(return_value={"ok": True}),
        "add_comment": Mock(return_value={"ok": True}),
    }


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(initial=True)


def build_app(handlers, connectivity, **overrides):
    registry = ReplayRegistry()
    for name, handler in handlers.items():
        registry.register(name, handler)

    config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SCHEDULER_ENABLED': False,
        'SYNC_API_TOKEN': 'secret',
    }
    config.update(overrides)
    return create_app(config, registry=registry, connectivity=connectivity)


@pytest.fixture
def app(handlers, connectivity):
    """Create Flask application for testing."""
    app = build_app(handlers, connectivity)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def mutation(action, payload, timestamp):
    return {"action": action, "payload": payload, "timestamp": timestamp}


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.post('/api/sync', json={"mutations": [mutation("add_comment", {}, 1)]})

        assert response.status_code == 401
        assert response.get_json() == {"error": "Unauthorized"}

    def test_wrong_token(self, client):
        response = client.post('/api/sync', headers={"Authorization": "Bearer nope"},
                               json={"mutations": [mutation("add_comment", {}, 1)]})
        assert response.status_code == 401

    def test_no_token_configured_rejects_everything(self, handlers, connectivity):
        app = build_app(handlers, connectivity, SYNC_API_TOKEN=None)

        response = app.test_client().post('/api/sync', headers=AUTH,
                                          json={"mutations": [mutation("add_comment", {}, 1)]})

        assert response.status_code == 401


class TestValidation:

    @pytest.mark.parametrize("body", [
        {},
        {"mutations": []},
        {"mutations": "not a list"},
        {"mutations": [1, 2]},
    ])
    def test_bad_bodies(self, client, body):
        response = client.post('/api/sync', headers=AUTH, json=body)
        assert response.status_code == 400

    def test_invalid_json(self, client):
        response = client.post('/api/sync', headers={**AUTH, "Content-Type": "application/json"},
                               data="{not json")
        assert response.status_code == 400

    def test_batch_too_large(self, handlers, connectivity):
        app = build_app(handlers, connectivity, SYNC_MAX_BATCH_SIZE=2)
        batch = [mutation("add_comment", {}, n) for n in range(3)]

        response = app.test_client().post('/api/sync', headers=AUTH, json={"mutations": batch})

        assert response.status_code == 400
        assert "maximum of 2" in response.get_json()["error"]


class TestBatchProcessing:

    def test_processes_in_timestamp_order(self, client, handlers):
        calls = []
        handlers["add_comment"].side_effect = lambda payload: calls.append(payload["n"])
        batch = [
            mutation("add_comment", {"n": "third"}, 300),
            mutation("add_comment", {"n": "first"}, 100),
            mutation("add_comment", {"n": "second"}, 200),
        ]

        response = client.post('/api/sync', headers=AUTH, json={"mutations": batch})

        assert response.status_code == 200
        assert calls == ["first", "second", "third"]
        data = response.get_json()
        assert [r["timestamp"] for r in data["results"]] == [100, 200, 300]
        assert data["synced"] == 3

    def test_mixed_results(self, app, client, handlers):
        handlers["add_comment"].side_effect = PermanentError("Forbidden", status_code=403)
        handlers["update_phase_status"].side_effect = TransientError("Failed to fetch")
        batch = [
            mutation("add_comment", {"phase_id": "p1", "content": "x"}, 1),
            mutation("update_phase_status", {"phase_id": "p1", "status": "COMPLETE"}, 2),
            mutation("launch_rocket", {}, 3),
        ]

        data = client.post('/api/sync', headers=AUTH, json={"mutations": batch}).get_json()

        assert [r["status"] for r in data["results"]] == ["error", "queued", "error"]
        assert data["results"][0]["error"] == "Forbidden"
        assert data["results"][2]["error"] == "Unknown action: launch_rocket"
        assert (data["synced"], data["queued"], data["failed"]) == (0, 1, 2)
        with app.app_context():
            pending = MutationQueue.list_pending()
        assert [r.action for r in pending] == ["update_phase_status"]

    def test_writes_after_a_queued_one_are_queued_behind_it(self, app, client, handlers):
        handlers["update_phase_status"].side_effect = TransientError("Failed to fetch")
        batch = [
            mutation("add_comment", {"n": 0}, 1),
            mutation("update_phase_status", {"phase_id": "p1", "status": "COMPLETE"}, 2),
            mutation("add_comment", {"n": 2}, 3),
            mutation("add_comment", {"n": 3}, 4),
        ]

        data = client.post('/api/sync', headers=AUTH, json={"mutations": batch}).get_json()

        assert [r["status"] for r in data["results"]] == ["ok", "queued", "queued", "queued"]
        handlers["add_comment"].assert_called_once_with({"n": 0})
        with app.app_context():
            pending = MutationQueue.list_pending()
        assert [r.action for r in pending] == ["update_phase_status", "add_comment", "add_comment"]
        assert [r.payload.get("n") for r in pending[1:]] == [2, 3]

    def test_offline_gateway_queues_everything(self, app, client, handlers, connectivity):
        connectivity.set_online(False)
        batch = [mutation("add_comment", {"n": n}, n) for n in range(3)]

        data = client.post('/api/sync', headers=AUTH, json={"mutations": batch}).get_json()

        assert data["queued"] == 3
        handlers["add_comment"].assert_not_called()
        with app.app_context():
            assert [r.payload["n"] for r in MutationQueue.list_pending()] == [0, 1, 2]

    def test_malformed_item_is_an_error_result(self, client):
        batch = [{"action": "add_comment", "payload": "nope", "timestamp": 1}]

        data = client.post('/api/sync', headers=AUTH, json={"mutations": batch}).get_json()

        assert data["results"][0]["status"] == "error"
        assert data["failed"] == 1


class TestRateLimit:

    def test_limit_per_client_ip(self, handlers, connectivity):
        app = build_app(handlers, connectivity, SYNC_RATE_LIMIT=2)
        client = app.test_client()
        body = {"mutations": [mutation("add_comment", {}, 1)]}
        headers = {**AUTH, "X-Forwarded-For": "10.0.0.7, 172.16.0.1"}

        statuses = [client.post('/api/sync', headers=headers, json=body).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]

        limited = client.post('/api/sync', headers=headers, json=body)
        assert limited.headers["X-RateLimit-Limit"] == "2"
        assert limited.headers["X-RateLimit-Remaining"] == "0"
        assert "Retry-After" in limited.headers

        other = client.post('/api/sync', headers={**AUTH, "X-Forwarded-For": "10.0.0.8"}, json=body)
        assert other.status_code == 200

    def test_limit_applies_before_authentication(self, handlers, connectivity):
        app = build_app(handlers, connectivity, SYNC_RATE_LIMIT=1)
        client = app.test_client()
        body = {"mutations": [mutation("add_comment", {}, 1)]}

        assert client.post('/api/sync', json=body).status_code == 401
        assert client.post('/api/sync', json=body).status_code == 429
