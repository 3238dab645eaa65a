"""
Tests for the durable mutation queue.
These tests run against an in-memory SQLite database.
"""
import json

import pytest
from fieldsync import create_app
from fieldsync.datetime_utils import now_ms
from fieldsync.models import db, MutationStatus
from fieldsync.offline.queue import MutationQueue
from fieldsync.offline.registry import ReplayRegistry


@pytest.fixture
def app():
    """Create Flask application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SCHEDULER_ENABLED': False,
        },
        registry=ReplayRegistry(),
    )

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


# ==============================================================================
# ENQUEUE / LIST
# ==============================================================================

class TestEnqueue:
    """Tests for MutationQueue.enqueue and the listings."""

    def test_enqueued_mutation_is_pending_once(self, app):
        """Enqueue-then-list: appears exactly once with fresh counters."""
        before = now_ms()
        mutation_id = MutationQueue.enqueue("update_phase_status", {"a": 1})

        pending = MutationQueue.list_pending()
        assert [r.id for r in pending] == [mutation_id]

        record = pending[0]
        assert record.action == "update_phase_status"
        assert record.payload == {"a": 1}
        assert record.status == "pending"
        assert record.retries == 0
        assert record.error is None
        assert record.timestamp >= before

    def test_enqueue_accepts_arbitrary_payload(self, app):
        """Payload contents are not validated."""
        payload = {"nested": {"list": [1, 2, 3]}, "flag": None, "text": "x"}
        mutation_id = MutationQueue.enqueue("anything_at_all", payload)

        assert MutationQueue.get(mutation_id).payload == payload

    def test_enqueue_without_payload_stores_empty_dict(self, app):
        mutation_id = MutationQueue.enqueue("mark_all_notifications_read")
        assert MutationQueue.get(mutation_id).payload == {}

    def test_pending_preserves_insertion_order(self, app):
        ids = [MutationQueue.enqueue("add_comment", {"n": n}) for n in range(5)]
        assert [r.id for r in MutationQueue.list_pending()] == ids

    def test_failed_listing_only_contains_failed(self, app):
        ok_id = MutationQueue.enqueue("add_comment", {})
        bad_id = MutationQueue.enqueue("add_comment", {})
        MutationQueue.update_status(bad_id, "failed", "boom")

        assert [r.id for r in MutationQueue.list_failed()] == [bad_id]
        assert [r.id for r in MutationQueue.list_pending()] == [ok_id]

    def test_syncing_records_are_in_neither_listing(self, app):
        mutation_id = MutationQueue.enqueue("add_comment", {})
        MutationQueue.update_status(mutation_id, "syncing")

        assert MutationQueue.list_pending() == []
        assert MutationQueue.list_failed() == []


# ==============================================================================
# STATUS TRANSITIONS
# ==============================================================================

class TestUpdateStatus:
    """Tests for MutationQueue.update_status."""

    def test_syncing_increments_retries_once(self, app):
        mutation_id = MutationQueue.enqueue("X", {"a": 1})

        assert MutationQueue.update_status(mutation_id, "syncing") is True

        record = MutationQueue.get(mutation_id)
        assert record.status == "syncing"
        assert record.retries == 1
        assert record.action == "X"
        assert record.payload == {"a": 1}

    def test_failed_sets_error_without_incrementing(self, app):
        mutation_id = MutationQueue.enqueue("X", {"a": 1})
        MutationQueue.update_status(mutation_id, "syncing")

        MutationQueue.update_status(mutation_id, "failed", "boom")

        record = MutationQueue.get(mutation_id)
        assert record.status == "failed"
        assert record.error == "boom"
        assert record.retries == 1

    def test_accepts_enum_status(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        MutationQueue.update_status(mutation_id, MutationStatus.SYNCING)
        assert MutationQueue.get(mutation_id).status == "syncing"

    def test_pending_without_error_clears_previous_error(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        MutationQueue.update_status(mutation_id, "pending", "timeout")
        assert MutationQueue.get(mutation_id).error == "timeout"

        MutationQueue.update_status(mutation_id, "pending")
        assert MutationQueue.get(mutation_id).error is None

    def test_failed_without_error_keeps_previous_error(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        MutationQueue.update_status(mutation_id, "pending", "timeout")
        MutationQueue.update_status(mutation_id, "failed")
        assert MutationQueue.get(mutation_id).error == "timeout"

    def test_unknown_id_is_a_noop(self, app):
        assert MutationQueue.update_status(9999, "syncing") is False

    def test_invalid_status_raises(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        with pytest.raises(ValueError, match="Invalid mutation status"):
            MutationQueue.update_status(mutation_id, "done")
        assert MutationQueue.get(mutation_id).status == "pending"

    def test_snapshots_do_not_change_after_update(self, app):
        """Records handed out earlier keep the values they were read with."""
        mutation_id = MutationQueue.enqueue("X", {})
        snapshot = MutationQueue.list_pending()[0]

        MutationQueue.update_status(mutation_id, "syncing")

        assert snapshot.status == "pending"
        assert snapshot.retries == 0


# ==============================================================================
# REMOVE / CLEAR / REQUEUE / STATUS
# ==============================================================================

class TestRemoval:

    def test_removed_mutation_disappears_everywhere(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        failed_id = MutationQueue.enqueue("Y", {})
        MutationQueue.update_status(failed_id, "failed", "boom")

        assert MutationQueue.remove(mutation_id) is True
        assert MutationQueue.remove(failed_id) is True

        assert MutationQueue.get(mutation_id) is None
        assert MutationQueue.list_pending() == []
        assert MutationQueue.list_failed() == []

    def test_remove_unknown_returns_false(self, app):
        assert MutationQueue.remove(12345) is False

    def test_clear_empties_store(self, app):
        for n in range(3):
            MutationQueue.enqueue("X", {"n": n})
        MutationQueue.update_status(MutationQueue.list_pending()[0].id, "failed", "boom")

        assert MutationQueue.clear() == 3
        assert MutationQueue.get_status(True) == {"pending": 0, "failed": 0, "is_online": True}


class TestRequeue:

    def test_requeue_moves_failed_back_to_pending(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        MutationQueue.update_status(mutation_id, "syncing")
        MutationQueue.update_status(mutation_id, "failed", "boom")

        assert MutationQueue.requeue(mutation_id) is True

        record = MutationQueue.get(mutation_id)
        assert record.status == "pending"
        assert record.error is None
        assert record.retries == 1

    def test_requeue_ignores_pending(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        assert MutationQueue.requeue(mutation_id) is False

    def test_requeue_unknown(self, app):
        assert MutationQueue.requeue(404) is False


class TestClaimAndRecovery:

    def test_claim_moves_pending_to_syncing(self, app):
        mutation_id = MutationQueue.enqueue("X", {})
        MutationQueue.update_status(mutation_id, "pending", "timeout")

        assert MutationQueue.claim(mutation_id) is True

        record = MutationQueue.get(mutation_id)
        assert record.status == "syncing"
        assert record.retries == 1
        assert record.error is None

    def test_claim_only_once(self, app):
        mutation_id = MutationQueue.enqueue("X", {})

        assert MutationQueue.claim(mutation_id) is True
        assert MutationQueue.claim(mutation_id) is False
        assert MutationQueue.get(mutation_id).retries == 1

    def test_claim_refuses_removed_or_failed(self, app):
        removed_id = MutationQueue.enqueue("X", {})
        failed_id = MutationQueue.enqueue("X", {})
        MutationQueue.remove(removed_id)
        MutationQueue.update_status(failed_id, "failed", "boom")

        assert MutationQueue.claim(removed_id) is False
        assert MutationQueue.claim(failed_id) is False
        assert MutationQueue.get(failed_id).status == "failed"

    def test_recover_in_flight_returns_syncing_to_pending(self, app):
        stuck_id = MutationQueue.enqueue("X", {"a": 1})
        failed_id = MutationQueue.enqueue("X", {})
        MutationQueue.claim(stuck_id)
        MutationQueue.update_status(failed_id, "failed", "boom")

        assert MutationQueue.recover_in_flight() == 1

        assert [r.id for r in MutationQueue.list_pending()] == [stuck_id]
        record = MutationQueue.get(stuck_id)
        assert record.retries == 1
        assert record.error == "Replay interrupted before completion"
        assert MutationQueue.get(failed_id).status == "failed"

    def test_recover_with_nothing_stuck(self, app):
        MutationQueue.enqueue("X", {})
        assert MutationQueue.recover_in_flight() == 0


class TestQueueStatus:

    def test_counts_pending_and_failed(self, app):
        MutationQueue.enqueue("X", {})
        MutationQueue.enqueue("X", {})
        failed_id = MutationQueue.enqueue("X", {})
        MutationQueue.update_status(failed_id, "failed", "boom")

        assert MutationQueue.get_status(False) == {"pending": 2, "failed": 1, "is_online": False}

    def test_dataframe_has_one_row_per_record(self, app):
        MutationQueue.enqueue("add_comment", {"content": "hi"})
        df = MutationQueue.to_dataframe(MutationQueue.list_pending(), "UTC")

        assert list(df.columns) == ["ID", "Action", "Status", "Retries", "Queued At", "Error", "Payload"]
        assert len(df) == 1
        assert df.iloc[0]["Action"] == "add_comment"

    def test_dataframe_payload_is_json(self, app):
        payload = {"phase_id": "p1", "content": "Rebar's in", "photos": [1, 2], "urgent": None}
        MutationQueue.enqueue("add_comment", payload)

        df = MutationQueue.to_dataframe(MutationQueue.list_pending(), "UTC")

        assert json.loads(df.iloc[0]["Payload"]) == payload

    def test_dataframe_of_nothing_keeps_columns(self, app):
        df = MutationQueue.to_dataframe([])
        assert df.empty
        assert "Action" in df.columns
