# fieldsync/offline/queue.py
import json
from typing import List, Optional

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError

from fieldsync.datetime_utils import now_ms, format_timestamp_local
from fieldsync.logging_config import get_logger
from fieldsync.models import QueuedMutation, MutationStatus, db
from fieldsync.offline.records import MutationRecord

logger = get_logger(__name__)


def _commit():
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise


def _coerce_status(status) -> MutationStatus:
    if isinstance(status, MutationStatus):
        return status
    try:
        return MutationStatus(status)
    except ValueError:
        raise ValueError(f"Invalid mutation status: {status!r}") from None


class MutationQueue:
    """Durable store of writes waiting to be replayed against the central server.

    Every operation runs inside the current app context's session and commits
    before returning. Storage errors are not retried here; they propagate to
    the caller after the session is rolled back.
    """

    @staticmethod
    def enqueue(action: str, payload: Optional[dict] = None) -> int:
        """
        Persist a write intent for later replay.

        Args:
            action: Name of the replay handler, e.g. 'update_phase_status'
            payload: JSON-serializable arguments for that handler (not validated)

        Returns:
            int: Identifier of the queued mutation
        """
        row = QueuedMutation(
            action=action,
            payload=payload or {},
            timestamp=now_ms(),
            retries=0,
            status=MutationStatus.PENDING,
        )
        db.session.add(row)
        _commit()

        logger.info("Mutation queued", mutation_id=row.id, action=action)
        return row.id

    @staticmethod
    def get(mutation_id: int) -> Optional[MutationRecord]:
        row = db.session.get(QueuedMutation, mutation_id)
        return MutationRecord.from_model(row) if row else None

    @staticmethod
    def _list_by_status(status: MutationStatus) -> List[MutationRecord]:
        rows = (
            QueuedMutation.query
            .filter(QueuedMutation.status == status)
            .order_by(QueuedMutation.id.asc())
            .all()
        )
        return [MutationRecord.from_model(row) for row in rows]

    @staticmethod
    def list_pending() -> List[MutationRecord]:
        """Pending mutations in insertion order."""
        return MutationQueue._list_by_status(MutationStatus.PENDING)

    @staticmethod
    def list_failed() -> List[MutationRecord]:
        """Failed mutations, for the inspection/retry UI."""
        return MutationQueue._list_by_status(MutationStatus.FAILED)

    @staticmethod
    def update_status(mutation_id: int, status, error: Optional[str] = None) -> bool:
        """
        Transition a mutation to a new status.

        Moving into 'syncing' counts as a replay attempt and increments
        retries. A supplied error is stored; moving into 'pending' or
        'syncing' without one clears the previous error, moving into
        'failed' without one keeps it.

        Returns:
            bool: False if the mutation does not exist
        """
        new_status = _coerce_status(status)

        row = db.session.get(QueuedMutation, mutation_id)
        if row is None:
            logger.warning("Status update for unknown mutation", mutation_id=mutation_id, status=new_status.value)
            return False

        previous = row.status
        row.status = new_status
        if new_status == MutationStatus.SYNCING:
            row.retries = (row.retries or 0) + 1

        if error is not None:
            row.error = error
        elif new_status != MutationStatus.FAILED:
            row.error = None

        _commit()

        logger.debug(
            "Mutation status updated",
            mutation_id=mutation_id,
            from_status=previous.value,
            to_status=new_status.value,
            retries=row.retries,
        )
        return True

    @staticmethod
    def claim(mutation_id: int) -> bool:
        """
        Move a mutation from 'pending' to 'syncing' for a replay attempt.

        The update only matches a row that is still pending, so a mutation
        removed, cleared or already claimed since it was listed is left alone.

        Returns:
            bool: True if this call claimed the mutation
        """
        claimed = (
            QueuedMutation.query
            .filter(QueuedMutation.id == mutation_id,
                    QueuedMutation.status == MutationStatus.PENDING)
            .update(
                {
                    QueuedMutation.status: MutationStatus.SYNCING,
                    QueuedMutation.retries: QueuedMutation.retries + 1,
                    QueuedMutation.error: None,
                },
                synchronize_session="fetch",
            )
        )
        _commit()

        if not claimed:
            logger.info("Mutation no longer pending, not claimed", mutation_id=mutation_id)
        return bool(claimed)

    @staticmethod
    def recover_in_flight() -> int:
        """
        Put mutations stuck in 'syncing' back to 'pending'.

        A mutation stays 'syncing' when the process died or the pass was
        interrupted mid-dispatch. Replay passes hold the replay lock, so at
        startup or at the start of a pass no attempt is actually in flight.

        Returns:
            int: Number of mutations recovered
        """
        recovered = (
            QueuedMutation.query
            .filter(QueuedMutation.status == MutationStatus.SYNCING)
            .update(
                {
                    QueuedMutation.status: MutationStatus.PENDING,
                    QueuedMutation.error: "Replay interrupted before completion",
                },
                synchronize_session="fetch",
            )
        )
        _commit()

        if recovered:
            logger.warning("Recovered interrupted mutations", count=recovered)
        return recovered

    @staticmethod
    def remove(mutation_id: int) -> bool:
        """Delete a mutation, normally after it replayed successfully."""
        deleted = QueuedMutation.query.filter_by(id=mutation_id).delete()
        _commit()
        if deleted:
            logger.debug("Mutation removed", mutation_id=mutation_id)
        return bool(deleted)

    @staticmethod
    def clear() -> int:
        """Empty the queue. Administrative/debug use only."""
        deleted = QueuedMutation.query.delete()
        _commit()
        logger.warning("Mutation queue cleared", removed=deleted)
        return deleted

    @staticmethod
    def requeue(mutation_id: int) -> bool:
        """
        Put a failed mutation back in line for replay.

        Failed mutations are never retried automatically; this is the
        caller-initiated retry. The retry count is left as is.

        Returns:
            bool: False if the mutation is missing or not failed
        """
        row = db.session.get(QueuedMutation, mutation_id)
        if row is None or row.status != MutationStatus.FAILED:
            return False

        row.status = MutationStatus.PENDING
        row.error = None
        _commit()

        logger.info("Failed mutation requeued", mutation_id=mutation_id, action=row.action)
        return True

    @staticmethod
    def get_status(is_online: bool) -> dict:
        """Counts shown by the offline indicator."""
        pending = QueuedMutation.query.filter(QueuedMutation.status == MutationStatus.PENDING).count()
        failed = QueuedMutation.query.filter(QueuedMutation.status == MutationStatus.FAILED).count()
        return {
            "pending": pending,
            "failed": failed,
            "is_online": bool(is_online),
        }

    @staticmethod
    def to_dataframe(records: List[MutationRecord], tz_name: str = "America/Denver") -> pd.DataFrame:
        """Tabular view of mutations for CSV export."""
        return pd.DataFrame(
            [
                {
                    "ID": r.id,
                    "Action": r.action,
                    "Status": r.status,
                    "Retries": r.retries,
                    "Queued At": format_timestamp_local(r.timestamp, tz_name),
                    "Error": r.error,
                    "Payload": json.dumps(r.payload),
                }
                for r in records
            ],
            columns=["ID", "Action", "Status", "Retries", "Queued At", "Error", "Payload"],
        )
