from datetime import datetime
from enum import Enum

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class MutationStatus(Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    FAILED = "failed"


class RunStatus(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class QueuedMutation(db.Model):
    """A write that could not be sent to the central server yet."""
    __tablename__ = "queued_mutations"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    action = db.Column(db.String(100), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    timestamp = db.Column(db.BigInteger, nullable=False, index=True)  # epoch ms
    retries = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.Enum(MutationStatus), nullable=False, default=MutationStatus.PENDING, index=True)
    error = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<QueuedMutation {self.id} - {self.action} - {self.status}>"


class ReplayRun(db.Model):
    """Audit row for one pass of the replay driver."""
    __tablename__ = "replay_runs"

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    trigger = db.Column(db.String(20), nullable=False)  # 'scheduler', 'manual', 'reconnect'
    status = db.Column(db.Enum(RunStatus), nullable=False, default=RunStatus.IN_PROGRESS)

    # Timing
    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    duration_seconds = db.Column(db.Float, nullable=True)

    # Outcome counts
    replayed = db.Column(db.Integer, default=0)
    requeued = db.Column(db.Integer, default=0)
    failed = db.Column(db.Integer, default=0)
    remaining = db.Column(db.Integer, default=0)

    error_message = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<ReplayRun {self.run_id} - {self.trigger} - {self.status}>"

    def to_dict(self):
        from fieldsync.datetime_utils import format_datetime_utc
        return {
            'run_id': self.run_id,
            'trigger': self.trigger,
            'status': self.status.value,
            'started_at': format_datetime_utc(self.started_at),
            'completed_at': format_datetime_utc(self.completed_at),
            'duration_seconds': self.duration_seconds,
            'replayed': self.replayed,
            'requeued': self.requeued,
            'failed': self.failed,
            'remaining': self.remaining,
            'error_message': self.error_message,
        }
