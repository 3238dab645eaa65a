# fieldsync/offline/records.py
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class MutationRecord:
    id: int                            # Assigned by DB
    action: str                        # 'update_phase_status', 'add_comment', etc.
    payload: Dict[str, Any]            # Arguments for the replay handler
    timestamp: int                     # Epoch ms at enqueue; replay ordering key
    retries: int
    status: str                        # 'pending', 'syncing', 'failed'
    error: Optional[str] = None

    @classmethod
    def from_model(cls, row) -> "MutationRecord":
        return cls(
            id=row.id,
            action=row.action,
            payload=dict(row.payload or {}),
            timestamp=row.timestamp,
            retries=row.retries,
            status=row.status.value,
            error=row.error,
        )

    def to_dict(self, tz_name: Optional[str] = None) -> dict:
        """Serialize for JSON response"""
        from fieldsync.datetime_utils import format_timestamp_local
        data = {
            "id": self.id,
            "action": self.action,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "retries": self.retries,
            "status": self.status,
            "error": self.error,
        }
        if tz_name:
            data["queued_at"] = format_timestamp_local(self.timestamp, tz_name)
        return data


@dataclass
class OfflineActionResult:
    queued: bool                       # Stored for replay instead of executed now
    data: Any = None                   # Executor's return value (only when not queued)
    mutation_id: Optional[int] = None  # Queue id (only when queued)

    def to_dict(self) -> dict:
        result = {"queued": self.queued}
        if self.queued:
            result["mutation_id"] = self.mutation_id
        else:
            result["data"] = self.data
        return result


@dataclass
class ReplaySummary:
    run_id: Optional[str] = None
    replayed: int = 0
    requeued: int = 0
    failed: int = 0
    remaining: int = 0
    skipped: int = 0                   # Removed or changed after the pass listed them
    recovered: int = 0                 # Interrupted 'syncing' mutations put back to pending
    stopped_early: bool = False
    skipped_offline: bool = False
    outcomes: Dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "replayed": self.replayed,
            "requeued": self.requeued,
            "failed": self.failed,
            "remaining": self.remaining,
            "skipped": self.skipped,
            "recovered": self.recovered,
            "stopped_early": self.stopped_early,
            "skipped_offline": self.skipped_offline,
        }
