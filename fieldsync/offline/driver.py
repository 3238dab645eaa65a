# fieldsync/offline/driver.py
from datetime import datetime
from typing import Optional

from fieldsync.logging_config import get_logger, ReplayContext
from fieldsync.models import ReplayRun, RunStatus, MutationStatus, db
from fieldsync.offline.connectivity import ConnectivityMonitor
from fieldsync.offline.errors import is_transient
from fieldsync.offline.queue import MutationQueue
from fieldsync.offline.records import MutationRecord, ReplaySummary
from fieldsync.offline.registry import ReplayRegistry
from fieldsync.sync_lock import ReplayLock

logger = get_logger(__name__)

REPLAYED = "replayed"
REQUEUED = "requeued"
FAILED = "failed"
SKIPPED = "skipped"


class ReplayDriver:
    """
    Replays queued mutations against the central server.

    One pass takes every pending mutation, oldest first, and runs it through
    the registry one at a time. Transient failures put the mutation back to
    pending (until max_retries attempts) and end the pass, so later writes
    are not sent ahead of an earlier one. Permanent failures and unknown
    actions go straight to failed, where they wait for a manual requeue.
    """

    def __init__(self, registry: ReplayRegistry, connectivity: ConnectivityMonitor,
                 max_retries: int = 5, lock: Optional[ReplayLock] = None):
        self.registry = registry
        self.connectivity = connectivity
        self.max_retries = max_retries
        self.lock = lock or ReplayLock()

    def is_syncing(self) -> bool:
        return self.lock.is_locked()

    def replay_mutation(self, record: MutationRecord) -> str:
        """
        Replay a single queued mutation.

        Returns:
            str: 'replayed', 'requeued', 'failed', or 'skipped' when the
                 mutation was removed or changed since it was listed
        """
        if not self.registry.has(record.action):
            message = f"No handler registered for action: {record.action}"
            if not MutationQueue.update_status(record.id, MutationStatus.FAILED, message):
                return SKIPPED
            logger.error("Unknown replay action", mutation_id=record.id, action=record.action)
            return FAILED

        if not MutationQueue.claim(record.id):
            return SKIPPED
        attempts = record.retries + 1

        try:
            self.registry.dispatch(record)
        except Exception as e:
            error_message = str(e) or e.__class__.__name__

            if is_transient(e) and attempts < self.max_retries:
                MutationQueue.update_status(record.id, MutationStatus.PENDING, error_message)
                logger.warning(
                    f"Mutation {record.id} failed, will retry (attempt {attempts}/{self.max_retries})",
                    mutation_id=record.id,
                    action=record.action,
                    error=error_message,
                )
                return REQUEUED

            MutationQueue.update_status(record.id, MutationStatus.FAILED, error_message)
            logger.error(
                f"Mutation {record.id} failed permanently",
                mutation_id=record.id,
                action=record.action,
                attempts=attempts,
                transient=is_transient(e),
                error=error_message,
            )
            return FAILED

        MutationQueue.remove(record.id)
        logger.info("Mutation replayed", mutation_id=record.id, action=record.action)
        return REPLAYED

    def sync_all(self, trigger: str = "manual") -> ReplaySummary:
        """
        Replay all pending mutations, oldest first.

        Raises:
            ReplayInProgressError: If another pass is running
        """
        if not self.connectivity.is_online():
            logger.debug("Offline, skipping replay pass", trigger=trigger)
            return ReplaySummary(skipped_offline=True)

        with self.lock.acquire(f"replay:{trigger}"):
            with ReplayContext(trigger) as ctx:
                run = ReplayRun(run_id=ctx.run_id, trigger=trigger, status=RunStatus.IN_PROGRESS)
                db.session.add(run)
                db.session.commit()

                summary = ReplaySummary(run_id=ctx.run_id)
                try:
                    summary.recovered = MutationQueue.recover_in_flight()
                    self._replay_pending(summary)
                except BaseException as e:
                    # Also covers SystemExit/KeyboardInterrupt so the run row is closed
                    db.session.rollback()
                    self._finish_run(run, ctx, summary, RunStatus.FAILED, str(e) or e.__class__.__name__)
                    raise

                self._finish_run(run, ctx, summary, RunStatus.COMPLETED)

        logger.info(
            f"Replay pass finished: {summary.replayed} replayed, {summary.requeued} requeued, "
            f"{summary.failed} failed, {summary.remaining} remaining",
            run_id=summary.run_id,
        )
        return summary

    def _replay_pending(self, summary: ReplaySummary) -> None:
        pending = sorted(MutationQueue.list_pending(), key=lambda r: (r.timestamp, r.id))

        for record in pending:
            if not self.connectivity.is_online():
                summary.stopped_early = True
                break

            outcome = self.replay_mutation(record)
            summary.outcomes[record.id] = outcome
            if outcome == REPLAYED:
                summary.replayed += 1
            elif outcome == REQUEUED:
                summary.requeued += 1
                summary.stopped_early = True
                break
            elif outcome == SKIPPED:
                summary.skipped += 1
            else:
                summary.failed += 1

        summary.remaining = len(MutationQueue.list_pending())

    def _finish_run(self, run: ReplayRun, ctx: ReplayContext, summary: ReplaySummary,
                    status: RunStatus, error_message: Optional[str] = None) -> None:
        run.status = status
        run.completed_at = datetime.utcnow()
        run.duration_seconds = ctx.elapsed_seconds
        run.replayed = summary.replayed
        run.requeued = summary.requeued
        run.failed = summary.failed
        run.remaining = summary.remaining
        run.error_message = error_message
        db.session.commit()
