"""
Local API for the device's offline queue: status indicator, failed-write
inspection and retry, manual sync, and submitting writes with offline fallback.
"""
from flask import Response, current_app, jsonify, request

from fieldsync.api import offline_bp
from fieldsync.logging_config import get_logger
from fieldsync.models import ReplayRun
from fieldsync.offline.action import offline_action
from fieldsync.offline.errors import PermanentError, ReplayInProgressError
from fieldsync.offline.queue import MutationQueue
from fieldsync.offline.runtime import get_runtime

logger = get_logger(__name__)

LISTINGS = {
    "pending": MutationQueue.list_pending,
    "failed": MutationQueue.list_failed,
}


def _listing_from_args():
    status = request.args.get("status", "pending").lower()
    if status not in LISTINGS:
        return status, None
    return status, LISTINGS[status]()


@offline_bp.route("/status", methods=["GET"])
def queue_status():
    runtime = get_runtime()
    status = MutationQueue.get_status(runtime.connectivity.is_online())
    status["is_syncing"] = runtime.driver.is_syncing()
    return jsonify(status), 200


@offline_bp.route("/mutations", methods=["GET"])
def list_mutations():
    """List pending (default) or failed mutations: /offline/mutations?status=failed"""
    status, records = _listing_from_args()
    if records is None:
        return jsonify({'error': f"Invalid status '{status}', expected pending or failed"}), 400

    tz_name = current_app.config.get("DISPLAY_TIMEZONE")
    return jsonify({
        "status": status,
        "mutations": [r.to_dict(tz_name) for r in records],
        "total_count": len(records),
    }), 200


@offline_bp.route("/mutations/export", methods=["GET"])
def export_mutations():
    """Download pending or failed mutations as CSV."""
    status, records = _listing_from_args()
    if records is None:
        return jsonify({'error': f"Invalid status '{status}', expected pending or failed"}), 400

    df = MutationQueue.to_dataframe(records, current_app.config.get("DISPLAY_TIMEZONE", "UTC"))
    return Response(
        df.to_csv(index=False),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={status}_mutations.csv"},
    )


@offline_bp.route("/mutations/<int:mutation_id>/retry", methods=["POST"])
def retry_mutation(mutation_id):
    record = MutationQueue.get(mutation_id)
    if record is None:
        return jsonify({'error': f"Mutation {mutation_id} not found"}), 404
    if not MutationQueue.requeue(mutation_id):
        return jsonify({'error': f"Mutation {mutation_id} is {record.status}, only failed mutations can be retried"}), 409

    return jsonify({"mutation": MutationQueue.get(mutation_id).to_dict()}), 200


@offline_bp.route("/mutations/<int:mutation_id>", methods=["DELETE"])
def delete_mutation(mutation_id):
    if not MutationQueue.remove(mutation_id):
        return jsonify({'error': f"Mutation {mutation_id} not found"}), 404
    return jsonify({"removed": mutation_id}), 200


@offline_bp.route("/mutations", methods=["DELETE"])
def clear_mutations():
    removed = MutationQueue.clear()
    return jsonify({"removed": removed}), 200


@offline_bp.route("/sync", methods=["POST"])
def sync_now():
    """Run a replay pass immediately."""
    runtime = get_runtime()
    try:
        summary = runtime.driver.sync_all(trigger="manual")
    except ReplayInProgressError as e:
        return jsonify({'error': str(e)}), 409

    return jsonify(summary.to_dict()), 200


@offline_bp.route("/actions/<action>", methods=["POST"])
def submit_action(action):
    """
    Perform a field write, queueing it if the central server can't be reached.

    Body: {"payload": {...}}
    """
    runtime = get_runtime()
    if not runtime.registry.has(action):
        return jsonify({'error': f"Unknown action: {action}"}), 404

    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not isinstance(body.get("payload", {}), dict):
        return jsonify({'error': 'Body must be a JSON object with an object "payload"'}), 400
    payload = body.get("payload", {})

    try:
        result = offline_action(
            action,
            lambda: runtime.registry.dispatch_action(action, payload),
            payload,
            online=runtime.connectivity.is_online(),
        )
    except PermanentError as e:
        logger.info("Field write rejected", action=action, status_code=e.status_code, error=str(e))
        return jsonify({'error': str(e)}), e.status_code

    return jsonify(result.to_dict()), 202 if result.queued else 200


@offline_bp.route("/connectivity", methods=["GET"])
def get_connectivity():
    return jsonify(get_runtime().connectivity.get_status()), 200


@offline_bp.route("/connectivity", methods=["PUT"])
def set_connectivity():
    """Let the host push its connectivity flag: {"online": true|false}"""
    body = request.get_json(silent=True) or {}
    online = body.get("online")
    if not isinstance(online, bool):
        return jsonify({'error': '"online" must be a boolean'}), 400

    runtime = get_runtime()
    changed = runtime.connectivity.set_online(online)
    response = {"is_online": online, "changed": changed}

    # Coming back online replays the queue right away
    if changed and online:
        try:
            response["replay"] = runtime.driver.sync_all(trigger="reconnect").to_dict()
        except ReplayInProgressError:
            response["replay"] = None

    return jsonify(response), 200


@offline_bp.route("/runs", methods=["GET"])
def list_runs():
    """Recent replay passes, newest first."""
    try:
        limit = max(1, min(int(request.args.get("limit", 20)), 200))
    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400

    runs = ReplayRun.query.order_by(ReplayRun.started_at.desc(), ReplayRun.id.desc()).limit(limit).all()
    return jsonify({"runs": [run.to_dict() for run in runs]}), 200
