"""
Batch sync endpoint. Other site devices (or a service worker) post the
writes they collected offline; the gateway performs each one against the
central server, queueing whatever can't get through right now.

POST /api/sync
Body: {"mutations": [{"action": str, "payload": {...}, "timestamp": int}]}
Returns: {"results": [{"action", "timestamp", "status": "ok"|"queued"|"error", "error"?}],
          "synced": int, "queued": int, "failed": int}
"""
from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from fieldsync.api import api_bp
from fieldsync.auth import token_required
from fieldsync.logging_config import get_logger
from fieldsync.offline.action import offline_action
from fieldsync.offline.runtime import get_runtime
from fieldsync.rate_limit import rate_limit_headers

logger = get_logger(__name__)


def _client_ip():
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _timestamp_key(mutation):
    timestamp = mutation.get("timestamp")
    return timestamp if isinstance(timestamp, (int, float)) else 0


def _process_mutation(runtime, mutation, online):
    action = mutation.get("action")
    payload = mutation.get("payload") or {}
    result = {"action": action, "timestamp": mutation.get("timestamp")}

    if not isinstance(action, str) or not isinstance(payload, dict):
        result.update(status="error", error="Each mutation needs a string action and an object payload")
        return result
    if not runtime.registry.has(action):
        result.update(status="error", error=f"Unknown action: {action}")
        return result

    try:
        outcome = offline_action(
            action,
            lambda: runtime.registry.dispatch_action(action, payload),
            payload,
            online=online,
        )
    except SQLAlchemyError:
        raise
    except Exception as e:
        logger.warning("Batch mutation failed", action=action, error=str(e))
        result.update(status="error", error=str(e) or "Unknown error")
        return result

    result["status"] = "queued" if outcome.queued else "ok"
    return result


@api_bp.route("/sync", methods=["POST"])
def sync_batch():
    limit = current_app.config.get("SYNC_RATE_LIMIT", 20)
    window = current_app.config.get("SYNC_RATE_WINDOW_SECONDS", 60)
    limited, rl_headers = rate_limit_headers(f"sync:{_client_ip()}", limit, window)
    if limited:
        return jsonify({'error': 'Rate limit exceeded. Try again later.'}), 429, rl_headers

    return _sync_batch_authenticated()


@token_required
def _sync_batch_authenticated():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({'error': 'Invalid JSON body'}), 400

    mutations = body.get("mutations")
    if not isinstance(mutations, list) or not mutations:
        return jsonify({'error': 'mutations must be a non-empty array'}), 400

    max_batch = current_app.config.get("SYNC_MAX_BATCH_SIZE", 50)
    if len(mutations) > max_batch:
        return jsonify({'error': f'Batch size exceeds maximum of {max_batch}'}), 400

    if not all(isinstance(m, dict) for m in mutations):
        return jsonify({'error': 'Each mutation must be an object'}), 400

    runtime = get_runtime()

    # Oldest first, one at a time. Once one write is queued the rest of the
    # batch is queued behind it so none of them overtakes it on replay.
    online = runtime.connectivity.is_online()
    results = []
    for mutation in sorted(mutations, key=_timestamp_key):
        result = _process_mutation(runtime, mutation, online)
        if result["status"] == "queued":
            online = False
        results.append(result)

    synced = sum(1 for r in results if r["status"] == "ok")
    queued = sum(1 for r in results if r["status"] == "queued")
    failed = sum(1 for r in results if r["status"] == "error")
    logger.info("Batch sync processed", synced=synced, queued=queued, failed=failed)

    return jsonify({
        "results": results,
        "synced": synced,
        "queued": queued,
        "failed": failed,
    }), 200
