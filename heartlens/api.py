"""
Flask API for HeartLens
HTTP interface for screenshot analysis, history, trends and feature flags
"""

import io
import uuid
import logging
from datetime import datetime

from flask import Flask, request, jsonify, send_file
from pydantic import ValidationError
from werkzeug.exceptions import RequestEntityTooLarge

from . import config
from .cache import AnalysisCache, compute_content_hash, serialize_result
from .charts import emotion_comparison_chart, communication_patterns_chart
from .feature_flags import (
    is_feature_enabled,
    get_feature_flag,
    get_all_feature_flags,
    set_feature_flag,
    update_feature_flag,
    delete_feature_flag,
)
from .history import save_analysis, get_analysis, get_analyses, delete_analysis
from .ocr import OcrService
from .rate_limit import MemoryRateLimiter
from .redis_admin import list_keys, get_key, delete_key, redis_stats
from .schema_export import generate_schema_analysis, export_json_ld
from .screenshot_analysis import analyze_screenshots
from .storage import AnalysisStore
from .tasks import enqueue_persist
from .text_analysis import analyze_text
from .trends import track_emotional_trend
from .utils.redis_client import get_redis_client, check_redis_health, RedisUnavailable
from .validation import SaveAnalysisRequest, SyncAnalysisRequest, normalize_analysis_result

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_MB * 1024 * 1024

# Initialize components (lazily)
store = None
ocr_service = None
limiter = None


def get_store() -> AnalysisStore:
    """Lazy-load the relational store."""
    global store
    if store is None:
        store = AnalysisStore()
    return store


def get_ocr_service() -> OcrService:
    global ocr_service
    if ocr_service is None:
        ocr_service = OcrService()
    return ocr_service


def get_limiter() -> MemoryRateLimiter:
    """Lazy-load the analyze-chat limiter (20 requests/hour per IP by default)."""
    global limiter
    if limiter is None:
        limiter = MemoryRateLimiter()
    return limiter


def get_kv_client():
    """Shared Redis client or None; never retries inside a request."""
    return get_redis_client(max_retries=0)


def client_ip() -> str:
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr or 'unknown'


def _json_response(payload: str, status: int = 200):
    return app.response_class(payload, status=status, mimetype='application/json')


def _sync_payload(body: SyncAnalysisRequest) -> dict:
    """Map a validated sync body onto storage column names."""
    analysis_results = []
    for item in body.analysis_results:
        insights = item.individual_insights
        analysis_results.append({
            "category": item.category,
            "subject_a_score": item.subject_a_score,
            "subject_b_score": item.subject_b_score,
            "comparison": item.comparison,
            "subject_a_insights": insights.subject_a if insights else None,
            "subject_b_insights": insights.subject_b if insights else None,
            "message_patterns": item.message_patterns,
        })
    gottman_analysis = [item.model_dump() for item in body.gottman_analysis]
    return {"analysis_results": analysis_results, "gottman_analysis": gottman_analysis}


@app.errorhandler(RequestEntityTooLarge)
def too_large(e):
    return jsonify({"error": f"Upload exceeds {config.MAX_UPLOAD_MB}MB"}), 413


# ----------------------------------------------------------------------
# Analysis
# ----------------------------------------------------------------------

@app.route('/api/analyze', methods=['POST'])
def analyze():
    """Analyze uploaded chat screenshots for two participants."""
    try:
        uploads = request.files.getlist('files[]') or request.files.getlist('files')
        if not uploads:
            return jsonify({"error": "No files provided"}), 400

        images = []
        for upload in uploads:
            data = upload.read()
            if len(data) > config.MAX_IMAGE_MB * 1024 * 1024:
                return jsonify({"error": f"File {upload.filename} exceeds {config.MAX_IMAGE_MB}MB"}), 400
            images.append((upload.filename, data))

        user_id = request.form.get('userId') or 'anonymous'
        names = {
            "user_a": request.form.get('userA') or None,
            "user_b": request.form.get('userB') or None,
        }

        cache = AnalysisCache(client=get_kv_client())
        content_hash = compute_content_hash(images, names)
        if config.RESULT_CACHE_ENABLED:
            cached = cache.get_raw(content_hash)
            if cached is not None:
                logger.info(f"Returning cached analysis {content_hash[:12]}")
                return _json_response(cached)

        db = get_store()
        request_id = db.create_analysis_request(user_id, names["user_a"], names["user_b"], len(images))

        try:
            result = analyze_screenshots(images, names, ocr_service=get_ocr_service())
        except Exception as e:
            db.fail_analysis_request(request_id, str(e))
            raise

        schema = generate_schema_analysis(result)
        analysis_id = str(uuid.uuid4())
        response = {
            "id": analysis_id,
            "analysis": result,
            "schema": schema,
            "jsonLd": export_json_ld(schema),
        }

        save_analysis(analysis_id, result, client=get_kv_client())
        payload = cache.set(content_hash, response) if config.RESULT_CACHE_ENABLED else None
        enqueue_persist(request_id, result, str(db.db_path))

        return _json_response(payload or serialize_result(response))

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/analyze-chat', methods=['POST'])
def analyze_chat():
    """Score a single chat screenshot and store the result for the user."""
    allowed, retry_after = get_limiter().consume(client_ip())
    if not allowed:
        response = jsonify({"error": "Rate limit exceeded", "retryAfter": retry_after})
        response.headers['Retry-After'] = str(retry_after)
        return response, 429

    try:
        image = request.files.get('image')
        user_id = request.form.get('userId')
        if image is None or not user_id:
            return jsonify({"error": "Image and userId are required"}), 400

        data = image.read()
        if not data:
            return jsonify({"error": "Empty image"}), 400

        ocr_result = get_ocr_service().process_image(data, image.filename)
        analysis = analyze_text(ocr_result["text"], ocr_result["confidence"])
        analysis["id"] = get_store().insert_text_analysis(user_id, analysis)

        return jsonify(analysis)

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/sync-analysis', methods=['POST'])
def sync_analysis():
    """Replace a user's category results and Gottman analyses."""
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.get('userId') if isinstance(data, dict) else None
        if not user_id:
            return jsonify({"error": "User ID is required"}), 400

        body = SyncAnalysisRequest.model_validate(data)
        counts = get_store().sync_analysis(body.user_id, **_sync_payload(body))
        return jsonify({"success": True, **counts})

    except ValidationError as e:
        return jsonify({"error": "Invalid sync payload", "details": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


# ----------------------------------------------------------------------
# History
# ----------------------------------------------------------------------

@app.route('/api/analysis/save', methods=['POST'])
def analysis_save():
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict) or not data.get('id') or not isinstance(data.get('result'), dict):
            return jsonify({"error": "id and result are required"}), 400

        body = SaveAnalysisRequest.model_validate(data)
        if not save_analysis(str(body.id), body.result.model_dump(), client=get_kv_client()):
            return jsonify({"success": False, "error": "Analysis store unavailable"}), 503
        return jsonify({"success": True, "id": body.id})

    except ValidationError as e:
        logger.warning(f"Rejected analysis {data.get('id')}: {e.error_count()} validation errors")
        return jsonify({"error": "Invalid analysis result", "details": str(e)}), 400
    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/analysis/get', methods=['GET'])
def analysis_get():
    try:
        analysis_id = request.args.get('id')
        if not analysis_id:
            return jsonify({"error": "Analysis ID is required"}), 400

        result = get_analysis(analysis_id, client=get_kv_client())
        if result is None:
            return jsonify({"error": "Analysis not found"}), 404
        return jsonify(result)

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/analysis/history', methods=['GET'])
def analysis_history():
    try:
        start = request.args.get('start', 0, type=int)
        end = request.args.get('end', -1, type=int)
        return jsonify(get_analyses(start, end, client=get_kv_client()))

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/analysis/delete', methods=['DELETE'])
def analysis_delete():
    try:
        analysis_id = request.args.get('id')
        if not analysis_id:
            return jsonify({"error": "Analysis ID is required"}), 400

        return jsonify({"success": delete_analysis(analysis_id, client=get_kv_client())})

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/analysis/trend', methods=['GET'])
def analysis_trend():
    try:
        results = []
        for entry in get_analyses(client=get_kv_client()):
            try:
                results.append(normalize_analysis_result(entry["result"]))
            except ValidationError as e:
                logger.warning(f"Skipping malformed analysis {entry['id']} in trend: {e.error_count()} errors")
        return jsonify(track_emotional_trend(results))

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/analysis/chart', methods=['GET'])
def analysis_chart():
    """Render a stored analysis as PNG (?kind=emotions|patterns)."""
    try:
        analysis_id = request.args.get('id')
        if not analysis_id:
            return jsonify({"error": "Analysis ID is required"}), 400

        kind = request.args.get('kind', 'emotions')
        if kind not in ('emotions', 'patterns'):
            return jsonify({"error": f"Unknown chart kind: {kind}"}), 400

        result = get_analysis(analysis_id, client=get_kv_client())
        if result is None:
            return jsonify({"error": "Analysis not found"}), 404

        try:
            result = normalize_analysis_result(result)
        except ValidationError as e:
            logger.warning(f"Stored analysis {analysis_id} is malformed: {e.error_count()} errors")
            return jsonify({"error": "Stored analysis is malformed"}), 422

        render = emotion_comparison_chart if kind == 'emotions' else communication_patterns_chart
        return send_file(io.BytesIO(render(result)), mimetype='image/png')

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


# ----------------------------------------------------------------------
# Feature flags
# ----------------------------------------------------------------------

@app.route('/api/features/<name>', methods=['GET'])
def feature_status(name):
    try:
        enabled = is_feature_enabled(name, request.args.get('userId'), client=get_kv_client())
        return jsonify({"name": name, "enabled": enabled})

    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/admin/features', methods=['GET', 'POST'])
def admin_features():
    try:
        if request.method == 'GET':
            return jsonify(get_all_feature_flags(client=get_kv_client()))

        data = request.get_json(silent=True) or {}
        return jsonify(set_feature_flag(data, client=get_kv_client())), 201

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except RedisUnavailable as e:
        logger.warning(f"Feature flag store unavailable: {e}")
        return jsonify({"error": "Feature flag store unavailable"}), 503
    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/admin/features/<name>', methods=['GET', 'PATCH', 'DELETE'])
def admin_feature(name):
    try:
        client = get_kv_client()
        if request.method == 'GET':
            flag = get_feature_flag(name, client=client)
        elif request.method == 'PATCH':
            flag = update_feature_flag(name, request.get_json(silent=True) or {}, client=client)
        else:
            flag = {"name": name, "deleted": True} if delete_feature_flag(name, client=client) else None

        if flag is None:
            return jsonify({"error": f"Feature flag {name} not found"}), 404
        return jsonify(flag)

    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except RedisUnavailable as e:
        logger.warning(f"Feature flag store unavailable: {e}")
        return jsonify({"error": "Feature flag store unavailable"}), 503
    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


# ----------------------------------------------------------------------
# Redis admin
# ----------------------------------------------------------------------

@app.route('/api/admin/redis/keys', methods=['GET'])
def admin_redis_keys():
    """List keys matching ?pattern= (glob, default *)."""
    try:
        pattern = request.args.get('pattern') or '*'
        limit = request.args.get('limit', 1000, type=int)
        keys = list_keys(pattern, limit=limit, client=get_kv_client())
        return jsonify({"pattern": pattern, "count": len(keys), "keys": keys})

    except RedisUnavailable as e:
        logger.warning(f"Redis admin unavailable: {e}")
        return jsonify({"error": "Redis unavailable"}), 503
    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/admin/redis/keys/<path:key>', methods=['GET', 'DELETE'])
def admin_redis_key(key):
    try:
        client = get_kv_client()
        if request.method == 'GET':
            entry = get_key(key, client=client)
        else:
            entry = {"key": key, "deleted": True} if delete_key(key, client=client) else None

        if entry is None:
            return jsonify({"error": f"Key {key} not found"}), 404
        return jsonify(entry)

    except RedisUnavailable as e:
        logger.warning(f"Redis admin unavailable: {e}")
        return jsonify({"error": "Redis unavailable"}), 503
    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"error": str(e)}), 500


@app.route('/api/admin/redis/stats', methods=['GET'])
def admin_redis_stats():
    try:
        return jsonify(redis_stats(client=get_kv_client()))

    except RedisUnavailable as e:
        logger.warning(f"Redis admin unavailable: {e}")
        return jsonify({"status": "error", "message": "Redis unavailable"}), 503
    except Exception as e:
        logger.error(f"API error: {e}", exc_info=True)
        return jsonify({"status": "error", "message": str(e)}), 500


# ----------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------

@app.route('/api/health/redis', methods=['GET'])
def redis_health():
    status = check_redis_health(get_kv_client())
    return jsonify(status), (200 if status["status"] == "ok" else 503)


@app.route('/health')
def health():
    """Health check endpoint for Docker and monitoring."""
    status = {
        'status': 'ok',
        'timestamp': datetime.now().isoformat(),
        'components': {}
    }

    # Check Redis
    redis_status = {'status': 'down', 'latency_ms': None}
    ping = check_redis_health(get_kv_client())
    if ping['status'] == 'ok':
        redis_status = {'status': 'up', 'latency_ms': ping['latency_ms']}
    else:
        redis_status['error'] = ping['error']
    status['components']['redis'] = redis_status

    # Check DB
    db_status = {'status': 'up' if get_store().ping() else 'down'}
    status['components']['db'] = db_status

    # Determine overall health
    if redis_status['status'] == 'down' or db_status['status'] == 'down':
        status['status'] = 'degraded'
        return jsonify(status), 503

    return jsonify(status)


if __name__ == '__main__':
    # Validate config
    valid, msg = config.validate_config()
    if not valid:
        logger.warning(f"Config validation: {msg}")

    # Run Flask app
    logger.info(f"Starting server (debug=True, use_reloader={config.DEV_USE_RELOADER})")
    app.run(debug=True, use_reloader=config.DEV_USE_RELOADER, host='0.0.0.0', port=config.SERVER_PORT)
