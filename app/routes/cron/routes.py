import hmac
import logging
from datetime import date, datetime, timezone
from functools import wraps

from flask import current_app, jsonify, request

from app import db, get_run_stats, limiter
from app.models import Match
from app.routes.cron import bp
from app.utils.cache_utils import get_feed_cache_stats
from app.utils.match_sync import MatchSync
from app.utils.score_processor import (
    ScoreProcessor,
    get_processing_stats,
    has_unprocessed_matches,
)

logger = logging.getLogger(__name__)


def cron_rate_limit():
    return current_app.config.get("CRON_RATE_LIMIT", "30 per minute")


def require_cron_secret(f):
    """Reject requests without 'Authorization: Bearer <CRON_SECRET>' before any work"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if secret:
            auth_header = request.headers.get("Authorization", "")
            expected = f"Bearer {secret}"
            if not hmac.compare_digest(auth_header.encode(), expected.encode()):
                logger.warning(
                    f"Rejected unauthorized cron request to {request.path} "
                    f"from {request.remote_addr}"
                )
                return jsonify({"success": False, "error": "Unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated_function


def add_no_cache_headers(f):
    """Trigger and status responses must never be cached"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        response = current_app.make_response(f(*args, **kwargs))
        response.headers["Cache-Control"] = (
            "no-store, no-cache, must-revalidate, max-age=0"
        )
        return response

    return decorated_function


def _parse_date_window():
    """
    Read an optional date window from the query string or JSON body.

    Returns:
        tuple: (date_from, date_to, error_message)
    """
    body = request.get_json(silent=True) or {}

    raw_from = request.args.get("date_from") or request.args.get("dateFrom")
    raw_to = request.args.get("date_to") or request.args.get("dateTo")
    raw_from = raw_from or body.get("date_from") or body.get("dateFrom")
    raw_to = raw_to or body.get("date_to") or body.get("dateTo")

    if not raw_from and not raw_to:
        return None, None, None

    if not raw_from or not raw_to:
        return None, None, "Both date_from and date_to are required for a date window"

    try:
        date_from = date.fromisoformat(str(raw_from))
        date_to = date.fromisoformat(str(raw_to))
    except ValueError:
        return None, None, "Dates must be in YYYY-MM-DD format"

    if date_from > date_to:
        return None, None, "date_from must not be after date_to"

    return date_from, date_to, None


@bp.route("/sync-matches", methods=["GET", "POST"])
@limiter.limit(cron_rate_limit)
@require_cron_secret
@add_no_cache_headers
def sync_matches():
    """Trigger a match data sync"""
    date_from, date_to, error = _parse_date_window()
    if error:
        return jsonify({"success": False, "error": error}), 400

    try:
        logger.info("Starting match data sync job...")

        result = MatchSync(run_stats=get_run_stats()).sync_match_data(
            date_from=date_from, date_to=date_to
        )

        logger.info(
            f"Match data sync completed: {result.new_matches} new, "
            f"{result.updated_matches} updated, {result.total_matches} total, "
            f"{len(result.errors)} errors"
        )
        if result.errors:
            logger.error(f"Match sync errors: {[str(e) for e in result.errors]}")

        return jsonify({"success": not result.failed, "data": result.to_dict()})

    except Exception as e:
        db.session.rollback()
        get_run_stats().record_failure("sync", e)
        logger.error(f"Match sync job failed: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Match sync failed"}), 500


@bp.route("/process-scores", methods=["GET", "POST"])
@limiter.limit(cron_rate_limit)
@require_cron_secret
@add_no_cache_headers
def process_scores():
    """Trigger score processing for all finished matches"""
    try:
        logger.info("Starting score processing job...")

        result = ScoreProcessor(
            run_stats=get_run_stats()
        ).process_all_finished_matches()

        logger.info(
            f"Score processing completed: {result.processed_matches} matches, "
            f"{result.total_predictions_processed} predictions, "
            f"{result.total_points_awarded} points, {len(result.errors)} errors"
        )
        if result.errors:
            logger.error(f"Score processing errors: {[str(e) for e in result.errors]}")

        return jsonify({"success": not result.failed, "data": result.to_dict()})

    except Exception as e:
        db.session.rollback()
        get_run_stats().record_failure("processing", e)
        logger.error(f"Score processing job failed: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Score processing failed"}), 500


@bp.route("/status")
@add_no_cache_headers
def status():
    """Read-only processing, sync and cache status"""
    try:
        processing_stats = get_processing_stats()

        return jsonify(
            {
                "success": True,
                "data": {
                    "processing": {
                        "totalMatches": processing_stats["total_matches"],
                        "finishedMatches": processing_stats["finished_matches"],
                        "processedPredictions": processing_stats[
                            "processed_predictions"
                        ],
                        "unprocessedPredictions": processing_stats[
                            "unprocessed_predictions"
                        ],
                        "totalPointsAwarded": processing_stats["total_points_awarded"],
                        "hasUnprocessedMatches": has_unprocessed_matches(),
                    },
                    "sync": Match.get_sync_status(),
                    "cache": {
                        "runs": get_run_stats().get_cache_stats(),
                        "feed": get_feed_cache_stats(),
                    },
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            }
        )

    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to get cron job status: {e}", exc_info=True)
        return jsonify({"success": False, "error": "Failed to get status"}), 500
