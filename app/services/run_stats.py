"""
Process-local statistics for sync and score processing runs.

One RunStats instance is created per app by create_app() and stored in
app.extensions["run_stats"]. It is only an observability shortcut: the
database stays authoritative, and everything here is lost on restart.
"""

import threading
from datetime import datetime, timezone


def _empty_stats():
    return {
        "started_at": datetime.now(timezone.utc),
        "sync": {
            "last_run": None,
            "last_result": None,
            "total_runs": 0,
            "failed_runs": 0,
            "runs_with_errors": 0,
            "new_matches": 0,
            "updated_matches": 0,
            "last_error": None,
        },
        "processing": {
            "last_run": None,
            "last_result": None,
            "total_runs": 0,
            "failed_runs": 0,
            "runs_with_errors": 0,
            "predictions_processed": 0,
            "points_awarded": 0,
            "last_error": None,
        },
    }


class RunStats:
    """Counters and timestamps for the latest sync and processing runs"""

    def __init__(self):
        # The scheduler thread and request threads both record runs
        self._lock = threading.Lock()
        self._stats = _empty_stats()

    def reset(self):
        with self._lock:
            self._stats = _empty_stats()

    def record_sync(self, result):
        """Record a SyncResult"""
        with self._lock:
            stats = self._stats["sync"]
            stats["last_run"] = datetime.now(timezone.utc)
            stats["last_result"] = {
                "new_matches": result.new_matches,
                "updated_matches": result.updated_matches,
                "total_matches": result.total_matches,
                "error_count": len(result.errors),
                "failed": result.failed,
            }
            self._count_run(stats, result)
            stats["new_matches"] += result.new_matches
            stats["updated_matches"] += result.updated_matches

    def record_processing(self, result):
        """Record a BatchProcessingResult"""
        with self._lock:
            stats = self._stats["processing"]
            stats["last_run"] = datetime.now(timezone.utc)
            stats["last_result"] = {
                "processed_matches": result.processed_matches,
                "total_predictions_processed": result.total_predictions_processed,
                "total_points_awarded": result.total_points_awarded,
                "error_count": len(result.errors),
                "failed": result.failed,
            }
            self._count_run(stats, result)
            stats["predictions_processed"] += result.total_predictions_processed
            stats["points_awarded"] += result.total_points_awarded

    def record_failure(self, run_type, error):
        """Record a run that raised before producing a result"""
        with self._lock:
            stats = self._stats[run_type]
            stats["last_run"] = datetime.now(timezone.utc)
            stats["total_runs"] += 1
            stats["failed_runs"] += 1
            stats["last_error"] = str(error)

    @staticmethod
    def _count_run(stats, result):
        stats["total_runs"] += 1
        if result.failed:
            stats["failed_runs"] += 1
        if result.errors:
            stats["runs_with_errors"] += 1
            stats["last_error"] = str(result.errors[-1])

    def get_cache_stats(self):
        """Snapshot of the current statistics, safe to serialise"""
        with self._lock:
            return {
                "started_at": self._stats["started_at"].isoformat(),
                "sync": self._serialise(self._stats["sync"]),
                "processing": self._serialise(self._stats["processing"]),
            }

    @staticmethod
    def _serialise(section):
        snapshot = dict(section)
        if snapshot["last_run"] is not None:
            snapshot["last_run"] = snapshot["last_run"].isoformat()
        if snapshot["last_result"] is not None:
            snapshot["last_result"] = dict(snapshot["last_result"])
        return snapshot
