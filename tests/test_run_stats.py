from app.services.run_stats import RunStats
from app.utils.results import BatchProcessingResult, SyncResult


def test_starts_empty():
    stats = RunStats().get_cache_stats()

    assert stats["sync"]["total_runs"] == 0
    assert stats["sync"]["last_run"] is None
    assert stats["processing"]["points_awarded"] == 0
    assert stats["started_at"]


def test_records_sync_runs():
    run_stats = RunStats()
    run_stats.record_sync(SyncResult(new_matches=3, updated_matches=1, total_matches=10))

    failed = SyncResult(failed=True)
    failed.add_error("feed", "Failed to fetch match data: timeout")
    run_stats.record_sync(failed)

    sync = run_stats.get_cache_stats()["sync"]
    assert sync["total_runs"] == 2
    assert sync["failed_runs"] == 1
    assert sync["runs_with_errors"] == 1
    assert sync["new_matches"] == 3
    assert sync["updated_matches"] == 1
    assert sync["last_error"] == "feed: Failed to fetch match data: timeout"
    assert sync["last_result"]["failed"] is True
    assert isinstance(sync["last_run"], str)


def test_records_processing_runs():
    run_stats = RunStats()
    run_stats.record_processing(
        BatchProcessingResult(
            processed_matches=2, total_predictions_processed=7, total_points_awarded=19
        )
    )
    run_stats.record_processing(
        BatchProcessingResult(
            processed_matches=1, total_predictions_processed=1, total_points_awarded=2
        )
    )

    processing = run_stats.get_cache_stats()["processing"]
    assert processing["total_runs"] == 2
    assert processing["predictions_processed"] == 8
    assert processing["points_awarded"] == 21
    assert processing["last_result"]["processed_matches"] == 1


def test_record_failure_and_reset():
    run_stats = RunStats()
    run_stats.record_failure("processing", RuntimeError("boom"))

    processing = run_stats.get_cache_stats()["processing"]
    assert processing["failed_runs"] == 1
    assert processing["last_error"] == "boom"

    run_stats.reset()
    assert run_stats.get_cache_stats()["processing"]["failed_runs"] == 0


def test_snapshot_is_detached():
    run_stats = RunStats()
    snapshot = run_stats.get_cache_stats()
    snapshot["sync"]["total_runs"] = 99

    assert run_stats.get_cache_stats()["sync"]["total_runs"] == 0


def test_each_app_owns_its_stats(app):
    from app import create_app

    other = create_app("testing")

    assert other.extensions["run_stats"] is not app.extensions["run_stats"]
