from unittest.mock import MagicMock, patch

import pytest

from app.services.scheduler_service import SchedulerService
from app.utils.results import BatchProcessingResult, SyncResult


@pytest.fixture
def service(app):
    service = SchedulerService()
    service.init_app(app)
    yield service
    service.stop()


def test_not_started_when_disabled(service):
    assert service.is_running is False
    assert service.get_status() == {"is_running": False, "jobs": []}


def test_start_registers_jobs(service, app):
    app.config["SYNC_INTERVAL_MINUTES"] = 30

    service.start()

    jobs = {job["id"]: job for job in service.get_status()["jobs"]}
    assert set(jobs) == {"sync_matches", "process_scores"}
    assert "0:30:00" in jobs["sync_matches"]["trigger"]
    assert service.is_running is True


def test_sync_with_updates_triggers_processing(service):
    with patch("app.services.scheduler_service.MatchSync") as sync, patch(
        "app.services.scheduler_service.ScoreProcessor"
    ) as processor:
        sync.return_value.sync_match_data.return_value = SyncResult(updated_matches=2)
        processor.return_value.process_all_finished_matches.return_value = (
            BatchProcessingResult()
        )

        ok, message = service.force_run("sync")

    assert ok is True
    sync.assert_called_once_with(run_stats=service.run_stats)
    processor.return_value.process_all_finished_matches.assert_called_once()


def test_sync_without_updates_skips_processing(service):
    with patch("app.services.scheduler_service.MatchSync") as sync, patch(
        "app.services.scheduler_service.ScoreProcessor"
    ) as processor:
        sync.return_value.sync_match_data.return_value = SyncResult(new_matches=4)

        service.force_run("sync")

    processor.assert_not_called()


def test_job_exceptions_are_recorded(service):
    with patch(
        "app.services.scheduler_service.ScoreProcessor",
        MagicMock(side_effect=RuntimeError("db down")),
    ):
        ok, _ = service.force_run("scores")

    # The job swallows and records the failure so the scheduler keeps running
    assert ok is True
    processing = service.run_stats.get_cache_stats()["processing"]
    assert processing["failed_runs"] == 1
    assert processing["last_error"] == "db down"


def test_unknown_job(service):
    ok, message = service.force_run("teams")
    assert ok is False
    assert "Unknown job" in message


def test_pause_and_resume(service):
    service.start()

    ok, _ = service.pause_job("process_scores")
    jobs = {job["id"]: job for job in service.get_status()["jobs"]}
    assert ok is True
    assert jobs["process_scores"]["next_run"] is None

    ok, _ = service.resume_job("process_scores")
    jobs = {job["id"]: job for job in service.get_status()["jobs"]}
    assert ok is True
    assert jobs["process_scores"]["next_run"] is not None


def test_pause_unknown_job(service):
    service.start()

    ok, message = service.pause_job("update_standings")

    assert ok is False
    assert "update_standings" in message
