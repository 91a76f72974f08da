"""
PL Predictor Background Scheduler Service

Hosts the periodic match sync and score processing jobs using APScheduler.
Each job runs one sync or processing run to completion inside the app
context and records its result in the app's RunStats.
"""

import atexit
import logging

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app import db
from app.utils.match_sync import MatchSync
from app.utils.score_processor import ScoreProcessor

logger = logging.getLogger(__name__)

# job id -> (display name, interval config key, default minutes, RunStats section)
JOBS = {
    "sync_matches": ("Sync Match Data", "SYNC_INTERVAL_MINUTES", 15, "sync"),
    "process_scores": (
        "Process Finished Match Scores",
        "SCORE_PROCESSING_INTERVAL_MINUTES",
        5,
        "processing",
    ),
}

# force_run() aliases
JOB_ALIASES = {"sync": "sync_matches", "scores": "process_scores"}


class SchedulerService:
    """Runs match sync and score processing on fixed intervals"""

    def __init__(self, app=None):
        self.app = None
        self.run_stats = None
        self.scheduler = None
        self.is_running = False

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        self.run_stats = app.extensions["run_stats"]
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")
        atexit.register(self.stop)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        if self.is_running:
            return

        self.scheduler.remove_all_jobs()
        for job_id, (name, interval_key, default_minutes, _) in JOBS.items():
            minutes = self.app.config.get(interval_key, default_minutes)
            self.scheduler.add_job(
                func=self._job_function(job_id),
                trigger=IntervalTrigger(minutes=minutes),
                id=job_id,
                name=name,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=60,
            )
            logger.info(f"Scheduled '{name}' every {minutes} minutes")

        self.scheduler.start()
        self.is_running = True
        logger.info("Scheduler started")

    def stop(self):
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Scheduler stopped")

    def _job_function(self, job_id):
        return {
            "sync_matches": self._sync_matches,
            "process_scores": self._process_scores,
        }[job_id]

    def _run_job(self, job_id, work):
        """Run one job body in an app context; failures are logged and recorded"""
        name, _, _, stats_section = JOBS[job_id]
        with self.app.app_context():
            try:
                return work()
            except Exception as e:
                db.session.rollback()
                self.run_stats.record_failure(stats_section, e)
                logger.error(f"Scheduled job '{name}' failed: {e}", exc_info=True)
                return None

    def _sync_matches(self):
        def work():
            result = MatchSync(run_stats=self.run_stats).sync_match_data()
            if result.errors:
                logger.warning(
                    f"Scheduled sync {'failed' if result.failed else 'finished'} "
                    f"with errors: {[str(e) for e in result.errors]}"
                )
            return result

        result = self._run_job("sync_matches", work)

        # Fresh results may make predictions scoreable straight away
        if result is not None and result.updated_matches:
            self._process_scores()

    def _process_scores(self):
        def work():
            result = ScoreProcessor(
                run_stats=self.run_stats
            ).process_all_finished_matches()
            if result.errors:
                logger.warning(
                    f"Scheduled score processing finished with {len(result.errors)} "
                    f"errors: {[str(e) for e in result.errors]}"
                )
            return result

        self._run_job("process_scores", work)

    def get_status(self):
        """Scheduler state plus next run time of each job"""
        jobs = []
        if self.scheduler is not None:
            for job in self.scheduler.get_jobs():
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": (
                            job.next_run_time.isoformat() if job.next_run_time else None
                        ),
                        "trigger": str(job.trigger),
                    }
                )
        return {"is_running": self.is_running, "jobs": jobs}

    def force_run(self, job="sync"):
        """Run a job now, outside its schedule"""
        job_id = JOB_ALIASES.get(job, job)
        if job_id not in JOBS:
            return False, f"Unknown job: {job}"

        self._job_function(job_id)()
        return True, f"Manual run of '{JOBS[job_id][0]}' completed"

    def pause_job(self, job_id):
        try:
            self.scheduler.pause_job(job_id)
        except JobLookupError:
            return False, f"No scheduled job '{job_id}'"
        return True, f"Job {job_id} paused"

    def resume_job(self, job_id):
        try:
            self.scheduler.resume_job(job_id)
        except JobLookupError:
            return False, f"No scheduled job '{job_id}'"
        return True, f"Job {job_id} resumed"


scheduler_service = SchedulerService()
