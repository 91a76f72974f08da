"""
Score processing for finished matches.

Every unprocessed prediction on a FINISHED match is scored with the scoring
engine and claimed with a conditional update (processed = false -> true), so
a prediction is awarded points at most once even when several runs overlap.
The user's total is incremented in the same transaction as the claim.
"""

import logging
import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import Match, Prediction, User
from app.models.match import STATUS_FINISHED
from app.utils.results import BatchProcessingResult, ProcessingResult
from app.utils.scoring import calculate_points

logger = logging.getLogger(__name__)


class ScoreProcessor:
    """Awards points for predictions on finished matches"""

    def __init__(self, run_stats=None, max_retries=None, retry_delay=None):
        self.run_stats = run_stats
        self.max_retries = (
            max_retries
            if max_retries is not None
            else current_app.config.get("SCORE_PROCESSING_MAX_RETRIES", 3)
        )
        self.retry_delay = (
            retry_delay
            if retry_delay is not None
            else current_app.config.get("SCORE_PROCESSING_RETRY_DELAY", 1.0)
        )

    def process_match_scores(self, match_id, result=None):
        """
        Process scores for a single finished match

        Per-prediction storage failures are recorded and skipped. Failures
        reading the match or its predictions propagate to the caller.
        Passing in an earlier attempt's result adds this attempt's counts to it.
        """
        if result is None:
            result = ProcessingResult(match_id=match_id)

        match = db.session.get(Match, match_id)
        if not match:
            result.add_error(f"match:{match_id}", "Match not found")
            return result

        if not match.is_finished:
            result.add_error(f"match:{match_id}", "Match is not finished")
            return result

        if not match.has_final_score:
            result.add_error(f"match:{match_id}", "Match does not have final scores")
            return result

        final_score = (match.home_score, match.away_score)
        label = f"{match.home_team} vs {match.away_team}"

        # Snapshot before the per-prediction commits expire the ORM objects
        pending = [
            (p.id, p.user_id, p.predicted_home_score, p.predicted_away_score)
            for p in Prediction.get_unprocessed_for_match(match_id)
        ]

        logger.info(
            f"Processing {len(pending)} predictions for {label} "
            f"({final_score[0]}-{final_score[1]})"
        )

        for prediction_id, user_id, predicted_home, predicted_away in pending:
            scoring = calculate_points((predicted_home, predicted_away), final_score)

            try:
                if not Prediction.claim_and_award(prediction_id, scoring.points):
                    db.session.rollback()
                    logger.info(
                        f"Prediction {prediction_id} already processed by another run, skipping"
                    )
                    continue

                User.increment_points(user_id, scoring.points)
                db.session.commit()

            except (SQLAlchemyError, LookupError) as e:
                db.session.rollback()
                logger.error(
                    f"Failed to persist score for prediction {prediction_id} "
                    f"(match {match_id}, user {user_id}): {e}"
                )
                result.add_error(f"prediction:{prediction_id}", e)
                continue

            result.processed_predictions += 1
            result.total_points_awarded += scoring.points

        logger.info(
            f"Match {match_id} processed: {result.processed_predictions} predictions, "
            f"{result.total_points_awarded} points awarded"
        )
        return result

    def process_all_finished_matches(self):
        """
        Process scores for all finished matches that have unprocessed predictions

        Returns:
            BatchProcessingResult: aggregated counts and errors. result.failed
            is set only when the batch itself could not run.
        """
        batch = BatchProcessingResult()

        try:
            logger.info("Starting batch score processing for all finished matches...")

            match_ids = [match.id for match in Match.get_finished_with_unprocessed()]
            logger.info(
                f"Found {len(match_ids)} finished matches with unprocessed predictions"
            )

            for match_id in match_ids:
                self._process_with_retry(match_id, batch)

            logger.info(
                f"Batch processing completed: {batch.processed_matches} matches, "
                f"{batch.total_predictions_processed} predictions, "
                f"{batch.total_points_awarded} points awarded"
            )

        except Exception as e:
            db.session.rollback()
            logger.error(f"Batch score processing failed: {e}", exc_info=True)
            batch.add_error("processing", f"Batch processing failed: {e}")
            batch.failed = True

        if self.run_stats is not None:
            self.run_stats.record_processing(batch)
        return batch

    def _process_with_retry(self, match_id, batch):
        # Predictions committed before a failed attempt stay in the counts;
        # later attempts only see what is still unprocessed
        result = ProcessingResult(match_id=match_id)

        for attempt in range(1, self.max_retries + 1):
            try:
                self.process_match_scores(match_id, result)
            except Exception as e:
                db.session.rollback()
                if attempt >= self.max_retries:
                    logger.error(
                        f"Max retries exceeded for match {match_id}: {e}", exc_info=True
                    )
                    result.add_error(
                        f"match:{match_id}",
                        f"Max retries ({self.max_retries}) exceeded: {e}",
                    )
                    batch.merge(result, completed=False)
                    return

                logger.warning(
                    f"Attempt {attempt} failed for match {match_id}: {e}. "
                    f"Retrying in {self.retry_delay}s"
                )
                time.sleep(self.retry_delay)
            else:
                batch.merge(result)
                return


def get_processing_stats():
    """Get processing statistics and status"""
    return {
        "total_matches": Match.query.count(),
        "finished_matches": Match.query.filter_by(status=STATUS_FINISHED).count(),
        "processed_predictions": Prediction.count_processed(),
        "unprocessed_predictions": Prediction.count_unprocessed(),
        "total_points_awarded": Prediction.total_points_awarded(),
    }


def has_unprocessed_matches():
    """Check if any finished match still has unprocessed predictions"""
    query = Match.query.filter(
        Match.status == STATUS_FINISHED,
        Match.predictions.any(Prediction.processed.is_(False)),
    )
    return db.session.query(query.exists()).scalar()
