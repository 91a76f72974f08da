import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.models import Match
from app.utils.cache_utils import get_cached_matches, invalidate_feed_cache
from app.utils.football_api import (
    FootballDataClient,
    FootballDataConfigError,
    FootballDataError,
)
from app.utils.results import SyncResult

logger = logging.getLogger(__name__)


class MatchSync:
    """
    Reconciles match data from the football-data feed into the matches table.

    Each match is upserted in its own transaction, so a failure on one match
    never rolls back or aborts the others, and an interrupted run can simply
    be re-run.
    """

    def __init__(self, client=None, run_stats=None):
        self.client = client or FootballDataClient.from_app_config()
        self.run_stats = run_stats

    def sync_match_data(self, date_from=None, date_to=None):
        """
        Sync matches for the configured competition, optionally within a date window

        Returns:
            SyncResult: counts of new/updated/total matches plus item errors.
            result.failed is set when no work could be done at all.
        """
        result = SyncResult()
        window = (
            f"{date_from.isoformat()} to {date_to.isoformat()}"
            if date_from and date_to
            else "all dates"
        )

        try:
            logger.info(f"Starting match sync ({window})")

            try:
                feed = get_cached_matches(
                    self.client, date_from, date_to, force_refresh=True
                )
            except FootballDataConfigError as e:
                logger.error(f"Match sync not configured: {e}")
                result.add_error("config", e)
                result.failed = True
                return self._finish(result)
            except FootballDataError as e:
                logger.error(f"Failed to fetch match data ({window}): {e}")
                result.add_error("feed", f"Failed to fetch match data: {e}")
                result.failed = True
                return self._finish(result)

            result.total_matches = len(feed.matches) + len(feed.rejected)
            result.errors.extend(feed.rejected)
            logger.info(
                f"Fetched {result.total_matches} matches from API "
                f"({len(feed.rejected)} rejected)"
            )

            for feed_match in feed.matches:
                try:
                    outcome = self._reconcile(feed_match)
                except SQLAlchemyError as e:
                    db.session.rollback()
                    logger.error(
                        f"Database error syncing match {feed_match.external_id}: {e}"
                    )
                    result.add_error(feed_match.external_id, f"Database error: {e}")
                    continue
                except Exception as e:
                    db.session.rollback()
                    logger.error(
                        f"Error processing match {feed_match.external_id}: {e}",
                        exc_info=True,
                    )
                    result.add_error(feed_match.external_id, e)
                    continue

                if outcome == "new":
                    result.new_matches += 1
                elif outcome == "updated":
                    result.updated_matches += 1

            if result.new_matches or result.updated_matches:
                invalidate_feed_cache()

            logger.info(
                f"Sync completed: {result.new_matches} new, "
                f"{result.updated_matches} updated, {len(result.errors)} errors"
            )

        except Exception as e:
            db.session.rollback()
            logger.error(f"Match sync failed ({window}): {e}", exc_info=True)
            result.add_error("sync", f"Sync process failed: {e}")
            result.failed = True

        return self._finish(result)

    def _reconcile(self, feed_match):
        """Upsert one feed match and commit; returns "new", "updated" or "unchanged" """
        try:
            match, outcome = Match.upsert_from_feed(feed_match)
            db.session.commit()
        except IntegrityError:
            # A concurrent sync inserted this external_id first; reconcile against its row
            db.session.rollback()
            logger.info(
                f"Match {feed_match.external_id} inserted concurrently, retrying as update"
            )
            match, outcome = Match.upsert_from_feed(feed_match)
            db.session.commit()

        if outcome == "new":
            logger.info(f"Inserted new match: {match.home_team} vs {match.away_team}")
        elif outcome == "updated":
            logger.info(f"Updated match: {match.home_team} vs {match.away_team}")

        return outcome

    def _finish(self, result):
        if self.run_stats is not None:
            self.run_stats.record_sync(result)
        return result

    def get_sync_status(self):
        """Get sync status and statistics"""
        return Match.get_sync_status()
