import logging
from datetime import datetime, time, timedelta, timezone

from app import db

logger = logging.getLogger(__name__)

MATCH_STATUSES = ("TIMED", "IN_PLAY", "PAUSED", "FINISHED")
STATUS_FINISHED = "FINISHED"

# Fields a sync is allowed to reconcile from the feed
TRACKED_FIELDS = (
    "home_team",
    "away_team",
    "home_score",
    "away_score",
    "status",
    "kickoff_time",
    "gameweek",
    "season",
)

# Fields frozen once a match is FINISHED
FINAL_FIELDS = ("home_score", "away_score", "status")


def to_naive_utc(value):
    """Normalise a datetime to naive UTC for storage and comparison"""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Match(db.Model):
    __tablename__ = "matches"

    id = db.Column(db.Integer, primary_key=True)

    # Feed identification
    external_id = db.Column(db.String(50), unique=True, nullable=False, index=True)

    # Teams
    home_team = db.Column(db.String(255), nullable=False)
    away_team = db.Column(db.String(255), nullable=False)

    # Scores (null until the feed reports them)
    home_score = db.Column(db.Integer)
    away_score = db.Column(db.Integer)

    # Match status
    status = db.Column(
        db.Enum(*MATCH_STATUSES, name="match_status"),
        nullable=False,
        default="TIMED",
    )

    # Scheduling, stored as naive UTC
    kickoff_time = db.Column(db.DateTime, nullable=False)
    gameweek = db.Column(db.Integer)
    season = db.Column(db.String(10), nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="match", lazy="dynamic", cascade="all, delete-orphan"
    )

    # Indexes
    __table_args__ = (
        db.Index("idx_matches_status", "status"),
        db.Index("idx_matches_kickoff", "kickoff_time"),
        db.Index("idx_matches_season_gameweek", "season", "gameweek"),
    )

    def __repr__(self):
        return f"<Match {self.external_id} {self.home_team} vs {self.away_team} [{self.status}]>"

    @property
    def is_finished(self):
        return self.status == STATUS_FINISHED

    @property
    def has_final_score(self):
        return self.home_score is not None and self.away_score is not None

    @property
    def kickoff_time_utc(self):
        """Kickoff time as an aware UTC datetime"""
        if self.kickoff_time is None:
            return None
        if self.kickoff_time.tzinfo is None:
            return self.kickoff_time.replace(tzinfo=timezone.utc)
        return self.kickoff_time

    def mark_finished(self, home_score, away_score):
        """Record the final score. Scores of a finished match never change."""
        if home_score is None or away_score is None:
            raise ValueError("A finished match needs both scores")

        if self.is_finished:
            if (self.home_score, self.away_score) != (home_score, away_score):
                logger.warning(
                    f"Ignoring score change for finished match {self.external_id}: "
                    f"{self.home_score}-{self.away_score} -> {home_score}-{away_score}"
                )
            return False

        self.home_score = home_score
        self.away_score = away_score
        self.status = STATUS_FINISHED
        return True

    def diff_from_feed(self, feed_match):
        """Return {field: new_value} for tracked fields that differ from the feed"""
        changes = {}
        for field in TRACKED_FIELDS:
            if self.is_finished and field in FINAL_FIELDS:
                continue

            new_value = getattr(feed_match, field)
            current_value = getattr(self, field)
            if field == "kickoff_time":
                new_value = to_naive_utc(new_value)
                current_value = to_naive_utc(current_value)

            if current_value != new_value:
                changes[field] = new_value

        if self.is_finished:
            feed_final = (feed_match.home_score, feed_match.away_score)
            if feed_final != (self.home_score, self.away_score):
                logger.warning(
                    f"Feed reports {feed_match.status} {feed_final} for finished match "
                    f"{self.external_id}; keeping {self.home_score}-{self.away_score}"
                )
        return changes

    @staticmethod
    def get_by_external_id(external_id):
        return Match.query.filter_by(external_id=str(external_id)).first()

    @staticmethod
    def get_by_status(status):
        return (
            Match.query.filter_by(status=status).order_by(Match.kickoff_time).all()
        )

    @staticmethod
    def get_in_window(date_from=None, date_to=None):
        """Get matches kicking off between two dates (inclusive)"""
        query = Match.query
        if date_from:
            query = query.filter(
                Match.kickoff_time >= datetime.combine(date_from, time.min)
            )
        if date_to:
            query = query.filter(
                Match.kickoff_time < datetime.combine(date_to + timedelta(days=1), time.min)
            )
        return query.order_by(Match.kickoff_time).all()

    @staticmethod
    def upsert_from_feed(feed_match):
        """
        Insert or update a match from a validated feed entry.

        Does not commit; the caller owns the transaction.

        Returns:
            tuple: (match, outcome) where outcome is "new", "updated" or "unchanged"
        """
        match = Match.get_by_external_id(feed_match.external_id)

        if match is None:
            match = Match(
                external_id=feed_match.external_id,
                home_team=feed_match.home_team,
                away_team=feed_match.away_team,
                home_score=feed_match.home_score,
                away_score=feed_match.away_score,
                status=feed_match.status,
                kickoff_time=to_naive_utc(feed_match.kickoff_time),
                gameweek=feed_match.gameweek,
                season=feed_match.season,
            )
            db.session.add(match)
            db.session.flush()
            return match, "new"

        changes = match.diff_from_feed(feed_match)
        if not changes:
            return match, "unchanged"

        for field, value in changes.items():
            setattr(match, field, value)
        db.session.flush()
        return match, "updated"

    @staticmethod
    def get_finished_with_unprocessed():
        """Get FINISHED matches that still have at least one unprocessed prediction"""
        from .prediction import Prediction

        return (
            Match.query.filter(
                Match.status == STATUS_FINISHED,
                Match.predictions.any(Prediction.processed.is_(False)),
            )
            .order_by(Match.kickoff_time)
            .all()
        )

    @staticmethod
    def get_sync_status():
        """Get match totals, a per-status breakdown and the latest update time"""
        total_matches = Match.query.count()

        status_rows = (
            db.session.query(Match.status, db.func.count(Match.id))
            .group_by(Match.status)
            .all()
        )
        status_breakdown = {status: count for status, count in status_rows}

        last_updated = db.session.query(db.func.max(Match.updated_at)).scalar()

        return {
            "total_matches": total_matches,
            "status_breakdown": status_breakdown,
            "last_updated": last_updated.isoformat() if last_updated else None,
        }

    def to_dict(self):
        """Convert match to dictionary for API responses"""
        kickoff = self.kickoff_time_utc
        return {
            "id": self.id,
            "external_id": self.external_id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status,
            "kickoff_time": kickoff.isoformat() if kickoff else None,
            "gameweek": self.gameweek,
            "season": self.season,
        }
