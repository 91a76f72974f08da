from datetime import datetime, timezone

from app import db


class Prediction(db.Model):
    __tablename__ = "predictions"

    id = db.Column(db.Integer, primary_key=True)

    # Prediction identification
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    match_id = db.Column(
        db.Integer, db.ForeignKey("matches.id", ondelete="CASCADE"), nullable=False
    )

    # Predicted score
    predicted_home_score = db.Column(db.Integer, nullable=False)
    predicted_away_score = db.Column(db.Integer, nullable=False)

    # Results (written exactly once, after the match is finished)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    processed = db.Column(db.Boolean, nullable=False, default=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "match_id", name="unique_user_match_prediction"),
        db.CheckConstraint("predicted_home_score >= 0", name="home_score_non_negative"),
        db.CheckConstraint("predicted_away_score >= 0", name="away_score_non_negative"),
        db.CheckConstraint("points_earned >= 0", name="points_non_negative"),
        db.Index("idx_predictions_match_processed", "match_id", "processed"),
        db.Index("idx_predictions_user_processed", "user_id", "processed"),
    )

    def __repr__(self):
        return (
            f"<Prediction user_id={self.user_id} match_id={self.match_id} "
            f"{self.predicted_home_score}-{self.predicted_away_score}>"
        )

    @staticmethod
    def get_unprocessed_for_match(match_id):
        return (
            Prediction.query.filter_by(match_id=match_id, processed=False)
            .order_by(Prediction.id)
            .all()
        )

    @staticmethod
    def claim_and_award(prediction_id, points):
        """
        Mark a prediction processed with its points, only if nobody else has.

        The UPDATE is conditional on processed = false at write time, so when two
        scoring runs race for the same prediction exactly one of them sees a
        matched row. Does not commit.

        Returns:
            bool: True if this caller claimed the prediction
        """
        result = db.session.execute(
            db.update(Prediction)
            .where(Prediction.id == prediction_id, Prediction.processed.is_(False))
            .values(
                processed=True,
                points_earned=points,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def count_processed():
        return Prediction.query.filter_by(processed=True).count()

    @staticmethod
    def count_unprocessed():
        return Prediction.query.filter_by(processed=False).count()

    @staticmethod
    def total_points_awarded():
        total = (
            db.session.query(db.func.coalesce(db.func.sum(Prediction.points_earned), 0))
            .filter(Prediction.processed.is_(True))
            .scalar()
        )
        return int(total or 0)

    def to_dict(self):
        """Convert prediction to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "match_id": self.match_id,
            "predicted_home_score": self.predicted_home_score,
            "predicted_away_score": self.predicted_away_score,
            "points_earned": self.points_earned,
            "processed": self.processed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
