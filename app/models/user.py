from datetime import datetime, timezone

from app import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    avatar_url = db.Column(db.String(500))

    # Aggregate points, only ever changed through increment_points()
    total_points = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    predictions = db.relationship(
        "Prediction", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    # Database indexes
    __table_args__ = (
        db.Index("idx_users_total_points", "total_points"),
        db.Index("idx_users_ranking", "total_points", "updated_at"),
    )

    def __repr__(self):
        return f"<User {self.email}>"

    @staticmethod
    def increment_points(user_id, points):
        """
        Atomically add points to a user's total and advance updated_at.

        Uses total_points = total_points + :points so concurrent awards to the
        same user from different predictions never overwrite each other.
        Does not commit.
        """
        result = db.session.execute(
            db.update(User)
            .where(User.id == user_id)
            .values(
                total_points=User.total_points + points,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise LookupError(f"User with id {user_id} not found")

    @staticmethod
    def _ranking_order():
        # Equal points: the earlier updated_at ranks higher
        return (User.total_points.desc(), User.updated_at.asc(), User.id.asc())

    @staticmethod
    def get_leaderboard(limit=20, offset=0):
        """Get ranked users with their processed/correct prediction counts"""
        from .prediction import Prediction

        stats = (
            db.session.query(
                Prediction.user_id.label("user_id"),
                db.func.count(Prediction.id).label("total_predictions"),
                db.func.sum(
                    db.case((Prediction.points_earned > 0, 1), else_=0)
                ).label("correct_predictions"),
            )
            .filter(Prediction.processed.is_(True))
            .group_by(Prediction.user_id)
            .subquery()
        )

        rows = (
            db.session.query(
                User, stats.c.total_predictions, stats.c.correct_predictions
            )
            .outerjoin(stats, stats.c.user_id == User.id)
            .order_by(*User._ranking_order())
            .limit(limit)
            .offset(offset)
            .all()
        )

        leaderboard = []
        for position, (user, total_predictions, correct_predictions) in enumerate(
            rows, start=offset + 1
        ):
            entry = user.to_dict()
            entry.update(
                {
                    "rank": position,
                    "total_predictions": int(total_predictions or 0),
                    "correct_predictions": int(correct_predictions or 0),
                }
            )
            leaderboard.append(entry)

        return leaderboard

    @staticmethod
    def get_rank(user_id):
        """Get a user's 1-based rank, or None if the user doesn't exist"""
        user = db.session.get(User, user_id)
        if not user:
            return None

        ahead = User.query.filter(
            db.or_(
                User.total_points > user.total_points,
                db.and_(
                    User.total_points == user.total_points,
                    User.updated_at < user.updated_at,
                ),
                db.and_(
                    User.total_points == user.total_points,
                    User.updated_at == user.updated_at,
                    User.id < user.id,
                ),
            )
        ).count()

        return ahead + 1

    def to_dict(self):
        """Convert user to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "total_points": self.total_points,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
