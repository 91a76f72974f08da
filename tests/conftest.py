"""Shared pytest fixtures for PL Predictor tests."""

import itertools
from datetime import datetime

import pytest

from app import create_app, db
from app.models import Match, Prediction, User
from app.utils.football_api import FootballDataClient

_ids = itertools.count(1)


@pytest.fixture
def app():
    """Fresh app with an isolated in-memory database per test"""
    app = create_app("testing")

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def run_stats(app):
    return app.extensions["run_stats"]


@pytest.fixture
def make_user(app):
    def _make_user(name=None, total_points=0, updated_at=None):
        n = next(_ids)
        user = User(
            email=f"user{n}@example.com",
            name=name or f"User {n}",
            total_points=total_points,
        )
        if updated_at is not None:
            user.updated_at = updated_at
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_match(app):
    def _make_match(
        external_id=None,
        status="TIMED",
        home_score=None,
        away_score=None,
        home_team="Arsenal FC",
        away_team="Chelsea FC",
        kickoff_time=None,
    ):
        match = Match(
            external_id=external_id or f"ext-{next(_ids)}",
            home_team=home_team,
            away_team=away_team,
            home_score=home_score,
            away_score=away_score,
            status=status,
            kickoff_time=kickoff_time or datetime(2024, 9, 14, 14, 0),
            gameweek=4,
            season="2024-2025",
        )
        db.session.add(match)
        db.session.commit()
        return match

    return _make_match


@pytest.fixture
def make_prediction(app):
    def _make_prediction(user, match, home, away, processed=False, points_earned=0):
        prediction = Prediction(
            user_id=user.id,
            match_id=match.id,
            predicted_home_score=home,
            predicted_away_score=away,
            processed=processed,
            points_earned=points_earned,
        )
        db.session.add(prediction)
        db.session.commit()
        return prediction

    return _make_prediction


def feed_entry(
    match_id,
    status="TIMED",
    home_score=None,
    away_score=None,
    utc_date="2024-09-14T14:00:00Z",
    home="Arsenal FC",
    away="Chelsea FC",
    matchday=4,
):
    """A raw /matches entry shaped like the football-data.org v4 response"""
    return {
        "id": match_id,
        "utcDate": utc_date,
        "status": status,
        "matchday": matchday,
        "homeTeam": {"id": 57, "name": home},
        "awayTeam": {"id": 61, "name": away},
        "score": {"fullTime": {"home": home_score, "away": away_score}},
    }


@pytest.fixture
def feed_client():
    """A feed client whose HTTP layer returns a settable payload"""
    client = FootballDataClient(api_key="test-api-key")
    client.payload = {"matches": []}
    client.get_json = lambda endpoint, params=None: client.payload
    return client
