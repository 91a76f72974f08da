from datetime import datetime

import pytest

from app import db
from app.models import User


@pytest.fixture
def ranked_users(make_user):
    return {
        "late_tie": make_user(
            name="Late", total_points=10, updated_at=datetime(2024, 9, 20, 12, 0)
        ),
        "leader": make_user(
            name="Leader", total_points=14, updated_at=datetime(2024, 9, 21, 9, 0)
        ),
        "early_tie": make_user(
            name="Early", total_points=10, updated_at=datetime(2024, 9, 18, 17, 0)
        ),
        "last": make_user(
            name="Last", total_points=0, updated_at=datetime(2024, 9, 1, 8, 0)
        ),
    }


def test_ranking_order(app, ranked_users):
    names = [entry["name"] for entry in User.get_leaderboard()]

    # Equal points: the user whose total was reached first ranks higher
    assert names == ["Leader", "Early", "Late", "Last"]


def test_leaderboard_paging(app, ranked_users):
    page = User.get_leaderboard(limit=2, offset=1)

    assert [entry["name"] for entry in page] == ["Early", "Late"]
    assert [entry["rank"] for entry in page] == [2, 3]


def test_prediction_counts(app, make_user, make_match, make_prediction):
    user = make_user(total_points=7)
    first = make_match(status="FINISHED", home_score=1, away_score=0)
    second = make_match(status="FINISHED", home_score=0, away_score=0)
    third = make_match()
    make_prediction(user, first, 1, 0, processed=True, points_earned=5)
    make_prediction(user, second, 2, 1, processed=True, points_earned=0)
    make_prediction(user, third, 1, 1)

    entry = User.get_leaderboard()[0]

    assert entry["total_predictions"] == 2
    assert entry["correct_predictions"] == 1


def test_get_rank(app, ranked_users):
    assert User.get_rank(ranked_users["leader"].id) == 1
    assert User.get_rank(ranked_users["early_tie"].id) == 2
    assert User.get_rank(ranked_users["late_tie"].id) == 3
    assert User.get_rank(99999) is None


def test_increment_points_moves_updated_at(app, make_user):
    user = make_user(total_points=3, updated_at=datetime(2024, 1, 1))

    User.increment_points(user.id, 2)
    User.increment_points(user.id, 5)
    db.session.commit()
    db.session.expire_all()

    refreshed = db.session.get(User, user.id)
    assert refreshed.total_points == 10
    assert refreshed.updated_at > datetime(2024, 1, 1)


def test_increment_unknown_user(app):
    with pytest.raises(LookupError):
        User.increment_points(424242, 5)


class TestLeaderboardRoutes:
    def test_leaderboard(self, client, ranked_users):
        response = client.get("/api/leaderboard?limit=2")

        body = response.get_json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["limit"] == 2
        assert [e["name"] for e in body["data"]["leaderboard"]] == ["Leader", "Early"]

    def test_limit_is_capped(self, client, ranked_users):
        body = client.get("/api/leaderboard?limit=5000").get_json()
        assert body["data"]["limit"] == 100

    def test_invalid_paging(self, client):
        response = client.get("/api/leaderboard?offset=-1")
        assert response.status_code == 400

    def test_user_rank(self, client, ranked_users):
        user = ranked_users["late_tie"]

        body = client.get(f"/api/leaderboard/user/{user.id}").get_json()

        assert body["data"]["rank"] == 3
        assert body["data"]["total_points"] == 10

    def test_unknown_user(self, client):
        response = client.get("/api/leaderboard/user/99999")
        assert response.status_code == 404
