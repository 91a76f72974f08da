from unittest.mock import patch

import pytest
from click.testing import CliRunner

from app.models import Match
from manage import cli
from tests.conftest import feed_entry


@pytest.fixture
def runner(app):
    return CliRunner()


def test_sync_matches(runner):
    with patch(
        "app.utils.football_api.FootballDataClient.get_json",
        return_value={"matches": [feed_entry(1), feed_entry(2)]},
    ):
        result = runner.invoke(cli, ["sync", "matches"])

    assert result.exit_code == 0, result.output
    assert "2 new" in result.output
    assert Match.query.count() == 2


def test_sync_matches_needs_both_dates(runner):
    result = runner.invoke(cli, ["sync", "matches", "--date-from", "2024-09-01"])

    assert result.exit_code != 0
    assert "must be given together" in result.output


def test_sync_matches_reports_failure(runner, app):
    app.config["FOOTBALL_DATA_API_KEY"] = None

    result = runner.invoke(cli, ["sync", "matches"])

    assert result.exit_code == 1
    assert "config" in result.output


def test_process_scores(runner, make_user, make_match, make_prediction):
    match = make_match(status="FINISHED", home_score=1, away_score=0)
    make_prediction(make_user(), match, 1, 0)

    result = runner.invoke(cli, ["scores", "process"])

    assert result.exit_code == 0, result.output
    assert "1 predictions, 5 points awarded" in result.output


def test_scores_stats(runner, make_user, make_match, make_prediction):
    match = make_match(status="FINISHED", home_score=1, away_score=0)
    make_prediction(make_user(), match, 1, 0)

    result = runner.invoke(cli, ["scores", "stats"])

    assert result.exit_code == 0, result.output
    assert "Unprocessed predictions: 1" in result.output


def test_status(runner, make_match):
    make_match()

    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0, result.output
    assert "Database: Connected" in result.output
    assert "TIMED: 1" in result.output


def test_test_connection(runner):
    competition = {
        "name": "Premier League",
        "currentSeason": {
            "startDate": "2024-08-16",
            "endDate": "2025-05-25",
            "currentMatchday": 4,
        },
    }
    with patch(
        "app.utils.football_api.FootballDataClient.get_json", return_value=competition
    ) as get_json:
        result = runner.invoke(cli, ["sync", "test-connection"])

    assert result.exit_code == 0, result.output
    assert "Connected: Premier League" in result.output
    get_json.assert_called_once_with("/competitions/2021")


def test_generate_secrets(runner):
    result = runner.invoke(cli, ["generate-secrets"])

    lines = result.output.splitlines()
    assert lines[0].startswith("SECRET_KEY=")
    assert lines[1].startswith("CRON_SECRET=")
    assert lines[0] != lines[1]
