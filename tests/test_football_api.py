from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from app.utils.football_api import (
    FeedParseError,
    FootballDataClient,
    FootballDataConfigError,
    FootballDataError,
    parse_match,
    parse_matches,
    season_for_kickoff,
)
from tests.conftest import feed_entry


def _response(status_code, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = "error body"
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            response=response
        )
    else:
        response.raise_for_status.return_value = None
    return response


class TestParseMatch:
    def test_valid_entry(self):
        match = parse_match(feed_entry(101, "FINISHED", 2, 1))

        assert match.external_id == "101"
        assert match.home_team == "Arsenal FC"
        assert match.away_team == "Chelsea FC"
        assert (match.home_score, match.away_score) == (2, 1)
        assert match.status == "FINISHED"
        assert match.kickoff_time == datetime(2024, 9, 14, 14, 0, tzinfo=timezone.utc)
        assert match.gameweek == 4
        assert match.season == "2024-2025"

    @pytest.mark.parametrize(
        "feed_status, stored",
        [
            ("SCHEDULED", "TIMED"),
            ("TIMED", "TIMED"),
            ("POSTPONED", "TIMED"),
            ("IN_PLAY", "IN_PLAY"),
            ("LIVE", "IN_PLAY"),
            ("PAUSED", "PAUSED"),
            ("AWARDED", "FINISHED"),
        ],
    )
    def test_status_mapping(self, feed_status, stored):
        entry = feed_entry(5, feed_status, 0, 0)
        assert parse_match(entry).status == stored

    def test_unknown_status_rejected(self):
        with pytest.raises(FeedParseError) as exc:
            parse_match(feed_entry(7, "ABANDONED_FOREVER"))
        assert exc.value.key == "7"

    def test_finished_without_score_rejected(self):
        with pytest.raises(FeedParseError, match="full-time score"):
            parse_match(feed_entry(8, "FINISHED"))

    def test_missing_team_rejected(self):
        entry = feed_entry(9)
        del entry["homeTeam"]
        with pytest.raises(FeedParseError) as exc:
            parse_match(entry)
        assert exc.value.key == "9"
        assert "homeTeam" in str(exc.value)

    def test_negative_score_rejected(self):
        with pytest.raises(FeedParseError):
            parse_match(feed_entry(10, "FINISHED", -1, 0))

    def test_entry_without_id_keyed_by_position(self):
        entry = feed_entry(11)
        del entry["id"]
        with pytest.raises(FeedParseError) as exc:
            parse_match(entry, index=3)
        assert exc.value.key == "index:3"


class TestParseMatches:
    def test_splits_valid_and_rejected(self):
        payload = {
            "matches": [
                feed_entry(1),
                feed_entry(2, "FINISHED"),
                "not a match",
                feed_entry(3, "IN_PLAY", 1, 0),
            ]
        }

        feed = parse_matches(payload)

        assert [m.external_id for m in feed.matches] == ["1", "3"]
        assert [e.key for e in feed.rejected] == ["2", "index:2"]

    def test_missing_matches_list(self):
        with pytest.raises(FootballDataError):
            parse_matches({"errorCode": 400})


@pytest.mark.parametrize(
    "kickoff, season",
    [
        (datetime(2024, 8, 16, 19, 0), "2024-2025"),
        (datetime(2024, 12, 26, 15, 0), "2024-2025"),
        (datetime(2025, 5, 25, 15, 0), "2024-2025"),
        (datetime(2025, 7, 31, 23, 0), "2024-2025"),
        (datetime(2025, 8, 1, 12, 0), "2025-2026"),
    ],
)
def test_season_for_kickoff(kickoff, season):
    assert season_for_kickoff(kickoff) == season


class TestFootballDataClient:
    def test_missing_api_key(self):
        client = FootballDataClient(api_key=None)
        with pytest.raises(FootballDataConfigError):
            client.fetch_matches()

    def test_fetch_matches_sends_window_and_token(self):
        client = FootballDataClient(api_key="secret-key", competition_id=2021)
        client.session.get = MagicMock(
            return_value=_response(200, {"matches": [feed_entry(1)]})
        )

        with patch("app.utils.football_api.time.sleep"):
            feed = client.fetch_matches(date(2024, 9, 1), date(2024, 9, 30))

        assert len(feed.matches) == 1
        args, kwargs = client.session.get.call_args
        assert args[0] == "https://api.football-data.org/v4/competitions/2021/matches"
        assert kwargs["params"] == {"dateFrom": "2024-09-01", "dateTo": "2024-09-30"}
        assert kwargs["headers"] == {"X-Auth-Token": "secret-key"}

    def test_retries_server_errors(self):
        client = FootballDataClient(api_key="k")
        client.retry_base_delay = 0
        client.session.get = MagicMock(
            side_effect=[
                _response(503),
                _response(502),
                _response(200, {"matches": []}),
            ]
        )

        with patch("app.utils.football_api.time.sleep"):
            feed = client.fetch_matches()

        assert feed.matches == []
        assert client.session.get.call_count == 3

    def test_gives_up_after_max_retries(self):
        client = FootballDataClient(api_key="k")
        client.retry_base_delay = 0
        client.session.get = MagicMock(return_value=_response(500))

        with patch("app.utils.football_api.time.sleep"):
            with pytest.raises(FootballDataError) as exc:
                client.fetch_matches()

        assert exc.value.status_code == 500
        assert client.session.get.call_count == 3

    def test_client_errors_not_retried(self):
        client = FootballDataClient(api_key="bad-key")
        client.session.get = MagicMock(return_value=_response(403))

        with patch("app.utils.football_api.time.sleep"):
            with pytest.raises(FootballDataError) as exc:
                client.fetch_matches()

        assert exc.value.status_code == 403
        assert client.session.get.call_count == 1

    def test_honours_retry_after(self):
        client = FootballDataClient(api_key="k")
        client.retry_base_delay = 0
        client.session.get = MagicMock(
            side_effect=[
                _response(429, headers={"Retry-After": "7"}),
                _response(200, {"matches": []}),
            ]
        )

        with patch("app.utils.football_api.time.sleep") as sleep:
            client.fetch_matches()

        assert 7 in [call.args[0] for call in sleep.call_args_list]

    def test_network_error_wrapped(self):
        client = FootballDataClient(api_key="k")
        client.retry_base_delay = 0
        client.session.get = MagicMock(
            side_effect=requests.exceptions.ConnectionError("refused")
        )

        with patch("app.utils.football_api.time.sleep"):
            with pytest.raises(FootballDataError, match="Network error"):
                client.fetch_matches()

    def test_from_app_config(self, app):
        client = FootballDataClient.from_app_config()
        assert client.api_key == "test-api-key"
        assert client.competition_id == 2021
