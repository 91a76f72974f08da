"""
Football-Data.org (v4) client with rate limiting, retries and payload validation.

Raw match entries are validated with pydantic before they are turned into
FeedMatch objects. Entries that fail validation are quarantined in
FeedMatchList.rejected and never reach reconciliation.
"""

import logging
import time
from collections import namedtuple
from datetime import datetime
from functools import wraps
from typing import Optional

import requests
from flask import current_app
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.utils.results import RunError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.football-data.org/v4"
PREMIER_LEAGUE_ID = 2021

# Feed statuses collapsed onto the four statuses we store
STATUS_MAP = {
    "SCHEDULED": "TIMED",
    "TIMED": "TIMED",
    "POSTPONED": "TIMED",
    "SUSPENDED": "TIMED",
    "CANCELLED": "TIMED",
    "IN_PLAY": "IN_PLAY",
    "LIVE": "IN_PLAY",
    "EXTRA_TIME": "IN_PLAY",
    "PENALTY_SHOOTOUT": "IN_PLAY",
    "PAUSED": "PAUSED",
    "FINISHED": "FINISHED",
    "AWARDED": "FINISHED",
}

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


class FootballDataError(Exception):
    """The feed could not be reached or answered with an error"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class FootballDataConfigError(FootballDataError):
    """The feed client is missing required configuration (API key)"""


class FeedParseError(ValueError):
    """A single feed entry failed validation"""

    def __init__(self, key, message):
        super().__init__(message)
        self.key = key


# --- Raw payload models ---------------------------------------------------


class ExternalTeam(BaseModel):
    id: Optional[int] = None
    name: str = Field(min_length=1)


class ExternalScoreFullTime(BaseModel):
    home: Optional[int] = Field(default=None, ge=0)
    away: Optional[int] = Field(default=None, ge=0)


class ExternalScore(BaseModel):
    fullTime: ExternalScoreFullTime = Field(default_factory=ExternalScoreFullTime)


class ExternalMatch(BaseModel):
    id: int
    utcDate: datetime
    status: str
    matchday: Optional[int] = None
    homeTeam: ExternalTeam
    awayTeam: ExternalTeam
    score: ExternalScore = Field(default_factory=ExternalScore)


class FeedMatch(BaseModel):
    """A validated match from the feed, in our own field names"""

    model_config = ConfigDict(frozen=True)

    external_id: str
    home_team: str
    away_team: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: str
    kickoff_time: datetime
    gameweek: Optional[int] = None
    season: str


FeedMatchList = namedtuple("FeedMatchList", ["matches", "rejected"])


def season_for_kickoff(kickoff_time):
    """Premier League seasons run August to May, e.g. '2024-2025'"""
    year = kickoff_time.year
    if kickoff_time.month >= 8:
        return f"{year}-{year + 1}"
    return f"{year - 1}-{year}"


def _entry_key(raw, index):
    if isinstance(raw, dict) and raw.get("id") is not None:
        return str(raw["id"])
    return f"index:{index}"


def parse_match(raw, index=0):
    """
    Validate one raw feed entry and convert it to a FeedMatch.

    Raises:
        FeedParseError: if the entry is malformed
    """
    key = _entry_key(raw, index)

    try:
        external = ExternalMatch.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        )
        raise FeedParseError(key, f"Malformed match entry: {problems}") from e

    status = STATUS_MAP.get(external.status.upper())
    if status is None:
        raise FeedParseError(key, f"Unknown match status '{external.status}'")

    home_score = external.score.fullTime.home
    away_score = external.score.fullTime.away

    if status == "FINISHED" and (home_score is None or away_score is None):
        raise FeedParseError(key, "Finished match is missing its full-time score")

    return FeedMatch(
        external_id=str(external.id),
        home_team=external.homeTeam.name,
        away_team=external.awayTeam.name,
        home_score=home_score,
        away_score=away_score,
        status=status,
        kickoff_time=external.utcDate,
        gameweek=external.matchday,
        season=season_for_kickoff(external.utcDate),
    )


def parse_matches(payload):
    """Split a /matches payload into valid FeedMatch objects and rejected entries"""
    if not isinstance(payload, dict) or not isinstance(payload.get("matches"), list):
        raise FootballDataError("Unexpected response shape: 'matches' list missing")

    matches = []
    rejected = []
    for index, raw in enumerate(payload["matches"]):
        try:
            matches.append(parse_match(raw, index))
        except FeedParseError as e:
            logger.warning(f"Rejected feed entry {e.key}: {e}")
            rejected.append(RunError(e.key, str(e)))

    return FeedMatchList(matches, rejected)


def retry_decorator(max_retries=3, base_delay=1.0, backoff_factor=2.0):
    """
    Decorator to retry rate limited, server error and transport failures
    with exponential backoff
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            delay_base = getattr(self, "retry_base_delay", base_delay)

            for attempt in range(max_retries):
                try:
                    return func(self, *args, **kwargs)

                except requests.exceptions.HTTPError as e:
                    status_code = e.response.status_code if e.response is not None else None
                    if status_code not in RETRYABLE_STATUS_CODES:
                        raise

                    delay = delay_base * (backoff_factor**attempt)
                    if status_code == 429 and e.response is not None:
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = max(delay, int(retry_after))

                    if attempt < max_retries - 1:
                        logger.warning(
                            f"HTTP {status_code}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                        time.sleep(delay)
                    else:
                        raise

                except (
                    requests.exceptions.ConnectionError,
                    requests.exceptions.Timeout,
                ) as e:
                    delay = delay_base * (backoff_factor**attempt)
                    if attempt < max_retries - 1:
                        logger.warning(
                            f"Request failed: {e}. Waiting {delay}s before retry {attempt + 1}/{max_retries}"
                        )
                        time.sleep(delay)
                    else:
                        raise

        return wrapper

    return decorator


class FootballDataClient:
    """
    Client for the Football-Data.org API with client-side rate limiting
    """

    def __init__(
        self,
        api_key=None,
        base_url=None,
        competition_id=PREMIER_LEAGUE_ID,
        max_requests_per_minute=10,
        timeout=30,
    ):
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.competition_id = competition_id
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update(
            {"User-Agent": "PL-Predictor/1.0", "Content-Type": "application/json"}
        )

        # Rate limiting configuration
        self.request_count = 0
        self.last_request_time = 0
        self.min_request_interval = 0.5  # Minimum 500ms between requests
        self.max_requests_per_minute = max_requests_per_minute
        self.request_timestamps = []
        self.retry_base_delay = 1.0

    @classmethod
    def from_app_config(cls):
        """Build a client from the current Flask app configuration"""
        config = current_app.config
        return cls(
            api_key=config.get("FOOTBALL_DATA_API_KEY"),
            base_url=config.get("FOOTBALL_DATA_BASE_URL"),
            competition_id=config.get("FOOTBALL_DATA_COMPETITION_ID", PREMIER_LEAGUE_ID),
            max_requests_per_minute=config.get("FOOTBALL_DATA_RATE_LIMIT", 10),
            timeout=config.get("FOOTBALL_DATA_TIMEOUT", 30),
        )

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)
        self.request_count += 1

    @retry_decorator(max_retries=3, base_delay=1.0)
    def _make_api_request(self, url, params=None):
        """Make API request with rate limiting and retry logic"""
        self._enforce_rate_limit()

        response = self.session.get(
            url,
            params=params,
            headers={"X-Auth-Token": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response

    def get_json(self, endpoint, params=None):
        """
        GET an endpoint and decode the JSON body.

        Raises:
            FootballDataConfigError: if no API key is configured
            FootballDataError: on transport errors, error statuses or bad JSON
        """
        if not self.api_key:
            raise FootballDataConfigError("Football Data API key is not configured")

        url = f"{self.base_url}{endpoint}"
        logger.debug(f"Making API request to {url} params={params}")

        try:
            response = self._make_api_request(url, params=params)
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            body = e.response.text[:200] if e.response is not None else ""
            logger.error(f"HTTP error {status_code}: {url}")
            raise FootballDataError(
                f"API Error: {status_code} - {body}", status_code=status_code
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Network error for {url}: {e}")
            raise FootballDataError(f"Network error: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise FootballDataError(
                "Invalid JSON in API response", status_code=response.status_code
            ) from e

    def fetch_matches(self, date_from=None, date_to=None, competition_id=None):
        """
        Fetch and validate matches for a competition, optionally in a date window

        Returns:
            FeedMatchList: (matches, rejected)
        """
        competition_id = competition_id or self.competition_id
        params = {}
        if date_from:
            params["dateFrom"] = date_from.isoformat()
        if date_to:
            params["dateTo"] = date_to.isoformat()

        payload = self.get_json(
            f"/competitions/{competition_id}/matches", params=params or None
        )
        return parse_matches(payload)

    def get_competition(self, competition_id=None):
        """Fetch competition info; used to test the connection"""
        competition_id = competition_id or self.competition_id
        return self.get_json(f"/competitions/{competition_id}")

    def get_rate_limit_status(self):
        """Get current rate limit status"""
        current_time = time.time()
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        return {
            "total_requests": self.request_count,
            "requests_last_minute": len(self.request_timestamps),
            "max_requests_per_minute": self.max_requests_per_minute,
            "can_make_request": len(self.request_timestamps)
            < self.max_requests_per_minute,
            "time_since_last_request": (
                current_time - self.last_request_time if self.last_request_time else 0
            ),
        }
