import os
import secrets
import warnings

from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def env_bool(name, default):
    return os.environ.get(name, str(default)).lower() in ("true", "1", "yes")


def env_int(name, default):
    return int(os.environ.get(name) or default)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY")
    if not SECRET_KEY:
        SECRET_KEY = secrets.token_urlsafe(32)
        warnings.warn(
            "🔐 SECRET_KEY not set! Using a per-process key. "
            "Run 'python manage.py generate-secrets' and add it to .env.",
            UserWarning,
        )

    def __init__(self):
        self.SQLALCHEMY_DATABASE_URI = self.database_uri()

    @staticmethod
    def database_uri():
        """DATABASE_URL wins; otherwise PostgreSQL from DB_* or a local SQLite file"""
        if os.environ.get("DATABASE_URL"):
            return os.environ["DATABASE_URL"]

        if os.environ.get("DB_TYPE", "sqlite").lower() != "postgresql":
            return "sqlite:///" + os.path.join(basedir, "pl_predictor.db")

        user = os.environ.get("DB_USER") or "pl_user"
        password = os.environ.get("DB_PASSWORD") or "pl_password"
        host = os.environ.get("DB_HOST") or "localhost"
        port = os.environ.get("DB_PORT") or "5432"
        name = os.environ.get("DB_NAME") or "pl_predictor_db"
        return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{name}"

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # football-data.org feed (competition 2021 is the Premier League)
    FOOTBALL_DATA_API_KEY = os.environ.get("FOOTBALL_DATA_API_KEY")
    FOOTBALL_DATA_BASE_URL = (
        os.environ.get("FOOTBALL_DATA_BASE_URL") or "https://api.football-data.org/v4"
    )
    FOOTBALL_DATA_COMPETITION_ID = env_int("FOOTBALL_DATA_COMPETITION_ID", 2021)
    FOOTBALL_DATA_RATE_LIMIT = env_int("FOOTBALL_DATA_RATE_LIMIT", 10)  # per minute
    FOOTBALL_DATA_TIMEOUT = env_int("FOOTBALL_DATA_TIMEOUT", 30)  # seconds

    # Bearer token for the cron trigger endpoints; unset disables the check
    CRON_SECRET = os.environ.get("CRON_SECRET")
    CRON_RATE_LIMIT = os.environ.get("CRON_RATE_LIMIT", "30 per minute")
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

    SCORE_PROCESSING_MAX_RETRIES = env_int("SCORE_PROCESSING_MAX_RETRIES", 3)
    SCORE_PROCESSING_RETRY_DELAY = float(
        os.environ.get("SCORE_PROCESSING_RETRY_DELAY") or 1.0
    )  # seconds

    CACHE_TYPE = os.environ.get("CACHE_TYPE", "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = env_int("CACHE_DEFAULT_TIMEOUT", 300)
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pl_predictor:"
    FEED_CACHE_TIMEOUT = env_int("FEED_CACHE_TIMEOUT", 300)

    SCHEDULER_ENABLED = env_bool("SCHEDULER_ENABLED", True)
    SYNC_INTERVAL_MINUTES = env_int("SYNC_INTERVAL_MINUTES", 15)
    SCORE_PROCESSING_INTERVAL_MINUTES = env_int("SCORE_PROCESSING_INTERVAL_MINUTES", 5)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = env_bool("LOG_TO_CONSOLE", True)
    LOG_TO_FILE = env_bool("LOG_TO_FILE", True)
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    DEBUG = os.environ.get("FLASK_ENV", "development") == "development"
    TESTING = False


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    def __init__(self):
        super().__init__()
        if self.CACHE_TYPE == "RedisCache":
            import redis

            try:
                redis.Redis.from_url(self.CACHE_REDIS_URL).ping()
            except redis.exceptions.ConnectionError:
                self.CACHE_TYPE = "SimpleCache"
                warnings.warn(
                    "🔶 Redis not reachable, using SimpleCache for development.",
                    UserWarning,
                )


class ProductionConfig(Config):
    DEBUG = False

    # Variables production should never run without
    REQUIRED_ENV = {
        "SECRET_KEY": "sessions are signed with a per-process key",
        "CRON_SECRET": "sync and score processing endpoints are unauthenticated",
        "FOOTBALL_DATA_API_KEY": "every match sync will fail with a configuration error",
    }

    def __init__(self):
        super().__init__()
        for name, consequence in self.REQUIRED_ENV.items():
            if not os.environ.get(name):
                warnings.warn(
                    f"🚨 PRODUCTION WARNING: {name} not set, {consequence}.",
                    UserWarning,
                )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CACHE_TYPE = "SimpleCache"
    SCHEDULER_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    RATELIMIT_ENABLED = False
    CRON_SECRET = None
    FOOTBALL_DATA_API_KEY = "test-api-key"
    SCORE_PROCESSING_RETRY_DELAY = 0.0

    def __init__(self):
        # Keep the in-memory database whatever DATABASE_URL says
        pass


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
