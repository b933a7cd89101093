from pathlib import Path

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"

# Columns the events table is allowed to use for its event time.
# Exactly one is configured per deployment; nothing probes the table at runtime.
ALLOWED_EVENT_TIMESTAMP_COLUMNS = frozenset({"created_at", "timestamp", "occurred_at"})


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid. Always fatal."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    LOG_LEVEL: str = "INFO"

    # Store (Supabase Postgres)
    SUPABASE_DB_URL: str
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 4
    DB_POOL_TIMEOUT: float = 30.0
    DB_STATEMENT_TIMEOUT: str = "120s"

    # Jamendo catalog
    JAMENDO_CLIENT_ID: str | None = None
    JAMENDO_API_BASE_URL: str = "https://api.jamendo.com/v3.0"
    JAMENDO_GENRES: str = ""
    JAMENDO_REQUEST_TIMEOUT: float = 30.0

    # =================================================================
    # CATALOG INGESTION DEFAULTS
    # =================================================================
    INGEST_TARGET: int = 300
    INGEST_PAGE_SIZE: int = 100
    INGEST_BATCH_SIZE: int = 50
    FETCH_MAX_ATTEMPTS: int = 4
    FETCH_BASE_DELAY_SECONDS: float = 0.8
    FETCH_MAX_DELAY_SECONDS: float = 10.0
    FETCH_MAX_JITTER_SECONDS: float = 0.25

    # =================================================================
    # FEATURE AGGREGATION DEFAULTS
    # =================================================================
    FEATURES_PAGE_SIZE: int = 5000
    FEATURES_BATCH_SIZE: int = 500
    DURATION_LOOKUP_CHUNK_SIZE: int = 500
    EVENTS_TIMESTAMP_COLUMN: str = "created_at"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("EVENTS_TIMESTAMP_COLUMN")
    @classmethod
    def _check_timestamp_column(cls, value: str) -> str:
        column = value.strip()
        if column not in ALLOWED_EVENT_TIMESTAMP_COLUMNS:
            raise ValueError(
                f"EVENTS_TIMESTAMP_COLUMN must be one of "
                f"{', '.join(sorted(ALLOWED_EVENT_TIMESTAMP_COLUMNS))}, got '{value}'"
            )
        return column

    @field_validator(
        "INGEST_TARGET",
        "INGEST_PAGE_SIZE",
        "INGEST_BATCH_SIZE",
        "FETCH_MAX_ATTEMPTS",
        "FEATURES_PAGE_SIZE",
        "FEATURES_BATCH_SIZE",
        "DURATION_LOOKUP_CHUNK_SIZE",
    )
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    def genre_list(self) -> list[str]:
        """Default tag partitions from JAMENDO_GENRES ("rock, pop" -> ["rock", "pop"])."""
        return [genre.strip() for genre in self.JAMENDO_GENRES.split(",") if genre.strip()]

    def require_jamendo_client_id(self) -> str:
        client_id = (self.JAMENDO_CLIENT_ID or "").strip()
        if not client_id:
            raise ConfigurationError(
                "Missing JAMENDO_CLIENT_ID in environment", missing=["JAMENDO_CLIENT_ID"]
            )
        return client_id

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Batch jobs run one query at a time, so the pool stays small.
        """
        return {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": max(self.DB_POOL_MIN_SIZE, self.DB_POOL_MAX_SIZE),
            "timeout": self.DB_POOL_TIMEOUT,
        }


def load_settings(**overrides) -> Settings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: if a required value is missing or a value fails validation
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing = [
            ".".join(str(part) for part in error["loc"])
            for error in e.errors()
            if error.get("type") == "missing"
        ]
        if missing:
            message = f"Missing {', '.join(missing)} in environment"
        else:
            message = f"Invalid configuration: {e.errors()[0].get('msg', str(e))}"
        raise ConfigurationError(message, missing=missing) from e
