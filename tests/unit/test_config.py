import pytest

from music_pipeline.config import ConfigurationError, Settings, load_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("SUPABASE_DB_URL", "JAMENDO_CLIENT_ID", "JAMENDO_GENRES", "EVENTS_TIMESTAMP_COLUMN"):
        monkeypatch.delenv(name, raising=False)


def test_missing_db_url_is_a_configuration_error():
    with pytest.raises(ConfigurationError) as exc:
        load_settings(_env_file=None)

    assert "SUPABASE_DB_URL" in exc.value.missing


def test_unknown_timestamp_column_is_rejected(monkeypatch):
    monkeypatch.setenv("SUPABASE_DB_URL", "postgresql://localhost/music")
    monkeypatch.setenv("EVENTS_TIMESTAMP_COLUMN", "ts")

    with pytest.raises(ConfigurationError):
        load_settings(_env_file=None)


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("SUPABASE_DB_URL", "postgresql://localhost/music")
    monkeypatch.setenv("EVENTS_TIMESTAMP_COLUMN", "timestamp")
    monkeypatch.setenv("JAMENDO_GENRES", "rock, pop,,jazz ")

    settings = load_settings(_env_file=None)

    assert settings.EVENTS_TIMESTAMP_COLUMN == "timestamp"
    assert settings.genre_list() == ["rock", "pop", "jazz"]


def test_jamendo_client_id_is_required_for_ingestion():
    settings = Settings(SUPABASE_DB_URL="postgresql://localhost/music", _env_file=None)

    with pytest.raises(ConfigurationError) as exc:
        settings.require_jamendo_client_id()

    assert exc.value.missing == ["JAMENDO_CLIENT_ID"]


def test_non_positive_sizes_are_rejected():
    with pytest.raises(ConfigurationError):
        load_settings(SUPABASE_DB_URL="postgresql://localhost/music", FEATURES_BATCH_SIZE=0, _env_file=None)
