"""
Tests for settings loading.

Tests cover:
- Every key falls back to its default when absent
- Environment overrides
- Invalid values fall back to defaults instead of failing
- SQLAlchemy URL composition and pool sizing
"""

import os

import pytest

from craftmessage.config import Settings, get_settings, load_settings


@pytest.fixture
def clean_env(monkeypatch):
    """Remove any CRAFTMESSAGE_* variables from the environment."""
    for key in list(os.environ):
        if key.startswith("CRAFTMESSAGE_"):
            monkeypatch.delenv(key)
    yield
    get_settings.cache_clear()


class TestDefaults:
    """Every recognized key has a documented default."""

    def test_all_fields_default_when_source_empty(self, clean_env):
        settings = load_settings(_env_file=None)

        for name, field in Settings.model_fields.items():
            assert getattr(settings, name) == field.default, name

    def test_documented_defaults(self, clean_env):
        settings = load_settings(_env_file=None)

        assert settings.database_url == "postgresql://localhost:5432/craftmessage"
        assert settings.database_username == "postgres"
        assert settings.database_password == "postgres"
        assert settings.database_driver == "psycopg2"
        assert settings.database_dialect == "postgresql"
        assert settings.ddl_auto == "update"
        assert settings.show_sql is False
        assert settings.pool_max_size == 10
        assert settings.pool_min_idle == 2
        assert settings.log_level == "INFO"
        assert settings.submit_queue_size == 100

    def test_missing_env_file_is_not_an_error(self, clean_env, tmp_path):
        settings = load_settings(_env_file=tmp_path / "does-not-exist.env")
        assert settings.pool_max_size == 10


class TestOverrides:

    def test_env_overrides_single_key(self, clean_env, monkeypatch):
        monkeypatch.setenv("CRAFTMESSAGE_POOL_MAX_SIZE", "25")

        settings = load_settings(_env_file=None)

        assert settings.pool_max_size == 25
        # Untouched keys keep their defaults
        assert settings.pool_min_idle == 2
        assert settings.database_username == "postgres"

    def test_env_file_is_read(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "CRAFTMESSAGE_DATABASE_USERNAME=minecraft\n"
            "CRAFTMESSAGE_SHOW_SQL=true\n"
        )

        settings = load_settings(_env_file=env_file)

        assert settings.database_username == "minecraft"
        assert settings.show_sql is True
        assert settings.database_password == "postgres"

    def test_invalid_value_falls_back_to_default(self, clean_env, monkeypatch):
        monkeypatch.setenv("CRAFTMESSAGE_POOL_MAX_SIZE", "lots")
        monkeypatch.setenv("CRAFTMESSAGE_POOL_MIN_IDLE", "4")

        settings = load_settings(_env_file=None)

        assert settings.pool_max_size == 10
        assert settings.pool_min_idle == 4

    def test_unknown_log_level_falls_back_to_default(self, clean_env, monkeypatch):
        monkeypatch.setenv("CRAFTMESSAGE_LOG_LEVEL", "verbose")

        settings = load_settings(_env_file=None)

        assert settings.log_level == "INFO"

    def test_log_level_is_case_insensitive(self, clean_env, monkeypatch):
        monkeypatch.setenv("CRAFTMESSAGE_LOG_LEVEL", " debug ")
        assert load_settings(_env_file=None).log_level == "DEBUG"

    def test_get_settings_is_cached(self, clean_env):
        get_settings.cache_clear()
        assert get_settings() is get_settings()

    def test_settings_are_immutable(self, clean_env):
        settings = load_settings(_env_file=None)
        with pytest.raises(Exception):
            settings.pool_max_size = 99


class TestConnectionUrl:

    def test_dialect_driver_and_credentials(self, clean_env):
        settings = load_settings(
            _env_file=None,
            database_url="postgresql://db.example:5433/messages",
            database_username="alex",
            database_password="secret",
        )

        url = settings.sqlalchemy_url()

        assert url.drivername == "postgresql+psycopg2"
        assert url.username == "alex"
        assert url.password == "secret"
        assert url.host == "db.example"
        assert url.port == 5433
        assert url.database == "messages"

    def test_credentials_in_url_win(self, clean_env):
        settings = load_settings(
            _env_file=None,
            database_url="postgresql://owner:pw@localhost/messages",
        )

        url = settings.sqlalchemy_url()

        assert url.username == "owner"
        assert url.password == "pw"

    def test_sqlite_ignores_credentials(self, clean_env, tmp_path):
        settings = load_settings(
            _env_file=None,
            database_url=f"sqlite:///{tmp_path}/m.db",
            database_dialect="sqlite",
            database_driver="pysqlite",
        )

        url = settings.sqlalchemy_url()

        assert url.drivername == "sqlite+pysqlite"
        assert url.username is None
        assert settings.is_sqlite

    def test_pool_sizing(self, clean_env):
        settings = load_settings(_env_file=None, pool_max_size=10, pool_min_idle=2)
        assert settings.pool_size == 2
        assert settings.max_overflow == 8

    def test_pool_min_idle_capped_by_max(self, clean_env):
        settings = load_settings(_env_file=None, pool_max_size=3, pool_min_idle=5)
        assert settings.pool_size == 3
        assert settings.max_overflow == 0
