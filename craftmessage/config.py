import logging
from functools import lru_cache

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Message store settings loaded from environment variables and .env.
    Every field has a default so a missing source never prevents startup.
    """

    # env vars take precedence over the .env file
    model_config = SettingsConfigDict(
        env_prefix="CRAFTMESSAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
        frozen=True,
    )

    # Connection
    database_url: str = "postgresql://localhost:5432/craftmessage"
    database_username: str = "postgres"
    database_password: str = "postgres"
    database_driver: str = "psycopg2"
    database_dialect: str = "postgresql"

    # Schema management: none, validate, update, create, create-drop
    ddl_auto: str = "update"
    show_sql: bool = False

    # Connection pool
    pool_max_size: int = 10
    pool_min_idle: int = 2

    log_level: str = "INFO"

    # Pending submissions held for the store worker
    submit_queue_size: int = 100

    @field_validator("log_level", mode="before")
    @classmethod
    def known_log_level(cls, v):
        """Accept standard level names in any case, e.g. debug or WARNING."""
        name = str(v).strip().upper()
        if name not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level '{v}'")
        return name

    def sqlalchemy_url(self) -> URL:
        """
        Build the SQLAlchemy URL from the connection fields.

        The dialect and driver fields override whatever scheme database_url
        carries; credentials are only applied when the URL has none.
        """
        url = make_url(self.database_url)
        drivername = url.drivername
        if self.database_dialect:
            drivername = self.database_dialect
            if self.database_driver:
                drivername = f"{drivername}+{self.database_driver}"
        url = url.set(drivername=drivername)

        if url.get_backend_name() == "sqlite":
            return url
        if url.username is None and self.database_username:
            url = url.set(username=self.database_username)
        if url.password is None and self.database_password:
            url = url.set(password=self.database_password)
        return url

    @property
    def is_sqlite(self) -> bool:
        return self.sqlalchemy_url().get_backend_name() == "sqlite"

    @property
    def pool_size(self) -> int:
        """Connections kept open in the pool."""
        return max(0, min(self.pool_min_idle, self.pool_max_size))

    @property
    def max_overflow(self) -> int:
        """Extra connections allowed beyond pool_size, up to pool_max_size."""
        return max(0, self.pool_max_size - self.pool_size)


def load_settings(**overrides) -> Settings:
    """
    Load settings, replacing any invalid value with that field's default.

    Keyword overrides take priority over environment and .env values.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        invalid = {str(error["loc"][0]) for error in e.errors() if error["loc"]}
        logger.warning(f"Invalid configuration for {sorted(invalid)}, using defaults")
        defaults = {
            name: Settings.model_fields[name].default
            for name in invalid
            if name in Settings.model_fields
        }
        return Settings(**{**overrides, **defaults})


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Loaded once per process; tests clear the cache to reload.
    """
    return load_settings()
