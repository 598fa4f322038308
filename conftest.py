"""
Pytest configuration and shared fixtures.

Stores are file-backed SQLite databases under tmp_path. An unreachable store
is a SQLite path inside a directory that does not exist; creating the
directory makes the store reachable again.
"""

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from craftmessage.config import Settings, get_settings
get_settings.cache_clear()

from craftmessage.service import MessageService  # noqa: E402
from craftmessage.storage import StoreHandle  # noqa: E402


def make_settings(db_path, **overrides) -> Settings:
    """Settings for a SQLite store at db_path, ignoring any .env file."""
    values = {
        "database_url": f"sqlite:///{db_path}",
        "database_dialect": "sqlite",
        "database_driver": "pysqlite",
        "ddl_auto": "update",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path / "messages.db")


@pytest.fixture
def missing_dir(tmp_path):
    """Directory that does not exist yet; create it to bring the store up."""
    return tmp_path / "missing"


@pytest.fixture
def unreachable_settings(missing_dir) -> Settings:
    return make_settings(missing_dir / "messages.db")


@pytest.fixture
def handle(settings):
    store = StoreHandle(settings)
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def repository(handle):
    assert handle.ensure_initialized()
    return handle.repository


@pytest.fixture
def service(settings):
    svc = MessageService(settings)
    svc.start()
    try:
        yield svc
    finally:
        svc.shutdown()


@pytest.fixture
def unreachable_service(unreachable_settings):
    svc = MessageService(unreachable_settings)
    svc.start()
    try:
        yield svc
    finally:
        svc.shutdown()
