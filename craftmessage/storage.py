import logging
import threading
from enum import StrEnum
from typing import Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from craftmessage.config import Settings
from craftmessage.metrics import record_probe, record_store_availability

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()


class StoreState(StrEnum):
    UNINITIALIZED = "uninitialized"
    PROBING = "probing"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class Outcome(StrEnum):
    """Result of a store operation as seen by the submission service."""
    OK = "ok"
    UNAVAILABLE = "unavailable"
    CONNECTION_LOST = "connection_lost"
    FAILED = "failed"
    INVALID = "invalid"


class SchemaValidationError(RuntimeError):
    """Raised during initialization when ddl_auto=validate finds no messages table."""


def is_connection_lost(exc: BaseException) -> bool:
    """
    Decide whether a failed operation means the connection to the store is gone.

    Uses SQLAlchemy's error hierarchy: invalidated connections, pool-level
    disconnects, and DBAPI OperationalError/InterfaceError (server shutdown,
    network loss, admin termination) count as connection loss. Integrity and
    data errors are local to the operation.
    """
    if isinstance(exc, DisconnectionError):
        return True
    if isinstance(exc, DBAPIError):
        return exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError))
    return False


def probe(settings: Settings) -> bool:
    """
    Check that the store accepts a connection at all.

    Opens a single unpooled DBAPI connection and closes it straight away,
    which fails much faster than building the pooled engine and running
    schema management against a store that is down.
    """
    try:
        engine = create_engine(settings.sqlalchemy_url(), poolclass=NullPool)
    except Exception as e:
        logger.debug(f"Message store probe could not create engine: {e}")
        return False

    try:
        connection = engine.raw_connection()
        connection.close()
        return True
    except Exception as e:
        logger.debug(f"Message store probe failed: {e}")
        return False
    finally:
        engine.dispose()


def build_engine(settings: Settings) -> Engine:
    """Create the pooled engine used for all repository operations."""
    url = settings.sqlalchemy_url()
    if url.get_backend_name() == "sqlite":
        # check_same_thread=False: sessions are used from the worker and request threads
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=settings.show_sql,
        )
    return create_engine(
        url,
        echo=settings.show_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_pre_ping=True,
    )


def apply_ddl(engine: Engine, mode: str) -> None:
    """
    Apply the configured schema-management mode.

    Modes: none, validate, update, create, create-drop.
    """
    # Import models to register them with Base.metadata
    from craftmessage.models import Message

    mode = (mode or "none").strip().lower()
    logger.debug(f"Applying ddl_auto={mode}")

    if mode == "none":
        return
    if mode == "validate":
        if not inspect(engine).has_table(Message.__tablename__):
            raise SchemaValidationError(f"table '{Message.__tablename__}' does not exist")
        return
    if mode == "update":
        Base.metadata.create_all(bind=engine)
        return
    if mode in ("create", "create-drop"):
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        return

    logger.warning(f"Unknown ddl_auto mode '{mode}', leaving schema untouched")


class StoreHandle:
    """
    Owns the engine, the session factory and the store availability state.

    Initialization is lazy and idempotent. It never raises: any failure while
    probing, building the engine or running the trial count leaves the handle
    UNAVAILABLE. close() returns the handle to UNINITIALIZED so the next
    ensure_initialized() starts again from the probe.

    State changes are serialized by a single re-entrant lock. Sessions handed
    out by the factory are used without further locking; the engine's pool
    isolates concurrent operations.
    """

    def __init__(self, settings: Settings) -> None:
        from craftmessage.repository import MessageRepository

        self.settings = settings
        self._lock = threading.RLock()
        self._state = StoreState.UNINITIALIZED
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self.repository = MessageRepository(self)

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def available(self) -> bool:
        return self._state is StoreState.AVAILABLE and self._session_factory is not None

    @property
    def session_factory(self) -> Optional[sessionmaker]:
        return self._session_factory

    def new_session(self) -> Optional[Session]:
        """Open a session on the current factory, or None when there is none."""
        factory = self._session_factory
        if factory is None:
            return None
        return factory()

    def ensure_initialized(self) -> bool:
        """
        Initialize the store on first use and report availability.

        Returns:
            True if the store is available after the call.
        """
        with self._lock:
            if self._state in (StoreState.AVAILABLE, StoreState.UNAVAILABLE):
                logger.debug("Message store already initialized, skipping")
                return self.available

            self._set_state(StoreState.PROBING)

            reachable = probe(self.settings)
            record_probe(reachable)
            if not reachable:
                logger.debug("Message store not reachable, skipping engine initialization")
                self._set_state(StoreState.UNAVAILABLE)
                return False

            logger.debug("Starting message store initialization...")
            try:
                self._engine = build_engine(self.settings)
                self._session_factory = sessionmaker(
                    bind=self._engine,
                    autocommit=False,
                    autoflush=False,
                    expire_on_commit=False,
                )
                apply_ddl(self._engine, self.settings.ddl_auto)
                total = self.repository.trial_count()
            except Exception as e:
                logger.debug(f"Failed to initialize message store: {e}")
                self._release()
                self._set_state(StoreState.UNAVAILABLE)
                return False

            logger.info(f"Message store initialized, {total} messages stored")
            self._set_state(StoreState.AVAILABLE)
            return True

    def close(self) -> None:
        """Release the engine and reset to UNINITIALIZED. Safe to call repeatedly."""
        with self._lock:
            if self._engine is not None:
                logger.info("Closing message store engine...")
                if (self.settings.ddl_auto or "").strip().lower() == "create-drop":
                    self._drop_schema()
                self._release()
            self._set_state(StoreState.UNINITIALIZED)

    def reprobe(self) -> bool:
        """
        Tear down and initialize again, unless another caller already has.

        Returns:
            True if the store is available after the call.
        """
        with self._lock:
            if self._state is StoreState.AVAILABLE:
                return self.available
            self.close()
            return self.ensure_initialized()

    def report_failure(
        self,
        exc: BaseException,
        operation: str,
        engine: Optional[Engine] = None,
    ) -> Outcome:
        """
        Classify a failed live operation.

        Connection loss tears the engine down so the next caller re-probes
        instead of reusing a broken pool. Only the engine that served the
        operation is torn down: if it has already been replaced, the current
        one stays. Anything else is local to the operation and leaves
        availability unchanged.
        """
        if is_connection_lost(exc):
            logger.warning(f"Failed to {operation} - message store connection lost: {exc}")
            with self._lock:
                if engine is None or engine is self._engine:
                    self.close()
                else:
                    logger.debug("Failed engine already replaced, keeping the current one")
            return Outcome.CONNECTION_LOST

        logger.error(f"Failed to {operation}: {exc}")
        return Outcome.FAILED

    def _drop_schema(self) -> None:
        from craftmessage.models import Message  # noqa: F401

        try:
            Base.metadata.drop_all(bind=self._engine)
        except Exception as e:
            logger.error(f"Failed to drop schema on close: {e}")

    def _release(self) -> None:
        engine = self._engine
        self._engine = None
        self._session_factory = None
        if engine is None:
            return
        try:
            engine.dispose()
            logger.debug("Message store engine disposed")
        except Exception as e:
            logger.error(f"Failed to dispose message store engine: {e}")

    def _set_state(self, state: StoreState) -> None:
        if state is not self._state:
            logger.debug(f"Message store state {self._state} -> {state}")
        self._state = state
        record_store_availability(state is StoreState.AVAILABLE)
