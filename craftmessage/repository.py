"""
Message repository.

Each operation opens its own session, runs, and closes the session on every
exit path. Faults never propagate: they are reported to the StoreHandle for
classification and the operation returns its empty value (None, [], False, 0).
"""

import logging
import threading
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from sqlalchemy import func, select

from craftmessage.models import Message
from craftmessage.storage import Outcome

if TYPE_CHECKING:
    from craftmessage.storage import StoreHandle

logger = logging.getLogger(__name__)


class MessageRepository:
    """Create/read/count/delete operations for Message."""

    def __init__(self, handle: "StoreHandle") -> None:
        self._handle = handle
        self._local = threading.local()

    @property
    def last_failure(self) -> Optional[Outcome]:
        """Outcome of the calling thread's last failed operation, None after a success."""
        return getattr(self._local, "failure", None)

    def save(self, message: Message) -> Optional[Message]:
        """
        Persist a new message in its own transaction.

        Returns:
            The message with its store-assigned id, or None on failure.
        """
        self._local.failure = None
        if message.id is not None:
            logger.error(f"Refusing to save message with caller-assigned id {message.id}")
            self._local.failure = Outcome.INVALID
            return None

        db = self._open("save message")
        if db is None:
            return None

        try:
            db.add(message)
            db.commit()
            logger.debug(f"Message saved with ID: {message.id}")
            return message
        except Exception as e:
            if db.in_transaction():
                try:
                    db.rollback()
                except Exception as rollback_error:
                    logger.error(f"Failed to rollback transaction: {rollback_error}")
            self._fail(e, "save message", db)
            return None
        finally:
            db.close()

    def find_by_id(self, message_id: int) -> Optional[Message]:
        self._local.failure = None
        db = self._open("find message by ID")
        if db is None:
            return None

        try:
            return db.get(Message, message_id)
        except Exception as e:
            self._fail(e, f"find message by ID {message_id}", db)
            return None
        finally:
            db.close()

    def find_by_player(self, player_id: UUID) -> list[Message]:
        """All messages of one player, newest first."""
        self._local.failure = None
        db = self._open("find messages by player")
        if db is None:
            return []

        try:
            query = (
                select(Message)
                .where(Message.player_id == player_id)
                .order_by(Message.id.desc())
            )
            return list(db.scalars(query))
        except Exception as e:
            self._fail(e, f"find messages for player {player_id}", db)
            return []
        finally:
            db.close()

    def find_all(self) -> list[Message]:
        """All messages, newest first."""
        self._local.failure = None
        db = self._open("find all messages")
        if db is None:
            return []

        try:
            return list(db.scalars(select(Message).order_by(Message.id.desc())))
        except Exception as e:
            self._fail(e, "find all messages", db)
            return []
        finally:
            db.close()

    def delete_by_id(self, message_id: int) -> bool:
        """
        Delete one message.

        Returns:
            True if the message existed and was removed, False otherwise.
        """
        self._local.failure = None
        db = self._open("delete message")
        if db is None:
            return False

        try:
            message = db.get(Message, message_id)
            if message is None:
                db.rollback()
                logger.warning(f"Message with ID {message_id} not found for deletion")
                return False
            db.delete(message)
            db.commit()
            logger.debug(f"Message with ID {message_id} deleted")
            return True
        except Exception as e:
            if db.in_transaction():
                try:
                    db.rollback()
                except Exception as rollback_error:
                    logger.error(f"Failed to rollback transaction: {rollback_error}")
            self._fail(e, f"delete message with ID {message_id}", db)
            return False
        finally:
            db.close()

    def count(self) -> int:
        self._local.failure = None
        db = self._open("count messages")
        if db is None:
            return 0

        try:
            return self._count(db)
        except Exception as e:
            self._fail(e, "count messages", db)
            return 0
        finally:
            db.close()

    def exists_by_id(self, message_id: int) -> bool:
        return self.find_by_id(message_id) is not None

    def trial_count(self) -> int:
        """
        Count messages, letting any failure propagate.

        Used by the StoreHandle to verify a freshly built engine.
        """
        db = self._handle.new_session()
        if db is None:
            raise RuntimeError("no session factory available")
        try:
            return self._count(db)
        finally:
            db.close()

    @staticmethod
    def _count(db) -> int:
        return db.scalar(select(func.count(Message.id))) or 0

    def _open(self, operation: str):
        db = self._handle.new_session()
        if db is None:
            logger.error(f"Cannot {operation} - message store not initialized")
            self._local.failure = Outcome.UNAVAILABLE
        return db

    def _fail(self, exc: Exception, operation: str, db) -> None:
        self._local.failure = self._handle.report_failure(exc, operation, engine=db.bind)
