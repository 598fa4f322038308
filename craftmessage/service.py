"""
Submission service: the single entry point for storing and reading messages.

Every operation follows the same shape: make sure the store handle is
initialized, re-probe once if the store is unavailable, attempt the
operation, and degrade to False / [] / 0 on any failure. Nothing raises to
the caller.
"""

import logging
from concurrent.futures import Future
from typing import Optional, Union
from uuid import UUID

from craftmessage.config import Settings
from craftmessage.metrics import record_submission_outcome
from craftmessage.models import Message
from craftmessage.storage import Outcome, StoreHandle, StoreState
from craftmessage.utils import normalize_text, parse_player_id
from craftmessage.worker import SubmissionWorker

logger = logging.getLogger(__name__)

PlayerId = Union[str, UUID]


class MessageService:
    """Owns the store handle, its repository and the write worker."""

    def __init__(self, settings: Settings, handle: Optional[StoreHandle] = None) -> None:
        self.settings = settings
        self.handle = handle or StoreHandle(settings)
        self.repository = self.handle.repository
        self.worker = SubmissionWorker(
            self.submit_message,
            max_queue_size=settings.submit_queue_size,
        )

    # --- lifecycle ---
    def start(self) -> None:
        self.worker.start()

    def shutdown(self) -> None:
        """Drain and stop the worker, then release the store."""
        self.worker.stop()
        self.handle.close()

    # --- writes ---
    def submit(self, player_id: PlayerId, text: str) -> Optional[Future]:
        """
        Hand a submission to the store worker without waiting for it.

        Returns:
            Future resolving to the submit_message() result, or None if the
            worker rejected the submission (queue full or stopped).
        """
        future = self.worker.submit(str(player_id), text)
        if future is None:
            record_submission_outcome("rejected")
        return future

    def submit_message(self, player_id: PlayerId, text: str) -> bool:
        """Store a message synchronously. True iff it was persisted."""
        return self.store_message(player_id, text) is Outcome.OK

    def store_message(self, player_id: PlayerId, text: str) -> Outcome:
        outcome = self._store(player_id, text)
        record_submission_outcome(outcome.value)
        return outcome

    def _store(self, player_id: PlayerId, text: str) -> Outcome:
        player_uuid = parse_player_id(player_id)
        clean_text = normalize_text(text)
        if player_uuid is None or clean_text is None:
            logger.warning(f"Rejected message from player {player_id!r}: invalid player id or text")
            return Outcome.INVALID

        if not self._ensure_ready():
            logger.warning("Cannot save message - message store unavailable")
            return Outcome.UNAVAILABLE

        saved = self.repository.save(Message(player_id=player_uuid, text=clean_text))
        if saved is None:
            outcome = self.repository.last_failure or Outcome.FAILED
            logger.warning(f"Failed to save message for player {player_uuid}: {outcome}")
            return outcome

        logger.info(f"Message saved successfully. ID: {saved.id}", extra={"player_id": str(player_uuid)})
        return Outcome.OK

    # --- reads ---
    def list_for_player(self, player_id: PlayerId) -> list[Message]:
        player_uuid = parse_player_id(player_id)
        if player_uuid is None:
            logger.warning(f"Cannot find messages - invalid player id {player_id!r}")
            return []
        if not self._ensure_ready():
            logger.warning("Cannot find messages - message store unavailable")
            return []
        return self.repository.find_by_player(player_uuid)

    def list_all(self) -> list[Message]:
        if not self._ensure_ready():
            return []
        return self.repository.find_all()

    def count(self) -> int:
        if not self._ensure_ready():
            return 0
        return self.repository.count()

    def find(self, message_id: int) -> Optional[Message]:
        if not self._ensure_ready():
            return None
        return self.repository.find_by_id(message_id)

    def delete(self, message_id: int) -> bool:
        """Administrative removal of one message."""
        if not self._ensure_ready():
            logger.warning(f"Cannot delete message {message_id} - message store unavailable")
            return False
        return self.repository.delete_by_id(message_id)

    # --- availability ---
    def is_available(self, reprobe: bool = False) -> bool:
        """
        Report store availability, initializing the store on first use.

        With reprobe=True an unavailable store is probed again once.
        """
        if reprobe:
            return self._ensure_ready()
        return self.handle.ensure_initialized()

    def _ensure_ready(self) -> bool:
        """
        Initialize if needed; if the store was already known to be
        unavailable, tear down and probe exactly once more.
        """
        fresh = self.handle.state is StoreState.UNINITIALIZED
        if self.handle.ensure_initialized():
            return True
        if fresh:
            return False

        logger.info("Message store unavailable, re-probing")
        if self.handle.reprobe():
            logger.info("Message store connection restored")
            return True
        return False
