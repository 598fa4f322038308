"""
Dedicated store worker.

All message writes run on one long-lived thread fed by a bounded FIFO queue,
so callers never wait on a store round trip and writes are strictly
sequential.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Queue item telling the worker thread to exit
_STOP = object()


class SubmissionWorker:
    """Single-consumer queue plus one worker thread running submissions in order."""

    def __init__(
        self,
        handler: Callable[[str, str], bool],
        max_queue_size: int = 100,
        name: str = "craftmessage-store",
    ) -> None:
        self._handler = handler
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, max_queue_size))
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._accepting = False
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        with self._lock:
            if self.running:
                if self._stopping:
                    logger.warning(f"Store worker '{self._name}' is still draining, not restarted")
                return
            self._stopping = False
            self._accepting = True
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()
            logger.info(f"Store worker '{self._name}' started")

    def submit(self, player_id: str, text: str) -> Optional[Future]:
        """
        Queue one submission.

        Returns:
            A Future resolving to the handler's result, or None when the queue
            is full or the worker is not accepting work.
        """
        future: Future = Future()
        # Held so nothing can be queued behind the stop marker
        with self._lock:
            if not self._accepting:
                logger.warning("Store worker not running, submission rejected")
                return None
            try:
                self._queue.put_nowait((player_id, text, future))
            except queue.Full:
                logger.warning(f"Submission queue full ({self._queue.maxsize}), submission rejected")
                return None

        logger.debug(f"Scheduled message save for player: {player_id}")
        return future

    def drain(self) -> None:
        """Block until every submission queued so far has been processed."""
        self._queue.join()

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """
        Stop accepting work, drain what is queued, and join the thread.

        A thread still busy after the timeout stays attached; calling stop()
        again waits for it without queueing a second stop marker.
        """
        with self._lock:
            self._accepting = False
            thread = self._thread
            if thread is None:
                return
            if not self._stopping:
                self._stopping = True
                self._queue.put(_STOP)
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Store worker '{self._name}' did not stop within {timeout}s")
                return
            logger.info(f"Store worker '{self._name}' stopped")
            self._thread = None
            self._stopping = False

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                player_id, text, future = item
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    future.set_result(self._handler(player_id, text))
                except Exception as e:
                    logger.exception(f"Submission handler failed for player {player_id}")
                    future.set_exception(e)
            finally:
                self._queue.task_done()
