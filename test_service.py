"""
Tests for the submission service.

Tests cover:
- Submit then list round trip, newest first
- Input normalization and rejection
- Degraded behavior with an unreachable store
- Re-probe recovery without restart
- Connection loss during a write
- Fire-and-forget submission through the worker
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from craftmessage import storage
from craftmessage.service import MessageService
from craftmessage.storage import Outcome, StoreState


class TestRoundTrip:

    def test_submit_then_list_for_player(self, service):
        player = uuid4()

        assert service.submit_message(str(player), "hello there") is True
        assert service.submit_message(str(player), "second") is True

        messages = service.list_for_player(player)

        assert [m.text for m in messages] == ["second", "hello there"]
        assert messages[0].player_id == player
        assert messages[0].id == max(m.id for m in messages)

    def test_list_all_strictly_descending(self, service):
        for i in range(6):
            service.submit_message(uuid4(), f"message {i}")

        ids = [m.id for m in service.list_all()]

        assert len(ids) == 6
        assert all(a > b for a, b in zip(ids, ids[1:]))

    def test_count(self, service):
        assert service.count() == 0
        service.submit_message(uuid4(), "one")
        service.submit_message(uuid4(), "two")
        assert service.count() == 2

    def test_text_is_trimmed(self, service):
        player = uuid4()
        service.submit_message(player, "   padded   ")
        assert service.list_for_player(player)[0].text == "padded"

    def test_max_length_text_accepted(self, service):
        assert service.submit_message(uuid4(), "x" * 256) is True

    def test_find_and_delete(self, service):
        player = uuid4()
        service.submit_message(player, "to delete")
        message_id = service.list_for_player(player)[0].id

        assert service.find(message_id).text == "to delete"
        assert service.delete(message_id) is True
        assert service.find(message_id) is None
        assert service.delete(message_id) is False


class TestInvalidInput:

    @pytest.mark.parametrize(
        "player_id, text",
        [
            ("not-a-uuid", "hello"),
            (None, "hello"),
            ("", "hello"),
        ],
    )
    def test_bad_player_id(self, service, player_id, text):
        assert service.store_message(player_id, text) is Outcome.INVALID
        assert service.count() == 0

    @pytest.mark.parametrize("text", ["", "   ", "x" * 257, None])
    def test_bad_text(self, service, text):
        assert service.store_message(uuid4(), text) is Outcome.INVALID
        assert service.count() == 0

    def test_list_for_bad_player_id(self, service):
        assert service.list_for_player("nope") == []


class TestUnavailableStore:

    def test_everything_degrades(self, unreachable_service):
        svc = unreachable_service

        assert svc.submit_message(uuid4(), "hello") is False
        assert svc.store_message(uuid4(), "hello") is Outcome.UNAVAILABLE
        assert svc.list_all() == []
        assert svc.list_for_player(uuid4()) == []
        assert svc.count() == 0
        assert svc.find(1) is None
        assert svc.delete(1) is False
        assert svc.is_available() is False

    def test_first_call_probes_once(self, unreachable_service, monkeypatch):
        calls = []
        real_probe = storage.probe

        def counting_probe(settings):
            calls.append(settings)
            return real_probe(settings)

        monkeypatch.setattr(storage, "probe", counting_probe)

        unreachable_service.submit_message(uuid4(), "first")
        assert len(calls) == 1

        # Already known to be unavailable: exactly one re-probe
        unreachable_service.submit_message(uuid4(), "second")
        assert len(calls) == 2


class TestReprobeRecovery:

    def test_store_comes_back(self, unreachable_service, missing_dir):
        player = uuid4()
        assert unreachable_service.submit_message(player, "lost") is False
        assert unreachable_service.handle.state is StoreState.UNAVAILABLE

        missing_dir.mkdir()

        assert unreachable_service.submit_message(player, "kept") is True
        assert unreachable_service.handle.state is StoreState.AVAILABLE
        assert [m.text for m in unreachable_service.list_for_player(player)] == ["kept"]

    def test_is_available_with_reprobe(self, unreachable_service, missing_dir):
        assert unreachable_service.is_available(reprobe=True) is False

        missing_dir.mkdir()

        assert unreachable_service.is_available() is False
        assert unreachable_service.is_available(reprobe=True) is True


class TestConnectionLoss:

    def test_write_failure_tears_down_then_recovers(self, service, monkeypatch):
        assert service.is_available()

        def dropped_commit(self):
            raise OperationalError("INSERT", {}, Exception("server closed the connection unexpectedly"))

        monkeypatch.setattr(Session, "commit", dropped_commit)

        assert service.store_message(uuid4(), "in flight") is Outcome.CONNECTION_LOST
        assert service.handle.state is StoreState.UNINITIALIZED

        monkeypatch.undo()

        assert service.submit_message(uuid4(), "after reconnect") is True
        assert service.handle.state is StoreState.AVAILABLE
        assert [m.text for m in service.list_all()] == ["after reconnect"]

    def test_local_write_failure_keeps_store(self, service, monkeypatch):
        service.is_available()

        def rejected_commit(self):
            raise IntegrityError("INSERT", {}, Exception("constraint failed"))

        monkeypatch.setattr(Session, "commit", rejected_commit)

        assert service.store_message(uuid4(), "rejected") is Outcome.FAILED
        assert service.handle.state is StoreState.AVAILABLE


class TestWorkerSubmission:

    def test_submit_resolves_future(self, service):
        player = uuid4()

        future = service.submit(player, "queued")

        assert future is not None
        assert future.result(timeout=5) is True
        assert service.list_for_player(player)[0].text == "queued"

    def test_submissions_keep_order(self, service):
        player = uuid4()
        futures = [service.submit(player, f"m{i}") for i in range(10)]

        assert all(f.result(timeout=5) for f in futures)
        texts = [m.text for m in service.list_for_player(player)]
        assert texts == [f"m{i}" for i in reversed(range(10))]

    def test_unavailable_store_resolves_false(self, unreachable_service):
        future = unreachable_service.submit(uuid4(), "nowhere")
        assert future.result(timeout=5) is False

    def test_rejected_after_shutdown(self, settings):
        svc = MessageService(settings)
        svc.start()
        svc.shutdown()

        assert svc.submit(uuid4(), "too late") is None
        assert svc.handle.state is StoreState.UNINITIALIZED
