"""Tests for the message lifecycle: ordering, invariants and blob reclamation."""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from voicerelay.core.exceptions import (
    BadInput,
    Conflict,
    Forbidden,
    NotFound,
    StorageUnavailable,
)
from voicerelay.repositories.message import MessageRepository
from voicerelay.services.message_service import MessageLifecycleService
from voicerelay.storage.base import DeleteOutcome
from voicerelay.storage.local import LocalBlobStore

AUDIO = b"fake-m4a-payload"


class UndeletableBlobStore(LocalBlobStore):
    """Local store whose deletes always fail."""

    async def delete(self, key: str) -> DeleteOutcome:
        return DeleteOutcome.FAILED


class ExplodingDeleteBlobStore(LocalBlobStore):
    async def delete(self, key: str) -> DeleteOutcome:
        raise RuntimeError("disk on fire")


class UnavailableBlobStore(LocalBlobStore):
    async def put(self, data: bytes, content_type: str) -> str:
        raise StorageUnavailable()


class SlowBlobStore(LocalBlobStore):
    """Local store whose writes never finish within the timeout."""

    async def _write(self, path, data: bytes) -> None:
        await asyncio.sleep(5)


class RespondDuringDeleteBlobStore(LocalBlobStore):
    """Runs a callback on the first delete, before removing the blob."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.before_first_delete = None

    async def delete(self, key: str) -> DeleteOutcome:
        callback, self.before_first_delete = self.before_first_delete, None
        if callback is not None:
            await callback()
        return await super().delete(key)


async def database_down(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


@pytest.fixture
def service(db_session, blob_store) -> MessageLifecycleService:
    return MessageLifecycleService(db_session, blob_store, max_upload_bytes=1024)


def assert_response_invariant(message) -> None:
    if message.responded:
        assert (message.response_audio_key is None) != (message.response_text is None)
        assert message.audio_key is None
        assert message.responded_at is not None
        assert message.responded_by is not None
    else:
        assert message.response_audio_key is None
        assert message.response_text is None


class TestSubmit:
    async def test_submit_stores_blob_then_record(self, service, blob_store, alice):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        assert await blob_store.read(message.audio_key) == AUDIO
        assert message.username == "alice"

        listed = await service.list_messages(alice)
        assert [m.id for m in listed] == [message.id]
        assert listed[0].responded is False
        assert listed[0].audio_key is not None

    @pytest.mark.parametrize(
        "data,content_type",
        [
            (b"", "audio/mp4"),
            (b"x" * 1025, "audio/mp4"),
            (AUDIO, "image/png"),
            (AUDIO, None),
        ],
    )
    async def test_rejects_bad_uploads(self, service, blob_store, alice, data, content_type):
        with pytest.raises(BadInput):
            await service.submit_message(alice, data, content_type)
        assert not (blob_store.root / "audio").exists()


class TestList:
    async def test_users_only_see_their_own(self, service, alice, bob, moderator):
        mine = await service.submit_message(alice, AUDIO, "audio/mp4")
        theirs = await service.submit_message(bob, AUDIO, "audio/mp4")

        assert [m.id for m in await service.list_messages(alice)] == [mine.id]
        assert all(m.user_id == bob.id for m in await service.list_messages(bob))
        assert [m.id for m in await service.list_messages(moderator)] == [theirs.id, mine.id]


class TestRespond:
    async def test_text_response(self, service, blob_store, alice, moderator):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")
        original_key = message.audio_key

        await service.respond_with_text(moderator, message.id, "Praying for you")

        stored = await MessageRepository(service.db).get_by_id(message.id)
        assert stored.responded is True
        assert stored.response_text == "Praying for you"
        assert stored.audio_key is None
        assert stored.responded_at is not None
        assert stored.responded_by == "mod"
        assert_response_invariant(stored)
        with pytest.raises(NotFound):
            await blob_store.read(original_key)

    async def test_audio_response(self, service, blob_store, alice, moderator):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")
        original_key = message.audio_key

        updated = await service.respond_with_audio(moderator, message.id, b"reply", "audio/mpeg")

        assert updated.response_audio_key.endswith(".mp3")
        assert await blob_store.read(updated.response_audio_key) == b"reply"
        assert_response_invariant(updated)
        with pytest.raises(NotFound):
            await blob_store.read(original_key)

    async def test_user_cannot_respond(self, service, blob_store, alice, bob):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        with pytest.raises(Forbidden):
            await service.respond_with_audio(bob, message.id, b"reply", "audio/mp4")
        with pytest.raises(Forbidden):
            await service.respond_with_text(alice, message.id, "self-help")

        stored = await MessageRepository(service.db).get_by_id(message.id)
        assert stored.responded is False
        assert stored.audio_key == message.audio_key
        assert await blob_store.read(message.audio_key) == AUDIO

    async def test_missing_message(self, service, moderator):
        with pytest.raises(NotFound):
            await service.respond_with_text(moderator, "nope", "hello")
        with pytest.raises(NotFound):
            await service.respond_with_audio(moderator, "nope", b"reply", "audio/mp4")

    async def test_blank_text_rejected(self, service, alice, moderator):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")
        with pytest.raises(BadInput):
            await service.respond_with_text(moderator, message.id, "   ")

    async def test_second_response_conflicts_without_storing(
        self, service, blob_store, alice, moderator
    ):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")
        await service.respond_with_text(moderator, message.id, "first")

        with pytest.raises(Conflict):
            await service.respond_with_audio(moderator, message.id, b"late", "audio/mp4")

        assert list((blob_store.root / "audio").iterdir()) == []
        stored = await MessageRepository(service.db).get_by_id(message.id)
        assert stored.response_text == "first"

    async def test_lost_race_reclaims_response_blob(
        self, service, blob_store, alice, moderator, monkeypatch
    ):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        async def lose(*args, **kwargs):
            raise Conflict()

        monkeypatch.setattr(service.messages, "update_for_response", lose)

        with pytest.raises(Conflict):
            await service.respond_with_audio(moderator, message.id, b"reply", "audio/mp4")

        remaining = [p.name for p in (blob_store.root / "audio").iterdir()]
        assert remaining == [message.audio_key.split("/", 1)[1]]

    async def test_failed_commit_reclaims_response_blob(
        self, service, blob_store, alice, moderator, monkeypatch
    ):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")
        monkeypatch.setattr(service.db, "commit", database_down)

        with pytest.raises(StorageUnavailable):
            await service.respond_with_audio(moderator, message.id, b"reply", "audio/mpeg")

        remaining = [p.name for p in (blob_store.root / "audio").iterdir()]
        assert remaining == [message.audio_key.split("/", 1)[1]]

    async def test_failed_blob_delete_does_not_undo_response(
        self, db_session, tmp_path, alice, moderator
    ):
        store = UndeletableBlobStore(tmp_path / "stuck", "http://test", "secret")
        service = MessageLifecycleService(db_session, store)
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        updated = await service.respond_with_text(moderator, message.id, "ok")

        assert updated.responded is True
        assert updated.audio_key is None

    async def test_raising_blob_delete_is_contained(
        self, db_session, tmp_path, alice, moderator
    ):
        store = ExplodingDeleteBlobStore(tmp_path / "boom", "http://test", "secret")
        service = MessageLifecycleService(db_session, store)
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        updated = await service.respond_with_text(moderator, message.id, "ok")

        assert updated.responded is True


class TestDelete:
    async def test_owner_delete_removes_record_and_blobs(
        self, service, blob_store, alice, moderator
    ):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")
        updated = await service.respond_with_audio(moderator, message.id, b"reply", "audio/mp4")

        await service.delete_message(alice, message.id)

        assert await MessageRepository(service.db).get_by_id(message.id) is None
        with pytest.raises(NotFound):
            await blob_store.read(updated.response_audio_key)
        assert list((blob_store.root / "audio").iterdir()) == []

    async def test_non_owner_cannot_delete(self, service, blob_store, alice, bob, moderator):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        for caller in (bob, moderator):
            with pytest.raises(Forbidden):
                await service.delete_message(caller, message.id)

        assert await MessageRepository(service.db).get_by_id(message.id) is not None
        assert await blob_store.read(message.audio_key) == AUDIO

    async def test_response_committed_mid_delete_is_reclaimed(
        self, db_session, session_factory, tmp_path, alice, moderator
    ):
        store = RespondDuringDeleteBlobStore(tmp_path / "race", "http://test", "secret")
        service = MessageLifecycleService(db_session, store)
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        async def moderator_responds():
            async with session_factory() as other:
                await MessageLifecycleService(other, store).respond_with_audio(
                    moderator, message.id, b"reply", "audio/mpeg"
                )

        store.before_first_delete = moderator_responds
        await service.delete_message(alice, message.id)

        assert await MessageRepository(db_session).get_by_id(message.id) is None
        assert list((store.root / "audio").iterdir()) == []

    async def test_missing_message(self, service, alice):
        with pytest.raises(NotFound):
            await service.delete_message(alice, "nope")

    async def test_record_deleted_even_if_blob_delete_fails(self, db_session, tmp_path, alice):
        store = UndeletableBlobStore(tmp_path / "stuck", "http://test", "secret")
        service = MessageLifecycleService(db_session, store)
        message = await service.submit_message(alice, AUDIO, "audio/mp4")

        await service.delete_message(alice, message.id)

        assert await MessageRepository(db_session).get_by_id(message.id) is None


class TestStorageUnavailable:
    async def test_failed_put_creates_no_record(self, db_session, tmp_path, alice):
        store = UnavailableBlobStore(tmp_path / "down", "http://test", "secret")
        service = MessageLifecycleService(db_session, store)

        with pytest.raises(StorageUnavailable):
            await service.submit_message(alice, AUDIO, "audio/mp4")

        assert await service.list_messages(alice) == []

    async def test_slow_put_times_out(self, db_session, tmp_path, alice):
        store = SlowBlobStore(tmp_path / "slow", "http://test", "secret", timeout=0.05)
        service = MessageLifecycleService(db_session, store)

        with pytest.raises(StorageUnavailable):
            await service.submit_message(alice, AUDIO, "audio/mp4")

        assert await service.list_messages(alice) == []

    async def test_failed_insert_leaves_blob_orphaned(
        self, service, blob_store, alice, monkeypatch
    ):
        monkeypatch.setattr(service.db, "flush", database_down)

        with pytest.raises(StorageUnavailable) as excinfo:
            await service.submit_message(alice, AUDIO, "audio/mp4")

        assert excinfo.value.detail == "Storage temporarily unavailable"
        monkeypatch.undo()
        await service.db.rollback()
        assert len(list((blob_store.root / "audio").iterdir())) == 1
        assert await service.list_messages(alice) == []

    async def test_failed_commit_leaves_blob_orphaned(
        self, service, blob_store, alice, monkeypatch
    ):
        monkeypatch.setattr(service.db, "commit", database_down)

        with pytest.raises(StorageUnavailable):
            await service.submit_message(alice, AUDIO, "audio/mp4")

        monkeypatch.undo()
        await service.db.rollback()
        assert len(list((blob_store.root / "audio").iterdir())) == 1
        assert await service.list_messages(alice) == []


class TestPlayback:
    async def test_url_for_key(self, service, alice):
        message = await service.submit_message(alice, AUDIO, "audio/mp4")
        url = await service.get_playback_url(message.audio_key)
        assert url.startswith("http://test/blobs/audio/")

    async def test_empty_key_rejected(self, service):
        with pytest.raises(BadInput):
            await service.get_playback_url("")
