"""
Tests for the playback event log.
"""

from __future__ import annotations

import pytest

from cadence.core.catalog_db import CatalogDb
from cadence.core.db.errors import ConstraintViolation, NotFound, ReferentialIntegrityViolation
from cadence.core.db.models import EventType, NewSong


class TestEventLog:
    @pytest.fixture
    async def db(self) -> CatalogDb:
        db = CatalogDb(":memory:")
        await db.open()
        await db.ensure_schema()
        yield db
        await db.close()

    @pytest.fixture
    async def song_id(self, db: CatalogDb) -> str:
        return await db.create_song(NewSong(title="Played", file_path="/m/p.flac", duration=10))

    async def test_record_event_creates_context(self, db: CatalogDb, song_id: str) -> None:
        event_id = await db.record_event(EventType.PLAY, song_id=song_id)

        event = await db.get_event(event_id)
        assert event.event_type is EventType.PLAY
        assert event.context_id is not None

        context = await db.get_event_context(event.context_id)
        assert context.song_id == song_id
        assert context.playlist_id is None

    async def test_record_event_accepts_strings(self, db: CatalogDb) -> None:
        event_id = await db.record_event("pause")
        event = await db.get_event(event_id)
        assert event.event_type is EventType.PAUSE
        assert event.context_id is None

    async def test_unknown_event_type_rejected(self, db: CatalogDb) -> None:
        with pytest.raises(ConstraintViolation):
            await db.record_event("SKIP")

    async def test_context_and_ids_are_exclusive(self, db: CatalogDb, song_id: str) -> None:
        context_id = await db.create_event_context(song_id=song_id)
        with pytest.raises(ConstraintViolation):
            await db.record_event(EventType.STOP, context_id=context_id, song_id=song_id)

    async def test_reuse_context(self, db: CatalogDb, song_id: str) -> None:
        context_id = await db.create_event_context(song_id=song_id)
        await db.record_event(EventType.PLAY, context_id=context_id)
        await db.record_event(EventType.STOP, context_id=context_id)

        contexts = await db.list_event_contexts_for_song(song_id)
        assert [c.id for c in contexts] == [context_id]

    async def test_unknown_context_rejected(self, db: CatalogDb) -> None:
        with pytest.raises(ReferentialIntegrityViolation):
            await db.record_event(EventType.PLAY, context_id="missing")

    async def test_list_events_by_type_newest_first(self, db: CatalogDb, song_id: str) -> None:
        first = await db.record_event(EventType.PLAY, song_id=song_id)
        await db.record_event(EventType.STOP, song_id=song_id)
        second = await db.record_event(EventType.PLAY, song_id=song_id)

        plays = await db.list_events_by_type("PLAY")
        assert [e.id for e in plays] == [second, first]

    async def test_contexts_for_playlist(self, db: CatalogDb, song_id: str) -> None:
        playlist_id = await db.create_playlist("Queue")
        await db.record_event(EventType.PLAY, song_id=song_id, playlist_id=playlist_id)

        contexts = await db.list_event_contexts_for_playlist(playlist_id)
        assert len(contexts) == 1
        assert contexts[0].song_id == song_id

    async def test_missing_event(self, db: CatalogDb) -> None:
        with pytest.raises(NotFound):
            await db.get_event("missing")
        with pytest.raises(NotFound):
            await db.get_event_context("missing")
