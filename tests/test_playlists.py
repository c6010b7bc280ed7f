"""
Tests for playlist storage and the dense position model.

Positions are zero-based: a playlist with N tracks holds exactly 0..N-1.
"""

from __future__ import annotations

import pytest

from cadence.core.catalog_db import CatalogDb
from cadence.core.db.errors import ConstraintViolation, NotFound, ReferentialIntegrityViolation
from cadence.core.db.models import NewSong


def _positions(tracks: list) -> list[int]:
    return [t.position for t in tracks]


def _order(tracks: list) -> list[str]:
    return [t.song_id for t in tracks]


class TestPlaylistStore:
    @pytest.fixture
    async def db(self) -> CatalogDb:
        db = CatalogDb(":memory:")
        await db.open()
        await db.ensure_schema()
        yield db
        await db.close()

    @pytest.fixture
    async def songs(self, db: CatalogDb) -> list[str]:
        return [
            await db.create_song(NewSong(title=f"Track {n}", file_path=f"/m/{n}.flac", duration=100))
            for n in range(5)
        ]

    async def test_create_and_update_playlist(self, db: CatalogDb) -> None:
        playlist_id = await db.create_playlist("Road Trip", description="  ")
        playlist = await db.get_playlist(playlist_id)
        assert playlist.name == "Road Trip"
        assert playlist.description is None

        updated = await db.update_playlist(playlist_id, description="Long drives", pinned=True)
        assert updated.description == "Long drives"
        assert updated.pinned is True

    async def test_list_playlists(self, db: CatalogDb) -> None:
        await db.create_playlist("A")
        await db.create_playlist("B")
        assert {p.name for p in await db.list_playlists()} == {"A", "B"}

    async def test_append_assigns_dense_positions(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Append")
        for song_id in songs:
            await db.add_track(playlist_id, song_id)

        tracks = await db.list_playlist_tracks(playlist_id)
        assert _positions(tracks) == [0, 1, 2, 3, 4]
        assert _order(tracks) == songs

    async def test_insert_shifts_following_tracks(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Insert")
        for song_id in songs[:3]:
            await db.add_track(playlist_id, song_id)

        inserted = await db.add_track(playlist_id, songs[3], position=1)

        assert inserted.position == 1
        tracks = await db.list_playlist_tracks(playlist_id)
        assert _positions(tracks) == [0, 1, 2, 3]
        assert _order(tracks) == [songs[0], songs[3], songs[1], songs[2]]

    async def test_insert_position_is_clamped(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Clamp")
        await db.add_track(playlist_id, songs[0])

        high = await db.add_track(playlist_id, songs[1], position=99)
        low = await db.add_track(playlist_id, songs[2], position=-5)

        assert high.position == 1
        assert low.position == 0
        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == [songs[2], songs[0], songs[1]]
        assert _positions(tracks) == [0, 1, 2]

    async def test_duplicate_membership_rejected(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Dupes")
        await db.add_track(playlist_id, songs[0])
        with pytest.raises(ConstraintViolation):
            await db.add_track(playlist_id, songs[0])

        tracks = await db.list_playlist_tracks(playlist_id)
        assert _positions(tracks) == [0]

    async def test_add_unknown_song_rejected(self, db: CatalogDb) -> None:
        playlist_id = await db.create_playlist("Ghost")
        with pytest.raises(ReferentialIntegrityViolation):
            await db.add_track(playlist_id, "no-such-song")

    async def test_add_to_missing_playlist(self, db: CatalogDb, songs: list[str]) -> None:
        with pytest.raises(NotFound):
            await db.add_track("no-such-playlist", songs[0])

    async def test_remove_recompacts(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Remove")
        for song_id in songs:
            await db.add_track(playlist_id, song_id)

        await db.remove_track(playlist_id, songs[0])
        await db.remove_track(playlist_id, songs[2])

        tracks = await db.list_playlist_tracks(playlist_id)
        assert _positions(tracks) == [0, 1, 2]
        assert _order(tracks) == [songs[1], songs[3], songs[4]]
        # Songs stay in the catalog
        assert await db.count_songs() == 5

    async def test_remove_every_track(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Drain")
        for song_id in songs[:2]:
            await db.add_track(playlist_id, song_id)

        await db.remove_track(playlist_id, songs[1])
        await db.remove_track(playlist_id, songs[0])

        assert await db.list_playlist_tracks(playlist_id) == []

    async def test_remove_without_compact_then_compact(
        self, db: CatalogDb, songs: list[str]
    ) -> None:
        playlist_id = await db.create_playlist("Batch")
        for song_id in songs:
            await db.add_track(playlist_id, song_id)

        await db.remove_track(playlist_id, songs[1], compact=False)
        await db.remove_track(playlist_id, songs[3], compact=False)
        assert _positions(await db.list_playlist_tracks(playlist_id)) == [0, 2, 4]

        changed = await db.compact_playlist(playlist_id)

        assert changed == 2
        tracks = await db.list_playlist_tracks(playlist_id)
        assert _positions(tracks) == [0, 1, 2]
        assert _order(tracks) == [songs[0], songs[2], songs[4]]

    async def test_append_after_uncompacted_remove_lands_last(
        self, db: CatalogDb, songs: list[str]
    ) -> None:
        playlist_id = await db.create_playlist("Gap")
        for song_id in songs[:3]:
            await db.add_track(playlist_id, song_id)
        await db.remove_track(playlist_id, songs[1], compact=False)

        added = await db.add_track(playlist_id, songs[3])

        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == [songs[0], songs[2], songs[3]]
        assert _positions(tracks) == [0, 1, 2]
        assert added.position == 2

    async def test_insert_and_move_after_uncompacted_remove(
        self, db: CatalogDb, songs: list[str]
    ) -> None:
        playlist_id = await db.create_playlist("GapMove")
        for song_id in songs[:4]:
            await db.add_track(playlist_id, song_id)
        await db.remove_track(playlist_id, songs[0], compact=False)

        await db.add_track(playlist_id, songs[4], position=1)
        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == [songs[1], songs[4], songs[2], songs[3]]
        assert _positions(tracks) == [0, 1, 2, 3]

        await db.remove_track(playlist_id, songs[4], compact=False)
        moved = await db.move_track(playlist_id, songs[1], 99)
        tracks = await db.list_playlist_tracks(playlist_id)
        assert moved.position == 2
        assert _order(tracks) == [songs[2], songs[3], songs[1]]
        assert _positions(tracks) == [0, 1, 2]

    async def test_compacting_remove_closes_older_gaps(
        self, db: CatalogDb, songs: list[str]
    ) -> None:
        playlist_id = await db.create_playlist("Mixed")
        for song_id in songs:
            await db.add_track(playlist_id, song_id)
        await db.remove_track(playlist_id, songs[1], compact=False)

        await db.remove_track(playlist_id, songs[3])

        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == [songs[0], songs[2], songs[4]]
        assert _positions(tracks) == [0, 1, 2]

    async def test_remove_missing_track(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Empty")
        with pytest.raises(NotFound):
            await db.remove_track(playlist_id, songs[0])

    async def test_move_track_down_and_up(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Move")
        for song_id in songs:
            await db.add_track(playlist_id, song_id)

        moved = await db.move_track(playlist_id, songs[0], 3)
        assert moved.position == 3
        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == [songs[1], songs[2], songs[3], songs[0], songs[4]]
        assert _positions(tracks) == [0, 1, 2, 3, 4]

        await db.move_track(playlist_id, songs[4], 0)
        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == [songs[4], songs[1], songs[2], songs[3], songs[0]]
        assert _positions(tracks) == [0, 1, 2, 3, 4]

    async def test_move_track_clamps(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("MoveClamp")
        for song_id in songs[:3]:
            await db.add_track(playlist_id, song_id)

        moved = await db.move_track(playlist_id, songs[0], 42)

        assert moved.position == 2
        assert _positions(await db.list_playlist_tracks(playlist_id)) == [0, 1, 2]

    async def test_reorder_playlist(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Reorder")
        for song_id in songs:
            await db.add_track(playlist_id, song_id)

        wanted = list(reversed(songs))
        await db.reorder_playlist(playlist_id, wanted)

        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == wanted
        assert _positions(tracks) == [0, 1, 2, 3, 4]

    async def test_reorder_requires_permutation(self, db: CatalogDb, songs: list[str]) -> None:
        playlist_id = await db.create_playlist("Strict")
        for song_id in songs[:3]:
            await db.add_track(playlist_id, song_id)

        with pytest.raises(ConstraintViolation):
            await db.reorder_playlist(playlist_id, songs[:2])
        with pytest.raises(ConstraintViolation):
            await db.reorder_playlist(playlist_id, [songs[0], songs[0], songs[1]])

        tracks = await db.list_playlist_tracks(playlist_id)
        assert _order(tracks) == songs[:3]

    async def test_delete_playlist_keeps_songs(self, db: CatalogDb, songs: list[str]) -> None:
        image_id = await db.put_image(b"mix cover")
        playlist_id = await db.create_playlist("Doomed", image_id=image_id)
        for song_id in songs:
            await db.add_track(playlist_id, song_id)
        await db.record_event("PLAY", playlist_id=playlist_id)

        report = await db.delete_playlist(playlist_id)

        assert report.playlists == [playlist_id]
        assert report.images == [image_id]
        assert report.songs == []
        assert await db.count_songs() == 5
        stats = await db.get_stats()
        assert stats["playlist_tracks"] == 0
        assert stats["events"] == 0
        with pytest.raises(NotFound):
            await db.get_playlist(playlist_id)

    async def test_delete_playlist_keeps_shared_image(self, db: CatalogDb) -> None:
        image_id = await db.put_image(b"shared")
        await db.create_song(NewSong(title="S", file_path="/m/s.flac", duration=1, image_id=image_id))
        playlist_id = await db.create_playlist("P", image_id=image_id)

        report = await db.delete_playlist(playlist_id)

        assert report.images == []
        assert (await db.get_image(image_id)).data == b"shared"

    async def test_list_tracks_of_missing_playlist(self, db: CatalogDb) -> None:
        with pytest.raises(NotFound):
            await db.list_playlist_tracks("missing")
