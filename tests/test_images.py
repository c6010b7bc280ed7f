"""
Tests for the image asset store.
"""

from __future__ import annotations

import pytest

from cadence.core.catalog_db import CatalogDb
from cadence.core.db.errors import ConstraintViolation, NotFound
from cadence.core.db.queries_images import content_hash


class TestImages:
    @pytest.fixture
    async def db(self) -> CatalogDb:
        db = CatalogDb(":memory:")
        await db.open()
        await db.ensure_schema()
        yield db
        await db.close()

    async def test_put_and_get(self, db: CatalogDb) -> None:
        image_id = await db.put_image(b"\x89PNG fake")

        image = await db.get_image(image_id)
        assert image.data == b"\x89PNG fake"
        assert image.content_hash == content_hash(b"\x89PNG fake")
        assert image.date_created

    async def test_get_missing_image(self, db: CatalogDb) -> None:
        with pytest.raises(NotFound):
            await db.get_image("missing")

    async def test_empty_blob_rejected(self, db: CatalogDb) -> None:
        with pytest.raises(ConstraintViolation):
            await db.put_image(b"")

    async def test_same_bytes_stored_twice_without_dedupe(self, db: CatalogDb) -> None:
        a = await db.put_image(b"same")
        b = await db.put_image(b"same")
        assert a != b

    async def test_dedupe_reuses_existing_image(self, db: CatalogDb) -> None:
        a = await db.put_image(b"same", dedupe=True)
        b = await db.put_image(b"same", dedupe=True)
        c = await db.put_image(b"other", dedupe=True)
        assert a == b
        assert c != a
        assert (await db.get_stats())["images"] == 2

    async def test_replace_image_data(self, db: CatalogDb) -> None:
        image_id = await db.put_image(b"v1")
        await db.replace_image_data(image_id, b"v2")

        image = await db.get_image(image_id)
        assert image.data == b"v2"
        assert image.content_hash == content_hash(b"v2")

    async def test_replace_missing_image(self, db: CatalogDb) -> None:
        with pytest.raises(NotFound):
            await db.replace_image_data("missing", b"data")

    async def test_unattached_image_collected_by_sweep(self, db: CatalogDb) -> None:
        attached = await db.put_image(b"attached")
        loose = await db.put_image(b"loose")
        await db.create_playlist("Keeps it", image_id=attached)

        report = await db.collect_orphans()

        assert report.images == [loose]
        assert (await db.get_image(attached)).data == b"attached"

    async def test_image_replaced_on_album_update(self, db: CatalogDb) -> None:
        old = await db.put_image(b"old")
        album_id = await db.create_album("Reissue", image_id=old)

        album = await db.update_album(album_id, image_id=None)

        assert album.image_id is None
        with pytest.raises(NotFound):
            await db.get_image(old)

    async def test_shared_image_survives_update_of_one_referrer(self, db: CatalogDb) -> None:
        shared = await db.put_image(b"shared")
        a = await db.create_artist("A", image_id=shared)
        await db.create_artist("B", image_id=shared)

        await db.update_artist(a, image_id=None)

        assert (await db.get_image(shared)).data == b"shared"
