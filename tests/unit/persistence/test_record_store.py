"""
Record Store Unit Tests
=======================

[CRITICAL] Idempotent inserts, forced repair, read filters.
"""

import asyncio

import pytest

from config import MirrorConfig


# ============================================================================
# Insert Tests
# ============================================================================

class TestInsertLens:
    """Test insert_lens idempotency and validation."""

    async def test_insert_then_read(self, store, assets, lens_factory):
        """A valid lens is stored and its assets are downloaded."""
        lens = lens_factory(1)

        assert await store.insert_lens(lens) is True

        stored = await store.get_by_id(1)
        assert len(stored) == 1
        assert stored[0].name == "Lens 1"
        assert stored[0].is_mirrored is False
        assert assets.lens_downloads == [1]

    async def test_insert_twice_is_idempotent(self, store, assets, lens_factory, row_counter):
        """Second insert of the same id writes nothing and downloads nothing."""
        first = lens_factory(1, name="Original")
        second = lens_factory(1, name="Changed")

        assert await store.insert_lens(first) is True
        assert await store.insert_lens(second) is True

        stored = await store.get_by_id(1)
        assert stored[0].name == "Original"
        assert await row_counter(store, "lenses") == 1
        assert assets.lens_downloads == [1]

    async def test_forced_duplicate_is_metadata_inert(self, store, assets, lens_factory):
        """A forced duplicate re-downloads assets but keeps stored values."""
        await store.insert_lens(lens_factory(1, name="Original", tags="a"))

        result = await store.insert_lens(
            lens_factory(1, name="Changed", tags="b"),
            force_asset_download=True,
        )

        assert result is True
        stored = await store.get_by_id(1)
        assert stored[0].name == "Original"
        assert stored[0].tags == "a"
        assert assets.lens_downloads == [1, 1]

    async def test_empty_lens_rejected(self, store, assets, row_counter):
        """insert_lens({}) performs zero writes and signals failure."""
        assert await store.insert_lens({}) is False
        assert await row_counter(store, "lenses") == 0
        assert assets.lens_downloads == []

    @pytest.mark.parametrize("missing", ["id", "name", "creator_display_name"])
    async def test_missing_required_field_rejected(self, store, lens_factory, missing, row_counter):
        lens = lens_factory(1)
        setattr(lens, missing, None if missing == "id" else "")

        assert await store.insert_lens(lens) is False
        assert await row_counter(store, "lenses") == 0

    async def test_invalid_entry_aborts_whole_batch(self, store, lens_factory, row_counter):
        """Validation happens before any write of the batch."""
        batch = [lens_factory(1), lens_factory(2, name=""), lens_factory(3)]

        assert await store.insert_lens(batch) is False
        assert await row_counter(store, "lenses") == 0

    async def test_batch_inserted_in_order(self, store, assets, lens_factory):
        """Batch entries are processed sequentially in the given order."""
        batch = [lens_factory(3), lens_factory(1), lens_factory(2)]

        assert await store.insert_lens(batch) is True
        assert assets.lens_downloads == [3, 1, 2]

    async def test_uuid_derived_from_deeplink(self, store, lens_factory):
        uuid = "0123456789abcdef0123456789abcdef"
        lens = lens_factory(
            5,
            uuid="",
            deeplink=f"https://www.snapchat.com/unlock/?type=SNAPCODE&uuid={uuid}&metadata=01",
        )

        await store.insert_lens(lens)

        stored = await store.search_by_uuid(uuid)
        assert [l.id for l in stored] == [5]

    async def test_user_inserted_with_lens(self, store, lens_factory):
        """A lens with slug + display name registers its creator."""
        await store.insert_lens(lens_factory(1, creator_display_name="Alice", creator_slug="alice-slug"))

        assert await store.get_creator_slug_by_display_name("Alice") == "alice-slug"
        assert await store.get_creator_slug_by_display_name("Bob") == ""

    async def test_concurrent_inserts_single_row(self, store, assets, lens_factory, row_counter):
        """Racing writers: exactly one row, exactly one download."""
        results = await asyncio.gather(*(store.insert_lens(lens_factory(1)) for _ in range(3)))

        assert all(results)
        assert await row_counter(store, "lenses") == 1
        assert assets.lens_downloads == [1]

    async def test_download_failure_does_not_fail_insert(self, store, assets, lens_factory):
        """The asset side effect is best-effort."""
        async def broken(lens):
            raise RuntimeError("disk full")

        assets.download_lens_assets = broken

        assert await store.insert_lens(lens_factory(1)) is True
        assert len(await store.get_by_id(1)) == 1


class TestInsertUnlock:
    """Test insert_unlock."""

    async def test_insert_and_duplicate(self, store, assets, unlock_factory):
        unlock = unlock_factory(1)

        assert await store.insert_unlock(unlock) is True
        assert await store.insert_unlock(unlock_factory(1, signature="other")) is True

        stored = await store.get_unlock_by_lens_id(1)
        assert len(stored) == 1
        assert stored[0].signature == "sig"
        assert assets.unlock_downloads == [(1, unlock.lens_url)]

    async def test_forced_duplicate_downloads_again(self, store, assets, unlock_factory):
        await store.insert_unlock(unlock_factory(1))
        await store.insert_unlock(unlock_factory(1), force_asset_download=True)

        assert len(assets.unlock_downloads) == 2

    async def test_missing_url_rejected(self, store, unlock_factory, row_counter):
        assert await store.insert_unlock(unlock_factory(1, lens_url="")) is False
        assert await row_counter(store, "unlocks") == 0


class TestInsertUser:
    """Test insert_user."""

    async def test_duplicate_is_noop(self, store):
        from core.models import User

        assert await store.insert_user(User("slug", "Alice")) is True
        assert await store.insert_user(User("slug", "Renamed")) is True

        assert await store.get_creator_slug_by_display_name("Alice") == "slug"
        assert await store.get_creator_slug_by_display_name("Renamed") == ""

    async def test_invalid_user(self, store):
        from core.models import User

        assert await store.insert_user(User("", "Alice")) is False


# ============================================================================
# Read Tests
# ============================================================================

class TestReads:
    """Test read queries and filters."""

    async def test_search_by_name_case_insensitive(self, store, lens_factory):
        await store.insert_lens([
            lens_factory(1, name="Puppy Ears"),
            lens_factory(2, name="Cat", creator_display_name="PUPPYLOVER"),
            lens_factory(3, name="Other"),
        ])

        result = await store.search_by_name("puppy")

        assert sorted(l.id for l in result) == [1, 2]

    async def test_search_by_name_literal_wildcards(self, store, lens_factory):
        await store.insert_lens([lens_factory(1, name="100% fun"), lens_factory(2, name="1000 fun")])

        result = await store.search_by_name("100%")

        assert [l.id for l in result] == [1]

    async def test_search_by_name_capped(self, store, lens_factory):
        from core.persistence import MAX_SEARCH_RESULTS

        await store.insert_lens([lens_factory(i, name=f"Glow {i}") for i in range(1, 261)])

        result = await store.search_by_name("glow")

        assert len(result) == MAX_SEARCH_RESULTS

    async def test_search_by_tags_any(self, store, lens_factory):
        await store.insert_lens([
            lens_factory(1, tags="halloween,scary"),
            lens_factory(2, tags="christmas"),
            lens_factory(3, tags="beach"),
        ])

        result = await store.search_by_tags(["#halloween", "christmas"])

        assert sorted(l.id for l in result) == [1, 2]
        assert await store.search_by_tags([]) == []

    async def test_get_by_ids_and_filter_existing(self, store, lens_factory):
        await store.insert_lens([lens_factory(1), lens_factory(2)])

        assert sorted(l.id for l in await store.get_by_ids([1, 2, 3])) == [1, 2]
        assert sorted(await store.filter_existing([1, "2", 3, "x"])) == [1, 2]
        assert await store.get_by_ids([]) == []

    async def test_no_match_is_empty_list(self, store):
        assert await store.search_by_name("nothing") == []
        assert await store.search_by_uuid("f" * 32) == []
        assert await store.get_by_id(999) == []
        assert await store.get_unlock_by_lens_id(999) == []

    async def test_query_failure_is_empty_list(self, store, lens_factory):
        """A broken connection pool degrades to empty results."""
        await store.insert_lens(lens_factory(1))
        await store.pool.close()

        assert await store.search_by_name("lens") == []
        assert await store.get_by_id(1) == []
        assert await store.insert_lens(lens_factory(2)) is False


class TestWebSourceGating:
    """Web-sourced rows are visible only with enable_web_source."""

    async def test_hidden_by_default(self, store, web_store, lens_factory, unlock_factory):
        await store.insert_lens(lens_factory(1, name="Web", is_web_sourced=True))
        await store.insert_lens(lens_factory(2, name="Local"))
        await store.insert_unlock(unlock_factory(1, is_web_sourced=True))

        assert [l.id for l in await store.search_by_name("")] == []
        assert [l.id for l in await store.get_by_ids([1, 2])] == [2]
        assert await store.get_by_id(1) == []
        assert await store.filter_existing([1, 2]) == [2]
        assert await store.get_unlock_by_lens_id(1) == []

        assert sorted(l.id for l in await web_store.get_by_ids([1, 2])) == [1, 2]
        assert await web_store.filter_existing([1]) == [1]
        assert len(await web_store.get_unlock_by_lens_id(1)) == 1


class TestMediaFilter:
    """Test ignore_alt_media / ignore_img_sequence."""

    async def _read_with(self, store, mirror_config, lens):
        from core.persistence import RecordStore

        await store.insert_lens(lens)
        filtered = RecordStore(store.pool, mirror_config)
        return (await filtered.get_by_id(lens.id))[0]

    async def test_ignore_alt_media(self, store, lens_factory):
        lens = await self._read_with(
            store,
            MirrorConfig(ignore_alt_media=True),
            lens_factory(1, thumbnail_media_url=""),
        )

        assert lens.thumbnail_media_url == lens.thumbnail_media_poster_url
        assert lens.standard_media_url == ""
        assert lens.standard_media_poster_url == ""
        assert lens.image_sequence == {}

    async def test_ignore_img_sequence(self, store, lens_factory):
        lens = await self._read_with(store, MirrorConfig(ignore_img_sequence=True), lens_factory(1))

        assert lens.image_sequence == {}
        assert lens.standard_media_url != ""

    async def test_unfiltered_read(self, store, lens_factory):
        from core.persistence import RecordStore

        await store.insert_lens(lens_factory(1))
        filtered = RecordStore(store.pool, MirrorConfig(ignore_alt_media=True))

        raw = (await filtered.get_by_id(1, apply_media_filter=False))[0]

        assert raw.image_sequence == {"0": "https://cdn.example.com/1/0.jpg"}


class TestMarkMirrored:
    """Test mirrored bookkeeping."""

    async def test_mark_lens_and_unlock(self, store, lens_factory, unlock_factory):
        await store.insert_lens(lens_factory(1))
        await store.insert_unlock(unlock_factory(1))

        await store.mark_lens_mirrored(1)
        await store.mark_unlock_mirrored(1)

        assert (await store.get_by_id(1))[0].is_mirrored is True
        assert (await store.get_unlock_by_lens_id(1))[0].is_mirrored is True

    async def test_failure_is_swallowed(self, store):
        await store.pool.close()

        assert await store.mark_lens_mirrored(1) is None


class TestDuplicateClassification:
    """Test is_duplicate_key."""

    def test_unique_violation(self):
        import aiosqlite
        from core.persistence import is_duplicate_key

        assert is_duplicate_key(aiosqlite.IntegrityError("UNIQUE constraint failed: lenses.id"))

    def test_other_errors(self):
        import aiosqlite
        from core.persistence import is_duplicate_key

        assert not is_duplicate_key(aiosqlite.IntegrityError("NOT NULL constraint failed: lenses.name"))
        assert not is_duplicate_key(aiosqlite.OperationalError("database is locked"))
