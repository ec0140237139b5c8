import logging
from typing import List, Tuple

import aiosqlite

logger = logging.getLogger(__name__)

MIGRATIONS: List[Tuple[int, str]] = [
    (1, """
        CREATE TABLE IF NOT EXISTS lenses (
            id INTEGER PRIMARY KEY,
            uuid TEXT NOT NULL DEFAULT '',
            snapcode_url TEXT NOT NULL DEFAULT '',
            creator_display_name TEXT NOT NULL,
            name TEXT NOT NULL,
            tags TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL DEFAULT 'Live',
            deeplink TEXT NOT NULL DEFAULT '',
            icon_url TEXT NOT NULL DEFAULT '',
            thumbnail_media_url TEXT NOT NULL DEFAULT '',
            thumbnail_media_poster_url TEXT NOT NULL DEFAULT '',
            standard_media_url TEXT NOT NULL DEFAULT '',
            standard_media_poster_url TEXT NOT NULL DEFAULT '',
            creator_slug TEXT NOT NULL DEFAULT '',
            image_sequence TEXT NOT NULL DEFAULT '{}',
            is_web_sourced INTEGER NOT NULL DEFAULT 0,
            is_mirrored INTEGER NOT NULL DEFAULT 0
        );
        CREATE INDEX IF NOT EXISTS idx_lenses_uuid ON lenses(uuid);
        CREATE INDEX IF NOT EXISTS idx_lenses_creator ON lenses(creator_display_name);

        CREATE TABLE IF NOT EXISTS unlocks (
            lens_id INTEGER PRIMARY KEY,
            lens_url TEXT NOT NULL,
            signature TEXT NOT NULL DEFAULT '',
            hint_id TEXT NOT NULL DEFAULT '',
            additional_hint_ids TEXT NOT NULL DEFAULT '{}',
            is_web_sourced INTEGER NOT NULL DEFAULT 0,
            is_mirrored INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS users (
            creator_slug TEXT PRIMARY KEY,
            creator_display_name TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_users_display_name ON users(creator_display_name);
    """),
]


async def _ensure_schema_table(db: aiosqlite.Connection) -> None:
    await db.execute("""
        CREATE TABLE IF NOT EXISTS schema_versions(
            version INTEGER PRIMARY KEY
        )
    """)
    await db.commit()


async def _get_current_version(db: aiosqlite.Connection) -> int:
    cursor = await db.execute("SELECT MAX(version) FROM schema_versions")
    row = await cursor.fetchone()
    return row[0] or 0


async def run_migrations(db: aiosqlite.Connection) -> int:
    """Apply pending migrations in order. Returns the resulting schema version."""
    await _ensure_schema_table(db)
    current = await _get_current_version(db)
    for version, sql in MIGRATIONS:
        if version <= current:
            continue
        try:
            await db.executescript(sql)
            await db.execute("INSERT INTO schema_versions(version) VALUES (?)", (version,))
            await db.commit()
            current = version
            logger.info(f"[MIGRATION] Applied v{version}")
        except aiosqlite.Error as e:
            logger.error(f"[MIGRATION] v{version} failed: {e}")
            await db.rollback()
            raise
    return current
