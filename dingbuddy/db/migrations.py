"""SQLite schema bootstrap for the document store."""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Bump together with a new entry in _MIGRATIONS
SCHEMA_VERSION = 1


async def _create_documents_table(db: aiosqlite.Connection) -> None:
    await db.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))


_MIGRATIONS = {
    1: _create_documents_table,
}


async def current_version(db: aiosqlite.Connection) -> int:
    async with db.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
    return int(row[0]) if row else 0


async def run_migrations(db_path: Path) -> None:
    """Bring the database at ``db_path`` up to SCHEMA_VERSION.

    Steps are applied in order and the reached version is stored in
    ``PRAGMA user_version``. Documents inside the table carry their own
    version and are upgraded when read, not here.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(db_path) as db:
        version = await current_version(db)
        if version > SCHEMA_VERSION:
            logger.warning(
                f"Database {db_path} is at schema v{version}, newer than v{SCHEMA_VERSION}"
            )
            return

        for target in range(version + 1, SCHEMA_VERSION + 1):
            await _MIGRATIONS[target](db)
            await db.execute(f"PRAGMA user_version = {target}")
            await db.commit()
            logger.info(f"Migrated {db_path} to schema v{target}")
