import logging
from pathlib import Path

import aiosqlite
from pydantic import ValidationError

from productcache.models.results import CacheSnapshot

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Persists a single cache snapshot as JSON in SQLite.

    Only the latest snapshot is kept. The stored byte total is never
    trusted; restoring recomputes it from the entries.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = str(db_path)
        self.connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL mode, execute schema."""
        self.connection = await aiosqlite.connect(self.db_path)
        self.connection.row_factory = aiosqlite.Row
        schema_path = Path(__file__).parent / "schema.sql"
        await self.connection.executescript(schema_path.read_text())
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.commit()
        logger.info(f"Snapshot store initialized at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def __aenter__(self) -> "SnapshotStore":
        await self.initialize()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.close()

    async def save(self, snapshot: CacheSnapshot) -> None:
        assert self.connection is not None
        await self.connection.execute(
            """INSERT INTO cache_snapshot (id, payload, entry_count, saved_at)
               VALUES (1, ?, ?, datetime('now'))
               ON CONFLICT(id) DO UPDATE SET
                   payload = excluded.payload,
                   entry_count = excluded.entry_count,
                   saved_at = excluded.saved_at""",
            (snapshot.model_dump_json(), len(snapshot.entries)),
        )
        await self.connection.commit()

    async def load(self) -> CacheSnapshot | None:
        """Return the stored snapshot, or None if absent or unreadable."""
        assert self.connection is not None
        cursor = await self.connection.execute("SELECT payload FROM cache_snapshot WHERE id = 1")
        row = await cursor.fetchone()
        if row is None:
            return None
        try:
            return CacheSnapshot.model_validate_json(row["payload"])
        except ValidationError:
            logger.warning("Discarding unreadable cache snapshot in %s", self.db_path)
            return None

    async def clear(self) -> None:
        assert self.connection is not None
        await self.connection.execute("DELETE FROM cache_snapshot")
        await self.connection.commit()
