"""
Chainlink Feed Directory
Read access to the persisted Chainlink data-feed records

The directory is filled and refreshed by an external ingestion job; the
verifier only looks records up by (chain id, "{symbol}-usd" path key).
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

import aiosqlite

logger = logging.getLogger("FeedDirectory")

DEPRECATED_STATUS = "deprecated"


@dataclass(frozen=True)
class PriceFeedRecord:
    """One Chainlink data feed as stored by the ingestion job"""
    proxy_address: Optional[str]
    path_key: str
    pair: Tuple[str, ...]
    decimals: int
    status: str = "active"

    @property
    def is_usable(self) -> bool:
        return bool(self.proxy_address) and self.status != DEPRECATED_STATUS

    @classmethod
    def from_row(cls, row: Dict) -> "PriceFeedRecord":
        pair = row.get("pair") or ()
        if isinstance(pair, str):
            pair = json.loads(pair) if pair.startswith("[") else pair.split("/")
        return cls(
            proxy_address=row.get("proxy_address"),
            path_key=row.get("path", ""),
            pair=tuple(pair),
            decimals=int(row.get("decimals") or 0),
            status=row.get("status") or "",
        )


def feed_path_key(symbol: str) -> str:
    """Normalized lookup key, e.g. "WBTC" -> "wbtc-usd"."""
    return f"{symbol.lower()}-usd"


class FeedDirectory:
    """Lookup interface over the persisted feed records"""

    async def lookup(self, chain_id: int, path_key: str) -> Optional[PriceFeedRecord]:
        raise NotImplementedError


class InMemoryFeedDirectory(FeedDirectory):
    """Feed directory held in memory, keyed by (chain id, path key)"""

    def __init__(self, records: Iterable[Tuple[int, PriceFeedRecord]] = ()):
        self._records: Dict[Tuple[int, str], PriceFeedRecord] = {}
        for chain_id, record in records:
            self._records[(chain_id, record.path_key)] = record

    async def lookup(self, chain_id: int, path_key: str) -> Optional[PriceFeedRecord]:
        return self._records.get((chain_id, path_key))

    def __len__(self):
        return len(self._records)


class SQLiteFeedDirectory(FeedDirectory):
    """SQLite-backed feed directory (read side of the ingestion store)"""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def ensure_schema(self):
        """Create the feeds table if the ingestion job has not done it yet"""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS chainlink_feeds (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_chain INTEGER NOT NULL,
                    path TEXT NOT NULL,
                    proxy_address TEXT,
                    pair TEXT,
                    decimals INTEGER DEFAULT 0,
                    status TEXT DEFAULT '',
                    updated_at TEXT,
                    UNIQUE (path, source_chain)
                )
            """)
            await db.commit()

    async def lookup(self, chain_id: int, path_key: str) -> Optional[PriceFeedRecord]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT path, proxy_address, pair, decimals, status
                FROM chainlink_feeds
                WHERE source_chain = ? AND path = ?
                """,
                (chain_id, path_key)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                return PriceFeedRecord.from_row(dict(row))
