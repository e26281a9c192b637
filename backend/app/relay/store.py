"""Persistence collaborator for batched price writes."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path

from .models import PriceWrite

logger = logging.getLogger(__name__)


class PriceStore(ABC):
    """Sink for batched current-price writes.

    The relay treats the store as fire-and-forget: UpdateBatcher calls
    bulk_update() once per flush and only logs if it raises.
    """

    @abstractmethod
    async def bulk_update(self, writes: list[PriceWrite]) -> int:
        """Apply every write as one batch. Returns the number of rows touched."""


class SqlitePriceStore(PriceStore):
    """PriceStore backed by the portfolio's SQLite ``holdings`` table.

    Each write sets ``current_price`` and ``last_updated`` on every holding
    row for its symbol. Rows are never inserted here: a symbol nobody holds
    touches nothing.
    """

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS holdings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            symbol TEXT NOT NULL,
            date TEXT NOT NULL,
            closing_price REAL NOT NULL,
            quantity REAL NOT NULL DEFAULT 0,
            total_value REAL NOT NULL DEFAULT 0,
            current_price REAL,
            last_updated TEXT,
            UNIQUE(symbol, date)
        )
    """

    _UPDATE = "UPDATE holdings SET current_price = ?, last_updated = ? WHERE symbol = ?"

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._schema_ready = False

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self._db_path, timeout=10.0)
        if not self._schema_ready:
            con.execute(self._SCHEMA)
            con.execute("CREATE INDEX IF NOT EXISTS idx_holdings_symbol ON holdings(symbol)")
            con.commit()
            self._schema_ready = True
        return con

    async def bulk_update(self, writes: list[PriceWrite]) -> int:
        if not writes:
            return 0
        # sqlite3 blocks; keep it off the event loop.
        return await asyncio.to_thread(self._write, writes)

    def _write(self, writes: list[PriceWrite]) -> int:
        rows = [(w.current_price, w.last_updated.isoformat(), w.symbol) for w in writes]
        con = self._connect()
        try:
            with con:
                before = con.total_changes
                con.executemany(self._UPDATE, rows)
                touched = con.total_changes - before
        finally:
            con.close()
        logger.debug("Price store: %d writes touched %d holdings", len(rows), touched)
        return touched
