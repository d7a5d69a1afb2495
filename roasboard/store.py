"""SQLite row source for the lead and sale tables.

The analysis only ever reads from this store.  Table and column names are
interpolated into SQL, so every identifier passes through
:func:`quote_identifier` against an allowlist first; values always travel as
bound parameters.
"""
from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A query against the relational store failed."""


def quote_identifier(name: str, allowed: Iterable[str]) -> str:
    """Return *name* double-quoted for SQLite, or raise if it is not allowed."""
    if name not in set(allowed):
        raise StoreError(f"Identifier not allowed: {name!r}")
    return '"' + name.replace('"', '""') + '"'


# ─────────────────────────────────────────────────────────────────────────────
# Store
# ─────────────────────────────────────────────────────────────────────────────

class SQLiteStore:
    """Read-only access to a SQLite database holding lead / sale tables."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            raise FileNotFoundError(f"Database not found: {self.db_path}")
        self._columns: Dict[str, List[str]] = {}

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    # ── Schema ────────────────────────────────────────────────────────────────

    def list_tables(self) -> List[str]:
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [r["name"] for r in rows]

    def columns(self, table: str) -> List[str]:
        """Column names of *table*; cached per instance."""
        if table not in self._columns:
            ident = quote_identifier(table, self.list_tables())
            rows = self.query(f"PRAGMA table_info({ident})")
            self._columns[table] = [r["name"] for r in rows]
        return self._columns[table]

    def column_exists(self, table: str, column: str) -> bool:
        """False when the column is absent; a failing lookup raises StoreError."""
        return column in self.columns(table)

    # ── Queries ───────────────────────────────────────────────────────────────

    def query(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                cur = conn.execute(sql, dict(params or {}))
                rows = [dict(r) for r in cur.fetchall()]
        except sqlite3.Error as exc:
            raise StoreError(f"{exc} (sql: {' '.join(sql.split())[:200]})") from exc
        logger.debug("query returned %d row(s)", len(rows))
        return rows
