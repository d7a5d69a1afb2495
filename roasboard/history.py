"""Saved analysis results, newest first, capped at ``max_reports``.

Usage::

    history = ReportHistory("data/history.sqlite")
    report_id = history.save(result, label="captaciones|ventas")
    for entry in history.list():
        print(entry["id"], entry["label"], entry["created_at"])
    result = history.load(report_id)
"""
from __future__ import annotations

import json
import sqlite3
import uuid
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


class ReportHistory:
    """zlib-compressed JSON results in a SQLite table."""

    def __init__(self, db_path: str | Path, max_reports: int = 50) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_reports = max_reports
        self._init_db()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS reports (
                    id         TEXT PRIMARY KEY,
                    label      TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    payload    BLOB NOT NULL
                )
            """)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, check_same_thread=False)

    # ── Public API ────────────────────────────────────────────────────────────

    def save(self, result: Dict[str, Any], label: Optional[str] = None) -> str:
        """Store *result* and drop everything beyond the newest ``max_reports``."""
        report_id = uuid.uuid4().hex
        created_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        payload = zlib.compress(json.dumps(result, ensure_ascii=False).encode("utf-8"))
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO reports (id, label, created_at, payload) VALUES (?, ?, ?, ?)",
                (report_id, label or f"Reporte {created_at}", created_at, payload),
            )
            conn.execute(
                "DELETE FROM reports WHERE id NOT IN "
                "(SELECT id FROM reports ORDER BY rowid DESC LIMIT ?)",
                (self.max_reports,),
            )
            conn.commit()
        return report_id

    def list(self) -> List[Dict[str, str]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, label, created_at FROM reports ORDER BY rowid DESC"
            ).fetchall()
        return [{"id": r[0], "label": r[1], "created_at": r[2]} for r in rows]

    def load(self, report_id: str) -> Optional[Dict[str, Any]]:
        """Return the saved result or None when the id is unknown."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM reports WHERE id = ?", (report_id,)
            ).fetchone()
        if row is None:
            return None
        return json.loads(zlib.decompress(row[0]).decode("utf-8"))

    def delete(self, report_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM reports WHERE id = ?", (report_id,))
            conn.commit()
        return cur.rowcount > 0
