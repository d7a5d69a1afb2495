"""SQLite staging store for raw spend facts.

Spend rows are written once per upload, tagged with the lead/sale table pair
(``config_id``) and a fresh ``report_id``, and read back pre-grouped.  Staging
a config again replaces its earlier facts.
"""
from __future__ import annotations

import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from roasboard.schema import CountrySpend, DaySpendKey, SpendKey, SpendLedger, SpendSegmentation
from roasboard.store import StoreError

logger = logging.getLogger(__name__)

COLLECTIONS: Dict[str, List[str]] = {
    "spend_data": [
        "report_id",
        "config_id",
        "campaign_name",
        "ad_set_name",
        "ad_name",
        "ad_name_normalized",
        "segmentation_normalized",
        "ad_id",
        "day",
        "is_daily",
        "amount_spent",
    ],
    "country_spend_data": [
        "report_id",
        "config_id",
        "country",
        "day",
        "is_daily",
        "amount_spent",
    ],
}

_TRAFFIC_CASE = (
    "CASE WHEN UPPER(COALESCE(campaign_name, '')) LIKE '%PQ%' THEN 'caliente' "
    "WHEN UPPER(COALESCE(campaign_name, '')) LIKE '%PF%' THEN 'frio' ELSE 'otro' END"
)


def make_config_id(base_table: str, sales_table: str) -> str:
    return f"{base_table}|{sales_table}"


class StagingStore:
    """Collection-style fact tables in a local SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    # ── DB setup ──────────────────────────────────────────────────────────────

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS spend_data (
                    report_id               TEXT NOT NULL,
                    config_id               TEXT NOT NULL,
                    campaign_name           TEXT,
                    ad_set_name             TEXT,
                    ad_name                 TEXT,
                    ad_name_normalized      TEXT,
                    segmentation_normalized TEXT,
                    ad_id                   TEXT,
                    day                     TEXT,
                    is_daily                INTEGER NOT NULL DEFAULT 0,
                    amount_spent            REAL NOT NULL DEFAULT 0
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS country_spend_data (
                    report_id    TEXT NOT NULL,
                    config_id    TEXT NOT NULL,
                    country      TEXT,
                    day          TEXT,
                    is_daily     INTEGER NOT NULL DEFAULT 0,
                    amount_spent REAL NOT NULL DEFAULT 0
                )
            """)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, sql: str, params: Any = ()) -> List[Dict[str, Any]]:
        try:
            with self._connect() as conn:
                cur = conn.execute(sql, params)
                rows = [dict(r) for r in cur.fetchall()]
                conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        return rows

    @staticmethod
    def _columns(collection: str) -> List[str]:
        if collection not in COLLECTIONS:
            raise StoreError(f"Unknown collection: {collection!r}")
        return COLLECTIONS[collection]

    # ── Collection API ────────────────────────────────────────────────────────

    def _insert(self, conn: sqlite3.Connection, collection: str, docs: List[Mapping[str, Any]]) -> int:
        columns = self._columns(collection)
        for doc in docs:
            unknown = set(doc) - set(columns)
            if unknown:
                raise StoreError(f"Unknown field(s) for {collection}: {sorted(unknown)}")
        if not docs:
            return 0
        placeholders = ", ".join(f":{c}" for c in columns)
        sql = f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})"
        conn.executemany(sql, [{c: doc.get(c) for c in columns} for doc in docs])
        return len(docs)

    def _delete(self, conn: sqlite3.Connection, collection: str, filters: Mapping[str, Any]) -> int:
        columns = self._columns(collection)
        unknown = set(filters) - set(columns)
        if unknown:
            raise StoreError(f"Unknown filter field(s) for {collection}: {sorted(unknown)}")
        where = " AND ".join(f"{c} = :{c}" for c in filters) or "1 = 1"
        return conn.execute(f"DELETE FROM {collection} WHERE {where}", dict(filters)).rowcount

    def insert_many(self, collection: str, docs: Iterable[Mapping[str, Any]]) -> int:
        """Insert documents; keys outside the collection's columns are rejected."""
        try:
            with self._connect() as conn:
                return self._insert(conn, collection, list(docs))
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def delete_many(self, collection: str, **filters: Any) -> int:
        try:
            with self._connect() as conn:
                return self._delete(conn, collection, filters)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    # ── Staging ───────────────────────────────────────────────────────────────

    def stage_spend(self, ledger: SpendLedger, config_id: str) -> str:
        """Replace the config's spend facts with *ledger*; returns the new report id.

        The delete and the insert share one transaction, so a failed insert
        leaves the earlier facts in place.
        """
        report_id = uuid.uuid4().hex
        docs: List[Dict[str, Any]] = []
        for seg in ledger.segmentations.values():
            docs.append(
                {
                    "report_id": report_id,
                    "config_id": config_id,
                    "campaign_name": seg.campaign_name,
                    "ad_set_name": seg.ad_set_name,
                    "ad_name": seg.ad_name_original,
                    "ad_name_normalized": seg.ad_name_normalized,
                    "segmentation_normalized": seg.segmentation_normalized,
                    "ad_id": seg.ad_id,
                    "day": None,
                    "is_daily": 0,
                    "amount_spent": seg.spend,
                }
            )
        for day_key, amount in ledger.daily.items():
            seg = ledger.segmentations.get(day_key.spend_key)
            docs.append(
                {
                    "report_id": report_id,
                    "config_id": config_id,
                    "campaign_name": seg.campaign_name if seg is not None else "",
                    "ad_name_normalized": day_key.ad,
                    "segmentation_normalized": day_key.segmentation,
                    "day": day_key.day,
                    "is_daily": 1,
                    "amount_spent": amount,
                }
            )
        try:
            with self._connect() as conn:
                self._delete(conn, "spend_data", {"config_id": config_id})
                self._delete(conn, "country_spend_data", {"config_id": config_id})
                count = self._insert(conn, "spend_data", docs)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        logger.info("Staged %d spend fact(s) as report %s", count, report_id)
        return report_id

    def stage_country_spend(self, country: CountrySpend, report_id: str, config_id: str) -> int:
        docs: List[Dict[str, Any]] = [
            {
                "report_id": report_id,
                "config_id": config_id,
                "country": name,
                "day": None,
                "is_daily": 0,
                "amount_spent": amount,
            }
            for name, amount in country.by_country.items()
        ]
        for day, per_country in country.by_day.items():
            for name, amount in per_country.items():
                docs.append(
                    {
                        "report_id": report_id,
                        "config_id": config_id,
                        "country": name,
                        "day": day,
                        "is_daily": 1,
                        "amount_spent": amount,
                    }
                )
        return self.insert_many("country_spend_data", docs)

    # ── Grouped reads ─────────────────────────────────────────────────────────

    def spend_by_segmentation(self, report_id: str) -> Dict[SpendKey, float]:
        rows = self._execute(
            "SELECT ad_name_normalized AS ad, segmentation_normalized AS seg, "
            "SUM(amount_spent) AS amount FROM spend_data "
            "WHERE report_id = ? AND is_daily = 0 GROUP BY ad, seg",
            (report_id,),
        )
        return {SpendKey(r["ad"], r["seg"]): r["amount"] for r in rows}

    def spend_by_day(self, report_id: str) -> Dict[DaySpendKey, float]:
        rows = self._execute(
            "SELECT day, ad_name_normalized AS ad, segmentation_normalized AS seg, "
            "SUM(amount_spent) AS amount FROM spend_data "
            "WHERE report_id = ? AND is_daily = 1 GROUP BY day, ad, seg",
            (report_id,),
        )
        return {DaySpendKey(r["day"], r["ad"], r["seg"]): r["amount"] for r in rows}

    def spend_ledger(self, report_id: str) -> SpendLedger:
        """Rebuild the spend ledger of *report_id* from its staged facts, in upload order."""
        amounts = self.spend_by_segmentation(report_id)
        rows = self._execute(
            "SELECT campaign_name, ad_set_name, ad_name, ad_name_normalized AS ad, "
            "segmentation_normalized AS seg, ad_id FROM spend_data "
            "WHERE report_id = ? AND is_daily = 0 ORDER BY rowid",
            (report_id,),
        )
        ledger = SpendLedger()
        for r in rows:
            key = SpendKey(r["ad"], r["seg"])
            if key in ledger.segmentations:
                continue
            ledger.segmentations[key] = SpendSegmentation(
                campaign_name=r["campaign_name"] or "",
                ad_set_name=r["ad_set_name"] or "",
                ad_name_original=r["ad_name"] or "",
                ad_name_normalized=key.ad,
                segmentation_normalized=key.segmentation,
                ad_id=r["ad_id"] or "",
                spend=amounts.get(key, 0.0),
            )
            ledger.display_names.setdefault(key.ad, r["ad_name"] or "")
        ledger.daily = self.spend_by_day(report_id)
        return ledger

    def spend_by_traffic_type(self, report_id: str) -> Dict[str, float]:
        rows = self._execute(
            f"SELECT {_TRAFFIC_CASE} AS tipo, SUM(amount_spent) AS amount FROM spend_data "
            "WHERE report_id = ? AND is_daily = 0 GROUP BY tipo",
            (report_id,),
        )
        out = {"frio": 0.0, "caliente": 0.0, "otro": 0.0}
        for r in rows:
            out[r["tipo"]] = r["amount"]
        return out

    def country_spend(self, report_id: str) -> CountrySpend:
        result = CountrySpend()
        rows = self._execute(
            "SELECT country, day, is_daily, SUM(amount_spent) AS amount "
            "FROM country_spend_data WHERE report_id = ? GROUP BY country, day, is_daily",
            (report_id,),
        )
        for r in rows:
            country = (r["country"] or "").strip() or "Sin país"
            if r["is_daily"]:
                per_day = result.by_day.setdefault(r["day"], {})
                per_day[country] = per_day.get(country, 0.0) + r["amount"]
            else:
                result.by_country[country] = result.by_country.get(country, 0.0) + r["amount"]
        return result

