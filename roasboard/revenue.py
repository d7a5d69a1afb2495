"""Lead / sale aggregation over the relational store.

Every lead row is joined to its client's sales, pre-grouped per client so a
lead with several purchases is counted once as a lead.  A sale is *tracked*
when its source tag is missing, empty, or does not contain ``org``
(case-insensitive); tagged sales are *organic*.  The co-production multiplier
is applied inside the SQL ``SUM`` so it is never applied twice.

Each public method is a self-contained sub-aggregation: a failed query or an
absent optional column yields ``None`` and a log line, never an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from roasboard.config import ColumnsConfig
from roasboard.normalize import normalize
from roasboard.schema import OrganicTotals, QualityRow, RevenueRow
from roasboard.store import SQLiteStore, StoreError, quote_identifier

logger = logging.getLogger(__name__)

QUALITY_FIELDS = ("qlead", "ingresos", "estudios", "ocupacion", "proposito", "edad_especifica")
NO_COUNTRY = "Sin país"

_AGGREGATES = (
    "COUNT(*) AS leads, "
    "COALESCE(SUM(s.cnt), 0) AS sales, "
    "COALESCE(SUM(s.rev), 0) * :mult AS revenue"
)


# ─────────────────────────────────────────────────────────────────────────────
# Column probing
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class LeadSchema:
    table: str
    client_id: Optional[str] = None
    ad: Optional[str] = None
    segmentation: Optional[str] = None
    campaign: Optional[str] = None
    ad_id: Optional[str] = None
    registration_date: Optional[str] = None
    country: Optional[str] = None
    puntaje: Optional[str] = None
    quality: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def has_quality(self) -> bool:
        return any(self.quality.values())


@dataclass
class SaleSchema:
    table: str
    client_id: Optional[str] = None
    amount: Optional[str] = None
    source: Optional[str] = None
    sale_date: Optional[str] = None


def _first_existing(store: SQLiteStore, table: str, candidates: List[str]) -> Optional[str]:
    for name in candidates:
        if store.column_exists(table, name):
            return name
    return None


def resolve_lead_schema(store: SQLiteStore, table: str, columns: ColumnsConfig) -> LeadSchema:
    """Probe the lead table once; each field gets the first candidate that exists."""
    return LeadSchema(
        table=table,
        client_id=_first_existing(store, table, columns.lead_client_id),
        ad=_first_existing(store, table, columns.ad),
        segmentation=_first_existing(store, table, columns.segmentation),
        campaign=_first_existing(store, table, columns.campaign),
        ad_id=_first_existing(store, table, columns.ad_id),
        registration_date=_first_existing(store, table, columns.registration_date),
        country=_first_existing(store, table, columns.country),
        puntaje=_first_existing(store, table, columns.puntaje),
        quality={f: _first_existing(store, table, getattr(columns, f)) for f in QUALITY_FIELDS},
    )


def resolve_sale_schema(store: SQLiteStore, table: str, columns: ColumnsConfig) -> SaleSchema:
    return SaleSchema(
        table=table,
        client_id=_first_existing(store, table, columns.sale_client_id),
        amount=_first_existing(store, table, columns.sale_amount),
        source=_first_existing(store, table, columns.sale_source),
        sale_date=_first_existing(store, table, columns.sale_date),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Aggregator
# ─────────────────────────────────────────────────────────────────────────────


class RevenueAggregator:
    """Grouped lead / sale figures for one (lead table, sale table) pair."""

    def __init__(
        self,
        store: SQLiteStore,
        base_table: str,
        sales_table: str,
        multiply_revenue: bool = False,
        columns: Optional[ColumnsConfig] = None,
    ) -> None:
        self.store = store
        self.base_table = base_table
        self.sales_table = sales_table
        self.multiply_revenue = multiply_revenue
        self.columns = columns or ColumnsConfig()
        self._lead: Optional[LeadSchema] = None
        self._sale: Optional[SaleSchema] = None

    @property
    def params(self) -> Dict[str, Any]:
        return {"mult": 2 if self.multiply_revenue else 1}

    def schemas(self) -> Tuple[LeadSchema, SaleSchema]:
        """Resolved schemas; raises StoreError when a join column is missing."""
        if self._lead is None or self._sale is None:
            self._lead = resolve_lead_schema(self.store, self.base_table, self.columns)
            self._sale = resolve_sale_schema(self.store, self.sales_table, self.columns)
        required = {
            f"{self.base_table}.client_id": self._lead.client_id,
            f"{self.base_table}.ad": self._lead.ad,
            f"{self.base_table}.segmentation": self._lead.segmentation,
            f"{self.sales_table}.client_id": self._sale.client_id,
            f"{self.sales_table}.amount": self._sale.amount,
        }
        missing = [name for name, col in required.items() if col is None]
        if missing:
            raise StoreError(f"Required column(s) not found: {', '.join(missing)}")
        return self._lead, self._sale

    def _guarded(self, label: str, build: Callable[[], Any]) -> Any:
        try:
            return build()
        except StoreError as exc:
            logger.warning("%s unavailable: %s", label, exc)
            return None

    # ── SQL fragments ─────────────────────────────────────────────────────────

    def _tables(self) -> Tuple[str, str]:
        allowed = self.store.list_tables()
        return (
            quote_identifier(self.base_table, allowed),
            quote_identifier(self.sales_table, allowed),
        )

    def _lc(self, name: str) -> str:
        return "l." + quote_identifier(name, self.store.columns(self.base_table))

    def _vc(self, name: str) -> str:
        return "v." + quote_identifier(name, self.store.columns(self.sales_table))

    def _text(self, name: Optional[str]) -> str:
        return f"COALESCE(CAST({self._lc(name)} AS TEXT), '')" if name else "''"

    def _amount(self, sale: SaleSchema) -> str:
        col = self._vc(sale.amount)
        return f"COALESCE(CAST(REPLACE(CAST({col} AS TEXT), ',', '.') AS REAL), 0)"

    def _is_organic(self, sale: SaleSchema) -> str:
        if sale.source is None:
            return "0"
        src = self._vc(sale.source)
        return f"({src} IS NOT NULL AND LOWER(CAST({src} AS TEXT)) LIKE '%org%')"

    def _registration_day(self, lead: LeadSchema) -> str:
        return f"DATE({self._lc(lead.registration_date)})"

    def _country(self, lead: LeadSchema) -> str:
        return (
            f"COALESCE(NULLIF(TRIM(CAST({self._lc(lead.country)} AS TEXT)), ''), '{NO_COUNTRY}')"
        )

    def _sales_by_client(self, tracked_only: bool) -> str:
        _, sale = self.schemas()
        _, sales_t = self._tables()
        cid = f"CAST({self._vc(sale.client_id)} AS TEXT)"
        where = f"NOT {self._is_organic(sale)}" if tracked_only else "1 = 1"
        return (
            f"SELECT {cid} AS cid, COUNT(*) AS cnt, SUM({self._amount(sale)}) AS rev "
            f"FROM {sales_t} v WHERE {where} GROUP BY {cid}"
        )

    def _lead_pairs(self) -> str:
        """Leads joined one-to-many to their individual sales."""
        lead, sale = self.schemas()
        base_t, sales_t = self._tables()
        return (
            f"{base_t} l JOIN {sales_t} v "
            f"ON CAST({self._vc(sale.client_id)} AS TEXT) = CAST({self._lc(lead.client_id)} AS TEXT)"
        )

    def _grouped(
        self,
        keys: Dict[str, str],
        tracked_only: bool,
        where: str = "1 = 1",
        extra: str = "",
    ) -> List[Dict[str, Any]]:
        """Lead rows grouped by *keys* with leads / sales / revenue."""
        lead, _ = self.schemas()
        base_t, _ = self._tables()
        select = ", ".join(f"{expr} AS {alias}" for alias, expr in keys.items())
        group = ", ".join(expr for expr in keys.values() if expr not in ("''", "NULL"))
        sql = (
            f"SELECT {select}, {_AGGREGATES}{extra} "
            f"FROM {base_t} l LEFT JOIN ({self._sales_by_client(tracked_only)}) s "
            f"ON s.cid = CAST({self._lc(lead.client_id)} AS TEXT) "
            f"WHERE {where} GROUP BY {group} ORDER BY {group}"
        )
        return self.store.query(sql, self.params)

    def _ad_keys(self, lead: LeadSchema) -> Dict[str, str]:
        return {
            "ad_name": self._text(lead.ad),
            "segmentation_name": self._text(lead.segmentation),
            "campaign_name": self._text(lead.campaign),
            "ad_id": self._text(lead.ad_id),
        }

    # ── Ledger inputs ─────────────────────────────────────────────────────────

    def revenue_rows(self) -> Optional[List[RevenueRow]]:
        """Tracked revenue per (ad, segmentation, campaign, platform id)."""
        return self._guarded("revenue rows", self._revenue_rows)

    def _revenue_rows(self) -> List[RevenueRow]:
        lead, _ = self.schemas()
        out: List[RevenueRow] = []
        for r in self._grouped(self._ad_keys(lead), tracked_only=True):
            row = RevenueRow(
                ad_name=r["ad_name"],
                ad_key=normalize(r["ad_name"]),
                segmentation_name=r["segmentation_name"],
                segmentation_key=normalize(r["segmentation_name"]),
                campaign_name=r["campaign_name"],
                ad_id=r["ad_id"],
                leads=int(r["leads"]),
                sales=int(r["sales"]),
                revenue=float(r["revenue"]),
            )
            if not row.ad_key or not row.segmentation_key:
                logger.debug("dropping unmatchable row %r / %r", row.ad_name, row.segmentation_name)
                continue
            out.append(row)
        logger.info("Revenue: %d grouped row(s)", len(out))
        return out

    def organic_totals(self) -> Optional[OrganicTotals]:
        """Count and revenue of organic sales; None when sales carry no source tag."""
        return self._guarded("organic totals", self._organic_totals)

    def _organic_totals(self) -> Optional[OrganicTotals]:
        _, sale = self.schemas()
        if sale.source is None:
            logger.info("No source column on %s; organic sales not separated", self.sales_table)
            return None
        _, sales_t = self._tables()
        sql = (
            f"SELECT COUNT(*) AS total_sales, COALESCE(SUM({self._amount(sale)}), 0) * :mult "
            f"AS total_revenue FROM {sales_t} v WHERE {self._is_organic(sale)}"
        )
        rows = self.store.query(sql, self.params)
        if not rows:
            return None
        return OrganicTotals(
            total_sales=int(rows[0]["total_sales"]),
            total_revenue=float(rows[0]["total_revenue"]),
        )

    def quality_rows(self) -> Optional[List[QualityRow]]:
        """Tracked revenue per ad pair and quality attributes, with mean PUNTAJE."""
        return self._guarded("quality rows", self._quality_rows)

    def _quality_rows(self) -> Optional[List[QualityRow]]:
        lead, _ = self.schemas()
        if not lead.has_quality:
            logger.info("No quality columns on %s", self.base_table)
            return None
        keys = self._ad_keys(lead)
        for f in QUALITY_FIELDS:
            col = lead.quality.get(f)
            keys[f] = f"CAST({self._lc(col)} AS TEXT)" if col else "NULL"
        if lead.puntaje:
            score = f"COALESCE(CAST({self._lc(lead.puntaje)} AS REAL), 0)"
            extra = f", SUM({score}) * 1.0 / COUNT(*) AS puntaje"
        else:
            extra = ", 0.0 AS puntaje"

        out: List[QualityRow] = []
        for r in self._grouped(keys, tracked_only=True, extra=extra):
            ad_key = normalize(r["ad_name"])
            if not ad_key:
                continue
            out.append(
                QualityRow(
                    ad_name=r["ad_name"],
                    ad_key=ad_key,
                    segmentation_name=r["segmentation_name"],
                    segmentation_key=normalize(r["segmentation_name"]),
                    campaign_name=r["campaign_name"],
                    ad_id=r["ad_id"],
                    puntaje=float(r["puntaje"] or 0.0),
                    leads=int(r["leads"]),
                    sales=int(r["sales"]),
                    revenue=float(r["revenue"]),
                    **{f: r[f] for f in QUALITY_FIELDS},
                )
            )
        return out

    # ── Cohort groupings ──────────────────────────────────────────────────────

    def captation_days_rows(self) -> Optional[List[Dict[str, Any]]]:
        """Sales per whole days between registration and purchase."""
        return self._guarded("days since registration", self._captation_days_rows)

    def _captation_days_rows(self) -> Optional[List[Dict[str, Any]]]:
        lead, sale = self.schemas()
        if lead.registration_date is None or sale.sale_date is None:
            logger.info("No registration / sale date columns; days-to-purchase skipped")
            return None
        reg = self._registration_day(lead)
        sold = f"DATE({self._vc(sale.sale_date)})"
        inner = (
            f"SELECT MAX(0, CAST(julianday({sold}) - julianday({reg}) AS INTEGER)) AS days, "
            f"{self._amount(sale)} AS amount FROM {self._lead_pairs()} "
            f"WHERE {reg} IS NOT NULL AND {sold} IS NOT NULL"
        )
        sql = (
            f"SELECT days, COUNT(*) AS sale_count, SUM(amount) * :mult AS revenue "
            f"FROM ({inner}) GROUP BY days ORDER BY days"
        )
        return self.store.query(sql, self.params)

    def registration_totals(self) -> Optional[List[Dict[str, Any]]]:
        """Leads and all matched sales per registration day."""
        return self._guarded("registration totals", self._registration_totals)

    def _registration_totals(self) -> Optional[List[Dict[str, Any]]]:
        lead, _ = self.schemas()
        if lead.registration_date is None:
            return None
        day = self._registration_day(lead)
        return self._grouped({"date": day}, tracked_only=False, where=f"{day} IS NOT NULL")

    def registration_by_ad(self) -> Optional[List[Dict[str, Any]]]:
        """Per registration day, (ad, segmentation) rows with a matchable ad name."""
        return self._guarded("registration by ad", self._registration_by_ad)

    def _registration_by_ad(self) -> Optional[List[Dict[str, Any]]]:
        lead, _ = self.schemas()
        if lead.registration_date is None:
            return None
        day = self._registration_day(lead)
        keys = {
            "date": day,
            "ad_name": self._text(lead.ad),
            "segmentation_name": self._text(lead.segmentation),
        }
        rows = self._grouped(keys, tracked_only=False, where=f"{day} IS NOT NULL")
        return [r for r in rows if normalize(r["ad_name"])]

    def traffic_by_campaign(self) -> Optional[List[Dict[str, Any]]]:
        """Tracked totals per campaign for rows with a matchable ad name."""
        return self._guarded("traffic by campaign", self._traffic_by_campaign)

    def _traffic_by_campaign(self) -> List[Dict[str, Any]]:
        lead, _ = self.schemas()
        keys = {"campaign_name": self._text(lead.campaign), "ad_name": self._text(lead.ad)}
        rows = self._grouped(keys, tracked_only=True)
        return [r for r in rows if normalize(r["ad_name"])]

    def registration_by_campaign(self) -> Optional[List[Dict[str, Any]]]:
        return self._guarded("registration by campaign", self._registration_by_campaign)

    def _registration_by_campaign(self) -> Optional[List[Dict[str, Any]]]:
        lead, _ = self.schemas()
        if lead.registration_date is None:
            return None
        day = self._registration_day(lead)
        keys = {"date": day, "campaign_name": self._text(lead.campaign)}
        return self._grouped(keys, tracked_only=False, where=f"{day} IS NOT NULL")

    def revenue_by_country(self) -> Optional[List[Dict[str, Any]]]:
        """Sale revenue per lead country, split by the organic flag."""
        return self._guarded("revenue by country", self._revenue_by_country)

    def _revenue_by_country(self) -> Optional[List[Dict[str, Any]]]:
        lead, sale = self.schemas()
        if lead.country is None:
            logger.info("No country column on %s", self.base_table)
            return None
        inner = (
            f"SELECT {self._country(lead)} AS country, "
            f"CASE WHEN {self._is_organic(sale)} THEN 1 ELSE 0 END AS organic, "
            f"{self._amount(sale)} AS amount FROM {self._lead_pairs()}"
        )
        sql = (
            f"SELECT country, organic, SUM(amount) * :mult AS revenue "
            f"FROM ({inner}) GROUP BY country, organic ORDER BY country, organic"
        )
        return self.store.query(sql, self.params)

    def registration_by_country(self) -> Optional[List[Dict[str, Any]]]:
        return self._guarded("registration by country", self._registration_by_country)

    def _registration_by_country(self) -> Optional[List[Dict[str, Any]]]:
        lead, _ = self.schemas()
        if lead.registration_date is None or lead.country is None:
            return None
        day = self._registration_day(lead)
        keys = {"date": day, "country": self._country(lead)}
        return self._grouped(keys, tracked_only=False, where=f"{day} IS NOT NULL")
