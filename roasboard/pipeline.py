"""Main pipeline: validate → spend ledger → stage → revenue → reconcile → quality → cohorts."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

from roasboard.cohorts import (
    captation_by_ad,
    captation_by_country,
    captation_by_segmentation,
    captation_by_traffic_type,
    captation_days,
    country_data,
    sales_by_registration_date,
    sales_by_registration_date_by_country,
    traffic_type_daily_spend,
    traffic_type_spend,
    traffic_type_summary,
)
from roasboard.config import AppConfig
from roasboard.io_csv import read_country_csv, read_spend_csv
from roasboard.quality import build_quality_analysis
from roasboard.reconcile import reconcile, summarize
from roasboard.revenue import RevenueAggregator
from roasboard.schema import CountrySpend, SpendLedger
from roasboard.staging import StagingStore, make_config_id
from roasboard.store import SQLiteStore, StoreError

logger = logging.getLogger(__name__)

_REPORT_TEMPLATE_PATH = Path(__file__).parent / "templates" / "report.md.j2"


class InputValidationError(ValueError):
    """The request cannot be processed; nothing has been staged."""


@dataclass
class AnalysisRequest:
    base_table: str
    sales_table: str
    spend_csv: str
    country_csv: Optional[str] = None
    exchange_rate: float = 0.0
    multiply_revenue: bool = False

    @property
    def config_id(self) -> str:
        return make_config_id(self.base_table, self.sales_table)

    @property
    def has_country_csv(self) -> bool:
        return bool(self.country_csv and self.country_csv.strip())


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────


def _validate(request: AnalysisRequest, store: SQLiteStore) -> SpendLedger:
    if not request.base_table or not request.sales_table:
        raise InputValidationError("Select both the base (leads) table and the sales table.")

    tables = store.list_tables()
    for table in (request.base_table, request.sales_table):
        if table not in tables:
            raise InputValidationError(
                f"Table not found: {table!r}. Available: {', '.join(tables) or '(none)'}"
            )

    if not (request.spend_csv or "").strip():
        raise InputValidationError("The spend CSV is required and must not be empty.")

    ledger = read_spend_csv(request.spend_csv, request.exchange_rate)
    if len(ledger) == 0:
        raise InputValidationError("No spend rows could be read from the spend CSV.")
    return ledger


def _stage(
    staging: StagingStore,
    request: AnalysisRequest,
    ledger: SpendLedger,
    country: Optional[CountrySpend],
) -> Optional[str]:
    try:
        report_id = staging.stage_spend(ledger, request.config_id)
        if country is not None:
            staging.stage_country_spend(country, report_id, request.config_id)
    except StoreError as exc:
        logger.warning("Staging failed, continuing from memory: %s", exc)
        return None
    return report_id


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline
# ─────────────────────────────────────────────────────────────────────────────


def run_analysis(
    request: AnalysisRequest,
    store: SQLiteStore,
    cfg: Optional[AppConfig] = None,
    staging: Optional[StagingStore] = None,
) -> Dict[str, Any]:
    """Execute the full analysis. Returns the result dict.

    Call order:
    1. validate the request and read the spend CSV (raises InputValidationError)
    2. stage spend facts when a staging store is given and read the ledger back
    3. grouped revenue + organic totals → reconciled ledger and summary
    4. quality cohorts with proportional spend and factor analysis
    5. registration-date, days-to-purchase and traffic-type cohorts
    6. country views (only with a country CSV)

    Steps 3–6 degrade to ``None`` entries when a store query fails.
    """
    cfg = cfg or AppConfig()
    ledger = _validate(request, store)
    country = (
        read_country_csv(request.country_csv, request.exchange_rate)
        if request.has_country_csv
        else None
    )
    logger.info(
        "Analysing %s: %d spend segmentation(s), total spend %.2f",
        request.config_id,
        len(ledger),
        ledger.total_spend,
    )

    # ── Staging ───────────────────────────────────────────────────────────────
    report_id = _stage(staging, request, ledger, country) if staging is not None else None
    if report_id is not None:
        try:
            ledger = staging.spend_ledger(report_id)
        except StoreError as exc:
            logger.warning("Staged spend unavailable, using the parsed CSV: %s", exc)

    # ── Ledger ────────────────────────────────────────────────────────────────
    agg = RevenueAggregator(
        store,
        request.base_table,
        request.sales_table,
        request.multiply_revenue,
        cfg.columns,
    )
    ads = reconcile(ledger, agg.revenue_rows() or [], agg.organic_totals())
    summary = summarize(ads, request.multiply_revenue)

    # ── Quality ───────────────────────────────────────────────────────────────
    quality = build_quality_analysis(
        agg.quality_rows() or [], ledger, request.multiply_revenue, cfg.quality
    )

    # ── Cohorts ───────────────────────────────────────────────────────────────
    by_date = sales_by_registration_date(
        agg.registration_totals(), agg.registration_by_ad(), ledger
    )
    spend_by_type = traffic_type_spend(ledger)
    if report_id is not None:
        try:
            spend_by_type = staging.spend_by_traffic_type(report_id)
        except StoreError as exc:
            logger.warning("Staged traffic spend unavailable: %s", exc)

    # ── Country ───────────────────────────────────────────────────────────────
    countries = None
    by_date_country = None
    if country is not None:
        if report_id is not None:
            try:
                country = staging.country_spend(report_id)
            except StoreError as exc:
                logger.warning("Staged country spend unavailable: %s", exc)
        countries = country_data(country.by_country, agg.revenue_by_country())
        by_date_country = sales_by_registration_date_by_country(
            agg.registration_by_country(), country.by_day
        )

    result: Dict[str, Any] = {
        "ads": {key: ad.to_dict() for key, ad in ads.items()},
        "summary": summary.to_dict(),
        "qualityData": quality.to_dict() if quality is not None else None,
        "countryData": countries,
        "captationDaysData": captation_days(agg.captation_days_rows()),
        "salesByRegistrationDate": by_date,
        "salesByRegistrationDateByCountry": by_date_country,
        "captationByAnuncio": captation_by_ad(by_date),
        "captationBySegmentacion": captation_by_segmentation(by_date),
        "captationByPais": captation_by_country(by_date_country),
        "trafficTypeSummary": traffic_type_summary(agg.traffic_by_campaign()),
        "trafficTypeSpend": spend_by_type,
        "captationByTrafficType": captation_by_traffic_type(
            agg.registration_by_campaign(), traffic_type_daily_spend(ledger)
        ),
    }
    if report_id is not None:
        result["reportId"] = report_id
    logger.info(
        "Done: revenue %.2f, spend %.2f, ROAS %.2f",
        summary.total_revenue_all,
        summary.total_spend_all,
        summary.total_roas_all,
    )
    return result


# ─────────────────────────────────────────────────────────────────────────────
# Output
# ─────────────────────────────────────────────────────────────────────────────


def render_report(result: Dict[str, Any], title: str = "ROAS report") -> str:
    template = Template(_REPORT_TEMPLATE_PATH.read_text(encoding="utf-8"))
    return template.render(title=title, result=result)


def write_outputs(result: Dict[str, Any], output_dir, title: str = "ROAS report") -> Dict[str, Path]:
    """Write ``analysis.json`` and ``report.md`` into *output_dir*."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    json_path = output_dir / "analysis.json"
    json_path.write_text(json.dumps(result, ensure_ascii=False, indent=2), encoding="utf-8")

    report_path = output_dir / "report.md"
    report_path.write_text(render_report(result, title), encoding="utf-8")
    return {"analysis": json_path, "report": report_path}
