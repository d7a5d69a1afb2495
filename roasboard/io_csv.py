"""Spend report CSV readers: per-segmentation ledger, daily breakdown, country totals."""

from __future__ import annotations

import io
import logging
import math
import re
from typing import Any, Optional

import pandas as pd

from roasboard.normalize import normalize
from roasboard.schema import CountrySpend, DaySpendKey, SpendKey, SpendLedger, SpendSegmentation

logger = logging.getLogger(__name__)

REQUIRED_SPEND_COLUMNS = {"campaign name", "ad set name", "ad name", "amount spent"}
DAY_COLUMNS = ["day", "date", "reporting starts", "fecha", "día"]
COUNTRY_COLUMNS = ["country", "país"]

_NON_NUMERIC = re.compile(r"[^0-9,.\-]")


class InputSchemaError(ValueError):
    """Raised when the spend CSV is missing required columns."""


def parse_decimal(value: Any) -> float:
    """Parse an exported amount; comma may be the decimal separator. Bad input → 0."""
    if value is None:
        return 0.0
    s = _NON_NUMERIC.sub("", str(value).strip())
    if not s:
        return 0.0
    if "," in s and "." in s:
        # right-most separator is the decimal one: "1.234,56" / "1,234.56"
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    else:
        s = s.replace(",", ".")
    try:
        v = float(s)
    except ValueError:
        return 0.0
    if math.isnan(v) or math.isinf(v):
        return 0.0
    return v


def _convert(amount: float, exchange_rate: float) -> float:
    return amount / exchange_rate if exchange_rate > 0 else amount


def _read_frame(text: str) -> Optional[pd.DataFrame]:
    try:
        df = pd.read_csv(
            io.StringIO(text.lstrip("\ufeff")),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        logger.warning("Could not parse CSV: %s", exc)
        return None
    df.columns = [str(c).strip().lower() for c in df.columns]
    return df


def _first_column(df: pd.DataFrame, candidates) -> Optional[str]:
    for c in candidates:
        if c in df.columns:
            return c
    return None


def _day_series(df: pd.DataFrame, col: Optional[str]) -> pd.Series:
    if col is None:
        return pd.Series([None] * len(df), index=df.index, dtype=object)
    parsed = pd.to_datetime(df[col].str.strip(), errors="coerce", format="mixed")
    days = [None if pd.isna(d) else d.strftime("%Y-%m-%d") for d in parsed]
    return pd.Series(days, index=df.index, dtype=object)


def _validate_required_columns(df: pd.DataFrame) -> None:
    missing = REQUIRED_SPEND_COLUMNS - set(df.columns)
    if not missing:
        return

    hints = {
        "campaign name": "Export the campaign name column from Ads Manager.",
        "ad set name": "Add the ad set column; it is the segmentation.",
        "ad name": "Add the ad name column.",
        "amount spent": "Add the amount spent column.",
    }
    missing_list = ", ".join(sorted(missing))
    detail = " | ".join(f"{m}: {hints.get(m, 'required')}" for m in sorted(missing))
    raise InputSchemaError(
        f"Spend CSV is missing required column(s): {missing_list}. Suggestions: {detail}"
    )


def read_spend_csv(text: str, exchange_rate: float = 0.0) -> SpendLedger:
    """Fold spend CSV rows into per-(ad, segmentation) totals.

    The first row of a group fixes its campaign, ad id and original names;
    later rows only add spend. ``display_names`` maps each normalized ad name
    to the first original name seen for it.
    """
    ledger = SpendLedger()
    df = _read_frame(text or "")
    if df is None or df.empty:
        return ledger
    _validate_required_columns(df)

    has_ad_id = "ad id" in df.columns
    days = _day_series(df, _first_column(df, DAY_COLUMNS))

    for idx, record in zip(df.index, df.to_dict(orient="records")):
        campaign = str(record.get("campaign name", "")).strip()
        ad_set = str(record.get("ad set name", "")).strip()
        ad_name = str(record.get("ad name", "")).strip()
        if not (campaign and ad_set and ad_name):
            continue

        amount = _convert(parse_decimal(record.get("amount spent")), exchange_rate)
        key = SpendKey(normalize(ad_name), normalize(ad_set))

        seg = ledger.segmentations.get(key)
        if seg is None:
            seg = SpendSegmentation(
                campaign_name=campaign,
                ad_set_name=ad_set,
                ad_name_original=ad_name,
                ad_name_normalized=key.ad,
                segmentation_normalized=key.segmentation,
                ad_id=str(record.get("ad id", "")).strip() if has_ad_id else "",
            )
            ledger.segmentations[key] = seg
            ledger.display_names.setdefault(key.ad, ad_name)
        seg.spend += amount

        day = days.loc[idx]
        if day:
            day_key = DaySpendKey(day, key.ad, key.segmentation)
            ledger.daily[day_key] = ledger.daily.get(day_key, 0.0) + amount

    logger.info(
        "Spend CSV: %d segmentation(s), %d daily bucket(s), total %.2f",
        len(ledger.segmentations),
        len(ledger.daily),
        ledger.total_spend,
    )
    return ledger


def read_country_csv(text: str, exchange_rate: float = 0.0) -> CountrySpend:
    """Spend per country (and per day + country) from a country breakdown export."""
    result = CountrySpend()
    df = _read_frame(text or "")
    if df is None or df.empty:
        return result

    country_col = _first_column(df, COUNTRY_COLUMNS)
    if country_col is None or "amount spent" not in df.columns:
        logger.warning("Country CSV has no country / amount spent column; ignored")
        return result

    days = _day_series(df, _first_column(df, DAY_COLUMNS))
    for idx, record in zip(df.index, df.to_dict(orient="records")):
        country = str(record.get(country_col, "")).strip()
        if not country:
            continue
        amount = _convert(parse_decimal(record.get("amount spent")), exchange_rate)
        result.by_country[country] = result.by_country.get(country, 0.0) + amount

        day = days.loc[idx]
        if day:
            per_day = result.by_day.setdefault(day, {})
            per_day[country] = per_day.get(country, 0.0) + amount

    return result
