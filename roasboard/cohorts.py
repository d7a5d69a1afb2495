"""Time-series and cohort views: days to purchase, registration date, country, traffic type.

Inputs are the grouped rows produced by :class:`roasboard.revenue.RevenueAggregator`
plus the spend ledger; spend is joined by normalized (ad, segmentation) key and
calendar day.  ``cpl`` is ``gasto / leads`` when there are leads, else 0.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd

from roasboard.normalize import classify_traffic_type, clean_display_name, normalize
from roasboard.schema import DaySpendKey, SpendKey, SpendLedger

TRAFFIC_TYPES = ("frio", "caliente", "otro")
NO_AD = "Sin anuncio"
NO_SEGMENTATION = "Sin segmentación"
NO_COUNTRY = "Sin país"

Rows = List[Dict[str, Any]]


def _cpl(gasto: float, leads: int) -> float:
    return gasto / leads if leads > 0 else 0.0


def _totals(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "leads": int(row.get("leads") or 0),
        "sales": int(row.get("sales") or 0),
        "revenue": float(row.get("revenue") or 0.0),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Days since registration
# ─────────────────────────────────────────────────────────────────────────────


def captation_days(rows: Optional[Rows]) -> Optional[Rows]:
    if not rows:
        return None
    out = [
        {
            "days": int(r["days"]),
            "count": int(r["sale_count"]),
            "revenue": float(r["revenue"] or 0.0),
        }
        for r in rows
    ]
    return sorted(out, key=lambda r: r["days"])


# ─────────────────────────────────────────────────────────────────────────────
# Registration date
# ─────────────────────────────────────────────────────────────────────────────


def ad_day_spend(spend: SpendLedger, day: str, key: SpendKey) -> float:
    """Daily spend for the pair, else its total, else 0."""
    day_key = DaySpendKey(day, key.ad, key.segmentation)
    if day_key in spend.daily:
        return spend.daily[day_key]
    return spend.spend_for(key)


def sales_by_registration_date(
    totals: Optional[Rows], by_ad: Optional[Rows], spend: SpendLedger
) -> Optional[Rows]:
    if not totals:
        return None

    ads_by_date: Dict[str, Rows] = {}
    for r in by_ad or []:
        ad_name = r.get("ad_name") or NO_AD
        seg_name = r.get("segmentation_name") or NO_SEGMENTATION
        gasto = ad_day_spend(spend, r["date"], SpendKey(normalize(ad_name), normalize(seg_name)))
        entry = {
            "anuncio": clean_display_name(ad_name),
            "segmentacion": clean_display_name(seg_name),
            **_totals(r),
            "gasto": gasto,
        }
        entry["roas"] = entry["revenue"] / gasto if gasto > 0 else 0.0
        ads_by_date.setdefault(r["date"], []).append(entry)

    out: Rows = []
    for r in sorted(totals, key=lambda t: t["date"]):
        ads = ads_by_date.get(r["date"], [])
        row = {"date": r["date"], **_totals(r)}
        row["gasto"] = sum(a["gasto"] for a in ads)
        row["cpl"] = _cpl(row["gasto"], row["leads"])
        row["ads"] = ads
        out.append(row)
    return out


def _regroup(by_date: Optional[Rows], field: str, fallback: str) -> Dict[str, Rows]:
    grouped: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for day in by_date or []:
        for ad in day.get("ads", []):
            name = ad.get(field) or fallback
            bucket = grouped.setdefault(name, {})
            row = bucket.get(day["date"])
            if row is None:
                row = {"date": day["date"], "leads": 0, "sales": 0, "revenue": 0.0,
                       "gasto": 0.0, "cpl": 0.0, "ads": []}
                bucket[day["date"]] = row
            row["leads"] += ad["leads"]
            row["sales"] += ad["sales"]
            row["revenue"] += ad["revenue"]
            row["gasto"] += ad["gasto"]
            row["ads"].append({k: ad[k] for k in
                               ("anuncio", "segmentacion", "leads", "sales", "revenue", "gasto")})

    out: Dict[str, Rows] = {}
    for name, bucket in grouped.items():
        rows = sorted(bucket.values(), key=lambda r: r["date"])
        for row in rows:
            row["cpl"] = _cpl(row["gasto"], row["leads"])
        out[name] = rows
    return out


def captation_by_ad(by_date: Optional[Rows]) -> Dict[str, Rows]:
    """Registration-date rows regrouped per ad display name."""
    return _regroup(by_date, "anuncio", NO_AD)


def captation_by_segmentation(by_date: Optional[Rows]) -> Dict[str, Rows]:
    return _regroup(by_date, "segmentacion", NO_SEGMENTATION)


# ─────────────────────────────────────────────────────────────────────────────
# Country
# ─────────────────────────────────────────────────────────────────────────────


def country_data(spend_by_country: Dict[str, float], sales_rows: Optional[Rows]) -> Rows:
    """Spend, tracked and organic revenue per country, highest spend first.

    ROAS here is tracked revenue over spend.
    """
    sales = pd.DataFrame(sales_rows or [], columns=["country", "organic", "revenue"])
    sales["revenue"] = pd.to_numeric(sales["revenue"], errors="coerce").fillna(0.0)
    organic_mask = pd.to_numeric(sales["organic"], errors="coerce").fillna(0) == 1
    tracked = sales[~organic_mask].groupby("country")["revenue"].sum()
    organic = sales[organic_mask].groupby("country")["revenue"].sum()

    countries = list(dict.fromkeys([*spend_by_country.keys(), *sales["country"].tolist()]))
    frame = pd.DataFrame(index=pd.Index(countries, name="country"))
    frame["gasto"] = pd.Series(spend_by_country, dtype=float).reindex(countries).fillna(0.0)
    frame["ventas_trackeadas"] = tracked.reindex(countries).fillna(0.0)
    frame["ventas_organicas"] = organic.reindex(countries).fillna(0.0)
    frame["roas"] = (frame["ventas_trackeadas"] / frame["gasto"]).where(frame["gasto"] > 0, 0.0)
    frame = frame.sort_values("gasto", ascending=False, kind="stable")

    return [
        {
            "country": country,
            "gasto": float(row["gasto"]),
            "roas": float(row["roas"]),
            "ventas_organicas": float(row["ventas_organicas"]),
            "ventas_trackeadas": float(row["ventas_trackeadas"]),
        }
        for country, row in frame.iterrows()
    ]


def sales_by_registration_date_by_country(
    rows: Optional[Rows], spend_by_day: Dict[str, Dict[str, float]]
) -> Optional[Dict[str, Rows]]:
    if not rows:
        return None
    out: Dict[str, Rows] = {}
    for r in sorted(rows, key=lambda x: x["date"]):
        country = r.get("country") or NO_COUNTRY
        out.setdefault(r["date"], []).append(
            {
                "country": country,
                **_totals(r),
                "gasto": spend_by_day.get(r["date"], {}).get(country, 0.0),
            }
        )
    return out


def captation_by_country(by_date: Optional[Dict[str, Rows]]) -> Optional[Dict[str, Rows]]:
    if by_date is None:
        return None
    out: Dict[str, Rows] = {}
    for day in sorted(by_date):
        for c in by_date[day]:
            out.setdefault(c.get("country") or NO_COUNTRY, []).append(
                {
                    "date": day,
                    "leads": c["leads"],
                    "sales": c["sales"],
                    "revenue": c["revenue"],
                    "gasto": c["gasto"],
                    "cpl": _cpl(c["gasto"], c["leads"]),
                }
            )
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Traffic type
# ─────────────────────────────────────────────────────────────────────────────


def traffic_type_summary(rows: Optional[Rows]) -> Optional[Dict[str, Dict[str, Any]]]:
    """Tracked leads / sales / revenue per traffic type."""
    if rows is None:
        return None
    out = {t: {"leads": 0, "sales": 0, "revenue": 0.0} for t in TRAFFIC_TYPES}
    for r in rows:
        bucket = out[classify_traffic_type(r.get("campaign_name"))]
        for k, v in _totals(r).items():
            bucket[k] += v
    return out


def traffic_type_spend(spend: SpendLedger) -> Dict[str, float]:
    out = {t: 0.0 for t in TRAFFIC_TYPES}
    for seg in spend.segmentations.values():
        out[classify_traffic_type(seg.campaign_name)] += seg.spend
    return out


def traffic_type_daily_spend(spend: SpendLedger) -> Dict[str, Dict[str, float]]:
    """Daily spend per traffic type, classified by each segmentation's campaign."""
    out: Dict[str, Dict[str, float]] = {}
    for day_key, amount in spend.daily.items():
        seg = spend.segmentations.get(day_key.spend_key)
        kind = classify_traffic_type(seg.campaign_name if seg is not None else "")
        per_day = out.setdefault(day_key.day, {t: 0.0 for t in TRAFFIC_TYPES})
        per_day[kind] += amount
    return out


def captation_by_traffic_type(
    rows: Optional[Rows], daily_spend: Dict[str, Dict[str, float]]
) -> Optional[Dict[str, Rows]]:
    """Per traffic type, one row per date seen in either leads or spend."""
    if rows is None:
        return None
    by_type: Dict[str, Dict[str, Dict[str, Any]]] = {t: {} for t in TRAFFIC_TYPES}
    for r in rows:
        bucket = by_type[classify_traffic_type(r.get("campaign_name"))]
        totals = bucket.setdefault(r["date"], {"leads": 0, "sales": 0, "revenue": 0.0})
        for k, v in _totals(r).items():
            totals[k] += v

    out: Dict[str, Rows] = {}
    for kind in TRAFFIC_TYPES:
        dates = sorted(set(by_type[kind]) | set(daily_spend))
        series: Rows = []
        for day in dates:
            totals = by_type[kind].get(day, {"leads": 0, "sales": 0, "revenue": 0.0})
            gasto = daily_spend.get(day, {}).get(kind, 0.0)
            series.append({"date": day, **totals, "gasto": gasto, "cpl": _cpl(gasto, totals["leads"])})
        out[kind] = series
    return out
