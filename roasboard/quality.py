"""Quality cohorts and factor analysis.

Leads are grouped into cohorts by (qlead, ingresos, estudios, ocupacion,
edad_especifica).  Spend is not tagged with these attributes, so each
(ad, segmentation) spend figure is split across cohorts in proportion to the
leads that pair contributed to each cohort.

:func:`analyze_factors` is exploratory: it reports which attribute values
(and value pairs) concentrate in high- or low-ROAS cohorts by lead share.
There are no p-values and no multiple-comparison correction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from roasboard.config import QualityConfig
from roasboard.normalize import clean_display_name
from roasboard.schema import QualityAdShare, QualityRow, QualitySegment, SpendLedger

logger = logging.getLogger(__name__)

UNCLASSIFIED = "Sin Clasificar"
UNSPECIFIED = "No Especificado"


def _label(value: Any, placeholder: str) -> str:
    text = "" if value is None else str(value).strip()
    return text or placeholder


@dataclass
class QualityAnalysis:
    summary: Dict[str, Any]
    segments: List[QualitySegment] = field(default_factory=list)
    factor_analysis: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "segments": [s.to_dict() for s in self.segments],
            "factorAnalysis": self.factor_analysis,
        }


# ─────────────────────────────────────────────────────────────────────────────
# Cohorts
# ─────────────────────────────────────────────────────────────────────────────


def group_cohorts(rows: Iterable[QualityRow]) -> Dict[Tuple[str, ...], QualitySegment]:
    cohorts: Dict[Tuple[str, ...], QualitySegment] = {}
    for row in rows:
        qlead = _label(row.qlead, UNCLASSIFIED)
        ingresos = _label(row.ingresos, UNSPECIFIED)
        estudios = _label(row.estudios, UNSPECIFIED)
        ocupacion = _label(row.ocupacion, UNSPECIFIED)
        edad = _label(row.edad_especifica, UNSPECIFIED)
        key = (qlead, ingresos, estudios, ocupacion, edad)

        seg = cohorts.get(key)
        if seg is None:
            # proposito is not part of the key; the first row's value is kept
            seg = QualitySegment(
                qlead=qlead,
                ingresos=ingresos,
                estudios=estudios,
                ocupacion=ocupacion,
                proposito=_label(row.proposito, UNSPECIFIED),
                edad_especifica=edad,
            )
            cohorts[key] = seg
        seg.total_leads += row.leads
        seg.total_sales += row.sales
        seg.total_revenue += row.revenue

        share = seg.ads.get(row.key)
        if share is None:
            share = QualityAdShare(
                ad_name=clean_display_name(row.ad_name),
                segmentation=clean_display_name(row.segmentation_name),
                campaign=row.campaign_name,
                ad_id=row.ad_id,
            )
            seg.ads[row.key] = share
        share.leads += row.leads
        share.sales += row.sales
        share.revenue += row.revenue
        share.puntaje_sum += row.puntaje * row.leads
        share.puntaje_count += row.leads
    return cohorts


def allocate_spend(cohorts: Iterable[QualitySegment], spend: SpendLedger) -> float:
    """Split each spend figure across cohorts by lead share; returns the total allocated."""
    cohorts = list(cohorts)
    allocated = 0.0
    for key, seg_spend in spend.segmentations.items():
        holders = [c for c in cohorts if key in c.ads]
        total_leads = sum(c.ads[key].leads for c in holders)
        if total_leads <= 0:
            continue
        for cohort in holders:
            portion = seg_spend.spend * (cohort.ads[key].leads / total_leads)
            cohort.ads[key].spend = portion
            cohort.total_spend += portion
            allocated += portion
    return allocated


def build_quality_analysis(
    rows: Iterable[QualityRow],
    spend: SpendLedger,
    multiply_revenue: bool = False,
    cfg: Optional[QualityConfig] = None,
) -> Optional[QualityAnalysis]:
    """Cohort metrics, spend allocation and factor analysis; None without rows."""
    rows = list(rows)
    if not rows:
        return None
    cfg = cfg or QualityConfig()

    cohorts = group_cohorts(rows)
    total_spend = allocate_spend(cohorts.values(), spend)

    segments = list(cohorts.values())
    for seg in segments:
        seg.recompute_metrics()
    segments.sort(key=lambda s: s.roas, reverse=True)

    total_revenue = sum(s.total_revenue for s in segments)
    summary = {
        "total_revenue": total_revenue,
        "total_spend": total_spend,
        "total_roas": total_revenue / total_spend if total_spend > 0 else 0.0,
        "multiply_revenue": multiply_revenue,
    }
    logger.info("Quality: %d cohort(s)", len(segments))
    return QualityAnalysis(
        summary=summary,
        segments=segments,
        factor_analysis=analyze_factors(segments, cfg),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Factor analysis
# ─────────────────────────────────────────────────────────────────────────────


def _tally(
    segments: List[QualitySegment], value_of: Callable[[QualitySegment], str]
) -> Tuple[Dict[str, int], Dict[str, List[float]]]:
    leads: Dict[str, int] = {}
    roas: Dict[str, List[float]] = {}
    for seg in segments:
        value = value_of(seg)
        leads[value] = leads.get(value, 0) + seg.total_leads
        roas.setdefault(value, []).append(seg.roas)
    return leads, roas


def _mean_2dp(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _classify(
    good: List[QualitySegment],
    bad: List[QualitySegment],
    value_of: Callable[[QualitySegment], str],
    min_leads: int,
    good_ratio: float,
    bad_ratio: float,
    with_roas: bool,
) -> Tuple[Dict[str, Dict[str, Any]], Dict[str, Dict[str, Any]]]:
    good_leads, good_roas = _tally(good, value_of)
    bad_leads, bad_roas = _tally(bad, value_of)

    good_out: Dict[str, Dict[str, Any]] = {}
    bad_out: Dict[str, Dict[str, Any]] = {}
    for value in list(dict.fromkeys([*good_leads, *bad_leads])):
        g = good_leads.get(value, 0)
        b = bad_leads.get(value, 0)
        total = g + b
        if total < min_leads or total <= 0:
            continue
        ratio = g / total
        stats: Dict[str, Any] = {
            "good_leads": g,
            "bad_leads": b,
            "ratio": round(ratio * 100, 1),
            "total_leads": total,
        }
        if with_roas:
            stats["avg_roas_good"] = _mean_2dp(good_roas.get(value, []))
            stats["avg_roas_bad"] = _mean_2dp(bad_roas.get(value, []))
        if ratio >= good_ratio:
            good_out[value] = stats
        elif ratio <= bad_ratio:
            bad_out[value] = stats
    return good_out, bad_out


def analyze_factors(
    segments: List[QualitySegment], cfg: Optional[QualityConfig] = None
) -> Dict[str, Any]:
    """Attribute values over-represented among good (ROAS ≥ threshold) or bad cohorts.

    ``ratio`` in the output is the good-lead share as a percentage with one
    decimal; classification uses the unrounded share.
    """
    cfg = cfg or QualityConfig()
    good = [s for s in segments if s.roas >= cfg.roas_threshold]
    bad = [s for s in segments if s.roas < cfg.roas_threshold]

    good_factors: Dict[str, Any] = {}
    bad_factors: Dict[str, Any] = {}
    for name in cfg.factor_fields:
        good_factors[name], bad_factors[name] = _classify(
            good,
            bad,
            lambda s, name=name: getattr(s, name),
            cfg.min_leads_single,
            cfg.good_ratio_single,
            cfg.bad_ratio_single,
            with_roas=True,
        )

    good_factors["combinations"] = {}
    bad_factors["combinations"] = {}
    for first, second in cfg.factor_pairs:
        good_combo, bad_combo = _classify(
            good,
            bad,
            lambda s, a=first, b=second: f"{getattr(s, a)} + {getattr(s, b)}",
            cfg.min_leads_combination,
            cfg.good_ratio_combination,
            cfg.bad_ratio_combination,
            with_roas=False,
        )
        for combo, stats in good_combo.items():
            good_factors["combinations"][combo] = {**stats, "factors": [first, second]}
        for combo, stats in bad_combo.items():
            bad_factors["combinations"][combo] = {**stats, "factors": [first, second]}

    return {
        "good_factors": good_factors,
        "bad_factors": bad_factors,
        "stats": {
            "total_segments": len(segments),
            "high_roas_count": len(good),
            "low_roas_count": len(bad),
            "avg_roas_good": _mean_2dp([s.roas for s in good]),
            "avg_roas_bad": _mean_2dp([s.roas for s in bad]),
        },
    }
