"""Reconcile spend segmentations with grouped revenue into a per-ad ledger.

Accumulation and derivation are kept apart: :class:`LedgerBuilder` only adds
revenue, leads, sales and spend to segmentation entries; :meth:`finalize`
rolls them up and computes ROAS, profit, CPL and conversion rate once.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Set, Tuple

from roasboard.normalize import clean_display_name
from roasboard.schema import (
    ORGANIC_KEY,
    ORGANIC_LABEL,
    UNNAMED_AD_KEY,
    AdLedgerEntry,
    LedgerSummary,
    OrganicTotals,
    RevenueRow,
    SegmentationEntry,
    SpendLedger,
    SpendSegmentation,
)

logger = logging.getLogger(__name__)

RevenueSignature = Tuple[str, str, float, int]


class LedgerBuilder:
    def __init__(self, display_names: Optional[Dict[str, str]] = None) -> None:
        self.ads: Dict[str, AdLedgerEntry] = {}
        self.display_names = display_names or {}
        self._seen: Set[RevenueSignature] = set()

    def _display_name(self, key: str, fallback: str) -> str:
        # spend CSV names are what users recognise
        return clean_display_name(self.display_names.get(key) or fallback)

    def _ad(self, key: str, fallback_name: str) -> AdLedgerEntry:
        ad = self.ads.get(key)
        if ad is None:
            ad = AdLedgerEntry(ad_name_display=self._display_name(key, fallback_name))
            self.ads[key] = ad
        return ad

    def _ad_owning_id(self, ad_id: str) -> Optional[str]:
        for key, ad in self.ads.items():
            for seg in ad.segmentations:
                if seg.ad_id and seg.ad_id == ad_id:
                    return key
        return None

    # ── Accumulation ──────────────────────────────────────────────────────────

    def seed_organic(self, organic: Optional[OrganicTotals]) -> None:
        if organic is None or organic.total_sales <= 0:
            return
        ad = self._ad(ORGANIC_KEY, ORGANIC_LABEL)
        ad.ad_name_display = ORGANIC_LABEL
        ad.segmentations.append(
            SegmentationEntry(
                name=ORGANIC_LABEL,
                key=ORGANIC_KEY,
                campaign_name=ORGANIC_LABEL,
                revenue=organic.total_revenue,
                sales=organic.total_sales,
            )
        )

    def add_revenue(self, row: RevenueRow) -> bool:
        """Add one grouped revenue row; False when its signature was already seen."""
        # campaign and ad id are not in the signature: rows differing only there collapse
        signature = (row.ad_name, row.segmentation_name, row.revenue, row.leads)
        if signature in self._seen:
            logger.debug("duplicate revenue row skipped: %r", signature)
            return False
        self._seen.add(signature)

        ad = self._ad(row.ad_key, row.ad_name)
        seg = ad.find_segmentation(row.segmentation_key)
        if seg is None:
            seg = SegmentationEntry(
                name=clean_display_name(row.segmentation_name),
                key=row.segmentation_key,
                campaign_name=row.campaign_name,
                ad_id=row.ad_id,
            )
            ad.segmentations.append(seg)
        else:
            seg.campaign_name = seg.campaign_name or row.campaign_name
            seg.ad_id = seg.ad_id or row.ad_id
        seg.revenue += row.revenue
        seg.leads += row.leads
        seg.sales += row.sales
        return True

    def add_spend(self, spend: SpendSegmentation) -> None:
        """Attach spend to the ad owning its platform id, else to its name."""
        key = self._ad_owning_id(spend.ad_id) if spend.ad_id else None
        if key is None:
            key = spend.ad_name_normalized or UNNAMED_AD_KEY

        ad = self._ad(key, spend.ad_name_original)
        seg = ad.find_segmentation(spend.segmentation_normalized, spend.ad_id)
        if seg is None:
            seg = SegmentationEntry(
                name=clean_display_name(spend.ad_set_name),
                key=spend.segmentation_normalized,
                campaign_name=spend.campaign_name,
                ad_id=spend.ad_id,
            )
            ad.segmentations.append(seg)
        else:
            seg.ad_id = seg.ad_id or spend.ad_id
        seg.spend_allocated += spend.spend

    # ── Derivation ────────────────────────────────────────────────────────────

    def finalize(self) -> Dict[str, AdLedgerEntry]:
        """Derive metrics, sort segmentations by revenue and ads by profit."""
        for ad in self.ads.values():
            ad.recompute_metrics()
            ad.segmentations.sort(key=lambda s: s.revenue, reverse=True)
        ordered = sorted(self.ads.items(), key=lambda kv: kv[1].profit, reverse=True)
        return dict(ordered)


def reconcile(
    spend: SpendLedger,
    revenue_rows: Iterable[RevenueRow],
    organic: Optional[OrganicTotals] = None,
) -> Dict[str, AdLedgerEntry]:
    """Build the per-ad ledger keyed by normalized ad name."""
    builder = LedgerBuilder(spend.display_names)
    builder.seed_organic(organic)
    for row in revenue_rows:
        builder.add_revenue(row)
    for seg in spend.segmentations.values():
        builder.add_spend(seg)
    ads = builder.finalize()
    logger.info("Ledger: %d ad(s)", len(ads))
    return ads


def summarize(ads: Dict[str, AdLedgerEntry], multiply_revenue: bool = False) -> LedgerSummary:
    """Grand totals; organic revenue is left out of the revenue KPI."""
    revenue = sum(ad.total_revenue for key, ad in ads.items() if key != ORGANIC_KEY)
    spend = sum(ad.total_spend for ad in ads.values())
    return LedgerSummary(
        total_revenue_all=revenue,
        total_spend_all=spend,
        total_roas_all=revenue / spend if spend > 0 else 0.0,
        multiply_revenue=multiply_revenue,
    )
