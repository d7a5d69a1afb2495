"""Tests for roasboard/reconcile.py — per-ad ledger and summary."""

from __future__ import annotations

import pytest

from roasboard.io_csv import read_spend_csv
from roasboard.reconcile import LedgerBuilder, reconcile, summarize
from roasboard.revenue import RevenueAggregator
from roasboard.schema import (
    ORGANIC_KEY,
    ORGANIC_LABEL,
    UNNAMED_AD_KEY,
    OrganicTotals,
    RevenueRow,
    SpendLedger,
    SpendSegmentation,
)
from roasboard.store import SQLiteStore

# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _spend(*segs: SpendSegmentation) -> SpendLedger:
    ledger = SpendLedger()
    for seg in segs:
        ledger.segmentations[seg.key] = seg
        ledger.display_names.setdefault(seg.ad_name_normalized, seg.ad_name_original)
    return ledger


def _seg(ad: str, seg: str, spend: float, campaign: str = "PQ_Test", ad_id: str = "") -> SpendSegmentation:
    return SpendSegmentation(
        campaign_name=campaign,
        ad_set_name=seg,
        ad_name_original=ad,
        ad_name_normalized=ad.lower(),
        segmentation_normalized=seg.lower(),
        ad_id=ad_id,
        spend=spend,
    )


def _row(ad: str, seg: str, leads: int, sales: int, revenue: float, ad_id: str = "") -> RevenueRow:
    return RevenueRow(
        ad_name=ad,
        ad_key=ad.lower(),
        segmentation_name=seg,
        segmentation_key=seg.lower(),
        campaign_name="PQ_Test",
        ad_id=ad_id,
        leads=leads,
        sales=sales,
        revenue=revenue,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Metrics
# ─────────────────────────────────────────────────────────────────────────────


class TestMetrics:
    def test_single_pair(self):
        ads = reconcile(_spend(_seg("AdX", "SegA", 100.0)), [_row("AdX", "SegA", 50, 5, 300.0)])
        adx = ads["adx"]
        assert adx.total_spend == pytest.approx(100.0)
        assert adx.total_revenue == pytest.approx(300.0)
        assert adx.roas == pytest.approx(3.0)
        assert adx.profit == pytest.approx(200.0)

        seg = adx.segmentations[0]
        assert seg.cpl == pytest.approx(2.0)
        assert seg.conversion_rate == pytest.approx(10.0)

    def test_revenue_without_spend(self):
        ads = reconcile(SpendLedger(), [_row("AdX", "SegA", 4, 1, 80.0)])
        adx = ads["adx"]
        assert adx.total_spend == 0.0
        assert adx.roas == 0.0
        assert adx.segmentations[0].cpl == 0.0
        assert adx.profit == pytest.approx(80.0)

    def test_spend_without_revenue(self):
        ads = reconcile(_spend(_seg("AdZ", "SegC", 10.0)), [])
        adz = ads["adz"]
        assert adz.total_revenue == 0.0
        assert adz.profit == pytest.approx(-10.0)
        assert adz.segmentations[0].conversion_rate == 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Organic entry
# ─────────────────────────────────────────────────────────────────────────────


class TestOrganic:
    def test_organic_entry(self):
        ads = reconcile(SpendLedger(), [], OrganicTotals(total_sales=10, total_revenue=500.0))
        organic = ads[ORGANIC_KEY]
        assert organic.ad_name_display == ORGANIC_LABEL
        assert organic.total_spend == 0.0
        assert organic.roas == 0.0
        assert organic.profit == pytest.approx(500.0)
        assert organic.total_sales == 10
        assert [s.name for s in organic.segmentations] == [ORGANIC_LABEL]

    def test_organic_excluded_from_summary_revenue(self):
        ads = reconcile(SpendLedger(), [], OrganicTotals(total_sales=10, total_revenue=500.0))
        summary = summarize(ads)
        assert summary.total_revenue_all == 0.0
        assert summary.total_roas_all == 0.0

    def test_no_entry_without_organic_sales(self):
        ads = reconcile(SpendLedger(), [], OrganicTotals(total_sales=0, total_revenue=0.0))
        assert ORGANIC_KEY not in ads


# ─────────────────────────────────────────────────────────────────────────────
# Matching
# ─────────────────────────────────────────────────────────────────────────────


class TestMatching:
    def test_spend_follows_platform_id_over_name(self):
        spend = _spend(_seg("Renamed Ad", "SegA", 40.0, ad_id="999"))
        ads = reconcile(spend, [_row("AdX", "SegA", 2, 1, 100.0, ad_id="999")])
        assert "renamed ad" not in ads
        assert ads["adx"].total_spend == pytest.approx(40.0)
        assert len(ads["adx"].segmentations) == 1

    def test_shared_platform_id_lands_in_one_ad(self):
        spend = _spend(_seg("AdA", "SegA", 10.0, ad_id="9"), _seg("AdB", "SegA", 5.0, ad_id="9"))
        ads = reconcile(spend, [])
        assert "adb" not in ads
        assert ads["ada"].total_spend == pytest.approx(15.0)

    def test_shared_platform_id_after_name_match(self):
        # revenue from a store without a platform id column
        spend = _spend(_seg("AdA", "SegA", 10.0, ad_id="9"), _seg("AdB", "SegA", 5.0, ad_id="9"))
        ads = reconcile(spend, [_row("AdA", "SegA", 2, 1, 40.0)])
        assert "adb" not in ads
        assert ads["ada"].total_spend == pytest.approx(15.0)
        assert ads["ada"].segmentations[0].ad_id == "9"

    def test_rows_differing_only_by_campaign_collapse(self):
        first = _row("AdX", "SegA", 1, 0, 0.0)
        second = RevenueRow("AdX", "adx", "SegA", "sega", campaign_name="PQ_2", leads=1)
        ads = reconcile(SpendLedger(), [first, second])
        assert ads["adx"].total_leads == 1

    def test_unmatched_spend_creates_segmentation(self):
        spend = _spend(_seg("AdX", "SegB", 15.0))
        ads = reconcile(spend, [_row("AdX", "SegA", 2, 1, 100.0)])
        names = sorted(s.name for s in ads["adx"].segmentations)
        assert names == ["SegA", "SegB"]
        assert ads["adx"].total_spend == pytest.approx(15.0)

    def test_unnamed_spend_is_kept(self):
        seg = _seg("{{ad.name}}", "SegA", 7.0)
        seg.ad_name_normalized = ""
        ads = reconcile(_spend(seg), [])
        assert ads[UNNAMED_AD_KEY].total_spend == pytest.approx(7.0)
        assert summarize(ads).total_spend_all == pytest.approx(7.0)

    def test_duplicate_signature_counted_once(self):
        builder = LedgerBuilder()
        row = _row("AdX", "SegA", 3, 1, 60.0)
        assert builder.add_revenue(row) is True
        assert builder.add_revenue(row) is False
        ads = builder.finalize()
        assert ads["adx"].total_leads == 3

    def test_display_name_prefers_spend_csv(self):
        spend = _spend(_seg("Ad X Original", "SegA", 1.0))
        row = RevenueRow("ad x original", "ad x original", "SegA", "sega", leads=1)
        ads = reconcile(spend, [row])
        assert ads["ad x original"].ad_name_display == "Ad X Original"


# ─────────────────────────────────────────────────────────────────────────────
# Ordering and conservation
# ─────────────────────────────────────────────────────────────────────────────


class TestOrdering:
    def test_ads_sorted_by_profit(self, lead_db, spend_csv):
        agg = RevenueAggregator(SQLiteStore(lead_db), "captaciones", "ventas")
        ads = reconcile(read_spend_csv(spend_csv), agg.revenue_rows(), agg.organic_totals())
        assert list(ads) == ["adx", ORGANIC_KEY, "adz", "ady"]

    def test_segmentations_sorted_by_revenue(self):
        ads = reconcile(
            SpendLedger(),
            [_row("AdX", "Low", 1, 0, 5.0), _row("AdX", "High", 1, 1, 50.0)],
        )
        assert [s.name for s in ads["adx"].segmentations] == ["High", "Low"]

    def test_spend_is_conserved(self, spend_csv):
        ledger = read_spend_csv(spend_csv)
        ads = reconcile(ledger, [_row("AdX", "SegA", 2, 3, 162.5, ad_id="111")])
        assert summarize(ads).total_spend_all == pytest.approx(ledger.total_spend)

    def test_summary_from_fixture(self, lead_db, spend_csv):
        agg = RevenueAggregator(SQLiteStore(lead_db), "captaciones", "ventas")
        ads = reconcile(read_spend_csv(spend_csv), agg.revenue_rows(), agg.organic_totals())
        summary = summarize(ads)
        assert summary.total_revenue_all == pytest.approx(162.5)
        assert summary.total_spend_all == pytest.approx(135.5)
        assert summary.total_roas_all == pytest.approx(162.5 / 135.5)
        assert summary.to_dict()["multiplyRevenue"] is False
