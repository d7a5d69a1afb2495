"""Typed records shared by the spend, revenue and ledger stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

ORGANIC_KEY = "organica"
ORGANIC_LABEL = "Orgánica"
UNNAMED_AD_KEY = "__sin_nombre__"


class SpendKey(NamedTuple):
    """Normalized (ad, segmentation) pair used to join spend with revenue."""

    ad: str
    segmentation: str


class DaySpendKey(NamedTuple):
    day: str
    ad: str
    segmentation: str

    @property
    def spend_key(self) -> SpendKey:
        return SpendKey(self.ad, self.segmentation)


# ─────────────────────────────────────────────────────────────────────────────
# Spend side (CSV)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class SpendSegmentation:
    campaign_name: str
    ad_set_name: str
    ad_name_original: str
    ad_name_normalized: str
    segmentation_normalized: str
    ad_id: str = ""
    spend: float = 0.0

    @property
    def key(self) -> SpendKey:
        return SpendKey(self.ad_name_normalized, self.segmentation_normalized)


@dataclass
class SpendLedger:
    segmentations: Dict[SpendKey, SpendSegmentation] = field(default_factory=dict)
    display_names: Dict[str, str] = field(default_factory=dict)
    daily: Dict[DaySpendKey, float] = field(default_factory=dict)

    @property
    def total_spend(self) -> float:
        return sum(s.spend for s in self.segmentations.values())

    def spend_for(self, key: SpendKey) -> float:
        seg = self.segmentations.get(key)
        return seg.spend if seg is not None else 0.0

    def __len__(self) -> int:
        return len(self.segmentations)


@dataclass
class CountrySpend:
    by_country: Dict[str, float] = field(default_factory=dict)
    by_day: Dict[str, Dict[str, float]] = field(default_factory=dict)


# ─────────────────────────────────────────────────────────────────────────────
# Revenue side (lead / sale store)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RevenueRow:
    ad_name: str
    ad_key: str
    segmentation_name: str
    segmentation_key: str
    campaign_name: str = ""
    ad_id: str = ""
    leads: int = 0
    sales: int = 0
    revenue: float = 0.0

    @property
    def key(self) -> SpendKey:
        return SpendKey(self.ad_key, self.segmentation_key)


@dataclass(frozen=True)
class QualityRow:
    ad_name: str
    ad_key: str
    segmentation_name: str
    segmentation_key: str
    campaign_name: str = ""
    ad_id: str = ""
    qlead: Optional[str] = None
    ingresos: Optional[str] = None
    estudios: Optional[str] = None
    ocupacion: Optional[str] = None
    proposito: Optional[str] = None
    edad_especifica: Optional[str] = None
    puntaje: float = 0.0
    leads: int = 0
    sales: int = 0
    revenue: float = 0.0

    @property
    def key(self) -> SpendKey:
        return SpendKey(self.ad_key, self.segmentation_key)


@dataclass(frozen=True)
class OrganicTotals:
    total_sales: int = 0
    total_revenue: float = 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Reconciled ledger
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class SegmentationEntry:
    name: str
    key: str
    campaign_name: str = ""
    ad_id: str = ""
    revenue: float = 0.0
    leads: int = 0
    sales: int = 0
    spend_allocated: float = 0.0
    profit: float = 0.0
    cpl: float = 0.0
    conversion_rate: float = 0.0

    def recompute_metrics(self) -> None:
        self.profit = self.revenue - self.spend_allocated
        self.cpl = (
            self.spend_allocated / self.leads
            if self.leads > 0 and self.spend_allocated > 0
            else 0.0
        )
        self.conversion_rate = (self.sales / self.leads) * 100 if self.leads > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "campaign_name": self.campaign_name,
            "ad_id": self.ad_id,
            "revenue": self.revenue,
            "leads": self.leads,
            "sales": self.sales,
            "spend_allocated": self.spend_allocated,
            "profit": self.profit,
            "cpl": self.cpl,
            "conversion_rate": self.conversion_rate,
        }


@dataclass
class AdLedgerEntry:
    ad_name_display: str
    total_revenue: float = 0.0
    total_leads: int = 0
    total_sales: int = 0
    total_spend: float = 0.0
    roas: float = 0.0
    profit: float = 0.0
    segmentations: List[SegmentationEntry] = field(default_factory=list)

    def find_segmentation(self, key: str, ad_id: str = "") -> Optional[SegmentationEntry]:
        """Platform id equality first, then normalized-name equality."""
        if ad_id:
            for seg in self.segmentations:
                if seg.ad_id and seg.ad_id == ad_id:
                    return seg
        if key:
            for seg in self.segmentations:
                if seg.key == key:
                    return seg
        return None

    def recompute_metrics(self) -> None:
        """Roll totals up from the segmentations, then derive ROAS and profit."""
        for seg in self.segmentations:
            seg.recompute_metrics()
        self.total_revenue = sum(s.revenue for s in self.segmentations)
        self.total_leads = sum(s.leads for s in self.segmentations)
        self.total_sales = sum(s.sales for s in self.segmentations)
        self.total_spend = round(sum(s.spend_allocated for s in self.segmentations), 2)
        self.roas = self.total_revenue / self.total_spend if self.total_spend > 0 else 0.0
        self.profit = self.total_revenue - self.total_spend

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ad_name_display": self.ad_name_display,
            "total_revenue": self.total_revenue,
            "total_leads": self.total_leads,
            "total_sales": self.total_sales,
            "total_spend": self.total_spend,
            "roas": self.roas,
            "profit": self.profit,
            "segmentations": [s.to_dict() for s in self.segmentations],
        }


# ─────────────────────────────────────────────────────────────────────────────
# Quality cohorts
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class QualityAdShare:
    """One (ad, segmentation) pair's contribution to a quality cohort."""

    ad_name: str
    segmentation: str
    campaign: str = ""
    ad_id: str = ""
    leads: int = 0
    sales: int = 0
    revenue: float = 0.0
    spend: float = 0.0
    puntaje_sum: float = 0.0
    puntaje_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ad_name": self.ad_name,
            "segmentation": self.segmentation,
            "campaign": self.campaign,
            "ad_id": self.ad_id,
            "leads": self.leads,
            "sales": self.sales,
            "revenue": self.revenue,
            "spend": self.spend,
        }


@dataclass
class QualitySegment:
    qlead: str
    ingresos: str
    estudios: str
    ocupacion: str
    proposito: str
    edad_especifica: str
    avg_puntaje: float = 0.0
    total_leads: int = 0
    total_sales: int = 0
    total_revenue: float = 0.0
    total_spend: float = 0.0
    roas: float = 0.0
    conversion_rate: float = 0.0
    profit: float = 0.0
    cpl: float = 0.0
    ads: Dict[SpendKey, QualityAdShare] = field(default_factory=dict)

    def recompute_metrics(self) -> None:
        self.conversion_rate = (
            (self.total_sales / self.total_leads) * 100 if self.total_leads > 0 else 0.0
        )
        self.roas = self.total_revenue / self.total_spend if self.total_spend > 0 else 0.0
        self.profit = self.total_revenue - self.total_spend
        self.cpl = (
            self.total_spend / self.total_leads
            if self.total_leads > 0 and self.total_spend > 0
            else 0.0
        )
        weighted = sum(a.puntaje_sum for a in self.ads.values())
        count = sum(a.puntaje_count for a in self.ads.values())
        self.avg_puntaje = weighted / count if count > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qlead": self.qlead,
            "ingresos": self.ingresos,
            "estudios": self.estudios,
            "ocupacion": self.ocupacion,
            "proposito": self.proposito,
            "edad_especifica": self.edad_especifica,
            "avg_puntaje": self.avg_puntaje,
            "total_leads": self.total_leads,
            "total_sales": self.total_sales,
            "total_revenue": self.total_revenue,
            "total_spend": self.total_spend,
            "roas": self.roas,
            "conversion_rate": self.conversion_rate,
            "profit": self.profit,
            "cpl": self.cpl,
            "ads": [a.to_dict() for a in self.ads.values()],
        }


# ─────────────────────────────────────────────────────────────────────────────
# Summary
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class LedgerSummary:
    total_revenue_all: float = 0.0
    total_spend_all: float = 0.0
    total_roas_all: float = 0.0
    multiply_revenue: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRevenueAll": self.total_revenue_all,
            "totalSpendAll": self.total_spend_all,
            "totalRoasAll": self.total_roas_all,
            "multiplyRevenue": self.multiply_revenue,
        }
