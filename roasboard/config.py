"""Load and validate config.yaml."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

import yaml


@dataclass
class StoreConfig:
    db_path: str = "data/captaciones.sqlite"


@dataclass
class StagingConfig:
    enabled: bool = False
    path: str = "data/staging.sqlite"


@dataclass
class HistoryConfig:
    path: str = "data/history.sqlite"
    max_reports: int = 50


@dataclass
class AnalysisConfig:
    exchange_rate: float = 0.0  # 0 = amounts already in reporting currency
    multiply_revenue: bool = False  # co-production: revenue counted twice


@dataclass
class QualityConfig:
    roas_threshold: float = 1.5
    min_leads_single: int = 5
    good_ratio_single: float = 0.7
    bad_ratio_single: float = 0.3
    min_leads_combination: int = 10
    good_ratio_combination: float = 0.8
    bad_ratio_combination: float = 0.2
    factor_fields: List[str] = field(
        default_factory=lambda: [
            "qlead",
            "ingresos",
            "estudios",
            "ocupacion",
            "proposito",
            "edad_especifica",
        ]
    )
    factor_pairs: List[Tuple[str, str]] = field(
        default_factory=lambda: [
            ("qlead", "ingresos"),
            ("qlead", "ocupacion"),
            ("qlead", "edad_especifica"),
            ("ingresos", "estudios"),
            ("ingresos", "ocupacion"),
            ("ingresos", "edad_especifica"),
            ("estudios", "ocupacion"),
            ("edad_especifica", "ocupacion"),
        ]
    )


@dataclass
class ColumnsConfig:
    """Candidate column names, tried in order; the first existing one wins."""

    lead_client_id: List[str] = field(default_factory=lambda: ["#", "cliente_id", "CLIENTE_ID"])
    ad: List[str] = field(default_factory=lambda: ["ANUNCIO", "anuncio"])
    segmentation: List[str] = field(default_factory=lambda: ["SEGMENTACION", "segmentacion"])
    campaign: List[str] = field(
        default_factory=lambda: ["CAMPAÑA", "CAMPANA", "CAMPAIGN", "Campaign"]
    )
    ad_id: List[str] = field(default_factory=lambda: ["AD_ID", "ad_id"])
    registration_date: List[str] = field(
        default_factory=lambda: [
            "FECHA_REGISTRO",
            "FECHA",
            "FECHA_CAPTACION",
            "FECHA_REGISTO",
            "fecha_registro",
            "created_at",
        ]
    )
    country: List[str] = field(
        default_factory=lambda: ["PAIS", "COUNTRY", "PAÍS", "Pais", "Country"]
    )
    qlead: List[str] = field(default_factory=lambda: ["QLEAD"])
    ingresos: List[str] = field(default_factory=lambda: ["INGRESOS"])
    estudios: List[str] = field(default_factory=lambda: ["ESTUDIOS"])
    ocupacion: List[str] = field(default_factory=lambda: ["OCUPACION"])
    proposito: List[str] = field(default_factory=lambda: ["PROPOSITO"])
    edad_especifica: List[str] = field(default_factory=lambda: ["EDAD_ESPECIFICA"])
    puntaje: List[str] = field(default_factory=lambda: ["PUNTAJE"])

    sale_client_id: List[str] = field(
        default_factory=lambda: ["cliente_id", "CLIENTE_ID", "cliente"]
    )
    sale_amount: List[str] = field(default_factory=lambda: ["monto", "MONTO"])
    sale_source: List[str] = field(default_factory=lambda: ["fuente", "FUENTE"])
    sale_date: List[str] = field(
        default_factory=lambda: [
            "FECHA",
            "FECHA_VENTA",
            "fecha",
            "fecha_venta",
            "created_at",
            "purchase_date",
        ]
    )


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class AppConfig:
    store: StoreConfig = field(default_factory=StoreConfig)
    staging: StagingConfig = field(default_factory=StagingConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    columns: ColumnsConfig = field(default_factory=ColumnsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _quality_config(raw: dict) -> QualityConfig:
    raw = dict(raw)
    if "factor_pairs" in raw:
        raw["factor_pairs"] = [tuple(p) for p in raw["factor_pairs"]]
    return QualityConfig(**raw)


def load_config(path: str | Path = "config.yaml") -> AppConfig:
    """Load config from YAML file, falling back to defaults."""
    p = Path(path)
    raw: dict = {}
    if p.exists():
        with open(p, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    return AppConfig(
        store=StoreConfig(**raw.get("store", {})),
        staging=StagingConfig(**raw.get("staging", {})),
        history=HistoryConfig(**raw.get("history", {})),
        analysis=AnalysisConfig(**raw.get("analysis", {})),
        quality=_quality_config(raw.get("quality", {})),
        columns=ColumnsConfig(**raw.get("columns", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
    )
