"""Tests for roasboard/cohorts.py — registration, days, country and traffic-type views."""

from __future__ import annotations

import pytest

from roasboard.cohorts import (
    NO_COUNTRY,
    ad_day_spend,
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
from roasboard.io_csv import read_country_csv, read_spend_csv
from roasboard.revenue import RevenueAggregator
from roasboard.schema import SpendKey
from roasboard.store import SQLiteStore


@pytest.fixture
def agg(lead_db) -> RevenueAggregator:
    return RevenueAggregator(SQLiteStore(lead_db), "captaciones", "ventas")


@pytest.fixture
def ledger(spend_csv):
    return read_spend_csv(spend_csv)


# ─────────────────────────────────────────────────────────────────────────────
# Days since registration
# ─────────────────────────────────────────────────────────────────────────────


class TestCaptationDays:
    def test_buckets(self, agg):
        out = captation_days(agg.captation_days_rows())
        assert [(r["days"], r["count"], r["revenue"]) for r in out] == [
            (0, 1, 50.0),
            (1, 1, 12.5),
            (2, 1, 100.0),
            (3, 1, 30.0),
        ]

    def test_empty_is_none(self):
        assert captation_days([]) is None
        assert captation_days(None) is None


# ─────────────────────────────────────────────────────────────────────────────
# Registration date
# ─────────────────────────────────────────────────────────────────────────────


class TestSalesByRegistrationDate:
    def test_daily_spend_joined_per_ad(self, agg, ledger):
        rows = sales_by_registration_date(agg.registration_totals(), agg.registration_by_ad(), ledger)
        first, second = rows
        assert first["date"] == "2024-01-01"
        assert (first["leads"], first["sales"], first["revenue"]) == (2, 3, 162.5)
        assert first["gasto"] == pytest.approx(60.0)
        assert first["cpl"] == pytest.approx(30.0)
        assert first["ads"][0]["anuncio"] == "AdX"
        assert first["ads"][0]["roas"] == pytest.approx(162.5 / 60.0)

        assert second["leads"] == 3
        assert second["gasto"] == pytest.approx(25.5)
        assert second["cpl"] == pytest.approx(8.5)

    def test_falls_back_to_total_spend_without_daily(self, ledger):
        ledger.daily.clear()
        assert ad_day_spend(ledger, "2024-01-01", SpendKey("adx", "sega")) == pytest.approx(100.0)
        assert ad_day_spend(ledger, "2024-01-01", SpendKey("nope", "x")) == 0.0

    def test_none_without_totals(self, ledger):
        assert sales_by_registration_date(None, [], ledger) is None

    def test_regroup_by_ad_and_segmentation(self, agg, ledger):
        rows = sales_by_registration_date(agg.registration_totals(), agg.registration_by_ad(), ledger)
        by_ad = captation_by_ad(rows)
        assert set(by_ad) == {"AdX", "AdY"}
        assert by_ad["AdX"][0]["gasto"] == pytest.approx(60.0)
        assert by_ad["AdX"][0]["cpl"] == pytest.approx(30.0)

        by_seg = captation_by_segmentation(rows)
        assert [r["date"] for r in by_seg["SegB"]] == ["2024-01-02"]
        assert by_seg["SegB"][0]["sales"] == 1


# ─────────────────────────────────────────────────────────────────────────────
# Country
# ─────────────────────────────────────────────────────────────────────────────


class TestCountry:
    def test_country_data(self, agg, country_csv):
        spend = read_country_csv(country_csv)
        out = country_data(spend.by_country, agg.revenue_by_country())
        assert [c["country"] for c in out] == ["Mexico", "Chile"]

        mexico, chile = out
        assert mexico["gasto"] == pytest.approx(55.0)
        assert mexico["ventas_trackeadas"] == pytest.approx(162.5)
        assert mexico["roas"] == pytest.approx(162.5 / 55.0)
        assert chile["ventas_organicas"] == pytest.approx(30.0)
        assert chile["roas"] == 0.0

    def test_country_with_sales_but_no_spend(self):
        out = country_data({}, [{"country": "Peru", "organic": 0, "revenue": 40.0}])
        assert out == [
            {"country": "Peru", "gasto": 0.0, "roas": 0.0,
             "ventas_organicas": 0.0, "ventas_trackeadas": 40.0}
        ]

    def test_by_registration_date(self, agg, country_csv):
        spend = read_country_csv(country_csv)
        by_date = sales_by_registration_date_by_country(agg.registration_by_country(), spend.by_day)
        assert list(by_date) == ["2024-01-01", "2024-01-02"]
        assert by_date["2024-01-01"] == [
            {"country": "Mexico", "leads": 2, "sales": 3, "revenue": 162.5, "gasto": 50.0}
        ]
        countries = {c["country"]: c for c in by_date["2024-01-02"]}
        assert countries["Chile"]["gasto"] == pytest.approx(20.0)
        assert countries[NO_COUNTRY]["gasto"] == 0.0

        per_country = captation_by_country(by_date)
        assert [r["date"] for r in per_country["Mexico"]] == ["2024-01-01"]
        assert per_country["Chile"][0]["cpl"] == pytest.approx(10.0)

    def test_captation_by_country_without_country_data(self):
        assert captation_by_country(None) is None
        assert captation_by_country({}) == {}


# ─────────────────────────────────────────────────────────────────────────────
# Traffic type
# ─────────────────────────────────────────────────────────────────────────────


class TestTrafficType:
    def test_summary_tracked_only(self, agg):
        out = traffic_type_summary(agg.traffic_by_campaign())
        assert out["caliente"] == {"leads": 2, "sales": 3, "revenue": 162.5}
        assert out["frio"] == {"leads": 2, "sales": 0, "revenue": 0.0}
        assert out["otro"] == {"leads": 0, "sales": 0, "revenue": 0.0}

    def test_summary_empty_rows(self):
        assert traffic_type_summary([])["otro"]["leads"] == 0
        assert traffic_type_summary(None) is None

    def test_spend(self, ledger):
        assert traffic_type_spend(ledger) == {
            "frio": pytest.approx(35.5),
            "caliente": pytest.approx(100.0),
            "otro": 0.0,
        }

    def test_daily_spend(self, ledger):
        daily = traffic_type_daily_spend(ledger)
        assert daily["2024-01-01"]["caliente"] == pytest.approx(60.0)
        assert daily["2024-01-02"]["caliente"] == pytest.approx(40.0)
        assert daily["2024-01-02"]["frio"] == pytest.approx(35.5)

    def test_captation_by_traffic_type(self, agg, ledger):
        out = captation_by_traffic_type(agg.registration_by_campaign(), traffic_type_daily_spend(ledger))
        caliente = {r["date"]: r for r in out["caliente"]}
        assert caliente["2024-01-01"]["leads"] == 2
        assert caliente["2024-01-01"]["cpl"] == pytest.approx(30.0)
        assert caliente["2024-01-02"]["leads"] == 1
        assert caliente["2024-01-02"]["gasto"] == pytest.approx(40.0)

        frio = {r["date"]: r for r in out["frio"]}
        assert frio["2024-01-01"]["leads"] == 0
        assert frio["2024-01-02"]["sales"] == 1
        assert frio["2024-01-02"]["gasto"] == pytest.approx(35.5)
        assert [r["date"] for r in out["otro"]] == ["2024-01-01", "2024-01-02"]
