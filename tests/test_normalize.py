"""Tests for roasboard/normalize.py — join keys, display names, traffic type."""

from __future__ import annotations

import pytest

from roasboard.normalize import NO_NAME, classify_traffic_type, clean_display_name, normalize

# ─────────────────────────────────────────────────────────────────────────────
# clean_display_name
# ─────────────────────────────────────────────────────────────────────────────


class TestCleanDisplayName:
    def test_plain_name_kept(self):
        assert clean_display_name("  Video Testimonio 3 ") == "Video Testimonio 3"

    def test_utm_wrapper_removed(self):
        assert clean_display_name("{{adsutm_content=Promo Enero}}") == "Promo Enero"

    def test_adset_placeholder_is_no_name(self):
        assert clean_display_name("{{adset.name}}") == NO_NAME

    def test_leading_template_token_removed(self):
        assert clean_display_name("{{ad.name}} Carrusel") == "Carrusel"

    def test_media_extensions_removed(self):
        assert clean_display_name("testimonio.MP4") == "testimonio"
        assert clean_display_name("banner.webp") == "banner"

    @pytest.mark.parametrize("raw", ["", "   ", "-", "undefined", None])
    def test_empty_values_become_sentinel(self, raw):
        assert clean_display_name(raw) == NO_NAME


# ─────────────────────────────────────────────────────────────────────────────
# normalize
# ─────────────────────────────────────────────────────────────────────────────


class TestNormalize:
    def test_case_accent_punctuation_insensitive(self):
        assert normalize("Café Élite!!") == normalize("cafe elite")
        assert normalize("cafe elite") == "cafe elite"

    def test_whitespace_collapsed(self):
        assert normalize("  Ad   X \t 2 ") == "ad x 2"

    def test_dash_and_underscore_kept(self):
        assert normalize("PQ_Test - Seg") == "pq_test - seg"

    def test_sentinel_inputs_normalize_to_empty(self):
        assert normalize("{{adset.name}}") == ""
        assert normalize(None) == ""
        assert normalize("undefined") == ""

    def test_non_string_input(self):
        assert normalize(12345) == "12345"

    @pytest.mark.parametrize(
        "raw",
        [
            "Café Élite!!",
            "-.",
            "Undefined",
            "{{adsutm_content=Año Nuevo}}",
            "  MIXED case   Ñandú ",
            "video.mp4.mp4",
            "a|b",
            "",
        ],
    )
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once


# ─────────────────────────────────────────────────────────────────────────────
# classify_traffic_type
# ─────────────────────────────────────────────────────────────────────────────


class TestTrafficType:
    def test_examples(self):
        assert classify_traffic_type("PQ_Summer") == "caliente"
        assert classify_traffic_type("PF_Winter") == "frio"
        assert classify_traffic_type("Generic") == "otro"

    def test_case_insensitive(self):
        assert classify_traffic_type("remarketing pq") == "caliente"
        assert classify_traffic_type("pf frio") == "frio"

    def test_pq_checked_before_pf(self):
        assert classify_traffic_type("PF_PQ_mix") == "caliente"

    def test_missing_campaign(self):
        assert classify_traffic_type(None) == "otro"
        assert classify_traffic_type("") == "otro"
