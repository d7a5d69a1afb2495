"""Canonical join keys for free-text ad / segmentation names."""

from __future__ import annotations

import re
import unicodedata
from typing import Any

NO_NAME = "[Sin nombre]"

_PLACEHOLDER_PATTERNS = [
    re.compile(r"^\{\{adsutm_content="),
    re.compile(r"^\{\{adset\.name\}\}$"),
    re.compile(r"^\{\{([^}]*)\}\}"),
    re.compile(r"\.(mp4|mov|avi|mkv|wmv)$", re.IGNORECASE),
    re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE),
]
_BRACES = re.compile(r"\{\{|\}\}|=")
_DISALLOWED = re.compile(r"[^a-z0-9\s\-_]")
_SPACES = re.compile(r"\s+")


def clean_display_name(raw: Any) -> str:
    """Strip template artifacts from a name. Never returns an empty string."""
    text = "" if raw is None else str(raw)
    for pat in _PLACEHOLDER_PATTERNS:
        text = pat.sub("", text)
    text = _BRACES.sub("", text).strip()
    if text in ("", "-", "undefined"):
        return NO_NAME
    return text


def normalize(raw: Any) -> str:
    """Return the join key for *raw*; ``""`` means unmatchable."""
    cleaned = clean_display_name(raw)
    if cleaned == NO_NAME:
        return ""
    text = unicodedata.normalize("NFD", cleaned.lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _DISALLOWED.sub("", text)
    text = _SPACES.sub(" ", text).strip()
    # keep normalize(normalize(x)) == normalize(x) for inputs like "-." or "Undefined"
    if text in ("-", "undefined"):
        return ""
    return text


def classify_traffic_type(campaign: Any) -> str:
    """PQ campaigns are warm traffic, PF cold; anything else is "otro"."""
    name = str(campaign or "").upper()
    if "PQ" in name:
        return "caliente"
    if "PF" in name:
        return "frio"
    return "otro"
