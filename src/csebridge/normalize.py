"""
Value normalization for CSE responses.

The CSE endpoints return numbers as plain numbers, as comma-grouped
strings ("1,234.50"), or not at all, and the same field often appears
under different names depending on the endpoint. Everything here is pure
and total: bad input becomes 0 or "", never an exception.
"""

from __future__ import annotations

import math
import re
from typing import Any, Mapping, Sequence
from urllib.parse import quote

CDN_BASE = "https://cdn.cse.lk"
CDN_PREFIX = "cmt"

LEADING_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


# ── Field alias tables ──────────────────────────────────────
# Canonical field -> upstream keys, tried in order.

STOCK_FIELDS: dict[str, tuple[str, ...]] = {
    "price": ("price", "lastTradedPrice"),
    "name": ("name", "companyName"),
    "change": ("change",),
    "changePercent": ("percentageChange", "changePercentage"),
    "turnover": ("turnover",),
    "volume": ("sharevolume", "volume"),
}

MOVER_FIELDS: dict[str, tuple[str, ...]] = {
    "price": ("price", "lastTradedPrice"),
    "name": ("name", "companyName"),
    "change": ("change",),
    "changePercent": ("changePercentage", "percentageChange"),
    "volume": ("volume", "sharevolume"),
}

SECTOR_FIELDS: dict[str, tuple[str, ...]] = {
    "name": ("sector", "name"),
    "change": ("change",),
    "turnover": ("turnover",),
}


def to_number(value: Any) -> float:
    """
    Coerce an upstream value to a finite float, defaulting to 0.

    Strings are read up to the end of their leading number once grouping
    commas are removed, so "12.5%" and "1,234.50 LKR" keep their value.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return 0
        return value if math.isfinite(number) else 0

    match = LEADING_NUMBER.match(str(value).replace(",", "").strip())
    if not match:
        return 0
    number = float(match.group())
    return number if math.isfinite(number) else 0


def pick(raw: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    """Return the first truthy value among ``aliases`` in ``raw``."""
    for key in aliases:
        value = raw.get(key)
        if value:
            return value
    return None


def fix_cdn_url(
    raw_path: str | None,
    cdn_base: str = CDN_BASE,
    prefix: str = CDN_PREFIX,
) -> str:
    """
    Turn a report path from the financials endpoint into a CDN URL.

    Upstream paths arrive as "cmt/cmt/upload_report_file/x.pdf",
    "upload_report_file/x.pdf", "/cmt/x y.pdf" and so on. All of them
    map to ``{cdn_base}/cmt/...`` with each segment percent-encoded.
    """
    if not raw_path:
        return ""

    clean = str(raw_path).strip().lstrip("/")
    if not clean:
        return ""

    marker = f"{prefix}/"
    if clean.startswith(marker * 2):
        clean = clean[len(marker):]
    if not clean.startswith(marker):
        clean = marker + clean

    segments = [quote(segment, safe="") for segment in clean.split("/")]
    return f"{cdn_base.rstrip('/')}/" + "/".join(segments)
