"""Small shared helpers used by backend modules."""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import List

import pandas as pd

from .constants import DATE_FORMATS


def df_to_records(df: pd.DataFrame) -> List[dict]:
    """Convert a DataFrame to JSON-serializable records.

    - Converts pandas NA to None
    - Converts date/datetime objects to ISO strings when possible
    """
    if df is None or df.empty:
        return []
    out = df.to_dict(orient="records")
    for rec in out:
        for k, v in list(rec.items()):
            if pd.isna(v):
                rec[k] = None
            elif hasattr(v, "isoformat"):
                rec[k] = v.isoformat()
    return out


def normalize_number(raw: str | float | int | None) -> float | None:
    """Parse a currency-like token ("$1,204.50", "45.5", "(12.00)") into a float.

    Returns None when nothing numeric can be recovered. Sign is kept so the
    caller can decide what to do with negative values.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return None if math.isnan(raw) else float(raw)
    token = raw.strip()
    if not token:
        return None
    neg = False
    if token.startswith("(") and token.endswith(")"):
        neg = True
        token = token[1:-1]
    token = re.sub(r"[$€£\s,]", "", token)
    if token.startswith("-"):
        neg = True
        token = token[1:]
    if not re.fullmatch(r"\d+(?:\.\d+)?|\.\d+", token):
        return None
    v = float(token)
    return -v if neg else v


def parse_date(raw: str | None) -> str | None:
    """Normalize a date token to ``YYYY-MM-DD``; None if no known layout fits."""
    if not raw:
        return None
    token = re.sub(r"\s+", " ", raw.strip())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(token, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def parse_odometer(raw: str | int | None) -> int | None:
    """Keep digits only ("12,000 km" -> 12000); None when there are none."""
    if raw is None:
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    digits = re.sub(r"[^0-9]", "", str(raw))
    return int(digits) if digits else None


def percent(done: int, total: int) -> int:
    """Half-up rounded percentage of ``done`` over ``total``."""
    if total <= 0:
        return 100
    return int(math.floor(done / total * 100 + 0.5))


__all__ = [
    "df_to_records",
    "normalize_number",
    "parse_date",
    "parse_odometer",
    "percent",
]
