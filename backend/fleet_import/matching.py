"""Resolve free-text vehicle / branch / category fields against reference data.

Matching is simple and deterministic: case-insensitive exact
match on the primary identifier first, then substring containment in either
direction. The first hit in reference order wins; there is no scoring.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Sequence, TypeVar

from .models import Branch, CandidateRecord, Category, PreviewEntry, ReferenceSnapshot, Vehicle

T = TypeVar("T")

__all__ = [
    "match_vehicle",
    "match_branch",
    "match_category",
    "match_record",
    "find_missing_vehicles",
]


def _lower(value: str | None) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def _first_match(
    text: str | None,
    candidates: Sequence[T],
    exact_keys: Callable[[T], Iterable[str | None]],
    fuzzy_keys: Callable[[T], Iterable[str | None]],
) -> T | None:
    needle = _lower(text)
    if not needle:
        return None
    for item in candidates:
        if any(_lower(k) == needle for k in exact_keys(item)):
            return item
    for item in candidates:
        for key in fuzzy_keys(item):
            hay = _lower(key)
            if hay and (needle in hay or hay in needle):
                return item
    return None


def _vehicle_keys(v: Vehicle):
    return (v.vin, v.plate)


def match_vehicle(text: str | None, vehicles: Sequence[Vehicle]) -> Vehicle | None:
    return _first_match(text, vehicles, _vehicle_keys, _vehicle_keys)


def match_branch(text: str | None, branches: Sequence[Branch]) -> Branch | None:
    return _first_match(
        text, branches, lambda b: (b.name,), lambda b: (b.name, b.location)
    )


def match_category(text: str | None, categories: Sequence[Category]) -> Category | None:
    return _first_match(text, categories, lambda c: (c.name,), lambda c: (c.name,))


def match_record(record: CandidateRecord, snapshot: ReferenceSnapshot) -> PreviewEntry:
    """Build the initial preview entry for a record.

    Branch resolution order: explicit branch text, then the matched
    vehicle's home branch, then nothing.
    """
    vehicle = match_vehicle(record.vehicle_text, snapshot.vehicles)
    branch = match_branch(record.branch_text, snapshot.branches)
    if branch is None and vehicle is not None:
        branch = snapshot.branch(vehicle.branch_id)
    return PreviewEntry.from_record(
        record,
        matched_vehicle=vehicle,
        matched_branch=branch,
        matched_category=match_category(record.category_text, snapshot.categories),
    )


def find_missing_vehicles(
    records: Iterable[CandidateRecord], vehicles: Sequence[Vehicle]
) -> List[dict]:
    """New-vehicle rows for vehicle texts with no exact VIN/plate match.

    A 17 character text is taken as a VIN, anything else as a plate. One row
    per distinct (case-insensitive) text.
    """
    known = {_lower(v.vin) for v in vehicles} | {_lower(v.plate) for v in vehicles}
    known.discard("")
    missing: Dict[str, dict] = {}
    for rec in records:
        key = _lower(rec.vehicle_text)
        if not key or key in known or key in missing:
            continue
        text = rec.vehicle_text.strip()
        missing[key] = {
            "vin": text if len(text) == 17 else "",
            "plate": text if len(text) != 17 else "",
            "make": "Unknown",
            "model": "Unknown",
            "status": "active",
            "branch_id": None,
        }
    return list(missing.values())
