"""Editable working list between extraction and commit.

``PreviewSession`` is a plain mutable aggregate: the HTTP layer (or any other
front end) wraps it and forwards user edits one entry at a time. Counts and
totals are computed on read so they always reflect the current list.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

import pandas as pd

from .matching import match_record, match_vehicle
from .models import CandidateRecord, PreviewEntry, ReferenceSnapshot
from .utils import df_to_records, normalize_number, parse_date, parse_odometer

EDITABLE_FIELDS = ("date", "amount", "description", "odometer")

FRAME_COLUMNS = [
    "line_number",
    "source_file",
    "date",
    "vehicle_text",
    "vehicle",
    "branch",
    "category",
    "amount",
    "odometer",
    "description",
]


class PreviewSession:
    def __init__(self, records: Sequence[CandidateRecord], snapshot: ReferenceSnapshot):
        self.snapshot = snapshot
        self.records: List[CandidateRecord] = list(records)
        self.entries: List[PreviewEntry] = [match_record(r, snapshot) for r in self.records]

    def __len__(self) -> int:
        return len(self.entries)

    def _replace(self, index: int, **update: Any) -> PreviewEntry:
        if not 0 <= index < len(self.entries):
            raise IndexError(f"No preview entry at position {index}")
        entry = self.entries[index].model_copy(update=update)
        self.entries[index] = entry
        return entry

    # ---------------- link overrides ---------------- #
    def set_vehicle(self, index: int, vehicle_id: str | None) -> PreviewEntry:
        return self._replace(index, matched_vehicle=self.snapshot.vehicle(vehicle_id))

    def set_branch(self, index: int, branch_id: str | None) -> PreviewEntry:
        return self._replace(index, matched_branch=self.snapshot.branch(branch_id))

    def set_category(self, index: int, category_id: str | None) -> PreviewEntry:
        return self._replace(index, matched_category=self.snapshot.category(category_id))

    # ---------------- scalar edits ---------------- #
    def set_field(self, index: int, field: str, value: Any) -> PreviewEntry:
        """Edit one scalar field; values that do not parse keep the old value.

        The odometer is the exception: an empty or non-numeric value clears it.
        """
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field}' cannot be edited")
        if not 0 <= index < len(self.entries):
            raise IndexError(f"No preview entry at position {index}")
        current = self.entries[index]
        if field == "amount":
            amount = normalize_number(value)
            if amount is None or amount < 0:
                return current
            return self._replace(index, amount=amount)
        if field == "date":
            date = parse_date(str(value)) if value else None
            return self._replace(index, date=date or current.date)
        if field == "description":
            return self._replace(index, description="" if value is None else str(value))
        return self._replace(index, odometer=parse_odometer(value))

    def rematch_vehicles(self, snapshot: ReferenceSnapshot) -> int:
        """Swap in fresh reference data and resolve entries still lacking a vehicle.

        Edits and links already set are kept; an unresolved branch falls back
        to the new vehicle's home branch. Returns the number of entries resolved.
        """
        self.snapshot = snapshot
        resolved = 0
        for index, entry in enumerate(self.entries):
            if entry.matched_vehicle is not None:
                continue
            vehicle = match_vehicle(entry.record.vehicle_text, snapshot.vehicles)
            if vehicle is None:
                continue
            update: Dict[str, Any] = {"matched_vehicle": vehicle}
            if entry.matched_branch is None:
                update["matched_branch"] = snapshot.branch(vehicle.branch_id)
            self._replace(index, **update)
            resolved += 1
        return resolved

    def remove_entry(self, index: int) -> PreviewEntry:
        if not 0 <= index < len(self.entries):
            raise IndexError(f"No preview entry at position {index}")
        return self.entries.pop(index)

    # ---------------- projections ---------------- #
    @property
    def matched_count(self) -> int:
        return sum(1 for e in self.entries if e.matched_vehicle is not None)

    @property
    def unmatched_count(self) -> int:
        return len(self.entries) - self.matched_count

    @property
    def total_amount(self) -> float:
        return round(sum(e.amount for e in self.entries), 2)

    @property
    def can_commit(self) -> bool:
        return bool(self.entries) and self.matched_count > 0

    def stats(self) -> Dict[str, Any]:
        return {
            "total_records": len(self.entries),
            "matched_count": self.matched_count,
            "unmatched_count": self.unmatched_count,
            "total_amount": self.total_amount,
            "can_commit": self.can_commit,
        }

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "line_number": e.record.line_number,
                "source_file": e.record.source_file,
                "date": e.date,
                "vehicle_text": e.record.vehicle_text,
                "vehicle": (e.matched_vehicle.plate or e.matched_vehicle.vin)
                if e.matched_vehicle
                else None,
                "branch": e.matched_branch.name if e.matched_branch else None,
                "category": e.matched_category.name if e.matched_category else None,
                "amount": e.amount,
                "odometer": e.odometer,
                "description": e.description,
            }
            for e in self.entries
        ]
        return pd.DataFrame(rows, columns=FRAME_COLUMNS)

    def breakdown(self) -> Dict[str, List[dict]]:
        """Entry counts and amount totals per vehicle and per category.

        Unmatched links are grouped under "Unmatched" / "Uncategorized".
        """
        df = self.to_frame()
        if df.empty:
            return {"by_vehicle": [], "by_category": []}
        df["vehicle"] = df["vehicle"].fillna("Unmatched")
        df["category"] = df["category"].fillna("Uncategorized")

        def _group(col: str) -> List[dict]:
            g = (
                df.groupby(col, sort=True)["amount"]
                .agg(["count", "sum"])
                .reset_index()
                .rename(columns={col: "name", "count": "entries", "sum": "total_amount"})
            )
            g["total_amount"] = g["total_amount"].round(2)
            g["entries"] = g["entries"].astype(int)
            return df_to_records(g)

        return {"by_vehicle": _group("vehicle"), "by_category": _group("category")}


__all__ = ["PreviewSession", "EDITABLE_FIELDS"]
