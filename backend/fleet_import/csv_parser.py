"""Delimited-text extractor for historical expense exports.

The first non-blank line is the header; columns may appear in any order and
are recognised by keyword (see ``CSV_COLUMN_HINTS``). Every following line
becomes one ``CandidateRecord``. Rows with a bad amount or date are kept with
the field cleared and a line-tagged warning, so the user can fix them in the
preview instead of losing them.
"""

from __future__ import annotations

import csv
import logging
from typing import Dict, List, Optional

from .constants import CSV_COLUMN_HINTS, MIN_CSV_VALUES, UNCATEGORIZED
from .models import CandidateRecord, ExtractionResult, SourceFile
from .utils import normalize_number, parse_date, parse_odometer

logger = logging.getLogger(__name__)

__all__ = ["locate_columns", "parse_csv_text", "parse_csv_file"]


def _split(line: str) -> List[str]:
    row = next(csv.reader([line], skipinitialspace=True), [])
    return [v.strip() for v in row]


def locate_columns(headers: List[str]) -> Dict[str, int]:
    """Map each column role to the index of the first header naming it."""
    lowered = [h.strip().lower() for h in headers]
    columns: Dict[str, int] = {}
    for role, hints in CSV_COLUMN_HINTS.items():
        for idx, header in enumerate(lowered):
            if any(hint in header for hint in hints):
                columns[role] = idx
                break
    return columns


def _cell(values: List[str], columns: Dict[str, int], role: str) -> Optional[str]:
    idx = columns.get(role)
    if idx is None or idx >= len(values):
        return None
    return values[idx] or None


def parse_csv_text(text: str, source_file: str) -> ExtractionResult:
    records: List[CandidateRecord] = []
    errors: List[str] = []

    numbered = [(n, ln) for n, ln in enumerate(text.splitlines(), start=1) if ln.strip()]
    if len(numbered) < 2:
        errors.append(f"{source_file}: File appears to be empty or invalid")
        return ExtractionResult(records, errors)

    _, header_line = numbered[0]
    columns = locate_columns(_split(header_line))

    for line_number, line in numbered[1:]:
        where = f"{source_file} Line {line_number}"
        values = _split(line)
        if sum(1 for v in values if v) < MIN_CSV_VALUES:
            errors.append(f"{where}: Insufficient data")
            continue

        raw_date = _cell(values, columns, "date")
        date = parse_date(raw_date)
        if raw_date is None:
            errors.append(f"{where}: Missing date")
        elif date is None:
            errors.append(f'{where}: Invalid date format "{raw_date}"')

        raw_amount = _cell(values, columns, "amount")
        amount = normalize_number(raw_amount)
        if amount is None or amount <= 0:
            errors.append(f'{where}: Invalid amount "{raw_amount or ""}"')
            amount = 0.0

        vehicle = _cell(values, columns, "vehicle")
        if vehicle is None:
            errors.append(f"{where}: Missing vehicle")

        category = (
            _cell(values, columns, "category") if "category" in columns else UNCATEGORIZED
        )
        records.append(
            CandidateRecord(
                date=date,
                vehicle_text=vehicle,
                branch_text=_cell(values, columns, "branch"),
                category_text=category,
                amount=amount,
                description=_cell(values, columns, "description") or "",
                odometer=parse_odometer(_cell(values, columns, "odometer")),
                source_file=source_file,
                line_number=line_number,
            )
        )

    return ExtractionResult(records, errors)


def parse_csv_file(file: SourceFile) -> ExtractionResult:
    """Extract records from an uploaded CSV. Never raises."""
    try:
        text = file.content.decode("utf-8-sig", errors="replace")
        result = parse_csv_text(text, file.name)
    except Exception as e:
        logger.warning("CSV extraction failed for %s: %s", file.name, e)
        return ExtractionResult([], [f"{file.name}: Failed to parse CSV - {e}"])
    logger.debug(
        "Extracted %d records (%d warnings) from %s",
        len(result.records),
        len(result.errors),
        file.name,
    )
    return result
