"""Heuristic work-order extraction from PDF text.

Work orders exported by older fleet systems have no fixed layout, so this is
a best-effort line scanner, not a parser. Rules are applied to every trimmed,
non-blank line in this fixed order:

  1. a line mentioning "work order", "invoice" or "service" starts a new
     record (the previous one is kept only if it has a positive amount)
  2. date: first date-like token, if the record has none yet
  3. vehicle: first 17 character VIN-shaped token, if none yet
  4. amount: on a "total" / "amount" / "cost" line, the largest currency-like
     number; the record keeps the largest value seen
  5. odometer: on an "odometer" / "mileage" / "km" line, the first integer
     within [100, 999999]
  6. description: any line of 11..199 characters that is neither a page marker
     nor a section header is appended

Records without a date or vehicle are still returned, with a warning each.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pdfplumber

from .constants import (
    AMOUNT_LINE_RX,
    CURRENCY_RX,
    DATE_TOKEN_RX,
    DESCRIPTION_CUTOFF,
    DESCRIPTION_MAX_LEN,
    DESCRIPTION_MIN_LEN,
    INTEGER_RX,
    ODOMETER_LINE_RX,
    ODOMETER_MAX,
    ODOMETER_MIN,
    PAGE_MARKER_RX,
    SECTION_HEADER_RX,
    VIN_RX,
    WORK_ORDER_CATEGORY,
    WORK_ORDER_MARKER_RX,
)
from .models import CandidateRecord, ExtractionResult, SourceFile
from .utils import normalize_number, parse_date

logger = logging.getLogger(__name__)

__all__ = [
    "extract_raw_lines",
    "extract_work_orders",
    "parse_pdf_work_orders",
]


def _normalize_space(s: str) -> str:
    return re.sub(r"[ \t]+", " ", s.replace("\u00a0", " ")).strip()


def extract_raw_lines(pdf_file) -> List[Tuple[int, str]]:
    """Extract textual lines from a PDF (returns list of (page, text)).

    A readable PDF without a text layer yields an empty list; pdfplumber
    errors on unreadable input propagate to the caller.
    """
    lines: List[Tuple[int, str]] = []
    with pdfplumber.open(pdf_file) as pdf:
        for p_idx, page in enumerate(pdf.pages, start=1):
            text = page.extract_text() or ""
            for raw_line in text.splitlines():
                s_norm = _normalize_space(raw_line)
                if s_norm:
                    lines.append((p_idx, s_norm))
    return lines


def _document_lines(file: SourceFile) -> List[str]:
    """Page text via pdfplumber; bytes decoded as plain text only if it cannot open them."""
    try:
        raw_lines = extract_raw_lines(io.BytesIO(file.content))
    except Exception as e:
        logger.debug("pdfplumber could not read %s, scanning as text: %s", file.name, e)
        return file.content.decode("utf-8", errors="ignore").split("\n")
    if not raw_lines:
        logger.info("%s has no text layer", file.name)
    return [text for _, text in raw_lines]


@dataclass
class _WorkOrder:
    line_number: int
    date: Optional[str] = None
    vehicle: Optional[str] = None
    amount: float = 0.0
    odometer: Optional[int] = None
    description: str = ""


def _largest_amount(line: str) -> float | None:
    scrubbed = DATE_TOKEN_RX.sub(" ", line)
    values = []
    for m in CURRENCY_RX.finditer(scrubbed):
        v = normalize_number(m.group(1))
        if v is not None:
            values.append(v)
    return max(values) if values else None


def _first_odometer(line: str) -> int | None:
    m = INTEGER_RX.search(DATE_TOKEN_RX.sub(" ", line))
    if not m:
        return None
    value = int(m.group(0).replace(",", ""))
    if ODOMETER_MIN <= value <= ODOMETER_MAX:
        return value
    return None


def _scan_line(order: _WorkOrder, line: str) -> None:
    if order.date is None:
        m = DATE_TOKEN_RX.search(line)
        if m:
            order.date = parse_date(m.group(1))

    if order.vehicle is None:
        m = VIN_RX.search(line)
        if m:
            order.vehicle = m.group(0).upper()

    if AMOUNT_LINE_RX.search(line):
        amount = _largest_amount(line)
        if amount is not None and amount > order.amount:
            order.amount = amount

    if ODOMETER_LINE_RX.search(line):
        odometer = _first_odometer(line)
        if odometer is not None:
            order.odometer = odometer

    if (
        DESCRIPTION_MIN_LEN < len(line) < DESCRIPTION_MAX_LEN
        and not PAGE_MARKER_RX.match(line)
        and not SECTION_HEADER_RX.search(line)
    ):
        order.description = f"{order.description} {line}" if order.description else line


def extract_work_orders(lines: List[str], source_file: str) -> ExtractionResult:
    """Run the work-order heuristics over already extracted text lines."""
    orders: List[_WorkOrder] = []
    current: _WorkOrder | None = None

    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line:
            continue
        if WORK_ORDER_MARKER_RX.search(line):
            if current is not None and current.amount > 0:
                orders.append(current)
            current = _WorkOrder(line_number=line_number)
        if current is None:
            current = _WorkOrder(line_number=line_number)
        _scan_line(current, line)

    if current is not None and current.amount > 0:
        orders.append(current)

    errors: List[str] = []
    records: List[CandidateRecord] = []
    if not orders:
        errors.append(
            f"{source_file}: No valid work orders found. PDF may require manual entry."
        )
    for idx, order in enumerate(orders, start=1):
        if not order.date:
            errors.append(f"{source_file} Record {idx}: Missing date")
        if not order.vehicle:
            errors.append(f"{source_file} Record {idx}: Vehicle VIN/Plate not found")
        description = order.description
        if len(description) > DESCRIPTION_CUTOFF:
            description = description[:DESCRIPTION_CUTOFF] + "..."
        records.append(
            CandidateRecord(
                date=order.date,
                vehicle_text=order.vehicle,
                category_text=WORK_ORDER_CATEGORY,
                amount=order.amount,
                description=description,
                odometer=order.odometer,
                source_file=source_file,
                line_number=order.line_number,
            )
        )
    return ExtractionResult(records, errors)


def parse_pdf_work_orders(file: SourceFile) -> ExtractionResult:
    """Extract work-order records from an uploaded PDF. Never raises."""
    try:
        result = extract_work_orders(_document_lines(file), file.name)
    except Exception as e:
        logger.warning("PDF extraction failed for %s: %s", file.name, e)
        return ExtractionResult([], [f"{file.name}: Failed to parse PDF - {e}"])
    logger.debug(
        "Extracted %d work orders (%d warnings) from %s",
        len(result.records),
        len(result.errors),
        file.name,
    )
    return result
