"""Write the approved preview entries to the expense store.

Every entry with a resolved vehicle gets exactly one create call, issued one
after another. There is no transaction: a failed write is logged and counted
and the loop moves on, so ``imported + failed`` always equals the number of
vehicle-matched entries.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Sequence

from .errors import CommitNotAllowed
from .models import CommitFailure, CommitOutcome, PreapprovalRule, PreviewEntry
from .preapproval import approval_status
from .store import ExpenseStore
from .utils import percent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

DEFAULT_SOURCE_LABEL = "historical data"


def expense_payload(
    entry: PreviewEntry,
    rules: Optional[Sequence[PreapprovalRule]] = None,
) -> Dict[str, object]:
    """Row for the ``expenses`` table. Requires a matched vehicle."""
    if entry.matched_vehicle is None:
        raise ValueError("Entry has no matched vehicle")
    branch_id = entry.matched_branch.id if entry.matched_branch else None
    category_id = entry.matched_category.id if entry.matched_category else None
    payload: Dict[str, object] = {
        "vehicle_id": entry.matched_vehicle.id,
        "branch_id": branch_id,
        "category_id": category_id,
        "amount": entry.amount,
        "date": entry.date,
        "odometer_reading": entry.odometer,
        "description": entry.description
        or f"Imported from {entry.record.source_file or DEFAULT_SOURCE_LABEL}",
    }
    if rules is not None:
        payload["approval_status"] = approval_status(
            rules, category_id, entry.amount, branch_id
        )
    return payload


def commit_entries(
    entries: Sequence[PreviewEntry],
    store: ExpenseStore,
    progress: Optional[ProgressCallback] = None,
    rules: Optional[Sequence[PreapprovalRule]] = None,
) -> CommitOutcome:
    eligible = [e for e in entries if e.matched_vehicle is not None]
    if not eligible:
        raise CommitNotAllowed("No entries with a matched vehicle to import")

    outcome = CommitOutcome()
    total = len(eligible)
    logger.info(
        "Committing %d of %d preview entries (%d without vehicle skipped)",
        total,
        len(entries),
        len(entries) - total,
    )
    for entry in eligible:
        try:
            store.create_expense(expense_payload(entry, rules))
            outcome.imported += 1
        except Exception as e:
            logger.error(
                "Import error for %s line %s: %s",
                entry.record.source_file,
                entry.record.line_number,
                e,
            )
            outcome.failed += 1
            outcome.failures.append(
                CommitFailure(entry.record.line_number, entry.record.source_file, str(e))
            )
        if progress is not None:
            progress(percent(outcome.attempted, total))

    logger.info("Commit finished: %d imported, %d failed", outcome.imported, outcome.failed)
    return outcome


def summary_message(outcome: CommitOutcome) -> str:
    message = f"Imported {outcome.imported} records."
    if outcome.failed > 0:
        message += f" {outcome.failed} failed."
    return message


__all__ = ["commit_entries", "expense_payload", "summary_message"]
