"""Expense pre-approval thresholds.

A rule says "expenses in category C up to amount X are approved without a
manager", either for every branch (``branch_id`` is None) or for one branch.
A branch-specific rule takes precedence over the global rule of the same
category.
"""

from __future__ import annotations

from typing import Iterable, List

from .models import PreapprovalRule

APPROVED = "approved"
PENDING = "pending"


def applicable_rule(
    rules: Iterable[PreapprovalRule],
    category_id: str | None,
    branch_id: str | None = None,
) -> PreapprovalRule | None:
    if not category_id:
        return None
    matching: List[PreapprovalRule] = [
        r
        for r in rules
        if r.category_id == category_id
        and r.is_active
        and (r.branch_id is None or r.branch_id == branch_id)
    ]
    if not matching:
        return None
    branch_rule = next((r for r in matching if branch_id and r.branch_id == branch_id), None)
    return branch_rule or next((r for r in matching if r.branch_id is None), None)


def should_auto_approve(
    rules: Iterable[PreapprovalRule],
    category_id: str | None,
    amount: float,
    branch_id: str | None = None,
) -> bool:
    """True when the applicable rule's threshold covers ``amount``."""
    rule = applicable_rule(rules, category_id, branch_id)
    return rule is not None and amount <= rule.max_amount


def approval_status(
    rules: Iterable[PreapprovalRule],
    category_id: str | None,
    amount: float,
    branch_id: str | None = None,
) -> str:
    return APPROVED if should_auto_approve(rules, category_id, amount, branch_id) else PENDING


__all__ = ["applicable_rule", "should_auto_approve", "approval_status", "APPROVED", "PENDING"]
