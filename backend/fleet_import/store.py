"""Clients for the external record store.

The pipeline only needs a handful of calls: list vehicles / branches /
categories / active pre-approval rules, create one expense, create vehicles.
``SupabaseStore`` issues them against the hosted PostgREST endpoint;
``InMemoryStore`` keeps plain lists and is used for local runs and tests.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from .errors import StoreError
from .models import Branch, Category, PreapprovalRule, ReferenceSnapshot, Vehicle

logger = logging.getLogger(__name__)


class ReferenceSource(Protocol):
    def fetch_vehicles(self) -> List[Vehicle]: ...

    def fetch_branches(self) -> List[Branch]: ...

    def fetch_categories(self) -> List[Category]: ...


class ExpenseStore(Protocol):
    def create_expense(self, payload: Dict[str, Any]) -> None: ...


def load_reference_snapshot(source: ReferenceSource) -> ReferenceSnapshot:
    """Fetch a fresh snapshot; no caching across import sessions."""
    snapshot = ReferenceSnapshot(
        vehicles=tuple(source.fetch_vehicles()),
        branches=tuple(source.fetch_branches()),
        categories=tuple(source.fetch_categories()),
    )
    logger.debug(
        "Reference snapshot: %d vehicles, %d branches, %d categories",
        len(snapshot.vehicles),
        len(snapshot.branches),
        len(snapshot.categories),
    )
    return snapshot


class SupabaseStore:
    """PostgREST client for the fleet database.

    Configured from ``SUPABASE_URL`` / ``SUPABASE_KEY`` unless given
    explicitly; ``client`` can be injected (e.g. with a mock transport).
    """

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        client: httpx.Client | None = None,
        timeout: float | None = None,
    ):
        url = url or os.getenv("SUPABASE_URL", "")
        key = key or os.getenv("SUPABASE_KEY", "")
        if not url:
            raise StoreError("SUPABASE_URL is not configured")
        if timeout is None:
            timeout = float(os.getenv("STORE_TIMEOUT", "10"))
        self._client = client or httpx.Client(timeout=timeout)
        self._base = url.rstrip("/") + "/rest/v1"
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = self._client.request(
                method, f"{self._base}/{table}", params=params, json=json, headers=headers
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:300]
            raise StoreError(
                f"{method} {table} failed with HTTP {e.response.status_code}: {detail}"
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {table} failed: {e}") from e
        if not resp.content:
            return None
        return resp.json()

    def _select(self, table: str, **params: str) -> List[dict]:
        rows = self._request("GET", table, params={"select": "*", **params})
        return rows or []

    def fetch_vehicles(self) -> List[Vehicle]:
        return [Vehicle.model_validate(r) for r in self._select("vehicles")]

    def fetch_branches(self) -> List[Branch]:
        return [Branch.model_validate(r) for r in self._select("branches")]

    def fetch_categories(self) -> List[Category]:
        rows = self._select("expense_categories", order="name")
        return [Category.model_validate(r) for r in rows]

    def fetch_preapproval_rules(self) -> List[PreapprovalRule]:
        rows = self._select("expense_preapproval_rules", is_active="eq.true")
        return [PreapprovalRule.model_validate(r) for r in rows]

    def create_expense(self, payload: Dict[str, Any]) -> None:
        self._request("POST", "expenses", json=payload, prefer="return=minimal")

    def create_vehicles(self, rows: Sequence[Dict[str, Any]]) -> List[Vehicle]:
        if not rows:
            return []
        created = self._request(
            "POST", "vehicles", json=list(rows), prefer="return=representation"
        )
        return [Vehicle.model_validate(r) for r in created or []]


class InMemoryStore:
    """List-backed store with the same interface as ``SupabaseStore``."""

    def __init__(
        self,
        vehicles: Sequence[Vehicle] = (),
        branches: Sequence[Branch] = (),
        categories: Sequence[Category] = (),
        rules: Sequence[PreapprovalRule] = (),
    ):
        self.vehicles = list(vehicles)
        self.branches = list(branches)
        self.categories = list(categories)
        self.rules = list(rules)
        self.expenses: List[Dict[str, Any]] = []

    def fetch_vehicles(self) -> List[Vehicle]:
        return list(self.vehicles)

    def fetch_branches(self) -> List[Branch]:
        return list(self.branches)

    def fetch_categories(self) -> List[Category]:
        return sorted(self.categories, key=lambda c: c.name or "")

    def fetch_preapproval_rules(self) -> List[PreapprovalRule]:
        return [r for r in self.rules if r.is_active]

    def create_expense(self, payload: Dict[str, Any]) -> None:
        if not payload.get("vehicle_id"):
            raise StoreError("vehicle_id is required")
        self.expenses.append({"id": str(uuid.uuid4()), **payload})

    def create_vehicles(self, rows: Sequence[Dict[str, Any]]) -> List[Vehicle]:
        created = [Vehicle.model_validate({"id": str(uuid.uuid4()), **r}) for r in rows]
        self.vehicles.extend(created)
        return created


def store_from_env():
    """Supabase when ``SUPABASE_URL`` is set, else an empty in-memory store."""
    if os.getenv("SUPABASE_URL"):
        return SupabaseStore()
    logger.warning("SUPABASE_URL not set; using an empty in-memory store")
    return InMemoryStore()


__all__ = [
    "ReferenceSource",
    "ExpenseStore",
    "load_reference_snapshot",
    "SupabaseStore",
    "InMemoryStore",
    "store_from_env",
]
