"""Value types flowing through the import pipeline.

Reference rows mirror the columns of the hosted ``vehicles``, ``branches``
and ``expense_categories`` tables; unknown columns are ignored.
"""

from __future__ import annotations

from typing import List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Vehicle(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    plate: Optional[str] = None
    vin: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    branch_id: Optional[str] = None


class Branch(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    location: Optional[str] = None


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    type: Optional[str] = None


class ReferenceSnapshot(BaseModel):
    """Known vehicles, branches and categories for one import session."""

    model_config = ConfigDict(frozen=True)

    vehicles: Tuple[Vehicle, ...] = ()
    branches: Tuple[Branch, ...] = ()
    categories: Tuple[Category, ...] = ()

    def vehicle(self, vehicle_id: str | None) -> Vehicle | None:
        return next((v for v in self.vehicles if v.id == vehicle_id), None)

    def branch(self, branch_id: str | None) -> Branch | None:
        return next((b for b in self.branches if b.id == branch_id), None)

    def category(self, category_id: str | None) -> Category | None:
        return next((c for c in self.categories if c.id == category_id), None)


class CandidateRecord(BaseModel):
    """One extracted, not yet reconciled expense observation."""

    model_config = ConfigDict(frozen=True)

    date: Optional[str] = None
    vehicle_text: Optional[str] = None
    branch_text: Optional[str] = None
    category_text: Optional[str] = None
    amount: float = Field(default=0.0, ge=0)
    description: str = ""
    odometer: Optional[int] = Field(default=None, ge=0)
    source_file: Optional[str] = None
    line_number: Optional[int] = None


class PreviewEntry(BaseModel):
    """A candidate record plus the links the matcher (or the user) resolved.

    Scalar fields start as copies of the record's values; edits produce a new
    entry through ``model_copy`` so the record itself is never touched.
    """

    model_config = ConfigDict(frozen=True)

    record: CandidateRecord
    date: Optional[str] = None
    amount: float = Field(default=0.0, ge=0)
    description: str = ""
    odometer: Optional[int] = Field(default=None, ge=0)
    matched_vehicle: Optional[Vehicle] = None
    matched_branch: Optional[Branch] = None
    matched_category: Optional[Category] = None

    @classmethod
    def from_record(cls, record: CandidateRecord, **links) -> "PreviewEntry":
        return cls(
            record=record,
            date=record.date,
            amount=record.amount,
            description=record.description,
            odometer=record.odometer,
            **links,
        )


class ExtractionResult(NamedTuple):
    records: List[CandidateRecord]
    errors: List[str]


class SourceFile(NamedTuple):
    """A user-selected upload: file name plus raw bytes."""

    name: str
    content: bytes


class CommitFailure(NamedTuple):
    line_number: int | None
    source_file: str | None
    message: str


class CommitOutcome(BaseModel):
    imported: int = 0
    failed: int = 0
    failures: List[CommitFailure] = Field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.imported + self.failed


class PreapprovalRule(BaseModel):
    """Auto-approval threshold for a category, global or per branch."""

    id: str
    category_id: str
    branch_id: Optional[str] = None
    max_amount: float
    is_active: bool = True


__all__ = [
    "Vehicle",
    "Branch",
    "Category",
    "ReferenceSnapshot",
    "CandidateRecord",
    "PreviewEntry",
    "ExtractionResult",
    "SourceFile",
    "CommitFailure",
    "CommitOutcome",
    "PreapprovalRule",
]
