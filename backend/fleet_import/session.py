"""One interactive import: extract, preview/edit, commit.

States move strictly forward ``idle -> extracting -> previewing ->
committing -> idle``. Closing (``cancel``) or finishing a commit always drops
the working list; nothing is persisted between sessions.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Iterable, List, Optional

from .commit import ProgressCallback, commit_entries, summary_message
from .errors import CommitNotAllowed, ImportFailed, ImportStateError
from .extraction import extract_files
from .matching import find_missing_vehicles
from .models import CommitOutcome, PreapprovalRule, SourceFile, Vehicle
from .preview import PreviewSession
from .store import load_reference_snapshot

logger = logging.getLogger(__name__)


class ImportState(str, enum.Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    PREVIEWING = "previewing"
    COMMITTING = "committing"


class ImportSession:
    def __init__(self, store, use_preapproval: bool = False):
        self.store = store
        self.use_preapproval = use_preapproval
        self.state = ImportState.IDLE
        self.file_names: List[str] = []
        self.errors: List[str] = []
        self.preview: Optional[PreviewSession] = None
        self.progress = 0
        self.last_message: Optional[str] = None
        self._lock = threading.Lock()

    def _clear(self) -> None:
        self.state = ImportState.IDLE
        self.file_names = []
        self.errors = []
        self.preview = None
        self.progress = 0

    def _require(self, state: ImportState) -> None:
        if self.state is not state:
            raise ImportStateError(
                f"Import session is {self.state.value}, expected {state.value}"
            )

    def load(self, files: Iterable[SourceFile]) -> PreviewSession:
        """Fetch reference data, extract every file and open the preview.

        Any failure returns the session to idle with nothing retained.
        """
        files = list(files)
        with self._lock:
            self._require(ImportState.IDLE)
            self.state = ImportState.EXTRACTING
        try:
            snapshot = load_reference_snapshot(self.store)
            result = extract_files(files)
            preview = PreviewSession(result.records, snapshot)
        except Exception as e:
            logger.exception("Failed to process import files")
            self._clear()
            raise ImportFailed(f"Failed to process files: {e}") from e
        self.file_names = [f.name for f in files]
        self.errors = result.errors
        self.preview = preview
        self.state = ImportState.PREVIEWING
        if result.errors:
            logger.info("%d parsing issues found; review before importing", len(result.errors))
        return preview

    def create_missing_vehicles(self) -> List[Vehicle]:
        """Register unknown vehicle texts as new vehicles and re-run matching.

        Only entries still in the working list and still without a vehicle
        are considered; removed entries stay removed and edits are kept.
        """
        with self._lock:
            self._require(ImportState.PREVIEWING)
            preview = self.preview
            unmatched = [e.record for e in preview.entries if e.matched_vehicle is None]
            rows = find_missing_vehicles(unmatched, preview.snapshot.vehicles)
            if not rows:
                return []
            created = self.store.create_vehicles(rows)
            logger.info("Created %d vehicles from import data", len(created))
            preview.rematch_vehicles(load_reference_snapshot(self.store))
            return created

    def commit(self, progress: Optional[ProgressCallback] = None) -> CommitOutcome:
        """Write the current working list; the session is cleared afterwards."""
        with self._lock:
            if self.state is ImportState.COMMITTING:
                raise ImportStateError("Import is already being committed")
            self._require(ImportState.PREVIEWING)
            self.state = ImportState.COMMITTING

        def _report(value: int) -> None:
            self.progress = value
            if progress is not None:
                progress(value)

        try:
            rules: Optional[List[PreapprovalRule]] = None
            if self.use_preapproval:
                rules = self.store.fetch_preapproval_rules()
            outcome = commit_entries(self.preview.entries, self.store, _report, rules)
        except CommitNotAllowed:
            # nothing was written; the user can still resolve vehicles
            self.state = ImportState.PREVIEWING
            raise
        except Exception as e:
            logger.exception("Import failed")
            self._clear()
            raise ImportFailed(f"An error occurred during import: {e}") from e
        self.last_message = summary_message(outcome)
        self._clear()
        return outcome

    def cancel(self) -> None:
        self._clear()


__all__ = ["ImportSession", "ImportState"]
