"""FastAPI service backing the historical-data import dialog.

Endpoints:
  POST   /imports                        (multipart: files=<csv|pdf>...) -> preview
  GET    /imports/{id}                   -> current preview
  GET    /imports/{id}/breakdown         -> totals per vehicle / category
  PATCH  /imports/{id}/entries/{index}   -> edit one entry
  DELETE /imports/{id}/entries/{index}   -> drop one entry
  POST   /imports/{id}/missing-vehicles  -> create unknown vehicles, re-match
  POST   /imports/{id}/commit            -> {imported, failed, message}
  DELETE /imports/{id}                   -> cancel
  GET    /health

Run (dev): uvicorn fleet_import.api:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
import traceback
import uuid
from collections import OrderedDict
from threading import RLock
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel

from .errors import ImportFailed, ImportStateError, StoreError
from .models import PreviewEntry, SourceFile
from .session import ImportSession, ImportState
from .store import store_from_env

logging.basicConfig(level=os.getenv("API_LOG_LEVEL", "INFO"))
logger = logging.getLogger("import_api")

MAX_FILE_BYTES = int(os.getenv("MAX_FILE_BYTES", 15 * 1024 * 1024))  # 15MB default
CHUNK_SIZE = 1024 * 64

app = FastAPI(title="Fleet Expense Import API", version="0.1.0")
app.add_middleware(GZipMiddleware, minimum_size=1024)
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv(
        "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    ).split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)

# open imports, least recently used first; abandoned ones are evicted
MAX_OPEN_IMPORTS = int(os.getenv("MAX_OPEN_IMPORTS", 20))
_sessions: "OrderedDict[str, ImportSession]" = OrderedDict()
_sessions_lock = RLock()
_store = None


def get_store():
    """Process-wide store built from the environment on first use."""
    global _store
    if _store is None:
        _store = store_from_env()
    return _store


def _use_preapproval() -> bool:
    return os.getenv("USE_PREAPPROVAL", "").lower() in {"1", "true", "yes", "on"}


def _debug() -> bool:
    return os.getenv("API_DEBUG") == "1"


class EntryUpdate(BaseModel):
    vehicle_id: Optional[str] = None
    branch_id: Optional[str] = None
    category_id: Optional[str] = None
    date: Optional[str] = None
    amount: Optional[float] = None
    description: Optional[str] = None
    odometer: Optional[int] = None


class CommitResponse(BaseModel):
    imported: int
    failed: int
    message: str
    failures: List[Dict[str, Any]]


def _entry_to_dict(index: int, entry: PreviewEntry) -> Dict[str, Any]:
    rec = entry.record
    return {
        "index": index,
        "line_number": rec.line_number,
        "source_file": rec.source_file,
        "vehicle_text": rec.vehicle_text,
        "branch_text": rec.branch_text,
        "category_text": rec.category_text,
        "date": entry.date,
        "amount": entry.amount,
        "description": entry.description,
        "odometer": entry.odometer,
        "matched_vehicle": entry.matched_vehicle.model_dump() if entry.matched_vehicle else None,
        "matched_branch": entry.matched_branch.model_dump() if entry.matched_branch else None,
        "matched_category": entry.matched_category.model_dump()
        if entry.matched_category
        else None,
    }


def _session_payload(session_id: str, session: ImportSession) -> Dict[str, Any]:
    preview = session.preview
    return {
        "session_id": session_id,
        "state": session.state.value,
        "fileName": ", ".join(session.file_names),
        "errors": session.errors,
        "stats": preview.stats(),
        "entries": [_entry_to_dict(i, e) for i, e in enumerate(preview.entries)],
    }


def _get_session(session_id: str, editing: bool = False) -> ImportSession:
    with _sessions_lock:
        session = _sessions.get(session_id)
        if session is not None:
            _sessions.move_to_end(session_id)
    if session is None or session.state is ImportState.IDLE:
        raise HTTPException(status_code=404, detail="Import session not found")
    if editing and session.state is ImportState.COMMITTING:
        raise HTTPException(status_code=409, detail="Import is being committed")
    return session


def _register_session(session_id: str, session: ImportSession) -> None:
    with _sessions_lock:
        _sessions[session_id] = session
        excess = len(_sessions) - MAX_OPEN_IMPORTS
        if excess <= 0:
            return
        stale = [
            sid for sid, s in _sessions.items() if s.state is not ImportState.COMMITTING
        ][:excess]
        for sid in stale:
            _sessions.pop(sid).cancel()
            logger.info("Evicted abandoned import %s", sid)


def _failure_detail(kind: str, e: Exception) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"error": kind, "message": str(e)}
    if _debug():
        detail["traceback"] = traceback.format_exc()
    return detail


async def _read_upload(file: UploadFile) -> bytes:
    data = bytearray()
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > MAX_FILE_BYTES:
            raise HTTPException(
                status_code=413,
                detail=f"{file.filename}: file too large (> {MAX_FILE_BYTES // (1024 * 1024)}MB)",
            )
    return bytes(data)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/imports")
async def create_import(files: List[UploadFile] = File(...), store=Depends(get_store)):
    sources = [SourceFile(f.filename or "upload", await _read_upload(f)) for f in files]
    session = ImportSession(store, use_preapproval=_use_preapproval())
    try:
        # extraction and reference fetch are blocking; keep them off the event loop
        await run_in_threadpool(session.load, sources)
    except ImportFailed as e:
        raise HTTPException(status_code=500, detail=_failure_detail("IMPORT_FAILED", e)) from e
    session_id = uuid.uuid4().hex
    _register_session(session_id, session)
    payload = _session_payload(session_id, session)
    logger.info(
        "Import %s opened: %d records, %d issues from %s",
        session_id,
        payload["stats"]["total_records"],
        len(session.errors),
        payload["fileName"],
    )
    return payload


@app.get("/imports/{session_id}")
def get_import(session_id: str):
    return _session_payload(session_id, _get_session(session_id))


@app.get("/imports/{session_id}/breakdown")
def get_breakdown(session_id: str):
    return _get_session(session_id).preview.breakdown()


@app.patch("/imports/{session_id}/entries/{index}")
def update_entry(session_id: str, index: int, update: EntryUpdate):
    session = _get_session(session_id, editing=True)
    preview = session.preview
    if not 0 <= index < len(preview):
        raise HTTPException(status_code=404, detail=f"No preview entry at position {index}")
    fields = update.model_fields_set
    try:
        if "vehicle_id" in fields:
            preview.set_vehicle(index, update.vehicle_id)
        if "branch_id" in fields:
            preview.set_branch(index, update.branch_id)
        if "category_id" in fields:
            preview.set_category(index, update.category_id)
        for name in ("date", "amount", "description", "odometer"):
            if name in fields:
                preview.set_field(index, name, getattr(update, name))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {
        "entry": _entry_to_dict(index, preview.entries[index]),
        "stats": preview.stats(),
    }


@app.delete("/imports/{session_id}/entries/{index}")
def delete_entry(session_id: str, index: int):
    preview = _get_session(session_id, editing=True).preview
    try:
        preview.remove_entry(index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"stats": preview.stats()}


@app.post("/imports/{session_id}/missing-vehicles")
def create_missing_vehicles(session_id: str):
    session = _get_session(session_id, editing=True)
    try:
        created = session.create_missing_vehicles()
    except StoreError as e:
        raise HTTPException(status_code=502, detail=_failure_detail("STORE_ERROR", e)) from e
    payload = _session_payload(session_id, session)
    payload["created_vehicles"] = [v.model_dump() for v in created]
    return payload


@app.post("/imports/{session_id}/commit", response_model=CommitResponse)
def commit_import(session_id: str):
    session = _get_session(session_id)
    try:
        outcome = session.commit()
    except ImportStateError as e:
        # includes CommitNotAllowed: nothing matched, session stays open
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ImportFailed as e:
        with _sessions_lock:
            _sessions.pop(session_id, None)
        raise HTTPException(status_code=500, detail=_failure_detail("IMPORT_FAILED", e)) from e
    with _sessions_lock:
        _sessions.pop(session_id, None)
    return CommitResponse(
        imported=outcome.imported,
        failed=outcome.failed,
        message=session.last_message or "",
        failures=[f._asdict() for f in outcome.failures],
    )


@app.delete("/imports/{session_id}")
def cancel_import(session_id: str):
    session = _get_session(session_id, editing=True)
    session.cancel()
    with _sessions_lock:
        _sessions.pop(session_id, None)
    return {"cancelled": True}


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run("fleet_import.api:app", host="0.0.0.0", port=8000, reload=True)
