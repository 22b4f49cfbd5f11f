# routes_project.py
from __future__ import annotations

import asyncio
from functools import partial
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel

from chat import ask
from documents import parse_document
from exceptions import ValidationError
from export import to_csv, to_json
from extractors import extract_cell
from llm_client import LLMClient
from models import CellStatus, ExtractionResult
from scheduler import extract_single_cell, run_bulk_extraction
from storage import Project
from templates import TEMPLATES, get_template

router = APIRouter(prefix="/api/project", tags=["project"])

# Every route here is async so session mutations run on the same event loop
# as the bulk-run workers, never from the threadpool.

# One session per process, in memory only
PROJECT = Project()
LLM = LLMClient()


# ---------------- deps ----------------
def get_project() -> Project:
    return PROJECT


def get_llm_client() -> LLMClient:
    return LLM


# ---------------- helpers -------------
def _writer(project: Project):
    """
    Result sink for scheduler callbacks. Writes for documents or columns
    removed while a cell was in flight are dropped so cascades stay intact,
    and a final write never replaces a value edited by hand mid-request.
    """
    def on_result(doc_id: str, col_id: str, result: ExtractionResult) -> None:
        if doc_id not in project.documents:
            return
        if not any(c.id == col_id for c in project.columns):
            return
        current = project.results.get(doc_id, col_id)
        if current is not None and current.is_manually_edited and result.status != CellStatus.PENDING:
            return
        project.results.set(doc_id, col_id, result)
    return on_result


async def _run_bulk(project: Project, client: LLMClient, cancel: asyncio.Event) -> Dict[str, Any]:
    def on_progress(current: int, total: int) -> None:
        project.progress = (current, total)

    try:
        summary = await run_bulk_extraction(
            project.documents_in_scope(),
            list(project.columns),
            project.results.as_dict(),
            on_progress,
            _writer(project),
            extract=partial(extract_cell, client),
            cancel_event=cancel,
        )
        if project.cancel_event is cancel:
            project.last_run = summary.as_dict()
        return summary.as_dict()
    finally:
        if project.cancel_event is cancel:
            project.is_extracting = False
            project.progress = (0, 0)


def _cell(project: Project, doc_id: str, col_id: str) -> Dict[str, Any]:
    r = project.results.get(doc_id, col_id)
    return {"documentId": doc_id, "columnId": col_id, "result": r.as_dict() if r else None}


# ---------------- schemas -------------
class RenameIn(BaseModel):
    name: str


class ColumnIn(BaseModel):
    name: str
    prompt: str
    type: str = "text"
    options: Optional[List[str]] = None


class ColumnPatch(BaseModel):
    name: Optional[str] = None
    prompt: Optional[str] = None
    type: Optional[str] = None
    options: Optional[List[str]] = None


class ColumnOrderIn(BaseModel):
    columnIds: List[str]


class SelectedCellIn(BaseModel):
    documentId: Optional[str] = None
    columnId: Optional[str] = None


class CellEditIn(BaseModel):
    value: str


class ChatIn(BaseModel):
    message: Optional[str] = None


# ---------------- project --------------
@router.get("")
async def get_state(project: Project = Depends(get_project)):
    return project.as_dict()


@router.put("/name")
async def rename(body: RenameIn, project: Project = Depends(get_project)):
    name = body.name.strip()
    if not name:
        raise ValidationError("Project name is required")
    project.name = name
    return {"ok": True, "name": project.name}


@router.delete("")
async def reset_project(project: Project = Depends(get_project)):
    project.reset()
    return {"ok": True}


# ---------------- documents -----------
@router.post("/documents")
async def upload_documents(files: List[UploadFile] = File(...), project: Project = Depends(get_project)):
    docs = []
    for f in files:
        docs.append(parse_document(f.filename or "", await f.read()))
    project.add_documents(docs)
    return {"ok": True, "documents": [d.as_dict() for d in docs]}


@router.get("/documents/{doc_id}")
async def get_document(doc_id: str, project: Project = Depends(get_project)):
    return project.document(doc_id).as_dict(include_content=True)


@router.delete("/documents/{doc_id}")
async def remove_document(doc_id: str, project: Project = Depends(get_project)):
    project.remove_document(doc_id)
    return {"ok": True, "doc_id": doc_id}


@router.delete("/documents")
async def clear_documents(project: Project = Depends(get_project)):
    project.clear_documents()
    return {"ok": True}


# ---------------- columns -------------
@router.post("/columns")
async def add_column(body: ColumnIn, project: Project = Depends(get_project)):
    col = project.add_column(body.name, body.prompt, body.type, body.options)
    return col.as_dict()


@router.patch("/columns/{col_id}")
async def update_column(col_id: str, body: ColumnPatch, project: Project = Depends(get_project)):
    updates = body.model_dump(exclude_unset=True)
    return project.update_column(col_id, **updates).as_dict()


@router.delete("/columns/{col_id}")
async def remove_column(col_id: str, project: Project = Depends(get_project)):
    project.remove_column(col_id)
    return {"ok": True, "columns": [c.as_dict() for c in project.columns]}


@router.put("/columns/order")
async def reorder_columns(body: ColumnOrderIn, project: Project = Depends(get_project)):
    project.reorder_columns(body.columnIds)
    return {"ok": True, "columns": [c.as_dict() for c in project.columns]}


@router.get("/templates")
async def list_templates():
    return [t.as_dict() for t in TEMPLATES]


@router.post("/templates/{template_id}/apply")
async def apply_template(template_id: str, project: Project = Depends(get_project)):
    added = project.apply_template(get_template(template_id))
    return {"ok": True, "columns": [c.as_dict() for c in added]}


# ---------------- selection -----------
@router.put("/selection/cell")
async def select_cell(body: SelectedCellIn, project: Project = Depends(get_project)):
    if body.documentId and body.columnId:
        project.set_selected_cell((body.documentId, body.columnId))
    else:
        project.set_selected_cell(None)
    return {"ok": True, "selectedCell": project.as_dict()["selectedCell"]}


@router.post("/selection/documents/all")
async def select_all(project: Project = Depends(get_project)):
    project.select_all_documents()
    return {"ok": True, "selectedDocuments": project.selected_documents}


@router.post("/selection/documents/{doc_id}/toggle")
async def toggle_selection(doc_id: str, project: Project = Depends(get_project)):
    project.toggle_document_selection(doc_id)
    return {"ok": True, "selectedDocuments": project.selected_documents}


@router.delete("/selection/documents")
async def clear_selection(project: Project = Depends(get_project)):
    project.clear_document_selection()
    return {"ok": True, "selectedDocuments": []}


# ---------------- bulk extraction -----
@router.post("/extract")
async def start_extraction(
    wait: bool = False,
    project: Project = Depends(get_project),
    client: LLMClient = Depends(get_llm_client),
):
    if project.is_extracting:
        return _conflict("An extraction run is already in progress")
    if not project.documents or not project.columns:
        raise ValidationError("Please upload documents and add columns before running analysis.")
    if not project.documents_in_scope():
        raise ValidationError("No documents selected for analysis.")

    cancel = asyncio.Event()
    project.cancel_event = cancel
    project.is_extracting = True
    project.progress = (0, 0)
    print(f"[extract] bulk start docs={len(project.documents_in_scope())} columns={len(project.columns)} model={client.model}")

    if wait:
        summary = await _run_bulk(project, client, cancel)
        return {"ok": True, "started": True, "summary": summary}
    project.bulk_task = asyncio.create_task(_run_bulk(project, client, cancel))
    return {"ok": True, "started": True}


@router.get("/extract/progress")
async def extraction_progress(project: Project = Depends(get_project)):
    current, total = project.progress
    return {
        "isExtracting": project.is_extracting,
        "current": current,
        "total": total,
        "lastRun": project.last_run,
    }


@router.post("/extract/cancel")
async def cancel_extraction(project: Project = Depends(get_project)):
    if not project.is_extracting or project.cancel_event is None:
        return {"ok": True, "cancelled": False}
    project.cancel_event.set()
    return {"ok": True, "cancelled": True}


# ---------------- cells ---------------
@router.post("/cells/{doc_id}/{col_id}/retry")
async def retry_cell(
    doc_id: str,
    col_id: str,
    project: Project = Depends(get_project),
    client: LLMClient = Depends(get_llm_client),
):
    doc = project.document(doc_id)
    col = project.column(col_id)
    await extract_single_cell(doc, col, _writer(project), extract=partial(extract_cell, client))
    return _cell(project, doc_id, col_id)


@router.patch("/cells/{doc_id}/{col_id}")
async def edit_cell(doc_id: str, col_id: str, body: CellEditIn, project: Project = Depends(get_project)):
    project.edit_result(doc_id, col_id, body.value)
    return _cell(project, doc_id, col_id)


@router.post("/cells/{doc_id}/{col_id}/review")
async def toggle_review(doc_id: str, col_id: str, project: Project = Depends(get_project)):
    project.toggle_reviewed(doc_id, col_id)
    return _cell(project, doc_id, col_id)


# ---------------- chat ----------------
@router.post("/chat")
async def chat(
    body: ChatIn,
    project: Project = Depends(get_project),
    client: LLMClient = Depends(get_llm_client),
):
    reply = await ask(project, client, body.message or "")
    return {"message": reply.as_dict(), "chatHistory": [m.as_dict() for m in project.chat_history]}


@router.delete("/chat")
async def clear_chat(project: Project = Depends(get_project)):
    project.clear_chat()
    return {"ok": True}


# ---------------- export --------------
@router.get("/export/csv")
async def export_csv(includeConfidence: bool = False, includeQuotes: bool = False,
               project: Project = Depends(get_project)):
    body = to_csv(project.documents.values(), project.columns, project.results,
                  include_confidence=includeConfidence, include_quotes=includeQuotes)
    return PlainTextResponse(
        body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{_filename(project)}.csv"'},
    )


@router.get("/export/json")
async def export_json(project: Project = Depends(get_project)):
    body = to_json(project.documents.values(), project.columns, project.results, project.name)
    return Response(
        body,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{_filename(project)}.json"'},
    )


def _filename(project: Project) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in project.name) or "export"


def _conflict(message: str):
    return JSONResponse(status_code=409, content={"error": message})
