# backend/storage.py
"""
In-memory session state.

ResultStore is the single source of truth for extraction results: every read
for display, export or chat goes through it. Bulk-run workers write disjoint
(document_id, column_id) keys, so no locking is needed here.

Project bundles the store with the documents, columns, selection and chat
history of the one session a process serves. Nothing is written to disk.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Tuple

from exceptions import NotFound, ValidationError
from models import (
    CellStatus,
    ChatMessage,
    Column,
    Document,
    ExtractionResult,
    Template,
    clean_options,
    parse_column_type,
    utc_now_iso,
)


class ResultStore:
    """(document_id, column_id) -> ExtractionResult, at most one per key."""

    def __init__(self):
        self._rows: Dict[str, Dict[str, ExtractionResult]] = {}

    def add_document(self, doc_id: str) -> None:
        self._rows.setdefault(doc_id, {})

    def get(self, doc_id: str, col_id: str) -> Optional[ExtractionResult]:
        return self._rows.get(doc_id, {}).get(col_id)

    def set(self, doc_id: str, col_id: str, result: ExtractionResult) -> None:
        self._rows.setdefault(doc_id, {})[col_id] = result

    def patch(self, doc_id: str, col_id: str, **fields: Any) -> Optional[ExtractionResult]:
        """
        Merge fields into an existing result; no-op (returns None) if the cell
        is empty. The first patch that marks the cell manually edited keeps the
        pre-edit value in original_value; later edits leave it alone.
        """
        current = self.get(doc_id, col_id)
        if current is None:
            return None
        if fields.get("is_manually_edited") and current.original_value is None:
            fields.setdefault("original_value", current.value)
        elif "original_value" in fields and current.original_value is not None:
            fields.pop("original_value")
        merged = current.updated(**fields)
        self._rows[doc_id][col_id] = merged
        return merged

    def delete_document(self, doc_id: str) -> None:
        self._rows.pop(doc_id, None)

    def delete_column(self, col_id: str) -> None:
        for row in self._rows.values():
            row.pop(col_id, None)

    def row(self, doc_id: str) -> Dict[str, ExtractionResult]:
        return dict(self._rows.get(doc_id, {}))

    def as_dict(self) -> Dict[str, Dict[str, ExtractionResult]]:
        return {doc_id: dict(row) for doc_id, row in self._rows.items()}

    def count(self, status: Optional[CellStatus] = None) -> int:
        return sum(
            1
            for row in self._rows.values()
            for r in row.values()
            if status is None or r.status == status
        )

    def clear(self) -> None:
        self._rows.clear()


class Project:
    def __init__(self, name: str = "Untitled Project"):
        self.name = name
        self.documents: Dict[str, Document] = {}
        self.columns: List[Column] = []
        self.results = ResultStore()
        self.chat_history: List[ChatMessage] = []

        self.selected_cell: Optional[Tuple[str, str]] = None
        self.selected_documents: List[str] = []

        self.is_extracting = False
        self.progress: Tuple[int, int] = (0, 0)
        self.last_run: Optional[Dict[str, Any]] = None
        self.bulk_task: Optional[asyncio.Task] = None
        self.cancel_event: Optional[asyncio.Event] = None

    # ---------------- lookups ----------------

    def document(self, doc_id: str) -> Document:
        doc = self.documents.get(doc_id)
        if doc is None:
            raise NotFound(f"Document not found: {doc_id}")
        return doc

    def column(self, col_id: str) -> Column:
        for col in self.columns:
            if col.id == col_id:
                return col
        raise NotFound(f"Column not found: {col_id}")

    def documents_in_scope(self) -> List[Document]:
        """Selected documents if any are selected, otherwise all of them."""
        if self.selected_documents:
            chosen = set(self.selected_documents)
            return [d for d in self.documents.values() if d.id in chosen]
        return list(self.documents.values())

    # ---------------- documents ----------------

    def add_documents(self, docs: Iterable[Document]) -> None:
        for doc in docs:
            self.documents[doc.id] = doc
            self.results.add_document(doc.id)

    def remove_document(self, doc_id: str) -> None:
        self.document(doc_id)
        del self.documents[doc_id]
        self.results.delete_document(doc_id)
        if self.selected_cell and self.selected_cell[0] == doc_id:
            self.selected_cell = None
        self.selected_documents = [d for d in self.selected_documents if d != doc_id]

    def clear_documents(self) -> None:
        self.documents.clear()
        self.results.clear()
        self.selected_cell = None
        self.selected_documents = []

    # ---------------- columns ----------------

    def add_column(self, name: str, prompt: str, type: Any = "text",
                   options: Optional[List[str]] = None) -> Column:
        col = Column.create(name, prompt, type, options, order=len(self.columns))
        self.columns.append(col)
        return col

    def update_column(self, col_id: str, **updates: Any) -> Column:
        col = self.column(col_id)
        name = updates.get("name", col.name)
        prompt = updates.get("prompt", col.prompt)
        ctype = parse_column_type(updates.get("type", col.type))
        options = updates.get("options", col.options)
        name = (name or "").strip()
        prompt = (prompt or "").strip()
        if not name or not prompt:
            raise ValidationError("Column name and prompt are required")
        col.options = clean_options(ctype, options)
        col.name, col.prompt, col.type = name, prompt, ctype
        return col

    def remove_column(self, col_id: str) -> None:
        self.column(col_id)
        self.columns = [c for c in self.columns if c.id != col_id]
        for idx, c in enumerate(self.columns):
            c.order = idx
        self.results.delete_column(col_id)
        if self.selected_cell and self.selected_cell[1] == col_id:
            self.selected_cell = None

    def reorder_columns(self, col_ids: List[str]) -> None:
        by_id = {c.id: c for c in self.columns}
        if sorted(col_ids) != sorted(by_id):
            raise ValidationError("Column order must list every column exactly once")
        self.columns = [by_id[i] for i in col_ids]
        for idx, c in enumerate(self.columns):
            c.order = idx

    def apply_template(self, template: Template) -> List[Column]:
        added = []
        for tc in template.columns:
            added.append(self.add_column(tc.name, tc.prompt, tc.type, tc.options))
        return added

    # ---------------- cells ----------------

    def edit_result(self, doc_id: str, col_id: str, value: str) -> ExtractionResult:
        self.document(doc_id)
        self.column(col_id)
        patched = self.results.patch(
            doc_id, col_id,
            value=value,
            is_manually_edited=True,
            edited_at=utc_now_iso(),
            status=CellStatus.READY,
        )
        if patched is None:
            raise NotFound(f"No result for cell {doc_id}/{col_id}")
        return patched

    def toggle_reviewed(self, doc_id: str, col_id: str) -> ExtractionResult:
        current = self.results.get(doc_id, col_id)
        if current is None:
            raise NotFound(f"No result for cell {doc_id}/{col_id}")
        reviewed = not current.is_reviewed
        return self.results.patch(
            doc_id, col_id,
            is_reviewed=reviewed,
            reviewed_at=utc_now_iso() if reviewed else None,
        )

    # ---------------- selection ----------------

    def set_selected_cell(self, cell: Optional[Tuple[str, str]]) -> None:
        if cell is not None:
            self.document(cell[0])
            self.column(cell[1])
        self.selected_cell = cell

    def toggle_document_selection(self, doc_id: str) -> None:
        self.document(doc_id)
        if doc_id in self.selected_documents:
            self.selected_documents.remove(doc_id)
        else:
            self.selected_documents.append(doc_id)

    def select_all_documents(self) -> None:
        self.selected_documents = list(self.documents)

    def clear_document_selection(self) -> None:
        self.selected_documents = []

    # ---------------- chat ----------------

    def add_chat_message(self, role: str, content: str) -> ChatMessage:
        msg = ChatMessage(role=role, content=content)
        self.chat_history.append(msg)
        return msg

    def clear_chat(self) -> None:
        self.chat_history = []

    # ---------------- snapshot ----------------

    def reset(self) -> None:
        """Clear all content and stop any bulk run. The project name is kept."""
        if self.cancel_event is not None:
            self.cancel_event.set()
        if self.bulk_task is not None and not self.bulk_task.done():
            self.bulk_task.cancel()
        self.__init__(self.name)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "documents": [d.as_dict() for d in self.documents.values()],
            "columns": [c.as_dict() for c in self.columns],
            "results": {
                doc_id: {col_id: r.as_dict() for col_id, r in row.items()}
                for doc_id, row in self.results.as_dict().items()
            },
            "selectedCell": (
                {"documentId": self.selected_cell[0], "columnId": self.selected_cell[1]}
                if self.selected_cell else None
            ),
            "selectedDocuments": list(self.selected_documents),
            "chatHistory": [m.as_dict() for m in self.chat_history],
            "isExtracting": self.is_extracting,
            "progress": {"current": self.progress[0], "total": self.progress[1]},
        }
