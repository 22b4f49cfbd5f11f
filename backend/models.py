# models.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from exceptions import ValidationError


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class ColumnType(str, Enum):
    TEXT = "text"
    DATE = "date"
    CURRENCY = "currency"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"


class Confidence(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def coerce(cls, v: Any) -> "Confidence":
        for c in cls:
            if isinstance(v, str) and v.strip().lower() == c.value.lower():
                return c
        return cls.LOW


class CellStatus(str, Enum):
    PENDING = "pending"
    ERROR = "error"
    READY = "ready"


# ---------------- documents ----------------

@dataclass(frozen=True)
class DocumentPage:
    number: int
    text: str

    def as_dict(self) -> Dict[str, Any]:
        return {"number": self.number, "text": self.text}


@dataclass(frozen=True)
class Document:
    id: str
    name: str
    content: str
    pages: List[DocumentPage]
    file_size: int
    file_type: str                 # "pdf" | "docx" | "txt"
    uploaded_at: str = field(default_factory=utc_now_iso)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def as_dict(self, include_content: bool = False) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "name": self.name,
            "fileSize": self.file_size,
            "fileType": self.file_type,
            "pageCount": self.page_count,
            "uploadedAt": self.uploaded_at,
        }
        if include_content:
            out["content"] = self.content
            out["pages"] = [p.as_dict() for p in self.pages]
        return out


# ---------------- columns ----------------

def clean_options(column_type: ColumnType, options: Optional[List[str]]) -> Optional[List[str]]:
    """Blank options are dropped; select needs at least two, other types none."""
    if column_type != ColumnType.SELECT:
        return None
    kept = [o.strip() for o in (options or []) if isinstance(o, str) and o.strip()]
    if len(kept) < 2:
        raise ValidationError("Please provide at least 2 options for select type")
    return kept


@dataclass
class Column:
    id: str
    name: str
    prompt: str
    type: ColumnType = ColumnType.TEXT
    options: Optional[List[str]] = None
    order: int = 0

    @classmethod
    def create(cls, name: str, prompt: str, type: Any = ColumnType.TEXT,
               options: Optional[List[str]] = None, order: int = 0) -> "Column":
        name = (name or "").strip()
        prompt = (prompt or "").strip()
        if not name or not prompt:
            raise ValidationError("Column name and prompt are required")
        ctype = parse_column_type(type)
        return cls(id=new_id(), name=name, prompt=prompt, type=ctype,
                   options=clean_options(ctype, options), order=order)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "prompt": self.prompt,
            "type": self.type.value,
            "options": list(self.options) if self.options is not None else None,
            "order": self.order,
        }


def parse_column_type(v: Any) -> ColumnType:
    if isinstance(v, ColumnType):
        return v
    try:
        return ColumnType(str(v or "text").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown column type: {v!r}")


# ---------------- results ----------------

@dataclass(frozen=True)
class ExtractionResult:
    value: str = "Not Found"
    confidence: Confidence = Confidence.LOW
    reasoning: str = ""
    quote: str = ""
    page_number: Optional[int] = None
    is_manually_edited: bool = False
    is_reviewed: bool = False
    edited_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    original_value: Optional[str] = None
    status: CellStatus = CellStatus.READY

    @classmethod
    def pending(cls) -> "ExtractionResult":
        return cls(value="", status=CellStatus.PENDING)

    @classmethod
    def failed(cls, message: str) -> "ExtractionResult":
        return cls(value="", reasoning=message, status=CellStatus.ERROR)

    @property
    def is_ready(self) -> bool:
        return self.status == CellStatus.READY

    def updated(self, **fields: Any) -> "ExtractionResult":
        return replace(self, **fields)

    def answer_dict(self) -> Dict[str, Any]:
        """The five model-facing fields, in the shape /api/extract returns."""
        return {
            "value": self.value,
            "confidence": self.confidence.value,
            "reasoning": self.reasoning,
            "quote": self.quote,
            "pageNumber": self.page_number,
        }

    def as_dict(self) -> Dict[str, Any]:
        out = self.answer_dict()
        out.update({
            "isManuallyEdited": self.is_manually_edited,
            "isReviewed": self.is_reviewed,
            "editedAt": self.edited_at,
            "reviewedAt": self.reviewed_at,
            "originalValue": self.original_value,
            "status": self.status.value,
        })
        return out


# ---------------- chat / templates ----------------

@dataclass(frozen=True)
class ChatMessage:
    role: str                      # "user" | "assistant"
    content: str
    id: str = field(default_factory=new_id)
    timestamp: str = field(default_factory=utc_now_iso)

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": self.role, "content": self.content, "timestamp": self.timestamp}


@dataclass(frozen=True)
class TemplateColumn:
    name: str
    prompt: str
    type: ColumnType = ColumnType.TEXT
    options: Optional[List[str]] = None


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    description: str
    target_documents: str
    columns: List[TemplateColumn]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "targetDocuments": self.target_documents,
            "columns": [
                {"name": c.name, "prompt": c.prompt, "type": c.type.value, "options": c.options}
                for c in self.columns
            ],
        }
