# export.py
from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, Iterable, List, Optional

from models import Column, Document, ExtractionResult, utc_now_iso
from storage import ResultStore


def _ready(results: ResultStore, doc_id: str, col_id: str) -> Optional[ExtractionResult]:
    r = results.get(doc_id, col_id)
    return r if r is not None and r.is_ready else None


def to_csv(
    documents: Iterable[Document],
    columns: Iterable[Column],
    results: ResultStore,
    include_confidence: bool = False,
    include_quotes: bool = False,
) -> str:
    """One row per document. Cells without a ready answer export as empty fields."""
    columns = sorted(columns, key=lambda c: c.order)
    headers = ["Document Name"] + [c.name for c in columns]
    if include_confidence:
        headers += [f"{c.name} (Confidence)" for c in columns]
    if include_quotes:
        headers += [f"{c.name} (Quote)" for c in columns]

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(headers)
    for doc in documents:
        cells = [_ready(results, doc.id, c.id) for c in columns]
        row: List[str] = [doc.name]
        row += [r.value if r else "" for r in cells]
        if include_confidence:
            row += [r.confidence.value if r else "" for r in cells]
        if include_quotes:
            row += [r.quote if r else "" for r in cells]
        writer.writerow(row)
    return buf.getvalue().rstrip("\n")


def to_json(
    documents: Iterable[Document],
    columns: Iterable[Column],
    results: ResultStore,
    project_name: str,
) -> str:
    columns = sorted(columns, key=lambda c: c.order)
    data: Dict[str, Any] = {
        "projectName": project_name,
        "exportedAt": utc_now_iso(),
        "columns": [
            {"name": c.name, "prompt": c.prompt, "type": c.type.value, "options": c.options}
            for c in columns
        ],
        "documents": [],
    }
    for doc in documents:
        extractions: Dict[str, Any] = {}
        for c in columns:
            r = _ready(results, doc.id, c.id)
            if r is None:
                continue
            entry = r.answer_dict()
            entry["isManuallyEdited"] = r.is_manually_edited
            entry["isReviewed"] = r.is_reviewed
            extractions[c.name] = entry
        data["documents"].append({
            "name": doc.name,
            "pageCount": doc.page_count,
            "fileSize": doc.file_size,
            "extractions": extractions,
        })
    return json.dumps(data, ensure_ascii=False, indent=2)
