# chat.py
from __future__ import annotations

import json
from typing import Dict, Iterable, List, Optional

from exceptions import ValidationError
from models import ChatMessage, Column, Document
from storage import Project, ResultStore

CHAT_MAX_TOKENS = 2048
MAX_CONTEXT_CHARS = 100_000
CONTEXT_TRUNCATION_MARKER = "\n\n[Context truncated...]"

CHAT_SYSTEM_PROMPT = """You are a legal analyst assistant with access to a structured extraction table from document review.

When answering questions:
1. Reference specific documents by name
2. Cite the specific extracted values you're using
3. For aggregations, show your calculation
4. Flag any low-confidence extractions that affect your answer
5. If asked about something not in the data, say so clearly
6. Be concise but thorough
7. Use bullet points for clarity when appropriate"""


def _chat_log(msg: str) -> None:
    print(f"[chat] {msg}")


def build_chat_context(
    documents: Iterable[Document],
    columns: Iterable[Column],
    results: ResultStore,
    selected_ids: Optional[Iterable[str]] = None,
    max_chars: int = MAX_CONTEXT_CHARS,
) -> str:
    """
    Project the result grid into a text block for the chat model.
    Only ready cells are included; pending and failed cells are left out.
    """
    documents = list(documents)
    columns = sorted(columns, key=lambda c: c.order)
    selected = list(selected_ids or [])
    if selected:
        wanted = set(selected)
        documents = [d for d in documents if d.id in wanted]

    summary: Dict[str, Dict[str, Dict[str, str]]] = {}
    for doc in documents:
        cells = summary.setdefault(doc.name, {})
        for col in columns:
            r = results.get(doc.id, col.id)
            if r is not None and r.is_ready:
                cells[col.name] = {"value": r.value, "confidence": r.confidence.value}

    note = ""
    if selected:
        note = (
            f"\n\nNote: Only analyzing the {len(documents)} selected document(s). "
            "Do not reference any other documents."
        )

    text = (
        f"Documents: {', '.join(d.name for d in documents)}\n\n"
        "Columns and their extraction prompts:\n"
        + "\n".join(f"{c.name}: {c.prompt}" for c in columns)
        + "\n\nExtraction Results:\n"
        + json.dumps(summary, indent=2, ensure_ascii=False)
    )
    if len(text) + len(note) > max_chars:
        keep = max(0, max_chars - len(note) - len(CONTEXT_TRUNCATION_MARKER))
        text = text[:keep] + CONTEXT_TRUNCATION_MARKER
    return text + note


async def answer(client, message: str, context: str,
                 history: Optional[List[Dict[str, str]]] = None) -> str:
    """Single chat completion. No retry: failures go straight back to the caller."""
    if not message or not message.strip():
        raise ValidationError("Missing message")
    user = f"Data Context:\n{context or ''}\n\nUser Question: {message}"
    return await client.complete(CHAT_SYSTEM_PROMPT, user, max_tokens=CHAT_MAX_TOKENS, history=history or [])


async def ask(project: Project, client, message: str) -> ChatMessage:
    """
    Session chat turn: record the question, answer it from the current grid,
    and record the reply. A failed call is recorded as an "Error: ..." reply.
    """
    message = (message or "").strip()
    if not message:
        raise ValidationError("Missing message")
    history = [{"role": m.role, "content": m.content} for m in project.chat_history]
    project.add_chat_message("user", message)

    context = build_chat_context(
        project.documents.values(), project.columns, project.results, project.selected_documents
    )
    try:
        reply = await answer(client, message, context, history)
    except Exception as e:
        _chat_log(f"failed: {e!r}")
        return project.add_chat_message("assistant", f"Error: {str(e) or 'Failed to get response'}")
    return project.add_chat_message("assistant", reply)
