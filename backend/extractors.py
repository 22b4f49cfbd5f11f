# extractors.py
from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import settings
from exceptions import ParseError, RateLimited, ValidationError
from models import ColumnType, Confidence, ExtractionResult, parse_column_type

TRUNCATION_MARKER = "\n\n[Document truncated...]"
EXTRACTION_MAX_TOKENS = 1024
NOT_FOUND = "Not Found"

EXTRACTION_SYSTEM_PROMPT = """You are a legal document extraction engine. You will receive a document and a specific extraction query.

ALWAYS respond in this exact JSON format:
{
  "value": "The extracted answer (be concise)",
  "confidence": "High" | "Medium" | "Low",
  "reasoning": "Brief explanation of how you found this answer",
  "quote": "Exact verbatim text from the document supporting your answer",
  "page_number": <integer or null if not determinable>
}

Rules:
- If the information is not found, set value to "Not Found" and confidence to "Low"
- Quote must be VERBATIM text from the document
- Keep reasoning to 1-2 sentences
- For boolean questions, value must be "Yes", "No", or "Not Found"
- For currency, include the currency symbol and full amount
- For dates, use format "Month DD, YYYY"
- Do not include markdown formatting in the JSON response
- The response must be valid JSON only, no additional text"""

_sleep = asyncio.sleep


def _extract_log(msg: str) -> None:
    print(f"[extract] {msg}")


# ---------------- prompt building ----------------

def truncate_document(text: str, limit: Optional[int] = None) -> str:
    """Keep the first `limit` characters and flag the cut for the model."""
    limit = settings.MAX_DOCUMENT_CHARS if limit is None else limit
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def type_instructions(column_type: ColumnType, options: Optional[List[str]] = None) -> str:
    if column_type == ColumnType.BOOLEAN:
        return 'The answer should be "Yes", "No", or "Not Found".'
    if column_type == ColumnType.DATE:
        return 'Format dates as "Month DD, YYYY" (e.g., "January 15, 2024").'
    if column_type == ColumnType.CURRENCY:
        return 'Include currency symbol and full amount (e.g., "$45,000.00").'
    if column_type == ColumnType.NUMBER:
        return 'Include units if applicable (e.g., "90 days", "100 units").'
    if column_type == ColumnType.SELECT:
        if options:
            return (
                f"The answer should be one of these options: {', '.join(options)}. "
                'If none match exactly, choose the closest match or "Not Found".'
            )
        return ""
    return "Provide a concise text answer."


def build_user_prompt(document_text: str, column_prompt: str, column_type: ColumnType,
                      options: Optional[List[str]] = None, type_label: Optional[str] = None) -> str:
    return (
        f"Document:\n{truncate_document(document_text)}\n\n"
        f"Extraction Query: {column_prompt}\n"
        f"Expected Type: {type_label or column_type.value}\n"
        f"{type_instructions(column_type, options)}"
    )


# ---------------- response parsing ----------------

def _balanced_end(text: str, start: int) -> int:
    """
    Index just past the '}' closing the object that opens at text[start],
    or -1 if the text ends first. Braces inside JSON strings do not count.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return -1


def find_json_object(text: str) -> Dict[str, Any]:
    """
    Return the first balanced {...} in `text` that parses as a JSON object.
    Models sometimes wrap the object in prose or markdown fences, and prose
    can contain stray braces of its own, so candidates that fail to parse are
    skipped. An object that never closes (truncated output) ends the search.
    """
    text = text or ""
    pos = text.find("{")
    while pos != -1:
        end = _balanced_end(text, pos)
        if end == -1:
            break
        try:
            data = json.loads(text[pos:end])
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data
        pos = text.find("{", pos + 1)
    raise ParseError("Failed to parse JSON response")


def _as_text(v: Any, default: str) -> str:
    if v is None or isinstance(v, (dict, list)):
        return default
    s = v if isinstance(v, str) else str(v)
    return s if s.strip() else default


def _page_number(v: Any) -> Optional[int]:
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, int):
        n = v
    elif isinstance(v, float) and v.is_integer():
        n = int(v)
    elif isinstance(v, str) and v.strip().isdigit():
        n = int(v.strip())
    else:
        return None
    return n if n > 0 else None


def result_from_payload(data: Dict[str, Any]) -> ExtractionResult:
    return ExtractionResult(
        value=_as_text(data.get("value"), NOT_FOUND),
        confidence=Confidence.coerce(data.get("confidence")),
        reasoning=_as_text(data.get("reasoning"), ""),
        quote=_as_text(data.get("quote"), ""),
        page_number=_page_number(data.get("page_number")),
        is_manually_edited=False,
        is_reviewed=False,
    )


# ---------------- public entrypoint ----------------

async def extract_cell(
    client,
    document_text: str,
    column_prompt: str,
    column_type: Any = ColumnType.TEXT,
    options: Optional[List[str]] = None,
    max_rate_limit_retries: Optional[int] = None,
    backoff: Optional[float] = None,
) -> ExtractionResult:
    """
    One (document, column) extraction against `client.complete`.

    Rate limits are retried here with exponential backoff (2s, 4s, 8s by
    default) before the RateLimited error escapes. Everything else is raised
    as-is for the caller's own retry policy.
    """
    if not document_text or not column_prompt:
        raise ValidationError("Missing required fields")
    label = None
    try:
        ctype = parse_column_type(column_type)
    except ValidationError:
        # unknown types get the plain text instruction
        ctype = ColumnType.TEXT
        label = str(column_type).strip() or None
    retries = settings.RATE_LIMIT_RETRIES if max_rate_limit_retries is None else max_rate_limit_retries
    base = settings.RATE_LIMIT_BACKOFF if backoff is None else backoff

    user_prompt = build_user_prompt(document_text, column_prompt, ctype, options, type_label=label)

    attempt = 0
    while True:
        try:
            raw = await client.complete(EXTRACTION_SYSTEM_PROMPT, user_prompt, max_tokens=EXTRACTION_MAX_TOKENS)
            break
        except RateLimited:
            if attempt >= retries:
                raise
            attempt += 1
            wait = base * (2 ** (attempt - 1))
            _extract_log(f"rate limited, waiting {wait:g}s before retry {attempt}/{retries}")
            await _sleep(wait)

    return result_from_payload(find_json_object(raw))
