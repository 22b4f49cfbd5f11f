# main.py
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import settings
from chat import answer
from exceptions import (
    DocumentParseError,
    LexgridError,
    NotFound,
    RateLimited,
    Unauthorized,
    UnsupportedFileType,
    ValidationError,
)
from extractors import extract_cell
from llm_client import LLMClient
from routes_project import get_llm_client, router as project_router

# ---------------- App ----------------
app = FastAPI(title="Lexgrid Extraction Backend")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(project_router)

_STATUS = [
    (ValidationError, 400),
    (Unauthorized, 401),
    (NotFound, 404),
    (UnsupportedFileType, 415),
    (DocumentParseError, 422),
    (RateLimited, 429),
]


@app.exception_handler(LexgridError)
async def lexgrid_error(request: Request, exc: LexgridError):
    status = next((code for kind, code in _STATUS if isinstance(exc, kind)), 500)
    body = {"error": exc.message or "Request failed"}
    if isinstance(exc, RateLimited):
        body["retryAfter"] = exc.retry_after
    if status == 500:
        print(f"[error] {request.url.path}: {exc!r}")
    return JSONResponse(status_code=status, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "detail": exc.errors()})


# ---------------- Schemas ----------------
class ExtractBody(BaseModel):
    documentText: Optional[str] = None
    columnPrompt: Optional[str] = None
    columnType: Optional[str] = "text"
    options: Optional[List[str]] = None


class ChatTurn(BaseModel):
    role: str
    content: str


class ChatBody(BaseModel):
    message: Optional[str] = None
    context: Optional[str] = ""
    history: Optional[List[ChatTurn]] = None


# ---------------- Startup log ----------------
print(
    f"[startup] model={settings.OPENAI_MODEL}  key={settings.masked_key() or 'none'}...  "
    f"workers={settings.EXTRACTION_CONCURRENCY}  port={settings.PORT}"
)


# ---------------- Health ----------------
@app.get("/")
def root():
    return {"status": "ok", "service": "lexgrid-api"}


@app.get("/api/health")
def health(client: LLMClient = Depends(get_llm_client)):
    return {"status": "ok", "hasApiKey": client.has_api_key}


# ---------------- Stateless extraction / chat ----------------
@app.post("/api/extract")
async def extract(body: ExtractBody, client: LLMClient = Depends(get_llm_client)):
    result = await extract_cell(
        client,
        body.documentText or "",
        body.columnPrompt or "",
        body.columnType or "text",
        body.options,
    )
    return result.answer_dict()


@app.post("/api/chat")
async def chat(body: ChatBody, client: LLMClient = Depends(get_llm_client)):
    if not body.message:
        return JSONResponse(status_code=400, content={"error": "Missing message"})
    history: List[Dict[str, str]] = [t.model_dump() for t in body.history or []]
    try:
        reply = await answer(client, body.message, body.context or "", history)
    except Exception as e:
        print(f"[chat] error: {e!r}")
        return JSONResponse(status_code=500, content={"error": str(e) or "Chat failed"})
    return {"response": reply}
