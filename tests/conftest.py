"""Pytest configuration and shared fixtures."""

from typing import Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

import settings
from main import app
from models import Column, Document, DocumentPage, new_id
from routes_project import get_llm_client, get_project
from storage import Project


class FakeLLM:
    """Stands in for LLMClient. `responder` returns the raw text or raises."""

    def __init__(self, responder: Optional[Callable[..., str]] = None, has_api_key: bool = True):
        self.responder = responder or (lambda system, user, max_tokens, history: "{}")
        self.calls: List[Dict] = []
        self.has_api_key = has_api_key
        self.model = "fake-model"

    async def complete(self, system_prompt, user_prompt, max_tokens=1024, history=None):
        self.calls.append({
            "system": system_prompt,
            "user": user_prompt,
            "max_tokens": max_tokens,
            "history": history,
        })
        return self.responder(system_prompt, user_prompt, max_tokens, history)


def answer_json(value="Yes", confidence="High", page=3) -> str:
    return (
        '{"value": "%s", "confidence": "%s", "reasoning": "Found in section 4.", '
        '"quote": "This Agreement shall automatically renew", "page_number": %s}'
        % (value, confidence, "null" if page is None else page)
    )


def make_doc(name: str, content: str) -> Document:
    return Document(
        id=new_id(),
        name=name,
        content=content,
        pages=[DocumentPage(number=1, text=content)],
        file_size=len(content),
        file_type="txt",
    )


@pytest.fixture(autouse=True)
def no_waiting(monkeypatch):
    """Collapse every configured delay so tests never sleep for real."""
    monkeypatch.setattr(settings, "REQUEST_DELAY", 0.0)
    monkeypatch.setattr(settings, "CELL_RETRY_DELAY", 0.0)
    monkeypatch.setattr(settings, "RATE_LIMIT_BACKOFF", 0.0)


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM(lambda system, user, max_tokens, history: answer_json())


@pytest.fixture
def project() -> Project:
    return Project()


@pytest.fixture
def two_docs_one_column(project):
    a = make_doc("Acme MSA.txt", "Acme services agreement. This Agreement shall automatically renew.")
    b = make_doc("Beta MSA.txt", "Beta services agreement. Term of one year.")
    project.add_documents([a, b])
    col = project.add_column("Auto-Renewal", "Does this agreement automatically renew?", "boolean")
    return project, a, b, col


@pytest.fixture
def test_client(project, fake_llm):
    """FastAPI test client wired to a fresh project and the fake LLM."""
    app.dependency_overrides[get_project] = lambda: project
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    with TestClient(app) as c:
        yield c
    app.dependency_overrides = {}
