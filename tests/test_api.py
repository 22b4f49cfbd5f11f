"""HTTP surface: stateless endpoints and the session project routes."""

import json

from conftest import answer_json
from exceptions import RateLimited, Unauthorized, UnexpectedResponse

ACME = b"Acme services agreement. This Agreement shall automatically renew for successive one-year terms."
BETA = b"Beta services agreement. The term is one year with no renewal."


def _raise(exc):
    def responder(system, user, max_tokens, history):
        raise exc
    return responder


def _upload(client, *files):
    res = client.post(
        "/api/project/documents",
        files=[("files", (name, data, "text/plain")) for name, data in files],
    )
    assert res.status_code == 200, res.text
    return res.json()["documents"]


def _add_column(client, name="Auto-Renewal", prompt="Does this agreement automatically renew?", type="boolean"):
    res = client.post("/api/project/columns", json={"name": name, "prompt": prompt, "type": type})
    assert res.status_code == 200, res.text
    return res.json()


# ---------------- stateless ----------------

def test_root_and_health(test_client):
    assert test_client.get("/").json() == {"status": "ok", "service": "lexgrid-api"}
    assert test_client.get("/api/health").json() == {"status": "ok", "hasApiKey": True}


def test_extract_endpoint(test_client, fake_llm):
    res = test_client.post("/api/extract", json={
        "documentText": ACME.decode(),
        "columnPrompt": "Does this agreement automatically renew?",
        "columnType": "boolean",
    })
    assert res.status_code == 200
    assert res.json() == {
        "value": "Yes",
        "confidence": "High",
        "reasoning": "Found in section 4.",
        "quote": "This Agreement shall automatically renew",
        "pageNumber": 3,
    }
    assert 'The answer should be "Yes", "No", or "Not Found".' in fake_llm.calls[0]["user"]


def test_extract_endpoint_unknown_type_falls_back_to_text(test_client, fake_llm):
    res = test_client.post("/api/extract", json={
        "documentText": "Rent rises 3% a year.",
        "columnPrompt": "What is the escalation rate?",
        "columnType": "percentage",
    })
    assert res.status_code == 200
    assert res.json()["value"] == "Yes"
    user = fake_llm.calls[0]["user"]
    assert "Expected Type: percentage\n" in user
    assert user.endswith("Provide a concise text answer.")


def test_extract_endpoint_missing_fields(test_client):
    res = test_client.post("/api/extract", json={"documentText": "text only"})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required fields"}


def test_extract_endpoint_rate_limited(test_client, fake_llm):
    fake_llm.responder = _raise(RateLimited(retry_after=30))
    res = test_client.post("/api/extract", json={"documentText": "x", "columnPrompt": "y"})
    assert res.status_code == 429
    assert res.json()["retryAfter"] == 30
    assert len(fake_llm.calls) == 4


def test_extract_endpoint_unauthorized(test_client, fake_llm):
    fake_llm.responder = _raise(Unauthorized())
    res = test_client.post("/api/extract", json={"documentText": "x", "columnPrompt": "y"})
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid API key"}


def test_extract_endpoint_backend_failure(test_client, fake_llm):
    fake_llm.responder = _raise(UnexpectedResponse(502, "Bad gateway"))
    res = test_client.post("/api/extract", json={"documentText": "x", "columnPrompt": "y"})
    assert res.status_code == 500
    assert res.json() == {"error": "Bad gateway"}


def test_chat_endpoint(test_client, fake_llm):
    fake_llm.responder = lambda system, user, max_tokens, history: "Acme renews."
    res = test_client.post("/api/chat", json={
        "message": "Which renew?",
        "context": "CTX",
        "history": [{"role": "user", "content": "hi"}],
    })
    assert res.status_code == 200
    assert res.json() == {"response": "Acme renews."}
    assert fake_llm.calls[0]["history"] == [{"role": "user", "content": "hi"}]


def test_chat_endpoint_errors(test_client, fake_llm):
    assert test_client.post("/api/chat", json={"context": "CTX"}).status_code == 400
    fake_llm.responder = _raise(UnexpectedResponse(500, "boom"))
    res = test_client.post("/api/chat", json={"message": "hi"})
    assert res.status_code == 500
    assert res.json() == {"error": "boom"}


# ---------------- project flow ----------------

def test_full_review_flow(test_client, fake_llm, project):
    def responder(system, user, max_tokens, history):
        if "Acme" in user:
            return answer_json("Yes", "High", 1)
        return answer_json("No", "Medium", None)
    fake_llm.responder = responder

    docs = _upload(test_client, ("Acme MSA.txt", ACME), ("Beta MSA.txt", BETA))
    col = _add_column(test_client)

    res = test_client.post("/api/project/extract?wait=true")
    assert res.status_code == 200
    assert res.json()["summary"] == {"total": 2, "completed": 2, "failed": 0, "cancelled": False}

    progress = test_client.get("/api/project/extract/progress").json()
    assert progress["isExtracting"] is False
    assert progress["lastRun"]["completed"] == 2

    state = test_client.get("/api/project").json()
    acme_cell = state["results"][docs[0]["id"]][col["id"]]
    assert acme_cell["value"] == "Yes"
    assert acme_cell["status"] == "ready"

    edit = test_client.patch(f"/api/project/cells/{docs[1]['id']}/{col['id']}", json={"value": "Yes"})
    assert edit.json()["result"]["originalValue"] == "No"
    assert edit.json()["result"]["isManuallyEdited"] is True

    review = test_client.post(f"/api/project/cells/{docs[0]['id']}/{col['id']}/review")
    assert review.json()["result"]["isReviewed"] is True

    csv_res = test_client.get("/api/project/export/csv?includeConfidence=true")
    assert csv_res.headers["content-type"].startswith("text/csv")
    assert csv_res.text.split("\n") == [
        "Document Name,Auto-Renewal,Auto-Renewal (Confidence)",
        "Acme MSA.txt,Yes,High",
        "Beta MSA.txt,Yes,Medium",
    ]

    data = json.loads(test_client.get("/api/project/export/json").content)
    assert data["projectName"] == "Untitled Project"
    assert data["documents"][1]["extractions"]["Auto-Renewal"]["isManuallyEdited"] is True


def test_second_run_skips_ready_cells(test_client, fake_llm):
    _upload(test_client, ("Acme MSA.txt", ACME))
    _add_column(test_client)
    test_client.post("/api/project/extract?wait=true")
    res = test_client.post("/api/project/extract?wait=true")
    assert res.json()["summary"]["total"] == 0
    assert len(fake_llm.calls) == 1


def test_extract_needs_documents_and_columns(test_client):
    res = test_client.post("/api/project/extract?wait=true")
    assert res.status_code == 400
    assert "upload documents" in res.json()["error"]


def test_extract_conflict_while_running(test_client, project):
    _upload(test_client, ("Acme MSA.txt", ACME))
    _add_column(test_client)
    project.is_extracting = True
    res = test_client.post("/api/project/extract")
    assert res.status_code == 409


def test_cancel_without_run(test_client):
    assert test_client.post("/api/project/extract/cancel").json() == {"ok": True, "cancelled": False}


def test_retry_single_cell(test_client, fake_llm):
    docs = _upload(test_client, ("Acme MSA.txt", ACME))
    col = _add_column(test_client)
    fake_llm.responder = lambda system, user, max_tokens, history: "no json at all"
    test_client.post("/api/project/extract?wait=true")

    fake_llm.responder = lambda system, user, max_tokens, history: answer_json()
    res = test_client.post(f"/api/project/cells/{docs[0]['id']}/{col['id']}/retry")
    assert res.status_code == 200
    assert res.json()["result"]["status"] == "ready"
    assert res.json()["result"]["value"] == "Yes"


def test_failed_cell_surfaces_error(test_client, fake_llm):
    docs = _upload(test_client, ("Acme MSA.txt", ACME))
    col = _add_column(test_client)
    fake_llm.responder = lambda system, user, max_tokens, history: "no json at all"
    res = test_client.post("/api/project/extract?wait=true")
    assert res.json()["summary"]["failed"] == 1
    cell = test_client.get("/api/project").json()["results"][docs[0]["id"]][col["id"]]
    assert cell["status"] == "error"
    assert cell["value"] == ""
    assert "Failed to parse JSON response" in cell["reasoning"]


def test_unsupported_upload(test_client):
    res = test_client.post(
        "/api/project/documents",
        files=[("files", ("deck.pptx", b"x", "application/octet-stream"))],
    )
    assert res.status_code == 415


def test_unknown_ids_are_404(test_client):
    assert test_client.get("/api/project/documents/nope").status_code == 404
    assert test_client.delete("/api/project/columns/nope").status_code == 404
    assert test_client.patch("/api/project/cells/a/b", json={"value": "x"}).status_code == 404
    assert test_client.post("/api/project/templates/nope/apply").status_code == 404


def test_select_column_needs_options(test_client):
    res = test_client.post("/api/project/columns", json={
        "name": "Law", "prompt": "Governing law?", "type": "select", "options": ["Delaware"],
    })
    assert res.status_code == 400
    assert res.json()["error"] == "Please provide at least 2 options for select type"


def test_templates(test_client):
    templates = test_client.get("/api/project/templates").json()
    assert [t["id"] for t in templates][:2] == ["ma-deal-points", "lease-review"]
    res = test_client.post("/api/project/templates/nda-review/apply")
    assert len(res.json()["columns"]) == 7
    assert len(test_client.get("/api/project").json()["columns"]) == 7


def test_remove_document_cascades(test_client):
    docs = _upload(test_client, ("Acme MSA.txt", ACME), ("Beta MSA.txt", BETA))
    _add_column(test_client)
    test_client.post("/api/project/extract?wait=true")
    test_client.delete(f"/api/project/documents/{docs[0]['id']}")
    state = test_client.get("/api/project").json()
    assert [d["name"] for d in state["documents"]] == ["Beta MSA.txt"]
    assert docs[0]["id"] not in state["results"]


def test_session_chat(test_client, fake_llm):
    fake_llm.responder = lambda system, user, max_tokens, history: "Nothing yet."
    res = test_client.post("/api/project/chat", json={"message": "What renews?"})
    assert res.status_code == 200
    body = res.json()
    assert body["message"]["content"] == "Nothing yet."
    assert [m["role"] for m in body["chatHistory"]] == ["user", "assistant"]
    test_client.delete("/api/project/chat")
    assert test_client.get("/api/project").json()["chatHistory"] == []


def test_rename_and_reset(test_client):
    assert test_client.put("/api/project/name", json={"name": "  "}).status_code == 400
    test_client.put("/api/project/name", json={"name": "Q3 Review"})
    assert test_client.get("/api/project").json()["name"] == "Q3 Review"
    _upload(test_client, ("Acme MSA.txt", ACME))
    test_client.delete("/api/project")
    state = test_client.get("/api/project").json()
    assert state["name"] == "Q3 Review"
    assert state["documents"] == []
