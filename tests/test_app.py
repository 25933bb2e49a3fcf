"""HTTP-level tests for the FastAPI server."""

import json

import pytest
from fastapi.testclient import TestClient

from app import create_app
from specflow.config import AdapterConfig
from specflow.service import ProviderService

from conftest import write_file

PLAN = {
    "summary": "s",
    "technical_rationale": "r",
    "project_type": "web",
    "risks": [],
    "files_to_modify": [],
    "next_steps": ["ship"],
}


@pytest.fixture
def client(config):
    return TestClient(create_app(config))


def _audit_events(config):
    lines = config.audit_log_path.read_text(encoding="utf-8").splitlines()
    return [json.loads(line)["event"] for line in lines]


def test_sync_then_analyze_round(client, config):
    write_file(config.context.project_root, "src/a.ts", "x")

    resp = client.post("/sync")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["fileCount"] == 1

    resp = client.post("/analyze", json={"message": "add tests"})
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "adapter": "echo",
        "adapterType": "echo",
        "answer": "PLAN",
    }
    assert _audit_events(config) == ["sync", "analyze"]


def test_api_prefixed_aliases(client, config):
    write_file(config.context.project_root, "README.md", "z")

    assert client.post("/api/sync").json()["success"] is True
    assert client.post("/api/analyze", json={"message": "hi"}).json()["answer"] == "PLAN"
    resp = client.post("/api/save", json={"fileName": "a.md", "fullCode": "a"})
    assert resp.json()["success"] is True


def test_analyze_before_sync_is_conflict(client):
    resp = client.post("/analyze", json={"message": "add tests"})

    assert resp.status_code == 409
    assert resp.json()["success"] is False
    assert resp.json()["code"] == "ContextMissing"


@pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": None}])
def test_analyze_without_message_is_bad_request(client, body):
    resp = client.post("/analyze", json=body)

    assert resp.status_code == 400
    assert resp.json()["code"] == "ValidationError"


def test_malformed_json_is_bad_request(client):
    resp = client.post(
        "/analyze", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_save_writes_file(client, config):
    resp = client.post("/save", json={"fileName": "src/new/file.ts", "fullCode": "line\n"})

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "path": "src/new/file.ts",
        "bytes": 5,
        "created": True,
    }
    target = config.context.project_root / "src" / "new" / "file.ts"
    assert target.read_text(encoding="utf-8") == "line\n"


def test_save_escape_is_forbidden(client, config, tmp_path):
    resp = client.post("/save", json={"fileName": "../../etc/passwd", "fullCode": "x"})

    assert resp.status_code == 403
    assert resp.json()["code"] == "AccessDenied"
    assert not (tmp_path.parent / "etc" / "passwd").exists()
    assert _audit_events(config) == ["save_denied"]


def test_save_tilde_name_is_relative_to_root(client, config):
    resp = client.post("/save", json={"fileName": "~draft.ts", "fullCode": "x"})

    assert resp.status_code == 200
    assert resp.json()["path"] == "~draft.ts"
    assert (config.context.project_root / "~draft.ts").read_text(encoding="utf-8") == "x"


def test_save_requires_fields(client):
    assert client.post("/save", json={"fullCode": "x"}).status_code == 400
    assert client.post("/save", json={"fileName": "a.ts"}).status_code == 400


def test_oversized_body_is_rejected(config):
    config.server.max_body_bytes = 64
    client = TestClient(create_app(config))

    resp = client.post("/save", json={"fileName": "a.ts", "fullCode": "x" * 500})

    assert resp.status_code == 413
    assert not (config.context.project_root / "a.ts").exists()


def test_upstream_failure_is_bad_gateway(config):
    config.adapters = [AdapterConfig(name="gemini", type="gemini")]
    config.default_adapter = "gemini"
    write_file(config.context.project_root, "a.ts", "x")
    client = TestClient(create_app(config))

    client.post("/sync")
    resp = client.post("/analyze", json={"message": "hi"})

    assert resp.status_code == 502
    assert resp.json()["code"] == "UpstreamError"


def test_structured_mode_returns_data(config):
    config.adapters = [AdapterConfig(name="echo", type="echo", settings={"json_reply": PLAN})]
    config.analysis.response_mode = "structured"
    write_file(config.context.project_root, "a.ts", "x")
    client = TestClient(create_app(config, ProviderService(config)))

    client.post("/sync")
    resp = client.post("/analyze", json={"message": "plan it"})

    assert resp.status_code == 200
    assert resp.json()["data"] == PLAN


def test_health_and_context_summary(client, config):
    health = client.get("/health").json()
    assert health["ok"] is True
    assert health["adapters"]["echo"]["available"] is True
    assert health["context"]["exists"] is False

    write_file(config.context.project_root, "a.ts", "x")
    client.post("/sync")
    summary = client.get("/context/summary").json()
    assert summary["exists"] is True
    assert summary["fileCount"] == 1


def test_audit_ledger_tail(client, config):
    write_file(config.context.project_root, "a.ts", "x")
    client.post("/sync")
    client.post("/sync")

    events = client.get("/audit/ledger", params={"limit": 1}).json()["events"]

    assert len(events) == 1
    assert events[0]["event"] == "sync"


def test_cors_allows_configured_origin(client):
    resp = client.options(
        "/analyze",
        headers={
            "Origin": "http://localhost:8080",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert resp.headers["access-control-allow-origin"] == "http://localhost:8080"


def test_health_survives_unreadable_context_document(client, config):
    (config.context.project_root / "codebase_context.txt").write_bytes(b"\xff\xfe broken")

    resp = client.get("/health")

    assert resp.status_code == 200
    context = resp.json()["context"]
    assert context["exists"] is True
    assert context["code"] == "SyncError"
    assert client.get("/context/summary").status_code == 500
