"""Shared fixtures for SpecFlow tests."""

from pathlib import Path

import pytest

from specflow.config import AdapterConfig, AppConfig, ContextConfig


def write_file(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "proj"
    root.mkdir()
    return root


@pytest.fixture
def config(project, tmp_path):
    cfg = AppConfig(
        default_adapter="echo",
        adapters=[AdapterConfig(name="echo", type="echo", settings={"reply": "PLAN"})],
    )
    cfg.context = ContextConfig(project_root=project)
    cfg.audit_log = tmp_path / "audit.log"
    return cfg
