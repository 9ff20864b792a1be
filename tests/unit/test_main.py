"""Unit tests for the CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from await_operator.operator import main as main_module
from await_operator.operator.main import main
from await_operator.operator.resources import ResourceResolver


@pytest.fixture
def payload(tmp_path: Path) -> Path:
    path = tmp_path / "cm.json"
    path.write_text(
        json.dumps({"kind": "ConfigMap", "metadata": {"name": "target-cm"}, "data": {"ready": "yes"}}),
        encoding="utf-8",
    )
    return path


def test_check_filters_match(payload: Path, capsys) -> None:
    code = main(
        ["check-filters", "--payload", str(payload), "--filter", "kind==ConfigMap", "--filter", "data.ready==yes"]
    )
    assert code == 0
    assert capsys.readouterr().out.strip() == "match"


def test_check_filters_no_match(payload: Path, capsys) -> None:
    code = main(["check-filters", "--payload", str(payload), "--filter", "data.ready==no"])
    assert code == 4
    assert capsys.readouterr().out.strip() == "no match"


def test_check_filters_malformed(payload: Path, capsys) -> None:
    code = main(["check-filters", "--payload", str(payload), "--filter", "data.ready!no"])
    assert code == 2
    assert "Invalid filter" in capsys.readouterr().err


def test_missing_credentials_exit_code(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("KUBE_TOKEN", raising=False)
    monkeypatch.setenv("KUBE_TOKEN_FILE", str(tmp_path / "missing-token"))
    monkeypatch.chdir(tmp_path)

    assert main(["resolve", "--kind", "ConfigMap"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_resolve_not_found_exit_code(tmp_path: Path, monkeypatch, directory) -> None:
    monkeypatch.setenv("KUBE_TOKEN", "test-token")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main_module, "configure_logging", lambda _level: None)
    monkeypatch.setattr(main_module, "ResourceResolver", lambda _kube: ResourceResolver(directory))

    assert main(["resolve", "--version", "v1", "--kind", "Secret"]) == 3


def test_check_filters_unreadable_payload(tmp_path: Path, capsys) -> None:
    missing = tmp_path / "missing.json"
    assert main(["check-filters", "--payload", str(missing), "--filter", "kind==ConfigMap"]) == 2

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert main(["check-filters", "--payload", str(broken), "--filter", "kind==ConfigMap"]) == 2
    assert "Unable to read payload" in capsys.readouterr().err
