# tests/test_cli.py
from __future__ import annotations

import zipfile

import pytest

from conftest import FakeProvider
from pagecraft import cli
from pagecraft.orchestrator import PLAN_NOTICE
from pagecraft.persistence import ProjectSnapshotStore


@pytest.fixture
def fake(monkeypatch) -> FakeProvider:
    provider = FakeProvider()
    monkeypatch.setattr(cli, "GenerativeProvider", lambda settings: provider)
    return provider


def test_quickstart_generate_and_export(tmp_path, fake, capsys, monkeypatch):
    state = tmp_path / "state"
    assert cli.main(["--state-dir", str(state), "quickstart", "--product-type", "Journal", "--size", "Square (12x12)"]) == 0

    project = ProjectSnapshotStore(state).list_sync()[0]
    assert project.configuration.product_type == "Journal"

    assert cli.main(["--state-dir", str(state), "list"]) == 0
    assert project.id in capsys.readouterr().out

    # a blank project has no pages; add one through the ideas flow
    fake.text_replies.append('[{"title": "Moon", "prompt": "a crescent moon"}]')
    assert cli.main(["--state-dir", str(state), "ideas", project.id, "--kind", "page", "--promote", "0"]) == 0

    assert cli.main(["--state-dir", str(state), "generate", project.id]) == 0
    assert fake.calls[-1][2] == "1:1"

    monkeypatch.chdir(tmp_path)
    assert cli.main(["--state-dir", str(state), "export", project.id]) == 0
    with zipfile.ZipFile(tmp_path / "Untitled_Creative_Project_Kit.zip") as zf:
        assert "images/moon.png" in zf.namelist()


def test_errors_exit_non_zero(tmp_path, fake, capsys):
    assert cli.main(["--state-dir", str(tmp_path), "show", "proj_missing"]) == 1
    assert "Error:" in capsys.readouterr().out

    fake.credential = None
    assert cli.main(["--state-dir", str(tmp_path), "plan", "--product-type", "Book", "--audience", "Kids", "--style", "Ink"]) == 1


def test_failed_generation_reports_notice(tmp_path, fake, capsys):
    state = tmp_path / "state"
    fake.text_replies.append("no plan here")
    assert cli.main(["--state-dir", str(state), "plan", "--product-type", "Book", "--audience", "Kids", "--style", "Ink"]) == 1

    out = capsys.readouterr().out
    assert out.startswith("[rolled_back] plan: ")
    assert PLAN_NOTICE in out
