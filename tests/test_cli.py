from __future__ import annotations

import json

import pytest

from bookmark_mirror.cli import main as cli
from bookmark_mirror.di.container import Container
from bookmark_mirror.domain.models import TagVocabularyEntry

from conftest import FakePagedSource, make_item


@pytest.fixture
def upstream(monkeypatch, tmp_path) -> FakePagedSource:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("UPSTREAM_USER_ID", "42")
    monkeypatch.setenv("UPSTREAM_SESSION_ID", "42_abcdef")
    monkeypatch.setenv("DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("TAG_ENRICHMENT_ENABLED", "false")
    monkeypatch.setenv("BACKFILL_PAGE_DELAY_SEC", "0")
    monkeypatch.setattr(cli, "setup_json_logging", lambda *args, **kwargs: None)

    fake = FakePagedSource([make_item(2, "cat"), make_item(1, "cat", "dog")])
    monkeypatch.setattr(cli, "Container", lambda cfg: Container(cfg, upstream=fake))
    return fake


def test_missing_configuration_exits_with_2(monkeypatch, tmp_path, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("UPSTREAM_USER_ID", raising=False)
    monkeypatch.delenv("UPSTREAM_SESSION_ID", raising=False)

    assert cli.main(["sync-once"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_sync_once_backfills_then_cycles(upstream, capsys) -> None:
    assert cli.main(["sync-once"]) == 0
    first = json.loads(capsys.readouterr().out)
    assert first["kind"] == "backfill"
    assert first["inserted_ids"] == ["1", "2"]

    upstream.items.insert(0, make_item(3, "bird"))
    assert cli.main(["sync-once"]) == 0
    second = json.loads(capsys.readouterr().out)
    assert second["kind"] == "cycle"
    assert second["inserted_ids"] == ["3"]


def test_sync_once_reports_aborted_cycle(upstream, capsys) -> None:
    upstream.failing_pages = {1}

    assert cli.main(["sync-once"]) == 1
    assert json.loads(capsys.readouterr().out)["aborted"] is True


def test_rebuild_tags(upstream, capsys) -> None:
    cli.main(["sync-once"])
    capsys.readouterr()

    assert cli.main(["rebuild-tags"]) == 0
    assert "Rebuilt 2 tag records" in capsys.readouterr().out


def test_audit_tags_exit_code_reflects_drift(upstream, capsys) -> None:
    cli.main(["sync-once"])
    capsys.readouterr()
    upstream.vocabulary = [
        TagVocabularyEntry(tag="cat", count=2),
        TagVocabularyEntry(tag="dog", count=5),
    ]

    assert cli.main(["audit-tags"]) == 1
    report = json.loads(capsys.readouterr().out)
    assert report["mismatched"] == {"dog": [5, 1]}

    assert cli.main(["audit-tags", "--repair"]) == 0
    assert json.loads(capsys.readouterr().out)["repaired"] is True
