"""Tests for the command-line client."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from ragline.cli import main as cli

runner = CliRunner()


class FakeResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = str(payload)

    def json(self):
        return self._payload


@pytest.fixture
def calls(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    recorded: list[dict] = []

    def fake_request(method, url, timeout=None, **kwargs):
        recorded.append({"method": method, "url": url, **kwargs})
        if url.endswith("/missing"):
            return FakeResponse({"error": {"type": "NotFoundError", "message": "nope"}}, status_code=404)
        return FakeResponse({"status": "ok"})

    monkeypatch.setattr(cli.requests, "request", fake_request)
    monkeypatch.delenv("RAGLINE_HOST", raising=False)
    return recorded


def test_upload_sends_content_and_metadata(tmp_path: Path, calls: list[dict]) -> None:
    doc = tmp_path / "notes.txt"
    doc.write_text("hello world", encoding="utf-8")

    result = runner.invoke(cli.app, ["upload", str(doc), "--meta", "team=search", "--meta", "lang=en"])

    assert result.exit_code == 0, result.output
    (call,) = calls
    assert call["method"] == "POST"
    assert call["url"] == "http://127.0.0.1:8000/api/documents/upload"
    assert call["json"] == {
        "filename": "notes.txt",
        "content": "hello world",
        "metadata": {"team": "search", "lang": "en"},
    }


def test_bad_metadata_pair_is_rejected(tmp_path: Path, calls: list[dict]) -> None:
    doc = tmp_path / "notes.txt"
    doc.write_text("hello", encoding="utf-8")

    result = runner.invoke(cli.app, ["upload", str(doc), "--meta", "novalue"])

    assert result.exit_code != 0
    assert calls == []


def test_search_uses_host_from_environment(calls: list[dict], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAGLINE_HOST", "http://rag.internal:9000/")

    result = runner.invoke(cli.app, ["search", "machine learning", "--max-results", "2"])

    assert result.exit_code == 0, result.output
    assert calls[0]["url"] == "http://rag.internal:9000/api/search"
    assert calls[0]["json"] == {"query": "machine learning", "maxResults": 2}


def test_ask_passes_model(calls: list[dict]) -> None:
    result = runner.invoke(cli.app, ["ask", "why?", "--model", "gpt-test", "--host", "http://h"])

    assert result.exit_code == 0, result.output
    assert calls[0]["url"] == "http://h/api/ask-documents"
    assert calls[0]["json"] == {"query": "why?", "model": "gpt-test"}


def test_error_response_exits_non_zero(calls: list[dict]) -> None:
    result = runner.invoke(cli.app, ["delete", "missing"])
    assert result.exit_code == 1
