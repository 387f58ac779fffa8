"""CLI entrypoint for Ragline."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="ragline", help="Ragline command-line interface")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("RAGLINE_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _parse_meta(pairs: list[str]) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected key=value, got {pair!r}", param_hint="--meta")
        metadata[key] = value
    return metadata


def _echo(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file to upload"),
    meta: list[str] = typer.Option([], "--meta", help="Metadata entry as key=value; repeatable"),
    filename: Optional[str] = typer.Option(None, "--filename", help="Name to store instead of the file name"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Upload a document for ingestion."""
    payload = {
        "filename": filename or path.name,
        "content": path.read_text(encoding="utf-8"),
        "metadata": _parse_meta(meta),
    }
    resp = _request("POST", "/api/documents/upload", host=host, json=payload)
    _echo(resp.json())


@app.command()
def documents(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List documents and their processing status."""
    resp = _request("GET", "/api/documents", host=host)
    _echo(resp.json())


@app.command()
def delete(
    document_id: str = typer.Argument(..., help="Document identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a document and its chunks."""
    resp = _request("DELETE", f"/api/documents/{document_id}", host=host)
    _echo(resp.json())


@app.command()
def search(
    q: str = typer.Argument(..., help="Query text"),
    max_results: int = typer.Option(5, "--max-results", help="Number of documents to return"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Semantic search over ready documents."""
    resp = _request("POST", "/api/search", host=host, json={"query": q, "maxResults": max_results})
    _echo(resp.json())


@app.command()
def ask(
    q: str = typer.Argument(..., help="Question"),
    model: Optional[str] = typer.Option(None, "--model", help="Language model to use"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question answered from the indexed documents."""
    payload: dict[str, object] = {"query": q}
    if model:
        payload["model"] = model
    resp = _request("POST", "/api/ask-documents", host=host, json=payload)
    _echo(resp.json())


@app.command()
def metrics(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show the runtime metrics snapshot."""
    resp = _request("GET", "/api/admin/metrics", host=host)
    _echo(resp.json())


if __name__ == "__main__":
    app()
