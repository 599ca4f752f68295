"""CLI entrypoint for Knowledge Hub."""

from __future__ import annotations

import json
import mimetypes
import os
from pathlib import Path
from typing import List, Optional

import requests
import typer

app = typer.Typer(name="kbh", help="Knowledge Hub command-line interface")
files_app = typer.Typer(name="files", help="Manage knowledge files")
chunks_app = typer.Typer(name="chunks", help="Inspect and edit file chunks")
app.add_typer(files_app, name="files")
app.add_typer(chunks_app, name="chunks")

DEFAULT_HOST = "http://127.0.0.1:8000"

HostOption = typer.Option(None, "--host", help="Override backend host")
UserOption = typer.Option(None, "--user", help="User id forwarded as X-User-Id")


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("KBH_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _resolve_user(override: Optional[str]) -> str:
    user = override or os.environ.get("KBH_USER")
    if not user:
        typer.echo("A user id is required (--user or KBH_USER)", err=True)
        raise typer.Exit(code=2)
    return user


def _request(
    method: str,
    path: str,
    host: Optional[str] = None,
    user: Optional[str] = None,
    **kwargs,
) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    headers = kwargs.pop("headers", {})
    headers["X-User-Id"] = _resolve_user(user)
    resp = requests.request(method, url, headers=headers, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def upload(
    paths: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Files to upload"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Upload files and start processing."""
    handles = [path.expanduser().open("rb") for path in paths]
    try:
        multipart = [
            (
                "files",
                (path.name, handle, mimetypes.guess_type(path.name)[0] or "application/octet-stream"),
            )
            for path, handle in zip(paths, handles)
        ]
        resp = _request("POST", "/files", host=host, user=user, files=multipart)
    finally:
        for handle in handles:
            handle.close()
    payload = resp.json()
    typer.echo(json.dumps(payload, indent=2))
    if payload.get("failed"):
        raise typer.Exit(code=1)


@app.command()
def reprocess(
    file_id: str = typer.Argument(..., help="File identifier"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Invoke processing again for a file."""
    _echo(_request("POST", f"/files/{file_id}/reprocess", host=host, user=user))


@files_app.command("list")
def list_files(
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """List files, most recently updated first."""
    _echo(_request("GET", "/files", host=host, user=user))


@files_app.command("rename")
def rename_file(
    file_id: str = typer.Argument(..., help="File identifier"),
    title: str = typer.Argument(..., help="New title"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Change a file's title."""
    _echo(_request("PATCH", f"/files/{file_id}", host=host, user=user, json={"title": title}))


@files_app.command("rm")
def remove_file(
    file_id: str = typer.Argument(..., help="File identifier"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Delete a file together with its chunks and stored bytes."""
    _echo(_request("DELETE", f"/files/{file_id}", host=host, user=user))


@chunks_app.command("list")
def list_chunks(
    file_id: str = typer.Argument(..., help="File identifier"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Show a file's chunks in order."""
    _echo(_request("GET", f"/files/{file_id}/chunks", host=host, user=user))


@chunks_app.command("split")
def split_chunk(
    chunk_id: str = typer.Argument(..., help="Chunk identifier"),
    offset: int = typer.Argument(..., help="Character offset where the new chunk starts"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Split a chunk in two."""
    _echo(_request("POST", f"/chunks/{chunk_id}/split", host=host, user=user, json={"offset": offset}))


@chunks_app.command("merge")
def merge_chunks(
    file_id: str = typer.Argument(..., help="File identifier"),
    chunk_ids: List[str] = typer.Argument(..., help="Two or more chunk identifiers"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
) -> None:
    """Merge chunks into the lowest-ordered one."""
    _echo(
        _request(
            "POST",
            f"/files/{file_id}/chunks/merge",
            host=host,
            user=user,
            json={"chunk_ids": chunk_ids},
        )
    )


if __name__ == "__main__":
    app()
