from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from apinav.config import DEFAULT_BACKEND_ROOT, DEFAULT_FRONTEND_ROOT, ScanConfig
from apinav.errors import ConfigError
from apinav.extractors.frontend.scanner import detect_endpoint_in_file
from apinav.index.endpoint_index import EndpointIndex
from apinav.report.text import render_entry_detail, render_location, render_summary

app = typer.Typer(no_args_is_help=True, add_completion=False)

console = Console()

_STATUSES = ("valid", "invalid", "unresolved", "param-mismatch")
_STATUS_STYLE = {
    "valid": "green",
    "invalid": "red",
    "unresolved": "yellow",
    "param-mismatch": "magenta",
}


@app.callback()
def _setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log scanner progress (debug level)"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_index(
    workspace: str,
    frontend_root: str,
    backend_root: str,
    backend_kind: Optional[str],
    entrypoint: Optional[str],
    http_client: Optional[list[str]],
) -> tuple[ScanConfig, EndpointIndex]:
    workspace_path = Path(workspace).expanduser().resolve()
    if not workspace_path.is_dir():
        raise typer.BadParameter(f"Workspace is not a directory: {workspace_path}")

    try:
        cfg = ScanConfig.from_values(
            workspace=workspace_path,
            backend_kind=backend_kind,
            frontend_root=frontend_root,
            backend_root=backend_root,
            fastapi_entrypoint=entrypoint,
            http_clients=tuple(http_client or ()),
        )
    except ConfigError as e:
        raise typer.BadParameter(str(e))

    index = EndpointIndex()
    index.rebuild(
        cfg.frontend_path,
        cfg.backend_path,
        cfg.backend_kind,
        cfg.fastapi_entrypoint,
        http_clients=cfg.http_clients,
    )
    return cfg, index


def _relative(path: str, root: Path) -> str:
    try:
        return str(Path(path).relative_to(root))
    except ValueError:
        return path


_FRONTEND_ROOT_OPT = typer.Option(
    DEFAULT_FRONTEND_ROOT, "--frontend-root", envvar="APINAV_FRONTEND_ROOT", help="Frontend root, workspace-relative"
)
_BACKEND_ROOT_OPT = typer.Option(
    DEFAULT_BACKEND_ROOT, "--backend-root", envvar="APINAV_BACKEND_ROOT", help="Backend root, workspace-relative"
)
_BACKEND_KIND_OPT = typer.Option(
    None, "--backend-kind", envvar="APINAV_BACKEND_KIND", help="Backend style: dotnet|fastapi"
)
_ENTRYPOINT_OPT = typer.Option(
    None, "--entrypoint", envvar="APINAV_FASTAPI_ENTRYPOINT", help='FastAPI app, e.g. "app/main.py:app"'
)
_HTTP_CLIENT_OPT = typer.Option(
    None, "--http-client", help="Extra callee name for client({ url, method }) calls (repeatable)"
)


@app.command()
def scan(
    workspace: str = typer.Argument(".", help="Workspace root"),
    frontend_root: str = _FRONTEND_ROOT_OPT,
    backend_root: str = _BACKEND_ROOT_OPT,
    backend_kind: Optional[str] = _BACKEND_KIND_OPT,
    entrypoint: Optional[str] = _ENTRYPOINT_OPT,
    http_client: Optional[list[str]] = _HTTP_CLIENT_OPT,
    status: Optional[str] = typer.Option(None, help="Filter by status: valid|invalid|unresolved|param-mismatch"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    """Scan both sides and list every endpoint with its status."""
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")
    if status is not None and status not in _STATUSES:
        raise typer.BadParameter(f"status must be one of: {', '.join(_STATUSES)}")

    cfg, index = _build_index(workspace, frontend_root, backend_root, backend_kind, entrypoint, http_client)

    entries = index.get_all_endpoints()
    if status is not None:
        entries = [e for e in entries if e.status == status]

    if fmt == "json":
        typer.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("STATUS", no_wrap=True)
    table.add_column("BACKEND")
    table.add_column("FRONTENDS", justify="right", no_wrap=True)

    for e in entries:
        backend = render_location(e.backend)
        if e.backend is not None:
            backend = f"{_relative(e.backend.file_path, cfg.workspace)}:{e.backend.line}"
        style = _STATUS_STYLE.get(e.status, "")
        table.add_row(
            e.http_method,
            escape(e.endpoint),
            f"[{style}]{e.status}[/{style}]" if style else e.status,
            escape(backend),
            str(len(e.frontends)),
        )

    console.print(table)
    console.print(render_summary(index.get_all_endpoints()), markup=False, highlight=False)


@app.command()
def show(
    path: str = typer.Argument(..., help="Endpoint path, e.g. /api/users/{id}"),
    method: str = typer.Option("GET", "--method", "-m", help="HTTP method"),
    workspace: str = typer.Option(".", "--workspace", "-w", help="Workspace root"),
    frontend_root: str = _FRONTEND_ROOT_OPT,
    backend_root: str = _BACKEND_ROOT_OPT,
    backend_kind: Optional[str] = _BACKEND_KIND_OPT,
    entrypoint: Optional[str] = _ENTRYPOINT_OPT,
    http_client: Optional[list[str]] = _HTTP_CLIENT_OPT,
) -> None:
    """Print the detail text for one endpoint."""
    _, index = _build_index(workspace, frontend_root, backend_root, backend_kind, entrypoint, http_client)

    entry = index.get_entry(path, method)
    if entry is None:
        console.print(f"Endpoint not indexed: {path} [{method.upper()}]", markup=False, highlight=False)
        raise typer.Exit(code=1)

    console.print(render_entry_detail(entry), markup=False, highlight=False)


@app.command()
def goto(
    file: str = typer.Argument(..., help="Frontend source file"),
    line: int = typer.Argument(..., help="1-based line"),
    column: int = typer.Argument(..., help="0-based column"),
    workspace: str = typer.Option(".", "--workspace", "-w", help="Workspace root"),
    frontend_root: str = _FRONTEND_ROOT_OPT,
    backend_root: str = _BACKEND_ROOT_OPT,
    backend_kind: Optional[str] = _BACKEND_KIND_OPT,
    entrypoint: Optional[str] = _ENTRYPOINT_OPT,
    http_client: Optional[list[str]] = _HTTP_CLIENT_OPT,
) -> None:
    """Resolve the endpoint string at a position to its backend definition."""
    cfg, index = _build_index(workspace, frontend_root, backend_root, backend_kind, entrypoint, http_client)

    file_path = Path(file).expanduser()
    if not file_path.is_absolute():
        file_path = cfg.workspace / file_path
    if not file_path.is_file():
        raise typer.BadParameter(f"File does not exist: {file_path}")

    match = detect_endpoint_in_file(file_path, line, column, http_clients=cfg.http_clients)
    if match is None:
        console.print(f"[yellow]No API endpoint at[/yellow] {escape(f'{file}:{line}:{column}')}")
        raise typer.Exit(code=1)

    location = index.find_backend_for_endpoint(match.endpoint, match.http_method)
    label = f"{match.endpoint} [{match.http_method}]"
    if location is None:
        console.print(f"[yellow]No backend definition found for endpoint:[/yellow] {escape(label)}")
        raise typer.Exit(code=1)

    console.print(
        f"{label} -> {_relative(location.file_path, cfg.workspace)}:{location.line}",
        markup=False,
        highlight=False,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
