from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from apinav.errors import ConfigError

BackendKind = Literal["dotnet", "fastapi"]
BACKEND_KINDS: tuple[str, ...] = ("dotnet", "fastapi")

# Frontend: only API client modules under <frontend>/**/lib/api/** are scanned.
FRONTEND_API_DIR: tuple[str, ...] = ("lib", "api")
FRONTEND_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx")
DEFAULT_HTTP_CLIENTS: tuple[str, ...] = ("axios",)

# Backend (attribute style): *Controller.cs at most this many directories deep.
CONTROLLER_FILE_SUFFIX = "Controller.cs"
CONTROLLER_MAX_DIR_DEPTH = 3
CLASS_ATTRIBUTE_LOOKBACK = 20
ACTION_SIGNATURE_LOOKAHEAD = 15

# Backend (decorator style)
FASTAPI_EXTENSION = ".py"
ROUTER_GRAPH_MAX_DEPTH = 10

DEFAULT_FRONTEND_ROOT = "./frontend"
DEFAULT_BACKEND_ROOT = "./backend"


class FastApiEntrypoint(BaseModel):
    file_path: str
    app_var: str


def parse_fastapi_entrypoint(entrypoint: Optional[str]) -> Optional[FastApiEntrypoint]:
    """
    Parse "path/to/file.py:appVar". The split happens on the last ':' so that
    Windows drive letters survive. Returns None when the string is malformed.
    """
    if not entrypoint or ":" not in entrypoint:
        return None

    file_path, _, app_var = entrypoint.rpartition(":")
    file_path = file_path.strip()
    app_var = app_var.strip()

    if not file_path or not app_var or not file_path.endswith(FASTAPI_EXTENSION):
        return None

    return FastApiEntrypoint(file_path=file_path, app_var=app_var)


def validate_backend_config(
    backend_kind: Optional[str],
    fastapi_entrypoint: Optional[str],
) -> Optional[str]:
    """Return a single descriptive message for a bad backend configuration, else None."""
    if not backend_kind:
        return 'Backend kind not configured. Set the backend kind to "dotnet" or "fastapi".'

    if backend_kind not in BACKEND_KINDS:
        return f'Invalid backend kind: "{backend_kind}". Must be "dotnet" or "fastapi".'

    if backend_kind == "fastapi":
        if not fastapi_entrypoint:
            return 'FastAPI entrypoint not configured (e.g. "app/main.py:app").'
        if parse_fastapi_entrypoint(fastapi_entrypoint) is None:
            return (
                f'Invalid FastAPI entrypoint format: "{fastapi_entrypoint}". '
                'Expected format: "path/to/file.py:appVar".'
            )

    return None


class ScanConfig(BaseModel):
    workspace: Path
    frontend_root: str = DEFAULT_FRONTEND_ROOT
    backend_root: str = DEFAULT_BACKEND_ROOT
    backend_kind: BackendKind
    fastapi_entrypoint: Optional[str] = None
    http_clients: tuple[str, ...] = Field(default=DEFAULT_HTTP_CLIENTS)

    @classmethod
    def from_values(
        cls,
        workspace: Path,
        backend_kind: Optional[str],
        frontend_root: str = DEFAULT_FRONTEND_ROOT,
        backend_root: str = DEFAULT_BACKEND_ROOT,
        fastapi_entrypoint: Optional[str] = None,
        http_clients: tuple[str, ...] = (),
    ) -> "ScanConfig":
        message = validate_backend_config(backend_kind, fastapi_entrypoint)
        if message:
            raise ConfigError(message)

        clients = tuple(dict.fromkeys((*DEFAULT_HTTP_CLIENTS, *http_clients)))
        return cls(
            workspace=workspace.expanduser().resolve(),
            frontend_root=frontend_root,
            backend_root=backend_root,
            backend_kind=backend_kind,
            fastapi_entrypoint=fastapi_entrypoint or None,
            http_clients=clients,
        )

    @property
    def frontend_path(self) -> Path:
        return (self.workspace / self.frontend_root).resolve()

    @property
    def backend_path(self) -> Path:
        return (self.workspace / self.backend_root).resolve()
