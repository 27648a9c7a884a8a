from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from apinav.config import DEFAULT_HTTP_CLIENTS, validate_backend_config
from apinav.domain.models import EndpointDescriptor
from apinav.errors import ConfigError
from apinav.extractors.dotnet.controllers import scan_controllers
from apinav.extractors.fastapi.routers import scan_fastapi
from apinav.extractors.frontend.scanner import scan_frontend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    backend: list[EndpointDescriptor]
    frontend: list[EndpointDescriptor]


def scan_backend(
    backend_root: Path,
    backend_kind: str,
    entrypoint: Optional[str] = None,
) -> list[EndpointDescriptor]:
    if backend_kind == "fastapi":
        return scan_fastapi(backend_root, entrypoint or "")
    return scan_controllers(backend_root)


def run_scan(
    frontend_root: Path,
    backend_root: Path,
    backend_kind: Optional[str],
    entrypoint: Optional[str] = None,
    http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
) -> ScanResult:
    """
    Validate the configuration, then scan the active backend style and the
    frontend side by side. Raises ConfigError before touching the filesystem.
    """
    message = validate_backend_config(backend_kind, entrypoint)
    if message:
        raise ConfigError(message)

    frontend_root = frontend_root.resolve()
    backend_root = backend_root.resolve()
    logger.debug(f"Scanning backend={backend_root} ({backend_kind}) frontend={frontend_root}")

    # both sides are independent file-read/parse work
    with ThreadPoolExecutor(max_workers=2) as executor:
        backend_future = executor.submit(scan_backend, backend_root, backend_kind, entrypoint)
        frontend_future = executor.submit(scan_frontend, frontend_root, http_clients)
        backend = backend_future.result()
        frontend = frontend_future.result()

    return ScanResult(backend=backend, frontend=frontend)
