from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from apinav.config import DEFAULT_HTTP_CLIENTS
from apinav.domain.models import EndpointDescriptor, EndpointMatch
from apinav.errors import FrontendParseError
from apinav.extractors.frontend.calls import extract_call_sites
from apinav.extractors.frontend.fallback import extract_call_sites_fallback
from apinav.repo.scanner import read_source, scan_frontend_files

logger = logging.getLogger(__name__)


def extract_endpoints(
    source: str,
    file_path: str = "",
    tsx: bool = False,
    http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
) -> list[EndpointDescriptor]:
    """
    Syntax tree first; pattern fallback only for this file and only when the
    tree stage reports a parse failure.
    """
    try:
        return extract_call_sites(source, file_path, tsx=tsx, http_clients=http_clients)
    except FrontendParseError as e:
        logger.warning(f"Syntax tree unavailable ({e}); using pattern fallback")
        return extract_call_sites_fallback(source, file_path)


def extract_endpoints_from_file(
    path: Path,
    http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
) -> list[EndpointDescriptor]:
    try:
        source = read_source(str(path))
    except OSError as e:
        logger.warning(f"Failed to read {path}: {e}")
        return []
    return extract_endpoints(
        source,
        str(path),
        tsx=path.suffix.lower() == ".tsx",
        http_clients=http_clients,
    )


def scan_frontend(
    frontend_root: Path,
    http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
) -> list[EndpointDescriptor]:
    files = scan_frontend_files(frontend_root)
    logger.debug(f"Frontend: {len(files)} candidate files under {frontend_root}")

    endpoints: list[EndpointDescriptor] = []
    for p in files:
        endpoints.extend(extract_endpoints_from_file(Path(p), http_clients=http_clients))

    logger.info(f"Frontend: {len(endpoints)} call sites in {len(files)} files")
    return endpoints


def detect_endpoint_at_position(
    source: str,
    line: int,
    column: int,
    file_path: str = "",
    tsx: bool = False,
    http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
) -> Optional[EndpointMatch]:
    """
    Return the endpoint string under (line: 1-based, column: 0-based), if any.
    Runs the exact extraction the bulk scan runs, so both always agree.
    """
    for d in extract_endpoints(source, file_path, tsx=tsx, http_clients=http_clients):
        if d.location.contains(line, column):
            return EndpointMatch(endpoint=d.endpoint, http_method=d.method, location=d.location)
    return None


def detect_endpoint_in_file(
    path: Path,
    line: int,
    column: int,
    http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
) -> Optional[EndpointMatch]:
    source = read_source(str(path))
    return detect_endpoint_at_position(
        source,
        line,
        column,
        file_path=str(path),
        tsx=path.suffix.lower() == ".tsx",
        http_clients=http_clients,
    )
