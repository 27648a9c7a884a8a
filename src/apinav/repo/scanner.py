from __future__ import annotations

import logging
import os
from pathlib import Path

from apinav.config import (
    CONTROLLER_FILE_SUFFIX,
    CONTROLLER_MAX_DIR_DEPTH,
    FASTAPI_EXTENSION,
    FRONTEND_API_DIR,
    FRONTEND_EXTENSIONS,
)
from apinav.repo.ignore import should_ignore_dir

logger = logging.getLogger(__name__)


def scan_frontend_files(frontend_root: Path) -> list[str]:
    """
    Absolute paths of .ts/.tsx files that live somewhere below a lib/api directory.
    Sorted for a deterministic scan order.
    """
    out: list[str] = []
    if not frontend_root.is_dir():
        logger.warning(f"Frontend root is not a directory: {frontend_root}")
        return out

    for root, dirs, files in _walk(frontend_root):
        root_p = Path(root)
        dirs[:] = sorted(d for d in dirs if not should_ignore_dir(root_p / d))

        rel_parts = root_p.relative_to(frontend_root).parts
        if not _under_api_dir(rel_parts):
            continue

        for f in sorted(files):
            if f.endswith(FRONTEND_EXTENSIONS):
                out.append(str((root_p / f).resolve()))
    return out


def scan_controller_files(backend_root: Path, max_depth: int = CONTROLLER_MAX_DIR_DEPTH) -> list[str]:
    """*Controller.cs files at most max_depth directories below backend_root."""
    out: list[str] = []
    if not backend_root.is_dir():
        logger.warning(f"Backend root is not a directory: {backend_root}")
        return out

    for root, dirs, files in _walk(backend_root):
        root_p = Path(root)
        depth = len(root_p.relative_to(backend_root).parts)
        if depth >= max_depth:
            dirs[:] = []
        else:
            dirs[:] = sorted(d for d in dirs if not should_ignore_dir(root_p / d))

        for f in sorted(files):
            if f.endswith(CONTROLLER_FILE_SUFFIX):
                out.append(str((root_p / f).resolve()))
    return out


def list_workspace_packages(backend_root: Path) -> set[str]:
    """
    Top-level names importable from backend_root: package directories and
    module files. Imports whose first segment is not in this set belong to
    third-party code and are never followed.
    """
    names: set[str] = set()
    try:
        entries = list(os.scandir(backend_root))
    except OSError as e:
        logger.warning(f"Failed to list backend root {backend_root}: {e}")
        return names

    for entry in entries:
        if entry.is_dir() and not entry.name.startswith(".") and entry.name != "__pycache__":
            names.add(entry.name)
        elif entry.is_file() and entry.name.endswith(FASTAPI_EXTENSION):
            names.add(entry.name[: -len(FASTAPI_EXTENSION)])
    return names


def _under_api_dir(rel_parts: tuple[str, ...]) -> bool:
    n = len(FRONTEND_API_DIR)
    return any(
        tuple(rel_parts[i : i + n]) == FRONTEND_API_DIR for i in range(len(rel_parts) - n + 1)
    )


def _walk(root: Path):
    # Separate helper to make unit testing easier (can be mocked)
    return os.walk(root)


def read_source(path: str, max_bytes: int = 2_000_000) -> str:
    """Read a source file as text. OSError propagates so callers can skip the file."""
    with open(path, "rb") as f:
        data = f.read(max_bytes + 1)
    if len(data) > max_bytes:
        logger.warning(f"{path} is larger than {max_bytes} bytes; only the first {max_bytes} are scanned")
        data = data[:max_bytes]
    return data.decode("utf-8-sig", errors="replace")
