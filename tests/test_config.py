from pathlib import Path

import pytest

from apinav.config import ScanConfig, parse_fastapi_entrypoint, validate_backend_config
from apinav.errors import ConfigError


def test_parse_entrypoint():
    ep = parse_fastapi_entrypoint("app/main.py:app")
    assert ep is not None
    assert ep.file_path == "app/main.py"
    assert ep.app_var == "app"


def test_parse_entrypoint_splits_on_last_colon():
    ep = parse_fastapi_entrypoint(r"C:\proj\main.py:application")
    assert ep is not None
    assert ep.file_path == r"C:\proj\main.py"
    assert ep.app_var == "application"


@pytest.mark.parametrize("value", ["", "main.py", "main.txt:app", "main.py:", ":app", "main.py: "])
def test_parse_entrypoint_rejects_malformed(value):
    assert parse_fastapi_entrypoint(value) is None


def test_validate_backend_config_messages():
    assert validate_backend_config("dotnet", None) is None
    assert validate_backend_config("fastapi", "app/main.py:app") is None

    assert validate_backend_config(None, None) == (
        'Backend kind not configured. Set the backend kind to "dotnet" or "fastapi".'
    )
    assert validate_backend_config("spring", None) == 'Invalid backend kind: "spring". Must be "dotnet" or "fastapi".'
    assert validate_backend_config("fastapi", None) == 'FastAPI entrypoint not configured (e.g. "app/main.py:app").'
    assert validate_backend_config("fastapi", "main:app") == (
        'Invalid FastAPI entrypoint format: "main:app". Expected format: "path/to/file.py:appVar".'
    )


def test_scan_config_resolves_roots(tmp_path: Path):
    cfg = ScanConfig.from_values(workspace=tmp_path, backend_kind="dotnet", http_clients=("http", "axios"))

    assert cfg.frontend_path == (tmp_path / "frontend").resolve()
    assert cfg.backend_path == (tmp_path / "backend").resolve()
    assert cfg.http_clients == ("axios", "http")
    assert cfg.fastapi_entrypoint is None


def test_scan_config_rejects_bad_config(tmp_path: Path):
    with pytest.raises(ConfigError, match="FastAPI entrypoint not configured"):
        ScanConfig.from_values(workspace=tmp_path, backend_kind="fastapi")
