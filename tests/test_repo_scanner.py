import logging
from pathlib import Path

from apinav.repo.scanner import list_workspace_packages, read_source, scan_frontend_files


def touch(p: Path, text: str = "") -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")


def test_scan_frontend_files_only_under_lib_api(tmp_path: Path):
    touch(tmp_path / "src" / "lib" / "api" / "users.ts")
    touch(tmp_path / "src" / "lib" / "api" / "nested" / "Orders.tsx")
    touch(tmp_path / "src" / "lib" / "api" / "readme.md")
    touch(tmp_path / "src" / "lib" / "utils.ts")
    touch(tmp_path / "node_modules" / "x" / "lib" / "api" / "dep.ts")

    files = scan_frontend_files(tmp_path)

    names = [Path(p).name for p in files]
    assert names == ["users.ts", "Orders.tsx"]


def test_scan_frontend_files_missing_root(tmp_path: Path):
    assert scan_frontend_files(tmp_path / "nope") == []


def test_list_workspace_packages(tmp_path: Path):
    touch(tmp_path / "app" / "__init__.py")
    touch(tmp_path / "main.py")
    touch(tmp_path / "README.md")
    (tmp_path / ".venv").mkdir()
    (tmp_path / "__pycache__").mkdir()

    assert list_workspace_packages(tmp_path) == {"app", "main"}


def test_read_source_strips_bom(tmp_path: Path):
    p = tmp_path / "bom.ts"
    p.write_bytes(b"\xef\xbb\xbffetch('/api/x');")
    assert read_source(str(p)) == "fetch('/api/x');"


def test_read_source_warns_when_truncated(tmp_path: Path, caplog):
    p = tmp_path / "big.ts"
    p.write_bytes(b"fetch('/api/x');\n" * 10)

    with caplog.at_level(logging.WARNING, logger="apinav.repo.scanner"):
        text = read_source(str(p), max_bytes=16)

    assert text == "fetch('/api/x');"
    assert "big.ts is larger than 16 bytes" in caplog.text


def test_read_source_exact_size_is_silent(tmp_path: Path, caplog):
    p = tmp_path / "small.ts"
    p.write_bytes(b"fetch('/api/x');")

    with caplog.at_level(logging.WARNING, logger="apinav.repo.scanner"):
        assert read_source(str(p), max_bytes=16) == "fetch('/api/x');"

    assert caplog.records == []
