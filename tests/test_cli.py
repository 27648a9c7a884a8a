from pathlib import Path
import json
import textwrap

from typer.testing import CliRunner

from apinav.cli import app

runner = CliRunner()

CLEAN_ENV = {
    "APINAV_FRONTEND_ROOT": None,
    "APINAV_BACKEND_ROOT": None,
    "APINAV_BACKEND_KIND": None,
    "APINAV_FASTAPI_ENTRYPOINT": None,
}


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def make_workspace(root: Path) -> Path:
    write(
        root / "backend" / "Controllers" / "HelloController.cs",
        """
        [ApiController]
        [Route("api")]
        public class HelloController : ControllerBase
        {
            [HttpGet("hello")]
            public IActionResult Hello() => Ok();
        }
        """,
    )
    write(
        root / "frontend" / "src" / "lib" / "api" / "hello.ts",
        """
        export const a = () => fetch("/api/hello");
        export const b = () => fetch("/api/goodbye");
        """,
    )
    return root


def test_scan_json(tmp_path: Path):
    ws = make_workspace(tmp_path)

    result = runner.invoke(app, ["scan", str(ws), "--backend-kind", "dotnet", "--format", "json"], env=CLEAN_ENV)

    assert result.exit_code == 0, result.output
    rows = json.loads(result.stdout)
    assert [(r["endpoint"], r["http_method"], r["status"]) for r in rows] == [
        ("/api/hello", "GET", "valid"),
        ("/api/goodbye", "GET", "unresolved"),
    ]
    assert rows[0]["backend"]["line"] == 6


def test_scan_status_filter_and_env_fallback(tmp_path: Path):
    ws = make_workspace(tmp_path)
    env = dict(CLEAN_ENV, APINAV_BACKEND_KIND="dotnet")

    result = runner.invoke(app, ["scan", str(ws), "--status", "unresolved", "--format", "json"], env=env)

    assert result.exit_code == 0, result.output
    assert [r["endpoint"] for r in json.loads(result.stdout)] == ["/api/goodbye"]


def test_scan_table_prints_summary(tmp_path: Path):
    ws = make_workspace(tmp_path)

    result = runner.invoke(app, ["scan", str(ws), "--backend-kind", "dotnet"], env=CLEAN_ENV)

    assert result.exit_code == 0, result.output
    assert "2 endpoints (1 valid, 1 with issues)" in result.stdout


def test_scan_without_backend_kind_fails(tmp_path: Path):
    ws = make_workspace(tmp_path)

    result = runner.invoke(app, ["scan", str(ws)], env=CLEAN_ENV)

    assert result.exit_code != 0
    assert "Backend kind not configured" in result.output


def test_show(tmp_path: Path):
    ws = make_workspace(tmp_path)

    result = runner.invoke(
        app, ["show", "/api/hello", "--workspace", str(ws), "--backend-kind", "dotnet"], env=CLEAN_ENV
    )

    assert result.exit_code == 0, result.output
    assert "Status: valid" in result.stdout
    assert "1 frontend call site(s)" in result.stdout


def test_show_unknown_endpoint(tmp_path: Path):
    ws = make_workspace(tmp_path)

    result = runner.invoke(
        app, ["show", "/api/nope", "--workspace", str(ws), "--backend-kind", "dotnet"], env=CLEAN_ENV
    )

    assert result.exit_code == 1


def test_goto_resolves_backend_location(tmp_path: Path):
    ws = make_workspace(tmp_path)
    args = ["--workspace", str(ws), "--backend-kind", "dotnet"]

    result = runner.invoke(app, ["goto", "frontend/src/lib/api/hello.ts", "2", "32", *args], env=CLEAN_ENV)
    assert result.exit_code == 0, result.output
    assert "HelloController.cs:6" in result.stdout

    missing = runner.invoke(app, ["goto", "frontend/src/lib/api/hello.ts", "3", "32", *args], env=CLEAN_ENV)
    assert missing.exit_code == 1
    assert "No backend definition found" in missing.stdout

    nothing = runner.invoke(app, ["goto", "frontend/src/lib/api/hello.ts", "2", "0", *args], env=CLEAN_ENV)
    assert nothing.exit_code == 1
