from pathlib import Path
import textwrap

import pytest

from apinav.errors import ConfigError
from apinav.extractors.fastapi.routers import scan_fastapi, walk_router_graph
from apinav.repo.scanner import list_workspace_packages


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def make_app(root: Path) -> Path:
    be = root / "backend"
    write(be / "app" / "__init__.py", "")
    write(
        be / "app" / "main.py",
        """
        from fastapi import FastAPI
        from fastapi_users import router as auth_router
        from app.routers import users
        from app.routers.items import router as items_router
        from .health import router as health_router

        app = FastAPI()
        app.include_router(users.router, prefix="/api/users")
        app.include_router(items_router, prefix="/api")
        app.include_router(health_router)
        app.include_router(auth_router, prefix="/api/auth")


        @app.get("/api/ping")
        def ping():
            return {"ok": True}
        """,
    )
    write(be / "app" / "routers" / "__init__.py", "")
    write(
        be / "app" / "routers" / "users.py",
        """
        from fastapi import APIRouter

        router = APIRouter()

        @router.get("/")
        def list_users():
            return []

        @router.get("/{user_id}")
        async def get_user(user_id: int):
            return {}

        @router.api_route("/{user_id}", methods=["PUT", "PATCH"])
        def update_user(user_id: int):
            return {}
        """,
    )
    write(
        be / "app" / "routers" / "items.py",
        """
        from fastapi import APIRouter

        router = APIRouter(prefix="/items")
        admin = APIRouter()
        unused = APIRouter()

        router.include_router(admin, prefix="/admin")

        @router.post("")
        def create_item():
            return {}

        @admin.delete(path="/{item_id}")
        def purge(item_id: int):
            return {}

        @unused.get("/never")
        def never():
            return {}

        def stats():
            return {}

        router.add_api_route("/stats", stats, methods=["GET"])
        """,
    )
    write(
        be / "app" / "health.py",
        """
        from fastapi import APIRouter

        router = APIRouter()

        @router.get("/api/health")
        def health():
            return {"ok": True}
        """,
    )
    return be


def test_router_graph_composes_prefixes(tmp_path: Path):
    be = make_app(tmp_path)

    found = scan_fastapi(be, "app/main.py:app")

    assert {(d.method, d.endpoint) for d in found} == {
        ("GET", "/api/ping"),
        ("GET", "/api/users"),
        ("GET", "/api/users/{user_id}"),
        ("PUT", "/api/users/{user_id}"),
        ("PATCH", "/api/users/{user_id}"),
        ("POST", "/api/items"),
        ("DELETE", "/api/items/admin/{item_id}"),
        ("GET", "/api/items/stats"),
        ("GET", "/api/health"),
    }
    assert len(found) == 9


def test_entry_file_routes_come_first_with_decorator_location(tmp_path: Path):
    be = make_app(tmp_path)

    found = scan_fastapi(be, "app/main.py:app")

    first = found[0]
    assert first.endpoint == "/api/ping"
    assert first.location.file_path.endswith("main.py")
    assert first.location.line == 15


def test_params_follow_definition_syntax(tmp_path: Path):
    be = make_app(tmp_path)

    found = scan_fastapi(be, "app/main.py:app")

    purge = next(d for d in found if d.method == "DELETE")
    assert purge.params == ("item_id",)


def test_cyclic_includes_terminate(tmp_path: Path):
    be = tmp_path / "backend"
    write(
        be / "main.py",
        """
        from fastapi import FastAPI
        from a import router as a_router

        app = FastAPI()
        app.include_router(a_router, prefix="/api")
        """,
    )
    write(
        be / "a.py",
        """
        from fastapi import APIRouter
        from b import router as b_router

        router = APIRouter()
        router.include_router(b_router, prefix="/b")

        @router.get("/x")
        def x():
            return {}
        """,
    )
    write(
        be / "b.py",
        """
        from fastapi import APIRouter
        from a import router as a_router

        router = APIRouter()
        router.include_router(a_router, prefix="/a")

        @router.get("/y")
        def y():
            return {}
        """,
    )

    found = scan_fastapi(be, "main.py:app")
    assert [d.endpoint for d in found] == ["/api/x", "/api/b/y"]

    capped = walk_router_graph(be.resolve(), (be / "main.py").resolve(), "app", list_workspace_packages(be), max_depth=1)
    assert [d.endpoint for d in capped] == ["/api/x"]


def test_reexported_router_is_followed(tmp_path: Path):
    be = tmp_path / "backend"
    write(
        be / "main.py",
        """
        from fastapi import FastAPI
        from app.api import api_router

        app = FastAPI()
        app.include_router(api_router, prefix="/api")
        """,
    )
    write(be / "app" / "__init__.py", "")
    write(be / "app" / "api" / "__init__.py", "from .routes import api_router\n")
    write(
        be / "app" / "api" / "routes.py",
        """
        from fastapi import APIRouter

        api_router = APIRouter()

        @api_router.get("/reports/{report_id}")
        def report(report_id: str):
            return {}
        """,
    )

    found = scan_fastapi(be, "main.py:app")
    assert [(d.method, d.endpoint) for d in found] == [("GET", "/api/reports/{report_id}")]


def test_package_reexporting_several_routers(tmp_path: Path):
    be = tmp_path / "backend"
    write(
        be / "main.py",
        """
        from fastapi import FastAPI
        from app.routers import items_router, users_router

        app = FastAPI()
        app.include_router(users_router, prefix="/api/users")
        app.include_router(items_router, prefix="/api/items")
        """,
    )
    write(be / "app" / "__init__.py", "")
    write(
        be / "app" / "routers" / "__init__.py",
        """
        from .users import router as users_router
        from .items import router as items_router
        """,
    )
    for name in ("users", "items"):
        write(
            be / "app" / "routers" / f"{name}.py",
            """
            from fastapi import APIRouter

            router = APIRouter()

            @router.get("/{id}")
            def get_one(id: int):
                return {}
            """,
        )

    found = scan_fastapi(be, "main.py:app")
    assert [(d.method, d.endpoint) for d in found] == [
        ("GET", "/api/users/{id}"),
        ("GET", "/api/items/{id}"),
    ]


def test_app_built_by_a_factory(tmp_path: Path):
    be = tmp_path / "backend"
    write(
        be / "main.py",
        """
        from fastapi import FastAPI
        from routes import router as api_router


        def create_app() -> FastAPI:
            return FastAPI(title="demo")


        app = create_app()
        app.include_router(api_router, prefix="/api")


        @app.get("/api/health")
        def health():
            return {"ok": True}
        """,
    )
    write(
        be / "routes.py",
        """
        from fastapi import APIRouter

        router = APIRouter()

        @router.get("/version")
        def version():
            return {}
        """,
    )

    found = scan_fastapi(be, "main.py:app")
    assert [d.endpoint for d in found] == ["/api/health", "/api/version"]


def test_imported_factory_app_is_scanned_where_it_is_bound(tmp_path: Path):
    be = tmp_path / "backend"
    write(be / "main.py", "from core import app\n")
    write(
        be / "core.py",
        """
        from factory import create_app

        app = create_app()

        @app.get("/api/status")
        def status():
            return {}
        """,
    )
    write(be / "factory.py", "def create_app():\n    ...\n")

    found = scan_fastapi(be, "main.py:app")
    assert [d.endpoint for d in found] == ["/api/status"]


def test_unparseable_module_is_skipped(tmp_path: Path):
    be = tmp_path / "backend"
    write(
        be / "main.py",
        """
        from fastapi import FastAPI
        from broken import router as broken_router

        app = FastAPI()
        app.include_router(broken_router)

        @app.get("/api/ok")
        def ok():
            return {}
        """,
    )
    write(be / "broken.py", "def oops(:\n")

    found = scan_fastapi(be, "main.py:app")
    assert [d.endpoint for d in found] == ["/api/ok"]


def test_missing_entry_file_yields_nothing(tmp_path: Path):
    be = tmp_path / "backend"
    be.mkdir()
    assert scan_fastapi(be, "main.py:app") == []


def test_malformed_entrypoint_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        scan_fastapi(tmp_path, "main.py")
