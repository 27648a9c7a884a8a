from __future__ import annotations

import ast
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from apinav.config import ROUTER_GRAPH_MAX_DEPTH, parse_fastapi_entrypoint
from apinav.domain.models import EndpointDescriptor, SourceLocation
from apinav.errors import ConfigError
from apinav.matching.normalize import canonical_path, join_route, route_params
from apinav.repo.scanner import list_workspace_packages, read_source

logger = logging.getLogger(__name__)

_HTTP_METHOD_ATTRS = {
    "get": "GET",
    "post": "POST",
    "put": "PUT",
    "patch": "PATCH",
    "delete": "DELETE",
    "options": "OPTIONS",
    "head": "HEAD",
}

_ROUTER_FACTORIES = {"APIRouter", "FastAPI"}

# module-import binding with no explicit attribute: assume the conventional name
_DEFAULT_ROUTER_VAR = "router"


@dataclass(frozen=True)
class RouterFrame:
    """One unit of router-graph work: scan `var_name` in `file_path` under `prefix`."""

    file_path: Path
    var_name: str
    prefix: str
    depth: int


@dataclass(frozen=True)
class ImportRef:
    module: str             # dotted module, "" for "from . import x"
    level: int              # 0 absolute, >0 relative
    name: Optional[str]     # imported attribute; None when a module itself is bound


@dataclass(frozen=True)
class IncludeCall:
    parent: str
    child: str              # local name, or module alias for dotted targets
    child_attr: Optional[str]
    prefix: str
    line: int


@dataclass(frozen=True)
class RouteDecl:
    router: str
    method: str
    path: str
    line: int
    column: int
    end_line: int
    end_column: int


@dataclass
class ModuleFacts:
    routers: dict[str, str] = field(default_factory=dict)  # var -> own prefix
    includes: list[IncludeCall] = field(default_factory=list)
    routes: list[RouteDecl] = field(default_factory=list)
    imports: dict[str, ImportRef] = field(default_factory=dict)


def scan_fastapi(backend_root: Path, entrypoint: str) -> list[EndpointDescriptor]:
    """
    Walk the router graph from "<file.py>:<var>" and return every route reachable
    from that application object, with include prefixes applied.
    """
    ep = parse_fastapi_entrypoint(entrypoint)
    if ep is None:
        raise ConfigError(f'Invalid FastAPI entrypoint format: "{entrypoint}".')

    backend_root = backend_root.resolve()
    entry_file = (backend_root / ep.file_path).resolve()
    if not entry_file.is_file():
        logger.error(f"FastAPI entrypoint file not found: {entry_file}")
        return []

    packages = list_workspace_packages(backend_root)
    endpoints = walk_router_graph(backend_root, entry_file, ep.app_var, packages)
    logger.info(f"FastAPI: {len(endpoints)} routes reachable from {entrypoint}")
    return endpoints


def walk_router_graph(
    backend_root: Path,
    entry_file: Path,
    app_var: str,
    packages: set[str],
    max_depth: int = ROUTER_GRAPH_MAX_DEPTH,
) -> list[EndpointDescriptor]:
    """
    Explicit stack of frames. Termination is guaranteed twice over: each file is
    expanded at most once, and frames deeper than max_depth are dropped.
    """
    endpoints: list[EndpointDescriptor] = []
    visited: set[str] = set()
    stack = [RouterFrame(file_path=entry_file, var_name=app_var, prefix="", depth=0)]

    while stack:
        frame = stack.pop()
        if frame.depth > max_depth:
            logger.debug(f"Router graph depth cap reached at {frame.file_path}")
            continue
        key = _visit_key(frame.file_path)
        if key in visited:
            continue
        visited.add(key)

        facts = _load_module_facts(frame.file_path)
        if facts is None:
            continue

        found, children = _expand_frame(frame, facts, backend_root, packages)
        endpoints.extend(found)
        # first include is explored first
        stack.extend(reversed(children))

    return endpoints


def _visit_key(path: Path) -> str:
    return os.path.normcase(os.path.normpath(str(path.resolve())))


def _load_module_facts(path: Path) -> Optional[ModuleFacts]:
    try:
        source = read_source(str(path))
    except OSError as e:
        logger.warning(f"Failed to read {path}: {e}")
        return None
    try:
        tree = ast.parse(source, filename=str(path))
    except SyntaxError as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return None
    return extract_module_facts(tree)


def extract_module_facts(tree: ast.AST) -> ModuleFacts:
    """Router assignments, include_router calls, route declarations and imports of one module."""
    facts = ModuleFacts()

    for node in ast.walk(tree):
        if isinstance(node, (ast.Assign, ast.AnnAssign)):
            _collect_router_assignment(node, facts)
        elif isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    facts.imports[alias.asname] = ImportRef(module=alias.name, level=0, name=None)
                elif "." not in alias.name:
                    facts.imports[alias.name] = ImportRef(module=alias.name, level=0, name=None)
        elif isinstance(node, ast.ImportFrom):
            for alias in node.names:
                if alias.name == "*":
                    continue
                facts.imports[alias.asname or alias.name] = ImportRef(
                    module=node.module or "", level=node.level or 0, name=alias.name
                )
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            for dec in node.decorator_list:
                facts.routes.extend(_parse_route_decorator(dec))
        elif isinstance(node, ast.Call):
            include = _parse_include_router_call(node)
            if include is not None:
                facts.includes.append(include)
            facts.routes.extend(_parse_add_api_route_call(node))

    facts.includes.sort(key=lambda inc: inc.line)
    facts.routes.sort(key=lambda r: (r.line, r.column))
    return facts


def _expand_frame(
    frame: RouterFrame,
    facts: ModuleFacts,
    backend_root: Path,
    packages: set[str],
) -> tuple[list[EndpointDescriptor], list[RouterFrame]]:
    children: list[RouterFrame] = []

    if frame.var_name not in facts.routers:
        # re-exported router: follow the import with the same prefix
        target = _resolve_name(frame.var_name, facts, frame.file_path, backend_root, packages)
        if target is not None:
            path, var = target
            children.append(RouterFrame(path, var, frame.prefix, frame.depth + 1))
            return [], children
        # built by a factory or a subclass: still the router this frame scans
        facts.routers[frame.var_name] = ""

    prefixes = _local_prefixes(frame, facts)

    for inc in facts.includes:
        if inc.parent not in prefixes:
            continue
        if inc.child_attr is None and inc.child in facts.routers:
            continue  # local, already folded into prefixes
        target = _resolve_include_target(inc, facts, frame.file_path, backend_root, packages)
        if target is None:
            logger.debug(f"Unresolved include_router target {inc.child} in {frame.file_path}:{inc.line}")
            continue
        path, var = target
        children.append(
            RouterFrame(path, var, join_route(prefixes[inc.parent], inc.prefix), frame.depth + 1)
        )

    found: list[EndpointDescriptor] = []
    for r in facts.routes:
        if r.router not in prefixes:
            continue
        full = join_route(prefixes[r.router], r.path)
        found.append(
            EndpointDescriptor(
                endpoint=canonical_path(full),
                raw_endpoint=full,
                method=r.method,
                params=tuple(route_params(full)),
                location=SourceLocation(
                    file_path=str(frame.file_path),
                    line=r.line,
                    column=r.column,
                    end_line=r.end_line,
                    end_column=r.end_column,
                ),
            )
        )
    return found, children


def _local_prefixes(frame: RouterFrame, facts: ModuleFacts) -> dict[str, str]:
    """
    Effective prefix of every router reachable from the frame's variable through
    include_router calls inside this module. Unmounted routers are absent.
    """
    prefixes = {frame.var_name: join_route(frame.prefix, facts.routers.get(frame.var_name, ""))}

    changed = True
    while changed:
        changed = False
        for inc in facts.includes:
            if inc.child_attr is not None or inc.child not in facts.routers:
                continue
            if inc.parent in prefixes and inc.child not in prefixes:
                mount = join_route(prefixes[inc.parent], inc.prefix)
                prefixes[inc.child] = join_route(mount, facts.routers[inc.child])
                changed = True
    return prefixes


def _resolve_include_target(
    inc: IncludeCall,
    facts: ModuleFacts,
    current_file: Path,
    backend_root: Path,
    packages: set[str],
) -> Optional[tuple[Path, str]]:
    if inc.child_attr is None:
        return _resolve_name(inc.child, facts, current_file, backend_root, packages)

    # users.router where `users` is an imported module
    ref = facts.imports.get(inc.child)
    if ref is None:
        return None
    module = ref.module if ref.name is None else _join_module(ref.module, ref.name)
    path = resolve_module_path(module, ref.level, current_file, backend_root, packages)
    if path is None:
        return None
    return follow_reexports(path, inc.child_attr, backend_root, packages)


def _resolve_name(
    name: str,
    facts: ModuleFacts,
    current_file: Path,
    backend_root: Path,
    packages: set[str],
) -> Optional[tuple[Path, str]]:
    """Resolve an imported name to the module that defines it."""
    target = _resolve_import(name, facts, current_file, backend_root, packages)
    if target is None:
        return None
    return follow_reexports(target[0], target[1], backend_root, packages)


def _resolve_import(
    name: str,
    facts: ModuleFacts,
    current_file: Path,
    backend_root: Path,
    packages: set[str],
) -> Optional[tuple[Path, str]]:
    """One import hop: the file `name` is imported from, and its name there."""
    ref = facts.imports.get(name)
    if ref is None:
        return None
    if ref.name is None:
        path = resolve_module_path(ref.module, ref.level, current_file, backend_root, packages)
        return (path, _DEFAULT_ROUTER_VAR) if path is not None else None

    submodule = resolve_module_path(_join_module(ref.module, ref.name), ref.level, current_file, backend_root, packages)
    path = resolve_module_path(ref.module, ref.level, current_file, backend_root, packages)
    if path is not None:
        if submodule is None or _binds(path, ref.name):
            return path, ref.name

    # "from app.routers import users" with users being a module
    return (submodule, _DEFAULT_ROUTER_VAR) if submodule is not None else None


def follow_reexports(
    path: Path,
    var_name: str,
    backend_root: Path,
    packages: set[str],
    max_hops: int = ROUTER_GRAPH_MAX_DEPTH,
) -> tuple[Path, str]:
    """
    Walk import-only bindings (package __init__ re-exports and the like) to the
    module that actually assigns `var_name`. Intermediate files are read but not
    marked visited, so one package can re-export any number of routers.
    """
    seen: set[str] = set()
    for _ in range(max_hops):
        key = _visit_key(path)
        if key in seen:
            break
        seen.add(key)

        facts = _load_module_facts(path)
        if facts is None or var_name in facts.routers or var_name not in facts.imports:
            break
        target = _resolve_import(var_name, facts, path, backend_root, packages)
        if target is None:
            break
        path, var_name = target
    return path, var_name


def _binds(path: Path, name: str) -> bool:
    facts = _load_module_facts(path)
    return facts is not None and (name in facts.routers or name in facts.imports)


def resolve_module_path(
    module: str,
    level: int,
    current_file: Path,
    backend_root: Path,
    packages: set[str],
) -> Optional[Path]:
    """
    Map a module reference to a file inside the backend root.
    Absolute imports are followed only when their top-level name is one of the
    backend root's own entries; everything else is third-party.
    """
    parts = [p for p in module.split(".") if p]

    if level == 0:
        if not parts or parts[0] not in packages:
            return None
        base = backend_root
    else:
        base = current_file.parent
        for _ in range(level - 1):
            base = base.parent

    target = base.joinpath(*parts) if parts else base
    if parts:
        py_file = Path(f"{target}.py")
        if py_file.is_file():
            return py_file
    init_file = target / "__init__.py"
    if init_file.is_file():
        return init_file
    return None


def _join_module(module: str, name: str) -> str:
    return f"{module}.{name}" if module else name


def _collect_router_assignment(node: ast.AST, facts: ModuleFacts) -> None:
    if isinstance(node, ast.Assign):
        targets = [t for t in node.targets if isinstance(t, ast.Name)]
        value = node.value
    else:
        targets = [node.target] if isinstance(node.target, ast.Name) else []
        value = node.value

    if not targets or not isinstance(value, ast.Call):
        return
    if _callee_name(value.func) not in _ROUTER_FACTORIES:
        return

    prefix = ""
    for kw in value.keywords or []:
        if kw.arg == "prefix":
            prefix = _const_str(kw.value) or ""
    for t in targets:
        facts.routers[t.id] = prefix


def _parse_include_router_call(node: ast.Call) -> Optional[IncludeCall]:
    """
    <parent>.include_router(<child>, prefix="...")
    where <child> is a name or <module>.<attr>.
    """
    func = node.func
    if not isinstance(func, ast.Attribute) or func.attr != "include_router":
        return None
    if not isinstance(func.value, ast.Name) or not node.args:
        return None

    child_node = node.args[0]
    if isinstance(child_node, ast.Name):
        child, child_attr = child_node.id, None
    elif isinstance(child_node, ast.Attribute) and isinstance(child_node.value, ast.Name):
        child, child_attr = child_node.value.id, child_node.attr
    else:
        return None

    prefix = ""
    for kw in node.keywords or []:
        if kw.arg == "prefix":
            # non-literal prefixes cannot be traced statically
            prefix = _const_str(kw.value) or ""

    return IncludeCall(
        parent=func.value.id,
        child=child,
        child_attr=child_attr,
        prefix=prefix,
        line=getattr(node, "lineno", 1) or 1,
    )


def _parse_route_decorator(dec: ast.AST) -> list[RouteDecl]:
    """
    @<router>.<verb>(<path>, ...) or @<router>.api_route(<path>, methods=[...])
    Path is the first positional arg or the `path` keyword, literal only.
    """
    if not isinstance(dec, ast.Call):
        return []
    func = dec.func
    if not isinstance(func, ast.Attribute) or not isinstance(func.value, ast.Name):
        return []

    if func.attr in _HTTP_METHOD_ATTRS:
        methods = [_HTTP_METHOD_ATTRS[func.attr]]
    elif func.attr == "api_route":
        methods = _keyword_methods(dec) or []
    else:
        return []

    path = _path_argument(dec)
    if path is None:
        return []
    return [_route_decl(func.value.id, m, path, dec) for m in methods]


def _parse_add_api_route_call(node: ast.Call) -> list[RouteDecl]:
    """<router>.add_api_route(<path>, <handler>, methods=[...]); no default methods guessed."""
    func = node.func
    if not isinstance(func, ast.Attribute) or func.attr != "add_api_route":
        return []
    if not isinstance(func.value, ast.Name) or len(node.args) < 2:
        return []

    path = _const_str(node.args[0])
    if path is None:
        return []
    methods = _keyword_methods(node) or []
    return [_route_decl(func.value.id, m, path, node) for m in methods]


def _route_decl(router: str, method: str, path: str, node: ast.AST) -> RouteDecl:
    line = getattr(node, "lineno", 1) or 1
    return RouteDecl(
        router=router,
        method=method,
        path=path,
        line=line,
        column=getattr(node, "col_offset", 0) or 0,
        end_line=getattr(node, "end_lineno", line) or line,
        end_column=getattr(node, "end_col_offset", 0) or 0,
    )


def _path_argument(call: ast.Call) -> Optional[str]:
    if call.args:
        value = _const_str(call.args[0])
        if value is not None:
            return value
    for kw in call.keywords or []:
        if kw.arg == "path":
            return _const_str(kw.value)
    return None


def _keyword_methods(call: ast.Call) -> Optional[list[str]]:
    for kw in call.keywords or []:
        if kw.arg == "methods":
            return _const_str_list(kw.value)
    return None


def _callee_name(node: ast.AST) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return ""


def _const_str(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value.strip()
    # f-strings, .format() and concatenations are not evaluated
    return None


def _const_str_list(node: ast.AST) -> Optional[list[str]]:
    # methods=["GET","POST"] or ("GET",)
    if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
        out = []
        for elt in node.elts:
            s = _const_str(elt)
            if s is None:
                return None
            out.append(s.upper())
        return out

    s = _const_str(node)
    if s is not None:
        return [s.upper()]
    return None
