"""Route extraction from ASP.NET controller classes.

Two passes per file, on source text only:
  1. find the controller class, its brace-delimited span, and the [Route] /
     [ApiController] attributes just above it;
  2. inside the span, every [HttpGet]/[HttpPost]/... attribute becomes one
     route, composed with the class route and the nearest action name.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from apinav.config import ACTION_SIGNATURE_LOOKAHEAD, CLASS_ATTRIBUTE_LOOKBACK
from apinav.domain.models import EndpointDescriptor, SourceLocation
from apinav.matching.normalize import canonical_path, collapse_slashes, route_params
from apinav.repo.scanner import read_source, scan_controller_files

logger = logging.getLogger(__name__)

_CLASS_DECL = re.compile(
    r"\b(?:public|internal)\s+(?:(?:abstract|sealed|partial|static)\s+)*class\s+(\w+?)Controller\s*"
    r"(?:<[^>]+>)?\s*:\s*(?:Microsoft\.AspNetCore\.Mvc\.)?(?:Controller|ControllerBase|ApiController)\b"
)
_STOP_LOOKBACK = re.compile(r"^\s*(public|private|internal|protected|class|namespace|interface)\s")
_API_CONTROLLER = re.compile(r"\[\s*(?:[\w.]*\.)?ApiController\s*[\],(]")
_CLASS_ROUTE = re.compile(r"\[\s*(?:[\w.]*\.)?Route\s*\(\s*@?\"([^\"]*)\"")
_HTTP_ATTRIBUTE = re.compile(
    r"\bHttp(Get|Post|Put|Delete|Patch|Head|Options)(?:Attribute)?\s*"
    r"(?:\(\s*(?:(?:template\s*:\s*)?@?\"([^\"]*)\")?[^)\]]*\))?\s*[\],]"
)
_ACTION_DECL = re.compile(
    r"\b(?:public|private|protected|internal)\s+"
    r"(?:(?:virtual|override|async|static|new|sealed)\s+)*"
    r"[\w<>\[\],.?\s]+?\s+(\w+)\s*(?:<[^>()]*>)?\s*\("
)
_CONTROLLER_TOKEN = re.compile(r"\[controller\]", re.IGNORECASE)
_ACTION_TOKEN = re.compile(r"\[action\]", re.IGNORECASE)


@dataclass(frozen=True)
class ControllerContext:
    name: str               # without the "Controller" suffix
    class_route: str
    is_api_controller: bool
    start_line: int         # 0-based, inclusive
    end_line: int           # 0-based, inclusive


def scan_controllers(backend_root: Path) -> list[EndpointDescriptor]:
    files = scan_controller_files(backend_root)
    logger.debug(f"Controllers: {len(files)} candidate files under {backend_root}")

    endpoints: list[EndpointDescriptor] = []
    for p in files:
        try:
            source = read_source(p)
        except OSError as e:
            logger.warning(f"Failed to read {p}: {e}")
            continue
        endpoints.extend(extract_routes_from_source(source, p))

    logger.info(f"Controllers: {len(endpoints)} routes in {len(files)} files")
    return endpoints


def extract_routes_from_source(source: str, file_path: str = "") -> list[EndpointDescriptor]:
    lines = source.split("\n")
    controller = find_controller_context(lines)
    if controller is None:
        return []
    return _find_action_routes(lines, controller, file_path)


def find_controller_context(lines: list[str]) -> Optional[ControllerContext]:
    start = -1
    name = ""
    for i, line in enumerate(lines):
        if _is_comment(line):
            continue
        m = _CLASS_DECL.search(line)
        if m:
            name = m.group(1)
            start = i
            break

    if start == -1 or not name:
        return None

    end = _matching_brace_line(lines, start)

    class_route = ""
    is_api = False
    for i in range(start - 1, max(-1, start - 1 - CLASS_ATTRIBUTE_LOOKBACK), -1):
        line = lines[i].strip()
        if _STOP_LOOKBACK.match(line) and "[" not in line:
            break
        if _is_comment(line):
            continue
        if _API_CONTROLLER.search(line):
            is_api = True
        m = _CLASS_ROUTE.search(line)
        if m and not class_route:
            # nearest [Route] to the class wins
            class_route = m.group(1)

    return ControllerContext(
        name=name,
        class_route=class_route,
        is_api_controller=is_api,
        start_line=start,
        end_line=end,
    )


def _matching_brace_line(lines: list[str], start: int) -> int:
    depth = 0
    opened = False
    for i in range(start, len(lines)):
        for ch in lines[i]:
            if ch == "{":
                depth += 1
                opened = True
            elif ch == "}":
                depth -= 1
        if opened and depth <= 0:
            return i
    return len(lines) - 1


def _find_action_routes(
    lines: list[str],
    controller: ControllerContext,
    file_path: str,
) -> list[EndpointDescriptor]:
    out: list[EndpointDescriptor] = []

    for i in range(controller.start_line, controller.end_line + 1):
        line = lines[i]
        if _is_comment(line) or "Http" not in line:
            continue

        for m in _HTTP_ATTRIBUTE.finditer(line):
            method = m.group(1).upper()
            method_route = m.group(2) or ""
            action = _nearest_action_name(lines, i, controller.end_line)

            full = build_full_endpoint(controller.class_route, method_route, controller.name, action)
            out.append(
                EndpointDescriptor(
                    endpoint=canonical_path(full),
                    raw_endpoint=full,
                    method=method,
                    params=tuple(route_params(full)),
                    location=SourceLocation(
                        file_path=file_path,
                        line=i + 1,
                        column=m.start(),
                        end_line=i + 1,
                        end_column=m.end(),
                    ),
                )
            )
    return out


def _nearest_action_name(lines: list[str], from_line: int, end_line: int) -> str:
    for j in range(from_line, min(from_line + ACTION_SIGNATURE_LOOKAHEAD, end_line + 1)):
        m = _ACTION_DECL.search(lines[j])
        if m:
            return m.group(1)
    return ""


def build_full_endpoint(
    class_route: str,
    method_route: str,
    controller_name: str,
    action_name: str = "",
) -> str:
    """
    Compose class and action routes into one /api path.
      ("api/[controller]", "{id}", "Users")  -> "/api/users/{id}"
      ("api", "hello", "Hello")              -> "/api/hello"
      ("", "", "Ping")                        -> "/api"
    """
    route = _substitute_tokens(class_route or "", controller_name, action_name)
    tail = _substitute_tokens(method_route or "", controller_name, action_name)

    if route and not route.startswith("/"):
        route = "/" + route
    if tail:
        if route and not route.endswith("/") and not tail.startswith("/"):
            route += "/"
        route += tail

    route = collapse_slashes(route)
    if not route.startswith("/"):
        route = "/" + route

    # plain prefix test: "/apiv2/x" already counts as prefixed
    if not route.lower().startswith("/api"):
        route = "/api" + (route if route != "/" else "")

    if len(route) > 1 and route.endswith("/"):
        route = route[:-1]
    return route


def _substitute_tokens(route: str, controller_name: str, action_name: str) -> str:
    route = _CONTROLLER_TOKEN.sub(controller_name.lower(), route)
    if action_name:
        route = _ACTION_TOKEN.sub(action_name.lower(), route)
    return route


def _is_comment(line: str) -> bool:
    stripped = line.lstrip()
    return stripped.startswith("//") or stripped.startswith("*") or stripped.startswith("/*")
