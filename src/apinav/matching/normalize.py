from __future__ import annotations

import re
from typing import NamedTuple, Sequence

WILDCARD = "*"
FALLBACK_PARAM = "param"

_INTERPOLATION = re.compile(r"\$\{([^}]*)\}")
_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")
_MULTI_SLASH = re.compile(r"/{2,}")
# a "?" that is not inside {..}, so optional markers like {id?} survive
_QUERY_START = re.compile(r"\?(?![^{}]*\})")

_IDENT = r"[A-Za-z_$][\w$]*"
_BARE_IDENT = re.compile(rf"^{_IDENT}$")
_MEMBER = re.compile(rf"^{_IDENT}(?:\s*\??\.\s*{_IDENT})*\s*\??\.\s*({_IDENT})$")
_COMPUTED = re.compile(rf"^{_IDENT}(?:\s*\??\.\s*{_IDENT})*\s*\[\s*[\"']([^\"']+)[\"']\s*\]$")
_CALL = re.compile(rf"^({_IDENT})\s*\(.*\)$", re.DOTALL)


class NormalizedPath(NamedTuple):
    display: str
    params: list[str]
    key: str


class TemplatePath(NamedTuple):
    raw: str
    display: str
    params: list[str]


def strip_query(path: str) -> str:
    m = _QUERY_START.search(path)
    return path if m is None else path[: m.start()]


def interpolation_name(expr: str) -> str:
    """
    Name a template interpolation the way a reader would:
      ${id} -> id, ${user.id} -> id, ${obj["id"]} -> id, ${getId()} -> getId
    Anything else falls back to "param".
    """
    expr = (expr or "").strip()
    if _BARE_IDENT.match(expr):
        return expr
    m = _MEMBER.match(expr)
    if m:
        return m.group(1)
    m = _COMPUTED.match(expr)
    if m:
        return m.group(1)
    m = _CALL.match(expr)
    if m:
        return m.group(1)
    return FALLBACK_PARAM


def _split_placeholder(body: str) -> tuple[str, str]:
    """
    Split the inside of a {..} placeholder into (display_body, name).
      id            -> ("id", "id")
      id:int:min(1) -> ("id", "id")
      id:int?       -> ("id?", "id")
      **slug        -> ("**slug", "slug")
    """
    stars = ""
    rest = body.strip()
    while rest.startswith("*") and len(stars) < 2:
        stars += "*"
        rest = rest[1:]

    name, sep, constraint = rest.partition(":")
    optional = name.endswith("?") or (bool(sep) and constraint.endswith("?"))
    name = name.rstrip("?").strip() or FALLBACK_PARAM
    return f"{stars}{name}{'?' if optional else ''}", name


def canonical_path(path: str) -> str:
    """
    Canonical display form: no query string, interpolations rendered as {name},
    route constraints dropped, leading slash. Idempotent.
    """
    p = strip_query((path or "").strip())
    p = _INTERPOLATION.sub(lambda m: "{" + interpolation_name(m.group(1)) + "}", p)
    p = _PLACEHOLDER.sub(lambda m: "{" + _split_placeholder(m.group(1))[0] + "}", p)
    if not p.startswith("/"):
        p = "/" + p
    return p


def path_params(path: str, unique: bool = False) -> list[str]:
    """Ordered parameter names of a path in either syntax."""
    display = canonical_path(path)
    out: list[str] = []
    for m in _PLACEHOLDER.finditer(display):
        name = _split_placeholder(m.group(1))[1]
        if unique and name in out:
            continue
        out.append(name)
    return out


def route_params(path: str) -> list[str]:
    """Definition-side parameters: first occurrence wins."""
    return path_params(path, unique=True)


def match_key(path: str, method: str = "GET") -> str:
    """
    "/api/Users/{id:int}", "get" -> "/api/users/*:GET"
    Parameter names never take part in identity.
    """
    display = canonical_path(path)
    wildcarded = _PLACEHOLDER.sub(WILDCARD, display).lower()
    return f"{wildcarded}:{(method or 'GET').strip().upper()}"


def normalize(path: str, method: str = "GET") -> NormalizedPath:
    display = canonical_path(path)
    return NormalizedPath(display=display, params=path_params(display), key=match_key(display, method))


def template_path(literals: Sequence[str], names: Sequence[str], keep_query: bool = False) -> TemplatePath:
    """
    Rebuild a template literal from its literal segments and interpolation names.

    An interpolation is a route parameter only when the literal right before it
    ends with "/"; otherwise it is query material and is dropped from the
    display path and the parameter list. The query string is cut from the
    display afterwards, even when an interpolation inside it was a route param,
    unless keep_query is set.
      `/api/users/${id}`       -> /api/users/{id}, [id]
      `/api/Users${query}`     -> /api/Users, []
      `/api/users?page=${p}`   -> /api/users, []
      `/api/files?dir=/${p}`   -> /api/files, [p]
    """
    raw = ""
    display = ""
    params: list[str] = []

    for i, literal in enumerate(literals):
        raw += literal
        display += literal
        if i >= len(names):
            continue
        name = names[i]
        raw += "${" + name + "}"
        if literal.endswith("/"):
            params.append(name)
            display += "{" + name + "}"

    return TemplatePath(raw=raw, display=display if keep_query else strip_query(display), params=params)


def collapse_slashes(path: str) -> str:
    return _MULTI_SLASH.sub("/", path)


def join_route(prefix: str, route: str) -> str:
    """
    Join a router prefix and a route path the way routers mount them.
      ("/api", "users/{id}") -> "/api/users/{id}"
      ("", "")               -> "/"
    """
    full = (prefix or "").strip()
    if full and not full.startswith("/"):
        full = "/" + full

    tail = (route or "").strip()
    if tail and not tail.startswith("/"):
        tail = "/" + tail

    if full and tail:
        full = full + tail
    else:
        full = full or tail or "/"

    full = collapse_slashes(full)
    if len(full) > 1 and full.endswith("/"):
        full = full[:-1]
    return full
