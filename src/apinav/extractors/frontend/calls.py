"""Syntax-tree extraction of HTTP client call sites from TypeScript/TSX sources.

Recognized call shapes:
  fetch(path[, { method }])
  fetch(new Request(path[, { method }])[, { method }])
  <client>.get/post/put/delete/patch/head/options(path, ...)
  <client>({ url: path, method })

Path arguments may be string literals, template literals or "+"-concatenations
of literals, identifiers and member accesses. Only paths starting with "/api/"
or "api/" count. Uses tree-sitter only; never evaluates the source.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple, Optional, Sequence

import tree_sitter_typescript as ts_typescript
from tree_sitter import Language, Node, Parser

from apinav.config import DEFAULT_HTTP_CLIENTS
from apinav.domain.models import EndpointDescriptor, SourceLocation
from apinav.errors import FrontendParseError
from apinav.matching.normalize import FALLBACK_PARAM, strip_query, template_path

API_PREFIXES = ("/api/", "api/")

_HTTP_VERBS = {
    "get": "GET",
    "post": "POST",
    "put": "PUT",
    "delete": "DELETE",
    "patch": "PATCH",
    "head": "HEAD",
    "options": "OPTIONS",
}

_WRAPPERS = {
    "parenthesized_expression",
    "as_expression",
    "satisfies_expression",
    "non_null_expression",
}

_TS_LANGUAGE = Language(ts_typescript.language_typescript())
_TSX_LANGUAGE = Language(ts_typescript.language_tsx())


class _PathHit(NamedTuple):
    raw: str
    display: str
    params: list[str]
    node: Node


def is_api_path(text: str) -> bool:
    return text.startswith(API_PREFIXES)


def with_leading_slash(path: str) -> str:
    return path if path.startswith("/") else "/" + path


def extract_call_sites(
    source: str,
    file_path: str = "",
    tsx: bool = False,
    http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
) -> list[EndpointDescriptor]:
    """
    Parse source and return one descriptor per recognized call, in document order.
    Raises FrontendParseError when the tree contains syntax errors.
    """
    src = source.encode("utf-8")
    parser = Parser(_TSX_LANGUAGE if tsx else _TS_LANGUAGE)
    tree = parser.parse(src)

    if tree.root_node.has_error:
        bad = _first_error(tree.root_node) or tree.root_node
        raise FrontendParseError(file_path, bad.start_point[0] + 1, bad.start_point[1])

    clients = set(http_clients)
    out: list[EndpointDescriptor] = []
    for node in _iter_nodes(tree.root_node):
        if node.type != "call_expression":
            continue
        found = _endpoint_from_call(node, src, clients)
        if found is None:
            continue
        hit, method = found
        out.append(
            EndpointDescriptor(
                endpoint=hit.display,
                raw_endpoint=hit.raw,
                method=method,
                params=tuple(hit.params),
                location=_location(hit.node, src, file_path),
            )
        )
    return out


def _iter_nodes(root: Node) -> Iterable[Node]:
    # pre-order, document order; every node visited once
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _first_error(root: Node) -> Optional[Node]:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        stack.extend(reversed([c for c in node.children if c.has_error or c.is_missing]))
    return None


def _endpoint_from_call(call: Node, src: bytes, clients: set[str]) -> Optional[tuple[_PathHit, str]]:
    func = call.child_by_field_name("function")
    if func is None:
        return None
    args = _arguments(call)

    if func.type == "identifier":
        name = _text(func, src)
        if name == "fetch":
            return _from_fetch(args, src)
        if name in clients:
            return _from_config_object(args, src)
        return None

    if func.type == "member_expression":
        prop = func.child_by_field_name("property")
        verb = _text(prop, src) if prop is not None else ""
        if verb in _HTTP_VERBS and args:
            hit = _path_from_argument(args[0], src)
            if hit is not None:
                return hit, _HTTP_VERBS[verb]

    return None


def _from_fetch(args: list[Node], src: bytes) -> Optional[tuple[_PathHit, str]]:
    if not args:
        return None

    target = _unwrap(args[0])
    method: Optional[str] = None

    if target.type == "new_expression":
        ctor = target.child_by_field_name("constructor")
        if ctor is None or _text(ctor, src) != "Request":
            return None
        request_args = _arguments(target)
        if not request_args:
            return None
        hit = _path_from_argument(request_args[0], src)
        if len(request_args) > 1:
            method = _method_from_options(request_args[1], src)
    else:
        hit = _path_from_argument(target, src)

    if hit is None:
        return None

    if len(args) > 1:
        method = _method_from_options(args[1], src) or method
    return hit, method or "GET"


def _from_config_object(args: list[Node], src: bytes) -> Optional[tuple[_PathHit, str]]:
    if not args:
        return None
    config = _unwrap(args[0])
    if config.type != "object":
        return None

    url = _object_property(config, "url", src)
    if url is None:
        return None
    hit = _path_from_argument(url, src)
    if hit is None:
        return None
    return hit, _method_from_options(config, src) or "GET"


def _path_from_argument(arg: Node, src: bytes) -> Optional[_PathHit]:
    node = _unwrap(arg)

    if node.type == "string":
        value = _string_value(node, src)
        if not is_api_path(value):
            return None
        return _PathHit(value, with_leading_slash(strip_query(value)), [], node)

    if node.type == "template_string":
        literals, names = _template_parts(node, src)
        tp = template_path(literals, names)
        if not is_api_path(tp.raw):
            return None
        return _PathHit(tp.raw, with_leading_slash(tp.display), tp.params, node)

    if node.type == "binary_expression" and _operator(node, src) == "+":
        parts: list[str] = []
        params: list[str] = []
        _flatten_concat(node, src, parts, params)
        joined = "".join(parts)
        if not is_api_path(joined):
            return None
        return _PathHit(joined, with_leading_slash(strip_query(joined)), params, node)

    return None


def _flatten_concat(node: Node, src: bytes, parts: list[str], params: list[str]) -> None:
    node = _unwrap(node)

    if node.type == "string":
        parts.append(_string_value(node, src))
    elif node.type == "binary_expression" and _operator(node, src) == "+":
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is not None:
            _flatten_concat(left, src, parts, params)
        if right is not None:
            _flatten_concat(right, src, parts, params)
    elif node.type == "template_string":
        literals, names = _template_parts(node, src)
        # the joined path is query-stripped once at the end
        tp = template_path(literals, names, keep_query=True)
        parts.append(tp.display)
        params.extend(tp.params)
    elif node.type in ("identifier", "member_expression", "subscript_expression"):
        name = expression_name(node, src)
        params.append(name)
        parts.append("{" + name + "}")
    # other operands (calls, numbers, ...) contribute nothing


def _template_parts(node: Node, src: bytes) -> tuple[list[str], list[str]]:
    """Literal segments and interpolation names of a template string, by byte range."""
    literals: list[str] = []
    names: list[str] = []
    cursor = node.start_byte + 1  # past the opening backtick

    for child in node.children:
        if child.type != "template_substitution":
            continue
        literals.append(src[cursor : child.start_byte].decode("utf-8", errors="replace"))
        inner = [c for c in child.named_children if c.type != "comment"]
        names.append(expression_name(inner[0], src) if inner else FALLBACK_PARAM)
        cursor = child.end_byte

    literals.append(src[cursor : max(cursor, node.end_byte - 1)].decode("utf-8", errors="replace"))
    return literals, names


def expression_name(node: Node, src: bytes) -> str:
    """Same naming rule as normalize.interpolation_name, on tree nodes."""
    node = _unwrap(node)

    if node.type == "identifier":
        return _text(node, src)
    if node.type == "member_expression":
        prop = node.child_by_field_name("property")
        if prop is not None and prop.type in ("property_identifier", "private_property_identifier"):
            return _text(prop, src).lstrip("#")
    if node.type == "subscript_expression":
        index = node.child_by_field_name("index")
        if index is not None:
            index = _unwrap(index)
            if index.type == "string":
                return _string_value(index, src)
            if index.type == "number":
                return _text(index, src)
    if node.type == "call_expression":
        func = node.child_by_field_name("function")
        if func is not None and func.type == "identifier":
            return _text(func, src)
    return FALLBACK_PARAM


def _method_from_options(node: Node, src: bytes) -> Optional[str]:
    options = _unwrap(node)
    if options.type != "object":
        return None
    value = _object_property(options, "method", src)
    if value is None:
        return None
    value = _unwrap(value)
    if value.type != "string":
        return None
    return _string_value(value, src).strip().upper() or None


def _object_property(obj: Node, key: str, src: bytes) -> Optional[Node]:
    for child in obj.named_children:
        if child.type != "pair":
            continue
        key_node = child.child_by_field_name("key")
        if key_node is None:
            continue
        if key_node.type == "string":
            name = _string_value(key_node, src)
        else:
            name = _text(key_node, src)
        if name == key:
            return child.child_by_field_name("value")
    return None


def _arguments(node: Node) -> list[Node]:
    args = node.child_by_field_name("arguments")
    if args is None or args.type != "arguments":
        return []
    return [c for c in args.named_children if c.type != "comment"]


def _unwrap(node: Node) -> Node:
    while node.type in _WRAPPERS and node.named_child_count:
        node = node.named_children[0]
    return node


def _operator(node: Node, src: bytes) -> str:
    op = node.child_by_field_name("operator")
    return _text(op, src) if op is not None else ""


def _string_value(node: Node, src: bytes) -> str:
    text = _text(node, src)
    if len(text) >= 2 and text[0] in "\"'`" and text[-1] == text[0]:
        return text[1:-1]
    return text


def _text(node: Node, src: bytes) -> str:
    return src[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _char_column(src: bytes, byte_offset: int) -> int:
    line_start = src.rfind(b"\n", 0, byte_offset) + 1
    return len(src[line_start:byte_offset].decode("utf-8", errors="replace"))


def _location(node: Node, src: bytes, file_path: str) -> SourceLocation:
    return SourceLocation(
        file_path=file_path,
        line=node.start_point[0] + 1,
        column=_char_column(src, node.start_byte),
        end_line=node.end_point[0] + 1,
        end_column=_char_column(src, node.end_byte),
    )
