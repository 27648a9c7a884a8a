from __future__ import annotations

import re

from apinav.domain.models import EndpointDescriptor, SourceLocation
from apinav.matching.normalize import interpolation_name, strip_query, template_path

# One call per match, on a single line. Concatenations and option objects are
# out of reach here; fetch() is always GET.
_FETCH = re.compile(r"""\bfetch\s*\(\s*(["'`])(/?api/[^"'`\n]*)\1""")
_MEMBER_VERB = re.compile(
    r"""[\w$)\]]\s*\.\s*(get|post|put|delete|patch|head|options)\s*(?:<[^>()\n]*>)?\s*\(\s*(["'`])(/?api/[^"'`\n]*)\2"""
)
_INTERPOLATION = re.compile(r"\$\{([^}]*)\}")


def extract_call_sites_fallback(source: str, file_path: str = "") -> list[EndpointDescriptor]:
    """Line-oriented pattern matching for files the syntax tree could not handle."""
    out: list[EndpointDescriptor] = []

    for idx, line in enumerate(source.split("\n"), start=1):
        line = line.rstrip("\r")
        hits: list[tuple[int, str, str, str]] = []  # (column, quote, text, method)

        for m in _FETCH.finditer(line):
            hits.append((m.start(2) - 1, m.group(1), m.group(2), "GET"))
        for m in _MEMBER_VERB.finditer(line):
            hits.append((m.start(3) - 1, m.group(2), m.group(3), m.group(1).upper()))

        for column, quote, text, method in sorted(hits):
            raw, display, params = _process_endpoint_string(text, quote)
            out.append(
                EndpointDescriptor(
                    endpoint=display,
                    raw_endpoint=raw,
                    method=method,
                    params=tuple(params),
                    location=SourceLocation(
                        file_path=file_path,
                        line=idx,
                        column=column,
                        end_line=idx,
                        end_column=column + len(text) + 2,
                    ),
                )
            )
    return out


def _process_endpoint_string(text: str, quote: str) -> tuple[str, str, list[str]]:
    if quote != "`":
        display = strip_query(text)
        return text, display if display.startswith("/") else "/" + display, []

    pieces = _INTERPOLATION.split(text)
    literals = pieces[0::2]
    names = [interpolation_name(expr) for expr in pieces[1::2]]
    tp = template_path(literals, names)
    display = tp.display if tp.display.startswith("/") else "/" + tp.display
    return tp.raw, display, tp.params
