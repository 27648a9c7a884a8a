from __future__ import annotations

from typing import Iterable, Optional

from apinav.domain.models import EndpointEntry, SourceLocation


def render_label(entry: EndpointEntry) -> str:
    return f"{entry.endpoint} [{entry.http_method}]"


def render_location(location: Optional[SourceLocation]) -> str:
    return str(location) if location is not None else "-"


def render_entry_detail(entry: EndpointEntry) -> str:
    """Multi-line hover text for one entry. Line numbers are 1-based."""
    lines = [render_label(entry), f"Status: {entry.status}"]

    if entry.error_message:
        lines.append(entry.error_message)

    if entry.backend_definitions:
        if len(entry.backend_definitions) > 1:
            lines.append("Backend definitions:")
            for d in entry.backend_definitions:
                lines.append(f"  - {d.location} [{d.http_method}] {d.raw_endpoint}")
        else:
            d = entry.backend_definitions[0]
            lines.append(f"Backend: {d.location} (HTTP {d.http_method})")

        if entry.backend_params:
            lines.append("Route parameters: " + ", ".join("{" + p + "}" for p in entry.backend_params))

    if entry.param_mismatches:
        lines.append("Parameter mismatches:")
        for m in entry.param_mismatches:
            lines.append(f"  - Position {m.position}: frontend ${{{m.frontend_param}}} != backend {{{m.backend_param}}}")

    if entry.frontends:
        lines.append(f"{len(entry.frontends)} frontend call site(s)")

    return "\n".join(lines)


def render_summary(entries: Iterable[EndpointEntry]) -> str:
    items = list(entries)
    valid = sum(1 for e in items if e.status == "valid")
    return f"{len(items)} endpoints ({valid} valid, {len(items) - valid} with issues)"
