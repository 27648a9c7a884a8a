from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from apinav.config import DEFAULT_HTTP_CLIENTS
from apinav.domain.models import (
    BackendDefinition,
    EndpointDescriptor,
    EndpointEntry,
    FrontendCall,
    SourceLocation,
)
from apinav.matching.normalize import match_key
from apinav.matching.params import compare_params
from apinav.orchestrator.pipeline import run_scan

logger = logging.getLogger(__name__)

Listener = Callable[[], None]

NOT_FOUND_MESSAGE = "No backend definition found"


def duplicate_message(count: int) -> str:
    return f"Multiple backend definitions found ({count} definitions)"


def build_entries(
    backend: Iterable[EndpointDescriptor],
    frontend: Iterable[EndpointDescriptor],
) -> dict[str, EndpointEntry]:
    """
    Merge scanner output into one entry per normalized key.

    Backend descriptors first: a second definition for a key makes the entry
    invalid for the rest of the pass. Frontend descriptors then attach to
    existing entries or create unresolved ones; parameter names are compared
    only against an entry that still has its single definition.
    """
    entries: dict[str, EndpointEntry] = {}

    for d in backend:
        key = match_key(d.endpoint, d.method)
        definition = BackendDefinition(location=d.location, http_method=d.method, raw_endpoint=d.raw_endpoint)

        existing = entries.get(key)
        if existing is not None:
            existing.backend_definitions.append(definition)
            existing.status = "invalid"
            existing.error_message = duplicate_message(len(existing.backend_definitions))
            continue

        entries[key] = EndpointEntry(
            endpoint=d.endpoint,
            raw_endpoint=d.raw_endpoint,
            http_method=d.method,
            backend_definitions=[definition],
            backend_params=list(d.params),
            status="valid",
        )

    for d in frontend:
        key = match_key(d.endpoint, d.method)

        entry = entries.get(key)
        if entry is None:
            entry = EndpointEntry(
                endpoint=d.endpoint,
                http_method=d.method,
                status="unresolved",
                error_message=NOT_FOUND_MESSAGE,
            )
            entries[key] = entry

        entry.frontends.append(
            FrontendCall(
                location=d.location,
                params=list(d.params),
                raw_endpoint=d.raw_endpoint,
                http_method=d.method,
            )
        )

        if len(entry.backend_definitions) == 1 and entry.status != "invalid":
            mismatches = compare_params(d.params, entry.backend_params)
            if mismatches:
                entry.status = "param-mismatch"
                entry.param_mismatches = mismatches

    return entries


class EndpointIndex:
    """
    Owns the current snapshot of endpoint entries.

    Every rebuild scans first and swaps the finished dict in with a single
    assignment, so readers see either the previous snapshot or the new one.
    Listeners take no arguments and are called once per rebuild/load/clear.
    """

    def __init__(self) -> None:
        self._entries: dict[str, EndpointEntry] = {}
        self._listeners: list[Listener] = []

    def rebuild(
        self,
        frontend_root: Path,
        backend_root: Path,
        backend_kind: Optional[str],
        backend_entrypoint: Optional[str] = None,
        http_clients: Sequence[str] = DEFAULT_HTTP_CLIENTS,
    ) -> None:
        # ConfigError propagates; the previous snapshot stays current
        result = run_scan(frontend_root, backend_root, backend_kind, backend_entrypoint, http_clients)
        self.load(result.backend, result.frontend)

    def load(
        self,
        backend: Iterable[EndpointDescriptor],
        frontend: Iterable[EndpointDescriptor],
    ) -> None:
        entries = build_entries(backend, frontend)
        self._entries = entries
        logger.info(f"Index rebuilt: {len(entries)} endpoints")
        self._notify()

    def clear(self) -> None:
        self._entries = {}
        self._notify()

    def get_all_endpoints(self) -> list[EndpointEntry]:
        return list(self._entries.values())

    def get_entry(self, path: str, method: str = "GET") -> Optional[EndpointEntry]:
        return self._entries.get(match_key(path, method))

    def find_backend_for_endpoint(self, path: str, method: str = "GET") -> Optional[SourceLocation]:
        entry = self.get_entry(path, method)
        return entry.backend if entry is not None else None

    def summary(self) -> dict[str, int]:
        counts = Counter(e.status for e in self._entries.values())
        return {status: counts.get(status, 0) for status in ("valid", "invalid", "unresolved", "param-mismatch")}

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._entries)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Index change listener failed")
