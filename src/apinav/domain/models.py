from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]
EndpointStatus = Literal["valid", "invalid", "unresolved", "param-mismatch"]

MISSING_PARAM = "(missing)"


class SourceLocation(BaseModel):
    """Where an endpoint string or route declaration sits: 1-based lines, 0-based columns."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    line: int
    column: int = 0
    end_line: Optional[int] = None
    end_column: Optional[int] = None

    def contains(self, line: int, column: int) -> bool:
        end_line = self.end_line if self.end_line is not None else self.line
        end_column = self.end_column if self.end_column is not None else self.column
        if line < self.line or line > end_line:
            return False
        if line == self.line and column < self.column:
            return False
        if line == end_line and column > end_column:
            return False
        return True

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}"


@dataclass(frozen=True)
class EndpointDescriptor:
    """One scanner hit. Produced fresh per scan, consumed by the index."""

    endpoint: str               # canonical display path: /api/users/{id}
    raw_endpoint: str           # as written: /api/users/{id:int} or /api/users/${id}
    method: str                 # GET, POST, ...
    params: tuple[str, ...]     # ordered route parameter names
    location: SourceLocation


class BackendDefinition(BaseModel):
    location: SourceLocation
    http_method: str
    raw_endpoint: str


class FrontendCall(BaseModel):
    location: SourceLocation
    params: list[str] = Field(default_factory=list)
    raw_endpoint: str
    http_method: str


class ParamMismatch(BaseModel):
    position: int               # 1-based
    frontend_param: str
    backend_param: str


class EndpointEntry(BaseModel):
    endpoint: str
    raw_endpoint: Optional[str] = None
    http_method: str = "GET"
    backend_definitions: list[BackendDefinition] = Field(default_factory=list)
    backend_params: list[str] = Field(default_factory=list)
    frontends: list[FrontendCall] = Field(default_factory=list)
    status: EndpointStatus = "valid"
    param_mismatches: list[ParamMismatch] = Field(default_factory=list)
    error_message: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def backend(self) -> Optional[SourceLocation]:
        if not self.backend_definitions:
            return None
        return self.backend_definitions[0].location


class EndpointMatch(BaseModel):
    """Result of a point query: the endpoint string under a cursor position."""

    endpoint: str
    http_method: str
    location: SourceLocation
