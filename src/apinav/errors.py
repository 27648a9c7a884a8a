from __future__ import annotations


class ApinavError(Exception):
    """Base class for errors raised by apinav."""


class ConfigError(ApinavError):
    """Scan configuration is missing or malformed. Raised before any scanning starts."""


class FrontendParseError(ApinavError):
    """The syntax-tree stage could not produce a clean tree for a frontend file."""

    def __init__(self, file_path: str, line: int, column: int):
        self.file_path = file_path
        self.line = line
        self.column = column
        super().__init__(f"{file_path or '<source>'}:{line}:{column}: syntax error")
