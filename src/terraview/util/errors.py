from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    SOURCE_ERROR = 3
    PARSE_ERROR = 4
    RENDER_ERROR = 5
    RUNTIME_ERROR = 6


class TerraviewError(Exception):
    """Base error for the diagram pipeline."""


class ConfigError(TerraviewError):
    """Raised for configuration or argument issues."""


class SourceUnavailableError(TerraviewError):
    """Raised when the dependency graph or the state store cannot be obtained."""


class GraphParseError(TerraviewError):
    """Raised when a graph description is not well-formed."""


class GraphModelError(TerraviewError):
    """Raised for invalid graph model operations (duplicate ids, unknown nodes)."""


class LookupMissError(TerraviewError):
    """Raised when a resource expected in the state store is absent."""

    def __init__(self, address: str, detail: str = "") -> None:
        self.address = address
        message = f"resource {address} not found in state"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StructuralAmbiguityError(TerraviewError):
    """Raised when no deterministic traversal root exists."""


class RenderError(TerraviewError):
    """Raised when the external renderer fails; carries the captured tool output."""

    def __init__(self, message: str, output: str = "") -> None:
        self.output = output
        if output:
            message = f"{message}, output: {output}"
        super().__init__(message)


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, StructuralAmbiguityError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, SourceUnavailableError):
        return int(ExitCode.SOURCE_ERROR)
    if isinstance(exc, GraphParseError):
        return int(ExitCode.PARSE_ERROR)
    if isinstance(exc, RenderError):
        return int(ExitCode.RENDER_ERROR)
    if isinstance(exc, TerraviewError):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
