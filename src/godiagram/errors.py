"""Exception hierarchy shared by extraction, synthesis and the live pipeline."""

from __future__ import annotations


class GodiagramError(Exception):
    """Base class for all godiagram errors."""


class ParseError(GodiagramError):
    """A Go source file is not syntactically valid (or cannot be read)."""

    def __init__(
        self,
        path: str,
        line: int | None = None,
        column: int | None = None,
        detail: str = "syntax error",
    ) -> None:
        self.path = path
        self.line = line
        self.column = column
        self.detail = detail
        location = path
        if line is not None:
            location = f"{path}:{line}"
            if column is not None:
                location = f"{location}:{column}"
        super().__init__(f"{location}: {detail}")


class SynthesisError(GodiagramError):
    """An edited model cannot be turned back into valid Go declarations."""


class TransportError(GodiagramError):
    """A single observer connection failed."""


class ConfigError(GodiagramError):
    """Configuration is missing or malformed."""


class WireError(GodiagramError):
    """A message received from an observer is not a valid model payload."""
