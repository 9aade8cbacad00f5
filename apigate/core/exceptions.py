"""apigate custom exceptions."""

from __future__ import annotations

from pathlib import Path


class ApiGateError(Exception):
    """Base exception for apigate errors."""


class RetrievalError(ApiGateError):
    """A revision could not be fetched or materialised."""

    def __init__(
        self, message: str, *, locator: str | None = None, revision: str | None = None
    ) -> None:
        super().__init__(message)
        self.locator = locator
        self.revision = revision


class ExtractionError(ApiGateError):
    """Source could not be parsed or resolved into a symbol table."""

    def __init__(
        self,
        message: str,
        *,
        module: str | None = None,
        file: Path | None = None,
        revision: str | None = None,
    ) -> None:
        super().__init__(message)
        self.module = module
        self.file = file
        self.revision = revision

    def with_revision(self, revision: str) -> ExtractionError:
        """Return a copy of this error naming the revision it happened in."""
        error = ExtractionError(
            f"revision {revision}: {self}",
            module=self.module,
            file=self.file,
            revision=revision,
        )
        error.__cause__ = self.__cause__
        return error


class ClassificationError(ApiGateError):
    """A type descriptor shape could not be interpreted."""

    def __init__(
        self, message: str, *, module: str | None = None, symbol: str | None = None
    ) -> None:
        super().__init__(message)
        self.module = module
        self.symbol = symbol


class ConfigError(ApiGateError):
    """Configuration could not be loaded or is invalid."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path
