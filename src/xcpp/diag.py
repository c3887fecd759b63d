from dataclasses import dataclass
from typing import Any, Literal

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class SourcePosition:
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Diagnostic:
    stage: str
    filename: str
    message: str
    line: int | None = None
    column: int | None = None
    code: str | None = None
    severity: Severity = "error"

    def __str__(self) -> str:
        if self.line is None or self.column is None:
            return f"{self.filename}: {self.stage}: {self.severity}: {self.message}"
        return (
            f"{self.filename}:{self.line}:{self.column}: "
            f"{self.stage}: {self.severity}: {self.message}"
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "severity": self.severity,
            "filename": self.filename,
            "line": self.line,
            "column": self.column,
            "code": self.code,
            "message": self.message,
        }


class SourceError(ValueError):
    stage = "preprocess"
    code = "XCPP-PP-0000"
    severity: Severity = "error"

    def __init__(self, message: str, position: SourcePosition | None = None) -> None:
        if position is None:
            super().__init__(message)
        else:
            super().__init__(f"{message} at {position}")
        self.message = message
        self.position = position

    def diagnostic(self, *, warn_as_error: bool = False) -> Diagnostic:
        severity: Severity = "error" if warn_as_error else self.severity
        if self.position is None:
            return Diagnostic(
                self.stage, "<command line>", self.message, code=self.code, severity=severity
            )
        return Diagnostic(
            self.stage,
            self.position.filename,
            self.message,
            self.position.line,
            self.position.column,
            self.code,
            severity,
        )


class PreprocessorError(SourceError):
    pass


class DiagnosticLog:
    """Diagnostics collected over one translation unit, in report order."""

    def __init__(self, *, warn_as_error: bool = False) -> None:
        self._warn_as_error = warn_as_error
        self._entries: list[Diagnostic] = []

    def report(self, error: SourceError) -> Diagnostic:
        diagnostic = error.diagnostic(warn_as_error=self._warn_as_error)
        self._entries.append(diagnostic)
        return diagnostic

    @property
    def entries(self) -> tuple[Diagnostic, ...]:
        return tuple(self._entries)

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(entry for entry in self._entries if entry.severity == "error")

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def __len__(self) -> int:
        return len(self._entries)


class FrontendError(ValueError):
    def __init__(self, diagnostics: tuple[Diagnostic, ...]) -> None:
        errors = [diagnostic for diagnostic in diagnostics if diagnostic.severity == "error"]
        if not errors:
            raise ValueError("FrontendError requires at least one error diagnostic")
        super().__init__(str(errors[0]))
        self.diagnostics = diagnostics
        self.diagnostic = errors[0]
