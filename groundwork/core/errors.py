"""
Error taxonomy for the scaffolding engine.

Each error belongs to one layer and is converted into a report entry at
that layer. Only a ``StepError`` raised by a blocking step halts a run.
"""

from __future__ import annotations


class GroundworkError(Exception):
    """Base class for all engine errors."""


class ConfigError(GroundworkError):
    """groundwork.yml is invalid or unreadable. Raised before any step runs."""


class DetectorError(GroundworkError):
    """A detector failed or produced an invalid fact. Never fatal."""

    def __init__(self, detector: str, message: str) -> None:
        self.detector = detector
        super().__init__(f"{detector}: {message}")


class TemplateError(GroundworkError):
    """A template or catalog is malformed. Raised at load time only."""

    def __init__(self, message: str, template: str = "", line: int | None = None) -> None:
        self.template = template
        self.line = line
        where = template
        if line is not None:
            where = f"{template}:{line}"
        super().__init__(f"{where}: {message}" if where else message)


class MergeError(GroundworkError):
    """Preserved-region markers are malformed; the destination is left untouched."""

    def __init__(self, message: str, path: str = "", line: int | None = None) -> None:
        self.path = path
        self.line = line
        where = path
        if line is not None:
            where = f"{path}:{line}" if path else f"line {line}"
        super().__init__(f"{where}: {message}" if where else message)


class StepError(GroundworkError):
    """A workflow step failed.

    Carries enough context (step, path, cause) for an operator to fix the
    problem and resume instead of restarting.
    """

    def __init__(
        self,
        step: str,
        message: str,
        *,
        blocking: bool = False,
        path: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.step = step
        self.message = message
        self.blocking = blocking
        self.path = path
        self.cause = cause
        super().__init__(self.describe())

    def describe(self) -> str:
        parts = [f"step '{self.step}'"]
        if self.path:
            parts.append(f"file {self.path}")
        text = f"{', '.join(parts)}: {self.message}"
        if self.cause is not None and str(self.cause) not in self.message:
            text += f" ({type(self.cause).__name__}: {self.cause})"
        return text
