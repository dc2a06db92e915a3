"""
Verification report models.

Findings are data, never exceptions.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Level(str, Enum):
    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class VerificationFinding(BaseModel):
    """One failing or suspicious check."""

    check: str                      # outputs, placeholders, consistency, steps
    level: Level
    message: str
    step: str | None = None
    path: str | None = None


class VerificationReport(BaseModel):
    checks_run: list[str] = Field(default_factory=list)
    findings: list[VerificationFinding] = Field(default_factory=list)

    @property
    def outcome(self) -> Level:
        levels = {f.level for f in self.findings}
        if Level.FAILED in levels:
            return Level.FAILED
        if Level.WARNING in levels:
            return Level.WARNING
        return Level.PASSED

    def add(self, check: str, level: Level, message: str, **kwargs: str | None) -> None:
        self.findings.append(
            VerificationFinding(check=check, level=level, message=message, **kwargs)
        )

    def failures(self) -> list[VerificationFinding]:
        return [f for f in self.findings if f.level is Level.FAILED]

    def warnings(self) -> list[VerificationFinding]:
        return [f for f in self.findings if f.level is Level.WARNING]

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "checks_run": self.checks_run,
            "findings": [f.model_dump(mode="json") for f in self.findings],
        }
