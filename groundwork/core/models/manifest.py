"""
Manifest model - the durable record of a single workflow run.

Serialized to .groundwork/manifest.json after every step transition and
read at the start of the next run to support resumption.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

MANIFEST_VERSION = 1


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not StepStatus.PENDING


class InvalidTransition(ValueError):
    """A step was moved out of a terminal status without an explicit reset."""


class OutputRecord(BaseModel):
    """A file a generation step claims to have produced."""

    path: str                       # relative to the target root
    template: str = ""
    sha256: str = ""                # hash of the written content
    skeleton_sha256: str = ""       # hash with preserved-region bodies blanked
    required_keys: list[str] = Field(default_factory=list)


class StepRecord(BaseModel):
    """Persisted state of one workflow step."""

    name: str
    status: StepStatus = StepStatus.PENDING
    blocking: bool = False
    depends_on: list[str] = Field(default_factory=list)
    error: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    outputs: list[OutputRecord] = Field(default_factory=list)
    detail: dict[str, Any] = Field(default_factory=dict)

    def _transition(self, status: StepStatus) -> None:
        if self.status is not StepStatus.PENDING:
            raise InvalidTransition(
                f"step '{self.name}' is {self.status.value}, cannot become {status.value}"
            )
        self.status = status
        self.finished_at = _now_iso()

    def complete(self) -> None:
        self._transition(StepStatus.COMPLETED)
        self.error = None

    def skip(self, reason: str = "") -> None:
        self._transition(StepStatus.SKIPPED)
        self.error = reason or None

    def fail(self, error: str) -> None:
        self._transition(StepStatus.FAILED)
        self.error = error

    def reset(self) -> None:
        """Explicit caller-requested reset back to pending (retry or update)."""
        self.status = StepStatus.PENDING
        self.error = None
        self.started_at = None
        self.finished_at = None
        self.detail = {}

    @property
    def settled(self) -> bool:
        """Whether sequencing may move past this step."""
        return self.status is not StepStatus.PENDING and not (
            self.status is StepStatus.FAILED and self.blocking
        )


class Manifest(BaseModel):
    """Root manifest model - serialized to .groundwork/manifest.json."""

    version: int = MANIFEST_VERSION
    started_at: str = Field(default_factory=_now_iso)
    completed_at: str | None = None
    steps: list[StepRecord] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def step(self, name: str) -> StepRecord | None:
        for record in self.steps:
            if record.name == name:
                return record
        return None

    @property
    def finished(self) -> bool:
        """All steps completed or skipped (failed non-blocking counts as skipped)."""
        return bool(self.steps) and all(
            r.status is not StepStatus.PENDING
            and not (r.status is StepStatus.FAILED and r.blocking)
            for r in self.steps
        )

    @property
    def halted_step(self) -> StepRecord | None:
        """The failed blocking step that stopped the last run, if any."""
        for record in self.steps:
            if record.status is StepStatus.FAILED and record.blocking:
                return record
        return None

    def counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in StepStatus}
        for record in self.steps:
            counts[record.status.value] += 1
        return counts

    def all_outputs(self) -> dict[str, OutputRecord]:
        """Latest output record per path across all steps."""
        outputs: dict[str, OutputRecord] = {}
        for record in self.steps:
            for out in record.outputs:
                outputs[out.path] = out
        return outputs

    def reset(self) -> None:
        """Start a fresh pass over the same step list (update pass)."""
        self.started_at = _now_iso()
        self.completed_at = None
        for record in self.steps:
            record.reset()

    def mark_completed(self) -> None:
        self.completed_at = _now_iso()
