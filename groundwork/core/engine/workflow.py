"""
Workflow engine - run named steps in order against a persisted manifest.

The engine is the heartbeat of a scaffolding run. It reconciles the
manifest on disk with the declared step list, skips whatever an earlier
invocation already settled, runs the rest one at a time, and persists the
manifest after every status transition so an interrupted run can resume.

Flow:
    load manifest → reconcile → (retry / update) → run pending steps → persist
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from groundwork.core.errors import GroundworkError, StepError
from groundwork.core.models.manifest import Manifest, OutputRecord, StepRecord, StepStatus
from groundwork.core.persistence.manifest_file import load_manifest, save_manifest
from groundwork.core.services.facts import FactStore

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """What a successful step hands back to the engine."""

    outputs: list[OutputRecord] | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    facts: FactStore | None = None


@dataclass
class StepDefinition:
    name: str
    action: Callable[[StepContext], StepOutcome | None]
    blocking: bool = False
    depends_on: list[str] = field(default_factory=list)
    description: str = ""


class StepContext:
    """Everything a step action may touch.

    Facts are resolved lazily: a step that needs them after discovery
    finished in an earlier invocation triggers the engine's facts provider.
    """

    def __init__(self, engine: WorkflowEngine, record: StepRecord) -> None:
        self._engine = engine
        self.record = record

    @property
    def manifest(self) -> Manifest:
        return self._engine.manifest

    @property
    def facts(self) -> FactStore:
        return self._engine.facts()

    def previous_outputs(self) -> dict[str, OutputRecord]:
        return self.manifest.all_outputs()


@dataclass
class WorkflowReport:
    """Result of one engine invocation."""

    status: str = "completed"       # completed, halted, cancelled, already_finished
    executed: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    halted_step: str | None = None
    errors: list[str] = field(default_factory=list)
    manifest: Manifest | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("completed", "already_finished")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "executed": self.executed,
            "completed": self.completed,
            "skipped": self.skipped,
            "failed": self.failed,
            "halted_step": self.halted_step,
            "errors": self.errors,
        }


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class WorkflowEngine:
    """Sequential step runner with a persisted, resumable manifest."""

    def __init__(
        self,
        definitions: list[StepDefinition],
        manifest_path: Path,
        facts_provider: Callable[[], FactStore | None] | None = None,
    ) -> None:
        seen: set[str] = set()
        for d in definitions:
            if d.name in seen:
                raise ValueError(f"duplicate step '{d.name}'")
            unknown = [dep for dep in d.depends_on if dep not in seen]
            if unknown:
                raise ValueError(
                    f"step '{d.name}' depends on {unknown}, which must be declared before it"
                )
            seen.add(d.name)

        self._definitions = definitions
        self._manifest_path = manifest_path
        self._facts_provider = facts_provider
        self._facts: FactStore | None = None
        self.manifest = Manifest()

    # ── Facts ────────────────────────────────────────────────────

    def facts(self) -> FactStore:
        if self._facts is None and self._facts_provider is not None:
            self._facts = self._facts_provider()
        if self._facts is None:
            raise GroundworkError("no facts available; discovery has not completed")
        return self._facts

    # ── Manifest ─────────────────────────────────────────────────

    def _persist(self) -> None:
        save_manifest(self.manifest, self._manifest_path)

    def _reconcile(self, manifest: Manifest) -> Manifest:
        """Align a loaded manifest with the declared steps, in declared order."""
        declared = {d.name for d in self._definitions}
        for record in manifest.steps:
            if record.name not in declared:
                logger.warning("Step '%s' is no longer defined; dropping it from the manifest", record.name)

        steps: list[StepRecord] = []
        for d in self._definitions:
            record = manifest.step(d.name)
            if record is None:
                record = StepRecord(name=d.name)
                logger.debug("New step '%s' added as pending", d.name)
            record.blocking = d.blocking
            record.depends_on = list(d.depends_on)
            steps.append(record)
        manifest.steps = steps
        return manifest

    # ── Run ──────────────────────────────────────────────────────

    def run(
        self,
        retry: bool = False,
        update: bool = False,
        cancel: threading.Event | None = None,
    ) -> WorkflowReport:
        """Run every pending step in declared order.

        Args:
            retry: Reset a failed blocking step to pending and continue.
            update: Reset every step and run a full pass again.
            cancel: Checked between steps; when set the run stops and the
                manifest is persisted as-is.
        """
        loaded = load_manifest(self._manifest_path)
        self.manifest = self._reconcile(loaded or Manifest())
        report = WorkflowReport(manifest=self.manifest)

        if update:
            logger.info("Update requested: resetting all steps")
            self.manifest.reset()
        elif loaded is not None and self.manifest.finished:
            logger.info("Manifest already finished; nothing to do")
            report.status = "already_finished"
            return report

        halted = self.manifest.halted_step
        if halted is not None:
            if not retry:
                report.status = "halted"
                report.halted_step = halted.name
                report.errors.append(halted.error or f"step '{halted.name}' failed")
                logger.warning("Run is halted at step '%s'; use retry to run it again", halted.name)
                return report
            logger.info("Retrying step '%s'", halted.name)
            halted.reset()

        self._persist()

        for definition in self._definitions:
            record = self.manifest.step(definition.name)
            if record.status.terminal:
                continue

            if cancel is not None and cancel.is_set():
                report.status = "cancelled"
                logger.warning("Run cancelled before step '%s'", definition.name)
                break

            blocked = self._blocked_by(record)
            if blocked:
                record.skip(blocked)
                report.skipped.append(record.name)
                logger.info("Step '%s' skipped: %s", record.name, blocked)
                self._persist()
                continue

            if not self._run_step(definition, record, report):
                report.status = "halted"
                report.halted_step = record.name
                break

        if report.status == "completed" and self.manifest.finished:
            self.manifest.mark_completed()
        self._persist()
        return report

    def _blocked_by(self, record: StepRecord) -> str | None:
        for dep in record.depends_on:
            dep_record = self.manifest.step(dep)
            if dep_record.status in (StepStatus.FAILED, StepStatus.SKIPPED):
                return f"dependency '{dep}' {dep_record.status.value}"
        return None

    def _run_step(self, definition: StepDefinition, record: StepRecord, report: WorkflowReport) -> bool:
        """Run one step; return False if the run must halt."""
        logger.info("Running step '%s'", definition.name)
        record.started_at = _now_iso()
        report.executed.append(definition.name)

        try:
            outcome = definition.action(StepContext(self, record))
        except StepError as e:
            error = e
        except Exception as e:
            error = StepError(definition.name, str(e), blocking=definition.blocking, cause=e)
        else:
            outcome = outcome or StepOutcome()
            if outcome.outputs is not None:
                record.outputs = outcome.outputs
            record.detail = outcome.detail
            self.manifest.metadata.update(outcome.metadata)
            if outcome.facts is not None:
                self._facts = outcome.facts
            record.complete()
            report.completed.append(record.name)
            self._persist()
            return True

        record.fail(error.describe())
        report.failed.append(record.name)
        report.errors.append(error.describe())
        self._persist()
        if definition.blocking:
            logger.error("Blocking step failed: %s", error.describe())
            return False
        logger.warning("Step failed (continuing): %s", error.describe())
        return True
