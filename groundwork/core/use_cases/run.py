"""
Run use case - scaffold a target project end to end.

This is the top-level orchestrator: it loads config, builds the fact
schema, loads the template catalog, assembles the step list, drives the
workflow engine, and records the invocation in the run ledger.
The full vertical slice from user intent to verified files on disk.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from groundwork.core.config.loader import GroundworkConfig, load_config
from groundwork.core.engine.workflow import (
    StepContext,
    StepDefinition,
    StepOutcome,
    WorkflowEngine,
    WorkflowReport,
)
from groundwork.core.errors import ConfigError, StepError, TemplateError
from groundwork.core.models.report import Level, VerificationReport
from groundwork.core.persistence.facts_file import load_snapshot, save_snapshot
from groundwork.core.persistence.ledger import LedgerEntry, RunLedger
from groundwork.core.persistence.manifest_file import load_manifest
from groundwork.core.services.detectors import Detector
from groundwork.core.services.facts import FactStore
from groundwork.core.services.generation import GenerationReport, generate
from groundwork.core.services.templating.catalog import Catalog, CatalogStep, builtin_catalog_dir, load_catalog
from groundwork.core.services.verification import verify
from groundwork.core.use_cases.detect import detectors_for, discover_project, schema_for

logger = logging.getLogger(__name__)

DISCOVER_STEP = "discover"
VERIFY_STEP = "verify"


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


@dataclass
class RunResult:
    """Result of one run/resume invocation."""

    run_id: str = ""
    mode: str = "run"
    target_root: Path | None = None
    workflow: WorkflowReport | None = None
    verification: VerificationReport | None = None
    generation: dict[str, GenerationReport] = field(default_factory=dict)
    duration_ms: int = 0
    error: str | None = None

    @property
    def files_written(self) -> int:
        return sum(r.files_written for r in self.generation.values())

    @property
    def files_preserved(self) -> int:
        return sum(r.regions_preserved for r in self.generation.values())

    @property
    def conflicts(self) -> list[str]:
        return [c for r in self.generation.values() for o in r.outcomes for c in o.conflicts]

    @property
    def status(self) -> str:
        if self.error:
            return "failed"
        if self.workflow is not None and self.workflow.status in ("halted", "cancelled"):
            return self.workflow.status
        if self.verification is not None:
            return self.verification.outcome.value
        if self.workflow is not None and self.workflow.status == "already_finished":
            return "noop"
        return "passed"

    @property
    def exit_code(self) -> int:
        """0 passed/warning, 1 halted/cancelled/error, 2 verification failed."""
        if self.error or (self.workflow is not None and not self.workflow.ok):
            return 1
        if self.verification is not None and self.verification.outcome is Level.FAILED:
            return 2
        return 0

    def to_dict(self) -> dict:
        result: dict = {"run_id": self.run_id, "mode": self.mode, "status": self.status}
        if self.error:
            result["error"] = self.error
            return result

        result["target_root"] = str(self.target_root)
        if self.workflow is not None:
            result["workflow"] = self.workflow.to_dict()
        result["files_written"] = self.files_written
        result["files_preserved"] = self.files_preserved
        result["conflicts"] = self.conflicts
        result["generation"] = {name: r.to_dict() for name, r in self.generation.items()}
        if self.verification is not None:
            result["verification"] = self.verification.to_dict()
        result["duration_ms"] = self.duration_ms
        return result


# ═══════════════════════════════════════════════════════════════════
#  Step list
# ═══════════════════════════════════════════════════════════════════


def _discover_action(target_root: Path, config: GroundworkConfig, detectors: list[Detector]):
    def action(ctx: StepContext) -> StepOutcome:
        facts, report = discover_project(target_root, config, detectors)
        save_snapshot(list(facts), config.facts_path(target_root))
        for error in report.errors:
            logger.warning("%s", error)
        return StepOutcome(
            facts=facts,
            detail={
                "facts": len(facts),
                "detector_errors": [str(e) for e in report.errors],
                "conflicts": len(report.conflicts),
            },
            metadata={
                "project_type": facts.value("language.primary"),
                "framework": facts.value("framework.primary"),
                "tools": {
                    key.split(".")[1]: value
                    for key, value in sorted(facts.with_prefix("tools.").items())
                },
            },
        )
    return action


def _generate_action(
    step: CatalogStep,
    target_root: Path,
    config: GroundworkConfig,
    blocking: bool,
    reports: dict[str, GenerationReport],
):
    def action(ctx: StepContext) -> StepOutcome:
        report = generate(
            step.templates,
            ctx.facts,
            target_root,
            previous=ctx.previous_outputs(),
            backup=config.backup,
            max_workers=config.max_workers,
        )
        reports[step.name] = report
        ctx.record.outputs = report.records
        ctx.record.detail = report.to_dict()

        failed = report.failed
        if failed:
            first = failed[0]
            raise StepError(
                step.name,
                f"{len(failed)} of {len(report.outcomes)} files failed: {first.error}",
                blocking=blocking,
                path=first.path,
            )
        return StepOutcome(outputs=report.records, detail=report.to_dict())
    return action


def _verify_action(target_root: Path, holder: list[VerificationReport]):
    def action(ctx: StepContext) -> StepOutcome:
        report = verify(target_root, ctx.manifest)
        holder.append(report)
        return StepOutcome(detail=report.to_dict(), metadata={"verification": report.to_dict()})
    return action


def build_steps(
    target_root: Path,
    config: GroundworkConfig,
    catalog: Catalog,
    detectors: list[Detector],
    reports: dict[str, GenerationReport],
    verification: list[VerificationReport],
) -> list[StepDefinition]:
    """discover, one generation step per catalog entry, then verify."""
    steps = [StepDefinition(
        name=DISCOVER_STEP,
        action=_discover_action(target_root, config, detectors),
        blocking=config.is_blocking(DISCOVER_STEP, True),
        description="Inspect the project and build the fact store",
    )]
    for entry in catalog.steps:
        blocking = config.is_blocking(entry.name, entry.blocking)
        steps.append(StepDefinition(
            name=entry.name,
            action=_generate_action(entry, target_root, config, blocking, reports),
            blocking=blocking,
            depends_on=[DISCOVER_STEP],
            description=entry.description,
        ))
    steps.append(StepDefinition(
        name=VERIFY_STEP,
        action=_verify_action(target_root, verification),
        blocking=config.is_blocking(VERIFY_STEP, False),
        description="Check generated files against the manifest",
    ))
    return steps


def _facts_provider(target_root: Path, config: GroundworkConfig, detectors: list[Detector]):
    """Rehydrate facts for a resumed run whose discovery already completed."""
    def provide() -> FactStore:
        facts = load_snapshot(config.facts_path(target_root))
        if facts is not None:
            logger.info("Rehydrated %d facts from snapshot", len(facts))
            return FactStore(facts).freeze()
        logger.warning("Fact snapshot missing; re-running discovery read-only")
        store, _ = discover_project(target_root, config, detectors)
        return store
    return provide


# ═══════════════════════════════════════════════════════════════════
#  Use case
# ═══════════════════════════════════════════════════════════════════


def run_workflow(
    target_root: Path,
    config_path: Path | None = None,
    templates_dir: Path | None = None,
    retry: bool = False,
    update: bool = False,
    require_manifest: bool = False,
    cancel: threading.Event | None = None,
) -> RunResult:
    """Scaffold ``target_root``: discover, generate, verify.

    Args:
        target_root: Project to scaffold.
        config_path: Optional explicit groundwork.yml.
        templates_dir: Template catalog; defaults to the config's, then
            the built-in catalog.
        retry: Re-run a failed blocking step instead of halting on it.
        update: Re-run every step of a finished manifest.
        require_manifest: Error out if there is nothing to resume.
        cancel: Set to stop between steps.

    Returns:
        RunResult; ``exit_code`` maps it onto the CLI contract.
    """
    started = time.monotonic()
    mode = "update" if update else "retry" if retry else "resume" if require_manifest else "run"
    result = RunResult(run_id=generate_run_id(), mode=mode, target_root=target_root.resolve())

    if not target_root.is_dir():
        result.error = f"Target is not a directory: {target_root}"
        return result

    # ── Load config, schema, catalog ─────────────────────────────
    try:
        config = load_config(target_root, config_path)
        detectors = detectors_for(config)
        schema = schema_for(config, detectors)
        catalog = load_catalog(templates_dir or config.templates_dir or builtin_catalog_dir(), schema)
    except (ConfigError, TemplateError) as e:
        result.error = str(e)
        return result

    manifest_path = config.manifest_path(target_root)
    if require_manifest and load_manifest(manifest_path) is None:
        result.error = f"No manifest to resume at {manifest_path}; use `groundwork run` first."
        return result

    # ── Execute ──────────────────────────────────────────────────
    holder: list[VerificationReport] = []
    engine = WorkflowEngine(
        build_steps(target_root, config, catalog, detectors, result.generation, holder),
        manifest_path,
        facts_provider=_facts_provider(target_root, config, detectors),
    )
    result.workflow = engine.run(retry=retry, update=update, cancel=cancel)

    if holder:
        result.verification = holder[-1]
    elif result.workflow.status == "already_finished":
        result.verification = verify(target_root, engine.manifest)

    result.duration_ms = int((time.monotonic() - started) * 1000)

    # ── Ledger ───────────────────────────────────────────────────
    RunLedger(config.ledger_path(target_root)).write(LedgerEntry(
        run_id=result.run_id,
        mode=mode,
        status=result.status,
        steps_executed=result.workflow.executed,
        steps_failed=result.workflow.failed,
        files_written=result.files_written,
        files_preserved=result.files_preserved,
        verification=result.verification.outcome.value if result.verification else None,
        duration_ms=result.duration_ms,
        errors=result.workflow.errors,
        context={"catalog": str(catalog.root), "conflicts": len(result.conflicts)},
    ))
    return result
