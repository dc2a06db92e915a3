"""
Verification - read-only checks over a manifest and the files it claims.

Every problem is a ``VerificationFinding``; nothing here raises for a
finding, and nothing here writes to the target.
"""

from __future__ import annotations

import logging
from pathlib import Path

from groundwork.core.models.manifest import Manifest, StepStatus
from groundwork.core.models.report import Level, VerificationReport
from groundwork.core.services.templating.renderer import UNRESOLVED_PATTERN

logger = logging.getLogger(__name__)


def _check_outputs(target_root: Path, manifest: Manifest, report: VerificationReport) -> None:
    report.checks_run.append("outputs")
    for record in manifest.steps:
        if record.status is not StepStatus.COMPLETED:
            continue
        for out in record.outputs:
            path = target_root / out.path
            if not path.is_file():
                report.add("outputs", Level.FAILED, f"{out.path} is missing",
                           step=record.name, path=out.path)
            elif path.stat().st_size == 0:
                report.add("outputs", Level.FAILED, f"{out.path} is empty",
                           step=record.name, path=out.path)


def _check_placeholders(target_root: Path, manifest: Manifest, report: VerificationReport) -> None:
    report.checks_run.append("placeholders")
    for record in manifest.steps:
        if record.status is not StepStatus.COMPLETED:
            continue
        for out in record.outputs:
            path = target_root / out.path
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue    # reported by the outputs check
            keys = sorted(set(UNRESOLVED_PATTERN.findall(text)))
            for key in keys:
                required = key in out.required_keys
                report.add(
                    "placeholders",
                    Level.FAILED if required else Level.WARNING,
                    f"{out.path} has an unresolved {'required ' if required else ''}fact '{key}'",
                    step=record.name,
                    path=out.path,
                )


def _check_consistency(manifest: Manifest, report: VerificationReport) -> None:
    report.checks_run.append("consistency")
    for record in manifest.steps:
        if record.status is not StepStatus.COMPLETED:
            continue
        for dep in record.depends_on:
            dep_record = manifest.step(dep)
            if dep_record is not None and dep_record.status is StepStatus.FAILED:
                report.add("consistency", Level.FAILED,
                           f"step '{record.name}' completed although '{dep}' failed",
                           step=record.name)


def _check_steps(manifest: Manifest, report: VerificationReport) -> None:
    report.checks_run.append("steps")
    for record in manifest.steps:
        if record.status is StepStatus.FAILED:
            level = Level.FAILED if record.blocking else Level.WARNING
            kind = "blocking" if record.blocking else "non-blocking"
            report.add("steps", level,
                       f"{kind} step '{record.name}' failed: {record.error or 'unknown error'}",
                       step=record.name)
        elif record.status is StepStatus.PENDING and manifest.completed_at:
            report.add("steps", Level.FAILED,
                       f"step '{record.name}' is pending in a manifest marked complete",
                       step=record.name)


def verify(target_root: Path, manifest: Manifest) -> VerificationReport:
    """Check that what the manifest claims holds on disk.

    Returns:
        VerificationReport whose ``outcome`` is passed, warning or failed.
    """
    report = VerificationReport()
    _check_outputs(target_root, manifest, report)
    _check_placeholders(target_root, manifest, report)
    _check_consistency(manifest, report)
    _check_steps(manifest, report)

    logger.info(
        "Verification %s (%d failures, %d warnings)",
        report.outcome.value, len(report.failures()), len(report.warnings()),
    )
    return report
