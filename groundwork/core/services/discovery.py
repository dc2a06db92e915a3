"""
Discovery engine - run detectors against a target and build the fact store.

Pure inspection: the target tree is never modified.

Detectors are grouped into stages by prerequisite depth. Each stage fans
out on a bounded thread pool; findings are aggregated single-threaded, in
registration order, only after the whole stage has finished.
"""

from __future__ import annotations

import concurrent.futures
import fnmatch
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from groundwork.core.errors import DetectorError
from groundwork.core.models.fact import Confidence, Fact, FactValue
from groundwork.core.services.detectors.base import Detector, Finding
from groundwork.core.services.facts import Conflict, FactStore

logger = logging.getLogger(__name__)

USER_SOURCE = "groundwork.yml"


@dataclass
class DetectorRun:
    """Outcome of one detector for one discovery pass."""

    name: str
    stage: int
    status: str = "ok"              # ok, empty, error, skipped
    findings: int = 0
    accepted: list[str] = field(default_factory=list)
    error: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "stage": self.stage,
            "status": self.status,
            "findings": self.findings,
            "accepted": self.accepted,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class DiscoveryReport:
    """Everything discovery learned, plus what went wrong along the way."""

    target_root: str = ""
    runs: list[DetectorRun] = field(default_factory=list)
    errors: list[DetectorError] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    user_facts: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors

    def run_for(self, name: str) -> DetectorRun | None:
        for run in self.runs:
            if run.name == name:
                return run
        return None

    def to_dict(self) -> dict:
        return {
            "target_root": self.target_root,
            "user_facts": self.user_facts,
            "detectors": [r.to_dict() for r in self.runs],
            "errors": [{"detector": e.detector, "message": str(e)} for e in self.errors],
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


def compute_stages(detectors: list[Detector]) -> list[int]:
    """Stage index per detector: 0 without prerequisites, else one past its providers."""
    stages = [0 if not d.requires else -1 for d in detectors]

    def providers(key: str, me: int) -> list[int]:
        return [
            j for j, d in enumerate(detectors)
            if j != me and any(fnmatch.fnmatchcase(key, p) for p in d.provides)
        ]

    for _ in range(len(detectors)):
        changed = False
        for i, d in enumerate(detectors):
            if stages[i] >= 0:
                continue
            deps = [j for key in d.requires for j in providers(key, i)]
            if all(stages[j] >= 0 for j in deps):
                stages[i] = 1 + max((stages[j] for j in deps), default=-1)
                changed = True
        if not changed:
            break

    # Unresolvable prerequisites (cycles): run last, they will likely be skipped
    last = max(stages, default=0) + 1
    return [s if s >= 0 else last for s in stages]


def _run_detector(detector: Detector, root: Path, store: FactStore) -> tuple[list[Finding], str | None, int]:
    start = time.monotonic()
    try:
        findings = list(detector.detect(root, store) or [])
        error = None
    except Exception as e:
        findings, error = [], f"{type(e).__name__}: {e}"
    return findings, error, int((time.monotonic() - start) * 1000)


def _to_fact(detector: Detector, finding: Finding) -> Fact:
    kind = next(
        (k for p, k in detector.provides.items() if fnmatch.fnmatchcase(finding.key, p)),
        None,
    )
    if kind is None:
        raise DetectorError(detector.name, f"undeclared fact key {finding.key!r}")
    if not kind.accepts(finding.value):
        raise DetectorError(
            detector.name, f"{finding.key}: expected {kind.value}, got {type(finding.value).__name__}"
        )
    return Fact(
        key=finding.key,
        value=finding.value,
        confidence=Confidence(finding.confidence).clamp(detector.ceiling),
        source=detector.source_for(finding),
    )


def discover(
    target_root: Path,
    detectors: list[Detector],
    user_facts: dict[str, FactValue] | None = None,
    max_workers: int = 4,
) -> tuple[FactStore, DiscoveryReport]:
    """Run all detectors and return the frozen fact store with a report.

    Discovery never raises for detector problems: every failure becomes a
    ``DetectorError`` entry in the report and contributes no facts.

    Args:
        target_root: Project to inspect (read-only).
        detectors: Detectors in registration order.
        user_facts: Facts from groundwork.yml; they enter first at high
            confidence and therefore win every tie.
        max_workers: Upper bound on concurrent detectors per stage.

    Returns:
        (frozen FactStore, DiscoveryReport)
    """
    root = target_root.resolve()
    store = FactStore()
    report = DiscoveryReport(target_root=str(root))

    for key, value in (user_facts or {}).items():
        store.propose(Fact(key=key, value=value, confidence=Confidence.HIGH, source=USER_SOURCE), order=-1)
        report.user_facts += 1

    stages = compute_stages(detectors)
    for stage in sorted(set(stages)):
        members = [i for i, s in enumerate(stages) if s == stage]

        runnable: list[int] = []
        for i in members:
            missing = [k for k in detectors[i].requires if k not in store]
            if missing:
                report.runs.append(DetectorRun(
                    name=detectors[i].name, stage=stage, status="skipped",
                    error=f"prerequisites not set: {', '.join(missing)}",
                ))
                logger.debug("Detector %s skipped; missing %s", detectors[i].name, missing)
            else:
                runnable.append(i)
        if not runnable:
            continue

        results: dict[int, tuple[list[Finding], str | None, int]] = {}
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, min(max_workers, len(runnable))),
        ) as pool:
            futures = {pool.submit(_run_detector, detectors[i], root, store): i for i in runnable}
            for future in concurrent.futures.as_completed(futures):
                results[futures[future]] = future.result()

        # ── Barrier: aggregate in registration order ─────────────
        for i in runnable:
            detector = detectors[i]
            findings, error, duration = results[i]
            run = DetectorRun(name=detector.name, stage=stage, findings=len(findings),
                              duration_ms=duration)
            report.runs.append(run)

            if error is not None:
                run.status, run.error = "error", error
                report.errors.append(DetectorError(detector.name, error))
                logger.warning("Detector %s failed: %s", detector.name, error)
                continue

            for finding in findings:
                try:
                    fact = _to_fact(detector, finding)
                except (DetectorError, ValueError) as e:
                    err = e if isinstance(e, DetectorError) else DetectorError(detector.name, str(e))
                    report.errors.append(err)
                    run.error = str(err)
                    logger.warning("Rejected finding: %s", err)
                    continue
                if store.propose(fact, order=i):
                    run.accepted.append(fact.key)
            if not findings:
                run.status = "empty"

    report.conflicts = store.conflicts
    report.runs.sort(key=lambda r: next(
        (i for i, d in enumerate(detectors) if d.name == r.name), len(detectors)
    ))
    logger.info(
        "Discovery found %d facts (%d detectors, %d errors)",
        len(store), len(detectors), len(report.errors),
    )
    return store.freeze(), report
