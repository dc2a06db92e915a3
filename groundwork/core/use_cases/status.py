"""
Status use case - read the manifest, verify it, summarize the last run.

Strictly read-only: nothing in the target is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from groundwork.core.config.loader import load_config
from groundwork.core.errors import ConfigError
from groundwork.core.models.manifest import Manifest
from groundwork.core.models.report import Level, VerificationReport
from groundwork.core.persistence.ledger import LedgerEntry, RunLedger
from groundwork.core.persistence.manifest_file import load_manifest
from groundwork.core.services.verification import verify


@dataclass
class StatusResult:
    """Manifest state plus a fresh verification."""

    target_root: Path | None = None
    manifest: Manifest | None = None
    verification: VerificationReport | None = None
    last_run: LedgerEntry | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or self.manifest is None:
            return 1
        if self.verification is not None and self.verification.outcome is Level.FAILED:
            return 2
        return 0

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            return result

        result["target_root"] = str(self.target_root)
        if self.manifest is not None:
            m = self.manifest
            result["manifest"] = {
                "started_at": m.started_at,
                "completed_at": m.completed_at,
                "finished": m.finished,
                "counts": m.counts(),
                "halted_step": m.halted_step.name if m.halted_step else None,
                "steps": [
                    {
                        "name": s.name,
                        "status": s.status.value,
                        "blocking": s.blocking,
                        "error": s.error,
                        "outputs": [o.path for o in s.outputs],
                    }
                    for s in m.steps
                ],
                "metadata": m.metadata,
            }
        if self.verification is not None:
            result["verification"] = self.verification.to_dict()
        if self.last_run is not None:
            result["last_run"] = self.last_run.model_dump(mode="json")
        return result


def get_status(target_root: Path, config_path: Path | None = None) -> StatusResult:
    """Load the manifest for ``target_root`` and verify it.

    Returns:
        StatusResult; ``error`` is set when there is no readable manifest.
    """
    result = StatusResult(target_root=target_root.resolve())

    try:
        config = load_config(target_root, config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    manifest_path = config.manifest_path(target_root)
    manifest = load_manifest(manifest_path)
    if manifest is None:
        result.error = f"No manifest at {manifest_path}; run `groundwork run` first."
        return result

    result.manifest = manifest
    result.verification = verify(target_root, manifest)

    recent = RunLedger(config.ledger_path(target_root)).read_recent(1)
    if recent:
        result.last_run = recent[0]
    return result
