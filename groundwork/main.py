"""
groundwork - CLI entrypoint.

Usage:
    groundwork --help
    groundwork run [TARGET]
    groundwork status [TARGET]
"""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path

import click

from groundwork import __version__
from groundwork.core.observability.logging_config import resolve_level, setup_logging

_TARGET = click.argument(
    "target",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
_STATUS_COLORS = {
    "passed": "green", "warning": "yellow", "failed": "red",
    "completed": "green", "skipped": "yellow", "pending": "white",
}


@click.group()
@click.version_option(version=__version__, prog_name="groundwork")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to groundwork.yml (default: TARGET/groundwork.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: Path | None,
) -> None:
    """groundwork - discover a project and scaffold its AI-assistant docs."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = config_path

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(level=resolve_level(verbose=verbose, quiet=quiet, debug=debug))


# ── Run / resume ────────────────────────────────────────────────


class _SigintCancel:
    """Turn the first Ctrl-C into a cooperative cancel between steps."""

    def __init__(self) -> None:
        self.event = threading.Event()
        self._previous = None

    def _handle(self, signum, frame) -> None:
        if self.event.is_set():
            raise KeyboardInterrupt
        click.secho("\n⏹  Cancelling after the current step (Ctrl-C again to abort)", fg="yellow", err=True)
        self.event.set()

    def __enter__(self) -> threading.Event:
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handle)
        return self.event

    def __exit__(self, *exc) -> None:
        if self._previous is not None:
            signal.signal(signal.SIGINT, self._previous)


def _print_run(ctx: click.Context, result) -> None:
    workflow = result.workflow
    click.secho(f"\n⚡ groundwork {result.mode} - {result.target_root}", fg="cyan", bold=True)

    if workflow.status == "already_finished":
        click.echo("   Already finished; nothing to do (use --update to regenerate).")
    elif workflow.status == "halted" and not workflow.executed:
        click.secho(f"   Halted at step '{workflow.halted_step}' (use --retry to run it again)", fg="red")

    manifest = workflow.manifest
    for record in manifest.steps:
        marker = {"completed": "✓", "skipped": "⊘", "failed": "✗", "pending": "·"}[record.status.value]
        color = _STATUS_COLORS.get(record.status.value, "white")
        if record.status.value == "failed" and not record.blocking:
            color = "yellow"
        ran = "" if record.name in workflow.executed or record.name in workflow.skipped else " (earlier run)"
        click.secho(f"   {marker} {record.name}", fg=color, nl=False)
        click.echo(ran)
        if record.error and record.status.value in ("failed", "skipped"):
            click.echo(f"     │ {record.error}")

    if ctx.obj.get("verbose"):
        for name, report in result.generation.items():
            for outcome in report.outcomes:
                click.echo(f"     {outcome.action:9} {outcome.path}")

    for conflict in result.conflicts:
        click.secho(f"   ⚠️  {conflict}", fg="yellow")

    click.echo()
    click.echo(f"   Files written: {result.files_written} | Regions preserved: {result.files_preserved}")
    if workflow.status == "cancelled":
        click.secho("   Cancelled; resume with `groundwork resume`.", fg="yellow", bold=True)
    if result.verification is not None:
        _print_verification(result.verification)
    click.echo()


def _print_verification(report) -> None:
    outcome = report.outcome.value
    click.secho(f"   Verification: {outcome}", fg=_STATUS_COLORS[outcome], bold=True)
    for finding in report.findings:
        color = _STATUS_COLORS[finding.level.value]
        click.secho(f"     • [{finding.check}] {finding.message}", fg=color)


def _run(ctx: click.Context, target: Path, retry: bool, update: bool,
         templates: Path | None, as_json: bool, require_manifest: bool) -> None:
    from groundwork.core.use_cases.run import run_workflow

    with _SigintCancel() as cancel:
        result = run_workflow(
            target,
            config_path=ctx.obj.get("config_path"),
            templates_dir=templates,
            retry=retry,
            update=update,
            require_manifest=require_manifest,
            cancel=cancel,
        )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    _print_run(ctx, result)
    sys.exit(result.exit_code)


_TEMPLATES = click.option(
    "--templates", "-t",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Template catalog directory (default: built-in).",
)
_JSON = click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")


@cli.command()
@_TARGET
@click.option("--retry", is_flag=True, help="Re-run a failed blocking step.")
@click.option("--update", is_flag=True, help="Re-run every step of a finished run.")
@_TEMPLATES
@_JSON
@click.pass_context
def run(ctx: click.Context, target: Path, retry: bool, update: bool,
        templates: Path | None, as_json: bool) -> None:
    """Discover TARGET, generate its docs, and verify them.

    Examples:

        groundwork run

        groundwork run ../my-service --update

        groundwork run --templates ./my-catalog --json
    """
    _run(ctx, target, retry, update, templates, as_json, require_manifest=False)


@cli.command()
@_TARGET
@click.option("--retry", is_flag=True, help="Re-run a failed blocking step.")
@_TEMPLATES
@_JSON
@click.pass_context
def resume(ctx: click.Context, target: Path, retry: bool,
           templates: Path | None, as_json: bool) -> None:
    """Continue an interrupted or halted run."""
    _run(ctx, target, retry, False, templates, as_json, require_manifest=True)


# ── Read-only ───────────────────────────────────────────────────


@cli.command()
@_TARGET
@_JSON
@click.pass_context
def status(ctx: click.Context, target: Path, as_json: bool) -> None:
    """Show the manifest of the last run and its verification."""
    from groundwork.core.use_cases.status import get_status

    result = get_status(target, config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    manifest = result.manifest
    click.secho(f"\n📋 {result.target_root}", fg="cyan", bold=True)
    click.echo(f"   Started: {manifest.started_at}")
    click.echo(f"   Completed: {manifest.completed_at or '-'}")
    project_type = manifest.metadata.get("project_type")
    if project_type:
        framework = manifest.metadata.get("framework")
        click.echo(f"   Project: {project_type}" + (f" ({framework})" if framework else ""))
    click.echo()

    for record in manifest.steps:
        color = _STATUS_COLORS.get(record.status.value, "white")
        blocking = " [blocking]" if record.blocking else ""
        click.secho(f"   • {record.name}{blocking} ", nl=False)
        click.secho(record.status.value, fg=color)
        if record.error:
            click.echo(f"     │ {record.error}")
        for out in record.outputs:
            click.echo(f"     → {out.path}")

    if result.last_run is not None:
        last = result.last_run
        click.echo()
        click.secho("   Last run:", fg="white", bold=True)
        click.echo(f"     {last.run_id} ({last.mode}) {last.status} at {last.timestamp}")

    click.echo()
    _print_verification(result.verification)
    click.echo()
    sys.exit(result.exit_code)


@cli.command()
@_TARGET
@_JSON
@click.pass_context
def verify(ctx: click.Context, target: Path, as_json: bool) -> None:
    """Check generated files against the manifest (read-only)."""
    from groundwork.core.use_cases.status import get_status

    result = get_status(target, config_path=ctx.obj.get("config_path"))

    if as_json:
        payload = result.verification.to_dict() if result.verification else result.to_dict()
        click.echo(json.dumps(payload, indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.echo()
    _print_verification(result.verification)
    click.echo()
    sys.exit(result.exit_code)


@cli.command()
@_TARGET
@_JSON
@click.option(
    "--snapshot",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the facts to this JSON file.",
)
@click.pass_context
def detect(ctx: click.Context, target: Path, as_json: bool, snapshot: Path | None) -> None:
    """Discover facts about TARGET without generating anything."""
    from groundwork.core.use_cases.detect import run_detect

    result = run_detect(target, config_path=ctx.obj.get("config_path"), snapshot=snapshot)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.secho(f"\n🔍 Facts: {result.target_root}", fg="cyan", bold=True)
    click.echo()
    for fact in result.facts:
        value = json.dumps(fact.value) if not isinstance(fact.value, str) else fact.value
        click.secho(f"   {fact.key} ", fg="white", bold=True, nl=False)
        click.echo(f"= {value}  ({fact.confidence.value}, {fact.source})")

    discovery = result.discovery
    if discovery.errors:
        click.echo()
        click.secho("   ⚠️  Detector errors:", fg="yellow")
        for error in discovery.errors:
            click.echo(f"     • {error}")
    if ctx.obj.get("verbose") and discovery.conflicts:
        click.echo()
        click.secho("   Conflicts:", fg="white", bold=True)
        for conflict in discovery.conflicts:
            click.echo(f"     • {conflict.key}: kept {conflict.kept.source}, "
                       f"discarded {conflict.discarded.source}")

    if result.snapshot_path:
        click.echo()
        click.secho(f"   💾 Snapshot saved to {result.snapshot_path}", fg="cyan")
    click.echo()


@cli.command()
@click.argument("template", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_TARGET
@click.pass_context
def render(ctx: click.Context, template: Path, target: Path) -> None:
    """Render TEMPLATE against the facts of TARGET to stdout."""
    from groundwork.core.use_cases.render import render_preview

    result = render_preview(template, target, config_path=ctx.obj.get("config_path"))
    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    click.echo(result.content, nl=False)


if __name__ == "__main__":
    cli()
