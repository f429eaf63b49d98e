"""Typer-based CLI for codeclear."""

from __future__ import annotations

import concurrent.futures
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__, config
from .analyzer import Analyzer
from .apply_models import ApplyResult
from .backup import BackupStore
from .config_manager import ClearConfig, load_config, save_config
from .diff_engine import DiffEngine
from .errors import BackupError, TransactionError
from .git_ops import GitOperations
from .models import AnalysisResult, Finding
from .orchestrator import ApplyOrchestrator
from .reporter import Reporter, ReportFormat, load_result
from .rewriter import SafeRewriter
from .verification import CommandVerifier

console = Console()

app = typer.Typer(
    help="🧹 codeclear: find unreachable code, rank the risk of deleting it, remove it safely.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"codeclear v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
):
    """codeclear: dead code analysis with transactional removal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load(project_path: Path, config_path: Optional[Path], max_risk: Optional[int]) -> ClearConfig:
    cfg = load_config(config_path or project_path / config.CONFIG_FILENAME)
    if max_risk is not None:
        cfg.max_auto_select_risk = max_risk
    return cfg


def _print_summary(result: AnalysisResult, limit: int = 30) -> None:
    console.print(
        f"[bold]{result.total_declarations}[/bold] declarations in "
        f"{len(result.analyzed_files)} files, [bold]{len(result.entry_points)}[/bold] entry points"
    )
    console.print(
        f"Unused: [bold]{result.unused_count}[/bold] "
        f"(usage {result.usage_percentage:.1f}%), protected: {len(result.protected)}, "
        f"unresolved references: {len(result.unresolved_references)}"
    )
    if not result.findings:
        console.print("[green]No unused declarations found.[/green]")
        return

    table = Table(title="Findings", show_lines=False)
    table.add_column("Sel", justify="center")
    table.add_column("Risk")
    table.add_column("Score", justify="right")
    table.add_column("Kind")
    table.add_column("Name", style="cyan")
    table.add_column("Location")
    for finding in result.findings[:limit]:
        decl = finding.declaration
        level = finding.risk_level
        table.add_row(
            "✓" if finding.is_selected else "",
            f"[{level.color}]{level.label}[/{level.color}]",
            str(finding.risk_score),
            decl.kind.display_name,
            decl.qualified_name,
            f"{decl.file_path}:{decl.line}",
        )
    console.print(table)
    if len(result.findings) > limit:
        console.print(f"... and {len(result.findings) - limit} more (use --format text for all)")
    selected = result.selected_findings
    console.print(f"[bold]{len(selected)}[/bold] findings auto-selected for removal")


def _emit_report(result: AnalysisResult, fmt: Optional[ReportFormat], output: Optional[Path]) -> None:
    reporter = Reporter(result)
    if output is not None:
        path = reporter.write(output, fmt or ReportFormat.JSON)
        typer.echo(f"Report written to {path}")
    elif fmt is not None:
        typer.echo(reporter.render(fmt), nl=False)


def _run_cancellable(orchestrator: ApplyOrchestrator, findings: List[Finding]) -> ApplyResult:
    """Run the transaction in a worker so Ctrl-C rolls back instead of killing it midway."""
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = pool.submit(orchestrator.apply, findings)
    try:
        while True:
            try:
                return future.result(timeout=0.2)
            except concurrent.futures.TimeoutError:
                continue
            except KeyboardInterrupt:
                orchestrator.cancel()
                typer.echo("Cancelling, restoring files...", err=True)
    finally:
        pool.shutdown(wait=True)


def _apply(
    project_path: Path,
    result: AnalysisResult,
    cfg: ClearConfig,
    yes: bool,
    verify: bool,
    dry_run: bool,
) -> None:
    selected = result.selected_findings
    if not selected:
        typer.echo("Nothing selected for removal.")
        return

    rewriter = SafeRewriter(root=project_path)
    if dry_run:
        typer.echo(DiffEngine().preview(rewriter.rewrite(selected)), nl=False)
        return

    if not yes and not typer.confirm(f"Remove {len(selected)} declarations?"):
        typer.echo("Aborted.")
        raise typer.Exit(code=1)

    verifier = None
    if verify and cfg.testing.run_tests:
        verifier = CommandVerifier(
            cfg.testing.command,
            cwd=project_path,
            timeout=cfg.testing.timeout,
            required=cfg.testing.require_verification,
        )
    vcs = GitOperations(project_path, cfg.git) if cfg.git.enabled else None
    config.ensure_base_dirs()
    orchestrator = ApplyOrchestrator(
        rewriter=rewriter,
        backups=BackupStore(config.BACKUP_DIR),
        verifier=verifier,
        vcs=vcs,
        config=cfg,
    )

    try:
        outcome = _run_cancellable(orchestrator, selected)
    except TransactionError as exc:
        typer.echo(f"❌ Apply failed during {exc.phase}: {exc}", err=True)
        if exc.result is not None and exc.result.verification is not None:
            tail = exc.result.verification.output.strip().splitlines()[-20:]
            for line in tail:
                typer.echo(f"   {line}", err=True)
        if exc.result is not None and exc.result.state.value == "rolled_back":
            typer.echo("All files were restored from backup.", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"✅ {outcome}")
    for skip in outcome.skipped:
        typer.echo(f"   skipped: {skip}")
    if outcome.branch:
        typer.echo(f"   branch: {outcome.branch}")
    if outcome.commit_message:
        typer.echo(f"   commit: {outcome.commit_message}")
    if outcome.backup_id:
        typer.echo(f"   backup: {outcome.backup_id}")


@app.command("scan")
def scan(
    project_path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Project to analyze."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file (default: <path>/.codeclear.toml)."),
    fmt: Optional[ReportFormat] = typer.Option(None, "--format", "-f", help="Report format."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to a file."),
    max_risk: Optional[int] = typer.Option(None, "--max-risk", min=0, max=100, help="Auto-select threshold."),
    apply: bool = typer.Option(False, "--apply", help="Remove the auto-selected findings."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Run the test command after rewriting."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the removal diff without writing."),
):
    """Analyze a project for unreachable declarations."""
    project_path = project_path.resolve()
    cfg = _load(project_path, config_path, max_risk)
    result = Analyzer(cfg).analyze_project(project_path)

    if fmt is None or output is not None:
        _print_summary(result)
    _emit_report(result, fmt, output)

    if apply or dry_run:
        _apply(project_path, result, cfg, yes=yes, verify=verify, dry_run=dry_run)


@app.command("apply")
def apply_command(
    project_path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Project to clean up."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file."),
    max_risk: Optional[int] = typer.Option(None, "--max-risk", min=0, max=100, help="Auto-select threshold."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Run the test command after rewriting."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the removal diff without writing."),
):
    """Analyze, then remove the auto-selected findings in one transaction."""
    project_path = project_path.resolve()
    cfg = _load(project_path, config_path, max_risk)
    result = Analyzer(cfg).analyze_project(project_path)
    _print_summary(result)
    _apply(project_path, result, cfg, yes=yes, verify=verify, dry_run=dry_run)


@app.command("report")
def report(
    input_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON result of a previous scan."),
    fmt: ReportFormat = typer.Option(ReportFormat.TEXT, "--format", "-f", help="Report format."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to a file."),
):
    """Render a report from a saved analysis result."""
    try:
        result = load_result(input_path)
    except (OSError, ValueError, KeyError) as exc:
        typer.echo(f"❌ Cannot read analysis result {input_path}: {exc}", err=True)
        raise typer.Exit(code=1)
    _emit_report(result, fmt, output)


@app.command("init-config")
def init_config(
    project_path: Path = typer.Argument(Path("."), file_okay=False, help="Where to write .codeclear.toml."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
):
    """Write a config file with the default settings."""
    target = project_path / config.CONFIG_FILENAME
    if target.exists() and not force:
        typer.echo(f"{target} already exists (use --force to overwrite).", err=True)
        raise typer.Exit(code=1)
    save_config(ClearConfig(), target)
    typer.echo(f"Wrote {target}")


@app.command("backups")
def list_backups():
    """List backups taken by apply runs."""
    backups = BackupStore(config.BACKUP_DIR).list_backups()
    if not backups:
        typer.echo("No backups found.")
        raise typer.Exit(code=0)

    table = Table(title="Backups")
    table.add_column("ID", style="cyan")
    table.add_column("Created")
    table.add_column("Files", justify="right")
    table.add_column("Label")
    for backup in backups:
        table.add_row(
            backup["backup_id"],
            backup.get("timestamp", ""),
            str(len(backup.get("files", []))),
            backup.get("label", ""),
        )
    console.print(table)


@app.command("restore")
def restore(backup_id: str = typer.Argument(..., help="Backup to restore.")):
    """Restore every file of a backup to its original location."""
    try:
        restored = BackupStore(config.BACKUP_DIR).restore(backup_id)
    except BackupError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Restored {len(restored)} files from {backup_id}.")
