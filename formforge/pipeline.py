"""formforge pipeline orchestrator.

Drives one scaffolding run through its phases:

Phase 1: VALIDATING -- Resolve raw selections into a frozen Configuration.
Phase 2: PLANNING   -- Derive the Plan (units, edges, file tasks).
Phase 3: GENERATING -- Materialize the plan under a transaction.
Phase 4: COMMITTING -- Keep the tree and report every created path.

A failure in PLANNING or GENERATING rolls the transaction back, so the target
directory ends up exactly as it was before the run.

Usage::

    formforge new Contoso.Inventory -o ./out --database sqlite --topology multi
    formforge relink ./out/Contoso.Inventory --standards ~/team-standards
    formforge choices
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
import traceback
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, ValidationError
from rich.markup import escape
from rich.panel import Panel

from formforge import __version__
from formforge.config import Settings, load_options_file
from formforge.scaffolder.errors import (
    AbortedError,
    ConfigurationError,
    GenerationError,
    PlanningError,
    ScaffoldError,
)
from formforge.scaffolder.generator import ProjectGenerator
from formforge.scaffolder.options import (
    AXES,
    FLAGS,
    Configuration,
    OptionResolver,
    RawSelections,
    Resolution,
    format_summary,
)
from formforge.scaffolder.standards import (
    LinkCapability,
    StandardsMode,
    detect_link_capability,
)
from formforge.scaffolder.templates import TemplateRenderer
from formforge.scaffolder.topology import TopologyPlanner
from formforge.scaffolder.transaction import ScaffoldTransaction
from formforge.utils import (
    PHASE_NAMES,
    console,
    format_duration,
    print_error,
    print_phase_header,
    print_summary_table,
    print_warning,
)


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PLANNING = "planning"
    GENERATING = "generating"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.VALIDATING}),
    RunState.VALIDATING: frozenset({RunState.PLANNING, RunState.FAILED}),
    RunState.PLANNING: frozenset({RunState.GENERATING, RunState.FAILED}),
    RunState.GENERATING: frozenset({RunState.COMMITTING, RunState.FAILED}),
    RunState.COMMITTING: frozenset({RunState.DONE}),
    RunState.DONE: frozenset(),
    RunState.FAILED: frozenset(),
}

_PHASES: dict[RunState, int] = {
    RunState.VALIDATING: 1,
    RunState.PLANNING: 2,
    RunState.GENERATING: 3,
    RunState.COMMITTING: 4,
}

# Failing from these states requires undoing the transaction.
_ROLLBACK_STATES = frozenset({RunState.PLANNING, RunState.GENERATING})


class RunReport(BaseModel):
    """End-of-run report: printed once, also returned to the caller."""

    command: str = "new"
    success: bool = False
    state: RunState = RunState.IDLE
    project_root: Optional[str] = None
    summary: str = ""
    created: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    rolled_back: list[str] = Field(default_factory=list)
    rollback_failures: list[str] = Field(default_factory=list)
    standards: StandardsMode = StandardsMode.ABSENT
    error: Optional[str] = None
    error_type: Optional[str] = None
    exit_code: int = 0
    duration: str = ""


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Pipeline:
    """formforge pipeline orchestrator.

    Runs are strictly sequential: each phase consumes the frozen output of
    the previous one.  A ``Pipeline`` instance drives a single run.

    Args:
        settings: Tool settings.
        generator: Injected generator (tests use this for fault injection).
        capability: Link capability.  Detected once before Generating when not
            given and the configuration asks for standards.
        confirm: Called with the ``Resolution`` after validation; returning
            ``False`` aborts the run before anything is written.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        planner: Optional[TopologyPlanner] = None,
        generator: Optional[ProjectGenerator] = None,
        capability: Optional[LinkCapability] = None,
        confirm: Optional[Callable[[Resolution], bool]] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.planner = planner or TopologyPlanner()
        self.generator = generator or ProjectGenerator(
            TemplateRenderer(self.settings.template_dir),
            record_name=self.settings.record_name,
            standards_dir=self.settings.standards_dir_name,
        )
        self.capability = capability
        self.confirm = confirm
        self.state = RunState.IDLE
        self.report = RunReport()
        self.transaction: Optional[ScaffoldTransaction] = None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _enter(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal run transition {self.state.value} -> {state.value}")
        self.state = state
        self.report.state = state
        phase = _PHASES.get(state)
        if phase is not None and not self.settings.quiet:
            print_phase_header(phase, PHASE_NAMES[phase])

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def run(
        self,
        raw: RawSelections,
        *,
        overwrite: bool = False,
        standards_source: str | Path | None = None,
    ) -> RunReport:
        """Execute a full ``new`` run.

        Returns:
            The run report.  Errors are recorded on it rather than raised.
        """
        started = time.monotonic()
        self.report.command = "new"
        try:
            self._enter(RunState.VALIDATING)
            resolution = self.validate(raw)

            self._enter(RunState.PLANNING)
            plan = self.planner.plan(resolution.configuration)
            root = self.generator.project_root(self.settings.output_dir, plan.configuration)
            self.report.project_root = str(root)
            capability = self._link_capability(plan.configuration)

            self._enter(RunState.GENERATING)
            self.generator.check_conflicts(plan, root, overwrite=overwrite)
            self.transaction = ScaffoldTransaction()
            result = await self.generator.generate(
                plan,
                root,
                self.transaction,
                capability=capability,
                standards_source=standards_source or self.settings.standards_source,
                overwrite=overwrite,
            )
            self.report.skipped = result.skipped
            self.report.warnings.extend(result.warnings)
            self.report.standards = result.standards.mode

            self._enter(RunState.COMMITTING)
            self.report.created = await self.transaction.commit()
            self._enter(RunState.DONE)
            self.report.success = True
        except ScaffoldError as exc:
            await self._fail(exc)
        except Exception as exc:
            await self._fail(self._wrap_unexpected(exc))
        finally:
            self.report.duration = format_duration(time.monotonic() - started)

        print_report(self.report)
        return self.report

    async def relink(
        self,
        project_dir: str | Path,
        standards_source: str | Path | None = None,
    ) -> RunReport:
        """Re-attach coding standards to an existing generated project."""
        started = time.monotonic()
        self.report.command = "relink"
        root = Path(project_dir)
        self.report.project_root = str(root)
        try:
            self._enter(RunState.VALIDATING)
            record = self.generator.read_record(root)
            configuration = self._recorded_configuration(root, record)
            self.report.summary = format_summary(configuration)

            self._enter(RunState.PLANNING)
            capability = self._link_capability(configuration, force=True)

            self._enter(RunState.GENERATING)
            self.transaction = ScaffoldTransaction()
            link, warnings = await self.generator.relink(
                root,
                self.transaction,
                capability=capability,
                standards_source=standards_source or self.settings.standards_source,
            )
            self.report.warnings.extend(warnings)
            self.report.standards = link.mode

            self._enter(RunState.COMMITTING)
            self.report.created = await self.transaction.commit()
            self._enter(RunState.DONE)
            self.report.success = True
        except ScaffoldError as exc:
            await self._fail(exc)
        except Exception as exc:
            await self._fail(self._wrap_unexpected(exc))
        finally:
            self.report.duration = format_duration(time.monotonic() - started)

        print_report(self.report)
        return self.report

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def validate(self, raw: RawSelections) -> Resolution:
        """Resolve *raw* and ask for confirmation when a prompt is wired."""
        resolver = OptionResolver(self.settings.defaults)
        resolution = resolver.resolve(raw)
        self.report.summary = resolution.summary
        self.report.warnings.extend(resolution.warnings)
        if not self.settings.quiet:
            for warning in resolution.warnings:
                print_warning(warning)
        if self.confirm is not None and not self.confirm(resolution):
            raise AbortedError("Aborted at the confirmation prompt; nothing was written.")
        return resolution

    @staticmethod
    def _recorded_configuration(root: Path, record: dict[str, Any]) -> Configuration:
        try:
            return Configuration.model_validate(record.get("configuration") or {})
        except ValidationError as exc:
            raise ConfigurationError(
                f"Generation record in {root} holds an invalid configuration: {exc}",
                axis="project_dir",
                value=str(root),
            ) from exc

    def _link_capability(self, configuration: Configuration, *, force: bool = False) -> LinkCapability:
        if self.capability is not None:
            return self.capability
        if not (force or configuration.attach_standards):
            return LinkCapability.NONE
        self.capability = detect_link_capability()
        return self.capability

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    def _wrap_unexpected(self, exc: Exception) -> ScaffoldError:
        detail = traceback.format_exc()
        if self.state is RunState.GENERATING:
            wrapped: ScaffoldError = GenerationError(f"Unexpected error: {exc}")
        else:
            wrapped = PlanningError(f"Internal error during {self.state.value}: {exc}")
        wrapped.__cause__ = exc
        if not self.settings.quiet:
            console.print(f"[dim]{escape(detail)}[/dim]")
        return wrapped

    async def _fail(self, exc: ScaffoldError) -> None:
        if self.state in _ROLLBACK_STATES and self.transaction is not None:
            self.report.rolled_back = await self.transaction.rollback()
            self.report.rollback_failures = list(self.transaction.rollback_failures)
        self._enter(RunState.FAILED)
        self.report.success = False
        self.report.error = exc.message
        self.report.error_type = type(exc).__name__
        self.report.exit_code = exc.exit_code


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def print_report(report: RunReport) -> None:
    """Print the end-of-run report panel."""
    if report.success:
        border_style = "bold green"
        status_text = f"[bold green]{report.command.upper()} SUCCEEDED[/bold green]"
    else:
        border_style = "bold red"
        status_text = f"[bold red]{report.command.upper()} FAILED[/bold red]"

    lines = [
        status_text,
        "",
        f"State     : {report.state.value}",
        f"Duration  : {report.duration}",
        f"Project   : {escape(report.project_root or '-')}",
        f"Standards : {report.standards.value}",
        f"Created   : {len(report.created)} path(s)",
    ]
    if report.skipped:
        lines.append(f"Unchanged : {len(report.skipped)} file(s)")
    if report.error:
        lines.extend(["", f"[red]{report.error_type}: {escape(report.error)}[/red]"])
    if report.rolled_back:
        lines.append(f"Rolled back {len(report.rolled_back)} path(s)")

    for title, paths in (
        ("Created", report.created),
        ("Rolled back", report.rolled_back),
        ("Rollback failed", report.rollback_failures),
    ):
        if paths:
            lines.append("")
            lines.append(f"[bold]{title}:[/bold]")
            lines.extend(f"  {escape(path)}" for path in paths)

    if report.warnings:
        lines.append("")
        lines.append("[bold yellow]Warnings:[/bold yellow]")
        lines.extend(f"  [yellow]{escape(w)}[/yellow]" for w in report.warnings)

    console.print()
    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold]formforge {__version__}[/bold]",
            border_style=border_style,
        )
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="formforge",
        description="formforge -- WinForms solution scaffolder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  formforge new Contoso.Inventory -o ./out\n"
            "  formforge new Contoso.Inventory --runtime net6 --database sqlite --topology multi\n"
            "  formforge new --interactive\n"
            "  formforge relink ./out/Contoso.Inventory --standards ~/team-standards\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"formforge {__version__}")
    parser.add_argument("--quiet", "-q", action="store_true", help="Hide phase headers")
    commands = parser.add_subparsers(dest="command", required=True)

    new = commands.add_parser("new", help="Generate a new solution")
    new.add_argument("name", nargs="?", default=None, help="Project name, e.g. Contoso.Inventory")
    new.add_argument("--output", "-o", default=None, help="Parent directory (default: .)")
    for axis, spec in AXES.items():
        new.add_argument(
            f"--{axis}",
            default=None,
            help=f"{spec.prompt}: {spec.allowed()} (default: {spec.default.value})",
        )
    new.add_argument("--tests", dest="include_tests", action="store_const", const=True, default=None,
                     help="Include the test project (default)")
    new.add_argument("--no-tests", dest="include_tests", action="store_const", const=False,
                     help="Skip the test project")
    new.add_argument("--standards", default=None, metavar="PATH",
                     help="Attach coding standards from PATH")
    new.add_argument("--no-link", action="store_true",
                     help="Copy standards instead of linking them")
    new.add_argument("--options-file", default=None, metavar="FILE",
                     help="YAML file with selections (CLI flags win)")
    new.add_argument("--overwrite", action="store_true",
                     help="Replace previously generated output")
    new.add_argument("--interactive", "-i", action="store_true",
                     help="Prompt for every selection not given on the command line")
    new.add_argument("--yes", "-y", action="store_true",
                     help="Skip the confirmation prompt in interactive mode")

    relink = commands.add_parser("relink", help="Re-attach coding standards to a generated project")
    relink.add_argument("project_dir", help="Generated project directory")
    relink.add_argument("--standards", default=None, metavar="PATH",
                        help="Standards source (default: the one recorded at generation)")
    relink.add_argument("--no-link", action="store_true",
                        help="Copy standards instead of linking them")

    commands.add_parser("choices", help="List every axis with its allowed values")
    return parser


def _cli_selections(args: argparse.Namespace) -> RawSelections:
    raw = RawSelections()
    if args.options_file:
        raw = load_options_file(args.options_file)
    cli: dict[str, Any] = {axis: getattr(args, axis) for axis in AXES}
    cli["name"] = args.name
    cli["include_tests"] = args.include_tests
    if args.standards:
        cli["attach_standards"] = True
    return raw.merged(RawSelections(**cli))


def _print_choices() -> None:
    for axis, spec in AXES.items():
        print_summary_table(
            {
                member.value: spec.label(member) + ("  (default)" if member == spec.default else "")
                for member in spec.choices
            },
            title=f"{spec.prompt} (--{axis})",
        )
    print_summary_table(
        {prompt: "yes" if default else "no" for prompt, default in FLAGS.values()},
        title="Flags (defaults)",
    )


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ``formforge`` / ``python -m formforge``."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "choices":
        _print_choices()
        return

    settings = Settings.from_env()
    if args.quiet:
        settings.quiet = True
    capability = LinkCapability.NONE if args.no_link else None

    try:
        if args.command == "relink":
            pipeline = Pipeline(settings, capability=capability)
            report = asyncio.run(pipeline.relink(args.project_dir, args.standards))
        else:
            if args.output:
                settings.output_dir = Path(args.output)
            raw = _cli_selections(args)
            confirm = None
            if args.interactive:
                from formforge.interactive import collect_selections, confirm_resolution

                raw = collect_selections(OptionResolver(settings.defaults), raw)
                if not args.yes:
                    confirm = confirm_resolution
            elif raw.name is None:
                parser.error("the project name is required unless --interactive is given")
            pipeline = Pipeline(settings, capability=capability, confirm=confirm)
            report = asyncio.run(pipeline.run(raw, overwrite=args.overwrite, standards_source=args.standards))
    except ConfigurationError as exc:
        print_error(f"Error: {exc.message}")
        sys.exit(exc.exit_code)
    except KeyboardInterrupt:
        print_error("Aborted.")
        sys.exit(AbortedError.exit_code)

    if not report.success:
        print_error(f"Error: {report.error}")
        sys.exit(report.exit_code)


if __name__ == "__main__":
    main()
