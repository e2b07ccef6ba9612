"""Interactive collection of project selections.

Asks one question per axis with Rich prompts.  Every answer goes through the
resolver's own per-axis parser as soon as it is typed, so an invalid answer is
re-asked on the spot rather than failing the whole run later.
"""

from __future__ import annotations

from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from formforge.scaffolder.errors import ConfigurationError
from formforge.scaffolder.options import (
    AXES,
    FLAGS,
    OptionResolver,
    RawSelections,
    Resolution,
)
from formforge.utils import console as default_console


def _ask_until_valid(
    resolver: OptionResolver,
    axis: str,
    prompt: str,
    default: Optional[str],
    console: Console,
) -> Any:
    while True:
        answer = Prompt.ask(prompt, default=default, console=console)
        try:
            return resolver.parse(axis, answer)
        except ConfigurationError as exc:
            console.print(f"[bold red]{escape(exc.message)}[/bold red]")


def _show_choices(axis: str, default: Any, console: Console) -> None:
    spec = AXES[axis]
    table = Table(show_header=False, box=None, padding=(0, 2))
    for index, member in enumerate(spec.choices, start=1):
        marker = " (default)" if member == default else ""
        table.add_row(f"[cyan]{index}[/cyan]", member.value, f"[dim]{spec.label(member)}{marker}[/dim]")
    console.print(table)


def collect_selections(
    resolver: OptionResolver,
    initial: Optional[RawSelections] = None,
    *,
    console: Optional[Console] = None,
) -> RawSelections:
    """Prompt for every axis not already answered in *initial*.

    Answers are validated immediately; the returned selections hold parsed
    values, so resolving them again cannot fail on a single axis.
    """
    console = console or default_console
    initial = initial or RawSelections()
    answers: dict[str, Any] = {}

    answers["name"] = initial.name or _ask_until_valid(
        resolver, "name", "Project name", None, console
    )

    for axis, spec in AXES.items():
        preset = getattr(initial, axis)
        if preset is not None:
            answers[axis] = resolver.parse(axis, preset)
            continue
        console.print(f"\n[bold]{spec.prompt}[/bold]")
        default = resolver.parse(axis, None)
        _show_choices(axis, default, console)
        answers[axis] = _ask_until_valid(resolver, axis, spec.prompt, default.value, console)

    for flag, (prompt, _) in FLAGS.items():
        preset = getattr(initial, flag)
        if preset is not None:
            answers[flag] = resolver.parse(flag, preset)
            continue
        answers[flag] = Confirm.ask(prompt, default=resolver.parse(flag, None), console=console)

    return RawSelections(**{key: _raw(value) for key, value in answers.items()})


def confirm_resolution(resolution: Resolution, *, console: Optional[Console] = None) -> bool:
    """Show the resolved summary (and any downgrades) and ask to proceed."""
    console = console or default_console
    console.print()
    console.print(Panel(resolution.summary, title="[bold]Project settings[/bold]", border_style="cyan"))
    for warning in resolution.warnings:
        console.print(f"[bold yellow]{escape(warning)}[/bold yellow]")
    return Confirm.ask("Generate the project with these settings?", default=True, console=console)


def _raw(value: Any) -> Any:
    # Enum members go back as their identifier so RawSelections stays plain.
    return getattr(value, "value", value)
