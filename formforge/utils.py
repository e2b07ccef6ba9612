"""Console and JSON helpers shared by the pipeline and the scaffolder.

Progress, choice tables and the end-of-run report go to ``console``
(stdout); failure reasons go to ``err_console`` (stderr).  Messages passed to
the ``print_*`` helpers are escaped, so paths and warnings containing square
brackets print literally.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def load_json(path: str | Path) -> dict[str, Any]:
    """Read a UTF-8 JSON document.

    A top-level value that is not an object comes back wrapped as
    ``{"_root": value}`` so callers can always index by key.

    Raises:
        FileNotFoundError: *path* does not exist.
        json.JSONDecodeError: The content is not JSON.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {"_root": data}


def dump_json(data: dict[str, Any] | list[Any]) -> str:
    """Stable, pretty-printed JSON with a trailing newline.

    Key order is preserved (never sorted) so generated files are
    byte-identical for identical input.
    """
    return json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n"


def format_duration(seconds: float) -> str:
    """``0.42`` -> ``"0.4s"``, ``65.2`` -> ``"1m 5s"``; negatives clamp to zero."""
    seconds = max(seconds, 0.0)
    minutes, rest = divmod(seconds, 60)
    if minutes:
        return f"{int(minutes)}m {int(rest)}s"
    return f"{rest:.1f}s"


# ---------------------------------------------------------------------------
# Run phases
# ---------------------------------------------------------------------------

PHASE_NAMES: dict[int, str] = {
    1: "VALIDATING",
    2: "PLANNING",
    3: "GENERATING",
    4: "COMMITTING",
}

PHASE_COLORS: dict[int, str] = {
    1: "bright_cyan",
    2: "bright_blue",
    3: "bright_yellow",
    4: "bright_green",
}


def print_phase_header(phase: int, name: str) -> None:
    """Full-width rule announcing *phase*, coloured per phase."""
    color = PHASE_COLORS.get(phase, "white")
    label = f" Phase {phase}: {name.upper()} "
    console.print(Rule(f"[bold {color}]{label}[/bold {color}]", style=color))


# ---------------------------------------------------------------------------
# Messages & tables
# ---------------------------------------------------------------------------


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Two-column table of *data*, e.g. the accepted values of one axis."""
    table = Table(title=title, header_style="bold cyan")
    table.add_column("Setting", style="dim", no_wrap=True)
    table.add_column("Value")
    for label, value in data.items():
        table.add_row(escape(label), escape(str(value)))
    console.print(table)
    console.print()


def print_error(message: str) -> None:
    """Failure reasons always go to stderr."""
    err_console.print(f"[bold red]{escape(message)}[/bold red]")


def print_warning(message: str) -> None:
    console.print(f"[bold yellow]{escape(message)}[/bold yellow]")
