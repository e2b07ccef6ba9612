"""Shared pytest fixtures for the formforge test suite.

Provides reusable fixtures for:
- Resolved configurations for the common axis combinations
- Plans derived from them
- A template renderer on the packaged template library
- Output and standards directories under tmp_path
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from formforge.config import Settings
from formforge.scaffolder.generator import ProjectGenerator
from formforge.scaffolder.options import Configuration, OptionResolver, RawSelections
from formforge.scaffolder.templates import TemplateRenderer
from formforge.scaffolder.topology import Plan, TopologyPlanner

FIXED_NOW = datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Configurations & plans
# ---------------------------------------------------------------------------

@pytest.fixture
def make_configuration() -> Callable[..., Configuration]:
    """Factory resolving raw selections the way the CLI does."""

    def _make(name: str = "Contoso.Inventory", **selections: Any) -> Configuration:
        raw = RawSelections(name=name, **selections)
        return OptionResolver().resolve(raw).configuration

    return _make


@pytest.fixture
def make_plan(make_configuration) -> Callable[..., Plan]:
    """Factory returning the plan for a set of selections."""

    def _make(name: str = "Contoso.Inventory", **selections: Any) -> Plan:
        return TopologyPlanner().plan(make_configuration(name, **selections))

    return _make


@pytest.fixture
def default_config(make_configuration) -> Configuration:
    """All defaults: net8, SQL Server, standard WinForms, MVP, single project."""
    return make_configuration()


@pytest.fixture
def default_plan(make_plan) -> Plan:
    return make_plan()


@pytest.fixture
def multi_plan(make_plan) -> Plan:
    """Layered solution with a database, so all four layers exist."""
    return make_plan(database="sqlite", topology="multi")


# ---------------------------------------------------------------------------
# Rendering & generation
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def renderer() -> TemplateRenderer:
    """Renderer over the packaged template library."""
    return TemplateRenderer()


@pytest.fixture
def generator(renderer: TemplateRenderer) -> ProjectGenerator:
    """Generator with a frozen clock so records are comparable."""
    return ProjectGenerator(renderer, clock=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Parent directory generated projects are written into."""
    path = tmp_path / "out"
    path.mkdir()
    return path


@pytest.fixture
def standards_source(tmp_path: Path) -> Path:
    """A small coding-standards directory to attach."""
    source = tmp_path / "team-standards"
    (source / "csharp").mkdir(parents=True)
    (source / "README.md").write_text("# Team standards\n", encoding="utf-8")
    (source / "csharp" / "naming.md").write_text("Use PascalCase for types.\n", encoding="utf-8")
    return source


@pytest.fixture
def settings(output_dir: Path) -> Settings:
    """Quiet settings writing into ``output_dir``."""
    return Settings(output_dir=output_dir, quiet=True)


def _snapshot(root: Path) -> dict[str, Any]:
    entries: dict[str, Any] = {}
    if not root.exists():
        return entries
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if path.is_symlink():
            entries[rel] = ("link", str(path.readlink()))
        elif path.is_dir():
            entries[rel] = "dir"
        else:
            entries[rel] = path.read_bytes()
    return entries


@pytest.fixture
def snapshot() -> Callable[[Path], dict[str, Any]]:
    """Map every entry under a root to its bytes, link target or ``"dir"``."""
    return _snapshot
