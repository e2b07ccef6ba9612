"""Directory tree and build-manifest generation.

Creates every folder the plan lists and renders the MSBuild manifests
(``.sln``, ``Directory.Build.props``, one ``.csproj`` per compilation unit)
so that project references follow the plan's validated edges exactly and
package references come from the catalog tables.
"""

from __future__ import annotations

import posixpath
import uuid
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Optional

from .catalog import (
    PATTERN_PACKAGES,
    PROVIDERS,
    RUNTIMES,
    TEST_PACKAGES,
    TOOLKITS,
    PackageRef,
)
from .errors import ConflictError, GenerationError
from .templates import TemplateRenderer
from .topology import CompilationUnit, FileTask, Plan, TaskStrategy, UnitKind
from .transaction import TaskApplier

# Visual Studio project-type GUIDs
CSHARP_SDK_PROJECT = "9A19103F-16F7-4668-BE54-9A1E7A4F7556"
SOLUTION_FOLDER = "2150E333-8FDC-42A3-9474-1A3956D46DE8"

# Only these hosting packages are needed outside the executable unit.
_DATA_ACCESS_HOSTING = {
    "Microsoft.Extensions.Configuration.Json",
    "Microsoft.Extensions.DependencyInjection",
}

_GUID_NAMESPACE = uuid.UUID("6f1d3c62-7d0f-4f0e-9a55-0f0b7d6c2a11")


def project_guid(name: str) -> str:
    """Deterministic, upper-case GUID for a project or solution folder."""
    return str(uuid.uuid5(_GUID_NAMESPACE, name)).upper()


def find_conflicts(
    plan: Plan,
    root: Path,
    record_name: str,
    standards_dir: Optional[str] = None,
) -> list[str]:
    """Return every planned path (and the record) that already exists.

    When the plan attaches standards and *root* holds no generation record,
    an existing *standards_dir* entry is not ours and conflicts as well.
    """
    root = Path(root)
    if root.exists() and not root.is_dir():
        return [str(root)]
    conflicts: list[str] = []
    has_record = (root / record_name).exists()
    if has_record:
        conflicts.append(record_name)
    if standards_dir and plan.configuration.attach_standards and not has_record:
        entry = root / standards_dir
        if entry.exists() or entry.is_symlink():
            conflicts.append(standards_dir)
    for task in plan.tasks:
        if task.strategy is TaskStrategy.MKDIR:
            continue
        target = root / task.path
        if target.exists() or target.is_symlink():
            conflicts.append(task.path)
    return conflicts


class ManifestGenerator:
    """Builds the directory tree and MSBuild manifests of a plan."""

    # Manifest template -> kind of artifact it produces
    _TEMPLATES: dict[str, str] = {
        "solution": "manifests/solution.sln.j2",
        "build-props": "manifests/Directory.Build.props.j2",
        "project": "manifests/project.csproj.j2",
    }

    def __init__(self, renderer: TemplateRenderer) -> None:
        self.renderer = renderer

    # -- Conflict policy ---------------------------------------------------

    def check_conflicts(
        self,
        plan: Plan,
        root: Path,
        *,
        overwrite: bool,
        record_name: str,
        standards_dir: Optional[str] = None,
    ) -> list[str]:
        """Fail fast when *root* already holds generated output.

        Returns the conflicting paths when *overwrite* is set (they will be
        replaced and backed up by the transaction).

        Raises:
            ConflictError: If anything conflicts and *overwrite* is not set.
        """
        conflicts = find_conflicts(plan, root, record_name, standards_dir)
        if Path(root).exists() and not Path(root).is_dir():
            raise ConflictError(f"Target {root} exists and is not a directory.", conflicts)
        if conflicts and not overwrite:
            shown = ", ".join(conflicts[:5])
            more = f" (+{len(conflicts) - 5} more)" if len(conflicts) > 5 else ""
            raise ConflictError(
                f"Target {root} already contains generated output: {shown}{more}. "
                "Use --overwrite to replace it.",
                conflicts,
            )
        return conflicts

    # -- Generation --------------------------------------------------------

    async def create_directories(self, plan: Plan, applier: TaskApplier) -> int:
        """Create every directory listed in the plan, in plan order."""
        tasks = plan.tasks_of(TaskStrategy.MKDIR)
        for task in tasks:
            await applier.mkdir(task)
        return len(tasks)

    async def generate_manifests(self, plan: Plan, applier: TaskApplier) -> list[str]:
        """Render and write every manifest task.

        Returns:
            The relative paths of the manifests, in plan order.
        """
        written: list[str] = []
        for task in plan.tasks_of(TaskStrategy.MANIFEST):
            content = self.render_manifest(plan, task)
            if task.path.endswith((".csproj", ".props")):
                self.validate_xml(task.path, content)
            await applier.write(task, content.encode("utf-8"))
            written.append(task.path)
        return written

    def render_manifest(self, plan: Plan, task: FileTask) -> str:
        """Render one manifest task to text (pure)."""
        template = self._TEMPLATES.get(task.artifact)
        if template is None:
            raise GenerationError(f"Unknown manifest artifact {task.artifact!r}", path=task.path)
        if task.artifact == "project":
            if task.unit is None:
                raise GenerationError(f"Project manifest without a unit: {task.path}", path=task.path)
            context = self.project_context(plan, plan.unit(task.unit))
        elif task.artifact == "solution":
            context = self.solution_context(plan)
        else:
            context = self.props_context(plan)
        return self.renderer.render(template, context)

    @staticmethod
    def validate_xml(path: str, content: str) -> None:
        try:
            ET.fromstring(content)
        except ET.ParseError as exc:
            raise GenerationError(f"Rendered manifest {path} is not well-formed XML: {exc}", path=path) from exc

    # -- Contexts ----------------------------------------------------------

    def solution_context(self, plan: Plan) -> dict[str, Any]:
        folders = sorted({unit.directory.split("/", 1)[0] for unit in plan.units})
        projects = [
            {
                "name": unit.name,
                "path": _windows_path(unit.manifest_path),
                "guid": _braced(project_guid(unit.name)),
                "folder_guid": _braced(project_guid(f"folder:{unit.directory.split('/', 1)[0]}")),
            }
            for unit in plan.units
        ]
        return {
            "project_type": _braced(CSHARP_SDK_PROJECT),
            "folder_type": _braced(SOLUTION_FOLDER),
            "folders": [{"name": f, "guid": _braced(project_guid(f"folder:{f}"))} for f in folders],
            "projects": projects,
            "solution_guid": _braced(project_guid(f"solution:{plan.configuration.name}")),
        }

    def props_context(self, plan: Plan) -> dict[str, Any]:
        cfg = plan.configuration
        return {
            "project_name": cfg.name,
            "runtime": RUNTIMES[cfg.runtime],
        }

    def project_context(self, plan: Plan, unit: CompilationUnit) -> dict[str, Any]:
        cfg = plan.configuration
        runtime = RUNTIMES[cfg.runtime]
        references = [
            _windows_path(posixpath.relpath(plan.unit(target).manifest_path, unit.directory))
            for target in plan.references_of(unit.name)
        ]
        return {
            "unit": unit,
            "runtime": runtime,
            "is_test": unit.kind is UnitKind.TESTS,
            "uses_winforms": unit.is_executable or unit.kind is UnitKind.TESTS,
            "high_dpi": unit.is_executable and runtime.modern_bootstrap,
            "packages": self.packages_for(plan, unit),
            "references": references,
            "copy_appsettings": unit.is_executable,
        }

    def packages_for(self, plan: Plan, unit: CompilationUnit) -> list[PackageRef]:
        """NuGet references of *unit*, sorted by package id.

        Keyed by (database provider x runtime) and by UI toolkit / pattern.
        """
        cfg = plan.configuration
        runtime = RUNTIMES[cfg.runtime]
        provider = PROVIDERS.get(cfg.database)
        toolkit = TOOLKITS[cfg.ui]
        packages: list[PackageRef] = []

        if unit.kind in (UnitKind.APPLICATION, UnitKind.PRESENTATION):
            packages.extend(runtime.hosting_packages)
            packages.extend(toolkit.packages)
            packages.extend(PATTERN_PACKAGES[cfg.pattern])
        if provider is not None and unit.kind in (UnitKind.APPLICATION, UnitKind.DATA_ACCESS):
            packages.append(provider.package_ref(cfg.runtime))
        if unit.kind is UnitKind.DATA_ACCESS:
            packages.extend(p for p in runtime.hosting_packages if p.name in _DATA_ACCESS_HOSTING)
        if unit.kind is UnitKind.TESTS:
            packages.extend(TEST_PACKAGES)

        unique = {package.name: package for package in packages}
        return [unique[name] for name in sorted(unique, key=str.lower)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _windows_path(path: str) -> str:
    return path.replace("/", "\\")


def _braced(guid: str) -> str:
    return "{" + guid + "}"
