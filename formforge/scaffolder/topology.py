"""Topology planning: compilation units, dependency edges and file tasks.

The planner turns a frozen ``Configuration`` into a frozen ``Plan``.  The plan
is the single source of truth for the rest of the run: the manifest builder,
the renderer and the transaction guard only ever act on the tasks listed
here, in the order listed here.
"""

from __future__ import annotations

import hashlib
from collections import deque
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .errors import PlanningError
from .options import ArchitecturePattern, Configuration


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class FolderRole(str, Enum):
    """Conventional sub-folder of a compilation unit."""
    MODELS = "models"
    CONTRACTS = "contracts"
    SERVICES = "services"
    DATA_ACCESS = "data-access"
    PRESENTATION = "presentation"
    VIEW_CONTRACTS = "view-contracts"
    COORDINATORS = "coordinators"
    VIEW_MODELS = "view-models"
    UTILITIES = "utilities"


FOLDER_NAMES: dict[FolderRole, str] = {
    FolderRole.MODELS: "Models",
    FolderRole.CONTRACTS: "Contracts",
    FolderRole.SERVICES: "Services",
    FolderRole.DATA_ACCESS: "Data",
    FolderRole.PRESENTATION: "Forms",
    FolderRole.VIEW_CONTRACTS: "Views",
    FolderRole.COORDINATORS: "Presenters",
    FolderRole.VIEW_MODELS: "ViewModels",
    FolderRole.UTILITIES: "Utilities",
}

PATTERN_FOLDERS: dict[ArchitecturePattern, tuple[FolderRole, ...]] = {
    ArchitecturePattern.MVP: (FolderRole.VIEW_CONTRACTS, FolderRole.COORDINATORS),
    ArchitecturePattern.MVVM: (FolderRole.VIEW_MODELS,),
    ArchitecturePattern.SIMPLE: (),
}


class UnitKind(str, Enum):
    """Role of a compilation unit in the solution."""
    APPLICATION = "application"
    PRESENTATION = "presentation"
    DOMAIN = "domain"
    BUSINESS = "business"
    DATA_ACCESS = "data-access"
    TESTS = "tests"


# Layer -> layers it may reference.  Anything else is a planner defect.
ALLOWED_LAYER_EDGES: dict[UnitKind, frozenset[UnitKind]] = {
    UnitKind.PRESENTATION: frozenset({UnitKind.DOMAIN, UnitKind.BUSINESS}),
    UnitKind.BUSINESS: frozenset({UnitKind.DOMAIN}),
    UnitKind.DATA_ACCESS: frozenset({UnitKind.DOMAIN}),
    UnitKind.DOMAIN: frozenset(),
}

_UNIT_SUFFIX: dict[UnitKind, str] = {
    UnitKind.DOMAIN: "Domain",
    UnitKind.BUSINESS: "Business",
    UnitKind.DATA_ACCESS: "DataAccess",
    UnitKind.PRESENTATION: "Presentation",
    UnitKind.TESTS: "Tests",
}


class TaskStrategy(str, Enum):
    """How a ``FileTask`` is applied."""
    MKDIR = "mkdir"
    MANIFEST = "manifest"
    RENDER = "render"
    COPY = "copy"


# ---------------------------------------------------------------------------
# Plan models
# ---------------------------------------------------------------------------

class FolderSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: FolderRole
    name: str


class CompilationUnit(BaseModel):
    """One ``.csproj`` and the folders it owns."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: UnitKind
    directory: str
    output_type: str
    folders: tuple[FolderSpec, ...] = ()

    @property
    def manifest_path(self) -> str:
        return f"{self.directory}/{self.name}.csproj"

    @property
    def roles(self) -> frozenset[FolderRole]:
        return frozenset(folder.role for folder in self.folders)

    @property
    def is_executable(self) -> bool:
        return self.output_type == "WinExe"

    def folder(self, role: FolderRole) -> Optional[FolderSpec]:
        for spec in self.folders:
            if spec.role is role:
                return spec
        return None


class DependencyEdge(BaseModel):
    """``source`` references ``target`` (a ``<ProjectReference>``)."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str


class FileTask(BaseModel):
    """One unit of generation work.

    ``path`` is relative to the project root and always uses ``/``.
    ``source`` is the template name (render/manifest) or the static file
    (copy).  ``key`` identifies the task across runs.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    strategy: TaskStrategy
    artifact: str
    source: Optional[str] = None
    unit: Optional[str] = None
    key: str


class Plan(BaseModel):
    """Immutable result of planning one ``Configuration``."""

    model_config = ConfigDict(frozen=True)

    configuration: Configuration
    units: tuple[CompilationUnit, ...]
    edges: tuple[DependencyEdge, ...]
    test_edges: tuple[DependencyEdge, ...] = ()
    tasks: tuple[FileTask, ...]

    def unit(self, name: str) -> CompilationUnit:
        for unit in self.units:
            if unit.name == name:
                return unit
        raise KeyError(name)

    def units_of(self, kind: UnitKind) -> list[CompilationUnit]:
        return [unit for unit in self.units if unit.kind is kind]

    @property
    def entry_unit(self) -> CompilationUnit:
        """The executable unit that hosts ``Program.cs``."""
        for unit in self.units:
            if unit.is_executable:
                return unit
        raise PlanningError("Plan has no executable unit.")

    @property
    def test_unit(self) -> Optional[CompilationUnit]:
        tests = self.units_of(UnitKind.TESTS)
        return tests[0] if tests else None

    def locate(self, role: FolderRole) -> Optional[tuple[CompilationUnit, FolderSpec]]:
        """Return the source unit and folder that own *role*, if any."""
        for unit in self.units:
            spec = unit.folder(role)
            if spec is not None:
                return unit, spec
        return None

    def namespace_for(self, role: FolderRole) -> Optional[str]:
        located = self.locate(role)
        if located is None:
            return None
        unit, spec = located
        return f"{unit.name}.{spec.name}"

    def references_of(self, unit_name: str) -> list[str]:
        """Units referenced by *unit_name*, layer and test edges combined."""
        return [
            edge.target
            for edge in (*self.edges, *self.test_edges)
            if edge.source == unit_name
        ]

    def paths(self) -> list[str]:
        return [task.path for task in self.tasks]

    def tasks_of(self, strategy: TaskStrategy) -> list[FileTask]:
        return [task for task in self.tasks if task.strategy is strategy]


def task_key(strategy: TaskStrategy, path: str) -> str:
    """Stable idempotency key for a task."""
    digest = hashlib.sha256(f"{strategy.value}:{path}".encode("utf-8"))
    return digest.hexdigest()[:16]


def _task(
    path: str,
    strategy: TaskStrategy,
    artifact: str,
    source: Optional[str] = None,
    unit: Optional[str] = None,
) -> FileTask:
    return FileTask(
        path=path,
        strategy=strategy,
        artifact=artifact,
        source=source,
        unit=unit,
        key=task_key(strategy, path),
    )


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------

class TopologyPlanner:
    """Derives a ``Plan`` from a ``Configuration``.

    Planning is a pure function of the configuration: no file-system access,
    no clock, no environment.
    """

    def plan(self, configuration: Configuration) -> Plan:
        units = self._plan_units(configuration)
        edges = self._plan_edges(units)
        test_edges = self._plan_test_edges(units)
        validate_edges(units, edges, test_edges)

        tasks = self._plan_tasks(configuration, units)
        _check_unique(tasks)

        return Plan(
            configuration=configuration,
            units=tuple(units),
            edges=tuple(edges),
            test_edges=tuple(test_edges),
            tasks=tuple(tasks),
        )

    # -- Units -------------------------------------------------------------

    def _plan_units(self, cfg: Configuration) -> list[CompilationUnit]:
        pattern_roles = PATTERN_FOLDERS[cfg.pattern]
        units: list[CompilationUnit] = []

        if cfg.is_multi:
            layers: list[tuple[UnitKind, str, tuple[FolderRole, ...]]] = [
                (UnitKind.DOMAIN, "Library", (FolderRole.MODELS, FolderRole.CONTRACTS)),
                (UnitKind.BUSINESS, "Library", (FolderRole.SERVICES,)),
            ]
            if cfg.has_database:
                layers.append((UnitKind.DATA_ACCESS, "Library", (FolderRole.DATA_ACCESS,)))
            layers.append(
                (
                    UnitKind.PRESENTATION,
                    "WinExe",
                    (FolderRole.PRESENTATION, *pattern_roles, FolderRole.UTILITIES),
                )
            )
            for kind, output_type, roles in layers:
                name = f"{cfg.name}.{_UNIT_SUFFIX[kind]}"
                units.append(_unit(name, kind, f"src/{name}", output_type, roles))
        else:
            folders: list[FolderRole] = [FolderRole.MODELS, FolderRole.SERVICES]
            if cfg.has_database:
                folders.append(FolderRole.DATA_ACCESS)
            folders.extend([FolderRole.PRESENTATION, *pattern_roles, FolderRole.UTILITIES])
            units.append(
                _unit(cfg.name, UnitKind.APPLICATION, f"src/{cfg.name}", "WinExe", tuple(folders))
            )

        if cfg.include_tests:
            name = f"{cfg.name}.{_UNIT_SUFFIX[UnitKind.TESTS]}"
            units.append(_unit(name, UnitKind.TESTS, f"tests/{name}", "Test", ()))

        return units

    # -- Edges -------------------------------------------------------------

    def _plan_edges(self, units: list[CompilationUnit]) -> list[DependencyEdge]:
        by_kind = {unit.kind: unit for unit in units}
        edges: list[DependencyEdge] = []
        for source_kind, targets in ALLOWED_LAYER_EDGES.items():
            source = by_kind.get(source_kind)
            if source is None:
                continue
            for target_kind in sorted(targets, key=lambda kind: kind.value):
                target = by_kind.get(target_kind)
                if target is not None:
                    edges.append(DependencyEdge(source=source.name, target=target.name))
        return sorted(edges, key=lambda edge: (edge.source, edge.target))

    def _plan_test_edges(self, units: list[CompilationUnit]) -> list[DependencyEdge]:
        tests = [unit for unit in units if unit.kind is UnitKind.TESTS]
        if not tests:
            return []
        return [
            DependencyEdge(source=tests[0].name, target=unit.name)
            for unit in units
            if unit.kind is not UnitKind.TESTS
        ]

    # -- Tasks -------------------------------------------------------------

    def _plan_tasks(
        self, cfg: Configuration, units: list[CompilationUnit]
    ) -> list[FileTask]:
        source_units = [unit for unit in units if unit.kind is not UnitKind.TESTS]
        test_units = [unit for unit in units if unit.kind is UnitKind.TESTS]

        # 1. Directories
        directories: set[str] = {".vscode"}
        for unit in units:
            directories.add(unit.directory.split("/", 1)[0])
            directories.add(unit.directory)
            for spec in unit.folders:
                directories.add(f"{unit.directory}/{spec.name}")
        tasks = [_task(d, TaskStrategy.MKDIR, "directory") for d in sorted(directories)]

        # 2. Build manifests
        tasks.append(_task(f"{cfg.name}.sln", TaskStrategy.MANIFEST, "solution", "solution.sln.j2"))
        tasks.append(
            _task("Directory.Build.props", TaskStrategy.MANIFEST, "build-props", "Directory.Build.props.j2")
        )
        for unit in units:
            tasks.append(
                _task(unit.manifest_path, TaskStrategy.MANIFEST, "project", "project.csproj.j2", unit.name)
            )

        # 3. Rendered sources
        def located(role: FolderRole) -> tuple[CompilationUnit, FolderSpec]:
            for unit in source_units:
                spec = unit.folder(role)
                if spec is not None:
                    return unit, spec
            raise PlanningError(f"No unit owns the {role.value} folder.")

        def render(role: FolderRole, filename: str, artifact: str) -> FileTask:
            unit, spec = located(role)
            return _task(
                f"{unit.directory}/{spec.name}/{filename}",
                TaskStrategy.RENDER,
                artifact,
                f"{filename}.j2",
                unit.name,
            )

        entry = next(unit for unit in source_units if unit.is_executable)
        tasks.append(_task(f"{entry.directory}/Program.cs", TaskStrategy.RENDER, "program", "Program.cs.j2", entry.name))
        tasks.append(
            _task(f"{entry.directory}/appsettings.json", TaskStrategy.RENDER, "appsettings", "appsettings.json.j2", entry.name)
        )
        tasks.append(render(FolderRole.PRESENTATION, "MainForm.cs", "main-form"))
        tasks.append(render(FolderRole.PRESENTATION, "IFormFactory.cs", "form-factory-contract"))
        tasks.append(render(FolderRole.PRESENTATION, "FormFactory.cs", "form-factory"))
        if cfg.pattern is ArchitecturePattern.MVP:
            tasks.append(render(FolderRole.VIEW_CONTRACTS, "IMainView.cs", "view-contract"))
            tasks.append(render(FolderRole.COORDINATORS, "MainPresenter.cs", "presenter"))
        elif cfg.pattern is ArchitecturePattern.MVVM:
            tasks.append(render(FolderRole.VIEW_MODELS, "MainViewModel.cs", "view-model"))
        tasks.append(render(FolderRole.UTILITIES, "GlobalExceptionHandler.cs", "exception-handler"))
        tasks.append(render(FolderRole.MODELS, "AppInfo.cs", "model"))

        contract_role = (
            FolderRole.CONTRACTS
            if any(FolderRole.CONTRACTS in unit.roles for unit in source_units)
            else FolderRole.SERVICES
        )
        tasks.append(render(contract_role, "IAppInfoService.cs", "service-contract"))
        tasks.append(render(FolderRole.SERVICES, "AppInfoService.cs", "service"))

        if cfg.has_database:
            tasks.append(render(FolderRole.DATA_ACCESS, "AppDbContext.cs", "db-context"))
            tasks.append(render(FolderRole.DATA_ACCESS, "IRepository.cs", "repository-contract"))
            tasks.append(render(FolderRole.DATA_ACCESS, "Repository.cs", "repository"))
            tasks.append(render(FolderRole.DATA_ACCESS, "IUnitOfWork.cs", "unit-of-work-contract"))
            tasks.append(render(FolderRole.DATA_ACCESS, "UnitOfWork.cs", "unit-of-work"))
            tasks.append(render(FolderRole.DATA_ACCESS, "DbInitializer.cs", "db-initializer"))
            if cfg.is_multi:
                tasks.append(
                    render(FolderRole.DATA_ACCESS, "DataAccessRegistration.cs", "data-registration")
                )

        for unit in test_units:
            tasks.append(
                _task(
                    f"{unit.directory}/AppInfoServiceTests.cs",
                    TaskStrategy.RENDER,
                    "service-tests",
                    "AppInfoServiceTests.cs.j2",
                    unit.name,
                )
            )
            if cfg.pattern is ArchitecturePattern.MVP:
                tasks.append(
                    _task(
                        f"{unit.directory}/MainPresenterTests.cs",
                        TaskStrategy.RENDER,
                        "presenter-tests",
                        "MainPresenterTests.cs.j2",
                        unit.name,
                    )
                )

        tasks.append(_task(".vscode/tasks.json", TaskStrategy.RENDER, "editor-tasks", "vscode/tasks.json.j2"))
        tasks.append(_task(".vscode/launch.json", TaskStrategy.RENDER, "editor-launch", "vscode/launch.json.j2"))
        tasks.append(_task("README.md", TaskStrategy.RENDER, "readme", "README.md.j2"))

        # 4. Verbatim copies
        tasks.append(_task(".gitignore", TaskStrategy.COPY, "gitignore", "static/gitignore"))
        tasks.append(_task(".editorconfig", TaskStrategy.COPY, "editorconfig", "static/editorconfig"))

        return tasks


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_edges(
    units: list[CompilationUnit] | tuple[CompilationUnit, ...],
    edges: list[DependencyEdge] | tuple[DependencyEdge, ...],
    test_edges: list[DependencyEdge] | tuple[DependencyEdge, ...] = (),
) -> None:
    """Check layer rules and acyclicity.

    Raises:
        PlanningError: On a reference to an unknown unit, a layer edge not
            in ``ALLOWED_LAYER_EDGES``, a test edge not originating at the
            test unit, or a cycle.
    """
    kinds = {unit.name: unit.kind for unit in units}

    for edge in edges:
        if edge.source not in kinds or edge.target not in kinds:
            raise PlanningError(f"Edge references an unknown unit: {edge.source} -> {edge.target}")
        allowed = ALLOWED_LAYER_EDGES.get(kinds[edge.source], frozenset())
        if kinds[edge.target] not in allowed:
            raise PlanningError(
                f"Forbidden layer edge {edge.source} ({kinds[edge.source].value}) -> "
                f"{edge.target} ({kinds[edge.target].value})"
            )

    for edge in test_edges:
        if kinds.get(edge.source) is not UnitKind.TESTS or edge.target not in kinds:
            raise PlanningError(f"Invalid test edge: {edge.source} -> {edge.target}")

    order = topological_order(list(kinds), [*edges, *test_edges])
    if len(order) != len(kinds):
        raise PlanningError("Dependency graph contains a cycle.")


def topological_order(
    nodes: list[str], edges: list[DependencyEdge]
) -> list[str]:
    """Kahn's algorithm; dependencies come first.

    Nodes left on a cycle are omitted, so a result shorter than *nodes*
    means the graph is cyclic.
    """
    pending = {node: 0 for node in nodes}
    dependents: dict[str, list[str]] = {node: [] for node in nodes}
    for edge in edges:
        pending[edge.source] += 1
        dependents[edge.target].append(edge.source)

    queue = deque(node for node in nodes if pending[node] == 0)
    order: list[str] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for dependent in dependents[node]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                queue.append(dependent)
    return order


def _check_unique(tasks: list[FileTask]) -> None:
    seen: set[str] = set()
    for task in tasks:
        if task.key in seen:
            raise PlanningError(f"Duplicate task for {task.path} ({task.strategy.value})")
        seen.add(task.key)


def _unit(
    name: str,
    kind: UnitKind,
    directory: str,
    output_type: str,
    roles: tuple[FolderRole, ...],
) -> CompilationUnit:
    return CompilationUnit(
        name=name,
        kind=kind,
        directory=directory,
        output_type=output_type,
        folders=tuple(FolderSpec(role=role, name=FOLDER_NAMES[role]) for role in roles),
    )
