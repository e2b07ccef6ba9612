"""Source artifact generation.

Renders every ``render`` task of a plan (bootstrap wiring, forms, pattern
artifacts, data-access stub, runtime configuration, editor descriptors) and
copies every ``copy`` task verbatim.  The template context is derived from the
plan alone, so the same configuration always yields byte-identical files.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from .catalog import LOG_LEVELS, PROVIDERS, RUNTIMES, TOOLKITS
from .errors import GenerationError
from .templates import TemplateRenderer
from .topology import FolderRole, Plan, TaskStrategy
from .transaction import TaskApplier

CONNECTION_NAME = "DefaultConnection"

# Context key for the namespace of each folder role.
_NAMESPACE_KEYS: dict[FolderRole, str] = {
    FolderRole.MODELS: "models",
    FolderRole.CONTRACTS: "contracts",
    FolderRole.SERVICES: "services",
    FolderRole.DATA_ACCESS: "data",
    FolderRole.PRESENTATION: "forms",
    FolderRole.VIEW_CONTRACTS: "views",
    FolderRole.COORDINATORS: "presenters",
    FolderRole.VIEW_MODELS: "view_models",
    FolderRole.UTILITIES: "utilities",
}


def build_context(plan: Plan) -> dict[str, Any]:
    """Build the Jinja2 template context from a plan.

    No clock, environment or working-directory values enter the context.
    """
    cfg = plan.configuration
    runtime = RUNTIMES[cfg.runtime]
    entry = plan.entry_unit
    test_unit = plan.test_unit

    namespaces: dict[str, Optional[str]] = {
        key: plan.namespace_for(role) for role, key in _NAMESPACE_KEYS.items()
    }
    # IAppInfoService lives in Contracts when a unit owns that folder.
    namespaces["contract"] = namespaces["contracts"] or namespaces["services"]

    database: Optional[dict[str, Any]] = None
    provider = PROVIDERS.get(cfg.database)
    if provider is not None:
        database = {
            "id": cfg.database.value,
            "label": provider.label,
            "name": cfg.database_name,
            "connection_name": CONNECTION_NAME,
            "connection_string": provider.format_connection(cfg.database_name),
            "registration": provider.registration_for(cfg.runtime),
            "usings": list(provider.usings),
            "package": provider.package_ref(cfg.runtime),
        }

    data_unit = plan.locate(FolderRole.DATA_ACCESS)
    return {
        "project_name": cfg.name,
        "runtime_id": cfg.runtime.value,
        "runtime": runtime,
        "ui": cfg.ui.value,
        "toolkit": TOOLKITS[cfg.ui],
        "pattern": cfg.pattern.value,
        "multi": cfg.is_multi,
        "include_tests": cfg.include_tests,
        "attach_standards": cfg.attach_standards,
        "database": database,
        # The executable may register the context itself only when it
        # compiles against the data-access code (single topology).
        "register_database": database is not None and data_unit is not None
        and data_unit[0].name == entry.name,
        "data_unit": data_unit[0].name if data_unit else None,
        "log_levels": dict(LOG_LEVELS),
        "ns": namespaces,
        "entry": {
            "name": entry.name,
            "namespace": entry.name,
            "directory": entry.directory,
            "manifest": entry.manifest_path,
        },
        "test_unit": test_unit.name if test_unit else None,
        "units": [
            {
                "name": unit.name,
                "kind": unit.kind.value,
                "directory": unit.directory,
                "folders": [spec.name for spec in unit.folders],
            }
            for unit in plan.units
        ],
        "configuration": cfg.describe(),
    }


class SourceGenerator:
    """Renders source artifacts and copies static files for a plan."""

    def __init__(self, renderer: TemplateRenderer) -> None:
        self.renderer = renderer

    def render_task_content(self, plan: Plan, source: str, context: dict[str, Any]) -> str:
        cfg = plan.configuration
        return self.renderer.render_for(
            source, context, ui=cfg.ui.value, pattern=cfg.pattern.value
        )

    async def generate(self, plan: Plan, applier: TaskApplier) -> list[str]:
        """Apply every render and copy task, in plan order.

        Returns:
            Relative paths of the files handled.

        Raises:
            GenerationError: If a template fails, a JSON artifact does not
                parse, or a connection string does not match its provider's
                documented shape.
        """
        context = build_context(plan)
        handled: list[str] = []
        for task in plan.tasks:
            if task.strategy is TaskStrategy.RENDER:
                if task.source is None:
                    raise GenerationError(f"Render task without a template: {task.path}", path=task.path)
                content = self.render_task_content(plan, task.source, context)
                if task.path.endswith(".json"):
                    self.validate_json(task.path, content, plan)
                await applier.write(task, content.encode("utf-8"))
            elif task.strategy is TaskStrategy.COPY:
                if task.source is None:
                    raise GenerationError(f"Copy task without a source: {task.path}", path=task.path)
                await applier.write(task, self.renderer.read_static(task.source))
            else:
                continue
            handled.append(task.path)
        return handled

    def validate_json(self, path: str, content: str, plan: Plan) -> dict[str, Any]:
        """Parse a rendered JSON artifact and check its connection entry."""
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise GenerationError(f"Rendered {path} is not valid JSON: {exc}", path=path) from exc

        if path.endswith("appsettings.json"):
            provider = PROVIDERS.get(plan.configuration.database)
            connections = data.get("ConnectionStrings")
            if provider is None:
                if connections:
                    raise GenerationError(
                        f"{path} has connection strings but no database was selected", path=path
                    )
            else:
                value = (connections or {}).get(CONNECTION_NAME, "")
                if not provider.shape.match(value):
                    raise GenerationError(
                        f"{path}: connection string {value!r} does not match the "
                        f"{provider.label} format",
                        path=path,
                    )
        return data
