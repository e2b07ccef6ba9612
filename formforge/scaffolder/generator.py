"""Generating-phase orchestrator.

Takes a ``Plan`` and materializes it under a project root through a
``ScaffoldTransaction``: directory tree, build manifests, rendered sources,
verbatim copies, the optional standards attachment and finally the
generation record (``.formforge.json``) that marks the tree as generated.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from .. import __version__
from ..utils import dump_json, load_json
from .errors import ConfigurationError, GenerationError, ScaffoldError
from .manifest_gen import ManifestGenerator
from .options import Configuration
from .source_gen import SourceGenerator
from .standards import (
    DEFAULT_STANDARDS_DIR,
    ExternalStandardsLink,
    LinkCapability,
    StandardsLinker,
    StandardsMode,
)
from .templates import TemplateRenderer
from .topology import Plan
from .transaction import ScaffoldTransaction, TaskApplier

RECORD_NAME = ".formforge.json"


class GenerationResult(BaseModel):
    """What a successful Generating phase produced (before commit)."""

    root: str
    manifests: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    standards: ExternalStandardsLink = Field(default_factory=ExternalStandardsLink)
    digests: dict[str, str] = Field(default_factory=dict)


class ProjectGenerator:
    """Main scaffolding orchestrator.

    Given a ``Plan``, generates the complete solution tree:
    - directory structure and MSBuild manifests (``ManifestGenerator``)
    - Program.cs, forms, pattern artifacts, appsettings.json, editor
      descriptors and static files (``SourceGenerator``)
    - the optional coding-standards attachment (``StandardsLinker``)
    - the generation record

    Every mutation is journaled on the transaction passed in; the caller owns
    commit and rollback.
    """

    def __init__(
        self,
        renderer: Optional[TemplateRenderer] = None,
        *,
        record_name: str = RECORD_NAME,
        standards_dir: str = DEFAULT_STANDARDS_DIR,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.renderer = renderer or TemplateRenderer()
        self.manifest_gen = ManifestGenerator(self.renderer)
        self.source_gen = SourceGenerator(self.renderer)
        self.record_name = record_name
        self.standards_dir = standards_dir
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # -- Public API --------------------------------------------------------

    def project_root(self, output_dir: str | Path, configuration: Configuration) -> Path:
        """The project folder is named after the project inside *output_dir*."""
        return Path(output_dir) / configuration.name

    def check_conflicts(self, plan: Plan, root: Path, *, overwrite: bool) -> list[str]:
        """Fail fast, before any mutation, if *root* holds generated output."""
        return self.manifest_gen.check_conflicts(
            plan,
            root,
            overwrite=overwrite,
            record_name=self.record_name,
            standards_dir=self.standards_dir,
        )

    async def generate(
        self,
        plan: Plan,
        root: str | Path,
        transaction: ScaffoldTransaction,
        *,
        capability: LinkCapability = LinkCapability.NONE,
        standards_source: str | Path | None = None,
        overwrite: bool = False,
    ) -> GenerationResult:
        """Generate the complete project structure for *plan* under *root*.

        An existing standards directory is replaced only with *overwrite* or
        when the previous generation record shows it was copied by us.

        Raises:
            GenerationError: On any failure.  Unexpected exceptions are
                wrapped so the caller always sees the taxonomy.
        """
        root = Path(root)
        try:
            return await self._generate(
                plan, root, transaction, capability, standards_source, overwrite
            )
        except ScaffoldError:
            raise
        except Exception as exc:
            raise GenerationError(f"Unexpected failure while generating {root}: {exc}") from exc

    async def relink(
        self,
        root: str | Path,
        transaction: ScaffoldTransaction,
        *,
        capability: LinkCapability,
        standards_source: str | Path | None = None,
    ) -> tuple[ExternalStandardsLink, list[str]]:
        """Re-run only the standards attachment on an existing project.

        The source defaults to the one stored in the generation record.
        """
        root = Path(root)
        record = self.read_record(root)
        source = standards_source or (record.get("standards") or {}).get("source")
        linker = StandardsLinker(capability, self.standards_dir)
        try:
            link, warnings = await linker.attach(
                root, source, transaction, replace_directory=_was_copied(record)
            )
            record["standards"] = link.model_dump(mode="json")
            await transaction.write_text(root / self.record_name, dump_json(record))
        except ScaffoldError:
            raise
        except Exception as exc:
            raise GenerationError(f"Relinking standards in {root} failed: {exc}") from exc
        return link, [str(w) for w in warnings]

    # -- Generation record -------------------------------------------------

    def read_record(self, root: Path) -> dict[str, Any]:
        """Load the generation record of an existing project.

        Raises:
            ConfigurationError: If *root* is not a generated project.
        """
        path = Path(root) / self.record_name
        if not path.is_file():
            raise ConfigurationError(
                f"{root} is not a formforge project (no {self.record_name}).",
                axis="project_dir",
                value=str(root),
            )
        try:
            return load_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(
                f"Generation record {path} is unreadable: {exc}",
                axis="project_dir",
                value=str(root),
            ) from exc

    def build_record(
        self,
        plan: Plan,
        digests: dict[str, str],
        standards: ExternalStandardsLink,
    ) -> dict[str, Any]:
        return {
            "tool": "formforge",
            "version": __version__,
            "created_at": self.clock().isoformat(),
            "configuration": plan.configuration.model_dump(mode="json"),
            "tasks": dict(sorted(digests.items())),
            "standards": standards.model_dump(mode="json"),
        }

    # -- Internal ----------------------------------------------------------

    async def _generate(
        self,
        plan: Plan,
        root: Path,
        transaction: ScaffoldTransaction,
        capability: LinkCapability,
        standards_source: str | Path | None,
        overwrite: bool,
    ) -> GenerationResult:
        result = GenerationResult(root=str(root))
        previous = self._previous_record(root, result)
        tasks = previous.get("tasks")
        applier = TaskApplier(transaction, root, dict(tasks) if isinstance(tasks, dict) else {})

        # 1. Project root (and any missing ancestors) plus the folder tree
        await transaction.mkdir(root)
        await self.manifest_gen.create_directories(plan, applier)

        # 2. Build manifests
        result.manifests = await self.manifest_gen.generate_manifests(plan, applier)

        # 3. Rendered sources and verbatim copies
        result.sources = await self.source_gen.generate(plan, applier)

        # 4. Coding standards
        if plan.configuration.attach_standards:
            linker = StandardsLinker(capability, self.standards_dir)
            result.standards, warnings = await linker.attach(
                root,
                standards_source,
                transaction,
                replace_directory=overwrite or _was_copied(previous),
            )
            result.warnings.extend(str(w) for w in warnings)

        # 5. Generation record
        result.digests = {key: digest for key, digest in applier.applied.items() if digest}
        record = self.build_record(plan, result.digests, result.standards)
        await transaction.write_text(root / self.record_name, dump_json(record))

        result.skipped = list(applier.skipped)
        return result

    def _previous_record(self, root: Path, result: GenerationResult) -> dict[str, Any]:
        """Record of an earlier run, for idempotent overwrite reruns."""
        if not (root / self.record_name).is_file():
            return {}
        try:
            record = self.read_record(root)
        except ConfigurationError as exc:
            result.warnings.append(f"{exc.message} Every file will be rewritten.")
            return {}
        return record


def _was_copied(record: dict[str, Any]) -> bool:
    standards = record.get("standards")
    return isinstance(standards, dict) and standards.get("mode") == StandardsMode.COPIED.value
