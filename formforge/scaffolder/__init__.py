"""formforge scaffolder -- plans and generates WinForms solution trees.

A run flows through three stages: ``OptionResolver`` turns raw selections
into a frozen ``Configuration``, ``TopologyPlanner`` derives a ``Plan`` (units,
layer references, file tasks) from it, and ``ProjectGenerator`` materializes
the plan through a ``ScaffoldTransaction`` so a failure can be undone.

Quick usage::

    from formforge.scaffolder import (
        OptionResolver, ProjectGenerator, RawSelections, ScaffoldTransaction,
        TopologyPlanner,
    )

    resolution = OptionResolver().resolve(RawSelections(name="Contoso.Inventory"))
    plan = TopologyPlanner().plan(resolution.configuration)
    generator = ProjectGenerator()
    root = generator.project_root("/tmp/output", plan.configuration)
    generator.check_conflicts(plan, root, overwrite=False)
    async with ScaffoldTransaction() as transaction:
        await generator.generate(plan, root, transaction)
        await transaction.commit()
"""

from formforge.scaffolder.errors import (
    AbortedError,
    ConfigurationError,
    ConflictError,
    GenerationError,
    IntegrationWarning,
    PlanningError,
    ScaffoldError,
)
from formforge.scaffolder.generator import GenerationResult, ProjectGenerator
from formforge.scaffolder.options import (
    ArchitecturePattern,
    Configuration,
    DatabaseProvider,
    OptionResolver,
    RawSelections,
    Resolution,
    RuntimeTarget,
    Topology,
    UIToolkit,
)
from formforge.scaffolder.standards import (
    ExternalStandardsLink,
    LinkCapability,
    StandardsLinker,
    StandardsMode,
    detect_link_capability,
)
from formforge.scaffolder.templates import TemplateRenderer
from formforge.scaffolder.topology import Plan, TopologyPlanner
from formforge.scaffolder.transaction import ScaffoldTransaction

__all__ = [
    # Errors
    "ScaffoldError",
    "ConfigurationError",
    "ConflictError",
    "GenerationError",
    "PlanningError",
    "AbortedError",
    "IntegrationWarning",
    # Options
    "RuntimeTarget",
    "DatabaseProvider",
    "UIToolkit",
    "ArchitecturePattern",
    "Topology",
    "RawSelections",
    "Configuration",
    "Resolution",
    "OptionResolver",
    # Planning
    "Plan",
    "TopologyPlanner",
    # Generation
    "ProjectGenerator",
    "GenerationResult",
    "ScaffoldTransaction",
    "TemplateRenderer",
    # Standards
    "ExternalStandardsLink",
    "LinkCapability",
    "StandardsLinker",
    "StandardsMode",
    "detect_link_capability",
]
