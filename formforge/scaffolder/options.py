"""Option resolution: raw selections in, one frozen ``Configuration`` out.

Every configuration axis is a closed ``str`` enum.  Raw input (CLI flags, an
options file or interactive answers) is parsed per axis against that closed
set, cross-axis compatibility rules are applied as recorded downgrades, and
the result is frozen.  A ``Configuration`` can only be built for supported
combinations: the model validator re-checks the rule table, so an
incompatible combination cannot be represented even when constructed by hand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ConfigurationError


# ---------------------------------------------------------------------------
# Axes
# ---------------------------------------------------------------------------

class RuntimeTarget(str, Enum):
    """Target .NET runtime of the generated solution."""
    NET8 = "net8"
    NET6 = "net6"
    NET48 = "net48"


class DatabaseProvider(str, Enum):
    """EF Core provider wired into the data-access layer."""
    SQLSERVER = "sqlserver"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    NONE = "none"


class UIToolkit(str, Enum):
    """Control library the forms are built on."""
    STANDARD = "standard"
    DEVEXPRESS = "devexpress"
    REALTAIIZOR = "realtaiizor"


class ArchitecturePattern(str, Enum):
    """Presentation pattern.  MVP is presenter based, MVVM is binding heavy."""
    MVP = "mvp"
    MVVM = "mvvm"
    SIMPLE = "simple"


class Topology(str, Enum):
    """Single project, or one project per architectural layer."""
    SINGLE = "single"
    MULTI = "multi"


@dataclass(frozen=True)
class AxisSpec:
    """Allow-list, labels and aliases for one enumerated axis."""

    name: str
    enum: type[Enum]
    default: Enum
    prompt: str
    labels: dict[Any, str]
    aliases: dict[str, Any] = field(default_factory=dict)

    @property
    def choices(self) -> list[Enum]:
        return list(self.enum)

    def label(self, value: Enum) -> str:
        return self.labels.get(value, value.value)

    def allowed(self) -> str:
        return ", ".join(member.value for member in self.enum)


AXES: dict[str, AxisSpec] = {
    "runtime": AxisSpec(
        name="runtime",
        enum=RuntimeTarget,
        default=RuntimeTarget.NET8,
        prompt="Target runtime",
        labels={
            RuntimeTarget.NET8: ".NET 8 (LTS, latest)",
            RuntimeTarget.NET6: ".NET 6",
            RuntimeTarget.NET48: ".NET Framework 4.8 (legacy)",
        },
        aliases={
            "latest": RuntimeTarget.NET8,
            "net8.0": RuntimeTarget.NET8,
            "net8.0-windows": RuntimeTarget.NET8,
            "net6.0": RuntimeTarget.NET6,
            "net6.0-windows": RuntimeTarget.NET6,
            "legacy": RuntimeTarget.NET48,
            "netframework": RuntimeTarget.NET48,
            "net4.8": RuntimeTarget.NET48,
        },
    ),
    "database": AxisSpec(
        name="database",
        enum=DatabaseProvider,
        default=DatabaseProvider.SQLSERVER,
        prompt="Database provider",
        labels={
            DatabaseProvider.SQLSERVER: "SQL Server",
            DatabaseProvider.SQLITE: "SQLite",
            DatabaseProvider.POSTGRESQL: "PostgreSQL",
            DatabaseProvider.MYSQL: "MySQL",
            DatabaseProvider.NONE: "None",
        },
        aliases={
            "mssql": DatabaseProvider.SQLSERVER,
            "sql server": DatabaseProvider.SQLSERVER,
            "postgres": DatabaseProvider.POSTGRESQL,
            "npgsql": DatabaseProvider.POSTGRESQL,
            "mariadb": DatabaseProvider.MYSQL,
            "no": DatabaseProvider.NONE,
        },
    ),
    "ui": AxisSpec(
        name="ui",
        enum=UIToolkit,
        default=UIToolkit.STANDARD,
        prompt="UI toolkit",
        labels={
            UIToolkit.STANDARD: "Standard WinForms",
            UIToolkit.DEVEXPRESS: "DevExpress",
            UIToolkit.REALTAIIZOR: "ReaLTaiizor",
        },
        aliases={
            "winforms": UIToolkit.STANDARD,
            "dx": UIToolkit.DEVEXPRESS,
            "rt": UIToolkit.REALTAIIZOR,
        },
    ),
    "pattern": AxisSpec(
        name="pattern",
        enum=ArchitecturePattern,
        default=ArchitecturePattern.MVP,
        prompt="Architecture pattern",
        labels={
            ArchitecturePattern.MVP: "MVP (Model-View-Presenter)",
            ArchitecturePattern.MVVM: "MVVM (Model-View-ViewModel)",
            ArchitecturePattern.SIMPLE: "Simple (code-behind)",
        },
        aliases={
            "p1": ArchitecturePattern.MVP,
            "p2": ArchitecturePattern.MVVM,
            "model-view-presenter": ArchitecturePattern.MVP,
            "model-view-viewmodel": ArchitecturePattern.MVVM,
        },
    ),
    "topology": AxisSpec(
        name="topology",
        enum=Topology,
        default=Topology.SINGLE,
        prompt="Project structure",
        labels={
            Topology.SINGLE: "Single project",
            Topology.MULTI: "Multi-project (layered)",
        },
        aliases={
            "one": Topology.SINGLE,
            "layered": Topology.MULTI,
            "multiple": Topology.MULTI,
        },
    ),
}

# Boolean axes: name -> (prompt, default)
FLAGS: dict[str, tuple[str, bool]] = {
    "include_tests": ("Include test project", True),
    "attach_standards": ("Attach coding standards", False),
}

_TRUE = {"y", "yes", "true", "1", "on"}
_FALSE = {"n", "no", "false", "0", "off"}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# ---------------------------------------------------------------------------
# Per-axis parsing
# ---------------------------------------------------------------------------

def parse_axis(axis: str, raw: Any, default: Optional[Enum] = None) -> Enum:
    """Parse one raw selection against the closed allow-list of *axis*.

    Accepts the enum member itself, its value, its display label, a
    registered alias (all case-insensitive) or a 1-based index into the
    axis choices.  ``None`` and blank strings select the default.

    Raises:
        ConfigurationError: If the value matches nothing in the allow-list.
    """
    spec = AXES[axis]
    fallback = default if default is not None else spec.default
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return fallback
    if isinstance(raw, spec.enum):
        return raw
    if isinstance(raw, bool):
        raise ConfigurationError(
            f"Invalid {axis} {raw!r}. Allowed: {spec.allowed()}",
            axis=axis,
            value=raw,
        )

    choices = spec.choices
    token = str(raw).strip()
    if isinstance(raw, int) or (token.isascii() and token.isdigit()):
        index = int(token)
        if 1 <= index <= len(choices):
            return choices[index - 1]
        raise ConfigurationError(
            f"Invalid {axis} index {index}. Choose 1-{len(choices)} "
            f"({spec.allowed()})",
            axis=axis,
            value=raw,
        )

    lowered = token.lower()
    for member in choices:
        if lowered in (member.value, spec.label(member).lower()):
            return member
    if lowered in spec.aliases:
        return spec.aliases[lowered]

    raise ConfigurationError(
        f"Invalid {axis} {token!r}. Allowed: {spec.allowed()}",
        axis=axis,
        value=raw,
    )


def parse_flag(axis: str, raw: Any, default: Optional[bool] = None) -> bool:
    """Parse a yes/no axis.  ``None`` and blank select the default."""
    fallback = FLAGS[axis][1] if default is None else default
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return fallback
    if isinstance(raw, bool):
        return raw
    token = str(raw).strip().lower()
    if token in _TRUE:
        return True
    if token in _FALSE:
        return False
    raise ConfigurationError(
        f"Invalid {axis} {raw!r}. Answer yes or no.",
        axis=axis,
        value=raw,
    )


def validate_name(raw: Any) -> str:
    """Validate the project name as a dotted C# identifier path.

    ``Contoso.Inventory`` is accepted; ``my-app`` and ``3D.Viewer`` are not,
    since the name becomes the root namespace and the assembly name.
    """
    if raw is None or not str(raw).strip():
        raise ConfigurationError("Project name is required.", axis="name", value=raw)
    name = str(raw).strip()
    parts = name.split(".")
    if not all(_IDENTIFIER.match(part) for part in parts):
        raise ConfigurationError(
            f"Invalid project name {name!r}: use letters, digits and "
            "underscores, optionally separated by dots (e.g. Contoso.Inventory).",
            axis="name",
            value=raw,
        )
    return name


# ---------------------------------------------------------------------------
# Cross-axis compatibility
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompatibilityRule:
    """A combination the generator cannot produce, and its nearest substitute.

    The rule matches when every axis named in *when* holds one of the listed
    values.  The *axis* value is then replaced by *substitute* and *reason*
    (formatted with the display labels of the involved axes) is recorded as
    a warning.
    """

    axis: str
    when: dict[str, frozenset]
    substitute: Enum
    reason: str

    def matches(self, values: dict[str, Any]) -> bool:
        return all(values.get(name) in allowed for name, allowed in self.when.items())

    def describe(self, values: dict[str, Any]) -> str:
        labels = {name: AXES[name].label(values[name]) for name in AXES if name in values}
        return self.reason.format(**labels)


COMPATIBILITY_RULES: tuple[CompatibilityRule, ...] = (
    CompatibilityRule(
        axis="pattern",
        when={
            "pattern": frozenset({ArchitecturePattern.MVVM}),
            "runtime": frozenset({RuntimeTarget.NET6, RuntimeTarget.NET48}),
        },
        substitute=ArchitecturePattern.MVP,
        reason=(
            "Pattern MVVM requires WinForms command binding (.NET 7 or later); "
            "downgraded to MVP for runtime {runtime}."
        ),
    ),
)


def apply_compatibility(values: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Apply downgrade rules until none matches.

    Returns the adjusted values and one warning per applied downgrade, in
    the order they were applied.
    """
    resolved = dict(values)
    warnings: list[str] = []
    # Each rule moves its axis to a different value, so the number of
    # passes is bounded by the rule count.
    for _ in range(len(COMPATIBILITY_RULES) + 1):
        fired = False
        for rule in COMPATIBILITY_RULES:
            if rule.matches(resolved):
                warnings.append(rule.describe(resolved))
                resolved[rule.axis] = rule.substitute
                fired = True
        if not fired:
            return resolved, warnings
    raise ConfigurationError("Compatibility rules do not converge.")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

RawValue = Union[str, int, bool, None]


class RawSelections(BaseModel):
    """Unvalidated per-axis input, as collected from CLI flags or prompts."""

    name: Optional[str] = None
    runtime: RawValue = None
    database: RawValue = None
    ui: RawValue = None
    pattern: RawValue = None
    topology: RawValue = None
    include_tests: RawValue = None
    attach_standards: RawValue = None

    def merged(self, other: "RawSelections") -> "RawSelections":
        """Return a copy where every field set on *other* wins."""
        overrides = {k: v for k, v in other.model_dump().items() if v is not None}
        return self.model_copy(update=overrides)


class Configuration(BaseModel):
    """The frozen, validated set of choices a plan is derived from."""

    model_config = ConfigDict(frozen=True)

    name: str
    runtime: RuntimeTarget = RuntimeTarget.NET8
    database: DatabaseProvider = DatabaseProvider.SQLSERVER
    ui: UIToolkit = UIToolkit.STANDARD
    pattern: ArchitecturePattern = ArchitecturePattern.MVP
    topology: Topology = Topology.SINGLE
    include_tests: bool = True
    attach_standards: bool = False

    @model_validator(mode="after")
    def _check_supported(self) -> "Configuration":
        try:
            validate_name(self.name)
        except ConfigurationError as exc:
            raise ValueError(exc.message) from exc
        values = self.axis_values()
        for rule in COMPATIBILITY_RULES:
            if rule.matches(values):
                raise ValueError(f"unsupported combination: {rule.describe(values)}")
        return self

    def axis_values(self) -> dict[str, Enum]:
        return {axis: getattr(self, axis) for axis in AXES}

    @property
    def has_database(self) -> bool:
        return self.database is not DatabaseProvider.NONE

    @property
    def is_multi(self) -> bool:
        return self.topology is Topology.MULTI

    @property
    def database_name(self) -> str:
        """Database/catalog name derived from the project name."""
        return self.name.replace(".", "")

    def describe(self) -> dict[str, str]:
        """Human-readable label per axis, in prompt order."""
        rows = {"Project name": self.name}
        for axis, spec in AXES.items():
            rows[spec.prompt] = spec.label(getattr(self, axis))
        for flag, (prompt, _) in FLAGS.items():
            rows[prompt] = "yes" if getattr(self, flag) else "no"
        return rows


class Resolution(BaseModel):
    """Resolver output: the configuration, its summary and any downgrades."""

    configuration: Configuration
    summary: str
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class OptionResolver:
    """Turns ``RawSelections`` into a frozen ``Configuration``.

    Interactive and non-interactive entry points differ only in how they
    collect the ``RawSelections``; both end up here.

    Args:
        defaults: Optional per-axis raw defaults (e.g. from settings) used
            when a selection is left blank.  They are parsed with the same
            rules as user input.
    """

    def __init__(self, defaults: Optional[dict[str, Any]] = None) -> None:
        self.defaults: dict[str, Any] = {}
        for axis, raw in (defaults or {}).items():
            if axis in AXES:
                self.defaults[axis] = parse_axis(axis, raw)
            elif axis in FLAGS:
                self.defaults[axis] = parse_flag(axis, raw)
            else:
                raise ConfigurationError(f"Unknown axis {axis!r} in defaults.", axis=axis)

    def parse(self, axis: str, raw: Any) -> Any:
        """Parse a single answer; used by the prompts for immediate checks."""
        if axis == "name":
            return validate_name(raw)
        if axis in FLAGS:
            return parse_flag(axis, raw, self.defaults.get(axis))
        return parse_axis(axis, raw, self.defaults.get(axis))

    def resolve(self, raw: RawSelections) -> Resolution:
        """Validate every axis, apply downgrades and freeze the result.

        Raises:
            ConfigurationError: On any invalid value.  Nothing has been
                written to disk at this point.
        """
        name = validate_name(raw.name)
        values: dict[str, Any] = {
            axis: self.parse(axis, getattr(raw, axis)) for axis in AXES
        }
        values, warnings = apply_compatibility(values)
        flags = {flag: self.parse(flag, getattr(raw, flag)) for flag in FLAGS}

        configuration = Configuration(name=name, **values, **flags)
        return Resolution(
            configuration=configuration,
            summary=format_summary(configuration),
            warnings=warnings,
        )


def format_summary(configuration: Configuration) -> str:
    """Render the confirmation summary as aligned ``label : value`` lines."""
    rows = configuration.describe()
    width = max(len(label) for label in rows)
    return "\n".join(f"{label.ljust(width)} : {value}" for label, value in rows.items())
