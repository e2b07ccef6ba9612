"""Tests for option resolution (formforge.scaffolder.options).

Covers:
- Per-axis parsing: values, labels, aliases, indices, blanks
- Yes/no flags
- Project-name validation
- The MVVM downgrade rule and its warning
- Configuration immutability and its unsupported-combination guard
- Summary formatting
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from formforge.scaffolder.errors import ConfigurationError
from formforge.scaffolder.options import (
    AXES,
    ArchitecturePattern,
    Configuration,
    DatabaseProvider,
    OptionResolver,
    RawSelections,
    RuntimeTarget,
    Topology,
    UIToolkit,
    apply_compatibility,
    format_summary,
    parse_axis,
    parse_flag,
    validate_name,
)


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# parse_axis
# ---------------------------------------------------------------------------

class TestParseAxis:
    def test_identifier(self):
        assert parse_axis("database", "sqlite") is DatabaseProvider.SQLITE

    def test_case_and_whitespace_insensitive(self):
        assert parse_axis("ui", "  DevExpress ") is UIToolkit.DEVEXPRESS

    def test_display_label(self):
        assert parse_axis("database", "SQL Server") is DatabaseProvider.SQLSERVER

    def test_alias(self):
        assert parse_axis("database", "postgres") is DatabaseProvider.POSTGRESQL
        assert parse_axis("runtime", "net8.0-windows") is RuntimeTarget.NET8

    def test_one_based_index(self):
        assert parse_axis("runtime", "3") is RuntimeTarget.NET48
        assert parse_axis("topology", 2) is Topology.MULTI

    def test_index_out_of_range(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_axis("pattern", "4")
        assert exc_info.value.axis == "pattern"
        assert "1-3" in exc_info.value.message

    @pytest.mark.parametrize("token", ["\u00b2", "\u0663", "\uff12"])
    def test_non_ascii_digits_are_not_indexes(self, token):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_axis("runtime", token)
        assert exc_info.value.axis == "runtime"
        assert exc_info.value.exit_code == 2
        assert "Allowed: net8, net6, net48" in exc_info.value.message

    @pytest.mark.parametrize("blank", [None, "", "   "])
    def test_blank_selects_default(self, blank):
        assert parse_axis("runtime", blank) is RuntimeTarget.NET8

    def test_blank_uses_supplied_default(self):
        assert parse_axis("database", "", DatabaseProvider.NONE) is DatabaseProvider.NONE

    def test_unknown_value_lists_allowed(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_axis("database", "oracle")
        err = exc_info.value
        assert err.exit_code == 2
        assert err.value == "oracle"
        assert "sqlserver, sqlite, postgresql, mysql, none" in err.message

    def test_enum_member_passes_through(self):
        assert parse_axis("pattern", ArchitecturePattern.SIMPLE) is ArchitecturePattern.SIMPLE

    def test_bool_rejected(self):
        with pytest.raises(ConfigurationError):
            parse_axis("topology", True)


class TestParseFlag:
    @pytest.mark.parametrize("raw", ["y", "YES", "true", "1", True])
    def test_truthy(self, raw):
        assert parse_flag("include_tests", raw) is True

    @pytest.mark.parametrize("raw", ["n", "No", "false", "0", False])
    def test_falsy(self, raw):
        assert parse_flag("include_tests", raw) is False

    def test_blank_uses_flag_default(self):
        assert parse_flag("include_tests", None) is True
        assert parse_flag("attach_standards", "") is False

    def test_invalid(self):
        with pytest.raises(ConfigurationError, match="yes or no"):
            parse_flag("attach_standards", "maybe")


class TestValidateName:
    @pytest.mark.parametrize("name", ["Inventory", "Contoso.Inventory", "_Tools.V2"])
    def test_valid(self, name):
        assert validate_name(f"  {name} ") == name

    @pytest.mark.parametrize("name", ["my-app", "3D.Viewer", "Contoso..App", "Contoso.", "has space"])
    def test_invalid(self, name):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_name(name)
        assert exc_info.value.axis == "name"

    @pytest.mark.parametrize("name", [None, "", "  "])
    def test_required(self, name):
        with pytest.raises(ConfigurationError, match="required"):
            validate_name(name)


# ---------------------------------------------------------------------------
# Compatibility
# ---------------------------------------------------------------------------

class TestCompatibility:
    @pytest.mark.parametrize("runtime", [RuntimeTarget.NET6, RuntimeTarget.NET48])
    def test_mvvm_downgraded_on_older_runtimes(self, runtime):
        values = {axis: spec.default for axis, spec in AXES.items()}
        values.update(runtime=runtime, pattern=ArchitecturePattern.MVVM)

        resolved, warnings = apply_compatibility(values)

        assert resolved["pattern"] is ArchitecturePattern.MVP
        assert len(warnings) == 1
        assert "Pattern MVVM requires WinForms command binding (.NET 7 or later)" in warnings[0]
        assert AXES["runtime"].label(runtime) in warnings[0]

    def test_mvvm_kept_on_net8(self):
        values = {axis: spec.default for axis, spec in AXES.items()}
        values["pattern"] = ArchitecturePattern.MVVM

        resolved, warnings = apply_compatibility(values)

        assert resolved["pattern"] is ArchitecturePattern.MVVM
        assert warnings == []

    def test_input_not_mutated(self):
        values = {"runtime": RuntimeTarget.NET6, "pattern": ArchitecturePattern.MVVM}
        apply_compatibility(values)
        assert values["pattern"] is ArchitecturePattern.MVVM


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestConfiguration:
    def test_defaults(self):
        cfg = Configuration(name="Inventory")
        assert cfg.runtime is RuntimeTarget.NET8
        assert cfg.database is DatabaseProvider.SQLSERVER
        assert cfg.ui is UIToolkit.STANDARD
        assert cfg.pattern is ArchitecturePattern.MVP
        assert cfg.topology is Topology.SINGLE
        assert cfg.include_tests is True
        assert cfg.attach_standards is False

    def test_frozen(self):
        cfg = Configuration(name="Inventory")
        with pytest.raises(ValidationError):
            cfg.runtime = RuntimeTarget.NET6

    def test_unsupported_combination_unrepresentable(self):
        with pytest.raises(ValidationError, match="unsupported combination"):
            Configuration(name="Inventory", runtime="net48", pattern="mvvm")

    def test_invalid_name_rejected(self):
        with pytest.raises(ValidationError):
            Configuration(name="not-valid")

    def test_derived_properties(self):
        cfg = Configuration(name="Contoso.Inventory", database="none", topology="multi")
        assert cfg.has_database is False
        assert cfg.is_multi is True
        assert cfg.database_name == "ContosoInventory"

    def test_round_trips_through_json(self):
        cfg = Configuration(name="Contoso.Inventory", database="mysql", ui="realtaiizor")
        again = Configuration.model_validate(cfg.model_dump(mode="json"))
        assert again == cfg

    def test_describe_uses_prompts_in_order(self):
        rows = Configuration(name="Inventory", include_tests=False).describe()
        assert list(rows) == [
            "Project name",
            "Target runtime",
            "Database provider",
            "UI toolkit",
            "Architecture pattern",
            "Project structure",
            "Include test project",
            "Attach coding standards",
        ]
        assert rows["Target runtime"] == ".NET 8 (LTS, latest)"
        assert rows["Include test project"] == "no"


# ---------------------------------------------------------------------------
# OptionResolver
# ---------------------------------------------------------------------------

class TestOptionResolver:
    def test_all_defaults(self):
        resolution = OptionResolver().resolve(RawSelections(name="Inventory"))
        assert resolution.configuration == Configuration(name="Inventory")
        assert resolution.warnings == []

    def test_downgrade_recorded(self):
        resolution = OptionResolver().resolve(
            RawSelections(name="Inventory", runtime="net6", pattern="mvvm")
        )
        assert resolution.configuration.pattern is ArchitecturePattern.MVP
        assert resolution.warnings == [
            "Pattern MVVM requires WinForms command binding (.NET 7 or later); "
            "downgraded to MVP for runtime .NET 6."
        ]

    def test_first_invalid_axis_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            OptionResolver().resolve(
                RawSelections(name="Inventory", runtime="net9", database="oracle")
            )
        assert exc_info.value.axis == "runtime"

    def test_non_ascii_index_is_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            OptionResolver().resolve(RawSelections(name="Contoso", runtime="\u00b2"))
        assert exc_info.value.axis == "runtime"

    def test_missing_name(self):
        with pytest.raises(ConfigurationError) as exc_info:
            OptionResolver().resolve(RawSelections(runtime="net8"))
        assert exc_info.value.axis == "name"

    def test_custom_defaults_apply_to_blanks(self):
        resolver = OptionResolver({"database": "sqlite", "include_tests": "no"})
        cfg = resolver.resolve(RawSelections(name="Inventory")).configuration
        assert cfg.database is DatabaseProvider.SQLITE
        assert cfg.include_tests is False

    def test_explicit_value_beats_custom_default(self):
        resolver = OptionResolver({"database": "sqlite"})
        cfg = resolver.resolve(RawSelections(name="Inventory", database="mysql")).configuration
        assert cfg.database is DatabaseProvider.MYSQL

    def test_unknown_default_axis(self):
        with pytest.raises(ConfigurationError, match="Unknown axis"):
            OptionResolver({"colour": "blue"})

    def test_invalid_default_value(self):
        with pytest.raises(ConfigurationError):
            OptionResolver({"runtime": "net3"})

    def test_parse_name(self):
        assert OptionResolver().parse("name", "Inventory") == "Inventory"

    def test_summary_lists_every_axis(self):
        resolution = OptionResolver().resolve(
            RawSelections(name="Inventory", database="none", topology="multi")
        )
        lines = resolution.summary.splitlines()
        assert len(lines) == 8
        assert lines[0].startswith("Project name")
        assert lines[0].endswith(": Inventory")
        assert any(line.endswith(": None") for line in lines)
        assert any(line.endswith(": Multi-project (layered)") for line in lines)


class TestRawSelections:
    def test_merged_prefers_set_fields(self):
        base = RawSelections(name="FromFile", runtime="net6", database="sqlite")
        merged = base.merged(RawSelections(runtime="net8", include_tests=False))
        assert merged.name == "FromFile"
        assert merged.runtime == "net8"
        assert merged.database == "sqlite"
        assert merged.include_tests is False


def test_format_summary_aligns_colons():
    lines = format_summary(Configuration(name="Inventory")).splitlines()
    assert len({line.index(":") for line in lines}) == 1
