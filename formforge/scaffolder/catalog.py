"""Lookup tables for the generated .NET solution.

Everything that varies by runtime, database provider or UI toolkit lives in
one of the tables below, keyed by the axis enums.  Adding a provider means
adding a ``ProviderProfile`` row; the renderer and manifest builder only ever
read these rows.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from .options import ArchitecturePattern, DatabaseProvider, RuntimeTarget, UIToolkit


@dataclass(frozen=True)
class PackageRef:
    """A NuGet ``<PackageReference>``."""

    name: str
    version: str


# ---------------------------------------------------------------------------
# Runtimes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RuntimeProfile:
    """Build settings for one runtime target."""

    target_framework: str
    label: str
    # ApplicationConfiguration.Initialize() exists from .NET 6 on; older
    # runtimes need the explicit EnableVisualStyles() bootstrap.
    modern_bootstrap: bool
    hosting_packages: tuple[PackageRef, ...]
    ef_core_version: str


_EXTENSIONS_8 = (
    PackageRef("Microsoft.Extensions.Configuration.Json", "8.0.0"),
    PackageRef("Microsoft.Extensions.DependencyInjection", "8.0.0"),
    PackageRef("Microsoft.Extensions.Logging", "8.0.0"),
    PackageRef("Serilog.Extensions.Logging", "8.0.0"),
    PackageRef("Serilog.Settings.Configuration", "8.0.2"),
    PackageRef("Serilog.Sinks.File", "5.0.0"),
)

_EXTENSIONS_6 = (
    PackageRef("Microsoft.Extensions.Configuration.Json", "6.0.0"),
    PackageRef("Microsoft.Extensions.DependencyInjection", "6.0.1"),
    PackageRef("Microsoft.Extensions.Logging", "6.0.0"),
    PackageRef("Serilog.Extensions.Logging", "3.1.0"),
    PackageRef("Serilog.Settings.Configuration", "3.4.0"),
    PackageRef("Serilog.Sinks.File", "5.0.0"),
)

RUNTIMES: dict[RuntimeTarget, RuntimeProfile] = {
    RuntimeTarget.NET8: RuntimeProfile(
        target_framework="net8.0-windows",
        label=".NET 8",
        modern_bootstrap=True,
        hosting_packages=_EXTENSIONS_8,
        ef_core_version="8.0.8",
    ),
    RuntimeTarget.NET6: RuntimeProfile(
        target_framework="net6.0-windows",
        label=".NET 6",
        modern_bootstrap=True,
        hosting_packages=_EXTENSIONS_6,
        ef_core_version="6.0.33",
    ),
    RuntimeTarget.NET48: RuntimeProfile(
        target_framework="net48",
        label=".NET Framework 4.8",
        modern_bootstrap=False,
        hosting_packages=_EXTENSIONS_6,
        ef_core_version="3.1.32",
    ),
}


# ---------------------------------------------------------------------------
# Database providers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderProfile:
    """Everything provider specific: package pins and code shapes.

    ``connection_string`` is a ``str.format`` template receiving
    ``database`` (the catalog name) and ``database_file`` (a lowercase file
    stem).  ``shape`` is the documented connection-string pattern; generated
    configuration is checked against it.
    """

    label: str
    package: str
    versions: dict[RuntimeTarget, str]
    connection_string: str
    shape: re.Pattern
    registration: str
    legacy_registration: Optional[str] = None
    usings: tuple[str, ...] = ()

    def package_ref(self, runtime: RuntimeTarget) -> PackageRef:
        return PackageRef(self.package, self.versions[runtime])

    def registration_for(self, runtime: RuntimeTarget) -> str:
        if runtime is RuntimeTarget.NET48 and self.legacy_registration:
            return self.legacy_registration
        return self.registration

    def format_connection(self, database: str) -> str:
        return self.connection_string.format(
            database=database, database_file=database.lower()
        )


PROVIDERS: dict[DatabaseProvider, ProviderProfile] = {
    DatabaseProvider.SQLSERVER: ProviderProfile(
        label="SQL Server",
        package="Microsoft.EntityFrameworkCore.SqlServer",
        versions={
            RuntimeTarget.NET8: "8.0.8",
            RuntimeTarget.NET6: "6.0.33",
            RuntimeTarget.NET48: "3.1.32",
        },
        connection_string=(
            "Server=(localdb)\\MSSQLLocalDB;Database={database};"
            "Trusted_Connection=True;TrustServerCertificate=True;"
        ),
        shape=re.compile(
            r"^Server=[^;]+;Database=[A-Za-z0-9_]+;"
            r"Trusted_Connection=True;TrustServerCertificate=True;$"
        ),
        registration="options.UseSqlServer(connectionString)",
    ),
    DatabaseProvider.SQLITE: ProviderProfile(
        label="SQLite",
        package="Microsoft.EntityFrameworkCore.Sqlite",
        versions={
            RuntimeTarget.NET8: "8.0.8",
            RuntimeTarget.NET6: "6.0.33",
            RuntimeTarget.NET48: "3.1.32",
        },
        connection_string="Data Source={database_file}.db",
        shape=re.compile(r"^Data Source=[a-z0-9_]+\.db$"),
        registration="options.UseSqlite(connectionString)",
    ),
    DatabaseProvider.POSTGRESQL: ProviderProfile(
        label="PostgreSQL",
        package="Npgsql.EntityFrameworkCore.PostgreSQL",
        versions={
            RuntimeTarget.NET8: "8.0.4",
            RuntimeTarget.NET6: "6.0.29",
            RuntimeTarget.NET48: "3.1.18",
        },
        connection_string=(
            "Host=localhost;Port=5432;Database={database_file};"
            "Username=postgres;Password=postgres"
        ),
        shape=re.compile(
            r"^Host=[^;]+;Port=\d+;Database=[a-z0-9_]+;Username=[^;]+;Password=[^;]*$"
        ),
        registration="options.UseNpgsql(connectionString)",
    ),
    DatabaseProvider.MYSQL: ProviderProfile(
        label="MySQL",
        package="Pomelo.EntityFrameworkCore.MySql",
        versions={
            RuntimeTarget.NET8: "8.0.2",
            RuntimeTarget.NET6: "6.0.3",
            RuntimeTarget.NET48: "3.2.7",
        },
        connection_string=(
            "Server=localhost;Port=3306;Database={database_file};User=root;Password=;"
        ),
        shape=re.compile(
            r"^Server=[^;]+;Port=\d+;Database=[a-z0-9_]+;User=[^;]+;Password=[^;]*;$"
        ),
        # ServerVersion.AutoDetect arrived with Pomelo 5.0.
        registration=(
            "options.UseMySql(connectionString, ServerVersion.AutoDetect(connectionString))"
        ),
        legacy_registration="options.UseMySql(connectionString)",
    ),
}


# ---------------------------------------------------------------------------
# UI toolkits and patterns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolkitProfile:
    """Base form class, namespaces and packages of a control library."""

    label: str
    base_form: str
    label_control: str = "Label"
    button_control: str = "Button"
    usings: tuple[str, ...] = ()
    packages: tuple[PackageRef, ...] = ()
    notes: tuple[str, ...] = field(default_factory=tuple)


TOOLKITS: dict[UIToolkit, ToolkitProfile] = {
    UIToolkit.STANDARD: ToolkitProfile(
        label="Standard WinForms",
        base_form="Form",
    ),
    UIToolkit.DEVEXPRESS: ToolkitProfile(
        label="DevExpress",
        base_form="XtraForm",
        label_control="LabelControl",
        button_control="SimpleButton",
        usings=("DevExpress.XtraEditors",),
        packages=(PackageRef("DevExpress.Win", "23.2.5"),),
        notes=(
            "DevExpress packages come from the licensed DevExpress NuGet feed; "
            "add it to nuget.config before restoring.",
        ),
    ),
    UIToolkit.REALTAIIZOR: ToolkitProfile(
        label="ReaLTaiizor",
        base_form="MaterialForm",
        label_control="MaterialLabel",
        button_control="MaterialButton",
        usings=("ReaLTaiizor.Forms", "ReaLTaiizor.Controls"),
        packages=(PackageRef("ReaLTaiizor", "3.8.0.6"),),
    ),
}

PATTERN_PACKAGES: dict[ArchitecturePattern, tuple[PackageRef, ...]] = {
    ArchitecturePattern.MVP: (),
    ArchitecturePattern.MVVM: (PackageRef("CommunityToolkit.Mvvm", "8.2.2"),),
    ArchitecturePattern.SIMPLE: (),
}

TEST_PACKAGES: tuple[PackageRef, ...] = (
    PackageRef("FluentAssertions", "6.12.0"),
    PackageRef("Microsoft.NET.Test.Sdk", "17.10.0"),
    PackageRef("Moq", "4.20.70"),
    PackageRef("xunit", "2.9.0"),
    PackageRef("xunit.runner.visualstudio", "2.8.2"),
)

# Logging thresholds written to appsettings.json.
LOG_LEVELS: dict[str, str] = {
    "Default": "Information",
    "Microsoft": "Warning",
    "Microsoft.EntityFrameworkCore": "Warning",
}
