"""Tests for source artifact generation (formforge.scaffolder.source_gen).

Covers:
- Template context derived from the plan
- Program.cs wiring per runtime, topology and database
- appsettings.json shape and connection-string validation
- Pattern and toolkit specific forms
- Repository, unit of work and database initializer
- Editor descriptors
"""

from __future__ import annotations

import json

import pytest

from formforge.scaffolder.errors import GenerationError
from formforge.scaffolder.source_gen import CONNECTION_NAME, SourceGenerator, build_context


pytestmark = pytest.mark.unit


@pytest.fixture
def sources(renderer) -> SourceGenerator:
    return SourceGenerator(renderer)


def render(sources: SourceGenerator, plan, artifact: str) -> str:
    task = next(t for t in plan.tasks if t.artifact == artifact)
    return sources.render_task_content(plan, task.source, build_context(plan))


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

class TestBuildContext:
    def test_single_namespaces(self, default_plan):
        ctx = build_context(default_plan)
        assert ctx["ns"]["forms"] == "Contoso.Inventory.Forms"
        assert ctx["ns"]["contract"] == "Contoso.Inventory.Services"
        assert ctx["ns"]["view_models"] is None
        assert ctx["entry"]["namespace"] == "Contoso.Inventory"
        assert ctx["register_database"] is True
        assert ctx["test_unit"] == "Contoso.Inventory.Tests"

    def test_multi_namespaces(self, multi_plan):
        ctx = build_context(multi_plan)
        assert ctx["ns"]["contract"] == "Contoso.Inventory.Domain.Contracts"
        assert ctx["ns"]["services"] == "Contoso.Inventory.Business.Services"
        assert ctx["ns"]["data"] == "Contoso.Inventory.DataAccess.Data"
        assert ctx["register_database"] is False
        assert ctx["data_unit"] == "Contoso.Inventory.DataAccess"

    def test_database_entry(self, make_plan):
        ctx = build_context(make_plan(database="sqlite"))
        assert ctx["database"]["connection_name"] == CONNECTION_NAME
        assert ctx["database"]["connection_string"] == "Data Source=contosoinventory.db"
        assert ctx["database"]["registration"] == "options.UseSqlite(connectionString)"

    def test_no_database(self, make_plan):
        ctx = build_context(make_plan(database="none"))
        assert ctx["database"] is None
        assert ctx["register_database"] is False
        assert ctx["data_unit"] is None

    def test_mysql_legacy_registration(self, make_plan):
        ctx = build_context(make_plan(database="mysql", runtime="net48"))
        assert ctx["database"]["registration"] == "options.UseMySql(connectionString)"

    def test_context_is_deterministic(self, make_plan):
        assert build_context(make_plan()) == build_context(make_plan())


# ---------------------------------------------------------------------------
# Program.cs
# ---------------------------------------------------------------------------

class TestProgram:
    def test_modern_bootstrap(self, sources, default_plan):
        program = render(sources, default_plan, "program")
        assert "namespace Contoso.Inventory;" in program
        assert "ApplicationConfiguration.Initialize();" in program
        assert "EnableVisualStyles" not in program
        assert ".ReadFrom.Configuration(configuration)" in program
        assert "GlobalExceptionHandler.Register();" in program
        assert 'GetConnectionString("DefaultConnection")' in program
        assert "services.AddDbContext<AppDbContext>(options => options.UseSqlServer(connectionString));" in program
        assert "using Contoso.Inventory.Data;" in program
        assert "services.AddScoped<IUnitOfWork, UnitOfWork>();" in program
        assert "services.AddSingleton<IFormFactory, FormFactory>();" in program
        assert "GetRequiredService<IFormFactory>()" in program
        assert "InitializeDatabase(serviceProvider);" in program
        assert "DbInitializer.Initialize(context, logger);" in program

    def test_legacy_bootstrap(self, sources, make_plan):
        program = render(sources, make_plan(runtime="net48"), "program")
        assert "Application.EnableVisualStyles();" in program
        assert "Application.SetCompatibleTextRenderingDefault(false);" in program
        assert "ApplicationConfiguration" not in program

    def test_multi_does_not_touch_data_layer(self, sources, multi_plan):
        program = render(sources, multi_plan, "program")
        assert "AddDbContext" not in program
        assert "DataAccess.Data" not in program
        assert "DataAccessRegistration.AddDataAccess" in program
        assert "AddScoped<IUnitOfWork" not in program
        assert "DbInitializer" not in program
        assert "services.AddSingleton<IFormFactory, FormFactory>();" in program

    def test_no_database(self, sources, make_plan):
        program = render(sources, make_plan(database="none"), "program")
        assert "EntityFrameworkCore" not in program
        assert "GetConnectionString" not in program
        assert "IUnitOfWork" not in program
        assert "InitializeDatabase" not in program

    def test_mvvm_registers_view_model(self, sources, make_plan):
        program = render(sources, make_plan(pattern="mvvm"), "program")
        assert "services.AddTransient<MainViewModel>();" in program
        assert "using Contoso.Inventory.ViewModels;" in program

    def test_usings_are_unique(self, sources, default_plan):
        lines = [line for line in render(sources, default_plan, "program").splitlines() if line.startswith("using ")]
        assert len(lines) == len(set(lines))


# ---------------------------------------------------------------------------
# appsettings.json
# ---------------------------------------------------------------------------

class TestAppSettings:
    @pytest.mark.parametrize(
        "database, prefix",
        [
            ("sqlserver", "Server=(localdb)\\MSSQLLocalDB;Database=ContosoInventory;"),
            ("sqlite", "Data Source=contosoinventory.db"),
            ("postgresql", "Host=localhost;Port=5432;Database=contosoinventory;"),
            ("mysql", "Server=localhost;Port=3306;Database=contosoinventory;"),
        ],
    )
    def test_connection_string_per_provider(self, sources, make_plan, database, prefix):
        plan = make_plan(database=database)
        content = render(sources, plan, "appsettings")
        data = sources.validate_json("src/Contoso.Inventory/appsettings.json", content, plan)
        assert data["ConnectionStrings"][CONNECTION_NAME].startswith(prefix)

    def test_no_database_has_no_connection_strings(self, sources, make_plan):
        plan = make_plan(database="none")
        data = json.loads(render(sources, plan, "appsettings"))
        assert "ConnectionStrings" not in data

    def test_logging_sections(self, sources, default_plan):
        data = json.loads(render(sources, default_plan, "appsettings"))
        assert data["Logging"]["LogLevel"]["Default"] == "Information"
        assert data["Serilog"]["MinimumLevel"]["Override"] == {
            "Microsoft": "Warning",
            "Microsoft.EntityFrameworkCore": "Warning",
        }
        assert data["Serilog"]["WriteTo"][0]["Name"] == "File"
        assert data["Serilog"]["WriteTo"][0]["Args"]["path"] == "logs/contoso_inventory-.log"
        assert data["Application"] == {"Name": "Contoso.Inventory", "Runtime": ".NET 8"}

    def test_invalid_json_rejected(self, sources, default_plan):
        with pytest.raises(GenerationError, match="not valid JSON"):
            sources.validate_json(".vscode/tasks.json", "{ nope", default_plan)

    def test_malformed_connection_string_rejected(self, sources, default_plan):
        content = json.dumps({"ConnectionStrings": {CONNECTION_NAME: "Server=x"}})
        with pytest.raises(GenerationError, match="SQL Server format"):
            sources.validate_json("src/App/appsettings.json", content, default_plan)

    def test_connection_strings_without_database_rejected(self, sources, make_plan):
        content = json.dumps({"ConnectionStrings": {CONNECTION_NAME: "Data Source=x.db"}})
        with pytest.raises(GenerationError, match="no database"):
            sources.validate_json("src/App/appsettings.json", content, make_plan(database="none"))


# ---------------------------------------------------------------------------
# Forms & pattern artifacts
# ---------------------------------------------------------------------------

class TestForms:
    def test_mvp_form_is_passive_view(self, sources, default_plan):
        form = render(sources, default_plan, "main-form")
        assert "public class MainForm : Form, IMainView" in form
        assert "new MainPresenter(this, appInfoService, logger)" in form

    def test_presenter(self, sources, default_plan):
        presenter = render(sources, default_plan, "presenter")
        assert "namespace Contoso.Inventory.Presenters;" in presenter
        assert "using Contoso.Inventory.Views;" in presenter

    def test_mvvm_standard_uses_command_binding(self, sources, make_plan):
        form = render(sources, make_plan(pattern="mvvm"), "main-form")
        assert "_refreshButton.Command = _viewModel.LoadCommand;" in form

    def test_mvvm_third_party_toolkit_uses_click(self, sources, make_plan):
        form = render(sources, make_plan(pattern="mvvm", ui="realtaiizor"), "main-form")
        assert "public class MainForm : MaterialForm" in form
        assert "private MaterialButton _refreshButton" in form
        assert "_refreshButton.Click +=" in form
        assert "using ReaLTaiizor.Forms;" in form

    def test_simple_form_uses_service(self, sources, make_plan):
        form = render(sources, make_plan(pattern="simple", ui="devexpress"), "main-form")
        assert "public class MainForm : XtraForm" in form
        assert "private LabelControl _titleLabel" in form
        assert "IMainView" not in form

    def test_view_model(self, sources, make_plan):
        vm = render(sources, make_plan(pattern="mvvm"), "view-model")
        assert "public partial class MainViewModel : ObservableObject" in vm
        assert "[RelayCommand]" in vm

    def test_multi_data_registration(self, sources, multi_plan):
        registration = render(sources, multi_plan, "data-registration")
        assert "namespace Contoso.Inventory.DataAccess.Data;" in registration
        assert "options.UseSqlite(connectionString)" in registration
        assert "services.AddScoped<IUnitOfWork, UnitOfWork>();" in registration
        assert "public static void InitializeDatabase(this IServiceProvider serviceProvider)" in registration

    def test_form_factory_implements_contract(self, sources, default_plan):
        assert "public interface IFormFactory" in render(sources, default_plan, "form-factory-contract")
        assert "public class FormFactory : IFormFactory" in render(sources, default_plan, "form-factory")

    def test_service_constants(self, sources, make_plan):
        service = render(sources, make_plan(runtime="net6"), "service")
        assert 'public const string ApplicationName = "Contoso.Inventory";' in service
        assert 'public const string RuntimeName = ".NET 6";' in service


class TestDataAccess:
    def test_repository_contract(self, sources, default_plan):
        contract = render(sources, default_plan, "repository-contract")
        assert "namespace Contoso.Inventory.Data;" in contract
        assert "public interface IRepository<T>" in contract
        assert "Task<T?> GetByIdAsync(int id" in contract

    def test_repository_uses_context_set(self, sources, default_plan):
        repository = render(sources, default_plan, "repository")
        assert "public class Repository<T> : IRepository<T>" in repository
        assert "Set = context.Set<T>();" in repository
        assert "using Microsoft.EntityFrameworkCore;" in repository

    def test_unit_of_work(self, sources, multi_plan):
        contract = render(sources, multi_plan, "unit-of-work-contract")
        unit_of_work = render(sources, multi_plan, "unit-of-work")
        assert "namespace Contoso.Inventory.DataAccess.Data;" in contract
        assert "IRepository<T> Repository<T>()" in contract
        assert "public class UnitOfWork : IUnitOfWork" in unit_of_work
        assert "new Repository<T>(_context)" in unit_of_work
        assert "BeginTransactionAsync(cancellationToken)" in unit_of_work

    def test_db_initializer_names_provider(self, sources, make_plan):
        initializer = render(sources, make_plan(database="postgresql"), "db-initializer")
        assert "Creates the PostgreSQL database on first start." in initializer
        assert "context.Database.EnsureCreated()" in initializer


class TestEditorAndDocs:
    def test_tasks_json(self, sources, default_plan):
        data = json.loads(render(sources, default_plan, "editor-tasks"))
        labels = [task["label"] for task in data["tasks"]]
        assert labels == ["build", "run", "test"]

    def test_tasks_json_without_tests(self, sources, make_plan):
        data = json.loads(render(sources, make_plan(include_tests=False), "editor-tasks"))
        assert [task["label"] for task in data["tasks"]] == ["build", "run"]

    def test_launch_json(self, sources, make_plan):
        data = json.loads(render(sources, make_plan(runtime="net48"), "editor-launch"))
        config = data["configurations"][0]
        assert config["type"] == "clr"
        assert config["program"].endswith("/bin/Debug/net48/Contoso.Inventory.exe")

    def test_readme_multi_explains_data_registration(self, sources, multi_plan):
        readme = render(sources, multi_plan, "readme")
        assert readme.startswith("# Contoso.Inventory")
        assert "AddDataAccess" in readme
        assert "| Project structure | Multi-project (layered) |" in readme
        assert "**The data layer is not wired at runtime.**" in readme
        assert "`services.AddDataAccess(configuration)` registers `AppDbContext` and `IUnitOfWork`." in readme
        assert "serviceProvider.InitializeDatabase()" in readme

    def test_readme_single_describes_startup_initialization(self, sources, default_plan):
        readme = render(sources, default_plan, "readme")
        assert "runs `DbInitializer`" in readme
        assert "not wired at runtime" not in readme

    def test_readme_devexpress_note(self, sources, make_plan):
        readme = render(sources, make_plan(ui="devexpress"), "readme")
        assert "licensed DevExpress NuGet feed" in readme
