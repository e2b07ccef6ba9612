"""jinja2 renderer over the WinForms template library.

Templates live in ``formforge/scaffolder/templates/`` and are keyed by
configuration axis.  A name such as ``MainForm.cs.j2`` is looked up under
``<ui>/<pattern>/``, ``<ui>/``, ``<pattern>/`` and finally ``common/``, so a
toolkit or pattern overrides a shared template by shipping a file of the
same name in its own directory.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from .errors import GenerationError

TEMPLATE_ROOT = Path(__file__).parent / "templates"


class TemplateRenderer:
    """Renders the template library with a plan-derived context.

    Output depends only on the template and the context.  ``StrictUndefined``
    turns a missing context value into a ``GenerationError`` instead of an
    empty string in a generated file.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        self.template_dir = Path(template_dir) if template_dir is not None else TEMPLATE_ROOT
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters.update(
            snake_case=_snake_case_filter,
            json_value=_json_value_filter,
        )

    # -- Lookup ------------------------------------------------------------

    def candidates(self, name: str, ui: str, pattern: str) -> list[str]:
        """Template paths tried for *name*, most specific first."""
        return [
            f"{ui}/{pattern}/{name}",
            f"{ui}/{name}",
            f"{pattern}/{name}",
            f"common/{name}",
        ]

    def resolve(self, name: str, ui: str, pattern: str) -> str:
        """Return the template path that :meth:`render_for` would use."""
        try:
            template = self.env.select_template(self.candidates(name, ui, pattern))
        except TemplateNotFound as exc:
            raise GenerationError(f"No template for {name!r}: {exc}") from exc
        return template.name or name

    # -- Rendering ---------------------------------------------------------

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render *template_path* (relative to the library root).

        Raises:
            GenerationError: Missing or malformed template, or a variable
                the context does not define.
        """
        try:
            return self.env.get_template(template_path).render(**context)
        except TemplateError as exc:
            raise GenerationError(
                f"Failed to render {template_path}: {exc}", path=template_path
            ) from exc

    def render_for(
        self, name: str, context: dict[str, Any], *, ui: str, pattern: str
    ) -> str:
        """Render the most specific template for the ui/pattern combination."""
        return self.render(self.resolve(name, ui, pattern), context)

    def read_static(self, relative_path: str) -> bytes:
        """Raw bytes of a file copied verbatim into the project."""
        path = self.template_dir / relative_path
        try:
            return path.read_bytes()
        except OSError as exc:
            raise GenerationError(f"Static file unreadable: {path}: {exc}", path=str(path)) from exc


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def _snake_case_filter(value: str) -> str:
    """``Contoso.TaskList`` -> ``contoso_task_list``, for file names."""
    words = re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", value)
    return re.sub(r"[-.\s]+", "_", words).lower()


def _json_value_filter(value: Any) -> str:
    """JSON literal for *value*; connection strings with backslashes stay valid."""
    return json.dumps(value, ensure_ascii=False)
