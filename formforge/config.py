"""formforge configuration.

Typed settings for the tool itself (where to write, where templates and
standards live, per-axis defaults).  Settings use a Pydantic v2 model so they
can be validated at construction time and read from environment variables.
Per-project choices come from the CLI, an options YAML file or the
interactive prompts and are resolved separately.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from formforge.scaffolder.errors import ConfigurationError
from formforge.scaffolder.options import AXES, FLAGS, RawSelections

ENV_PREFIX = "FORMFORGE_"


class Settings(BaseModel):
    """Global formforge settings.

    Instances are typically created once by the CLI entry point (usually
    through :meth:`from_env`) and passed to the ``Pipeline``.
    """

    output_dir: Path = Field(default=Path("."))
    template_dir: Optional[Path] = Field(
        default=None, description="Override of the packaged template library"
    )
    record_name: str = Field(default=".formforge.json")
    standards_dir_name: str = Field(default="standards")
    standards_source: Optional[Path] = Field(
        default=None, description="Directory with the team's coding standards"
    )
    # Raw per-axis defaults, parsed with the same rules as user input.
    defaults: dict[str, str] = Field(default_factory=dict)
    quiet: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            FORMFORGE_OUTPUT_DIR, FORMFORGE_TEMPLATE_DIR, FORMFORGE_RECORD_NAME,
            FORMFORGE_STANDARDS_DIR, FORMFORGE_STANDARDS_SOURCE,
            FORMFORGE_QUIET, and FORMFORGE_DEFAULT_<AXIS> for each axis
            (e.g. FORMFORGE_DEFAULT_RUNTIME=net6).
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("FORMFORGE_OUTPUT_DIR"):
            kwargs["output_dir"] = Path(os.environ["FORMFORGE_OUTPUT_DIR"])
        if os.environ.get("FORMFORGE_TEMPLATE_DIR"):
            kwargs["template_dir"] = Path(os.environ["FORMFORGE_TEMPLATE_DIR"])
        if os.environ.get("FORMFORGE_RECORD_NAME"):
            kwargs["record_name"] = os.environ["FORMFORGE_RECORD_NAME"]
        if os.environ.get("FORMFORGE_STANDARDS_DIR"):
            kwargs["standards_dir_name"] = os.environ["FORMFORGE_STANDARDS_DIR"]
        if os.environ.get("FORMFORGE_STANDARDS_SOURCE"):
            kwargs["standards_source"] = Path(os.environ["FORMFORGE_STANDARDS_SOURCE"])
        if os.environ.get("FORMFORGE_QUIET"):
            kwargs["quiet"] = os.environ["FORMFORGE_QUIET"].strip().lower() in ("1", "true", "yes")

        defaults: dict[str, str] = {}
        for axis in (*AXES, *FLAGS):
            value = os.environ.get(f"{ENV_PREFIX}DEFAULT_{axis.upper()}")
            if value:
                defaults[axis] = value

        return cls(defaults=defaults, **kwargs)


def load_options_file(path: str | Path) -> RawSelections:
    """Read non-interactive selections from a YAML options file.

    The file is a flat mapping using the axis names, for example::

        name: Contoso.Inventory
        runtime: net8
        database: sqlite
        topology: multi
        include_tests: yes

    Raises:
        ConfigurationError: If the file is unreadable, is not a mapping, or
            names an unknown key.
    """
    file_path = Path(path)
    try:
        data = yaml.safe_load(file_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            f"Cannot read options file {file_path}: {exc}", axis="options_file", value=str(path)
        ) from exc

    if data is None:
        return RawSelections()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Options file {file_path} must contain a mapping of axis names to values.",
            axis="options_file",
            value=str(path),
        )

    known = set(RawSelections.model_fields)
    unknown = sorted(str(key) for key in data if key not in known)
    if unknown:
        raise ConfigurationError(
            f"Unknown option(s) in {file_path}: {', '.join(unknown)}. "
            f"Known: {', '.join(sorted(known))}",
            axis="options_file",
            value=str(path),
        )
    try:
        return RawSelections.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid options file {file_path}: {exc}", axis="options_file", value=str(path)
        ) from exc
