"""Attaching external coding-standards content to a generated project.

The standards directory is preferably a directory symbolic link, so that it
follows the upstream content.  When the environment cannot create links the
content is copied once and an ``IntegrationWarning`` says the copy will not
auto-update.  Whether links are available is decided once, up front, by
:func:`detect_link_capability` and injected into :class:`StandardsLinker`.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from .errors import ConflictError, IntegrationWarning
from .transaction import ScaffoldTransaction

DEFAULT_STANDARDS_DIR = "standards"


class LinkCapability(str, Enum):
    """Whether the current environment can create directory links."""
    SYMLINK = "symlink"
    NONE = "none"


class StandardsMode(str, Enum):
    LINKED = "linked"
    COPIED = "copied"
    ABSENT = "absent"


class ExternalStandardsLink(BaseModel):
    """Outcome of attaching standards content."""

    mode: StandardsMode = StandardsMode.ABSENT
    source: Optional[str] = None
    path: Optional[str] = None


def detect_link_capability(scratch_dir: str | Path | None = None) -> LinkCapability:
    """Check once whether a directory symlink can be created.

    Creates and removes a scratch link inside a temporary directory (under
    *scratch_dir* when given).  Any failure means no capability.
    """
    try:
        with tempfile.TemporaryDirectory(
            prefix=".formforge-linkcheck-", dir=str(scratch_dir) if scratch_dir else None
        ) as tmp:
            target = Path(tmp) / "target"
            target.mkdir()
            link = Path(tmp) / "link"
            os.symlink(str(target), str(link), target_is_directory=True)
            return LinkCapability.SYMLINK if link.is_symlink() else LinkCapability.NONE
    except (OSError, NotImplementedError):
        return LinkCapability.NONE


class StandardsLinker:
    """Attaches a standards directory to a project root.

    Decision at ``<root>/<directory_name>``:

    ============================  ================  ==========================
    Existing entry                Capability        Result
    ============================  ================  ==========================
    nothing                       symlink           link created
    nothing                       none              copy + warning
    link to the same source       any               unchanged
    link elsewhere                any               link replaced (or copy)
    real directory, replaceable   symlink           copy removed, link created
    real directory, replaceable   none              copy refreshed + warning
    real directory, otherwise     any               ConflictError
    ============================  ================  ==========================

    A real directory is only replaceable when the caller says so: the
    generation record shows an earlier copy, or the user asked to overwrite.

    All mutations go through the transaction, so a failed run restores the
    previous entry (including a previous link, which is recreated and never
    followed).
    """

    def __init__(
        self,
        capability: LinkCapability,
        directory_name: str = DEFAULT_STANDARDS_DIR,
    ) -> None:
        self.capability = capability
        self.directory_name = directory_name

    async def attach(
        self,
        root: Path,
        source: str | Path | None,
        transaction: ScaffoldTransaction,
        *,
        replace_directory: bool = False,
    ) -> tuple[ExternalStandardsLink, list[IntegrationWarning]]:
        """Attach *source* under *root*.

        *replace_directory* allows a real directory at the target to be
        replaced; without it such a directory is a conflict.

        Returns:
            The resulting link description and any warnings.  A missing or
            unreadable source yields mode ``absent`` and a warning; it is
            never fatal.

        Raises:
            ConflictError: A real directory is in the way and
                *replace_directory* is not set.
        """
        root = Path(root)
        target = root / self.directory_name
        warnings: list[IntegrationWarning] = []

        if source is None:
            warnings.append(
                IntegrationWarning("Coding standards requested but no source was given; skipped.")
            )
            return ExternalStandardsLink(), warnings

        source_path = Path(source).expanduser().resolve()
        if not await asyncio.to_thread(_readable_dir, source_path):
            warnings.append(
                IntegrationWarning(
                    f"Coding standards source {source_path} is missing or unreadable; skipped."
                )
            )
            return ExternalStandardsLink(source=str(source_path)), warnings

        if target.is_symlink():
            if _points_to(target, source_path):
                return self._result(StandardsMode.LINKED, source_path), warnings
            await transaction.remove(target)
        elif target.exists():
            if not replace_directory:
                raise ConflictError(
                    f"{target} already exists and is not a standards copy made by "
                    "formforge. Move it aside and retry.",
                    [self.directory_name],
                )
            await transaction.remove(target)

        if self.capability is LinkCapability.SYMLINK:
            try:
                await transaction.symlink(target, source_path)
                return self._result(StandardsMode.LINKED, source_path), warnings
            except OSError as exc:
                warnings.append(
                    IntegrationWarning(f"Creating the standards link failed ({exc}); copying instead.")
                )

        await transaction.copy_tree(source_path, target)
        warnings.append(
            IntegrationWarning(
                f"Coding standards copied from {source_path}; the copy will not "
                "auto-update. Run 'formforge relink' where links are available."
            )
        )
        return self._result(StandardsMode.COPIED, source_path), warnings

    def _result(self, mode: StandardsMode, source: Path) -> ExternalStandardsLink:
        return ExternalStandardsLink(mode=mode, source=str(source), path=self.directory_name)


def _readable_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.R_OK | os.X_OK)


def _points_to(link: Path, source: Path) -> bool:
    raw = Path(os.readlink(link))
    if not raw.is_absolute():
        raw = link.parent / raw
    return Path(os.path.normpath(raw)) == source or raw.resolve() == source
