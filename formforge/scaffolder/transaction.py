"""Journaled file-system mutations with rollback.

Every mutation the generator performs goes through a ``ScaffoldTransaction``.
Each step is journaled as it is applied, so rolling back the journal in
reverse order restores the file system to its state before the run:
created entries are removed, overwritten files get their old bytes back and
removed trees are moved back from their stash.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import shutil
import stat
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from rich.console import Console

from .errors import GenerationError
from .topology import FileTask

console = Console()


class EntryKind(str, Enum):
    DIRECTORY = "directory"
    FILE = "file"
    OVERWRITE = "overwrite"
    LINK = "link"
    TREE = "tree"
    REMOVED = "removed"


@dataclass
class JournalEntry:
    """One applied mutation and what is needed to undo it."""

    kind: EntryKind
    path: Path
    backup: Optional[bytes] = None
    mode: Optional[int] = None
    stash: Optional[Path] = None
    link_target: Optional[str] = None


@dataclass
class ScaffoldTransaction:
    """Records mutations so a failed run can be undone.

    Use as an async context manager: leaving the block with an exception
    rolls back and re-raises, leaving it normally does nothing (call
    :meth:`commit` explicitly once the run is complete).
    """

    journal: list[JournalEntry] = field(default_factory=list)
    state: str = "open"
    rolled_back: list[str] = field(default_factory=list)
    rollback_failures: list[str] = field(default_factory=list)

    async def __aenter__(self) -> "ScaffoldTransaction":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None and self.state == "open":
            await self.rollback()
        return False

    # -- Queries -----------------------------------------------------------

    @property
    def created(self) -> list[str]:
        """Paths created by this transaction, in creation order."""
        kinds = {EntryKind.DIRECTORY, EntryKind.FILE, EntryKind.LINK, EntryKind.TREE}
        return [str(entry.path) for entry in self.journal if entry.kind in kinds]

    @property
    def overwritten(self) -> list[str]:
        return [str(e.path) for e in self.journal if e.kind is EntryKind.OVERWRITE]

    @property
    def removed(self) -> list[str]:
        return [str(e.path) for e in self.journal if e.kind is EntryKind.REMOVED]

    # -- Mutations ---------------------------------------------------------

    async def mkdir(self, path: Path) -> None:
        """Create *path* and any missing ancestors, journaling each one."""
        self._check_open()
        await asyncio.to_thread(self._mkdir, Path(path))

    async def write_bytes(self, path: Path, data: bytes) -> None:
        """Write *data* to *path*, backing up any existing file first."""
        self._check_open()
        path = Path(path)
        await self.mkdir(path.parent)
        await asyncio.to_thread(self._write, path, data)

    async def write_text(self, path: Path, content: str) -> None:
        await self.write_bytes(path, content.encode("utf-8"))

    async def symlink(self, link: Path, target: Path) -> None:
        """Create a directory symbolic link at *link* pointing to *target*."""
        self._check_open()
        link = Path(link)
        await self.mkdir(link.parent)
        await asyncio.to_thread(os.symlink, str(target), str(link), True)
        self.journal.append(JournalEntry(EntryKind.LINK, link))

    async def copy_tree(self, source: Path, destination: Path) -> None:
        """Copy the directory *source* to the new path *destination*."""
        self._check_open()
        destination = Path(destination)
        await self.mkdir(destination.parent)
        try:
            await asyncio.to_thread(shutil.copytree, str(source), str(destination), True)
        except Exception:
            # copytree may have left a partial tree behind.
            await asyncio.to_thread(shutil.rmtree, str(destination), True)
            raise
        self.journal.append(JournalEntry(EntryKind.TREE, destination))

    async def remove(self, path: Path) -> None:
        """Remove a file, link or directory tree reversibly.

        Links are unlinked (never followed).  Files and directories are moved
        to a stash next to them and only deleted on commit.
        """
        self._check_open()
        path = Path(path)
        if path.is_symlink():
            target = os.readlink(path)
            await asyncio.to_thread(path.unlink)
            self.journal.append(
                JournalEntry(EntryKind.REMOVED, path, link_target=target)
            )
            return
        stash_dir = Path(
            await asyncio.to_thread(
                tempfile.mkdtemp, ".stash", f".{path.name}.", str(path.parent)
            )
        )
        stash = stash_dir / "payload"
        try:
            await asyncio.to_thread(os.replace, str(path), str(stash))
        except OSError:
            await asyncio.to_thread(stash_dir.rmdir)
            raise
        self.journal.append(JournalEntry(EntryKind.REMOVED, path, stash=stash))

    # -- Completion --------------------------------------------------------

    async def commit(self) -> list[str]:
        """Finalize the run and return the created paths.

        Stashed removals are deleted for good.
        """
        self._check_open()
        for entry in self.journal:
            if entry.kind is EntryKind.REMOVED and entry.stash is not None:
                await asyncio.to_thread(shutil.rmtree, str(entry.stash.parent), True)
        self.state = "committed"
        return self.created

    async def rollback(self) -> list[str]:
        """Undo every journaled mutation in reverse order.

        Rollback keeps going when a single undo step fails; failures are
        collected in ``rollback_failures``.

        Returns:
            The paths that were restored or removed.
        """
        self._check_open()
        for entry in reversed(self.journal):
            try:
                await asyncio.to_thread(self._undo, entry)
                self.rolled_back.append(str(entry.path))
            except OSError as exc:
                message = f"{entry.path}: {exc}"
                self.rollback_failures.append(message)
                console.print(f"[bold red]Rollback failed for {message}[/bold red]")
        self.state = "rolled_back"
        return list(self.rolled_back)

    # -- Internal helpers --------------------------------------------------

    def _check_open(self) -> None:
        if self.state != "open":
            raise RuntimeError(f"Transaction already {self.state}.")

    def _mkdir(self, path: Path) -> None:
        missing: list[Path] = []
        current = path
        while not current.exists() and not current.is_symlink():
            missing.append(current)
            current = current.parent
        if not current.is_dir():
            raise GenerationError(f"Not a directory: {current}", path=str(current))
        for directory in reversed(missing):
            directory.mkdir()
            self.journal.append(JournalEntry(EntryKind.DIRECTORY, directory))

    def _write(self, path: Path, data: bytes) -> None:
        if path.is_symlink() or path.is_dir():
            raise GenerationError(f"Refusing to overwrite non-file {path}", path=str(path))
        # Journal first: a write that fails halfway must still be undone.
        if path.exists():
            backup = path.read_bytes()
            mode = stat.S_IMODE(path.stat().st_mode)
            self.journal.append(
                JournalEntry(EntryKind.OVERWRITE, path, backup=backup, mode=mode)
            )
        else:
            self.journal.append(JournalEntry(EntryKind.FILE, path))
        path.write_bytes(data)

    @staticmethod
    def _undo(entry: JournalEntry) -> None:
        path = entry.path
        if entry.kind is EntryKind.DIRECTORY:
            path.rmdir()
        elif entry.kind in (EntryKind.FILE, EntryKind.LINK):
            path.unlink(missing_ok=True)
        elif entry.kind is EntryKind.TREE:
            shutil.rmtree(path)
        elif entry.kind is EntryKind.OVERWRITE:
            path.write_bytes(entry.backup or b"")
            if entry.mode is not None:
                path.chmod(entry.mode)
        elif entry.kind is EntryKind.REMOVED:
            if entry.link_target is not None:
                os.symlink(entry.link_target, path, True)
            elif entry.stash is not None:
                os.replace(entry.stash, path)
                entry.stash.parent.rmdir()


# ---------------------------------------------------------------------------
# Task application
# ---------------------------------------------------------------------------

def content_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class TaskApplier:
    """Applies plan tasks through a transaction, at most once each.

    *previous* maps task keys to content digests from an earlier run's
    generation record.  A task whose key is already recorded there, and
    whose file on disk still has exactly that content, is skipped: rerunning
    with ``overwrite`` only rewrites what changed.
    """

    def __init__(
        self,
        transaction: ScaffoldTransaction,
        root: Path,
        previous: Optional[dict[str, str]] = None,
    ) -> None:
        self.transaction = transaction
        self.root = Path(root)
        self.previous = dict(previous or {})
        self.applied: dict[str, str] = {}
        self.skipped: list[str] = []

    async def mkdir(self, task: FileTask) -> None:
        if task.key in self.applied:
            return
        try:
            await self.transaction.mkdir(self.root / task.path)
        except OSError as exc:
            raise GenerationError(f"Cannot create {task.path}: {exc}", path=task.path) from exc
        self.applied[task.key] = ""

    async def write(self, task: FileTask, data: bytes) -> None:
        if task.key in self.applied:
            raise GenerationError(f"Task applied twice: {task.path}", path=task.path)
        digest = content_digest(data)
        target = self.root / task.path
        if self.previous.get(task.key) == digest and await asyncio.to_thread(
            _has_digest, target, digest
        ):
            self.skipped.append(task.path)
        else:
            try:
                await self.transaction.write_bytes(target, data)
            except GenerationError:
                raise
            except OSError as exc:
                raise GenerationError(f"Cannot write {task.path}: {exc}", path=task.path) from exc
        self.applied[task.key] = digest


def _has_digest(path: Path, digest: str) -> bool:
    if not path.is_file() or path.is_symlink():
        return False
    return content_digest(path.read_bytes()) == digest
