"""Document store interface and the vault-backed implementation.

The logger only ever talks to the note through five operations:
exists, create, read, modify and append. Anything that provides them
(an Obsidian vault on disk, an in-memory fake in tests) can host the log.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Protocol

from .models import EntryKind


class DocumentStore(Protocol):
    """Narrow file/folder abstraction consumed by the writer and validators."""

    async def exists(self, path: str) -> EntryKind:
        ...

    async def create(self, path: str, content: str) -> None:
        ...

    async def read(self, path: str) -> str:
        ...

    async def modify(self, path: str, content: str) -> None:
        ...

    async def append(self, path: str, content: str) -> None:
        ...


class VaultStore:
    """DocumentStore over a vault directory on the local filesystem.

    Paths are vault-relative and '/'-separated, like Obsidian's own paths.
    Parent folders are never created implicitly.
    """

    def __init__(self, vault_root: Path):
        """Initialize the store.

        Args:
            vault_root: Root directory of the Obsidian vault
        """
        self.root = vault_root

    def resolve(self, path: str) -> Path:
        """Map a vault-relative path to an absolute filesystem path.

        Raises:
            ValueError: If the path is absolute or escapes the vault
        """
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValueError(f"Path must stay inside the vault: {path!r}")
        return self.root.joinpath(*rel.parts)

    async def exists(self, path: str) -> EntryKind:
        target = self.resolve(path)
        if target.is_dir():
            return EntryKind.CONTAINER
        if target.exists():
            return EntryKind.DOCUMENT
        return EntryKind.ABSENT

    async def create(self, path: str, content: str) -> None:
        # "x" fails on an existing file and on a missing parent folder
        with open(self.resolve(path), "x", encoding="utf-8", newline="") as f:
            f.write(content)

    async def read(self, path: str) -> str:
        with open(self.resolve(path), "r", encoding="utf-8", newline="") as f:
            return f.read()

    async def modify(self, path: str, content: str) -> None:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"Cannot modify missing note: {path}")
        with open(target, "w", encoding="utf-8", newline="") as f:
            f.write(content)

    async def append(self, path: str, content: str) -> None:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"Cannot append to missing note: {path}")
        with open(target, "a", encoding="utf-8", newline="") as f:
            f.write(content)
