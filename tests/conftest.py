"""Pytest fixtures for Search Logger tests."""

import asyncio
import socket

import pytest

from searchlog.config import SearchLogConfig
from searchlog.models import EntryKind


class MemoryStore:
    """In-memory DocumentStore.

    With yield_io=True every operation gives control back to the event
    loop before touching data, like a real vault does while waiting on I/O.
    """

    def __init__(self, documents=None, folders=None, yield_io: bool = False):
        self.documents: dict[str, str] = dict(documents or {})
        self.folders: set[str] = set(folders or ())
        self.yield_io = yield_io
        self.calls: list[tuple[str, str]] = []

    async def _io(self, op: str, path: str) -> None:
        self.calls.append((op, path))
        if self.yield_io:
            await asyncio.sleep(0)

    def _parent_ok(self, path: str) -> bool:
        parent = path.rpartition("/")[0]
        return not parent or parent in self.folders

    async def exists(self, path):
        await self._io("exists", path)
        if path in self.folders:
            return EntryKind.CONTAINER
        if path in self.documents:
            return EntryKind.DOCUMENT
        return EntryKind.ABSENT

    async def create(self, path, content):
        await self._io("create", path)
        if path in self.documents or path in self.folders:
            raise FileExistsError(path)
        if not self._parent_ok(path):
            raise FileNotFoundError(path)
        self.documents[path] = content

    async def read(self, path):
        await self._io("read", path)
        return self.documents[path]

    async def modify(self, path, content):
        await self._io("modify", path)
        if path not in self.documents:
            raise FileNotFoundError(path)
        self.documents[path] = content

    async def append(self, path, content):
        await self._io("append", path)
        if path not in self.documents:
            raise FileNotFoundError(path)
        self.documents[path] += content


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep SEARCHLOG_* variables from the developer's shell out of tests."""
    for name in (
        "SEARCHLOG_VAULT",
        "SEARCHLOG_NOTE",
        "SEARCHLOG_PORT",
        "SEARCHLOG_PREPEND",
        "SEARCHLOG_HOST",
        "SEARCHLOG_SERIALIZE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_vault(tmp_path):
    """Create a temporary vault for testing.

    Args:
        tmp_path: pytest's built-in temporary directory fixture

    Returns:
        Path to temporary vault root
    """
    vault_root = tmp_path / "test_vault"
    vault_root.mkdir()
    return vault_root


@pytest.fixture
def vault_config(temp_vault):
    """SearchLogConfig pointing at the temporary vault, in append mode."""
    return SearchLogConfig(vault_path=temp_vault, prepend_mode=False, port=free_port())


@pytest.fixture
def memory_store():
    return MemoryStore()


def free_ports(count: int) -> list[int]:
    """Ask the OS for distinct, currently unused localhost ports."""
    sockets = []
    try:
        for _ in range(count):
            s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            s.bind(("127.0.0.1", 0))
            sockets.append(s)
        return [s.getsockname()[1] for s in sockets]
    finally:
        for s in sockets:
            s.close()


def free_port() -> int:
    return free_ports(1)[0]


@pytest.fixture
def occupied_port():
    """A localhost port held by another listening socket for the test's duration."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    s.listen(1)
    try:
        yield s.getsockname()[1]
    finally:
        s.close()
