"""Tests for the service lifecycle and live settings changes."""

import asyncio

import aiohttp

from conftest import MemoryStore, free_ports
from searchlog.listener import AddressInUse
from searchlog.service import SearchLogService
from searchlog.writer import read_log_lines


async def _post(port: int, query: str) -> int:
    payload = {"query": query, "url": f"https://x/?q={query}", "timestamp": 1700000000000}
    connector = aiohttp.TCPConnector(force_close=True)
    async with aiohttp.ClientSession(connector=connector) as session:
        async with session.post(f"http://127.0.0.1:{port}/log", json=payload) as resp:
            return resp.status


class ReadOnlyStore(MemoryStore):
    """MemoryStore whose create always fails, like a read-only vault."""

    async def create(self, path, content):
        await self._io("create", path)
        raise PermissionError(13, "Permission denied", path)


def _queries(path):
    return [q for _, q, _ in read_log_lines(path.read_text(encoding="utf-8"))]


def test_start_creates_empty_note_and_listens(vault_config, temp_vault):
    service = SearchLogService(vault_config)

    async def _run():
        warnings = await service.start()
        listening = service.is_listening
        status = await _post(vault_config.port, "cats")
        await service.stop()
        return warnings, listening, status

    warnings, listening, status = asyncio.run(_run())

    assert warnings == []
    assert listening
    assert status == 200
    assert _queries(temp_vault / "SearchLog.md") == ["cats"]
    assert not service.is_listening


def test_start_with_invalid_note_warns_but_listens(vault_config, temp_vault):
    """Test that a bad note name is reported and the endpoint still comes up."""
    config = vault_config.with_log_file_name("Missing/SearchLog")
    service = SearchLogService(config)

    async def _run():
        warnings = await service.start()
        listening = service.is_listening
        await service.stop()
        return warnings, listening

    warnings, listening = asyncio.run(_run())

    assert warnings == ["Parent folder 'Missing' does not exist."]
    assert listening
    assert not (temp_vault / "Missing").exists()


def test_start_on_occupied_port_reports_failure(vault_config, occupied_port):
    service = SearchLogService(vault_config.model_copy(update={"port": occupied_port}))

    async def _run():
        warnings = await service.start()
        await service.stop()
        return warnings

    warnings = asyncio.run(_run())

    assert warnings == [f"Port {occupied_port} is already in use."]
    assert not service.is_listening


def test_apply_new_note_and_mode(vault_config, temp_vault):
    """Test that a note/mode change takes effect without a restart and keeps the buffer."""
    (temp_vault / "Logs").mkdir()
    service = SearchLogService(vault_config)
    new_config = vault_config.with_log_file_name("Logs/Searches").model_copy(update={"prepend_mode": True})

    async def _run():
        await service.start()
        await _post(vault_config.port, "one")
        result = await service.apply_settings(new_config)
        await _post(vault_config.port, "two")
        await _post(vault_config.port, "three")
        # Still inside the dedup window, even across the settings change
        await _post(vault_config.port, "one")
        await service.stop()
        return result

    result = asyncio.run(_run())

    assert result.ok
    assert result.note_created
    assert not result.rebound
    assert result.config.log_file_name == "Logs/Searches.md"
    assert result.config.prepend_mode is True
    assert _queries(temp_vault / "SearchLog.md") == ["one"]
    assert _queries(temp_vault / "Logs" / "Searches.md") == ["three", "two"]


def test_apply_invalid_note_keeps_old_note(vault_config, temp_vault):
    service = SearchLogService(vault_config)
    (temp_vault / "Folder.md").mkdir()

    async def _run():
        await service.start()
        result = await service.apply_settings(vault_config.with_log_file_name("Folder"))
        await _post(vault_config.port, "cats")
        await service.stop()
        return result

    result = asyncio.run(_run())

    assert not result.ok
    assert result.errors == ["'Folder.md' exists but is a folder."]
    assert result.config.log_file_name == "SearchLog.md"
    assert _queries(temp_vault / "SearchLog.md") == ["cats"]


def test_apply_out_of_range_port_is_rejected_before_binding(vault_config):
    service = SearchLogService(vault_config)

    async def _run():
        await service.start()
        result = await service.apply_settings(vault_config.model_copy(update={"port": 1023}))
        port = service.listener.port
        await service.stop()
        return result, port

    result, port = asyncio.run(_run())

    assert result.errors == ["Port (1023) must be between 1024 and 65535."]
    assert result.config.port == vault_config.port
    assert port == vault_config.port


def test_apply_new_port_rebinds(vault_config):
    new_port = next(p for p in free_ports(2) if p != vault_config.port)
    service = SearchLogService(vault_config)

    async def _run():
        await service.start()
        result = await service.apply_settings(vault_config.model_copy(update={"port": new_port}))
        status = await _post(new_port, "cats")
        await service.stop()
        return result, status

    result, status = asyncio.run(_run())

    assert result.ok
    assert result.rebound
    assert result.config.port == new_port
    assert service.config.port == new_port
    assert status == 200


def test_apply_occupied_port_rolls_back_and_keeps_old_port(vault_config, occupied_port):
    """Test that a failed rebind leaves the endpoint on its last good port."""
    service = SearchLogService(vault_config)

    async def _run():
        await service.start()
        result = await service.apply_settings(vault_config.model_copy(update={"port": occupied_port}))
        status = await _post(vault_config.port, "cats")
        await service.stop()
        return result, status

    result, status = asyncio.run(_run())

    assert not result.ok
    assert result.bind_failure == AddressInUse(occupied_port)
    assert result.errors == [f"Port {occupied_port} is already in use."]
    assert result.config.port == vault_config.port
    assert status == 200


def test_start_reports_note_creation_failure_and_still_listens(vault_config):
    service = SearchLogService(vault_config, store=ReadOnlyStore())

    async def _run():
        warnings = await service.start()
        listening = service.is_listening
        await service.stop()
        return warnings, listening

    warnings, listening = asyncio.run(_run())

    assert len(warnings) == 1
    assert warnings[0].startswith("Failed to create SearchLog.md:")
    assert "Permission denied" in warnings[0]
    assert listening


def test_apply_note_creation_failure_keeps_old_note(vault_config):
    """Test that a note that cannot be created is reported and the old note stays in use."""
    store = ReadOnlyStore(documents={"SearchLog.md": ""})
    service = SearchLogService(vault_config, store=store)

    async def _run():
        await service.start()
        result = await service.apply_settings(vault_config.with_log_file_name("Other"))
        status = await _post(vault_config.port, "cats")
        await service.stop()
        return result, status

    result, status = asyncio.run(_run())

    assert not result.ok
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Failed to create Other.md:")
    assert not result.note_created
    assert result.config.log_file_name == "SearchLog.md"
    assert service.writer.note_path == "SearchLog.md"
    assert status == 200
    assert "Other.md" not in store.documents
    assert [q for _, q, _ in read_log_lines(store.documents["SearchLog.md"])] == ["cats"]
