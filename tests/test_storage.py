from __future__ import annotations

import asyncio

from parking_sync.layout.storage import JsonFileStore


def test_file_store_round_trip(tmp_path):
    store = JsonFileStore(tmp_path / "cache")

    async def scenario():
        missing = await store.get_item("parking_config_cache")
        await store.set_item("parking_config_cache", '{"version": "1"}')
        stored = await store.get_item("parking_config_cache")
        await store.remove_item("parking_config_cache")
        await store.remove_item("parking_config_cache")
        removed = await store.get_item("parking_config_cache")
        return missing, stored, removed

    missing, stored, removed = asyncio.run(scenario())

    assert missing is None
    assert stored == '{"version": "1"}'
    assert removed is None
    assert not list((tmp_path / "cache").glob("*.tmp"))


def test_file_store_sanitizes_keys(tmp_path):
    store = JsonFileStore(tmp_path)

    asyncio.run(store.set_item("../escape/key", "x"))

    assert (tmp_path / ".._escape_key.json").exists()
