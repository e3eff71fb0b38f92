from __future__ import annotations

import asyncio
import json

from backup import handler
from state.models import Card, Zone
from state.store import BoardStore


def test_load_or_create_state_persists_default_once(store):
    async def scenario():
        first = await handler.load_or_create_state(store)
        first.title = "edited"
        await store.save_state(first)
        second = await handler.load_or_create_state(store)
        return second

    assert asyncio.run(scenario()).title == "edited"


def test_export_then_import_into_fresh_store(tmp_path):
    archive_path = tmp_path / "out" / "board.zip"

    async def export_side():
        async with BoardStore(tmp_path / "a.db") as s:
            state = await handler.load_or_create_state(s)
            state.zones.append(
                Zone(id="z1", name="Quests", items=[Card(id="c1", task_type_id="2", image_blob_id="img-1")])
            )
            await s.save_state(state)
            await s.put_blob("img-1", b"image-bytes")
            return await handler.run_export(archive_path, store=s)

    async def import_side():
        async with BoardStore(tmp_path / "b.db") as s:
            summary = await handler.run_import(archive_path, store=s)
            return summary, await s.load_state(), await s.get_blob("img-1")

    exported = asyncio.run(export_side())
    assert exported["ok"] is True
    assert exported["images"] == 1
    assert archive_path.exists()

    summary, state, blob = asyncio.run(import_side())
    assert summary == {"ok": True, "zones": 1, "images": 1}
    assert state.zones[0].items[0].image_blob_id == "img-1"
    assert blob == b"image-bytes"


def test_run_prune_removes_orphans(store):
    async def scenario():
        await handler.load_or_create_state(store)
        await store.put_blob("stale", b"x")
        return await handler.run_prune(store=store)

    assert asyncio.run(scenario()) == {"ok": True, "removed": ["stale"]}


def test_main_init_and_export(monkeypatch, tmp_path, capsys):
    monkeypatch.delenv("TASKZONES_FERNET_KEY", raising=False)
    monkeypatch.delenv("TASKZONES_LOG_LEVEL", raising=False)
    db = tmp_path / "cli.db"

    assert handler.main(["--db", str(db), "init"]) == 0
    out = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert out == {"ok": True, "title": "TODO LIST", "zones": 0}

    archive = tmp_path / "cli.zip"
    assert handler.main(["--db", str(db), "export", str(archive)]) == 0
    assert archive.exists()


def test_main_import_malformed_archive_returns_1(monkeypatch, tmp_path):
    monkeypatch.delenv("TASKZONES_FERNET_KEY", raising=False)
    monkeypatch.delenv("TASKZONES_LOG_LEVEL", raising=False)
    bad = tmp_path / "bad.zip"
    bad.write_bytes(b"not a zip")
    assert handler.main(["--db", str(tmp_path / "cli.db"), "import", str(bad)]) == 1


def test_main_unopenable_store_returns_1(monkeypatch, tmp_path):
    monkeypatch.delenv("TASKZONES_FERNET_KEY", raising=False)
    monkeypatch.delenv("TASKZONES_LOG_LEVEL", raising=False)
    blocker = tmp_path / "blocker"
    blocker.write_text("file")
    assert handler.main(["--db", str(blocker / "board.db"), "init"]) == 1
