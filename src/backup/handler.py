from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from common.archive import MalformedArchiveError, archive_image_ids, export_archive, import_archive
from common.config import BoardConfig
from state.models import AppState, create_default_state
from state.store import BoardStore, StorageError
from state.transitions import prune_orphan_blobs


logger = logging.getLogger(__name__)


async def load_or_create_state(store: BoardStore) -> AppState:
    """Load the saved board; on first run persist and return the starter board."""
    state = await store.load_state()
    if state is not None:
        return state
    logger.info("No saved board found; creating the default board")
    state = create_default_state()
    await store.save_state(state)
    return state


async def run_export(path: str | Path, *, store: BoardStore) -> Dict[str, Any]:
    """
    Export the saved board and its images to an archive file.

    Returns: {"ok": True, "path": str, "images": N, "bytes": size}.
    """
    state = await load_or_create_state(store)
    archive = await export_archive(state, store)
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(archive)
    return {"ok": True, "path": str(target), "images": len(archive_image_ids(archive)), "bytes": len(archive)}


async def run_import(path: str | Path, *, store: BoardStore) -> Dict[str, Any]:
    """
    Import an archive file, replacing the saved board.

    Images in the archive overwrite stored blobs with the same id; other
    stored blobs are kept. Returns: {"ok": True, "zones": N, "images": N}.
    """
    data = Path(path).read_bytes()
    state = await import_archive(data, store)
    await store.save_state(state)
    zones = state.zones if isinstance(state.zones, list) else []
    return {"ok": True, "zones": len(zones), "images": len(archive_image_ids(data))}


async def run_prune(*, store: BoardStore) -> Dict[str, Any]:
    state = await load_or_create_state(store)
    removed = await prune_orphan_blobs(state, store)
    return {"ok": True, "removed": removed}


async def run_init(*, store: BoardStore) -> Dict[str, Any]:
    state = await load_or_create_state(store)
    return {"ok": True, "title": state.title, "zones": len(state.zones)}


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="taskzones",
        description="Manage the task board store: initialize, export, import, prune images",
    )
    parser.add_argument("--db", help="SQLite store path (overrides TASKZONES_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create the default board if none is saved")
    export_p = sub.add_parser("export", help="Write the board and its images to a ZIP archive")
    export_p.add_argument("path")
    import_p = sub.add_parser("import", help="Restore the board and its images from a ZIP archive")
    import_p.add_argument("path")
    sub.add_parser("prune", help="Delete stored images no card references")
    return parser.parse_args(list(argv))


async def _dispatch(options: argparse.Namespace, config: BoardConfig) -> Dict[str, Any]:
    async with BoardStore.from_config(config) as store:
        if options.command == "export":
            return await run_export(options.path, store=store)
        if options.command == "import":
            return await run_import(options.path, store=store)
        if options.command == "prune":
            return await run_prune(store=store)
        return await run_init(store=store)


def main(argv: Optional[Sequence[str]] = None) -> int:
    options = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        config = BoardConfig.from_env()
    except RuntimeError as e:
        print(f"taskzones: {e}", file=sys.stderr)
        return 1
    if options.db:
        config = BoardConfig(db_path=Path(options.db).expanduser(), fernet_key=config.fernet_key, log_level=config.log_level)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [taskzones] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        result = asyncio.run(_dispatch(options, config))
    except (StorageError, MalformedArchiveError, json.JSONDecodeError, OSError) as e:
        logger.error("%s failed: %s", options.command, e)
        return 1
    print(json.dumps(result, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
