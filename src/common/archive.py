from __future__ import annotations

import asyncio
import io
import json
import logging
import zipfile
import zlib
from typing import Any, Dict, List, Mapping, Tuple, Union

from state.models import AppState, coerce_state
from state.store import BoardStore
from state.transitions import image_blob_ids


logger = logging.getLogger(__name__)

STATE_ENTRY = "state.json"
IMAGES_PREFIX = "images/"


class MalformedArchiveError(ValueError):
    """The archive is not a readable ZIP or lacks a usable state document."""


def _build_zip(state_json: str, images: List[Tuple[str, bytes]]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(STATE_ENTRY, state_json.encode("utf-8"))
        for blob_id, data in images:
            zf.writestr(f"{IMAGES_PREFIX}{blob_id}", data)
    return buf.getvalue()


def _read_zip(data: bytes) -> Tuple[str, List[Tuple[str, bytes]]]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            try:
                raw_state = zf.read(STATE_ENTRY)
            except KeyError:
                raise MalformedArchiveError(f"Archive has no {STATE_ENTRY} entry") from None
            images: List[Tuple[str, bytes]] = []
            for info in zf.infolist():
                if info.is_dir() or not info.filename.startswith(IMAGES_PREFIX):
                    continue
                blob_id = info.filename[len(IMAGES_PREFIX):]
                if blob_id:
                    images.append((blob_id, zf.read(info)))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, zlib.error, NotImplementedError, RuntimeError) as ex:
        raise MalformedArchiveError(f"Not a valid archive: {ex}") from ex

    try:
        return raw_state.decode("utf-8"), images
    except UnicodeDecodeError as ex:
        raise MalformedArchiveError(f"{STATE_ENTRY} is not UTF-8") from ex


async def export_archive(state: Union[AppState, Mapping[str, Any]], store: BoardStore) -> bytes:
    """
    Bundle the board and every image its cards reference into one ZIP.

    Layout
    - `state.json`: the board document (UTF-8 JSON).
    - `images/<blobId>`: raw image bytes, one entry per referenced blob.

    A card whose blob is missing from the store keeps its `imageBlobId` in
    `state.json` and simply gets no image entry.
    """
    doc: Dict[str, Any] = state.to_document() if isinstance(state, AppState) else json.loads(json.dumps(state))
    state_json = json.dumps(doc, ensure_ascii=False, indent=2)

    images: List[Tuple[str, bytes]] = []
    for blob_id in image_blob_ids(doc):
        data = await store.get_blob(blob_id)
        if data is None:
            logger.warning("Card image %s not found in store; exporting reference only", blob_id)
            continue
        images.append((blob_id, data))

    loop = asyncio.get_running_loop()
    archive = await loop.run_in_executor(None, _build_zip, state_json, images)
    logger.info("Exported archive: %d image(s), %d bytes", len(images), len(archive))
    return archive


async def import_archive(data: bytes, store: BoardStore) -> AppState:
    """
    Restore a board from an archive produced by `export_archive`.

    The whole archive is checked first (readable ZIP, `state.json` present,
    UTF-8, a JSON object); nothing is written to the store unless it passes.
    Every `images/` entry is then written to the store, overwriting blobs
    with the same id. Blobs absent from the archive are left untouched.

    The caller persists the returned board with `store.save_state`.

    Raises:
    - MalformedArchiveError for an unreadable container or missing/non-object state.
    - json.JSONDecodeError if `state.json` is not valid JSON.
    """
    loop = asyncio.get_running_loop()
    state_json, images = await loop.run_in_executor(None, _read_zip, bytes(data))

    raw = json.loads(state_json)
    try:
        state = coerce_state(raw)
    except TypeError as ex:
        raise MalformedArchiveError(str(ex)) from ex

    for blob_id, blob in images:
        await store.put_blob(blob_id, blob)
    zones = state.zones if isinstance(state.zones, list) else []
    logger.info("Imported archive: %d zone(s), %d image(s)", len(zones), len(images))
    return state


def archive_image_ids(data: bytes) -> List[str]:
    """Blob ids carried by an archive's `images/` entries."""
    try:
        with zipfile.ZipFile(io.BytesIO(bytes(data))) as zf:
            names = zf.namelist()
    except zipfile.BadZipFile as ex:
        raise MalformedArchiveError(f"Not a valid archive: {ex}") from ex
    return [n[len(IMAGES_PREFIX):] for n in names if n.startswith(IMAGES_PREFIX) and n != IMAGES_PREFIX and not n.endswith("/")]
