from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, TypeVar, Union

from cryptography.fernet import Fernet, InvalidToken

from common.config import BoardConfig

from .models import AppState, coerce_state


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Logical store names and the single state record key
STATE_TABLE = "appState"
BLOB_TABLE = "images"
STATE_KEY = "main"


class StorageError(RuntimeError):
    """Base error for the board store."""


class StorageInitError(StorageError):
    """The underlying database could not be opened. Fatal for the store's lifetime."""


class StorageOpError(StorageError):
    """A single read, write or delete failed."""


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def _dump_state_json(state: Union[AppState, Mapping[str, Any]]) -> bytes:
    # Serializing is the snapshot: nothing in the stored bytes aliases the live object
    doc = state.to_document() if isinstance(state, AppState) else state
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class BoardStore:
    """
    SQLite-backed persistence for the board document and its image blobs.

    Usage
    - Construct once per process and pass it to whoever needs storage.
    - Every operation opens the database on first use; `open()` may also be
      awaited explicitly. Opening is idempotent and the first open wins.
    - All SQLite work runs on one dedicated worker thread, so operations
      complete in the order they were issued.
    - When a Fernet key is given, state and blob records are encrypted at rest.

    Tables
    - `appState`: key/value, the board document under key `main`.
    - `images`:   key/value, raw image bytes keyed by blob id.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        *,
        fernet_key: Optional[str | bytes] = None,
    ) -> None:
        self._path = Path(db_path)
        self._fernet = _to_fernet(fernet_key) if fernet_key else None
        self._conn: Optional[sqlite3.Connection] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._init_error: Optional[StorageInitError] = None
        # Created lazily so the store can be built outside a running loop
        self._open_lock: Optional[asyncio.Lock] = None
        self._state_lock: Optional[asyncio.Lock] = None
        self._blob_lock: Optional[asyncio.Lock] = None

    # -------- Construction helpers --------
    @classmethod
    def from_config(cls, config: BoardConfig) -> "BoardStore":
        return cls(config.db_path, fernet_key=config.fernet_key)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def encrypted(self) -> bool:
        return self._fernet is not None

    # -------- Lifecycle --------
    async def open(self) -> None:
        """Open the database and create both tables if needed.

        Raises StorageInitError if the database cannot be opened; the error is
        cached and re-raised by every later call on this store.
        """
        if self._conn is not None:
            return
        if self._init_error is not None:
            raise self._init_error
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()
        async with self._open_lock:
            if self._conn is not None:
                return
            if self._init_error is not None:
                raise self._init_error
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="taskzones-store")
            try:
                self._conn = await self._run(self._open_sync)
            except (OSError, sqlite3.Error) as ex:
                logger.error("Board store initialization failed for %s: %s", self._path, ex)
                err = StorageInitError(f"Cannot open board store at {self._path}: {ex}")
                err.__cause__ = ex
                self._init_error = err
                raise err
            self._state_lock = asyncio.Lock()
            self._blob_lock = asyncio.Lock()
            logger.info("Opened board store at %s (encrypted=%s)", self._path, self.encrypted)

    async def close(self) -> None:
        conn, executor = self._conn, self._executor
        self._conn = None
        self._executor = None
        if conn is not None and executor is not None:
            await asyncio.get_running_loop().run_in_executor(executor, conn.close)
        if executor is not None:
            executor.shutdown(wait=True)

    async def __aenter__(self) -> "BoardStore":
        try:
            await self.open()
        except StorageInitError:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------- State document --------
    async def save_state(self, state: Union[AppState, Mapping[str, Any]]) -> None:
        """Persist a detached JSON snapshot of `state` under the `main` key."""
        await self.open()
        payload = self._seal(_dump_state_json(state))
        async with self._state_lock:
            await self._guarded(self._put_sync, STATE_TABLE, STATE_KEY, payload)
        logger.debug("Saved board state (%d bytes)", len(payload))

    async def load_state(self) -> Optional[AppState]:
        """Return the most recently saved board, or None if nothing was saved."""
        await self.open()
        async with self._state_lock:
            payload = await self._guarded(self._get_sync, STATE_TABLE, STATE_KEY)
        if payload is None:
            return None
        try:
            raw = json.loads(self._unseal(payload).decode("utf-8"))
            return coerce_state(raw)
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as ex:
            raise StorageOpError("Stored board state is not a valid JSON object") from ex

    # -------- Image blobs --------
    async def put_blob(self, blob_id: str, data: bytes) -> None:
        await self.open()
        payload = self._seal(bytes(data))
        async with self._blob_lock:
            await self._guarded(self._put_sync, BLOB_TABLE, blob_id, payload)

    async def get_blob(self, blob_id: str) -> Optional[bytes]:
        await self.open()
        async with self._blob_lock:
            payload = await self._guarded(self._get_sync, BLOB_TABLE, blob_id)
        return None if payload is None else self._unseal(payload)

    async def delete_blob(self, blob_id: str) -> None:
        """Delete a blob; deleting an id that was never stored is a no-op."""
        await self.open()
        async with self._blob_lock:
            await self._guarded(self._delete_sync, BLOB_TABLE, blob_id)

    async def list_blob_ids(self) -> List[str]:
        await self.open()
        async with self._blob_lock:
            return await self._guarded(self._keys_sync, BLOB_TABLE)

    # -------- Internals --------
    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    async def _guarded(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await self._run(fn, *args)
        except sqlite3.Error as ex:
            logger.warning("Board store operation %s failed: %s", fn.__name__, ex)
            raise StorageOpError(f"Board store operation failed: {ex}") from ex

    def _seal(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data) if self._fernet else data

    def _unseal(self, data: bytes) -> bytes:
        if not self._fernet:
            return data
        try:
            return self._fernet.decrypt(data)
        except InvalidToken as ex:
            raise StorageOpError("Failed to decrypt record: invalid Fernet token") from ex

    def _open_sync(self) -> sqlite3.Connection:
        if str(self._path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path))
        try:
            for table in (STATE_TABLE, BLOB_TABLE):
                conn.execute(
                    f'CREATE TABLE IF NOT EXISTS "{table}" (key TEXT PRIMARY KEY, value BLOB NOT NULL)'
                )
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _put_sync(self, table: str, key: str, value: bytes) -> None:
        self._conn.execute(
            f'INSERT OR REPLACE INTO "{table}" (key, value) VALUES (?, ?)',
            (key, sqlite3.Binary(value)),
        )
        self._conn.commit()

    def _get_sync(self, table: str, key: str) -> Optional[bytes]:
        row = self._conn.execute(f'SELECT value FROM "{table}" WHERE key = ?', (key,)).fetchone()
        return None if row is None else bytes(row[0])

    def _delete_sync(self, table: str, key: str) -> None:
        self._conn.execute(f'DELETE FROM "{table}" WHERE key = ?', (key,))
        self._conn.commit()

    def _keys_sync(self, table: str) -> List[str]:
        return [row[0] for row in self._conn.execute(f'SELECT key FROM "{table}" ORDER BY rowid')]
