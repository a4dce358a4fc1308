"""
On-device receipt storage for guest sessions.

The whole receipt collection lives in one JSON document stored under a fixed
key (``<data_dir>/<key>.json``).  There are no row-level updates: every write
reads the collection, modifies it and rewrites it atomically.  The
read-modify-write sequence is serialised with a lock shared by every store
pointing at the same file.
"""
from __future__ import annotations

import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from spendsmart.errors import PersistenceError
from spendsmart.schemas import Receipt

logger = logging.getLogger(__name__)

DEFAULT_KEY = "saved_receipts"
INSTALL_ID_FILE = "install_id"

_receipts_adapter = TypeAdapter(list[Receipt])

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]


class LocalReceiptStore:
    def __init__(self, data_dir: str | os.PathLike, key: str = DEFAULT_KEY) -> None:
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / f"{key}.json"
        self._lock = _lock_for(self.path)

    # ── raw blob ─────────────────────────────────────────────────────────
    def _read(self) -> list[Receipt]:
        try:
            blob = self.path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise PersistenceError(f"could not read {self.path}: {exc}") from exc
        if not blob.strip():
            return []
        try:
            return _receipts_adapter.validate_json(blob)
        except ValidationError as exc:
            # Refuse to overwrite a collection we cannot read
            raise PersistenceError(f"local receipt store is corrupt: {self.path}") from exc

    def _write(self, receipts: list[Receipt]) -> None:
        blob = _receipts_adapter.dump_json(receipts, indent=2)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=".receipts-", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(blob)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as exc:
            raise PersistenceError(f"could not write {self.path}: {exc}") from exc

    # ── collection operations ────────────────────────────────────────────
    def load_all(self) -> list[Receipt]:
        with self._lock:
            return self._read()

    def append(self, receipt: Receipt) -> Receipt:
        with self._lock:
            receipts = self._read()
            receipts.append(receipt)
            self._write(receipts)
        logger.info("Saved receipt %s locally (%d total)", receipt.id, len(receipts))
        return receipt

    def list_for_owner(self, owner_id: str) -> list[Receipt]:
        return [r for r in self.load_all() if r.user_id == owner_id]

    def get(self, owner_id: str, receipt_id: str) -> Optional[Receipt]:
        for receipt in self.load_all():
            if receipt.id == receipt_id and receipt.user_id == owner_id:
                return receipt
        return None

    def delete(self, owner_id: str, receipt_id: str) -> bool:
        with self._lock:
            receipts = self._read()
            remaining = [
                r for r in receipts
                if not (r.id == receipt_id and r.user_id == owner_id)
            ]
            if len(remaining) == len(receipts):
                return False
            self._write(remaining)
        logger.info("Deleted local receipt %s", receipt_id)
        return True


def load_or_create_install_id(data_dir: str | os.PathLike) -> str:
    """Return the stable guest identifier for this install, creating it once."""
    path = Path(data_dir) / INSTALL_ID_FILE
    with _lock_for(path):
        try:
            existing = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            existing = ""
        if existing:
            return existing
        install_id = str(uuid.uuid4())
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(install_id, encoding="utf-8")
        logger.info("Generated install id %s", install_id)
        return install_id
