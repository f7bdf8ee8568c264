"""
Local File Storage (offline fallback)

DESIGN DECISION: Without a network the app still works for one person.
The ledger lives in a single JSON file holding one namespaced blob:

    {"smart_prise_data": {"salary": ..., "expenses": [...],
                          "commitments": [...], "history": [...]}}

The blob is read once at startup and rewritten after every change to the
ledger. Users and messages stay in memory only.

TRADEOFFS:
- Single ledger (the bootstrap account's)
- No sharing between devices
- Theme is not persisted
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from smart_prise.models.ledger import BOOTSTRAP_ADMIN_ID
from smart_prise.services.storage.interface import StorageError, join_path, split_path
from smart_prise.services.storage.memory import InMemoryDocumentStore, _related

logger = structlog.get_logger(__name__)

LEDGER_BLOB_KEYS = ("salary", "expenses", "commitments", "history")


class LocalFileDocumentStore(InMemoryDocumentStore):
    """
    In-memory store that mirrors one ledger document to a local file.

    Args:
        file_path: JSON file to read at startup and rewrite on change
        namespace: Key of the blob inside the file
        owner_id: User whose ledger (data/{owner_id}) is persisted
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        namespace: str = "smart_prise_data",
        owner_id: str = BOOTSTRAP_ADMIN_ID,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._file_path = Path(file_path)
        self._namespace = namespace
        self._ledger_path = join_path("data", owner_id)

        blob = self._load_blob()
        initial = {"data": {owner_id: blob}} if blob else {}
        super().__init__(initial=initial, clock=clock)

    @property
    def file_path(self) -> Path:
        return self._file_path

    def _load_blob(self) -> dict:
        """Read the namespaced blob once. A missing file means a fresh ledger."""
        if not self._file_path.exists():
            return {}
        try:
            content = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(
                f"Failed to read local ledger file {self._file_path}: {e}"
            )
        blob = content.get(self._namespace) if isinstance(content, dict) else None
        if not isinstance(blob, dict):
            return {}
        return {key: blob[key] for key in LEDGER_BLOB_KEYS if key in blob}

    def _save_blob(self) -> None:
        ledger = self._read(split_path(self._ledger_path)) or {}
        blob = {key: ledger.get(key) for key in LEDGER_BLOB_KEYS}
        blob["salary"] = blob["salary"] or 0
        for key in ("expenses", "commitments", "history"):
            blob[key] = _as_list(blob[key])

        payload = json.dumps({self._namespace: blob}, ensure_ascii=False, indent=2)
        directory = self._file_path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._file_path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write local ledger file: {e}")

        logger.debug("local_ledger_saved", path=str(self._file_path))

    def _persist(self, changed: list[list[str]]) -> None:
        ledger_parts = split_path(self._ledger_path)
        if any(_related(ledger_parts, parts) for parts in changed):
            self._save_blob()


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, dict):
        return list(value.values())
    return list(value)
