"""
File-backed session store (<DATA_ROOT>/session_store.json).
One JSON object keyed by the namespaced session key.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ....core.repositories.session_store_repository import SessionStoreRepository


class SessionStoreJson(SessionStoreRepository):

    FILE_NAME = "session_store.json"

    def __init__(self, data_root: str, logger: Optional[logging.Logger] = None):
        self._path = Path(data_root) / self.FILE_NAME
        self._lock = asyncio.Lock()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_dirs(self):
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def _read_all(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except Exception as exc:
            self._logger.warning("Unreadable %s, treating as empty: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]):
        self._ensure_dirs()
        tmp = self._path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2))
        tmp.replace(self._path)

    async def load_record(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            return self._read_all().get(key)

    async def save_record(self, key: str, record: Dict[str, Any]) -> None:
        async with self._lock:
            data = self._read_all()
            data[key] = record
            self._write_all(data)
