import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from ...config import APP_KEY
from ..domain.entities.ledger_entities import SESSION_RECORD_VERSION, SessionRecord
from ..repositories.session_store_repository import SessionStoreRepository


class SessionStateService:
    """
    Owns the single persisted record of a session (resolver cache + shadow ledger).

    - load() once at startup; a missing, unreadable or other-version record starts empty.
    - persist() writes the whole record through; callers await it before returning.
    """

    def __init__(
        self,
        store: SessionStoreRepository,
        session_id: str,
        logger: Optional[logging.Logger] = None,
    ):
        self._store = store
        self._session_id = session_id
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self.record = SessionRecord(session_id=session_id)

    @property
    def storage_key(self) -> str:
        return f"{APP_KEY}:{self._session_id}"

    async def load(self) -> SessionRecord:
        raw = await self._store.load_record(self.storage_key)
        if not raw:
            self._logger.info("No persisted session under %s; starting empty", self.storage_key)
            self.record = SessionRecord(session_id=self._session_id)
            return self.record

        version = raw.get("version")
        if version != SESSION_RECORD_VERSION:
            self._logger.warning(
                "Ignoring session record %s with version %s (expected %s)",
                self.storage_key, version, SESSION_RECORD_VERSION,
            )
            self.record = SessionRecord(session_id=self._session_id)
            return self.record

        try:
            self.record = SessionRecord.model_validate(raw)
        except ValidationError as exc:
            self._logger.warning("Corrupt session record %s, starting empty: %s", self.storage_key, exc)
            self.record = SessionRecord(session_id=self._session_id)
        return self.record

    async def persist(self) -> None:
        self.record.updated_at = datetime.now(timezone.utc)
        await self._store.save_record(self.storage_key, self.record.model_dump(mode="json"))
