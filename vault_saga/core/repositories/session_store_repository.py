from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class SessionStoreRepository(ABC):
    """
    Key/value medium for the persisted session record.
    Keys are already namespaced by the caller ("<APP_KEY>:<session_id>").
    """

    @abstractmethod
    async def load_record(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def save_record(self, key: str, record: Dict[str, Any]) -> None:
        """
        Must be durable when it returns; callers rely on it for confirmed credits/debits.
        """
        raise NotImplementedError
