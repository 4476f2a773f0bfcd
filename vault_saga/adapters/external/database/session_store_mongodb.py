from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.repositories.session_store_repository import SessionStoreRepository


class SessionStoreMongoDB(SessionStoreRepository):
    """
    MongoDB implementation of the session store.
    One document per namespaced key, the key doubles as _id.
    """

    COLLECTION_NAME = "session_records"

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        :param db: Motor async database instance.
        """
        self._db = db
        self._collection = self._db[self.COLLECTION_NAME]

    async def load_record(self, key: str) -> Optional[Dict[str, Any]]:
        doc = await self._collection.find_one({"_id": key}, projection={"_id": False})
        return doc.get("record") if doc else None

    async def save_record(self, key: str, record: Dict[str, Any]) -> None:
        """
        Replace the whole record (upsert). Acknowledged write before returning.
        """
        await self._collection.replace_one({"_id": key}, {"_id": key, "record": record}, upsert=True)
