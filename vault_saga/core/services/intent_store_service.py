import logging
from typing import Dict, Optional

from ..domain.entities.operation_intent import IntentKey, OperationIntent


class IntentStoreService:
    """
    One slot per (actor_id, operation_kind) holding the intent of a saga that is
    waiting for its authorization to confirm.

    park() overwrites: the newest intent wins and the older one is abandoned.
    take() reads and removes in one step, so a resumption that fires twice
    only gets the intent once.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._slots: Dict[IntentKey, OperationIntent] = {}
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def park(self, key: IntentKey, intent: OperationIntent) -> Optional[OperationIntent]:
        """Store intent under key; returns the intent it replaced, if any."""
        replaced = self._slots.get(key)
        self._slots[key] = intent
        if replaced is not None:
            self._logger.info(
                "Intent for %s/%s replaced (saga %s -> %s)",
                key[0], key[1].value, replaced.saga_id, intent.saga_id,
            )
        return replaced

    def take(self, key: IntentKey) -> Optional[OperationIntent]:
        # no await between read and delete: atomic on the event loop
        return self._slots.pop(key, None)

    def clear(self, key: IntentKey) -> None:
        self._slots.pop(key, None)

    def peek(self, key: IntentKey) -> Optional[OperationIntent]:
        return self._slots.get(key)

    def __len__(self) -> int:
        return len(self._slots)
