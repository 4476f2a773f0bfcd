import logging
from typing import Dict, Optional

from ..domain.entities.ledger_entities import ShadowLedgerEntry
from .session_state_service import SessionStateService


class ShadowLedgerService:
    """
    Local mirror of cumulative per-category amounts (e.g. total lent in "gold").

    - credit/debit persist before returning; nothing is buffered.
    - debit clamps at zero and logs: a clamp means the mirror drifted from chain state.
    - aggregate() is always the sum of the categories, never stored.

    Only the saga driver calls credit/debit, from the OperationConfirmed transition.
    """

    def __init__(self, session: SessionStateService, logger: Optional[logging.Logger] = None):
        self._session = session
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _amounts(self) -> Dict[str, int]:
        return {e.category_key: int(e.cumulative_amount) for e in self._session.record.shadow_ledger}

    async def _write(self, category_key: str, value: int) -> None:
        entries = [e for e in self._session.record.shadow_ledger if e.category_key != category_key]
        entries.append(ShadowLedgerEntry(category_key=category_key, cumulative_amount=value))
        self._session.record.shadow_ledger = entries
        await self._session.persist()

    async def credit(self, category_key: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("credit amount must be >= 0")
        new_total = self.total_of(category_key) + amount
        await self._write(category_key, new_total)
        self._logger.info("Shadow credit %s +%s -> %s", category_key, amount, new_total)
        return new_total

    async def debit(self, category_key: str, amount: int) -> int:
        if amount < 0:
            raise ValueError("debit amount must be >= 0")
        current = self.total_of(category_key)
        new_total = current - amount
        if new_total < 0:
            self._logger.warning(
                "Shadow ledger drift: debit %s from %s (has %s); clamping to 0",
                amount, category_key, current,
            )
            new_total = 0
        await self._write(category_key, new_total)
        self._logger.info("Shadow debit %s -%s -> %s", category_key, amount, new_total)
        return new_total

    def total_of(self, category_key: str) -> int:
        return self._amounts().get(category_key, 0)

    def aggregate(self) -> int:
        return sum(self._amounts().values())

    def totals(self) -> Dict[str, int]:
        return dict(sorted(self._amounts().items()))
