import asyncio
import logging
from typing import Optional

from ..domain.entities.operation_intent import AllowanceCheck, AllowanceRecord
from ..repositories.ledger_gateway import LedgerGateway


class AllowanceGateService:
    """
    Decides whether an authorization must precede an operation.

    Rules:
      - required == 0 -> sufficient, no remote read at all.
      - granted >= required -> sufficient, no side effect.
      - otherwise submit ONE approve for exactly `required` (never an unlimited grant)
        and report insufficient together with the submission handle.

    The allowance is read fresh on every call; it can change out-of-band.
    """

    def __init__(self, gateway: LedgerGateway, logger: Optional[logging.Logger] = None):
        self._gateway = gateway
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def check_and_request_allowance(
        self,
        asset_id: str,
        spender_id: str,
        required_amount: int,
        owner_id: str,
        abort: Optional[asyncio.Event] = None,
    ) -> AllowanceCheck:
        """
        `abort` is checked right before submitting: once it is set no approve is sent
        and the result is insufficient with no handle.
        """
        if required_amount < 0:
            raise ValueError("required_amount must be >= 0")
        if required_amount == 0:
            return AllowanceCheck(sufficient=True)

        granted = int(await self._gateway.read_allowance(asset_id, owner_id, spender_id))
        record = AllowanceRecord(
            asset_id=asset_id,
            owner_id=owner_id,
            spender_id=spender_id,
            granted_amount=granted,
            required_amount=required_amount,
        )
        if granted >= required_amount:
            self._logger.debug("Allowance ok for %s -> %s: %s >= %s", asset_id, spender_id, granted, required_amount)
            return AllowanceCheck(sufficient=True, record=record)

        self._logger.info(
            "Allowance short for %s -> %s (%s < %s); requesting approve(%s)",
            asset_id, spender_id, granted, required_amount, required_amount,
        )
        if abort is not None and abort.is_set():
            self._logger.info("Approve for %s -> %s dropped: request was withdrawn", asset_id, spender_id)
            return AllowanceCheck(sufficient=False, record=record)
        handle = await self._gateway.submit_authorization(asset_id, spender_id, required_amount)
        return AllowanceCheck(sufficient=False, record=record, handle=handle)
