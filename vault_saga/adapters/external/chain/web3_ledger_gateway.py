import asyncio
import logging
from typing import Any, Dict, Optional

from web3 import Web3
from web3.logs import DISCARD

from ....core.domain.entities.ledger_entities import ConfirmationResult, PairKey
from ....core.domain.entities.operation_intent import TxHandle
from ....core.domain.enums.saga_enums import OperationKind, TxKind, TxStatus
from ....core.repositories.ledger_gateway import LedgerGateway
from ....utils.json_safe import to_json_safe
from .abis import ABI_ERC20, ABI_LENDING_POOL, ABI_SWAP_ENGINE
from .tx_sender import TxSender


def _to_uint(value: Any) -> int:
    s = str(value).strip().lower()
    return int(s, 16) if s.startswith("0x") else int(s)


class Web3LedgerGateway(LedgerGateway):
    """
    LedgerGateway over web3.py for the lending pool + swap engine deployment.

    - reads are eth_call, writes are signed locally by TxSender
    - every blocking web3 call runs in a worker thread so the event loop stays free
    - await_confirmation waits for the receipt; status 0 => failed
    - a PoolCreated event in the receipt is surfaced as created_resource_id
    """

    def __init__(
        self,
        w3: Web3,
        tx_sender: TxSender,
        lending_pool: str,
        swap_engine: str,
        confirmation_timeout_sec: float = 120.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.w3 = w3
        self._tx = tx_sender
        self.lending_pool = self.w3.eth.contract(address=Web3.to_checksum_address(lending_pool), abi=ABI_LENDING_POOL)
        self.swap_engine = self.w3.eth.contract(address=Web3.to_checksum_address(swap_engine), abi=ABI_SWAP_ENGINE)
        self._timeout = float(confirmation_timeout_sec)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_settings(cls, s) -> "Web3LedgerGateway":
        w3 = Web3(Web3.HTTPProvider(s.RPC_URL_DEFAULT))
        sender = TxSender(
            w3,
            s.PRIVATE_KEY,
            read_only=s.READ_ONLY_MODE,
            gas_strategy=s.GAS_STRATEGY,
            max_gas_usd=s.MAX_GAS_USD,
            eth_usd_hint=s.ETH_USD_HINT,
        )
        return cls(w3, sender, s.LENDING_POOL, s.SWAP_ENGINE, confirmation_timeout_sec=s.CONFIRMATION_TIMEOUT_SEC)

    def erc20(self, addr: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(addr), abi=ABI_ERC20)

    @staticmethod
    def _addr(a: str) -> str:
        return Web3.to_checksum_address(a)

    # -------- reads --------

    async def read_allowance(self, asset_id: str, owner_id: str, spender_id: str) -> int:
        fn = self.erc20(asset_id).functions.allowance(self._addr(owner_id), self._addr(spender_id))
        return int(await asyncio.to_thread(fn.call))

    async def read_resource_identity(self, pair_key: PairKey) -> Optional[str]:
        fn = self.swap_engine.functions.getPoolByTokens(self._addr(pair_key[0]), self._addr(pair_key[1]))
        pool_id = int(await asyncio.to_thread(fn.call))
        return str(pool_id) if pool_id > 0 else None

    async def read_quote(self, resource_id: str, asset_id: str, amount: int) -> int:
        fn = self.swap_engine.functions.getSwapQuote(_to_uint(resource_id), self._addr(asset_id), int(amount))
        amount_out, _fee = await asyncio.to_thread(fn.call)
        return int(amount_out)

    # -------- writes --------

    async def submit_authorization(self, asset_id: str, spender_id: str, amount: int) -> TxHandle:
        fn = self.erc20(asset_id).functions.approve(self._addr(spender_id), int(amount))
        tx_hash = await asyncio.to_thread(self._tx.send, fn)
        self._logger.info("approve(%s, %s) on %s sent: %s", spender_id, amount, asset_id, tx_hash)
        return TxHandle(tx_hash=tx_hash, kind=TxKind.AUTHORIZATION)

    def _operation_fn(self, kind: OperationKind, p: Dict[str, Any]):
        lp = self.lending_pool.functions
        se = self.swap_engine.functions
        if kind == OperationKind.DEPOSIT:
            return lp.deposit(self._addr(p["asset"]), int(p["amount"]))
        if kind == OperationKind.WITHDRAW:
            return lp.withdraw(self._addr(p["asset"]), int(p["amount"]))
        if kind == OperationKind.CREATE_LOAN:
            return lp.createLoan(
                self._addr(p["collateral_token"]), self._addr(p["borrow_token"]),
                int(p["collateral_amount"]), int(p["borrow_amount"]),
            )
        if kind == OperationKind.REPAY_LOAN:
            return lp.repayLoan(int(p["loan_id"]), int(p["amount"]))
        if kind == OperationKind.SWAP:
            return se.swap(
                _to_uint(p["pool_id"]), self._addr(p["token_in"]), int(p["amount_in"]),
                int(p["min_amount_out"]), int(p["max_slippage_bps"]),
            )
        if kind == OperationKind.CREATE_POOL:
            return se.createPool(
                self._addr(p["token_a"]), self._addr(p["token_b"]),
                int(p["amount_a"]), int(p["amount_b"]), int(p["fee_rate_bps"]),
            )
        raise ValueError(f"unsupported operation kind: {kind}")

    async def submit_operation(self, kind: OperationKind, params: Dict[str, Any]) -> TxHandle:
        fn = self._operation_fn(kind, params)
        tx_hash = await asyncio.to_thread(self._tx.send, fn)
        self._logger.info("%s sent: %s", kind.value, tx_hash)
        return TxHandle(tx_hash=tx_hash, kind=TxKind.OPERATION)

    async def await_confirmation(self, handle: TxHandle) -> ConfirmationResult:
        rcpt = await asyncio.to_thread(self._tx.wait_receipt, handle.tx_hash, self._timeout)
        status = TxStatus.CONFIRMED if int(rcpt.get("status", 0)) == 1 else TxStatus.FAILED

        created = None
        if status == TxStatus.CONFIRMED:
            events = self.swap_engine.events.PoolCreated().process_receipt(rcpt, errors=DISCARD)
            if events:
                created = str(int(events[0]["args"]["poolId"]))

        return ConfirmationResult(status=status, receipt=to_json_safe(rcpt), created_resource_id=created)
