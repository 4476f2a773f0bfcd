import asyncio
import itertools
from typing import Any, Dict, List, Optional, Tuple

import pytest

from vault_saga.config import Settings
from vault_saga.core.domain.entities.ledger_entities import ConfirmationResult, PairKey, make_pair_key
from vault_saga.core.domain.entities.operation_intent import OperationIntent, TxHandle
from vault_saga.core.domain.enums.saga_enums import OperationKind, TxKind, TxStatus
from vault_saga.core.domain.exceptions import UserDeclinedError
from vault_saga.core.domain.policies import Spenders
from vault_saga.core.repositories.ledger_gateway import LedgerGateway
from vault_saga.core.repositories.session_store_repository import SessionStoreRepository
from vault_saga.core.services.allowance_gate_service import AllowanceGateService
from vault_saga.core.services.intent_store_service import IntentStoreService
from vault_saga.core.services.resource_resolver_service import ResourceResolverService
from vault_saga.core.services.session_state_service import SessionStateService
from vault_saga.core.services.shadow_ledger_service import ShadowLedgerService
from vault_saga.core.usecases.run_operation_saga_use_case import RunOperationSagaUseCase

ACTOR = "0x00000000000000000000000000000000000000a1"
GOLD = "0x0000000000000000000000000000000000636359"
SILVER = "0x00000000000000000000000000000000006363ad"
ESTATE = "0x00000000000000000000000000000000000e57a7"
LENDING_POOL = "0xfee2cc90da44d83a4c1426d67edd0f3b03d0204e"
SWAP_ENGINE = "0x4536b242ea3d3b5c412f5db159353b7ca6ed003e"
LEGACY_POOL_ID = "0xf91ed1b328aa7736110334f0687e7904734786118bac577039dd662f566f04e2"

CATEGORIES = {GOLD: "gold", ESTATE: "real_estate", SILVER: "invoice"}


class FakeLedgerGateway(LedgerGateway):
    """
    In-memory ledger.

    - auto_confirm=True: await_confirmation resolves on the next loop turn.
      auto_confirm=False: it blocks until the test calls confirm(tx_hash) / fail(tx_hash).
    - a confirmed approve sets the allowance, a confirmed operation spends it.
    - a confirmed createPool registers a new pool id and reports it in the result.
    """

    def __init__(self, auto_confirm: bool = True):
        self.auto_confirm = auto_confirm
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.pools: Dict[PairKey, str] = {}
        self.decline: Optional[str] = None
        self.failing_kinds: set = set()
        self.fail_authorizations = False
        self.remote_lookup_error = False
        self.register_created_pools = True
        self.quote_delay = 0.0
        self.read_delay = 0.0

        self.allowance_reads: List[Tuple[str, str, str]] = []
        self.authorizations: List[Tuple[str, str, int]] = []
        self.operations: List[Tuple[OperationKind, Dict[str, Any]]] = []
        self.quote_calls: List[Tuple[str, str, int]] = []

        self._hashes = itertools.count(1)
        self._pool_ids = itertools.count(101)
        self._txs: Dict[str, tuple] = {}
        self._waiters: Dict[str, asyncio.Future] = {}

    # -------- test controls --------

    def set_allowance(self, asset_id: str, spender_id: str, amount: int) -> None:
        self.allowances[(asset_id.lower(), spender_id.lower())] = amount

    def allowance_of(self, asset_id: str, spender_id: str) -> int:
        return self.allowances.get((asset_id.lower(), spender_id.lower()), 0)

    def _waiter(self, tx_hash: str) -> asyncio.Future:
        if tx_hash not in self._waiters:
            self._waiters[tx_hash] = asyncio.get_running_loop().create_future()
        return self._waiters[tx_hash]

    def confirm(self, tx_hash: str) -> None:
        """Land the tx; its effects apply even if nobody listens for it anymore."""
        self._waiter(tx_hash).set_result(self._apply(tx_hash, TxStatus.CONFIRMED))

    def fail(self, tx_hash: str) -> None:
        self._waiter(tx_hash).set_result(self._apply(tx_hash, TxStatus.FAILED))

    def pending_hashes(self) -> List[str]:
        return [h for h, f in self._waiters.items() if not f.done()]

    # -------- reads --------

    async def read_allowance(self, asset_id: str, owner_id: str, spender_id: str) -> int:
        self.allowance_reads.append((asset_id, owner_id, spender_id))
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return self.allowance_of(asset_id, spender_id)

    async def read_resource_identity(self, pair_key: PairKey) -> Optional[str]:
        if self.remote_lookup_error:
            raise ConnectionError("rpc unreachable")
        return self.pools.get(make_pair_key(*pair_key))

    async def read_quote(self, resource_id: str, asset_id: str, amount: int) -> int:
        self.quote_calls.append((resource_id, asset_id, amount))
        if self.quote_delay:
            await asyncio.sleep(self.quote_delay)
        return amount * 2

    # -------- writes --------

    def _new_hash(self) -> str:
        return "0x%064x" % next(self._hashes)

    async def submit_authorization(self, asset_id: str, spender_id: str, amount: int) -> TxHandle:
        if self.decline:
            raise UserDeclinedError(self.decline)
        self.authorizations.append((asset_id, spender_id, amount))
        tx_hash = self._new_hash()
        self._txs[tx_hash] = ("authorization", asset_id, spender_id, amount)
        return TxHandle(tx_hash=tx_hash, kind=TxKind.AUTHORIZATION)

    async def submit_operation(self, kind: OperationKind, params: Dict[str, Any]) -> TxHandle:
        if self.decline:
            raise UserDeclinedError(self.decline)
        self.operations.append((kind, params))
        tx_hash = self._new_hash()
        self._txs[tx_hash] = ("operation", kind, params)
        return TxHandle(tx_hash=tx_hash, kind=TxKind.OPERATION)

    async def await_confirmation(self, handle: TxHandle) -> ConfirmationResult:
        if self.auto_confirm:
            await asyncio.sleep(0)
            tx = self._txs[handle.tx_hash]
            failed = (tx[0] == "authorization" and self.fail_authorizations) or (
                tx[0] == "operation" and tx[1] in self.failing_kinds
            )
            return self._apply(handle.tx_hash, TxStatus.FAILED if failed else TxStatus.CONFIRMED)
        return await asyncio.shield(self._waiter(handle.tx_hash))

    def _apply(self, tx_hash: str, status: TxStatus) -> ConfirmationResult:
        receipt = {"transactionHash": tx_hash, "status": 1 if status == TxStatus.CONFIRMED else 0}
        if status != TxStatus.CONFIRMED:
            return ConfirmationResult(status=status, receipt=receipt)

        tx = self._txs[tx_hash]
        if tx[0] == "authorization":
            _, asset_id, spender_id, amount = tx
            self.set_allowance(asset_id, spender_id, amount)
            return ConfirmationResult(status=status, receipt=receipt)

        _, kind, params = tx
        created = None
        if kind in (OperationKind.DEPOSIT, OperationKind.REPAY_LOAN):
            self._spend(params.get("asset"), LENDING_POOL, params["amount"])
        elif kind == OperationKind.CREATE_LOAN:
            self._spend(params["collateral_token"], LENDING_POOL, params["collateral_amount"])
        elif kind == OperationKind.SWAP:
            self._spend(params["token_in"], SWAP_ENGINE, params["amount_in"])
        elif kind == OperationKind.CREATE_POOL:
            self._spend(params["token_a"], SWAP_ENGINE, params["amount_a"])
            self._spend(params["token_b"], SWAP_ENGINE, params["amount_b"])
            created = str(next(self._pool_ids))
            if self.register_created_pools:
                self.pools[make_pair_key(params["token_a"], params["token_b"])] = created
        return ConfirmationResult(status=status, receipt=receipt, created_resource_id=created)

    def _spend(self, asset_id: Optional[str], spender_id: str, amount: int) -> None:
        if not asset_id:
            return
        self.set_allowance(asset_id, spender_id, max(0, self.allowance_of(asset_id, spender_id) - amount))


class InMemorySessionStore(SessionStoreRepository):

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self.saves = 0

    async def load_record(self, key: str) -> Optional[Dict[str, Any]]:
        return self.records.get(key)

    async def save_record(self, key: str, record: Dict[str, Any]) -> None:
        self.saves += 1
        self.records[key] = record


def make_intent(kind: OperationKind = OperationKind.DEPOSIT, amount: int = 500, **kw) -> OperationIntent:
    data = {"actor_id": ACTOR, "asset_id": GOLD, "amount": amount, "operation_kind": kind}
    data.update(kw)
    return OperationIntent(**data)


async def settle(rounds: int = 50) -> None:
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def gateway():
    return FakeLedgerGateway()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def session(store):
    return SessionStateService(store, "test")


@pytest.fixture
def resolver(gateway, session):
    return ResourceResolverService(gateway, session, legacy_pair=(GOLD, SILVER), legacy_id=LEGACY_POOL_ID)


@pytest.fixture
def shadow_ledger(session):
    return ShadowLedgerService(session)


@pytest.fixture
def intent_store():
    return IntentStoreService()


@pytest.fixture
def driver(gateway, intent_store, shadow_ledger, resolver):
    return RunOperationSagaUseCase(
        gateway=gateway,
        allowance_gate=AllowanceGateService(gateway),
        intent_store=intent_store,
        shadow_ledger=shadow_ledger,
        resolver=resolver,
        spenders=Spenders(lending_pool=LENDING_POOL, swap_engine=SWAP_ENGINE),
        categories=CATEGORIES,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        RPC_URL_DEFAULT="http://localhost:8545",
        PRIVATE_KEY="",
        READ_ONLY_MODE=True,
        LENDING_POOL=LENDING_POOL,
        SWAP_ENGINE=SWAP_ENGINE,
        LEGACY_POOL_TOKEN_A=GOLD,
        LEGACY_POOL_TOKEN_B=SILVER,
        LEGACY_POOL_ID=LEGACY_POOL_ID,
        QUOTE_QUIET_PERIOD_SEC=0.05,
        DATA_ROOT=str(tmp_path),
        SESSION_ID="test",
        ASSET_CATEGORIES=dict(CATEGORIES),
    )
