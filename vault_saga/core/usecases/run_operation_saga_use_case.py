import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Mapping, Optional, Set, Tuple

from ..domain.entities.ledger_entities import ConfirmationResult, SagaOutcome, make_pair_key
from ..domain.entities.operation_intent import AuthorizationLeg, IntentKey, OperationIntent, TxHandle
from ..domain.enums.saga_enums import (
    FAILURE_MESSAGES,
    SUPERSEDABLE_STATES,
    FailureReason,
    OperationKind,
    SagaState,
    TxStatus,
)
from ..domain.exceptions import (
    ResolutionExhaustedError,
    SagaBusyError,
    TransactionRevertedError,
    UserDeclinedError,
)
from ..domain.policies import Spenders, authorization_legs, operation_params, shadow_delta
from ..repositories.ledger_gateway import LedgerGateway
from ..services.allowance_gate_service import AllowanceGateService
from ..services.intent_store_service import IntentStoreService
from ..services.resource_resolver_service import ResourceResolverService
from ..services.shadow_ledger_service import ShadowLedgerService


class _Superseded(Exception):
    pass


@dataclass
class SagaRun:
    saga_id: str
    intent: OperationIntent
    state: SagaState = SagaState.IDLE
    history: List[SagaState] = field(default_factory=list)
    superseded: asyncio.Event = field(default_factory=asyncio.Event)
    parked: bool = False
    authorization_tx_hashes: List[str] = field(default_factory=list)
    operation_tx_hash: Optional[str] = None
    # approve submitted but not yet settled on-chain
    pending_authorization: Optional[TxHandle] = None
    task: Optional[asyncio.Task] = None

    @property
    def key(self) -> IntentKey:
        return self.intent.key


class RunOperationSagaUseCase:
    """
    Drives one approval-gated operation per (actor, operation kind):

        Idle -> CheckingAllowance -> [AwaitingAuthorization -> AuthorizationConfirmed]*
             -> AwaitingOperation -> OperationConfirmed -> Idle
                                  \\-> Failed -> Idle

    Rules:
      - While a saga is CheckingAllowance / AwaitingAuthorization a new trigger for
        the same key supersedes it: the old saga is Failed(superseded) at once and
        stops listening for its authorization. Later than that a new trigger is
        rejected with SagaBusyError, the operation is already on its way.
      - The parked intent is consumed with a destructive take(); a resumption that
        finds nothing fails as superseded and never reaches the shadow ledger.
      - OperationFailed leaves the granted allowance alone so a retry skips approval.
      - Every exception ends in Failed with a tagged reason; nothing stays Awaiting*.
      - The shadow ledger and the resolver cache are only written from OperationConfirmed.
      - One saga at a time per (actor, asset, spender) allowance, from the allowance
        check until its operation settles. approve() overwrites, so two sagas sharing
        an allowance would otherwise undercut each other. A saga that leaves with an
        approve still in flight keeps the allowance locked until that approve settles.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        allowance_gate: AllowanceGateService,
        intent_store: IntentStoreService,
        shadow_ledger: ShadowLedgerService,
        resolver: ResourceResolverService,
        spenders: Spenders,
        categories: Optional[Mapping[str, str]] = None,
        default_max_slippage_bps: int = 50,
        default_fee_rate_bps: int = 30,
        confirmation_timeout_sec: Optional[float] = None,
        history_limit: int = 200,
        logger: Optional[logging.Logger] = None,
    ):
        self._gateway = gateway
        self._gate = allowance_gate
        self._intents = intent_store
        self._ledger = shadow_ledger
        self._resolver = resolver
        self._spenders = spenders
        self._categories = {k.lower(): v for k, v in (categories or {}).items()}
        self._max_slippage_bps = default_max_slippage_bps
        self._fee_rate_bps = default_fee_rate_bps
        self._confirmation_timeout = confirmation_timeout_sec
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._runs: Dict[IntentKey, SagaRun] = {}
        self._outcomes: Deque[SagaOutcome] = deque(maxlen=history_limit)
        self._allowance_locks: Dict[Tuple[str, str, str], asyncio.Lock] = {}
        self._settling: Set[asyncio.Task] = set()

    # ---------- presentation-facing API ----------

    def start(self, intent: OperationIntent) -> SagaRun:
        """
        Register a saga for the intent and schedule it on the running loop.
        Raises SagaBusyError if the active saga for the key can no longer be superseded.
        """
        key = intent.key
        active = self._runs.get(key)
        if active is not None:
            # IDLE here means scheduled but not started yet
            if active.state == SagaState.IDLE or active.state in SUPERSEDABLE_STATES:
                self._supersede(active)
            else:
                raise SagaBusyError(key[0], key[1].value, active.state.value)

        saga_id = uuid.uuid4().hex
        run = SagaRun(saga_id=saga_id, intent=intent.model_copy(update={"saga_id": saga_id}))
        self._runs[key] = run
        run.task = asyncio.create_task(self._run(run))
        return run

    async def trigger(self, intent: OperationIntent) -> SagaOutcome:
        run = self.start(intent)
        return await run.task

    def current_state(self, actor_id: str, kind: OperationKind) -> SagaState:
        run = self._runs.get((actor_id.lower(), kind))
        return run.state if run is not None else SagaState.IDLE

    def active_run(self, actor_id: str, kind: OperationKind) -> Optional[SagaRun]:
        return self._runs.get((actor_id.lower(), kind))

    def last_outcome(self, actor_id: str, kind: OperationKind) -> Optional[SagaOutcome]:
        actor_id = actor_id.lower()
        for outcome in reversed(self._outcomes):
            if outcome.actor_id == actor_id and outcome.operation_kind == kind:
                return outcome
        return None

    def outcomes(self) -> List[SagaOutcome]:
        return list(self._outcomes)

    async def wait_all(self) -> None:
        tasks = [r.task for r in self._runs.values() if r.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self) -> None:
        for run in list(self._runs.values()):
            if run.task is not None and not run.task.done():
                run.task.cancel()
        await self.wait_all()
        for t in list(self._settling):
            t.cancel()
        if self._settling:
            await asyncio.gather(*self._settling, return_exceptions=True)

    # ---------- transitions ----------

    def _transition(self, run: SagaRun, state: SagaState) -> None:
        self._logger.info(
            "saga %s %s/%s: %s -> %s",
            run.saga_id[:8], run.key[0], run.key[1].value, run.state.value, state.value,
        )
        run.state = state
        run.history.append(state)

    def _supersede(self, run: SagaRun) -> None:
        run.superseded.set()
        self._transition(run, SagaState.FAILED)

    @staticmethod
    def _raise_if_superseded(run: SagaRun) -> None:
        if run.superseded.is_set():
            raise _Superseded()

    async def _await_confirmation(self, handle: TxHandle) -> ConfirmationResult:
        if self._confirmation_timeout:
            return await asyncio.wait_for(self._gateway.await_confirmation(handle), self._confirmation_timeout)
        return await self._gateway.await_confirmation(handle)

    async def _await_or_superseded(self, run: SagaRun, handle: TxHandle) -> ConfirmationResult:
        """
        Wait for the authorization to land, unless a newer trigger supersedes this saga first.
        In that case we stop listening; the tx itself cannot be revoked.
        """
        confirm = asyncio.ensure_future(self._await_confirmation(handle))
        stop = asyncio.ensure_future(run.superseded.wait())
        try:
            await asyncio.wait({confirm, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in (confirm, stop):
                if not t.done():
                    t.cancel()
        if run.superseded.is_set():
            if confirm.done() and not confirm.cancelled():
                confirm.exception()  # mark retrieved
            raise _Superseded()
        return confirm.result()

    async def _run(self, run: SagaRun) -> SagaOutcome:
        intent = run.intent
        kind = intent.operation_kind
        failure_reason = FailureReason.AUTHORIZATION_FAILED
        locks: List[asyncio.Lock] = []
        try:
            self._raise_if_superseded(run)
            self._transition(run, SagaState.CHECKING_ALLOWANCE)

            resource_id = None
            if kind == OperationKind.SWAP:
                identity = await self._resolver.resolve(intent.asset_id, intent.auxiliary_asset_id)
                self._raise_if_superseded(run)
                resource_id = identity.id

            legs = authorization_legs(intent, self._spenders)
            locks = await self._acquire_allowance_locks(run, legs)
            for i, leg in enumerate(legs):
                if i > 0 and run.state != SagaState.CHECKING_ALLOWANCE:
                    self._transition(run, SagaState.CHECKING_ALLOWANCE)
                check = await self._gate.check_and_request_allowance(
                    leg.asset_id, leg.spender_id, leg.required_amount, intent.actor_id,
                    abort=run.superseded,
                )
                if check.handle is not None:
                    run.pending_authorization = check.handle
                    run.authorization_tx_hashes.append(check.handle.tx_hash)
                self._raise_if_superseded(run)
                if check.sufficient:
                    continue

                if not run.parked:
                    self._intents.park(run.key, intent)
                    run.parked = True
                self._transition(run, SagaState.AWAITING_AUTHORIZATION)

                confirmation = await self._await_or_superseded(run, check.handle)
                run.pending_authorization = None
                if confirmation.status != TxStatus.CONFIRMED:
                    raise TransactionRevertedError(
                        check.handle.tx_hash, confirmation.receipt, "Authorization reverted",
                    )
                self._transition(run, SagaState.AUTHORIZATION_CONFIRMED)

            if run.parked:
                self._raise_if_superseded(run)
                taken = self._intents.take(run.key)
                if taken is None:
                    raise _Superseded()
                if taken.saga_id != run.saga_id:
                    self._intents.park(run.key, taken)
                    raise _Superseded()
                intent = taken

            failure_reason = FailureReason.OPERATION_FAILED
            params = operation_params(
                intent,
                resource_id=resource_id,
                default_max_slippage_bps=self._max_slippage_bps,
                default_fee_rate_bps=self._fee_rate_bps,
            )
            handle = await self._gateway.submit_operation(kind, params)
            run.operation_tx_hash = handle.tx_hash
            self._transition(run, SagaState.AWAITING_OPERATION)

            confirmation = await self._await_confirmation(handle)
            if confirmation.status != TxStatus.CONFIRMED:
                raise TransactionRevertedError(handle.tx_hash, confirmation.receipt, "Operation reverted")

            self._transition(run, SagaState.OPERATION_CONFIRMED)
            delta = await self._commit(intent, confirmation)
            return self._finish(run, None, f"{kind.value} confirmed", shadow=delta)

        except _Superseded:
            return self._finish(run, FailureReason.SUPERSEDED)
        except UserDeclinedError as exc:
            # surfaced verbatim
            return self._finish(run, FailureReason.USER_DECLINED, str(exc) or None)
        except ResolutionExhaustedError as exc:
            self._logger.info("saga %s: %s", run.saga_id[:8], exc)
            return self._finish(run, FailureReason.RESOLUTION_EXHAUSTED)
        except asyncio.CancelledError:
            self._release(run)
            if run.state != SagaState.FAILED:
                self._transition(run, SagaState.FAILED)
            if self._runs.get(run.key) is run:
                del self._runs[run.key]
            raise
        except Exception as exc:
            self._logger.warning("saga %s failed (%s): %s", run.saga_id[:8], failure_reason.value, exc)
            return self._finish(run, failure_reason)
        finally:
            if run.pending_authorization is not None and locks:
                self._settle_then_release(run.pending_authorization, locks)
            else:
                self._release_locks(locks)

    # ---------- allowance locks ----------

    async def _acquire_allowance_locks(self, run: SagaRun, legs: List[AuthorizationLeg]) -> List[asyncio.Lock]:
        """
        Lock every (actor, asset, spender) the saga approves, in sorted order so that
        two multi-leg sagas cannot deadlock. A supersede while waiting gives up.
        """
        keys = sorted({(run.key[0], leg.asset_id.lower(), leg.spender_id.lower()) for leg in legs})
        held: List[asyncio.Lock] = []
        try:
            for key in keys:
                lock = self._allowance_locks.setdefault(key, asyncio.Lock())
                acquire = asyncio.ensure_future(lock.acquire())
                stop = asyncio.ensure_future(run.superseded.wait())
                try:
                    await asyncio.wait({acquire, stop}, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    for t in (acquire, stop):
                        if not t.done():
                            t.cancel()
                    if acquire.done() and not acquire.cancelled():
                        held.append(lock)
                self._raise_if_superseded(run)
        except BaseException:
            self._release_locks(held)
            raise
        return held

    @staticmethod
    def _release_locks(locks: List[asyncio.Lock]) -> None:
        for lock in reversed(locks):
            if lock.locked():
                lock.release()

    def _settle_then_release(self, handle: TxHandle, locks: List[asyncio.Lock]) -> None:
        """The saga is gone but its approve is still in flight; unlock once it lands."""

        async def _wait():
            try:
                await self._await_confirmation(handle)
            except Exception as exc:
                self._logger.warning("Abandoned approve %s did not settle: %s", handle.tx_hash, exc)

        def _done(task: asyncio.Task) -> None:
            # runs exactly once, also when cancelled before starting
            self._settling.discard(task)
            self._release_locks(locks)

        task = asyncio.create_task(_wait())
        self._settling.add(task)
        task.add_done_callback(_done)

    async def _commit(self, intent: OperationIntent, confirmation: ConfirmationResult) -> Optional[Dict[str, int]]:
        """
        Local bookkeeping for a confirmed operation. The operation is final on-chain,
        so a local write failure is logged, not turned into a saga failure.
        """
        try:
            if intent.operation_kind == OperationKind.CREATE_POOL:
                await self._record_pool(intent, confirmation)

            delta = shadow_delta(intent, self._categories)
            if delta is None:
                if intent.operation_kind in (OperationKind.DEPOSIT, OperationKind.WITHDRAW):
                    self._logger.info("Asset %s has no shadow category; nothing mirrored", intent.asset_id)
                return None
            category, signed = delta
            if signed >= 0:
                await self._ledger.credit(category, signed)
            else:
                await self._ledger.debit(category, -signed)
            return {category: signed}
        except Exception as exc:
            self._logger.exception("Confirmed %s could not be committed locally: %s", intent.operation_kind.value, exc)
            return None

    async def _record_pool(self, intent: OperationIntent, confirmation: ConfirmationResult) -> None:
        pool_id = confirmation.created_resource_id
        if not pool_id:
            pool_id = await self._gateway.read_resource_identity(
                make_pair_key(intent.asset_id, intent.auxiliary_asset_id)
            )
        if not pool_id:
            self._logger.warning(
                "Pool creation confirmed for %s/%s but no pool id found",
                intent.asset_id, intent.auxiliary_asset_id,
            )
            return
        await self._resolver.record_creation(intent.asset_id, intent.auxiliary_asset_id, str(pool_id))

    def _release(self, run: SagaRun) -> None:
        """Drop this saga's parked intent, never a newer saga's."""
        if not run.parked:
            return
        slot = self._intents.peek(run.key)
        if slot is not None and slot.saga_id == run.saga_id:
            self._intents.clear(run.key)

    def _finish(
        self,
        run: SagaRun,
        reason: Optional[FailureReason],
        message: Optional[str] = None,
        shadow: Optional[Dict[str, int]] = None,
    ) -> SagaOutcome:
        if run.superseded.is_set():
            reason = FailureReason.SUPERSEDED
            message = None
        if reason is not None:
            self._release(run)
            if run.state != SagaState.FAILED:
                self._transition(run, SagaState.FAILED)

        outcome = SagaOutcome(
            saga_id=run.saga_id,
            actor_id=run.key[0],
            operation_kind=run.key[1],
            state=SagaState.FAILED if reason is not None else SagaState.OPERATION_CONFIRMED,
            reason=reason,
            message=message or (FAILURE_MESSAGES[reason] if reason is not None else ""),
            authorization_tx_hashes=list(run.authorization_tx_hashes),
            operation_tx_hash=run.operation_tx_hash,
            shadow_delta=shadow,
        )
        self._outcomes.append(outcome)

        # report, then rest in Idle
        if self._runs.get(run.key) is run:
            del self._runs[run.key]
        self._logger.info(
            "saga %s %s/%s finished: %s%s",
            run.saga_id[:8], run.key[0], run.key[1].value, outcome.state.value,
            f" ({reason.value})" if reason is not None else "",
        )
        return outcome
