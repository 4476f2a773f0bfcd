import asyncio
import logging
from decimal import Decimal, InvalidOperation, localcontext
from typing import AsyncIterable, AsyncIterator, List, Optional, Set

from ..domain.entities.ledger_entities import QuoteInput, QuoteResult
from ..domain.enums.saga_enums import FAILURE_MESSAGES, FailureReason
from ..domain.exceptions import ResolutionExhaustedError
from ..repositories.ledger_gateway import LedgerGateway
from .resource_resolver_service import ResourceResolverService

_UINT256_MAX = 2**256 - 1
_UINT256_DIGITS = len(str(_UINT256_MAX))


class QuotePipelineService:
    """
    Debounced swap quotes for a rapidly changing amount field.

    - every push() restarts the quiet-period timer; a superseded value never queries.
    - when the timer elapses the value is quoted (pool via the resolver, then read_quote).
    - an in-flight query is never cancelled; each result carries the input (seq) that
      produced it, so late results for superseded inputs can be told apart.
    - latest_quote() only ever returns a result for the newest input.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        resolver: ResourceResolverService,
        quiet_period_sec: float = 2.0,
        token_decimals: int = 18,
        logger: Optional[logging.Logger] = None,
    ):
        self._gateway = gateway
        self._resolver = resolver
        self._quiet = float(quiet_period_sec)
        self._decimals = int(token_decimals)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._seq = 0
        self._latest_input: Optional[QuoteInput] = None
        self._latest_result: Optional[QuoteResult] = None
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._listeners: List[asyncio.Queue] = []
        self.queries_issued = 0

    # ---------- input ----------

    def parse_amount(self, raw_value: str) -> Optional[int]:
        """'1.5' -> 1.5 * 10**decimals raw units; None for empty/invalid/non-positive."""
        text = (raw_value or "").strip()
        if not text:
            return None
        try:
            value = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
        if not value.is_finite() or value <= 0:
            return None
        # uint256 has 78 digits; refuse before building a huge int
        if value.adjusted() + self._decimals >= _UINT256_DIGITS:
            return None
        try:
            with localcontext() as ctx:
                ctx.prec = _UINT256_DIGITS + self._decimals
                amount = int(value.scaleb(self._decimals))
        except (InvalidOperation, OverflowError, ValueError):
            return None
        return amount if 0 < amount <= _UINT256_MAX else None

    def push(self, asset_in: str, asset_out: str, raw_value: str) -> QuoteInput:
        amount = self.parse_amount(raw_value)
        self._seq += 1
        inp = QuoteInput(
            seq=self._seq,
            asset_in=asset_in.lower(),
            asset_out=asset_out.lower(),
            raw_value=raw_value,
            amount=amount,
        )
        self._latest_input = inp
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._after_quiet_period(inp))
        return inp

    async def _after_quiet_period(self, inp: QuoteInput) -> None:
        await asyncio.sleep(self._quiet)
        if inp.amount is None:
            self._logger.debug("Quote input #%s (%r) has no amount; not querying", inp.seq, inp.raw_value)
            return
        task = asyncio.create_task(self._query(inp))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    # ---------- query ----------

    async def _query(self, inp: QuoteInput) -> None:
        self.queries_issued += 1
        try:
            identity = await self._resolver.resolve(inp.asset_in, inp.asset_out)
        except ResolutionExhaustedError:
            self._publish(QuoteResult(input=inp, error=FAILURE_MESSAGES[FailureReason.RESOLUTION_EXHAUSTED]))
            return

        try:
            amount_out = await self._gateway.read_quote(identity.id, inp.asset_in, int(inp.amount))
        except Exception as exc:
            self._logger.warning("Quote #%s failed for pool %s: %s", inp.seq, identity.id, exc)
            self._publish(QuoteResult(input=inp, resource_id=identity.id, error=str(exc)))
            return

        self._publish(QuoteResult(input=inp, resource_id=identity.id, amount_out=int(amount_out)))

    def _publish(self, result: QuoteResult) -> None:
        if self.is_current(result):
            self._latest_result = result
        else:
            self._logger.debug("Late quote for superseded input #%s", result.input.seq)
        for q in self._listeners:
            q.put_nowait(result)

    # ---------- output ----------

    def is_current(self, result: QuoteResult) -> bool:
        return self._latest_input is not None and result.input.seq == self._latest_input.seq

    def latest_quote(self) -> Optional[QuoteResult]:
        if self._latest_result is not None and self.is_current(self._latest_result):
            return self._latest_result
        return None

    async def drain(self) -> None:
        """Wait until no timer is pending and no query is in flight."""
        while True:
            pending = [t for t in [self._timer, *self._inflight] if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def observe(self, inputs: AsyncIterable[str], asset_in: str, asset_out: str) -> AsyncIterator[QuoteResult]:
        """
        Feed raw input values and lazily yield the quote results they produce.
        Ends once the input stream is exhausted and the last quote has landed.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._listeners.append(queue)
        done = object()

        async def _pump():
            try:
                async for raw_value in inputs:
                    self.push(asset_in, asset_out, raw_value)
                await self.drain()
            finally:
                queue.put_nowait(done)

        pump = asyncio.create_task(_pump())
        try:
            while True:
                item = await queue.get()
                if item is done:
                    break
                yield item
            await pump
        finally:
            self._listeners.remove(queue)
            if not pump.done():
                pump.cancel()

    async def close(self) -> None:
        for t in [self._timer, *self._inflight]:
            if t is not None and not t.done():
                t.cancel()
        await self.drain()
