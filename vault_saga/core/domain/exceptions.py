from typing import Optional


class UserDeclinedError(Exception):
    """
    Raised when the signing side refuses to sign, BEFORE anything reaches the chain.
    Nothing was broadcast. The message is shown to the user as-is.
    """


class SigningDisabledError(UserDeclinedError):
    """
    Raised when this process cannot sign at all (READ_ONLY_MODE or no PRIVATE_KEY).
    """


class TransactionBudgetExceededError(UserDeclinedError):
    """
    Raised BEFORE broadcasting the tx if the predicted max gas cost
    (gas_limit * gas_price * eth_usd) is above caller's budget.
    This means: nothing was sent on-chain yet.
    """
    def __init__(self, est_gas_limit: int, gas_price_wei: int, eth_usd: float, usd_estimated: float, usd_budget: float):
        super().__init__(
            f"Gas budget exceeded: estimated ${usd_estimated:.2f} > budget ${usd_budget:.2f}"
        )
        self.est_gas_limit = est_gas_limit
        self.gas_price_wei = gas_price_wei
        self.eth_usd = eth_usd
        self.usd_estimated = usd_estimated
        self.usd_budget = usd_budget


class TransactionRevertedError(Exception):
    """
    Raised when the tx was actually sent on-chain, mined, and status == 0.
    You ALREADY paid gas, the chain executed and reverted.
    """
    def __init__(self, tx_hash: str, receipt: Optional[dict] = None, msg: str = "Transaction reverted (status=0)"):
        super().__init__(msg)
        self.tx_hash = tx_hash
        self.receipt = receipt or {}
        self.msg = msg


class ResolutionExhaustedError(LookupError):
    """
    No resource identity for a pair in any source, and no fallback applies.
    This is "nothing exists", not a remote error.
    """
    def __init__(self, pair_key: tuple):
        super().__init__(f"no resource exists for pair {pair_key[0]}/{pair_key[1]}")
        self.pair_key = pair_key


class SagaBusyError(RuntimeError):
    """
    A saga for the same (actor, operation) already has its operation in flight
    and can no longer be superseded.
    """
    def __init__(self, actor_id: str, operation_kind: str, state: str):
        super().__init__(f"saga {actor_id}/{operation_kind} is busy ({state})")
        self.actor_id = actor_id
        self.operation_kind = operation_kind
        self.state = state
