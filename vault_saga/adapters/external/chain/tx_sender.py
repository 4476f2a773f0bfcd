from typing import Optional, Literal
from decimal import Decimal
from web3 import Web3
from web3.contract.contract import ContractFunction
from eth_account import Account

from ....core.domain.exceptions import (
    SigningDisabledError,
    TransactionBudgetExceededError,
)

GasStrategy = Literal["default", "buffered", "aggressive"]


class TxSender:
    """
    Builds, signs and broadcasts contract calls with the configured key.

    Responsibilities:
    - Apply gas padding strategy.
    - Enforce optional gas cost budget in USD (refuse to sign above it).
    - Refuse to sign at all in read-only mode or without a key.
    - Return the tx hash right after broadcast; waiting is a separate call.

    Blocking (web3 HTTPProvider); callers on the event loop go through asyncio.to_thread.
    """

    def __init__(
        self,
        w3: Web3,
        private_key: str,
        *,
        read_only: bool = False,
        gas_strategy: GasStrategy = "buffered",
        max_gas_usd: Optional[float] = None,
        eth_usd_hint: Optional[float] = None,
    ):
        self.w3 = w3
        self.read_only = read_only
        self.pk = private_key
        self.account = Account.from_key(private_key) if private_key else None
        self.gas_strategy = gas_strategy
        self.max_gas_usd = max_gas_usd
        self.eth_usd_hint = eth_usd_hint

    def sender_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    # ---------- internal helpers ----------

    def _ensure_can_sign(self) -> None:
        if self.read_only:
            raise SigningDisabledError("Signing refused: READ_ONLY_MODE is on")
        if self.account is None:
            raise SigningDisabledError("Signing refused: no PRIVATE_KEY configured")

    def _next_nonce(self) -> int:
        return self.w3.eth.get_transaction_count(self.account.address, "pending")

    def _estimate_with_strategy(self, tx: dict) -> int:
        """
        Calls estimateGas(tx) and applies a safety buffer depending on strategy.
        Falls back to a static 300k if node estimation fails.
        """
        try:
            base_estimate = int(self.w3.eth.estimate_gas(tx))
        except Exception:
            base_estimate = 300_000

        if self.gas_strategy == "buffered":
            return int(base_estimate * 1.25) + 10_000
        if self.gas_strategy == "aggressive":
            return int(base_estimate * 1.5) + 25_000
        return base_estimate

    def _check_budget(self, gas_limit: int, gas_price_wei: int) -> None:
        """
        upper bound cost in ETH = gas_limit * gas_price_wei / 1e18, priced with eth_usd_hint.
        """
        if self.max_gas_usd is None:
            return
        if self.eth_usd_hint is None or self.eth_usd_hint <= 0:
            # budget without a price is a config error; refuse rather than guess
            raise TransactionBudgetExceededError(
                est_gas_limit=gas_limit,
                gas_price_wei=gas_price_wei,
                eth_usd=0.0,
                usd_estimated=0.0,
                usd_budget=float(self.max_gas_usd),
            )
        gas_cost_eth = (Decimal(gas_limit) * Decimal(gas_price_wei)) / Decimal(10**18)
        gas_cost_usd = float(gas_cost_eth * Decimal(self.eth_usd_hint))
        if gas_cost_usd > float(self.max_gas_usd):
            raise TransactionBudgetExceededError(
                est_gas_limit=gas_limit,
                gas_price_wei=gas_price_wei,
                eth_usd=float(self.eth_usd_hint),
                usd_estimated=gas_cost_usd,
                usd_budget=float(self.max_gas_usd),
            )

    # ---------- public API ----------

    def send(self, fn: ContractFunction) -> str:
        """
        Sign and broadcast; returns "0x..." tx hash. Nothing is broadcast if this raises.
        """
        self._ensure_can_sign()

        tx = fn.build_transaction({
            "from": self.account.address,
            "nonce": self._next_nonce(),
            "value": 0,
        })
        tx["gas"] = self._estimate_with_strategy(tx)
        if "maxFeePerGas" not in tx and "gasPrice" not in tx:
            tx["gasPrice"] = self.w3.eth.gas_price
        gas_price_wei = int(tx.get("gasPrice", tx.get("maxFeePerGas", 0)))

        self._check_budget(int(tx["gas"]), gas_price_wei)

        signed = self.w3.eth.account.sign_transaction(tx, self.pk)
        txh = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(txh)

    def wait_receipt(self, tx_hash: str, timeout: float = 120.0) -> dict:
        rcpt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        return dict(rcpt)
