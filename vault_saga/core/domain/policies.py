"""
Policy helpers shared by the saga driver and the ledger gateway:
which approvals an operation needs, what it does to the shadow ledger,
and the call parameters it is submitted with.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .entities.operation_intent import AuthorizationLeg, OperationIntent
from .enums.saga_enums import OperationKind

_LENDING_KINDS = {
    OperationKind.DEPOSIT,
    OperationKind.WITHDRAW,
    OperationKind.CREATE_LOAN,
    OperationKind.REPAY_LOAN,
}


@dataclass(frozen=True)
class Spenders:
    lending_pool: str
    swap_engine: str

    def for_kind(self, kind: OperationKind) -> str:
        return self.lending_pool if kind in _LENDING_KINDS else self.swap_engine


def authorization_legs(intent: OperationIntent, spenders: Spenders) -> List[AuthorizationLeg]:
    """
    Approvals the operation depends on, in the order they are requested.
    withdraw pulls funds out and needs none; createPool needs both sides.
    """
    kind = intent.operation_kind
    spender = spenders.for_kind(kind).lower()

    if kind == OperationKind.WITHDRAW:
        return []
    legs = [AuthorizationLeg(asset_id=intent.asset_id, spender_id=spender, required_amount=intent.amount)]
    if kind == OperationKind.CREATE_POOL:
        legs.append(AuthorizationLeg(
            asset_id=intent.auxiliary_asset_id,
            spender_id=spender,
            required_amount=int(intent.auxiliary_amount or 0),
        ))
    return legs


def shadow_delta(intent: OperationIntent, categories: Mapping[str, str]) -> Optional[Tuple[str, int]]:
    """
    (category_key, signed amount) the confirmed operation moves, or None.
    Only lending deposits/withdrawals of a categorized asset are mirrored.
    """
    if intent.operation_kind not in (OperationKind.DEPOSIT, OperationKind.WITHDRAW):
        return None
    category = categories.get(intent.asset_id.lower())
    if not category:
        return None
    sign = 1 if intent.operation_kind == OperationKind.DEPOSIT else -1
    return category, sign * intent.amount


def operation_params(
    intent: OperationIntent,
    *,
    resource_id: Optional[str] = None,
    default_max_slippage_bps: int = 50,
    default_fee_rate_bps: int = 30,
) -> Dict[str, Any]:
    """
    Flat call parameters for submitOperation(kind, params).
    Amounts stay raw ints; the gateway maps them to the ABI.
    """
    kind = intent.operation_kind
    if kind in (OperationKind.DEPOSIT, OperationKind.WITHDRAW):
        return {"asset": intent.asset_id, "amount": intent.amount}
    if kind == OperationKind.CREATE_LOAN:
        return {
            "collateral_token": intent.asset_id,
            "borrow_token": intent.auxiliary_asset_id,
            "collateral_amount": intent.amount,
            "borrow_amount": int(intent.auxiliary_amount or 0),
        }
    if kind == OperationKind.REPAY_LOAN:
        return {"loan_id": int(intent.reference_id or 0), "amount": intent.amount}
    if kind == OperationKind.SWAP:
        if resource_id is None:
            raise ValueError("swap needs a resolved pool id")
        return {
            "pool_id": resource_id,
            "token_in": intent.asset_id,
            "amount_in": intent.amount,
            # no quote -> user accepts any amount
            "min_amount_out": int(intent.min_amount_out or 0),
            "max_slippage_bps": (
                intent.max_slippage_bps if intent.max_slippage_bps is not None else default_max_slippage_bps
            ),
        }
    if kind == OperationKind.CREATE_POOL:
        return {
            "token_a": intent.asset_id,
            "token_b": intent.auxiliary_asset_id,
            "amount_a": intent.amount,
            "amount_b": int(intent.auxiliary_amount or 0),
            "fee_rate_bps": intent.fee_rate_bps if intent.fee_rate_bps is not None else default_fee_rate_bps,
        }
    raise ValueError(f"unsupported operation kind: {kind}")
