# vault_saga/core/domain/entities/operation_intent.py

from datetime import datetime, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from ..enums.saga_enums import OperationKind, TxKind

IntentKey = Tuple[str, OperationKind]

_NEEDS_AUX_ASSET = {OperationKind.CREATE_LOAN, OperationKind.SWAP, OperationKind.CREATE_POOL}
_NEEDS_AUX_AMOUNT = {OperationKind.CREATE_LOAN, OperationKind.CREATE_POOL}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationIntent(BaseModel):
    """
    Parameters of one operation a user asked for, held across the gap between
    "authorization requested" and "authorization confirmed".

    Amounts are raw token units (uint256), never floats.
    auxiliary_* carries the second asset of the operation:
      - createLoan: asset_id is the collateral, auxiliary_asset_id the borrowed token
      - createPool: auxiliary_asset_id is the counter-asset
      - swap: auxiliary_asset_id is the token out
    """

    actor_id: str
    asset_id: str
    amount: int = Field(..., ge=0)
    operation_kind: OperationKind
    auxiliary_asset_id: Optional[str] = None
    auxiliary_amount: Optional[int] = Field(default=None, ge=0)
    reference_id: Optional[int] = Field(default=None, ge=0)   # loan id for repayLoan
    min_amount_out: Optional[int] = Field(default=None, ge=0)
    max_slippage_bps: Optional[int] = Field(default=None, ge=0, le=10_000)
    fee_rate_bps: Optional[int] = Field(default=None, ge=0, le=10_000)
    saga_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("actor_id", "asset_id", "auxiliary_asset_id")
    @classmethod
    def lower_address(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v

    @model_validator(mode="after")
    def check_kind_params(self):
        kind = self.operation_kind
        if kind in _NEEDS_AUX_ASSET:
            if not self.auxiliary_asset_id:
                raise ValueError(f"{kind.value} requires auxiliary_asset_id")
            if self.auxiliary_asset_id == self.asset_id:
                raise ValueError("auxiliary_asset_id must differ from asset_id")
        if kind in _NEEDS_AUX_AMOUNT and self.auxiliary_amount is None:
            raise ValueError(f"{kind.value} requires auxiliary_amount")
        if kind == OperationKind.REPAY_LOAN and self.reference_id is None:
            raise ValueError("repayLoan requires reference_id (loan id)")
        return self

    @property
    def key(self) -> IntentKey:
        return (self.actor_id, self.operation_kind)


class AuthorizationLeg(BaseModel):
    """One (asset, spender, amount) approval an operation depends on."""
    asset_id: str
    spender_id: str
    required_amount: int = Field(..., ge=0)


class AllowanceRecord(BaseModel):
    asset_id: str
    owner_id: str
    spender_id: str
    granted_amount: int
    required_amount: int


class TxHandle(BaseModel):
    tx_hash: str
    kind: TxKind
    submitted_at: datetime = Field(default_factory=_utcnow)


class AllowanceCheck(BaseModel):
    sufficient: bool
    record: Optional[AllowanceRecord] = None
    handle: Optional[TxHandle] = None
