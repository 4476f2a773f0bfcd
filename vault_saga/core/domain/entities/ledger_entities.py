# vault_saga/core/domain/entities/ledger_entities.py

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_serializer, field_validator

from ..enums.saga_enums import (
    FailureReason,
    OperationKind,
    ResolutionSource,
    SagaState,
    TxStatus,
)

PairKey = Tuple[str, str]

SESSION_RECORD_VERSION = 1


def make_pair_key(asset_a: str, asset_b: str) -> PairKey:
    """
    Unordered pair -> canonical (sorted, lower-cased) tuple.
    (A, B) and (B, A) produce the same key.
    """
    a, b = asset_a.lower(), asset_b.lower()
    if a == b:
        raise ValueError("a pair needs two distinct assets")
    return (a, b) if a < b else (b, a)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConfirmationResult(BaseModel):
    """
    What awaitConfirmation resolves with.
    created_resource_id is filled by the gateway when the receipt announces a new pool.
    """
    status: TxStatus
    receipt: Dict[str, Any] = Field(default_factory=dict)
    created_resource_id: Optional[str] = None


class ResourceIdentity(BaseModel):
    pair_key: PairKey
    id: str
    source: ResolutionSource
    resolved_at: datetime = Field(default_factory=_utcnow)


class ShadowLedgerEntry(BaseModel):
    category_key: str
    cumulative_amount: int = Field(..., ge=0)

    # BSON has no uint256; persist as decimal text
    @field_serializer("cumulative_amount")
    def _amount_to_str(self, v: int) -> str:
        return str(v)


class ResolverCacheEntry(BaseModel):
    pair_key: PairKey
    id: str

    @field_validator("pair_key", mode="before")
    @classmethod
    def canonical_pair(cls, v):
        a, b = v
        return make_pair_key(a, b)


class SessionRecord(BaseModel):
    """
    The one persisted document per session: resolver cache + shadow ledger.
    Stored under "<APP_KEY>:<session_id>".
    """
    version: int = SESSION_RECORD_VERSION
    session_id: str
    resolver_cache: List[ResolverCacheEntry] = Field(default_factory=list)
    shadow_ledger: List[ShadowLedgerEntry] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utcnow)


class QuoteInput(BaseModel):
    seq: int
    asset_in: str
    asset_out: str
    raw_value: str
    amount: Optional[int] = None   # None when raw_value is empty / unparsable / <= 0


class QuoteResult(BaseModel):
    input: QuoteInput
    amount_out: Optional[int] = None
    resource_id: Optional[str] = None
    error: Optional[str] = None
    quoted_at: datetime = Field(default_factory=_utcnow)


class SagaOutcome(BaseModel):
    saga_id: str
    actor_id: str
    operation_kind: OperationKind
    state: SagaState                       # OPERATION_CONFIRMED or FAILED
    reason: Optional[FailureReason] = None
    message: str = ""
    authorization_tx_hashes: List[str] = Field(default_factory=list)
    operation_tx_hash: Optional[str] = None
    shadow_delta: Optional[Dict[str, int]] = None
    finished_at: datetime = Field(default_factory=_utcnow)

    @property
    def ok(self) -> bool:
        return self.state == SagaState.OPERATION_CONFIRMED
