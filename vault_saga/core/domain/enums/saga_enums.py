# vault_saga/core/domain/enums/saga_enums.py

from enum import Enum


class OperationKind(str, Enum):
    """
    Dependent operations a saga can drive against the lending pool / swap engine.
    """
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CREATE_LOAN = "createLoan"
    REPAY_LOAN = "repayLoan"
    SWAP = "swap"
    CREATE_POOL = "createPool"


class SagaState(str, Enum):
    """
    Lifecycle of one saga instance, keyed by (actor_id, operation_kind).
    IDLE is both the initial and the resting state after an outcome is reported.
    """
    IDLE = "Idle"
    CHECKING_ALLOWANCE = "CheckingAllowance"
    AWAITING_AUTHORIZATION = "AwaitingAuthorization"
    AUTHORIZATION_CONFIRMED = "AuthorizationConfirmed"
    AWAITING_OPERATION = "AwaitingOperation"
    OPERATION_CONFIRMED = "OperationConfirmed"
    FAILED = "Failed"


# a new trigger may replace the active saga only while these hold
SUPERSEDABLE_STATES = frozenset({SagaState.CHECKING_ALLOWANCE, SagaState.AWAITING_AUTHORIZATION})

AWAITING_STATES = frozenset({SagaState.AWAITING_AUTHORIZATION, SagaState.AWAITING_OPERATION})


class FailureReason(str, Enum):
    USER_DECLINED = "user_declined"
    AUTHORIZATION_FAILED = "authorization_failed"
    OPERATION_FAILED = "operation_failed"
    SUPERSEDED = "superseded"
    RESOLUTION_EXHAUSTED = "resolution_exhausted"


FAILURE_MESSAGES = {
    FailureReason.USER_DECLINED: "Signature request was declined.",
    FailureReason.AUTHORIZATION_FAILED: "Token approval failed; the operation was not attempted.",
    FailureReason.OPERATION_FAILED: "The operation failed on-chain. Your approval is still in place, so retrying will not ask for it again.",
    FailureReason.SUPERSEDED: "Replaced by a newer request.",
    FailureReason.RESOLUTION_EXHAUSTED: "No resource exists for this pair.",
}


class ResolutionSource(str, Enum):
    """
    Where a ResourceIdentity came from, in strict priority order.
    """
    AUTHORITATIVE = "authoritative"
    CACHE = "cache"
    FALLBACK_CONSTANT = "fallbackConstant"


class TxStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


class TxKind(str, Enum):
    AUTHORIZATION = "authorization"
    OPERATION = "operation"
