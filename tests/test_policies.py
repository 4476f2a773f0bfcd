import pytest
from pydantic import ValidationError

from vault_saga.core.domain.enums.saga_enums import OperationKind
from vault_saga.core.domain.policies import Spenders, authorization_legs, operation_params, shadow_delta
from conftest import CATEGORIES, ESTATE, GOLD, LENDING_POOL, SILVER, SWAP_ENGINE, make_intent

SPENDERS = Spenders(lending_pool=LENDING_POOL, swap_engine=SWAP_ENGINE)


def test_withdraw_needs_no_authorization():
    assert authorization_legs(make_intent(OperationKind.WITHDRAW), SPENDERS) == []


def test_create_pool_approves_both_sides_to_swap_engine():
    intent = make_intent(
        OperationKind.CREATE_POOL, amount=10, auxiliary_asset_id=SILVER, auxiliary_amount=20,
    )
    legs = authorization_legs(intent, SPENDERS)

    assert [(l.asset_id, l.spender_id, l.required_amount) for l in legs] == [
        (GOLD, SWAP_ENGINE, 10),
        (SILVER, SWAP_ENGINE, 20),
    ]


def test_loan_collateral_is_approved_to_lending_pool():
    intent = make_intent(OperationKind.CREATE_LOAN, amount=7, auxiliary_asset_id=ESTATE, auxiliary_amount=3)
    legs = authorization_legs(intent, SPENDERS)

    assert len(legs) == 1
    assert legs[0].spender_id == LENDING_POOL
    assert legs[0].asset_id == GOLD


def test_shadow_delta_signs_and_categories():
    assert shadow_delta(make_intent(OperationKind.DEPOSIT, amount=5), CATEGORIES) == ("gold", 5)
    assert shadow_delta(make_intent(OperationKind.WITHDRAW, amount=5), CATEGORIES) == ("gold", -5)
    assert shadow_delta(
        make_intent(OperationKind.SWAP, amount=5, auxiliary_asset_id=SILVER), CATEGORIES,
    ) is None


def test_unmapped_asset_has_no_shadow_delta():
    intent = make_intent(asset_id="0x00000000000000000000000000000000000000ff")
    assert shadow_delta(intent, CATEGORIES) is None


def test_swap_params_use_defaults_and_resolved_pool():
    intent = make_intent(OperationKind.SWAP, amount=100, auxiliary_asset_id=SILVER)

    params = operation_params(intent, resource_id="42", default_max_slippage_bps=75)

    assert params == {
        "pool_id": "42",
        "token_in": GOLD,
        "amount_in": 100,
        "min_amount_out": 0,
        "max_slippage_bps": 75,
    }


def test_swap_params_without_pool_fail():
    intent = make_intent(OperationKind.SWAP, auxiliary_asset_id=SILVER)
    with pytest.raises(ValueError):
        operation_params(intent)


def test_repay_params_carry_the_loan_id():
    intent = make_intent(OperationKind.REPAY_LOAN, amount=9, reference_id=3)
    assert operation_params(intent) == {"loan_id": 3, "amount": 9}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"operation_kind": OperationKind.SWAP},
        {"operation_kind": OperationKind.SWAP, "auxiliary_asset_id": GOLD},
        {"operation_kind": OperationKind.CREATE_POOL, "auxiliary_asset_id": SILVER},
        {"operation_kind": OperationKind.REPAY_LOAN},
        {"operation_kind": OperationKind.DEPOSIT, "amount": -1},
    ],
)
def test_intent_validation(kwargs):
    with pytest.raises(ValidationError):
        make_intent(**kwargs)


def test_intent_addresses_are_lowercased():
    intent = make_intent(actor_id="0xABCDEF0000000000000000000000000000000001")
    assert intent.actor_id == "0xabcdef0000000000000000000000000000000001"
