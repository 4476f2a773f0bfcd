import logging

import pytest

from vault_saga.core.services.session_state_service import SessionStateService
from vault_saga.core.services.shadow_ledger_service import ShadowLedgerService


@pytest.mark.asyncio
async def test_credit_debit_and_aggregate(shadow_ledger):
    await shadow_ledger.credit("gold", 500)
    await shadow_ledger.credit("real_estate", 300)
    await shadow_ledger.debit("gold", 200)

    assert shadow_ledger.total_of("gold") == 300
    assert shadow_ledger.totals() == {"gold": 300, "real_estate": 300}
    assert shadow_ledger.aggregate() == 600


@pytest.mark.asyncio
async def test_debit_clamps_at_zero_with_warning(shadow_ledger, caplog):
    await shadow_ledger.credit("gold", 100)

    with caplog.at_level(logging.WARNING):
        total = await shadow_ledger.debit("gold", 250)

    assert total == 0
    assert shadow_ledger.total_of("gold") == 0
    assert "drift" in caplog.text


@pytest.mark.asyncio
async def test_every_write_is_persisted_and_reloadable(shadow_ledger, store):
    big = 10**30
    await shadow_ledger.credit("gold", big)
    assert store.saves == 1

    reloaded = SessionStateService(store, "test")
    await reloaded.load()

    assert ShadowLedgerService(reloaded).total_of("gold") == big
    # uint256-sized amounts are stored as text
    assert store.records["vault-saga:test"]["shadow_ledger"][0]["cumulative_amount"] == str(big)


@pytest.mark.asyncio
async def test_negative_amounts_are_rejected(shadow_ledger):
    with pytest.raises(ValueError):
        await shadow_ledger.credit("gold", -1)
    with pytest.raises(ValueError):
        await shadow_ledger.debit("gold", -1)
