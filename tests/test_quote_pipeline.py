import asyncio

import pytest

from vault_saga.core.services.quote_pipeline_service import QuotePipelineService
from conftest import ESTATE, GOLD, LEGACY_POOL_ID, SILVER

ONE = 10**18


@pytest.fixture
def pipeline(gateway, resolver):
    return QuotePipelineService(gateway, resolver, quiet_period_sec=0.2)


def test_parse_amount(pipeline):
    assert pipeline.parse_amount("1.5") == 15 * 10**17
    assert pipeline.parse_amount(" 2 ") == 2 * ONE
    assert pipeline.parse_amount("") is None
    assert pipeline.parse_amount("abc") is None
    assert pipeline.parse_amount("0") is None
    assert pipeline.parse_amount("-1") is None
    assert pipeline.parse_amount("1e-30") is None

    for text in ["Infinity", "-Infinity", "NaN", "sNaN", "1e999999999"]:
        assert pipeline.parse_amount(text) is None

    top = str(2**256 - 1)
    assert pipeline.parse_amount(top[:-18] + "." + top[-18:]) == 2**256 - 1
    above = str(2**256)
    assert pipeline.parse_amount(above[:-18] + "." + above[-18:]) is None


@pytest.mark.asyncio
async def test_burst_of_inputs_issues_one_query_for_the_last(pipeline, gateway):
    for value in ["1", "12", "123"]:
        pipeline.push(GOLD, SILVER, value)
        await asyncio.sleep(0.02)
    await pipeline.drain()

    assert pipeline.queries_issued == 1
    assert gateway.quote_calls == [(LEGACY_POOL_ID, GOLD, 123 * ONE)]
    latest = pipeline.latest_quote()
    assert latest.input.raw_value == "123"
    assert latest.amount_out == 246 * ONE


@pytest.mark.asyncio
async def test_late_result_is_tagged_and_not_adopted(gateway, resolver):
    gateway.quote_delay = 0.1
    pipeline = QuotePipelineService(gateway, resolver, quiet_period_sec=0.05)

    async def typed():
        yield "1"
        await asyncio.sleep(0.08)
        yield "2"

    results = [r async for r in pipeline.observe(typed(), GOLD, SILVER)]

    assert [r.input.raw_value for r in results] == ["1", "2"]
    assert not pipeline.is_current(results[0])
    assert pipeline.is_current(results[1])
    assert pipeline.latest_quote().input.raw_value == "2"


@pytest.mark.asyncio
async def test_invalid_input_supersedes_without_querying(pipeline, gateway):
    pipeline.push(GOLD, SILVER, "5")
    await asyncio.sleep(0.02)
    pipeline.push(GOLD, SILVER, "")
    await pipeline.drain()

    assert pipeline.queries_issued == 0
    assert gateway.quote_calls == []
    assert pipeline.latest_quote() is None


@pytest.mark.asyncio
async def test_non_finite_input_supersedes_without_querying(pipeline, gateway):
    pipeline.push(GOLD, SILVER, "5")
    await asyncio.sleep(0.02)
    inp = pipeline.push(GOLD, SILVER, "Infinity")
    await pipeline.drain()

    assert inp.amount is None
    assert pipeline.queries_issued == 0
    assert gateway.quote_calls == []
    assert pipeline.latest_quote() is None


@pytest.mark.asyncio
async def test_unknown_pair_yields_exhausted_message(pipeline):
    pipeline.push(GOLD, ESTATE, "1")
    await pipeline.drain()

    latest = pipeline.latest_quote()
    assert latest.amount_out is None
    assert latest.error == "No resource exists for this pair."


@pytest.mark.asyncio
async def test_close_drops_pending_timer(pipeline, gateway):
    pipeline.push(GOLD, SILVER, "1")
    await pipeline.close()

    assert pipeline.queries_issued == 0
    assert gateway.quote_calls == []
