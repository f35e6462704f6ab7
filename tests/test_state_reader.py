"""
Slashwatch State Reader Tests
"""

import pytest

from slashwatch.constants import ZERO_ADDRESS
from slashwatch.exceptions import CallFailedError, RPCTransportError
from slashwatch.types import RoundRecord, SlashAction

from conftest import make_params, payload, validator


class TestProtocolAndPosition:

    @pytest.mark.asyncio
    async def test_load_protocol_parameters_in_one_batch(self, reader, fake_chain, aggregator):
        fake_chain.params = make_params(quorum=33, execution_delay_rounds=3, lifetime_rounds=5)
        defaults = make_params(quorum=999)

        params = await reader.load_protocol_parameters(defaults)

        assert params.quorum == 33
        assert params.execution_delay_rounds == 3
        assert params.lifetime_rounds == 5
        assert aggregator.round_trips == 1
        assert len(aggregator.batches[0]) == 9

    @pytest.mark.asyncio
    async def test_failed_parameter_raises(self, reader, fake_chain):
        fake_chain.reverts.add(('QUORUM', None))
        with pytest.raises(CallFailedError):
            await reader.load_protocol_parameters(make_params())

    @pytest.mark.asyncio
    async def test_chain_position_is_six_calls_never_cached(self, reader, fake_chain, aggregator):
        fake_chain.set_position(100)
        fake_chain.slashing_enabled = False

        first = await reader.get_chain_position()
        fake_chain.set_position(101)
        second = await reader.get_chain_position()

        assert first.current_round == 100
        assert first.is_slashing_enabled is False
        assert second.current_round == 101
        assert second.current_slot == 101 * 192
        assert aggregator.round_trips == 2
        assert len(aggregator.batches[0]) == 6


class TestRounds:

    @pytest.mark.asyncio
    async def test_get_round_is_cached(self, reader, fake_chain, aggregator):
        fake_chain.add_round(10, votes=5)

        assert await reader.get_round(10) == RoundRecord(10, 5, False)
        assert await reader.get_round(10) == RoundRecord(10, 5, False)
        assert aggregator.round_trips == 1

    @pytest.mark.asyncio
    async def test_skip_cache(self, reader, fake_chain, aggregator):
        fake_chain.add_round(10, votes=5)
        await reader.get_round(10)
        fake_chain.add_round(10, votes=6)

        assert (await reader.get_round(10, skip_cache=True)).vote_count == 6
        assert aggregator.round_trips == 2

    @pytest.mark.asyncio
    async def test_volatile_round_expires(self, reader, fake_chain, aggregator, clock):
        fake_chain.add_round(10, votes=5)
        await reader.get_round(10)
        clock.advance(31)
        fake_chain.add_round(10, votes=8)

        assert (await reader.get_round(10)).vote_count == 8

    @pytest.mark.asyncio
    async def test_executed_round_is_fetched_once(self, reader, fake_chain, aggregator, clock):
        fake_chain.add_round(10, votes=70, executed=True)
        await reader.get_round(10)
        clock.advance(10_000)

        assert (await reader.get_round(10)).is_executed
        assert aggregator.round_trips == 1
        assert reader.get_cache_stats().immutable_size == 1

    @pytest.mark.asyncio
    async def test_get_rounds_fetches_only_missing(self, reader, fake_chain, aggregator):
        for r in (1, 2, 3):
            fake_chain.add_round(r, votes=r)
        await reader.get_rounds([1, 2])

        batch = await reader.get_rounds([1, 2, 3])

        assert sorted(batch.values) == [1, 2, 3]
        assert batch.ok
        assert aggregator.batches[-1] == ['getRound']

    @pytest.mark.asyncio
    async def test_get_rounds_all_cached_makes_no_call(self, reader, fake_chain, aggregator):
        fake_chain.add_round(1, votes=1)
        await reader.get_rounds([1])
        await reader.get_rounds([1, 1])
        assert aggregator.round_trips == 1

    @pytest.mark.asyncio
    async def test_get_rounds_reports_errors_by_round(self, reader, fake_chain):
        fake_chain.add_round(1, votes=1)
        fake_chain.add_round(2, votes=2)
        fake_chain.reverts.add(('getRound', 2))

        batch = await reader.get_rounds([1, 2])

        assert 1 in batch
        assert 2 not in batch
        assert isinstance(batch.errors[2], CallFailedError)
        assert not batch.ok

    @pytest.mark.asyncio
    async def test_failed_round_is_not_cached(self, reader, fake_chain, aggregator):
        fake_chain.reverts.add(('getRound', 2))
        await reader.get_rounds([2])
        fake_chain.reverts.clear()
        fake_chain.add_round(2, votes=2)

        batch = await reader.get_rounds([2])
        assert batch.values[2].vote_count == 2

    @pytest.mark.asyncio
    async def test_whole_batch_failure_propagates(self, reader, aggregator):
        aggregator.fail_next = True
        with pytest.raises(RPCTransportError):
            await reader.get_rounds([1, 2])

    @pytest.mark.asyncio
    async def test_clear_cache_single_round(self, reader, fake_chain, aggregator):
        fake_chain.add_round(1, votes=1, executed=True)
        fake_chain.add_round(2, votes=1, executed=True)
        await reader.get_rounds([1, 2])

        reader.clear_cache(1)
        await reader.get_rounds([1, 2])

        assert aggregator.batches[-1] == ['getRound']
        reader.clear_cache()
        assert reader.get_cache_stats().total_size == 0


class TestDetailStages:

    @pytest.mark.asyncio
    async def test_committees_keyed_by_round(self, reader, fake_chain):
        batch = await reader.batch_get_committees([4, 5])
        assert batch.values[4] == fake_chain.committees(4)
        assert batch.values[5] == fake_chain.committees(5)

    @pytest.mark.asyncio
    async def test_tally_converts_to_slash_actions(self, reader, fake_chain):
        fake_chain.add_round(4, votes=70, slashes=2)

        actions = await reader.get_tally(4, fake_chain.committees(4))

        assert actions == (
            SlashAction(validator(400), 10 ** 18),
            SlashAction(validator(401), 2 * 10 ** 18),
        )

    @pytest.mark.asyncio
    async def test_payload_batch_skips_empty_tallies(self, reader, fake_chain, aggregator):
        actions = (SlashAction(validator(1), 5),)

        batch = await reader.batch_get_payload_address({4: actions, 5: ()})

        assert batch.values == {4: payload(4)}
        assert aggregator.batches[-1] == ['getPayloadAddress']

    @pytest.mark.asyncio
    async def test_empty_tally_payload_makes_no_call(self, reader, aggregator):
        assert await reader.get_payload_address(4, ()) == ZERO_ADDRESS
        assert aggregator.round_trips == 0

    @pytest.mark.asyncio
    async def test_veto_status(self, reader, fake_chain):
        fake_chain.vetoed.add(payload(4))

        batch = await reader.batch_is_payload_vetoed({4: payload(4), 5: payload(5)})

        assert batch.values == {4: True, 5: False}
        assert await reader.is_payload_vetoed(payload(4)) is True

    @pytest.mark.asyncio
    async def test_single_variant_raises_on_failure(self, reader, fake_chain):
        fake_chain.reverts.add(('getSlashTargetCommittees', 9))
        with pytest.raises(CallFailedError):
            await reader.get_committees(9)
