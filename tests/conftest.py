"""
Shared fixtures: an in-memory model of the slashing contracts and an
aggregator that answers batches from it.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple
from unittest.mock import AsyncMock

import pytest
from eth_utils import to_checksum_address

from slashwatch.exceptions import CallFailedError, RPCTransportError
from slashwatch.multicall import CallResult
from slashwatch.state_reader import ContractAddresses, SlashingStateReader
from slashwatch.types import ChainPosition, ProtocolParameters


TALLY = to_checksum_address("0x" + "11" * 20)
SLASHER = to_checksum_address("0x" + "22" * 20)
ROLLUP = to_checksum_address("0x" + "33" * 20)


def validator(i: int) -> str:
    return to_checksum_address(f"0x{i:040x}")


def payload(round_number: int) -> str:
    return to_checksum_address(f"0x{0xabc000 + round_number:040x}")


def make_params(**overrides) -> ProtocolParameters:
    values = dict(
        round_size=192,
        round_size_in_epochs=6,
        execution_delay_rounds=28,
        lifetime_rounds=34,
        slash_offset_rounds=2,
        quorum=65,
        committee_size=48,
        slot_duration=36,
        epoch_duration=32,
    )
    values.update(overrides)
    return ProtocolParameters(**values)


def make_chain(current_round: int, current_slot: int = None, enabled: bool = True, round_size: int = 192) -> ChainPosition:
    if current_slot is None:
        current_slot = current_round * round_size
    return ChainPosition(
        current_round=current_round,
        current_slot=current_slot,
        current_epoch=current_slot // 32,
        is_slashing_enabled=enabled,
        slashing_disabled_until=0,
        slashing_disable_duration=259200,
    )


@dataclass
class FakeChain:
    """Contract state the fake aggregator answers from."""
    params: ProtocolParameters = field(default_factory=make_params)
    current_round: int = 0
    current_slot: int = 0
    current_epoch: int = 0
    slashing_enabled: bool = True
    disabled_until: int = 0
    disable_duration: int = 259200
    # round -> (is_executed, vote_count)
    rounds: Dict[int, Tuple[bool, int]] = field(default_factory=dict)
    # round -> [(validator, amount)]
    tallies: Dict[int, List[Tuple[str, int]]] = field(default_factory=dict)
    vetoed: Set[str] = field(default_factory=set)
    # (function name, first argument) pairs that revert; None matches any argument
    reverts: Set[Tuple[str, object]] = field(default_factory=set)

    def set_position(self, current_round: int, current_slot: int = None) -> None:
        self.current_round = current_round
        self.current_slot = current_round * self.params.round_size if current_slot is None else current_slot
        self.current_epoch = self.current_slot // self.params.epoch_duration

    def add_round(self, round_number: int, votes: int, executed: bool = False, slashes: int = 2) -> None:
        self.rounds[round_number] = (executed, votes)
        self.tallies[round_number] = [
            (validator(round_number * 100 + i), (i + 1) * 10 ** 18) for i in range(slashes)
        ]

    def committees(self, round_number: int) -> Tuple[Tuple[str, ...], ...]:
        return ((validator(round_number * 100), validator(round_number * 100 + 1)),)

    def answer(self, name: str, args: tuple):
        p = self.params
        constants = {
            'QUORUM': p.quorum,
            'ROUND_SIZE': p.round_size,
            'ROUND_SIZE_IN_EPOCHS': p.round_size_in_epochs,
            'EXECUTION_DELAY_IN_ROUNDS': p.execution_delay_rounds,
            'LIFETIME_IN_ROUNDS': p.lifetime_rounds,
            'SLASH_OFFSET_IN_ROUNDS': p.slash_offset_rounds,
            'COMMITTEE_SIZE': p.committee_size,
            'getSlotDuration': p.slot_duration,
            'getEpochDuration': p.epoch_duration,
            'getCurrentRound': self.current_round,
            'getCurrentSlot': self.current_slot,
            'getCurrentEpoch': self.current_epoch,
            'isSlashingEnabled': self.slashing_enabled,
            'slashingDisabledUntil': self.disabled_until,
            'SLASHING_DISABLE_DURATION': self.disable_duration,
        }
        if name in constants:
            return constants[name]
        if name == 'getRound':
            executed, votes = self.rounds.get(args[0], (False, 0))
            return (executed, False, votes)
        if name == 'getSlashTargetCommittees':
            return self.committees(args[0])
        if name == 'getTally':
            return tuple(self.tallies.get(args[0], []))
        if name == 'getPayloadAddress':
            return payload(args[0])
        if name == 'vetoedPayloads':
            return args[0] in self.vetoed
        raise KeyError(name)


class FakeAggregator:
    """Answers batches from a FakeChain, one round trip per non-empty batch."""

    def __init__(self, chain: FakeChain):
        self.chain = chain
        self.round_trips = 0
        self.batches: List[List[str]] = []
        self.fail_next = False

    async def aggregate(self, calls):
        if not calls:
            return []
        if self.fail_next:
            self.fail_next = False
            raise RPCTransportError("eth_call", ["http://rpc.invalid: ConnectError()"])
        self.round_trips += 1
        self.batches.append([c.function.name for c in calls])

        results = []
        for index, call in enumerate(calls):
            name = call.function.name
            first = call.args[0] if call.args else None
            if (name, first) in self.chain.reverts or (name, None) in self.chain.reverts:
                results.append(CallResult(False, error=CallFailedError(index, name)))
            else:
                results.append(CallResult(True, value=self.chain.answer(name, call.args)))
        return results


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def contracts():
    return ContractAddresses(tally_slashing_proposer=TALLY, slasher=SLASHER, rollup=ROLLUP)


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def aggregator(fake_chain):
    return FakeAggregator(fake_chain)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reader(contracts, aggregator, clock):
    rpc = AsyncMock()
    return SlashingStateReader(rpc, contracts, round_cache_ttl=30.0, max_cached_rounds=100, aggregator=aggregator, clock=clock)
