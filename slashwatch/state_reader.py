"""
Slashwatch State Reader

Typed reads of the slashing contracts. Every multi-value read goes through
the Multicall3 aggregator, and per-round state is cached with the tiered
cache so that executed rounds are fetched from the chain exactly once.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Generic, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from eth_utils import to_checksum_address

from .cache import CacheStats, ImmutableAwareCache
from .constants import MAX_CACHED_ROUNDS, MULTICALL3_ADDRESS, ROUND_CACHE_TTL, ZERO_ADDRESS
from .contracts import Rollup, Slasher, TallySlashingProposer
from .logger import get_logger
from .multicall import Call, CallResult, MulticallAggregator, create_call
from .types import ChainPosition, ProtocolParameters, RoundRecord, SlashAction

logger = get_logger(__name__)

T = TypeVar("T")

Committees = Tuple[Tuple[str, ...], ...]


@dataclass(frozen=True)
class ContractAddresses:
    """Addresses of the contracts one network monitor reads."""
    tally_slashing_proposer: str
    slasher: str
    rollup: str
    multicall: str = MULTICALL3_ADDRESS

    @classmethod
    def from_config(cls, contracts) -> "ContractAddresses":
        return cls(
            tally_slashing_proposer=contracts.tally_slashing_proposer,
            slasher=contracts.slasher,
            rollup=contracts.rollup,
            multicall=contracts.multicall,
        )


@dataclass
class RoundBatch(Generic[T]):
    """
    Result of a batched per-round read.

    Attributes:
        values: Successful results keyed by round
        errors: Failures keyed by round
    """
    values: Dict[int, T] = field(default_factory=dict)
    errors: Dict[int, Exception] = field(default_factory=dict)

    def __contains__(self, round_number: int) -> bool:
        return round_number in self.values

    def __len__(self) -> int:
        return len(self.values)

    @property
    def ok(self) -> bool:
        return not self.errors


def _collect(rounds: Sequence[int], results: Sequence[CallResult]) -> RoundBatch:
    batch: RoundBatch = RoundBatch()
    for round_number, result in zip(rounds, results):
        if result.success:
            batch.values[round_number] = result.value
        else:
            batch.errors[round_number] = result.error
    return batch


def _to_committees(value) -> Committees:
    return tuple(tuple(committee) for committee in value)


def _to_actions(value) -> Tuple[SlashAction, ...]:
    return tuple(SlashAction(validator=v, amount=int(a)) for v, a in value)


class SlashingStateReader:
    """
    Reads protocol parameters, chain position and round state.

    Chain position and protocol parameters are never cached. Round records
    are cached: a record for an executed round lives forever, anything else
    for ``round_cache_ttl`` seconds.
    """

    def __init__(
        self,
        rpc,
        contracts: ContractAddresses,
        round_cache_ttl: float = ROUND_CACHE_TTL,
        max_cached_rounds: int = MAX_CACHED_ROUNDS,
        aggregator: Optional[MulticallAggregator] = None,
        clock=None,
    ):
        self.rpc = rpc
        self.contracts = contracts
        self.aggregator = aggregator or MulticallAggregator(rpc, contracts.multicall)
        self.round_cache_ttl = round_cache_ttl

        cache_kwargs = {"clock": clock} if clock is not None else {}
        self._round_cache: ImmutableAwareCache[int, RoundRecord] = ImmutableAwareCache(
            key_serializer=str,
            is_immutable=lambda record: record.is_executed,
            max_mutable_size=max_cached_rounds,
            **cache_kwargs,
        )

    # ------------------------------------------------------------------
    # Protocol and chain position
    # ------------------------------------------------------------------

    async def load_protocol_parameters(self, defaults: ProtocolParameters) -> ProtocolParameters:
        """
        Read all protocol constants in one batch.

        Raises:
            CallError: Any constant could not be read
            RPCError: The batch itself failed
        """
        tally = self.contracts.tally_slashing_proposer
        rollup = self.contracts.rollup
        calls = [
            create_call(tally, TallySlashingProposer.QUORUM),
            create_call(tally, TallySlashingProposer.ROUND_SIZE),
            create_call(tally, TallySlashingProposer.ROUND_SIZE_IN_EPOCHS),
            create_call(tally, TallySlashingProposer.EXECUTION_DELAY_IN_ROUNDS),
            create_call(tally, TallySlashingProposer.LIFETIME_IN_ROUNDS),
            create_call(tally, TallySlashingProposer.SLASH_OFFSET_IN_ROUNDS),
            create_call(tally, TallySlashingProposer.COMMITTEE_SIZE),
            create_call(rollup, Rollup.GET_SLOT_DURATION),
            create_call(rollup, Rollup.GET_EPOCH_DURATION),
        ]
        values = [r.unwrap() for r in await self.aggregator.aggregate(calls)]

        params = replace(
            defaults,
            quorum=int(values[0]),
            round_size=int(values[1]),
            round_size_in_epochs=int(values[2]),
            execution_delay_rounds=int(values[3]),
            lifetime_rounds=int(values[4]),
            slash_offset_rounds=int(values[5]),
            committee_size=int(values[6]),
            slot_duration=int(values[7]),
            epoch_duration=int(values[8]),
        )
        logger.info(
            f"Protocol parameters: quorum={params.quorum} round_size={params.round_size} "
            f"delay={params.execution_delay_rounds} lifetime={params.lifetime_rounds} "
            f"offset={params.slash_offset_rounds} slot={params.slot_duration}s"
        )
        return params

    async def get_chain_position(self) -> ChainPosition:
        """Read round, slot, epoch and the slashing toggle in one batch."""
        calls = [
            create_call(self.contracts.tally_slashing_proposer, TallySlashingProposer.GET_CURRENT_ROUND),
            create_call(self.contracts.rollup, Rollup.GET_CURRENT_SLOT),
            create_call(self.contracts.rollup, Rollup.GET_CURRENT_EPOCH),
            create_call(self.contracts.slasher, Slasher.IS_SLASHING_ENABLED),
            create_call(self.contracts.slasher, Slasher.SLASHING_DISABLED_UNTIL),
            create_call(self.contracts.slasher, Slasher.SLASHING_DISABLE_DURATION),
        ]
        values = [r.unwrap() for r in await self.aggregator.aggregate(calls)]
        return ChainPosition(
            current_round=int(values[0]),
            current_slot=int(values[1]),
            current_epoch=int(values[2]),
            is_slashing_enabled=bool(values[3]),
            slashing_disabled_until=int(values[4]),
            slashing_disable_duration=int(values[5]),
        )

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    def _round_call(self, round_number: int) -> Call:
        return create_call(self.contracts.tally_slashing_proposer, TallySlashingProposer.GET_ROUND, round_number)

    @staticmethod
    def _to_record(round_number: int, value) -> RoundRecord:
        is_executed, _ready, vote_count = value
        return RoundRecord(round=round_number, vote_count=int(vote_count), is_executed=bool(is_executed))

    async def get_round(self, round_number: int, skip_cache: bool = False) -> RoundRecord:
        """Read one round, cache-first unless ``skip_cache``."""
        if not skip_cache:
            cached = self._round_cache.get(round_number)
            if cached is not None:
                return cached

        results = await self.aggregator.aggregate([self._round_call(round_number)])
        record = self._to_record(round_number, results[0].unwrap())
        self._round_cache.set(round_number, record, self.round_cache_ttl)
        return record

    async def get_rounds(self, rounds: Iterable[int]) -> RoundBatch[RoundRecord]:
        """
        Read many rounds.

        Cached rounds are served locally; the remaining ones are fetched in a
        single batch. Failed rounds are reported in ``errors`` and not cached.
        """
        batch: RoundBatch[RoundRecord] = RoundBatch()
        missing: List[int] = []
        for round_number in dict.fromkeys(rounds):
            cached = self._round_cache.get(round_number)
            if cached is not None:
                batch.values[round_number] = cached
            else:
                missing.append(round_number)

        if not missing:
            return batch
        cached_count = len(batch.values)

        results = await self.aggregator.aggregate([self._round_call(r) for r in missing])
        for round_number, result in zip(missing, results):
            if not result.success:
                batch.errors[round_number] = result.error
                continue
            record = self._to_record(round_number, result.value)
            self._round_cache.set(round_number, record, self.round_cache_ttl)
            batch.values[round_number] = record

        logger.debug(f"Rounds: {cached_count} cached, {len(missing)} fetched, {len(batch.errors)} failed")
        return batch

    # ------------------------------------------------------------------
    # Detail stages
    # ------------------------------------------------------------------

    async def get_committees(self, round_number: int) -> Committees:
        batch = await self.batch_get_committees([round_number])
        if round_number in batch.errors:
            raise batch.errors[round_number]
        return batch.values[round_number]

    async def batch_get_committees(self, rounds: Sequence[int]) -> RoundBatch[Committees]:
        """Read the target committees of each round in one batch."""
        rounds = list(rounds)
        calls = [
            create_call(self.contracts.tally_slashing_proposer, TallySlashingProposer.GET_SLASH_TARGET_COMMITTEES, r)
            for r in rounds
        ]
        batch = _collect(rounds, await self.aggregator.aggregate(calls))
        batch.values = {r: _to_committees(v) for r, v in batch.values.items()}
        return batch

    async def get_tally(self, round_number: int, committees: Committees) -> Tuple[SlashAction, ...]:
        batch = await self.batch_get_tally({round_number: committees})
        if round_number in batch.errors:
            raise batch.errors[round_number]
        return batch.values[round_number]

    async def batch_get_tally(self, requests: Mapping[int, Committees]) -> RoundBatch[Tuple[SlashAction, ...]]:
        """Read the slash actions of each round, given its committees."""
        rounds = list(requests)
        calls = [
            create_call(
                self.contracts.tally_slashing_proposer,
                TallySlashingProposer.GET_TALLY,
                r, [list(c) for c in requests[r]],
            )
            for r in rounds
        ]
        batch = _collect(rounds, await self.aggregator.aggregate(calls))
        batch.values = {r: _to_actions(v) for r, v in batch.values.items()}
        return batch

    async def get_payload_address(self, round_number: int, actions: Sequence[SlashAction]) -> str:
        """Payload address for a tally. An empty tally has no payload."""
        if not actions:
            return ZERO_ADDRESS
        batch = await self.batch_get_payload_address({round_number: actions})
        if round_number in batch.errors:
            raise batch.errors[round_number]
        return batch.values[round_number]

    async def batch_get_payload_address(
        self, requests: Mapping[int, Sequence[SlashAction]]
    ) -> RoundBatch[str]:
        """
        Compute payload addresses in one batch.

        Rounds with an empty tally are skipped; they have no payload.
        """
        rounds = [r for r, actions in requests.items() if actions]
        calls = [
            create_call(
                self.contracts.tally_slashing_proposer,
                TallySlashingProposer.GET_PAYLOAD_ADDRESS,
                r, [a.as_abi() for a in requests[r]],
            )
            for r in rounds
        ]
        return _collect(rounds, await self.aggregator.aggregate(calls))

    async def is_payload_vetoed(self, payload_address: str) -> bool:
        results = await self.aggregator.aggregate([
            create_call(self.contracts.slasher, Slasher.VETOED_PAYLOADS, to_checksum_address(payload_address))
        ])
        return bool(results[0].unwrap())

    async def batch_is_payload_vetoed(self, requests: Mapping[int, str]) -> RoundBatch[bool]:
        """Read the veto flag of each round's payload in one batch."""
        rounds = list(requests)
        calls = [
            create_call(self.contracts.slasher, Slasher.VETOED_PAYLOADS, to_checksum_address(requests[r]))
            for r in rounds
        ]
        batch = _collect(rounds, await self.aggregator.aggregate(calls))
        batch.values = {r: bool(v) for r, v in batch.values.items()}
        return batch

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def get_cache_stats(self) -> CacheStats:
        return self._round_cache.stats()

    def clear_cache(self, round_number: Optional[int] = None) -> None:
        if round_number is None:
            self._round_cache.clear()
        else:
            self._round_cache.delete(round_number)
