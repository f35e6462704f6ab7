"""
Slashwatch Slashing Detector

Turns raw round state into operator-facing detections.

Round lifecycle (R = round, C = current round, d = execution delay,
L = lifetime, executable slot = (R + 1 + d) * round_size):

    C - R <  d          voting / quorum-reached
    C - R == d          in-veto-window   (once the executable slot is reached)
    d < C - R <= L      executable       (once the executable slot is reached)
    C - R >  L          expired

``executed`` overrides everything. Until the observed slot reaches the
executable slot a round reports quorum-reached (or voting) even when the
round arithmetic says otherwise.
"""

import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .cache import CacheStats, ImmutableAwareCache
from .constants import DETAILS_CACHE_TTL, MAX_CACHED_ROUNDS, MAX_EXECUTED_ROUNDS_TO_SHOW, MAX_ROUNDS_TO_SCAN_FOR_HISTORY
from .exceptions import RPCError
from .logger import get_logger
from .pipeline import DetailPipeline, DetailRequest
from .types import (
    ACTIONABLE_STATUSES,
    ChainPosition,
    DetectedSlashing,
    ProtocolParameters,
    RoundDetail,
    RoundRecord,
    RoundStatus,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class CachedDetail:
    """Detail of a round together with the vote count it was built for."""
    vote_count: int
    is_executed: bool
    detail: RoundDetail


class SlashingDetector:
    """
    Detection engine for one network.

    Args:
        params: Protocol parameters loaded from the chain
        reader: SlashingStateReader for the network
        details_cache_ttl: Seconds a non-executed round's detail stays valid
        max_cached_details: Capacity of the detail cache TTL tier
        max_executed_rounds_to_show: Executed rounds retained as history
        max_rounds_to_scan_for_history: Look-back window for the history scan
        clock: Monotonic time source for the detail cache
    """

    def __init__(
        self,
        params: ProtocolParameters,
        reader,
        details_cache_ttl: float = DETAILS_CACHE_TTL,
        max_cached_details: int = MAX_CACHED_ROUNDS,
        max_executed_rounds_to_show: int = MAX_EXECUTED_ROUNDS_TO_SHOW,
        max_rounds_to_scan_for_history: int = MAX_ROUNDS_TO_SCAN_FOR_HISTORY,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.params = params
        self.reader = reader
        self.pipeline = DetailPipeline(reader)
        self.details_cache_ttl = details_cache_ttl
        self.max_executed_rounds_to_show = max_executed_rounds_to_show
        self.max_rounds_to_scan_for_history = max_rounds_to_scan_for_history

        self._details_cache: ImmutableAwareCache[int, CachedDetail] = ImmutableAwareCache(
            key_serializer=str,
            is_immutable=lambda entry: entry.is_executed,
            max_mutable_size=max_cached_details,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Pure round arithmetic
    # ------------------------------------------------------------------

    def calculate_round_status(
        self,
        round_number: int,
        current_round: int,
        current_slot: int,
        is_executed: bool,
        has_quorum: bool,
    ) -> RoundStatus:
        if is_executed:
            return RoundStatus.EXECUTED

        rounds_since_end = current_round - round_number
        delay = self.params.execution_delay_rounds
        lifetime = self.params.lifetime_rounds
        waiting = RoundStatus.QUORUM_REACHED if has_quorum else RoundStatus.VOTING

        if rounds_since_end > lifetime:
            return RoundStatus.EXPIRED

        slot_reached = current_slot >= self.calculate_executable_slot(round_number)
        if rounds_since_end > delay:
            return RoundStatus.EXECUTABLE if slot_reached else waiting
        if rounds_since_end == delay:
            return RoundStatus.IN_VETO_WINDOW if slot_reached else waiting
        return waiting

    def calculate_executable_slot(self, round_number: int) -> int:
        return (round_number + 1 + self.params.execution_delay_rounds) * self.params.round_size

    def calculate_expiry_slot(self, round_number: int) -> int:
        return (round_number + 1 + self.params.lifetime_rounds) * self.params.round_size

    def calculate_seconds_until_slot(self, target_slot: int, current_slot: int) -> int:
        if target_slot <= current_slot:
            return 0
        return (target_slot - current_slot) * self.params.slot_duration

    def get_target_epochs(self, round_number: int) -> Tuple[int, ...]:
        """Epochs whose offenses round ``round_number`` votes on."""
        size = self.params.round_size_in_epochs
        start = (round_number - self.params.slash_offset_rounds) * size
        return tuple(range(start, start + size))

    @staticmethod
    def is_voting_open(round_number: int, current_round: int) -> bool:
        """Votes for a round are only accepted while it is the current round."""
        return round_number == current_round

    @staticmethod
    def needs_detail(status: RoundStatus, has_quorum: bool) -> bool:
        if status == RoundStatus.EXECUTED:
            return True
        return has_quorum and status in ACTIONABLE_STATUSES

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    def observation_window(self, current_round: int) -> List[int]:
        """Early-warning zone followed by the active execution zone, newest first."""
        delay = self.params.execution_delay_rounds
        lifetime = self.params.lifetime_rounds
        early = range(current_round, current_round - delay, -1)
        active = range(current_round - delay, current_round - lifetime - 1, -1)
        return [r for r in dict.fromkeys([*early, *active]) if r >= 0]

    def history_window(self, current_round: int) -> List[int]:
        """Rounds directly preceding the active zone, newest first."""
        active_start = current_round - self.params.lifetime_rounds
        start = max(0, active_start - self.max_rounds_to_scan_for_history)
        return list(range(active_start - 1, start - 1, -1))

    # ------------------------------------------------------------------
    # Detail cache
    # ------------------------------------------------------------------

    def _cached_detail(self, record: RoundRecord) -> Optional[RoundDetail]:
        entry = self._details_cache.get(record.round)
        if entry is None:
            return None
        if not entry.is_executed and entry.vote_count != record.vote_count:
            self._details_cache.delete(record.round)
            return None
        if record.is_executed and not entry.is_executed:
            self._details_cache.set(record.round, replace(entry, is_executed=True), self.details_cache_ttl)
        return entry.detail

    def _store_detail(self, record: RoundRecord, detail: RoundDetail) -> None:
        self._details_cache.set(
            record.round,
            CachedDetail(vote_count=record.vote_count, is_executed=record.is_executed, detail=detail),
            self.details_cache_ttl,
        )

    def get_cache_stats(self) -> CacheStats:
        return self._details_cache.stats()

    def clear_cache(self) -> None:
        self._details_cache.clear()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def _build(
        self,
        record: RoundRecord,
        status: RoundStatus,
        chain: ChainPosition,
        detail: Optional[RoundDetail] = None,
    ) -> DetectedSlashing:
        fields = dict(
            round=record.round,
            status=status,
            vote_count=record.vote_count,
            is_executed=record.is_executed,
            target_epochs=self.get_target_epochs(record.round),
        )
        if detail is not None:
            fields.update(
                committees=detail.committees,
                slash_actions=detail.slash_actions,
                payload_address=detail.payload_address,
                is_vetoed=detail.is_vetoed,
            )
        if not record.is_executed:
            executable_slot = self.calculate_executable_slot(record.round)
            expiry_slot = self.calculate_expiry_slot(record.round)
            fields.update(
                slot_when_executable=executable_slot,
                slot_when_expires=expiry_slot,
                seconds_until_executable=self.calculate_seconds_until_slot(executable_slot, chain.current_slot),
                seconds_until_expires=self.calculate_seconds_until_slot(expiry_slot, chain.current_slot),
            )
        return DetectedSlashing(**fields)

    def _classify(self, record: RoundRecord, chain: ChainPosition) -> Tuple[RoundStatus, bool]:
        has_quorum = record.vote_count >= self.params.quorum
        status = self.calculate_round_status(
            record.round, chain.current_round, chain.current_slot, record.is_executed, has_quorum
        )
        return status, has_quorum

    async def _resolve_details(self, records: Sequence[RoundRecord]) -> Dict[int, Optional[RoundDetail]]:
        """
        Detail for each record, from the cache or one pipeline run.

        Records whose tally is empty or whose detail could not be built are
        absent from the result.
        """
        resolved: Dict[int, Optional[RoundDetail]] = {}
        uncached: List[RoundRecord] = []
        for record in records:
            detail = self._cached_detail(record)
            if detail is not None:
                resolved[record.round] = detail
            else:
                uncached.append(record)

        if not uncached:
            return resolved

        try:
            result = await self.pipeline.run([
                DetailRequest(round=r.round, vote_count=r.vote_count, is_executed=r.is_executed)
                for r in uncached
            ])
        except RPCError as e:
            logger.error(f"Detail fetch failed for {len(uncached)} round(s): {e}")
            return resolved

        for record in uncached:
            detail = result.details.get(record.round)
            if detail is not None:
                self._store_detail(record, detail)
                resolved[record.round] = detail
        return resolved

    async def detect_round(self, round_number: int, chain: ChainPosition) -> Optional[DetectedSlashing]:
        """
        Detect a single round.

        Returns None when the round needs detail but its tally is empty, or
        when it could not be read.
        """
        try:
            record = await self.reader.get_round(round_number)
            status, has_quorum = self._classify(record, chain)
            if not self.needs_detail(status, has_quorum):
                return self._build(record, status, chain)

            details = await self._resolve_details([record])
            detail = details.get(round_number)
            if detail is None:
                return None
            return self._build(record, status, chain, detail)
        except Exception as e:
            logger.error(f"Error detecting round {round_number}: {e}")
            return None

    async def detect_executable_rounds(self, chain: ChainPosition) -> List[DetectedSlashing]:
        """
        Full sweep of the observation window plus the executed-round history.

        Args:
            chain: Chain position read at the start of the cycle

        Returns:
            Detections sorted by round, newest first

        Raises:
            RPCError: The round batch could not be read
        """
        current_round = chain.current_round
        window = self.observation_window(current_round)
        logger.debug(f"Scanning {len(window)} rounds up to round {current_round}")

        batch = await self.reader.get_rounds(window)
        for round_number, error in batch.errors.items():
            logger.warning(f"Round {round_number}: state unavailable: {error}")

        detections: List[DetectedSlashing] = []
        pending: List[Tuple[RoundRecord, RoundStatus]] = []

        for round_number in window:
            record = batch.values.get(round_number)
            if record is None:
                continue
            status, has_quorum = self._classify(record, chain)

            if not self.needs_detail(status, has_quorum):
                if record.vote_count > 0 and self.is_voting_open(round_number, current_round):
                    detections.append(self._build(record, status, chain))
                continue

            pending.append((record, status))

        details = await self._resolve_details([record for record, _ in pending])
        for record, status in pending:
            detail = details.get(record.round)
            if detail is not None:
                detections.append(self._build(record, status, chain, detail))

        detections.extend(await self._detect_history(chain))

        detections.sort(key=lambda d: d.round, reverse=True)
        return detections

    async def _detect_history(self, chain: ChainPosition) -> List[DetectedSlashing]:
        """Most recent executed rounds preceding the active zone."""
        if self.max_executed_rounds_to_show <= 0:
            return []
        window = self.history_window(chain.current_round)
        if not window:
            return []

        batch = await self.reader.get_rounds(window)
        candidates = [
            batch.values[r] for r in window
            if r in batch.values and batch.values[r].is_executed and batch.values[r].vote_count > 0
        ]
        if not candidates:
            return []

        details = await self._resolve_details(candidates)
        history: List[DetectedSlashing] = []
        for record in candidates:
            detail = details.get(record.round)
            if detail is None or not detail.slash_actions:
                continue
            history.append(self._build(record, RoundStatus.EXECUTED, chain, detail))
            if len(history) >= self.max_executed_rounds_to_show:
                break
        return history
