"""
Slashwatch Results Store

Where monitors publish what they observed each cycle. The HTTP API reads
from the same store. A cycle covers every round from the retention floor
upward, so a round it no longer reports is stale and is removed rather than
left in its last observed state.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .cache import CacheStats
from .types import ChainPosition, DetectedSlashing, Offense, SlashingStats


class SlashingStore(ABC):
    """Abstract per-network results sink."""

    @abstractmethod
    def update_detections(
        self, network: str, detections: List[DetectedSlashing], min_round: Optional[int] = None
    ) -> None:
        """
        Merge detections by round.

        Args:
            network: Network name
            detections: Detections of the latest cycle
            min_round: First round the cycle covered. When given, the
                detections are the full view: stored rounds they omit are
                dropped, as are rounds below this floor
        """
        ...

    @abstractmethod
    def get_detections(self, network: str) -> List[DetectedSlashing]:
        """Stored detections, newest round first."""
        ...

    @abstractmethod
    def get_detection(self, network: str, round_number: int) -> Optional[DetectedSlashing]:
        ...

    @abstractmethod
    def set_chain_position(self, network: str, position: ChainPosition) -> None:
        ...

    @abstractmethod
    def get_chain_position(self, network: str) -> Optional[ChainPosition]:
        ...

    @abstractmethod
    def set_stats(self, network: str, stats: SlashingStats) -> None:
        ...

    @abstractmethod
    def get_stats(self, network: str) -> SlashingStats:
        ...

    @abstractmethod
    def set_cache_stats(self, network: str, cache_name: str, stats: CacheStats) -> None:
        ...

    @abstractmethod
    def get_cache_stats(self, network: str) -> Dict[str, CacheStats]:
        ...

    @abstractmethod
    def set_offenses(self, network: str, offenses: List[Offense]) -> None:
        ...

    @abstractmethod
    def get_offenses(self, network: str) -> List[Offense]:
        ...

    @abstractmethod
    def networks(self) -> List[str]:
        """Networks that have published at least one chain position."""
        ...


class InMemorySlashingStore(SlashingStore):
    """Dict-backed store. Written from monitor cycles, read by the API."""

    def __init__(self):
        self._detections: Dict[str, Dict[int, DetectedSlashing]] = {}
        self._positions: Dict[str, ChainPosition] = {}
        self._stats: Dict[str, SlashingStats] = {}
        self._cache_stats: Dict[str, Dict[str, CacheStats]] = {}
        self._offenses: Dict[str, List[Offense]] = {}

    def update_detections(self, network, detections, min_round=None):
        merged = self._detections.setdefault(network, {})
        if min_round is not None:
            reported = {d.round for d in detections}
            for round_number in [r for r in merged if r < min_round or r not in reported]:
                del merged[round_number]
        for detection in detections:
            merged[detection.round] = detection

    def get_detections(self, network):
        merged = self._detections.get(network, {})
        return [merged[r] for r in sorted(merged, reverse=True)]

    def get_detection(self, network, round_number):
        return self._detections.get(network, {}).get(round_number)

    def set_chain_position(self, network, position):
        self._positions[network] = position

    def get_chain_position(self, network):
        return self._positions.get(network)

    def set_stats(self, network, stats):
        self._stats[network] = stats

    def get_stats(self, network):
        return self._stats.get(network, SlashingStats())

    def set_cache_stats(self, network, cache_name, stats):
        self._cache_stats.setdefault(network, {})[cache_name] = stats

    def get_cache_stats(self, network):
        return dict(self._cache_stats.get(network, {}))

    def set_offenses(self, network, offenses):
        self._offenses[network] = list(offenses)

    def get_offenses(self, network):
        return list(self._offenses.get(network, []))

    def networks(self):
        return sorted(self._positions)
