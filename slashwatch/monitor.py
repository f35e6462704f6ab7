"""
Slashwatch Monitor

One worker per network. The worker loads the protocol parameters once,
then runs a poll cycle immediately and every ``poll_interval`` seconds
afterwards. Cycles never overlap and are bounded by ``cycle_timeout``; a
failed cycle is logged and leaves the store with the previous cycle's state.

Alerts are raised when a round enters an actionable status for the first
time, when a previously announced round gets executed, and when the global
slashing toggle flips. The first successful cycle is a backfill: what it
finds is recorded as already announced, but no alerts are sent.
"""

import asyncio
import time
from typing import List, Optional, Sequence, Set, Tuple

from .config import NetworkConfig, validate_protocol_parameters
from .detector import SlashingDetector
from .exceptions import CallError, MonitorNotInitializedError, RPCError
from .logger import get_logger
from .metrics import MetricsRegistry, MonitorMetrics
from .notifications import (
    Notifier,
    round_executed_alert,
    slashing_detected_alert,
    slashing_toggled_alert,
)
from .offenses import NodeAdminClient
from .rpc import EthRpcClient
from .state_reader import ContractAddresses, SlashingStateReader
from .store import SlashingStore
from .types import ChainPosition, DetectedSlashing, ProtocolParameters, RoundStatus, SlashingStats

logger = get_logger(__name__)


class SlashingMonitor:
    """
    Poll loop for one network.

    Use ``SlashingMonitor.create`` to build a monitor with its own RPC
    clients and caches from a NetworkConfig.
    """

    def __init__(
        self,
        config: NetworkConfig,
        reader: SlashingStateReader,
        store: SlashingStore,
        notifier: Notifier,
        offense_client: Optional[NodeAdminClient] = None,
        metrics: Optional[MonitorMetrics] = None,
    ):
        self.config = config
        self.network = config.name
        self.reader = reader
        self.store = store
        self.notifier = notifier
        self.offense_client = offense_client
        self.metrics = metrics or MonitorMetrics(config.name)

        self.params: Optional[ProtocolParameters] = None
        self.detector: Optional[SlashingDetector] = None

        self._lock = asyncio.Lock()
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

        self._first_scan = True
        self._previous_enabled: Optional[bool] = None
        self._notified: Set[Tuple[int, RoundStatus]] = set()
        self._announced_rounds: Set[int] = set()
        self._executed_notified: Set[int] = set()

    @classmethod
    def create(
        cls,
        config: NetworkConfig,
        store: SlashingStore,
        notifier: Notifier,
        registry: Optional[MetricsRegistry] = None,
    ) -> "SlashingMonitor":
        """Build a monitor with dedicated RPC clients for ``config``."""
        rpc = EthRpcClient(config.rpc_urls, timeout=config.polling.rpc_timeout)
        reader = SlashingStateReader(
            rpc,
            ContractAddresses.from_config(config.contracts),
            round_cache_ttl=config.cache.round_ttl,
            max_cached_rounds=config.cache.max_cached_rounds,
        )
        offense_client = None
        if config.node_admin_url:
            offense_client = NodeAdminClient(
                EthRpcClient(config.node_admin_url, timeout=config.polling.rpc_timeout)
            )
        return cls(
            config,
            reader,
            store,
            notifier,
            offense_client=offense_client,
            metrics=MonitorMetrics(config.name, registry),
        )

    @property
    def is_initialized(self) -> bool:
        return self.detector is not None

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Load protocol parameters from the chain and build the detector.

        Raises:
            RPCError: The chain could not be read
            CallError: A protocol constant could not be read
            ConfigurationError: The chain returned inconsistent parameters
        """
        params = await self.reader.load_protocol_parameters(self.config.protocol)
        validate_protocol_parameters(params)
        self.params = params
        self.detector = SlashingDetector(
            params,
            self.reader,
            details_cache_ttl=self.config.cache.details_ttl,
            max_cached_details=self.config.cache.max_cached_rounds,
            max_executed_rounds_to_show=self.config.history.max_executed_rounds_to_show,
            max_rounds_to_scan_for_history=self.config.history.max_rounds_to_scan,
        )

        chain = await self.reader.get_chain_position()
        self.store.set_chain_position(self.network, chain)
        self._previous_enabled = chain.is_slashing_enabled

        logger.info(
            f"[{self.network}] Monitor initialized: round {chain.current_round}, "
            f"slot {chain.current_slot}, epoch {chain.current_epoch}, "
            f"slashing {'enabled' if chain.is_slashing_enabled else 'disabled'}"
        )

    async def run(self) -> None:
        """Initialize, poll once immediately, then poll every interval until stopped."""
        if self._running:
            logger.warning(f"[{self.network}] Monitor already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        interval = self.config.polling.interval
        try:
            while self._running and not self.is_initialized:
                try:
                    await self.initialize()
                except (RPCError, CallError) as e:
                    logger.error(f"[{self.network}] Initialization failed: {e}")
                    await self._sleep(interval)

            while self._running:
                await self.poll()
                await self._sleep(interval)
        finally:
            self._running = False

    def stop(self) -> None:
        if not self._running:
            return
        logger.info(f"[{self.network}] Stopping monitor...")
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

    async def aclose(self) -> None:
        await self.reader.rpc.aclose()
        if self.offense_client is not None:
            await self.offense_client.aclose()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------

    async def poll(self) -> Optional[List[DetectedSlashing]]:
        """
        Run one poll cycle.

        Returns:
            The cycle's detections, or None if the cycle was skipped or failed

        Raises:
            MonitorNotInitializedError: initialize() has not completed
        """
        if self.detector is None:
            raise MonitorNotInitializedError(self.network)

        if self._lock.locked():
            logger.warning(f"[{self.network}] Previous cycle still running, skipping")
            self.metrics.poll_skipped.inc()
            return None

        async with self._lock:
            timeout = self.config.polling.cycle_timeout
            try:
                detections = await asyncio.wait_for(self._cycle(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.error(f"[{self.network}] Poll cycle timed out after {timeout}s")
                self.metrics.poll_failures.inc()
                return None
            except Exception as e:
                logger.error(f"[{self.network}] Poll cycle failed: {e}")
                self.metrics.poll_failures.inc()
                return None

            if self._first_scan:
                logger.info(f"[{self.network}] Initial scan complete: {len(detections)} rounds detected")
                self._first_scan = False
            return detections

    async def _cycle(self) -> List[DetectedSlashing]:
        start_time = time.monotonic()

        chain = await self.reader.get_chain_position()
        await self._check_toggle(chain)

        detections = await self.detector.detect_executable_rounds(chain)
        await self._process_alerts(detections)

        offenses = None
        if self.offense_client is not None:
            try:
                offenses = await self.offense_client.get_slash_offenses("all")
            except RPCError as e:
                logger.warning(f"[{self.network}] Offense feed unavailable: {e}")

        stats = SlashingStats.from_detections(chain.current_round, detections)
        min_round = self._retention_floor(chain)
        self._prune_alert_state(min_round)

        self.store.set_chain_position(self.network, chain)
        self.store.update_detections(self.network, detections, min_round=min_round)
        self.store.set_stats(self.network, stats)
        self.store.set_cache_stats(self.network, "rounds", self.reader.get_cache_stats())
        self.store.set_cache_stats(self.network, "details", self.detector.get_cache_stats())
        if offenses is not None:
            self.store.set_offenses(self.network, offenses)

        duration = time.monotonic() - start_time
        self.metrics.record_cycle(duration, chain, stats)
        self.metrics.record_cache(self.reader.get_cache_stats())

        logger.info(
            f"[{self.network}] Poll complete in {duration:.2f}s: round {chain.current_round}, "
            f"{stats.total_rounds_monitored} rounds, {stats.active_slashings} actionable"
            + (f", {len(offenses)} offenses" if offenses is not None else "")
        )
        return detections

    def _retention_floor(self, chain: ChainPosition) -> int:
        lifetime = self.params.lifetime_rounds
        scan = self.config.history.max_rounds_to_scan
        return max(0, chain.current_round - lifetime - scan)

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def _alert(self, alert) -> None:
        self.metrics.alerts_sent.inc()
        await self.notifier.notify(alert)

    async def _check_toggle(self, chain: ChainPosition) -> None:
        enabled = chain.is_slashing_enabled
        if self._previous_enabled is not None and self._previous_enabled != enabled:
            logger.warning(f"[{self.network}] Slashing {'enabled' if enabled else 'disabled'}")
            await self._alert(slashing_toggled_alert(self.network, enabled))
        self._previous_enabled = enabled

    async def _process_alerts(self, detections: Sequence[DetectedSlashing]) -> None:
        for slashing in detections:
            if slashing.status.is_actionable and slashing.slash_actions:
                key = (slashing.round, slashing.status)
                if key in self._notified:
                    continue
                self._notified.add(key)
                self._announced_rounds.add(slashing.round)
                if not self._first_scan:
                    await self._alert(slashing_detected_alert(self.network, slashing))
            elif slashing.is_executed and slashing.round in self._announced_rounds:
                if slashing.round in self._executed_notified:
                    continue
                self._executed_notified.add(slashing.round)
                if not self._first_scan:
                    await self._alert(round_executed_alert(self.network, slashing))

    def _prune_alert_state(self, min_round: int) -> None:
        self._notified = {k for k in self._notified if k[0] >= min_round}
        self._announced_rounds = {r for r in self._announced_rounds if r >= min_round}
        self._executed_notified = {r for r in self._executed_notified if r >= min_round}


# ---------------------------------------------------------------------------
# Multi-network runner
# ---------------------------------------------------------------------------

def build_monitors(
    configs: Sequence[NetworkConfig],
    store: SlashingStore,
    notifier: Notifier,
    registry: Optional[MetricsRegistry] = None,
) -> List[SlashingMonitor]:
    """One independent monitor per network, sharing the store and registry."""
    registry = registry or MetricsRegistry()
    return [SlashingMonitor.create(c, store, notifier, registry) for c in configs]


async def run_networks(monitors: Sequence[SlashingMonitor]) -> None:
    """Run monitors concurrently until cancelled, then release their clients."""
    tasks = [asyncio.create_task(m.run(), name=f"monitor-{m.network}") for m in monitors]
    try:
        await asyncio.gather(*tasks)
    finally:
        for monitor in monitors:
            monitor.stop()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        for monitor in monitors:
            await monitor.aclose()
