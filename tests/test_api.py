"""
Slashwatch HTTP API Tests
"""

import pytest
from fastapi.testclient import TestClient

from slashwatch.api import create_app
from slashwatch.cache import CacheStats
from slashwatch.metrics import MetricsRegistry, MonitorMetrics
from slashwatch.store import InMemorySlashingStore
from slashwatch.types import DetectedSlashing, Offense, OffenseType, RoundStatus, SlashAction, SlashingStats

from conftest import make_chain, payload, validator


@pytest.fixture
def store():
    store = InMemorySlashingStore()
    store.set_chain_position("testnet", make_chain(100))
    store.update_detections("testnet", [
        DetectedSlashing(
            round=90,
            status=RoundStatus.QUORUM_REACHED,
            vote_count=70,
            is_executed=False,
            committees=((validator(1),),),
            slash_actions=(SlashAction(validator(1), 10 ** 18),),
            payload_address=payload(90),
            slot_when_executable=119 * 192,
            slot_when_expires=125 * 192,
            seconds_until_executable=19 * 192 * 36,
            seconds_until_expires=25 * 192 * 36,
        ),
        DetectedSlashing(round=100, status=RoundStatus.VOTING, vote_count=3, is_executed=False),
    ])
    store.set_stats("testnet", SlashingStats(current_round=100, total_rounds_monitored=2, active_slashings=1))
    store.set_cache_stats("testnet", "rounds", CacheStats(0, 35, 10, 35, 0))
    store.set_offenses("testnet", [Offense(validator(2), OffenseType.INACTIVITY, 5)])
    return store


@pytest.fixture
def registry():
    registry = MetricsRegistry()
    MonitorMetrics("testnet", registry)
    return registry


@pytest.fixture
def client(store, registry):
    return TestClient(create_app(store, registry))


class TestEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "networks": ["testnet"]}

    def test_networks(self, client):
        (network,) = client.get("/networks").json()["networks"]
        assert network["name"] == "testnet"
        assert network["chain"]["current_round"] == 100

    def test_detections(self, client):
        body = client.get("/testnet/detections").json()
        assert [d["round"] for d in body["detections"]] == [100, 90]

    def test_actionable_filter(self, client):
        body = client.get("/testnet/detections", params={"actionable": "true"}).json()
        assert [d["round"] for d in body["detections"]] == [90]
        assert body["detections"][0]["total_slash_amount"] == str(10 ** 18)

    def test_status_filter(self, client):
        body = client.get("/testnet/detections", params={"status": "voting"}).json()
        assert [d["round"] for d in body["detections"]] == [100]

    def test_invalid_status(self, client):
        assert client.get("/testnet/detections", params={"status": "pending"}).status_code == 400

    def test_single_detection(self, client):
        body = client.get("/testnet/detections/90").json()
        assert body["status"] == "quorum-reached"
        assert body["payload_address"] == payload(90)
        assert client.get("/testnet/detections/91").status_code == 404

    def test_chain_and_stats(self, client):
        assert client.get("/testnet/chain").json()["current_slot"] == 100 * 192
        body = client.get("/testnet/stats").json()
        assert body["stats"]["active_slashings"] == 1
        assert body["caches"]["rounds"]["misses"] == 35

    def test_offenses(self, client):
        (offense,) = client.get("/testnet/offenses").json()["offenses"]
        assert offense["offense_type"] == "inactivity"

    def test_unknown_network(self, client):
        assert client.get("/mainnet/detections").status_code == 404
        assert client.get("/mainnet/chain").status_code == 404

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'slashwatch_poll_cycles_total{network="testnet"}' in response.text
