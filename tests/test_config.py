"""
Slashwatch Configuration Tests
"""

import pytest

from slashwatch.config import MonitorConfig, NetworkConfig, apply_env, load_config
from slashwatch.exceptions import ConfigurationError

from conftest import ROLLUP, SLASHER, TALLY


def network_dict(**overrides):
    data = {
        "name": "testnet",
        "rpc_urls": ["https://rpc-1.invalid", "https://rpc-2.invalid"],
        "contracts": {
            "tally_slashing_proposer": TALLY.lower(),
            "slasher": SLASHER,
            "rollup": ROLLUP,
        },
    }
    data.update(overrides)
    return data


CONFIG_TOML = f"""
[[networks]]
name = "testnet"
rpc_urls = ["https://rpc.invalid"]

[networks.contracts]
tally_slashing_proposer = "{TALLY}"
slasher = "{SLASHER}"
rollup = "{ROLLUP}"

[networks.polling]
interval = 60

[networks.history]
max_executed_rounds_to_show = 3

[notifications]
webhook_url = "https://hooks.invalid/slashing"

[api]
enabled = true
port = 9100
"""


class TestNetworkConfig:

    def test_defaults(self):
        cfg = NetworkConfig.from_dict(network_dict())

        assert cfg.rpc_urls == ("https://rpc-1.invalid", "https://rpc-2.invalid")
        assert cfg.contracts.tally_slashing_proposer == TALLY
        assert cfg.contracts.multicall == "0xcA11bde05977b3631167028862bE2a173976CA11"
        assert cfg.polling.interval == 120.0
        assert cfg.cache.round_ttl == 30.0
        assert cfg.cache.details_ttl == 300.0
        assert cfg.history.max_executed_rounds_to_show == 2
        assert cfg.history.max_rounds_to_scan == 5
        assert cfg.protocol.round_size == 192
        assert cfg.node_admin_url is None

    def test_single_url_string(self):
        cfg = NetworkConfig.from_dict(network_dict(rpc_urls="https://only.invalid"))
        assert cfg.rpc_urls == ("https://only.invalid",)

    def test_missing_contract(self):
        data = network_dict()
        del data["contracts"]["slasher"]
        with pytest.raises(ConfigurationError, match="slasher"):
            NetworkConfig.from_dict(data)

    def test_invalid_address(self):
        data = network_dict()
        data["contracts"]["rollup"] = "0x1234"
        with pytest.raises(ConfigurationError):
            NetworkConfig.from_dict(data)

    def test_no_rpc_urls(self):
        with pytest.raises(ConfigurationError):
            NetworkConfig.from_dict(network_dict(rpc_urls=[]))

    def test_websocket_url_rejected(self):
        with pytest.raises(ConfigurationError):
            NetworkConfig.from_dict(network_dict(rpc_urls=["wss://rpc.invalid"]))

    @pytest.mark.parametrize("section, values", [
        ("polling", {"interval": 0}),
        ("polling", {"cycle_timeout": -1}),
        ("cache", {"round_ttl": 0}),
        ("cache", {"max_cached_rounds": 0}),
        ("history", {"max_rounds_to_scan": -1}),
        ("protocol", {"quorum": 0}),
        ("protocol", {"execution_delay_rounds": 5, "lifetime_rounds": 4}),
    ])
    def test_invalid_values(self, section, values):
        with pytest.raises(ConfigurationError):
            NetworkConfig.from_dict(network_dict(**{section: values}))


class TestMonitorConfig:

    def test_requires_a_network(self):
        with pytest.raises(ConfigurationError):
            MonitorConfig.from_dict({})

    def test_duplicate_names(self):
        with pytest.raises(ConfigurationError, match="testnet"):
            MonitorConfig.from_dict({"networks": [network_dict(), network_dict()]})

    def test_invalid_webhook(self):
        with pytest.raises(ConfigurationError):
            MonitorConfig.from_dict({"networks": [network_dict()], "notifications": {"webhook_url": "ftp://x"}})

    def test_to_dict_hides_rpc_urls(self):
        cfg = MonitorConfig.from_dict({"networks": [network_dict()]})
        data = cfg.to_dict()

        assert data["networks"][0]["rpc_endpoints"] == 2
        assert "rpc-1.invalid" not in str(data)
        assert data["api"]["enabled"] is False

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(CONFIG_TOML)

        cfg = MonitorConfig.from_file(str(path))

        assert cfg.networks[0].polling.interval == 60
        assert cfg.networks[0].history.max_executed_rounds_to_show == 3
        assert cfg.notifications.webhook_url == "https://hooks.invalid/slashing"
        assert cfg.api.enabled is True
        assert cfg.api.port == 9100

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            MonitorConfig.from_file(str(tmp_path / "missing.toml"))

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[[networks]\nname = ")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            MonitorConfig.from_file(str(path))

    def test_load_config_from_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.toml"
        path.write_text(CONFIG_TOML)
        monkeypatch.setenv("SLASHWATCH_CONFIG", str(path))

        assert load_config().networks[0].name == "testnet"


class TestEnvOverrides:

    def test_per_network_rpc_urls(self, monkeypatch):
        monkeypatch.setenv("SLASHWATCH_TESTNET_RPC_URLS", "https://a.invalid, https://b.invalid")
        monkeypatch.setenv("SLASHWATCH_TESTNET_NODE_ADMIN_URL", "http://admin.invalid:8880")

        cfg = MonitorConfig.from_dict(apply_env({"networks": [network_dict()]}))

        assert cfg.networks[0].rpc_urls == ("https://a.invalid", "https://b.invalid")
        assert cfg.networks[0].node_admin_url == "http://admin.invalid:8880"

    def test_network_name_is_normalized(self, monkeypatch):
        monkeypatch.setenv("SLASHWATCH_MY_NET_RPC_URLS", "https://env.invalid")
        cfg = MonitorConfig.from_dict(apply_env({"networks": [network_dict(name="my-net")]}))
        assert cfg.networks[0].rpc_urls == ("https://env.invalid",)

    def test_global_overrides(self, monkeypatch):
        monkeypatch.setenv("SLASHWATCH_POLL_INTERVAL", "15")
        monkeypatch.setenv("SLASHWATCH_WEBHOOK_URL", "https://hooks.invalid/x")
        monkeypatch.setenv("SLASHWATCH_API_ENABLED", "true")
        monkeypatch.setenv("SLASHWATCH_API_PORT", "9200")

        cfg = MonitorConfig.from_dict(apply_env({"networks": [network_dict()]}))

        assert cfg.networks[0].polling.interval == 15.0
        assert cfg.notifications.webhook_url == "https://hooks.invalid/x"
        assert cfg.api.enabled is True
        assert cfg.api.port == 9200

    def test_raw_dict_is_not_mutated(self, monkeypatch):
        monkeypatch.setenv("SLASHWATCH_TESTNET_RPC_URLS", "https://env.invalid")
        raw = {"networks": [network_dict()]}

        apply_env(raw)

        assert raw["networks"][0]["rpc_urls"] == ["https://rpc-1.invalid", "https://rpc-2.invalid"]
