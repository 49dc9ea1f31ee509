#!/usr/bin/env python3
"""Tests for the configuration module."""

import logging
import os
from unittest.mock import patch

import pytest

from src.chain_watcher.config import (
    NodeConfig,
    PollingConfig,
    RegistryConfig,
    WatcherConfig,
)


class TestNodeConfig:
    """Tests for NodeConfig."""

    def test_valid_node_config(self):
        config = NodeConfig(rpc_url="https://ethereum.publicnode.com")
        assert config.rpc_url == "https://ethereum.publicnode.com"

    def test_missing_rpc_url(self):
        with pytest.raises(ValueError, match="RPC URL is required"):
            NodeConfig(rpc_url="")

    def test_invalid_rpc_url_scheme(self):
        with pytest.raises(ValueError, match="Invalid RPC URL scheme"):
            NodeConfig(rpc_url="ws://node.test")


class TestRegistryConfig:
    """Tests for RegistryConfig."""

    def test_defaults(self):
        config = RegistryConfig(api_key="key")
        assert config.base_url == "https://api.etherscan.io/v2/api"
        assert config.min_interval == 0.2

    def test_missing_api_key(self):
        with pytest.raises(ValueError, match="API key is required"):
            RegistryConfig(api_key="")

    def test_interval_below_quota(self):
        """Anything faster than 5 requests per second is rejected."""
        with pytest.raises(ValueError, match="at least 0.2s"):
            RegistryConfig(api_key="key", min_interval=0.1)

    def test_interval_too_long(self):
        with pytest.raises(ValueError, match="too long"):
            RegistryConfig(api_key="key", min_interval=11)


class TestPollingConfig:
    """Tests for PollingConfig validation."""

    def test_defaults(self):
        config = PollingConfig()
        assert config.polling_interval == 10
        assert config.request_timeout == 30

    @pytest.mark.parametrize("interval", [0, -1, 301])
    def test_invalid_polling_interval(self, interval):
        with pytest.raises(ValueError, match="Polling interval"):
            PollingConfig(polling_interval=interval)

    @pytest.mark.parametrize("timeout", [0, 121])
    def test_invalid_request_timeout(self, timeout):
        with pytest.raises(ValueError, match="Request timeout"):
            PollingConfig(request_timeout=timeout)


class TestWatcherConfig:
    """Tests for loading the full configuration."""

    @patch.dict(os.environ, {
        "RPC_URL": "https://rpc.test",
        "ETHERSCAN_API_KEY": "secret-key",
        "REGISTRY_MIN_INTERVAL": "0.5",
        "POLLING_INTERVAL": "12",
        "REQUEST_TIMEOUT": "20",
    }, clear=True)
    def test_from_env(self):
        config = WatcherConfig.from_env()

        assert config.node.rpc_url == "https://rpc.test"
        assert config.registry.api_key == "secret-key"
        assert config.registry.min_interval == 0.5
        assert config.polling.polling_interval == 12
        assert config.polling.request_timeout == 20
        assert config.chain_id is None

    @patch.dict(os.environ, {"ETHERSCAN_API_KEY": "secret-key"}, clear=True)
    def test_from_env_defaults(self):
        config = WatcherConfig.from_env()

        assert config.node.rpc_url == "https://ethereum.publicnode.com"
        assert config.registry.base_url == "https://api.etherscan.io/v2/api"
        assert config.polling.polling_interval == 10

    @patch.dict(os.environ, {}, clear=True)
    def test_from_env_requires_api_key(self):
        with pytest.raises(ValueError, match="ETHERSCAN_API_KEY"):
            WatcherConfig.from_env()

    def test_with_chain_id(self):
        config = WatcherConfig(
            node=NodeConfig(rpc_url="https://rpc.test"),
            registry=RegistryConfig(api_key="key"),
            polling=PollingConfig()
        )
        updated = config.with_chain_id(1)

        assert updated.chain_id == 1
        assert config.chain_id is None
        assert updated.registry is config.registry

    def test_log_config_masks_api_key(self, caplog):
        config = WatcherConfig(
            node=NodeConfig(rpc_url="https://rpc.test"),
            registry=RegistryConfig(api_key="super-secret"),
            polling=PollingConfig(),
            chain_id=1
        )
        with caplog.at_level(logging.INFO):
            config.log_config()

        assert "Chain ID: 1" in caplog.text
        assert "super-secret" not in caplog.text
