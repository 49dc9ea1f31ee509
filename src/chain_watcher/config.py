#!/usr/bin/env python3
"""Configuration management for the chain watcher.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with sensible defaults
where appropriate.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

# Get logger for this module
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NodeConfig:
    """Configuration for the chain node.

    Attributes:
        rpc_url: HTTP(S) JSON-RPC endpoint of the node
    """

    rpc_url: str

    def __post_init__(self) -> None:
        """Validate node configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http or https"
            )


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    """Configuration for the ABI registry (Etherscan-compatible API).

    Attributes:
        api_key: Registry access credential
        base_url: Registry API endpoint
        min_interval: Seconds to wait after every registry request
    """

    api_key: str
    base_url: str = "https://api.etherscan.io/v2/api"
    min_interval: float = 0.2  # 5 requests per second

    def __post_init__(self) -> None:
        """Validate registry configuration."""
        if not self.api_key:
            raise ValueError("Registry API key is required (ETHERSCAN_API_KEY)")

        parsed = urlparse(self.base_url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(
                f"Invalid registry URL scheme: {parsed.scheme}. "
                "Expected http or https"
            )

        if self.min_interval < 0.2:
            raise ValueError(
                f"Registry interval must be at least 0.2s to stay under 5 req/s, got {self.min_interval}"
            )
        if self.min_interval > 10:
            raise ValueError(f"Registry interval too long (max 10s), got {self.min_interval}")


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """Configuration for the polling loop."""
    polling_interval: int = 10  # seconds between head checks
    request_timeout: int = 30  # deadline for every network call in seconds

    def __post_init__(self) -> None:
        """Validate polling configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class WatcherConfig:
    """Main configuration for the chain watcher.

    Attributes:
        node: Chain node connection settings
        registry: ABI registry settings
        polling: Polling loop settings
        chain_id: Chain ID (fetched from the node, not configured)
    """

    node: NodeConfig
    registry: RegistryConfig
    polling: PollingConfig
    chain_id: int | None = None

    @classmethod
    def from_env(cls) -> "WatcherConfig":
        """Load configuration from environment variables.

        Returns:
            WatcherConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        node_config = NodeConfig(
            rpc_url=os.environ.get("RPC_URL", "https://ethereum.publicnode.com")
        )

        api_key = os.environ.get("ETHERSCAN_API_KEY", "")
        if not api_key:
            raise ValueError(
                "ETHERSCAN_API_KEY environment variable is required. "
                "It is used to fetch verified contract ABIs."
            )

        registry_config = RegistryConfig(
            api_key=api_key,
            base_url=os.environ.get("REGISTRY_URL", "https://api.etherscan.io/v2/api"),
            min_interval=float(os.environ.get("REGISTRY_MIN_INTERVAL", "0.2"))
        )

        polling_config = PollingConfig(
            polling_interval=int(os.environ.get("POLLING_INTERVAL", "10")),
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30"))
        )

        return cls(
            node=node_config,
            registry=registry_config,
            polling=polling_config
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Chain Watcher Configuration")
        logger.info("=" * 60)

        logger.info("Node:")
        logger.info(f"  RPC URL: {self.node.rpc_url}")
        if self.chain_id:
            logger.info(f"  Chain ID: {self.chain_id}")

        logger.info("Registry:")
        logger.info(f"  URL: {self.registry.base_url}")
        logger.info("  API Key: [CONFIGURED]")
        logger.info(f"  Min Interval: {self.registry.min_interval} seconds")

        logger.info("Polling Settings:")
        logger.info(f"  Polling Interval: {self.polling.polling_interval} seconds")
        logger.info(f"  Request Timeout: {self.polling.request_timeout} seconds")

        logger.info("=" * 60)

    def with_chain_id(self, chain_id: int) -> "WatcherConfig":
        """Create a new config with the chain ID set.

        Args:
            chain_id: The chain ID reported by the node

        Returns:
            New WatcherConfig instance with chain_id set
        """
        return WatcherConfig(
            node=self.node,
            registry=self.registry,
            polling=self.polling,
            chain_id=chain_id
        )
