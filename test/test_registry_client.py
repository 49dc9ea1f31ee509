#!/usr/bin/env python3
"""Tests for InterfaceRegistryClient.

The registry is replaced by an httpx MockTransport so no request leaves
the process.
"""

import asyncio
import time

import httpx
import pytest

from src.chain_watcher.errors import RegistryFetchError
from src.chain_watcher.models import UnverifiedInterface, VerifiedInterface
from src.chain_watcher.registry_client import InterfaceRegistryClient

TOKEN_ADDRESS = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
REGISTRY_URL = "https://registry.test/api"


def make_client(handler, min_interval: float = 0.0, **kwargs) -> InterfaceRegistryClient:
    return InterfaceRegistryClient(
        "test-key",
        base_url=REGISTRY_URL,
        min_interval=min_interval,
        transport=httpx.MockTransport(handler),
        **kwargs
    )


class TestInterfaceRegistryClient:
    """Test suite for registry response interpretation and rate limiting."""

    @pytest.mark.asyncio
    async def test_verified_contract(self, erc20_abi_json):
        """A success envelope parses into a ContractInterface."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": erc20_abi_json})

        async with make_client(handler, chain_id=1) as client:
            resolution = await client.fetch(TOKEN_ADDRESS.lower())

        assert isinstance(resolution, VerifiedInterface)
        assert [m.name for m in resolution.interface.methods] == ["transfer", "approve"]

        params = requests[0].url.params
        assert params["module"] == "contract"
        assert params["action"] == "getabi"
        assert params["address"] == TOKEN_ADDRESS
        assert params["apikey"] == "test-key"
        assert params["chainid"] == "1"

    @pytest.mark.asyncio
    async def test_chain_id_omitted_when_not_configured(self, erc20_abi_json):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": erc20_abi_json})

        async with make_client(handler) as client:
            await client.fetch(TOKEN_ADDRESS)

        assert "chainid" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_unverified_contract_is_not_an_error(self):
        """A 'not verified' answer yields the explicit unverified marker."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"status": "0", "message": "NOTOK", "result": "Contract source code not verified"}
            )

        async with make_client(handler) as client:
            resolution = await client.fetch(TOKEN_ADDRESS)

        assert resolution == UnverifiedInterface(reason="Contract source code not verified")

    @pytest.mark.asyncio
    async def test_rate_limit_answer_is_a_fetch_error(self):
        """The registry refusing the call must not be mistaken for 'unverified'."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}
            )

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError, match="refused"):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_invalid_api_key_is_a_fetch_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"})

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError, match="failed"):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_request_timeout(self):
        """A registry slower than the deadline fails the fetch, then the delay still applies."""
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": "[]"})

        async with make_client(handler, min_interval=0.2, timeout=0.05) as client:
            start = time.monotonic()
            with pytest.raises(RegistryFetchError, match="failed"):
                await client.fetch(TOKEN_ADDRESS)
            elapsed = time.monotonic() - start

        assert client.request_count == 1
        assert elapsed >= 0.2
        assert elapsed < 1

    @pytest.mark.parametrize("result", [
        "Free API access is not supported for this chain",
        "Missing or unsupported chainid parameter (required for v2 api)",
        "Missing/Invalid API Key",
    ])
    @pytest.mark.asyncio
    async def test_access_refusals_are_fetch_errors(self, result):
        """Plan and chain refusals are not cached as unverified contracts."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": result})

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError, match="refused"):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError, match="non-JSON"):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_envelope_without_expected_keys(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError, match="Malformed"):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_unparseable_abi_in_success_envelope(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": "[{broken"})

        async with make_client(handler) as client:
            with pytest.raises(RegistryFetchError, match="unparseable ABI"):
                await client.fetch(TOKEN_ADDRESS)

    @pytest.mark.asyncio
    async def test_consecutive_fetches_are_spaced(self, erc20_abi_json):
        """N fetches take at least (N-1) x min_interval even with an instant transport."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": erc20_abi_json})

        fetches = 4
        async with make_client(handler, min_interval=0.2) as client:
            start = time.monotonic()
            for _ in range(fetches):
                await client.fetch(TOKEN_ADDRESS)
            elapsed = time.monotonic() - start

        assert client.request_count == fetches
        assert elapsed >= (fetches - 1) * 0.2

    @pytest.mark.asyncio
    async def test_delay_applies_after_failures_too(self):
        """The spacing is kept whatever the outcome of the previous request."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async with make_client(handler, min_interval=0.2) as client:
            start = time.monotonic()
            for _ in range(3):
                with pytest.raises(RegistryFetchError):
                    await client.fetch(TOKEN_ADDRESS)
            elapsed = time.monotonic() - start

        assert elapsed >= 2 * 0.2
