import asyncio
import logging
from typing import Any

import httpx
from web3 import Web3

from .errors import RegistryFetchError
from .models import ContractInterface, InterfaceResolution, UnverifiedInterface, VerifiedInterface

logger = logging.getLogger(__name__)


class InterfaceRegistryClient:
    """Client for an Etherscan-compatible contract ABI registry.

    Requests are serialized and followed by a fixed delay, whatever their
    outcome, so consecutive requests are never closer than ``min_interval``.
    """

    DEFAULT_BASE_URL: str = "https://api.etherscan.io/v2/api"
    # Answers that mean the call was refused, not that the contract is unverified
    REFUSAL_MARKERS: tuple[str, ...] = (
        "rate limit",
        "api key",
        "not supported",
        "unsupported chainid",
        "invalid chainid",
    )

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        chain_id: int | None = None,
        min_interval: float = 0.2,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """Initialize the registry client.

        Args:
            api_key: Registry access credential
            base_url: Registry API endpoint
            chain_id: Chain to query on multichain endpoints (omitted if None)
            min_interval: Seconds to sleep after every request
            timeout: Deadline for a single request in seconds
            transport: Optional httpx transport (used to inject a mock in tests)
        """
        self.api_key: str = api_key
        self.base_url: str = base_url
        self.chain_id: int | None = chain_id
        self.min_interval: float = min_interval
        self.timeout: float = timeout
        self.request_count: int = 0

        self._client = httpx.AsyncClient(transport=transport, timeout=timeout)
        self._request_lock = asyncio.Lock()

    async def __aenter__(self) -> "InterfaceRegistryClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _query_params(self, address: str) -> dict[str, str]:
        params: dict[str, str] = {
            "module": "contract",
            "action": "getabi",
            "address": address,
            "apikey": self.api_key,
        }
        if self.chain_id is not None:
            params["chainid"] = str(self.chain_id)
        return params

    async def _get(self, address: str) -> dict[str, Any]:
        """Issue one registry request and return the JSON envelope.

        Raises:
            RegistryFetchError: On transport failure, timeout, HTTP error or non-JSON body
        """
        try:
            response: httpx.Response = await asyncio.wait_for(
                self._client.get(self.base_url, params=self._query_params(address)),
                timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            raise RegistryFetchError(f"Registry request for {address} failed: {e!r}") from e
        except ValueError as e:
            raise RegistryFetchError(f"Registry returned a non-JSON body for {address}") from e

        if not isinstance(body, dict):
            raise RegistryFetchError(f"Unexpected registry response for {address}: {body!r}")
        return body

    def _is_refusal(self, result: str) -> bool:
        lowered = result.lower()
        return any(marker in lowered for marker in self.REFUSAL_MARKERS)

    def _interpret(self, address: str, body: dict[str, Any]) -> InterfaceResolution:
        """Map the status/message/result envelope to a resolution.

        Raises:
            RegistryFetchError: If the envelope is malformed or the registry refused the call
        """
        match body:
            case {"status": "1", "result": str(abi_text)}:
                try:
                    interface = ContractInterface.from_abi_json(abi_text)
                except ValueError as e:
                    raise RegistryFetchError(f"Registry returned an unparseable ABI for {address}: {e}") from e
                logger.debug(f"Resolved interface for {address} with {len(interface)} methods")
                return VerifiedInterface(interface)
            case {"status": "1"}:
                raise RegistryFetchError(f"Registry success without ABI text for {address}: {body!r}")
            case {"status": str(), "result": str(result)} if self._is_refusal(result):
                raise RegistryFetchError(f"Registry refused the request for {address}: {result}")
            case {"status": str(), "message": str(message), "result": result}:
                reason = result if isinstance(result, str) and result else message
                logger.info(f"No verified interface for {address}: {reason}")
                return UnverifiedInterface(reason=reason)
            case _:
                raise RegistryFetchError(f"Malformed registry envelope for {address}: {body!r}")

    async def fetch(self, address: str) -> InterfaceResolution:
        """Fetch the published interface of a contract.

        Args:
            address: Contract address

        Returns:
            VerifiedInterface, or UnverifiedInterface when the registry has none

        Raises:
            RegistryFetchError: If the registry call itself failed
        """
        address = Web3.to_checksum_address(address)
        async with self._request_lock:
            try:
                self.request_count += 1
                logger.debug(f"Fetching ABI for {address} (request #{self.request_count})")
                body = await self._get(address)
                return self._interpret(address, body)
            finally:
                # Stay under the registry's per-second quota
                await asyncio.sleep(self.min_interval)
