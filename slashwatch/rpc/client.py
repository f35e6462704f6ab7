"""
Slashwatch Ethereum JSON-RPC Client

Thin JSON-RPC 2.0 transport over httpx with ordered endpoint failover.
Only the read methods the monitor needs are exposed.
"""

import json
import time
from typing import Any, List, Optional, Sequence, Union

import httpx
from eth_utils import decode_hex, encode_hex

from ..constants import RPC_TIMEOUT
from ..exceptions import RPCResponseError, RPCTransportError
from ..logger import get_logger

logger = get_logger(__name__)


class EthRpcClient:
    """
    JSON-RPC client for one network.

    Endpoints are tried in configured order, starting from the last one that
    answered. Unreachable endpoints and HTTP-level errors fail over to the
    next endpoint; a JSON-RPC ``error`` object is a real answer and is raised
    without failover.
    """

    _rpc_id_counter = 0

    def __init__(
        self,
        urls: Union[str, Sequence[str]],
        timeout: float = RPC_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if isinstance(urls, str):
            urls = [urls]
        self.urls: List[str] = [u.strip().rstrip('/') for u in urls if u and u.strip()]
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._preferred = 0

    async def __aenter__(self) -> "EthRpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @property
    def active_url(self) -> Optional[str]:
        if not self.urls:
            return None
        return self.urls[self._preferred]

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @classmethod
    def _next_id(cls) -> int:
        cls._rpc_id_counter += 1
        return cls._rpc_id_counter

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        """
        Send a JSON-RPC 2.0 request and return its ``result``.

        Raises:
            RPCResponseError: The endpoint answered with an error object
            RPCTransportError: No endpoint produced a usable answer
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._next_id(),
        }

        errors: List[str] = []
        for offset in range(len(self.urls)):
            index = (self._preferred + offset) % len(self.urls)
            url = self.urls[index]
            start_time = time.time()
            try:
                response = await self.client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                body = response.json()
            except httpx.RequestError as exc:
                elapsed = time.time() - start_time
                logger.warning(f"RPC {method} → {url} NETWORK_ERROR ({elapsed:.3f}s): {exc!r}")
                errors.append(f"{url}: {exc!r}")
                continue
            except (json.JSONDecodeError, httpx.HTTPStatusError) as exc:
                elapsed = time.time() - start_time
                logger.warning(f"RPC {method} → {url} ERROR ({elapsed:.3f}s): {exc}")
                errors.append(f"{url}: {exc}")
                continue

            elapsed = time.time() - start_time
            if index != self._preferred:
                logger.info(f"RPC failover: now using {url}")
                self._preferred = index
            logger.debug(f"RPC {method} → {url} [{response.status_code}] ({elapsed:.3f}s)")

            error = body.get("error") if isinstance(body, dict) else None
            if error is not None:
                raise RPCResponseError(
                    method,
                    error.get("code", 0),
                    error.get("message", str(error)),
                    error.get("data"),
                )
            return body.get("result") if isinstance(body, dict) else None

        raise RPCTransportError(method, errors)

    async def eth_call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        """Execute a read-only call and return the raw return data."""
        result = await self.request("eth_call", [{"to": to, "data": encode_hex(data)}, block])
        if not isinstance(result, str):
            raise RPCResponseError("eth_call", -32603, f"malformed result {result!r}")
        return decode_hex(result)

    async def chain_id(self) -> int:
        result = await self.request("eth_chainId")
        return int(result, 16)
