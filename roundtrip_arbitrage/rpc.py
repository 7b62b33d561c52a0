"""
Minimal Solana JSON-RPC client over aiohttp.

Covers the reads the engine needs (durable nonce account, address lookup
tables). The fallback ``sendTransaction`` lives with the relay channels.
"""

import asyncio
import base64
import logging
from typing import Any, List, Optional, Sequence

import aiohttp
from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.pubkey import Pubkey

from .exceptions import NetworkError, ValidationError

logger = logging.getLogger(__name__)


def decode_lookup_table_addresses(data: bytes) -> List[Pubkey]:
    """
    Addresses stored in a lookup table account's data.

    Raises:
        ValidationError: If the data is not an initialized lookup table
    """
    try:
        table = AddressLookupTable.deserialize(data)
    except Exception as e:
        raise ValidationError(f"Invalid lookup table account data: {e}")
    return list(table.addresses)


def _account_data(account: Optional[dict]) -> Optional[bytes]:
    if not account:
        return None
    data = account.get("data")
    if not isinstance(data, list) or not data:
        return None
    return base64.b64decode(data[0])


class SolanaRpcClient:
    """JSON-RPC client sharing one aiohttp session."""

    def __init__(self, rpc_url: str, timeout_seconds: float = 8.0, session: Optional[aiohttp.ClientSession] = None):
        self.rpc_url = rpc_url
        self._timeout_seconds = timeout_seconds
        self._session = session
        self._owns_session = session is None
        self._request_id = 0

    async def connect(self) -> None:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def call(self, method: str, params: Optional[List[Any]] = None, url: Optional[str] = None) -> Any:
        """
        Issue one JSON-RPC request and return its ``result``.

        Raises:
            NetworkError: On transport failure, HTTP error status or RPC error
        """
        if self._session is None:
            await self.connect()

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        endpoint = url or self.rpc_url

        try:
            async with self._session.post(endpoint, json=payload) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    raise NetworkError(
                        f"RPC returned a non-JSON body for {method}: status={response.status}",
                        endpoint=endpoint,
                        status_code=response.status,
                    )
                if response.status >= 400:
                    raise NetworkError(
                        f"RPC call failed: method={method} status={response.status}",
                        endpoint=endpoint,
                        status_code=response.status,
                        details={"body": body},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"RPC transport error for {method}: {e}", endpoint=endpoint)

        if not isinstance(body, dict):
            raise NetworkError(f"Invalid RPC response for {method}: {body}", endpoint=endpoint)

        if body.get("error"):
            raise NetworkError(
                f"RPC error for {method}: {body['error']}",
                endpoint=endpoint,
                details={"error": body["error"]},
            )

        return body.get("result")

    async def get_account_data(self, pubkey: str) -> Optional[bytes]:
        """Raw account data, or None when the account does not exist."""
        result = await self.call(
            "getAccountInfo",
            [str(pubkey), {"encoding": "base64", "commitment": "processed"}],
        )
        if not isinstance(result, dict):
            return None
        return _account_data(result.get("value"))

    async def fetch_lookup_tables(self, addresses: Sequence[str]) -> List[AddressLookupTableAccount]:
        """Resolve lookup table addresses; missing accounts are skipped."""
        if not addresses:
            return []

        result = await self.call(
            "getMultipleAccounts",
            [[str(a) for a in addresses], {"encoding": "base64", "commitment": "processed"}],
        )
        values = (result or {}).get("value") or []

        tables: List[AddressLookupTableAccount] = []
        for address, account in zip(addresses, values):
            data = _account_data(account)
            if data is None:
                logger.warning(f"Lookup table {address} not found, skipping")
                continue
            try:
                table_addresses = decode_lookup_table_addresses(data)
            except ValidationError as e:
                logger.warning(f"Lookup table {address} skipped: {e}")
                continue
            tables.append(
                AddressLookupTableAccount(
                    key=Pubkey.from_string(str(address)),
                    addresses=table_addresses,
                )
            )
        return tables
