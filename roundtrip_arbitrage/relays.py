"""
Low-latency relay channels.

Each supported relay is a frozen dataclass variant that knows its default
endpoint, its tip account and how to attach its credential (HTTP header,
query parameter, or the credential being the endpoint itself). All of them,
and the standard-node fallback, accept a JSON-RPC ``sendTransaction`` with a
base64 payload.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import ClassVar, Dict, List, Optional, Sequence, Tuple, Type
from urllib.parse import urlencode, urlsplit

import aiohttp

from .exceptions import NetworkError

logger = logging.getLogger(__name__)

JITO_TIP_ACCOUNT = "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5"
HELIUS_TIP_ACCOUNT = "4ACfpUFoaSD9bfPdeu6DBt89gB6ENTeHBXCAi87NhDEE"


async def post_send_transaction(
    session: aiohttp.ClientSession,
    url: str,
    raw_tx: bytes,
    headers: Optional[Dict[str, str]] = None,
) -> str:
    """
    POST one JSON-RPC ``sendTransaction`` and return the reported signature.

    Raises:
        NetworkError: On transport failure, HTTP error status or RPC error
    """
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "sendTransaction",
        "params": [
            base64.b64encode(raw_tx).decode("ascii"),
            {"encoding": "base64", "skipPreflight": True, "maxRetries": 0},
        ],
    }
    host = urlsplit(url).netloc or url

    try:
        async with session.post(url, json=payload, headers=headers) as response:
            status = response.status
            try:
                body = await response.json(content_type=None)
            except ValueError:
                raise NetworkError(
                    f"sendTransaction returned a non-JSON body: status={status}",
                    endpoint=host,
                    status_code=status,
                )
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise NetworkError(f"sendTransaction transport error: {e}", endpoint=host)

    if status >= 400:
        raise NetworkError(
            f"sendTransaction failed: status={status}",
            endpoint=host,
            status_code=status,
            details={"body": body},
        )
    if not isinstance(body, dict) or body.get("error") or "result" not in body:
        raise NetworkError(
            f"sendTransaction rejected: {body}",
            endpoint=host,
            details={"body": body},
        )
    return str(body["result"])


@dataclass(frozen=True)
class RelayChannel:
    """Base variant: endpoint plus credential and tip account."""

    endpoint: str
    credential: str = ""
    tip_account: Optional[str] = None

    name: ClassVar[str] = "relay"
    aliases: ClassVar[Tuple[str, ...]] = ()
    default_endpoint: ClassVar[Optional[str]] = None
    default_tip_account: ClassVar[Optional[str]] = None

    def request_url(self) -> str:
        return self.endpoint

    def request_headers(self) -> Dict[str, str]:
        return {}

    async def send(self, session: aiohttp.ClientSession, raw_tx: bytes) -> str:
        return await post_send_transaction(
            session, self.request_url(), raw_tx, self.request_headers() or None
        )


@dataclass(frozen=True)
class HeaderAuthChannel(RelayChannel):
    header_name: ClassVar[str] = "Authorization"

    def request_headers(self) -> Dict[str, str]:
        return {self.header_name: self.credential}


@dataclass(frozen=True)
class QueryAuthChannel(RelayChannel):
    query_param: ClassVar[str] = "api-key"

    def request_url(self) -> str:
        separator = "&" if "?" in self.endpoint else "?"
        return f"{self.endpoint}{separator}{urlencode({self.query_param: self.credential})}"


@dataclass(frozen=True)
class JitoChannel(HeaderAuthChannel):
    name: ClassVar[str] = "jito"
    header_name: ClassVar[str] = "x-jito-auth"
    default_endpoint: ClassVar[Optional[str]] = "https://mainnet.block-engine.jito.wtf/api/v1/transactions"
    default_tip_account: ClassVar[Optional[str]] = JITO_TIP_ACCOUNT


@dataclass(frozen=True)
class LilJitChannel(RelayChannel):
    """The credential is the private block-engine endpoint."""

    name: ClassVar[str] = "liljit"
    default_tip_account: ClassVar[Optional[str]] = JITO_TIP_ACCOUNT


@dataclass(frozen=True)
class HeliusChannel(QueryAuthChannel):
    name: ClassVar[str] = "helius"
    default_endpoint: ClassVar[Optional[str]] = "https://sender.helius-rpc.com/fast"
    default_tip_account: ClassVar[Optional[str]] = HELIUS_TIP_ACCOUNT


@dataclass(frozen=True)
class AstralaneChannel(QueryAuthChannel):
    name: ClassVar[str] = "astralane"
    aliases: ClassVar[Tuple[str, ...]] = ("astra",)


@dataclass(frozen=True)
class ZeroSlotChannel(QueryAuthChannel):
    name: ClassVar[str] = "zeroslot"
    aliases: ClassVar[Tuple[str, ...]] = ("zero_slot",)


@dataclass(frozen=True)
class NozomiChannel(QueryAuthChannel):
    name: ClassVar[str] = "nozomi"
    query_param: ClassVar[str] = "c"


@dataclass(frozen=True)
class BlockRazorChannel(HeaderAuthChannel):
    name: ClassVar[str] = "blockrazor"
    aliases: ClassVar[Tuple[str, ...]] = ("brazor",)
    header_name: ClassVar[str] = "apikey"


@dataclass(frozen=True)
class BloxrouteChannel(HeaderAuthChannel):
    name: ClassVar[str] = "bloxroute"


@dataclass(frozen=True)
class NextBlockChannel(HeaderAuthChannel):
    name: ClassVar[str] = "nextblock"


@dataclass(frozen=True)
class RpcFallbackChannel(RelayChannel):
    """Standard node; no credential and no tip."""

    name: ClassVar[str] = "rpc"


RELAY_VARIANTS: Tuple[Type[RelayChannel], ...] = (
    JitoChannel,
    LilJitChannel,
    HeliusChannel,
    AstralaneChannel,
    ZeroSlotChannel,
    NozomiChannel,
    BlockRazorChannel,
    BloxrouteChannel,
    NextBlockChannel,
)

VARIANTS_BY_NAME: Dict[str, Type[RelayChannel]] = {}
for _variant in RELAY_VARIANTS:
    VARIANTS_BY_NAME[_variant.name] = _variant
    for _alias in _variant.aliases:
        VARIANTS_BY_NAME[_alias] = _variant


def resolve_variant(name: str) -> Optional[Type[RelayChannel]]:
    """Variant for a configured name (case-insensitive), or None when unknown."""
    return VARIANTS_BY_NAME.get(name.strip().lower())


def build_relay_channels(
    services: Sequence[str],
    credentials: Dict[str, str],
    relay_endpoints: Optional[Dict[str, str]] = None,
    tip_accounts: Optional[Dict[str, str]] = None,
) -> Tuple[RelayChannel, ...]:
    """
    Build the active relay channel set from configuration.

    Args:
        services: Configured service names, in priority order
        credentials: Canonical name -> credential (API key, or endpoint for liljit)
        relay_endpoints: Canonical name -> endpoint override
        tip_accounts: Canonical name -> tip account override

    Returns:
        One channel per distinct variant whose credential and endpoint are known
    """
    relay_endpoints = relay_endpoints or {}
    tip_accounts = tip_accounts or {}

    channels: List[RelayChannel] = []
    seen = set()
    for raw_name in services:
        variant = resolve_variant(raw_name)
        if variant is None:
            logger.warning(f"Unknown submission service '{raw_name}', skipping")
            continue
        if variant.name in seen:
            continue

        credential = credentials.get(variant.name, "")
        if not credential:
            logger.warning(f"Submission service '{variant.name}' has no credential, skipping")
            continue

        if variant is LilJitChannel:
            endpoint = credential
        else:
            endpoint = relay_endpoints.get(variant.name) or variant.default_endpoint
        if not endpoint:
            logger.warning(f"Submission service '{variant.name}' has no endpoint configured, skipping")
            continue

        tip_account = tip_accounts.get(variant.name) or variant.default_tip_account
        channels.append(variant(endpoint=endpoint, credential=credential, tip_account=tip_account))
        seen.add(variant.name)

    return tuple(channels)


def build_relay_channels_from_config(config) -> Tuple[RelayChannel, ...]:
    """Build channels from a :class:`RuntimeConfig`."""
    return build_relay_channels(
        config.node.submission_services,
        config.swap_api.credentials,
        config.swap_api.relay_endpoints,
        config.swap_api.tip_accounts,
    )
