"""Tests for relay channel variants and the channel set builder."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from roundtrip_arbitrage.exceptions import NetworkError
from roundtrip_arbitrage.relays import (
    JITO_TIP_ACCOUNT,
    AstralaneChannel,
    BlockRazorChannel,
    HeliusChannel,
    JitoChannel,
    LilJitChannel,
    NozomiChannel,
    ZeroSlotChannel,
    build_relay_channels,
    post_send_transaction,
    resolve_variant,
)


class TestResolveVariant:
    @pytest.mark.parametrize(
        "name,variant",
        [
            ("jito", JitoChannel),
            ("JITO", JitoChannel),
            ("astra", AstralaneChannel),
            ("Astralane", AstralaneChannel),
            ("zero_slot", ZeroSlotChannel),
            ("zeroslot", ZeroSlotChannel),
            ("brazor", BlockRazorChannel),
            (" nozomi ", NozomiChannel),
        ],
    )
    def test_names_and_aliases(self, name, variant):
        assert resolve_variant(name) is variant

    def test_unknown_name(self):
        assert resolve_variant("carrier-pigeon") is None


class TestBuildRelayChannels:
    def test_empty_credentials_are_skipped(self):
        channels = build_relay_channels(
            ["jito", "helius"], {"jito": "", "helius": "helius-key"}
        )

        assert [c.name for c in channels] == ["helius"]
        assert channels[0].credential == "helius-key"

    def test_aliases_and_duplicates_collapse(self):
        channels = build_relay_channels(
            ["zero_slot", "ZEROSLOT", "jito"], {"zeroslot": "zs", "jito": "jk"},
            relay_endpoints={"zeroslot": "https://zs.example/tx"},
        )

        assert [c.name for c in channels] == ["zeroslot", "jito"]

    def test_missing_endpoint_is_skipped(self):
        channels = build_relay_channels(["astralane"], {"astralane": "key"})
        assert channels == ()

    def test_unknown_services_are_skipped(self):
        assert build_relay_channels(["nope"], {"nope": "x"}) == ()

    def test_liljit_credential_is_endpoint(self):
        channels = build_relay_channels(["liljit"], {"liljit": "https://liljit.example/api"})

        assert channels[0].endpoint == "https://liljit.example/api"
        assert channels[0].tip_account == JITO_TIP_ACCOUNT

    def test_tip_account_override(self):
        channels = build_relay_channels(
            ["jito"], {"jito": "k"}, tip_accounts={"jito": "CustomTip111"}
        )
        assert channels[0].tip_account == "CustomTip111"


class TestCredentialPlacement:
    def test_header_credential(self):
        channel = JitoChannel(endpoint="https://jito.example", credential="secret")

        assert channel.request_headers() == {"x-jito-auth": "secret"}
        assert channel.request_url() == "https://jito.example"

    def test_query_credential(self):
        channel = HeliusChannel(endpoint="https://helius.example/fast", credential="abc")

        assert channel.request_url() == "https://helius.example/fast?api-key=abc"
        assert channel.request_headers() == {}

    def test_query_credential_appends_to_existing_query(self):
        channel = NozomiChannel(endpoint="https://nozomi.example/?x=1", credential="k")
        assert channel.request_url() == "https://nozomi.example/?x=1&c=k"

    def test_liljit_has_no_extra_auth(self):
        channel = LilJitChannel(endpoint="https://liljit.example", credential="https://liljit.example")
        assert channel.request_headers() == {}


def mock_session(status=200, body=None, json_error=None):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=body, side_effect=json_error)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=context)
    return session


class TestPostSendTransaction:
    @pytest.mark.asyncio
    async def test_returns_signature(self):
        session = mock_session(body={"jsonrpc": "2.0", "id": 1, "result": "Sig111"})

        signature = await post_send_transaction(session, "https://node.example", b"\x01\x02")

        assert signature == "Sig111"
        payload = session.post.call_args.kwargs["json"]
        assert payload["method"] == "sendTransaction"
        assert payload["params"][0] == "AQI="
        assert payload["params"][1]["encoding"] == "base64"

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        session = mock_session(status=429, body={"error": "rate limited"})

        with pytest.raises(NetworkError) as exc_info:
            await post_send_transaction(session, "https://node.example", b"\x00")

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_non_json_body_raises_network_error(self):
        session = mock_session(
            status=429, json_error=json.JSONDecodeError("Expecting value", "Too Many Requests", 0)
        )

        with pytest.raises(NetworkError, match="non-JSON") as exc_info:
            await post_send_transaction(session, "https://node.example", b"\x00")

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_rpc_error_raises(self):
        session = mock_session(body={"jsonrpc": "2.0", "id": 1, "error": {"code": -32002}})

        with pytest.raises(NetworkError, match="rejected"):
            await post_send_transaction(session, "https://node.example", b"\x00")

    @pytest.mark.asyncio
    async def test_channel_send_uses_its_url_and_headers(self):
        channel = JitoChannel(endpoint="https://jito.example", credential="secret")

        with patch(
            "roundtrip_arbitrage.relays.post_send_transaction", new=AsyncMock(return_value="S")
        ) as send:
            assert await channel.send("session", b"tx") == "S"

        send.assert_awaited_once_with("session", "https://jito.example", b"tx", {"x-jito-auth": "secret"})
