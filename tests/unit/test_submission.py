"""Tests for submission plans, payload layout and the router."""

from dataclasses import dataclass, field
from typing import ClassVar, List
import json
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from solders.compute_budget import ID as COMPUTE_BUDGET_PROGRAM_ID
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from roundtrip_arbitrage.exceptions import NetworkError, SubmissionError
from roundtrip_arbitrage.relays import HeliusChannel, JitoChannel, RelayChannel, RpcFallbackChannel
from roundtrip_arbitrage.submission import SubmissionPlan, SubmissionRouter, build_payload
from roundtrip_arbitrage.trade_builder import build_advance_nonce_instruction

TIP_ACCOUNT = str(Pubkey.new_unique())


@dataclass(frozen=True)
class OkChannel(RelayChannel):
    calls: List[bytes] = field(default_factory=list)
    name: ClassVar[str] = "ok"

    async def send(self, session, raw_tx):
        self.calls.append(raw_tx)
        return "OkSignature"


@dataclass(frozen=True)
class DownChannel(RelayChannel):
    calls: List[bytes] = field(default_factory=list)
    name: ClassVar[str] = "down"

    async def send(self, session, raw_tx):
        self.calls.append(raw_tx)
        raise NetworkError("connection refused", endpoint=self.endpoint)


@dataclass(frozen=True)
class FlakyChannel(RelayChannel):
    """Fails on the first attempt, succeeds afterwards."""

    calls: List[bytes] = field(default_factory=list)
    name: ClassVar[str] = "flaky"

    async def send(self, session, raw_tx):
        self.calls.append(raw_tx)
        if len(self.calls) == 1:
            raise NetworkError("timeout")
        return "FlakySignature"


@dataclass(frozen=True)
class BrokenChannel(RelayChannel):
    name: ClassVar[str] = "broken"

    async def send(self, session, raw_tx):
        raise RuntimeError("unexpected relay response")


@dataclass(frozen=True)
class DownFallback(RpcFallbackChannel):
    calls: List[bytes] = field(default_factory=list)

    async def send(self, session, raw_tx):
        self.calls.append(raw_tx)
        raise NetworkError("node unavailable", endpoint=self.endpoint)


@pytest.fixture
def payer():
    return Keypair()


def make_plan(payer, channels=(), retry_count=1, tip_sol=0.001):
    nonce_account = Pubkey.new_unique()
    swap_ix = transfer(
        TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Pubkey.new_unique(), lamports=1)
    )
    return SubmissionPlan(
        advance_nonce_instruction=build_advance_nonce_instruction(nonce_account, payer.pubkey()),
        instructions=(swap_ix,),
        signers=(payer,),
        blockhash=Hash.default(),
        lookup_tables=(),
        tip_sol=tip_sol,
        compute_units=300_000,
        priority_fee=1_000,
        retry_count=retry_count,
        channels=tuple(channels),
    )


class TestPayload:
    def test_layout_with_tip(self, payer):
        plan = make_plan(payer)
        channel = OkChannel(endpoint="https://ok.example", tip_account=TIP_ACCOUNT)

        tx = build_payload(plan, channel, Hash.default())

        message = tx.message
        programs = [message.account_keys[ix.program_id_index] for ix in message.instructions]
        assert programs == [
            SYSTEM_PROGRAM_ID,  # advance nonce
            COMPUTE_BUDGET_PROGRAM_ID,
            COMPUTE_BUDGET_PROGRAM_ID,
            SYSTEM_PROGRAM_ID,  # swap stand-in
            SYSTEM_PROGRAM_ID,  # tip
        ]
        assert Pubkey.from_string(TIP_ACCOUNT) in message.account_keys

    def test_no_tip_without_tip_account(self, payer):
        plan = make_plan(payer)

        tx = build_payload(plan, OkChannel(endpoint="https://ok.example"), Hash.default())

        assert len(tx.message.instructions) == 4

    def test_no_tip_when_tip_is_zero(self, payer):
        plan = make_plan(payer, tip_sol=0.0)
        channel = OkChannel(endpoint="https://ok.example", tip_account=TIP_ACCOUNT)

        assert len(build_payload(plan, channel, Hash.default()).message.instructions) == 4


class TestRouter:
    @pytest.mark.asyncio
    async def test_no_channels_retries_fallback_then_fails(self, payer):
        fallback = DownFallback(endpoint="https://node.example")
        metrics = Mock()
        router = SubmissionRouter(fallback, metrics=metrics, session=Mock())

        with pytest.raises(SubmissionError) as exc_info:
            await router.submit(make_plan(payer, retry_count=2))

        assert len(fallback.calls) == 3
        assert len(set(fallback.calls)) == 1
        outcome = exc_info.value.outcomes[0]
        assert outcome.channel == "rpc"
        assert outcome.attempts == 3
        assert not outcome.success
        assert metrics.record_submission.call_count == 3

    @pytest.mark.asyncio
    async def test_one_failing_channel_does_not_block_another(self, payer):
        down = DownChannel(endpoint="https://down.example")
        ok = OkChannel(endpoint="https://ok.example")
        fallback = DownFallback(endpoint="https://node.example")
        router = SubmissionRouter(fallback, session=Mock())

        result = await router.submit(make_plan(payer, channels=(down, ok), retry_count=1))

        assert result.signature == "OkSignature"
        assert result.channels == "ok"
        assert len(down.calls) == 2
        assert len(ok.calls) == 1
        assert fallback.calls == []

    @pytest.mark.asyncio
    async def test_retry_recovers(self, payer):
        flaky = FlakyChannel(endpoint="https://flaky.example")
        router = SubmissionRouter(DownFallback(endpoint="https://node.example"), session=Mock())

        result = await router.submit(make_plan(payer, channels=(flaky,), retry_count=1))

        assert result.successful[0].attempts == 2
        assert result.signature == "FlakySignature"

    @pytest.mark.asyncio
    async def test_fallback_included_on_request(self, payer):
        ok = OkChannel(endpoint="https://ok.example")
        fallback = DownFallback(endpoint="https://node.example")
        router = SubmissionRouter(fallback, include_fallback=True, session=Mock())

        result = await router.submit(make_plan(payer, channels=(ok,), retry_count=0))

        assert [o.channel for o in result.outcomes] == ["ok", "rpc"]
        assert len(fallback.calls) == 1

    @pytest.mark.asyncio
    async def test_plan_cannot_be_submitted_twice(self, payer):
        ok = OkChannel(endpoint="https://ok.example")
        router = SubmissionRouter(DownFallback(endpoint="https://node.example"), session=Mock())
        plan = make_plan(payer, channels=(ok,))

        await router.submit(plan)

        with pytest.raises(SubmissionError, match="already submitted"):
            await router.submit(plan)
        assert len(ok.calls) == 1

    @pytest.mark.asyncio
    async def test_fresh_nonce_blockhash_is_preferred(self, payer):
        fresh = Hash.new_unique()
        nonce_cache = Mock()
        nonce_cache.get.return_value = Mock(blockhash=fresh)
        ok = OkChannel(endpoint="https://ok.example")
        router = SubmissionRouter(
            DownFallback(endpoint="https://node.example"), nonce_cache=nonce_cache, session=Mock()
        )

        await router.submit(make_plan(payer, channels=(ok,)))

        sent = VersionedTransaction.from_bytes(ok.calls[0])
        assert sent.message.recent_blockhash == fresh

    @pytest.mark.asyncio
    async def test_unexpected_channel_error_is_isolated(self, payer):
        ok = OkChannel(endpoint="https://ok.example")
        router = SubmissionRouter(DownFallback(endpoint="https://node.example"), session=Mock())

        result = await router.submit(
            make_plan(payer, channels=(BrokenChannel(endpoint="https://broken.example"), ok), retry_count=1)
        )

        assert result.signature == "OkSignature"
        broken = next(o for o in result.outcomes if o.channel == "broken")
        assert not broken.success
        assert broken.attempts == 2
        assert "unexpected relay response" in broken.error


def relay_response(status, body=None, text=None):
    response = MagicMock()
    response.status = status
    if text is not None:
        response.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", text, 0))
    else:
        response.json = AsyncMock(return_value=body)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


@pytest.mark.asyncio
async def test_rate_limited_text_reply_does_not_hide_other_success(payer):
    def post(url, json=None, headers=None):
        if url.startswith("https://jito.example"):
            return relay_response(429, text="Too Many Requests")
        return relay_response(200, body={"jsonrpc": "2.0", "id": 1, "result": "HeliusSignature"})

    session = MagicMock()
    session.post = MagicMock(side_effect=post)
    jito = JitoChannel(endpoint="https://jito.example", credential="jito-key")
    helius = HeliusChannel(endpoint="https://helius.example", credential="helius-key")
    router = SubmissionRouter(DownFallback(endpoint="https://node.example"), session=session)

    result = await router.submit(make_plan(payer, channels=(jito, helius), retry_count=0))

    assert result.signature == "HeliusSignature"
    assert result.channels == "helius"
    jito_outcome = next(o for o in result.outcomes if o.channel == "jito")
    assert not jito_outcome.success
    assert "non-JSON" in jito_outcome.error
