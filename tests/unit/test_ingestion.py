"""Tests for the websocket stream ingestor."""

import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from roundtrip_arbitrage.constants import SOL_MINT, USDC_MINT
from roundtrip_arbitrage.exceptions import ConfigurationError, IngestionError
from roundtrip_arbitrage.ingestion import StreamIngestor, build_subscription


def make_ingestor(handler=None, metrics=None, **kwargs):
    return StreamIngestor(
        kwargs.pop("url", "wss://stream.example/"),
        kwargs.pop("token", "secret"),
        [SOL_MINT, USDC_MINT],
        handler or AsyncMock(),
        metrics=metrics,
        session=Mock(),
        **kwargs,
    )


@pytest.mark.parametrize("url,token", [(None, "t"), ("", "t"), ("wss://x", None), ("wss://x", "")])
def test_missing_endpoint_or_token_is_a_configuration_error(url, token):
    with pytest.raises(ConfigurationError):
        StreamIngestor(url, token, [SOL_MINT], AsyncMock())


def test_subscription_excludes_votes_and_failures():
    request = build_subscription([SOL_MINT, USDC_MINT])

    assert request["method"] == "transactionSubscribe"
    tx_filter, options = request["params"]
    assert tx_filter == {"vote": False, "failed": False, "accountInclude": [SOL_MINT, USDC_MINT]}
    assert options["encoding"] == "jsonParsed"
    assert options["maxSupportedTransactionVersion"] == 0


def test_token_is_sent_as_query_parameter():
    assert make_ingestor().stream_url == "wss://stream.example/?api-key=secret"
    assert make_ingestor(url="wss://stream.example/?v=2").stream_url == "wss://stream.example/?v=2&api-key=secret"


@pytest.mark.asyncio
async def test_dispatched_handler_errors_are_contained():
    handler = AsyncMock(side_effect=RuntimeError("bad message"))
    ingestor = make_ingestor(handler=handler)

    task = ingestor.dispatch({"method": "transactionNotification"})
    await task

    assert task.exception() is None
    handler.assert_awaited_once_with({"method": "transactionNotification"})


@pytest.mark.asyncio
async def test_messages_are_handled_concurrently():
    release = asyncio.Event()
    started = []

    async def handler(message):
        started.append(message["id"])
        await release.wait()

    ingestor = make_ingestor(handler=handler)
    tasks = [ingestor.dispatch({"id": i}) for i in range(3)]
    await asyncio.sleep(0)

    assert sorted(started) == [0, 1, 2]
    release.set()
    await asyncio.gather(*tasks)


@pytest.mark.asyncio
async def test_run_reconnects_after_stream_failures():
    metrics = Mock()
    ingestor = make_ingestor(metrics=metrics, reconnect_delay=5.0)
    consume = AsyncMock(
        side_effect=[
            IngestionError("Stream closed by server"),
            IngestionError("Stream connection failed"),
            asyncio.CancelledError(),
        ]
    )

    with patch.object(ingestor, "consume", consume), patch(
        "roundtrip_arbitrage.ingestion.asyncio.sleep", new=AsyncMock()
    ) as sleep:
        with pytest.raises(asyncio.CancelledError):
            await ingestor.run()

    assert consume.await_count == 3
    assert sleep.await_count == 2
    sleep.assert_awaited_with(5.0)
    assert metrics.record_reconnect.call_count == 2


@pytest.mark.asyncio
async def test_connect_timeouts_and_socket_errors_are_retried():
    session = Mock()
    session.ws_connect = Mock(
        side_effect=[asyncio.TimeoutError(), ConnectionResetError("reset by peer"), asyncio.CancelledError()]
    )
    ingestor = StreamIngestor(
        "wss://stream.example/", "secret", [SOL_MINT], AsyncMock(), reconnect_delay=1.0, session=session
    )

    with patch("roundtrip_arbitrage.ingestion.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(asyncio.CancelledError):
            await ingestor.run()

    assert session.ws_connect.call_count == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_unexpected_consume_failure_does_not_stop_the_stream():
    metrics = Mock()
    ingestor = make_ingestor(metrics=metrics)
    consume = AsyncMock(side_effect=[RuntimeError("decoder crashed"), asyncio.CancelledError()])

    with patch.object(ingestor, "consume", consume), patch(
        "roundtrip_arbitrage.ingestion.asyncio.sleep", new=AsyncMock()
    ):
        with pytest.raises(asyncio.CancelledError):
            await ingestor.run()

    assert consume.await_count == 2
    assert metrics.record_reconnect.call_count == 1
