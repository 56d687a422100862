"""Tests for the live market snapshot."""

import httpx
import pytest

from duet.cache import TTLCache
from duet.config import LiveDataConfig
from duet.live_data import LiveDataProvider

FX_PAYLOAD = {"base": "USD", "rates": {"KHR": 4100, "EUR": 0.9234, "THB": 35.1}}
CRYPTO_PAYLOAD = {"bitcoin": {"usd": 67000.4}, "ethereum": {"usd": 3456.7}}


def make_transport(fx_status: int = 200, crypto_status: int = 200, calls: list | None = None):
    """Mock transport answering both live data endpoints."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request.url.host)
        if "exchangerate" in request.url.host:
            return httpx.Response(fx_status, json=FX_PAYLOAD)
        return httpx.Response(crypto_status, json=CRYPTO_PAYLOAD)

    return httpx.MockTransport(handler)


def make_provider(transport, **config) -> LiveDataProvider:
    return LiveDataProvider(LiveDataConfig(fx_symbols=("KHR", "EUR", "JPY"), **config), transport=transport)


class TestSnapshot:
    """Tests for LiveDataProvider.snapshot."""

    @pytest.mark.asyncio
    async def test_full_snapshot(self):
        provider = make_provider(make_transport())

        snapshot = await provider.snapshot()

        assert snapshot == (
            "Live market snapshot:\n"
            "FX: USD/KHR 4,100.00 | USD/EUR 0.92\n"
            "Crypto: BTC $67,000 | ETH $3,457"
        )

    @pytest.mark.asyncio
    async def test_partial_snapshot(self):
        provider = make_provider(make_transport(crypto_status=503))

        snapshot = await provider.snapshot()

        assert "FX:" in snapshot
        assert "Crypto:" not in snapshot

    @pytest.mark.asyncio
    async def test_total_failure_returns_empty_and_is_not_cached(self):
        provider = make_provider(make_transport(fx_status=500, crypto_status=500))

        assert await provider.snapshot() == ""
        assert len(provider.cache) == 0

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self):
        calls: list[str] = []
        provider = make_provider(make_transport(calls=calls))

        first = await provider.snapshot()
        second = await provider.snapshot()

        assert first == second
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_refetched_after_ttl(self):
        now = [0.0]
        calls: list[str] = []
        cache = TTLCache(ttl_s=300, clock=lambda: now[0])
        provider = LiveDataProvider(LiveDataConfig(), cache=cache, transport=make_transport(calls=calls))

        await provider.snapshot()
        now[0] = 301.0
        await provider.snapshot()

        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_disabled(self):
        calls: list[str] = []
        provider = make_provider(make_transport(calls=calls), enabled=False)

        assert await provider.snapshot() == ""
        assert calls == []

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        provider = make_provider(httpx.MockTransport(handler))

        assert await provider.snapshot() == ""

    @pytest.mark.asyncio
    async def test_unexpected_payload_shape(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["not", "a", "dict"])

        provider = make_provider(httpx.MockTransport(handler))

        assert await provider.snapshot() == ""
