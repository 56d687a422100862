"""Live market snapshot for queries that need current figures."""

import asyncio
import logging
import time
from typing import Any

import httpx

from .cache import TTLCache
from .config import LiveDataConfig
from .logging import UsageEvent, get_logger
from .result import Err, Ok, Result

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "snapshot"

CRYPTO_NAMES = {"bitcoin": "BTC", "ethereum": "ETH"}


class LiveDataProvider:
    """Fetches FX rates and crypto prices and caches the rendered snapshot.

    The cache is owned by the provider and can be passed in, so several
    pipelines may share one snapshot without module-level state.
    """

    def __init__(
        self,
        config: LiveDataConfig | None = None,
        cache: TTLCache[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: URLs, timeout and TTL.
            cache: Cache for the rendered snapshot.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config or LiveDataConfig()
        self.cache = cache if cache is not None else TTLCache(self.config.ttl_s)
        self._transport = transport
        self.json_logger = get_logger()

    async def _fetch_json(self, client: httpx.AsyncClient, provider: str, url: str) -> Result[Any]:
        start_time = time.monotonic()
        try:
            response = await client.get(url)
            response.raise_for_status()
            payload: Result[Any] = Ok(response.json())
        except httpx.TimeoutException:
            payload = Err(f"Request timed out after {self.config.timeout_s}s", kind="timeout")
        except httpx.HTTPStatusError as e:
            payload = Err(f"HTTP {e.response.status_code}", kind="http")
        except httpx.RequestError as e:
            payload = Err(f"Request failed: {e}", kind="network")
        except ValueError as e:
            payload = Err(f"Invalid JSON: {e}", kind="invalid_response")

        self.json_logger.log_usage(UsageEvent(
            provider=provider,
            endpoint=url.split("?")[0],
            metrics={
                "latency_ms": round((time.monotonic() - start_time) * 1000, 1),
                "success": payload.ok,
            },
        ))
        if not payload.ok:
            logger.warning(f"Live data fetch from {provider} failed: {payload.error}")
        return payload

    def _format_fx(self, data: Any) -> str:
        rates = data.get("rates", {}) if isinstance(data, dict) else {}
        parts = [
            f"USD/{symbol} {rates[symbol]:,.2f}"
            for symbol in self.config.fx_symbols
            if isinstance(rates.get(symbol), (int, float))
        ]
        return " | ".join(parts)

    def _format_crypto(self, data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        parts = []
        for coin, ticker in CRYPTO_NAMES.items():
            entry = data.get(coin)
            price = entry.get("usd") if isinstance(entry, dict) else None
            if isinstance(price, (int, float)):
                parts.append(f"{ticker} ${price:,.0f}")
        return " | ".join(parts)

    async def snapshot(self) -> str:
        """Return a short market snapshot, or empty string.

        Failures never raise. A partial snapshot is returned if only one
        source answers, and nothing is cached when both fail.
        """
        if not self.config.enabled:
            return ""

        cached = self.cache.get(SNAPSHOT_KEY)
        if cached is not None:
            return cached

        async with httpx.AsyncClient(
            timeout=self.config.timeout_s,
            transport=self._transport,
        ) as client:
            fx, crypto = await asyncio.gather(
                self._fetch_json(client, "exchangerate-api", self.config.fx_url),
                self._fetch_json(client, "coingecko", self.config.crypto_url),
            )

        fx_line = self._format_fx(fx.value) if fx.ok else ""
        crypto_line = self._format_crypto(crypto.value) if crypto.ok else ""

        lines = []
        if fx_line:
            lines.append(f"FX: {fx_line}")
        if crypto_line:
            lines.append(f"Crypto: {crypto_line}")

        if not lines:
            return ""

        snapshot = "Live market snapshot:\n" + "\n".join(lines)
        self.cache.set(SNAPSHOT_KEY, snapshot)
        return snapshot
