"""
Market Quote Resolver

Sources are tried in order for each instrument: the live quote API, then the
last price the ledger saw, then a static reference price. Batch lookups run in
windows of ``batch_size`` with a bounded number of concurrent requests and a
short pause between windows; instruments no source can price are simply absent
from the result.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena.config import QuotesConfig
from arena.providers.exceptions import (
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from arena.retry import RETRYABLE_STATUS_CODES, RetryPolicy
from arena.schemas.market import InstrumentProfile, Quote
from arena.services.ledger import ledger_store

logger = logging.getLogger(__name__)


class QuoteSource(ABC):
    name: str = "source"

    @abstractmethod
    async def fetch(self, instrument: str) -> Quote | None:
        """Return a quote or None when this source cannot price the instrument."""


def _as_float(value: Any) -> float | None:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result


class EODHDQuoteSource(QuoteSource):
    """EODHD real-time endpoint: GET /real-time/{code}.{exchange}."""

    name = "eodhd"

    def __init__(
        self,
        api_key: str,
        config: QuotesConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.config = config or QuotesConfig()
        self.retry_policy = (retry_policy or RetryPolicy()).with_retry_on(
            ProviderRateLimitError, ProviderUnavailableError
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> EODHDQuoteSource:
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("EODHDQuoteSource must be used as async context manager")
        return self._client

    async def _request(self, instrument: str) -> dict[str, Any] | None:
        try:
            response = await self.client.get(
                f"/real-time/{instrument}.{self.config.exchange_suffix}",
                params={"api_token": self.api_key, "fmt": "json"},
            )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"quote timeout for {instrument}") from e
        except httpx.RequestError as e:
            raise ProviderUnavailableError(f"quote network error for {instrument}: {e}") from e

        if response.status_code == 429:
            raise ProviderRateLimitError("quote API rate limited", status_code=429)
        if response.status_code in RETRYABLE_STATUS_CODES:
            raise ProviderUnavailableError(
                f"quote API error {response.status_code}", status_code=response.status_code
            )
        if response.status_code != 200:
            logger.debug(f"Quote API {response.status_code} for {instrument}")
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    async def fetch(self, instrument: str) -> Quote | None:
        if not self.api_key:
            return None
        try:
            data = await self.retry_policy.run(
                lambda: self._request(instrument), description=f"quote {instrument}"
            )
        except (ProviderRateLimitError, ProviderUnavailableError) as e:
            logger.warning(f"Quote lookup failed for {instrument}: {e}")
            return None

        if not data:
            return None
        price = _as_float(data.get("close"))
        if price is None or price <= 0:
            return None

        as_of = None
        timestamp = _as_float(data.get("timestamp"))
        if timestamp:
            as_of = datetime.fromtimestamp(timestamp, tz=timezone.utc)

        return Quote(
            instrument=instrument,
            price=price,
            previous_close=_as_float(data.get("previousClose")),
            volume=_as_float(data.get("volume")),
            change_pct=_as_float(data.get("change_p")),
            as_of=as_of,
            source=self.name,
        )


class LedgerPriceSource(QuoteSource):
    """Last price recorded on any open position for the instrument."""

    name = "ledger"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._prices: dict[str, float] | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[str, float]:
        async with self._lock:
            if self._prices is None:
                async with self.session_factory() as db:
                    grouped = await ledger_store.list_all_positions(db)
                self._prices = {
                    p.instrument: float(p.last_price)
                    for positions in grouped.values()
                    for p in positions
                }
        return self._prices

    async def fetch(self, instrument: str) -> Quote | None:
        prices = await self._load()
        price = prices.get(instrument)
        if price is None:
            return None
        return Quote(instrument=instrument, price=price, source=self.name)


class StaticPriceSource(QuoteSource):
    """Reference prices supplied with the instrument universe."""

    name = "reference"

    def __init__(self, prices: dict[str, float]):
        self.prices = prices

    @classmethod
    def from_profiles(cls, profiles: Iterable[InstrumentProfile]) -> StaticPriceSource:
        return cls({p.code: p.reference_price for p in profiles if p.reference_price})

    async def fetch(self, instrument: str) -> Quote | None:
        price = self.prices.get(instrument)
        if not price:
            return None
        return Quote(instrument=instrument, price=price, source=self.name)


class QuoteResolver:
    def __init__(
        self,
        sources: list[QuoteSource],
        config: QuotesConfig | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.sources = sources
        self.config = config or QuotesConfig()
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(max(1, self.config.max_concurrency))

    async def get_quote(self, instrument: str) -> Quote | None:
        """First quote any source can produce, or None."""
        for source in self.sources:
            try:
                quote = await source.fetch(instrument)
            except Exception as e:
                logger.warning(f"{source.name} failed for {instrument}: {e}")
                continue
            if quote is not None:
                return quote
        return None

    async def _bounded(self, instrument: str) -> tuple[str, Quote | None]:
        async with self._semaphore:
            return instrument, await self.get_quote(instrument)

    async def get_quotes_batch(self, instruments: Iterable[str]) -> dict[str, Quote]:
        """Resolve many instruments; unresolved ones are omitted."""
        unique = list(dict.fromkeys(i for i in instruments if i))
        size = max(1, self.config.batch_size)
        quotes: dict[str, Quote] = {}

        for start in range(0, len(unique), size):
            if start:
                await self._sleep(self.config.batch_delay_seconds)
            window = unique[start : start + size]
            for instrument, quote in await asyncio.gather(
                *(self._bounded(i) for i in window)
            ):
                if quote is not None:
                    quotes[instrument] = quote

        missing = len(unique) - len(quotes)
        if missing:
            logger.info(f"Resolved {len(quotes)}/{len(unique)} quotes ({missing} unavailable)")
        return quotes
