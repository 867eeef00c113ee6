"""Tests for quote sources and the resolver's fallback and batching."""

import asyncio
from decimal import Decimal

import httpx

from arena.config import QuotesConfig
from arena.models import Position
from arena.retry import RetryPolicy
from arena.schemas.common import CompetitionMode
from arena.schemas.market import InstrumentProfile, Quote
from arena.services.quotes import (
    EODHDQuoteSource,
    LedgerPriceSource,
    QuoteResolver,
    QuoteSource,
    StaticPriceSource,
)
from tests.support import open_ledger, seed_ledger

NO_WAIT = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)

REALTIME_BODY = {
    "code": "1155.KLSE",
    "timestamp": 1767578400,
    "close": 10.42,
    "previousClose": 10.3,
    "change_p": 1.165,
    "volume": 1250000,
}


async def _fetch(handler, instrument: str = "1155", api_key: str = "demo"):
    source = EODHDQuoteSource(api_key, retry_policy=NO_WAIT, transport=httpx.MockTransport(handler))
    async with source:
        return await source.fetch(instrument)


def test_eodhd_quote_is_parsed() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=REALTIME_BODY)

    quote = asyncio.run(_fetch(handler))

    assert quote.price == 10.42
    assert quote.previous_close == 10.3
    assert quote.change_pct == 1.165
    assert quote.volume == 1250000
    assert quote.source == "eodhd"
    assert quote.as_of is not None and quote.as_of.tzinfo is not None
    assert seen[0].url.path == "/api/real-time/1155.KLSE"
    assert seen[0].url.params["api_token"] == "demo"


def test_eodhd_rate_limit_is_retried() -> None:
    responses = [httpx.Response(429), httpx.Response(200, json=REALTIME_BODY)]

    quote = asyncio.run(_fetch(lambda request: responses.pop(0)))

    assert quote.price == 10.42
    assert responses == []


def test_eodhd_unusable_answers_give_no_quote() -> None:
    assert asyncio.run(_fetch(lambda r: httpx.Response(404))) is None
    assert asyncio.run(_fetch(lambda r: httpx.Response(200, json={"close": "NA"}))) is None
    assert asyncio.run(_fetch(lambda r: httpx.Response(200, json=[1, 2]))) is None
    assert asyncio.run(_fetch(lambda r: httpx.Response(502))) is None


def test_eodhd_without_key_makes_no_request() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=REALTIME_BODY)

    assert asyncio.run(_fetch(handler, api_key="")) is None
    assert calls == []


class BrokenSource(QuoteSource):
    name = "broken"

    async def fetch(self, instrument: str) -> Quote | None:
        raise RuntimeError("feed offline")


def test_resolver_falls_through_sources_in_order() -> None:
    resolver = QuoteResolver(
        [
            BrokenSource(),
            StaticPriceSource({"1155": 10.0}),
            StaticPriceSource({"1155": 99.0, "5347": 2.1}),
        ]
    )

    first = asyncio.run(resolver.get_quote("1155"))
    second = asyncio.run(resolver.get_quote("5347"))
    missing = asyncio.run(resolver.get_quote("0000"))

    assert first.price == 10.0
    assert second.price == 2.1
    assert missing is None


def test_static_source_from_profiles_skips_unpriced() -> None:
    source = StaticPriceSource.from_profiles(
        [InstrumentProfile(code="1155", reference_price=10.0), InstrumentProfile(code="5347")]
    )
    assert source.prices == {"1155": 10.0}


def test_ledger_source_uses_last_position_price() -> None:
    async def run():
        engine, factory = await open_ledger()
        agents = await seed_ledger(factory, {"alpha": CompetitionMode.NEW_BASELINE})
        async with factory() as db:
            db.add(
                Position(
                    agent_id=agents["alpha"].id,
                    instrument="1155",
                    quantity=Decimal("100"),
                    avg_entry_price=Decimal("10"),
                    last_price=Decimal("10.4"),
                )
            )
            await db.commit()

        source = LedgerPriceSource(factory)
        held = await source.fetch("1155")
        other = await source.fetch("5347")
        await engine.dispose()
        return held, other

    held, other = asyncio.run(run())
    assert held.price == 10.4
    assert held.source == "ledger"
    assert other is None


def test_batch_resolution_in_windows() -> None:
    pauses: list[float] = []

    async def fake_sleep(delay: float) -> None:
        pauses.append(delay)

    prices = {f"{i:04d}": 1.0 + i for i in range(25) if i % 5}
    resolver = QuoteResolver(
        [StaticPriceSource(prices)],
        config=QuotesConfig(batch_size=10, batch_delay_seconds=0.2),
        sleep=fake_sleep,
    )
    wanted = [f"{i:04d}" for i in range(25)] + ["0001", ""]

    quotes = asyncio.run(resolver.get_quotes_batch(wanted))

    assert set(quotes) == set(prices)
    assert pauses == [0.2, 0.2]
