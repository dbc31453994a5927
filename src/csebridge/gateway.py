"""
Market data gateway — one fetch-and-normalize routine per CSE endpoint.

Each read follows the same shape: resolve the symbol if the endpoint needs
an internal id, POST once, normalize into a record from ``models``, cache
where listed below, and on any upstream failure log it and return the
operation's fallback.

    operation               endpoint                   cache key
    list_stocks             tradeSummary               all_stocks
    get_sectors             allSectors                 all_sectors
    get_market_status       marketStatus               -
    get_market_summary      dailyMarketSummery         market_summary
    get_top_gainers         topGainers                 -
    get_top_losers          topLosers                  -
    get_order_book          orderBook                  -
    get_stock_snapshot      todaySharePrice            -
    get_chart_data          companyChartDataByStock    -
    get_detailed_trades     detailedTrades             -
    get_company_profile     companyProfile             -
    get_financial_reports   financials                 -
    get_noncompliance_list  getNonComplianceAnnouncements  -

Two failures are not absorbed: an unknown ticker (SymbolNotFoundError)
and a failed market listing (MarketScanError), which is also the only
writer of the symbol directory.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from .cache import ResponseCache
from .config import Settings
from .directory import SymbolDirectory
from .errors import MarketScanError
from .models import (
    BookStatus,
    Candle,
    ChartPeriod,
    FinancialReport,
    MarketStatus,
    MarketSummary,
    MoverRecord,
    OrderBookSnapshot,
    Quote,
    ReportType,
    SectorRecord,
    StockRecord,
    StockSnapshot,
    Trade,
    unavailable_profile,
)
from .normalize import MOVER_FIELDS, SECTOR_FIELDS, STOCK_FIELDS, fix_cdn_url, pick, to_number
from .upstream import CSEHttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

BOOK_DEPTH = 5
REPORTS_PER_TYPE = 3
DEFAULT_MOVERS_LIMIT = 10


# ── Derived order book metrics ──────────────────────────────

def pressure_index(total_bids: float, total_asks: float) -> float:
    """(bids - asks) / (bids + asks), 4 dp; 0 when there is no volume."""
    total = total_bids + total_asks
    if total <= 0:
        return 0
    return round((total_bids - total_asks) / total, 4)


def spread_percentage(bids: Sequence[Quote], asks: Sequence[Quote]) -> float:
    """Best ask over best bid as a percentage, 4 dp; 0 without both sides."""
    if not bids or not asks:
        return 0
    best_bid = bids[0].price
    best_ask = asks[0].price
    if best_bid <= 0:
        return 0
    return round((best_ask - best_bid) / best_bid * 100, 4)


def _rows(data: Any, *keys: str) -> list:
    """
    Pull the record list out of a response.

    Lists pass through. For mappings the first present key wins; a mapping
    with none of the keys counts as "no rows" only when keys were given.
    """
    rows = data
    if isinstance(data, dict) and keys:
        rows = next((data[key] for key in keys if key in data), None) or []
    if not isinstance(rows, list):
        raise ValueError(f"Unexpected response shape: {type(rows).__name__}")
    return rows


def _mapping(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected response shape: {type(data).__name__}")
    return data


def build_order_book(symbol: str, data: Any) -> OrderBookSnapshot:
    data = _mapping(data)
    totals = data.get("reqOrderBookTotal") or {}
    total_bids = to_number(totals.get("totalBids"))
    total_asks = to_number(totals.get("totalAsks"))

    entries = _rows(data, "reqOrderBook")
    sides: dict[str, list[Quote]] = {"BID": [], "ASK": []}
    for entry in entries:
        side = sides.get(entry.get("type"))
        if side is not None and len(side) < BOOK_DEPTH:
            side.append(Quote(price=to_number(entry.get("price")), volume=to_number(entry.get("quantity"))))

    bids, asks = sides["BID"], sides["ASK"]
    return OrderBookSnapshot(
        symbol=symbol,
        total_bids=total_bids,
        total_asks=total_asks,
        pressure_index=pressure_index(total_bids, total_asks),
        spread_percentage=spread_percentage(bids, asks),
        bids=bids,
        asks=asks,
        status=BookStatus.ACTIVE,
    )


class CSEGateway:
    """
    Entry point for all market data.

    Owns the response cache and the symbol directory; both are plain
    in-process state shared by every operation on this instance.
    """

    def __init__(
        self,
        http: CSEHttpClient | None = None,
        settings: Settings | None = None,
        cache: ResponseCache | None = None,
    ):
        self.settings = settings or Settings()
        self.http = http or CSEHttpClient(self.settings)
        self.cache = cache or ResponseCache(ttl=self.settings.cache_ttl)
        self.directory = SymbolDirectory(self._refresh_listing)

    async def close(self) -> None:
        await self.http.close()

    async def _guarded(
        self,
        what: str,
        fetch: Callable[[], Awaitable[T]],
        fallback: Callable[[], T],
    ) -> T:
        """Run ``fetch``; on any failure log it and return ``fallback()``."""
        try:
            return await fetch()
        except Exception as e:
            logger.warning(f"{what} unavailable: {e}")
            return fallback()

    # ── Listing and symbol directory ────────────────────────

    async def _refresh_listing(self) -> list[StockRecord]:
        return await self.list_stocks(use_cache=False)

    async def warm_up(self) -> bool:
        return await self.directory.warm_up()

    def _stock_record(self, raw: dict) -> StockRecord | None:
        symbol = raw.get("symbol")
        internal_id = raw.get("id")
        if not symbol or internal_id is None:
            return None
        internal_id = str(internal_id)
        self.directory.record(symbol, internal_id)

        return StockRecord(
            symbol=symbol,
            id=internal_id,
            price=to_number(pick(raw, STOCK_FIELDS["price"])),
            name=pick(raw, STOCK_FIELDS["name"]) or symbol,
            change=to_number(pick(raw, STOCK_FIELDS["change"])),
            change_percent=to_number(pick(raw, STOCK_FIELDS["changePercent"])),
            turnover=to_number(pick(raw, STOCK_FIELDS["turnover"])),
            volume=to_number(pick(raw, STOCK_FIELDS["volume"])),
        )

    async def list_stocks(self, use_cache: bool = True) -> list[StockRecord]:
        """
        Full market listing. Every fetch also rewrites the symbol directory.

        Raises MarketScanError if the listing cannot be fetched.
        """
        if use_cache:
            cached = self.cache.get("all_stocks")
            if cached is not None:
                return cached

        try:
            data = await self.http.post("tradeSummary")
            # "Summery" is the upstream spelling
            rows = _rows(data, "reqTradeSummery")
            stocks = [record for record in map(self._stock_record, rows) if record is not None]
        except Exception as e:
            logger.error(f"Error fetching stocks: {e}")
            raise MarketScanError(f"Market scan failed: {e}") from e

        self.cache.set("all_stocks", stocks)
        return stocks

    # ── Market-wide reads ───────────────────────────────────

    async def get_sectors(self) -> list[SectorRecord]:
        cached = self.cache.get("all_sectors")
        if cached is not None:
            return cached

        async def fetch() -> list[SectorRecord]:
            rows = _rows(await self.http.post("allSectors"))
            sectors = [
                SectorRecord(
                    name=pick(row, SECTOR_FIELDS["name"]),
                    change=to_number(pick(row, SECTOR_FIELDS["change"])),
                    turnover=to_number(pick(row, SECTOR_FIELDS["turnover"])),
                )
                for row in rows
            ]
            self.cache.set("all_sectors", sectors)
            return sectors

        return await self._guarded("Sector data", fetch, list)

    async def get_market_status(self) -> MarketStatus:
        async def fetch() -> MarketStatus:
            data = _mapping(await self.http.post("marketStatus"))
            return MarketStatus(status=data.get("status") or "Unknown")

        return await self._guarded("Market status", fetch, MarketStatus.unknown)

    async def get_market_summary(self) -> MarketSummary:
        cached = self.cache.get("market_summary")
        if cached is not None:
            return cached

        async def fetch() -> MarketSummary:
            data = _mapping(await self.http.post("dailyMarketSummery"))
            summary = MarketSummary(
                market_pe=to_number(data.get("marketPE")),
                market_pb=to_number(data.get("marketPB")),
                net_foreign_flow=to_number(data.get("netForeignFlow")),
                total_turnover=to_number(data.get("totalTurnover")),
                total_volume=to_number(data.get("totalVolume")),
            )
            self.cache.set("market_summary", summary)
            return summary

        return await self._guarded("Market summary", fetch, MarketSummary.unavailable)

    async def _movers(self, endpoint: str, limit: int) -> list[MoverRecord]:
        rows = _rows(await self.http.post(endpoint))
        return [
            MoverRecord(
                symbol=row.get("symbol"),
                id=str(row.get("id", "")),
                price=to_number(pick(row, MOVER_FIELDS["price"])),
                name=pick(row, MOVER_FIELDS["name"]) or row.get("symbol"),
                change=to_number(pick(row, MOVER_FIELDS["change"])),
                change_percent=to_number(pick(row, MOVER_FIELDS["changePercent"])),
                volume=to_number(pick(row, MOVER_FIELDS["volume"])),
            )
            for row in rows[:limit]
        ]

    async def get_top_gainers(self, limit: int = DEFAULT_MOVERS_LIMIT) -> list[MoverRecord]:
        return await self._guarded("Top gainers", lambda: self._movers("topGainers", limit), list)

    async def get_top_losers(self, limit: int = DEFAULT_MOVERS_LIMIT) -> list[MoverRecord]:
        return await self._guarded("Top losers", lambda: self._movers("topLosers", limit), list)

    async def get_noncompliance_list(self) -> list[str]:
        """Companies under non-compliance announcements, deduplicated."""

        async def fetch() -> list[str]:
            data = _mapping(await self.http.post("getNonComplianceAnnouncements"))
            announcements = _rows(data, "nonComplianceAnnouncements")
            companies = (item.get("company") for item in announcements)
            return list(dict.fromkeys(c for c in companies if c))

        return await self._guarded("Non-compliance list", fetch, list)

    # ── Per-symbol reads ────────────────────────────────────

    async def get_order_book(self, symbol: str) -> OrderBookSnapshot:
        """
        Market depth with pressure index and spread.

        Degrades to a zeroed "Closed/Unavailable" snapshot when the order
        book cannot be fetched (typically because the market is closed).
        """
        stock_id = await self.directory.resolve(symbol)

        async def fetch() -> OrderBookSnapshot:
            data = await self.http.post("orderBook", {"stockId": stock_id})
            return build_order_book(symbol, data)

        return await self._guarded(
            f"Order book for {symbol}", fetch, lambda: OrderBookSnapshot.unavailable(symbol)
        )

    async def get_stock_snapshot(self, symbol: str) -> StockSnapshot:
        async def fetch() -> StockSnapshot:
            data = _mapping(await self.http.post("todaySharePrice", {"symbol": symbol}))
            return StockSnapshot(
                symbol=symbol,
                open=to_number(data.get("open")),
                high=to_number(data.get("high")),
                low=to_number(data.get("low")),
                last=to_number(data.get("last")),
                volume=to_number(data.get("volume")),
                crossing_volume=to_number(data.get("crossingVolume")),
                change=to_number(data.get("change")),
                change_percent=to_number(data.get("changePercent")),
            )

        return await self._guarded(
            f"Snapshot for {symbol}", fetch, lambda: StockSnapshot.unavailable(symbol)
        )

    async def get_chart_data(
        self,
        symbol: str,
        period: ChartPeriod | str = ChartPeriod.DAILY,
    ) -> list[Candle]:
        period = ChartPeriod(period)
        stock_id = await self.directory.resolve(symbol)

        async def fetch() -> list[Candle]:
            data = await self.http.post(
                "companyChartDataByStock", {"stockId": stock_id, "period": period.value}
            )
            return [
                Candle(
                    date=candle.get("date"),
                    open=to_number(candle.get("open")),
                    high=to_number(candle.get("high")),
                    low=to_number(candle.get("low")),
                    close=to_number(candle.get("close")),
                    volume=to_number(candle.get("volume")),
                )
                for candle in _rows(data, "reqCompanyChartData")
            ]

        return await self._guarded(f"Chart data for {symbol}", fetch, list)

    async def get_detailed_trades(self, symbol: str | None = None) -> list[Trade]:
        async def fetch() -> list[Trade]:
            body = {"symbol": symbol} if symbol else None
            return [
                Trade(
                    symbol=trade.get("symbol"),
                    price=to_number(trade.get("price")),
                    volume=to_number(trade.get("volume")),
                    time=trade.get("time"),
                    buyer=trade.get("buyer"),
                    seller=trade.get("seller"),
                )
                for trade in _rows(await self.http.post("detailedTrades", body))
            ]

        return await self._guarded("Trade data", fetch, list)

    async def get_company_profile(self, symbol: str) -> dict[str, Any]:
        async def fetch() -> dict[str, Any]:
            return _mapping(await self.http.post("companyProfile", {"symbol": symbol}))

        return await self._guarded(
            f"Company profile for {symbol}", fetch, lambda: unavailable_profile(symbol)
        )

    def _reports(self, rows: list, report_type: ReportType) -> list[FinancialReport]:
        return [
            FinancialReport(
                type=report_type,
                period=report.get("fileText"),
                url=fix_cdn_url(report.get("path"), self.settings.cdn_base, self.settings.cdn_prefix),
                upload_date=report.get("uploadDate"),
            )
            for report in rows[:REPORTS_PER_TYPE]
        ]

    async def get_financial_reports(self, symbol: str) -> list[FinancialReport]:
        """Latest quarterly and annual report links (up to 3 of each)."""

        async def fetch() -> list[FinancialReport]:
            data = _mapping(await self.http.post("financials", {"symbol": symbol}))
            return (
                self._reports(_rows(data, "infoQuarterlyData"), ReportType.QUARTERLY)
                + self._reports(_rows(data, "infoAnnualData"), ReportType.ANNUAL)
            )

        return await self._guarded(f"Financial reports for {symbol}", fetch, list)
