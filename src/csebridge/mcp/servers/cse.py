"""
CSE market data tool server.

Exposes the Colombo Stock Exchange gateway as tools: market scan, sectors,
status, summary, movers, order book, snapshot, chart, trades, company
profile, financial reports and the non-compliance list.

Run as:
    python -m csebridge.mcp.servers.cse [--config cse.yaml] [--no-warm-up]

The symbol directory is warmed in the background once serving starts, so
the first order book or chart call does not pay for the full listing.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Iterable

from csebridge.config import Settings
from csebridge.gateway import DEFAULT_MOVERS_LIMIT, CSEGateway
from csebridge.mcp.server import StdioToolServer, ToolHandler
from csebridge.models import ChartPeriod, StockRecord

logger = logging.getLogger(__name__)

SERVER_NAME = "cse-mcp-server"

SYMBOL_PARAM = {"type": "string", "description": "Stock symbol (e.g., JKH.N0000)"}


def _number_arg(params: dict[str, Any], key: str) -> float | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}")


def _limit_arg(params: dict[str, Any]) -> int:
    try:
        limit = int(float(params.get("limit") or DEFAULT_MOVERS_LIMIT))
    except (TypeError, ValueError):
        return DEFAULT_MOVERS_LIMIT
    return limit if limit > 0 else DEFAULT_MOVERS_LIMIT


def filter_stocks(
    stocks: Iterable[StockRecord],
    max_price: float | None = None,
    min_volume: float | None = None,
) -> list[StockRecord]:
    """Drop illiquid and over-priced stocks, most liquid (turnover) first."""
    filtered = list(stocks)
    if min_volume is not None and min_volume > 0:
        filtered = [s for s in filtered if s.volume >= min_volume]
    if max_price is not None:
        filtered = [s for s in filtered if s.price <= max_price]
    return sorted(filtered, key=lambda s: s.turnover, reverse=True)


class GatewayTool(ToolHandler):
    """Base for tools backed by a CSEGateway."""

    def __init__(self, gateway: CSEGateway):
        self.gateway = gateway


class ScanMarketTool(GatewayTool):
    name = "scan_market"
    description = (
        "Get all stocks trading on CSE with current prices, sorted by turnover. "
        "Filter by max price for penny stock scanning and by minimum volume "
        "to exclude dead/illiquid stocks."
    )
    parameters = {
        "maxPrice": {
            "type": "number",
            "description": "Optional: only return stocks priced at or below this value (LKR)",
        },
        "minVolume": {
            "type": "number",
            "description": "Optional: only return stocks with at least this volume",
        },
    }

    async def handle(self, params: dict[str, Any]) -> list[StockRecord]:
        max_price = _number_arg(params, "maxPrice")
        min_volume = _number_arg(params, "minVolume")
        stocks = await self.gateway.list_stocks()
        return filter_stocks(stocks, max_price=max_price, min_volume=min_volume)


class GetSectorsTool(GatewayTool):
    name = "get_sectors"
    description = "Get performance data for all market sectors, including change and turnover."

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_sectors()


class GetMarketStatusTool(GatewayTool):
    name = "get_market_status"
    description = "Check whether the market is currently open or closed."

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_market_status()


class GetMarketSummaryTool(GatewayTool):
    name = "get_market_summary"
    description = "Get the daily market overview: P/E, P/B, net foreign flow, turnover and volume."

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_market_summary()


class GetTopGainersTool(GatewayTool):
    name = "get_top_gainers"
    description = "Get the top performing stocks (highest % increase)."
    parameters = {
        "limit": {
            "type": "number",
            "description": "Number of stocks to return (default: 10)",
            "default": DEFAULT_MOVERS_LIMIT,
        },
    }

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_top_gainers(_limit_arg(params))


class GetTopLosersTool(GatewayTool):
    name = "get_top_losers"
    description = (
        "Get the worst performing stocks (highest % decrease). "
        "Useful for spotting oversold stocks or for risk screening."
    )
    parameters = GetTopGainersTool.parameters

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_top_losers(_limit_arg(params))


class GetOrderBookTool(GatewayTool):
    name = "get_order_book"
    description = (
        "Get market depth (bids vs asks) with pressure index "
        "(-1 = bearish to +1 = bullish) and spread percentage."
    )
    parameters = {"symbol": SYMBOL_PARAM}
    required = ("symbol",)

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_order_book(str(params["symbol"]))


class GetStockSnapshotTool(GatewayTool):
    name = "get_stock_snapshot"
    description = "Get today's data for a stock: open, high, low, last price and volume."
    parameters = {"symbol": SYMBOL_PARAM}
    required = ("symbol",)

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_stock_snapshot(str(params["symbol"]))


class GetChartDataTool(GatewayTool):
    name = "get_chart_data"
    description = "Get historical OHLCV (candlestick) data for a stock."
    parameters = {
        "symbol": SYMBOL_PARAM,
        "period": {
            "type": "string",
            "description": "Time period: 1=Intraday, 2=Weekly, 3=Monthly, 5=Daily",
            "enum": [p.value for p in ChartPeriod],
            "default": ChartPeriod.DAILY.value,
        },
    }
    required = ("symbol",)

    async def handle(self, params: dict[str, Any]) -> Any:
        raw_period = params.get("period")
        if raw_period in (None, ""):
            period = ChartPeriod.DAILY
        else:
            if isinstance(raw_period, float) and raw_period.is_integer():
                raw_period = int(raw_period)
            try:
                period = ChartPeriod(str(raw_period))
            except ValueError:
                allowed = ", ".join(p.value for p in ChartPeriod)
                raise ValueError(f"period must be one of {allowed}, got {raw_period!r}")
        return await self.gateway.get_chart_data(str(params["symbol"]), period)


class GetDetailedTradesTool(GatewayTool):
    name = "get_detailed_trades"
    description = "Get tick-by-tick trade data, optionally for a single stock."
    parameters = {
        "symbol": {"type": "string", "description": "Optional: stock symbol to filter trades"},
    }

    async def handle(self, params: dict[str, Any]) -> Any:
        symbol = params.get("symbol") or None
        return await self.gateway.get_detailed_trades(symbol)


class GetCompanyProfileTool(GatewayTool):
    name = "get_company_profile"
    description = "Get company information: directors, secretaries, registrars."
    parameters = {"symbol": SYMBOL_PARAM}
    required = ("symbol",)

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_company_profile(str(params["symbol"]))


class GetFinancialReportsTool(GatewayTool):
    name = "get_financial_reports"
    description = "Get links to the latest quarterly and annual financial reports (PDFs)."
    parameters = {"symbol": SYMBOL_PARAM}
    required = ("symbol",)

    async def handle(self, params: dict[str, Any]) -> Any:
        return await self.gateway.get_financial_reports(str(params["symbol"]))


class GetNonComplianceListTool(GatewayTool):
    name = "get_noncompliance_list"
    description = (
        "Get companies on the exchange's non-compliance watch list or facing "
        "enforcement action. Use as a negative screen."
    )

    async def handle(self, params: dict[str, Any]) -> Any:
        return {"noncompliant_companies": await self.gateway.get_noncompliance_list()}


TOOLS: tuple[type[GatewayTool], ...] = (
    ScanMarketTool,
    GetSectorsTool,
    GetMarketStatusTool,
    GetMarketSummaryTool,
    GetTopGainersTool,
    GetTopLosersTool,
    GetOrderBookTool,
    GetStockSnapshotTool,
    GetChartDataTool,
    GetDetailedTradesTool,
    GetCompanyProfileTool,
    GetFinancialReportsTool,
    GetNonComplianceListTool,
)


def build_server(
    settings: Settings | None = None,
    gateway: CSEGateway | None = None,
) -> StdioToolServer:
    """Wire a gateway into a server with every CSE tool registered."""
    settings = settings or Settings()
    gateway = gateway or CSEGateway(settings=settings)

    server = StdioToolServer(SERVER_NAME)
    for tool_cls in TOOLS:
        server.register(tool_cls(gateway))

    if settings.warm_up:
        server.on_startup(gateway.warm_up)
    server.on_shutdown(gateway.close)
    return server


def load_settings(argv: list[str] | None = None) -> Settings:
    parser = argparse.ArgumentParser(prog=SERVER_NAME, description="CSE market data tool server (stdio)")
    parser.add_argument("--config", help="YAML settings file (overrides CSE_* environment variables)")
    parser.add_argument("--no-warm-up", action="store_true", help="Skip the background symbol directory load")
    parser.add_argument("--log-level", help="Log level (default: INFO)")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    if args.config:
        settings = Settings.from_yaml(args.config, base=settings)
    overrides: dict[str, Any] = {}
    if args.no_warm_up:
        overrides["warm_up"] = False
    if args.log_level:
        overrides["log_level"] = args.log_level
    return Settings.from_dict(overrides, base=settings)


def main(argv: list[str] | None = None) -> None:
    settings = load_settings(argv)

    # stdout carries the protocol
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    build_server(settings).run()


if __name__ == "__main__":
    main()
