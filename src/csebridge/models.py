"""
Data models for the CSE bridge.

Records returned by the gateway, and the fallback value each operation
returns when the upstream call fails. ``to_dict()`` produces the wire
shape (camelCase keys) that tools serialize to JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

UNAVAILABLE = "Unavailable"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Enums ────────────────────────────────────────────────────

class BookStatus(str, Enum):
    ACTIVE = "Active"
    CLOSED = "Closed/Unavailable"


class ReportType(str, Enum):
    QUARTERLY = "Quarterly"
    ANNUAL = "Annual"


class ChartPeriod(str, Enum):
    """Chart resolutions understood by companyChartDataByStock."""
    INTRADAY = "1"
    WEEKLY = "2"
    MONTHLY = "3"
    DAILY = "5"


# ── Market-wide records ──────────────────────────────────────

@dataclass
class StockRecord:
    """One row of the full market listing (tradeSummary)."""
    symbol: str
    id: str
    price: float
    name: str
    change: float
    change_percent: float
    turnover: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "id": self.id,
            "price": self.price,
            "name": self.name,
            "change": self.change,
            "changePercent": self.change_percent,
            "turnover": self.turnover,
            "volume": self.volume,
        }


@dataclass
class MoverRecord:
    """A top gainer or top loser."""
    symbol: str
    id: str
    price: float
    name: str
    change: float
    change_percent: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "id": self.id,
            "price": self.price,
            "name": self.name,
            "change": self.change,
            "changePercent": self.change_percent,
            "volume": self.volume,
        }


@dataclass
class SectorRecord:
    name: str
    change: float
    turnover: float

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "change": self.change, "turnover": self.turnover}


@dataclass
class MarketStatus:
    status: str
    timestamp: str = field(default_factory=utc_timestamp)

    @classmethod
    def unknown(cls) -> MarketStatus:
        return cls(status="Unknown")

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "timestamp": self.timestamp}


@dataclass
class MarketSummary:
    market_pe: float = 0
    market_pb: float = 0
    net_foreign_flow: float = 0
    total_turnover: float = 0
    total_volume: float = 0
    timestamp: str = field(default_factory=utc_timestamp)
    status: str | None = None

    @classmethod
    def unavailable(cls) -> MarketSummary:
        return cls(status=UNAVAILABLE)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "marketPE": self.market_pe,
            "marketPB": self.market_pb,
            "netForeignFlow": self.net_foreign_flow,
            "totalTurnover": self.total_turnover,
            "totalVolume": self.total_volume,
            "timestamp": self.timestamp,
        }
        if self.status:
            data["status"] = self.status
        return data


# ── Per-symbol records ───────────────────────────────────────

@dataclass
class Quote:
    """One price level of the order book."""
    price: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {"price": self.price, "volume": self.volume}


@dataclass
class OrderBookSnapshot:
    """
    Market depth with derived metrics.

    pressure_index is in [-1, 1]: -1 means only sellers, +1 only buyers.
    Never cached; recomputed on every request.
    """
    symbol: str
    total_bids: float = 0
    total_asks: float = 0
    pressure_index: float = 0
    spread_percentage: float = 0
    bids: list[Quote] = field(default_factory=list)
    asks: list[Quote] = field(default_factory=list)
    status: BookStatus = BookStatus.ACTIVE

    @classmethod
    def unavailable(cls, symbol: str) -> OrderBookSnapshot:
        return cls(symbol=symbol, status=BookStatus.CLOSED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "totalBids": self.total_bids,
            "totalAsks": self.total_asks,
            "pressureIndex": self.pressure_index,
            "spreadPercentage": self.spread_percentage,
            "bids": [q.to_dict() for q in self.bids],
            "asks": [q.to_dict() for q in self.asks],
            "status": self.status.value,
        }


@dataclass
class StockSnapshot:
    symbol: str
    open: float = 0
    high: float = 0
    low: float = 0
    last: float = 0
    volume: float = 0
    crossing_volume: float = 0
    change: float = 0
    change_percent: float = 0
    status: str | None = None

    @classmethod
    def unavailable(cls, symbol: str) -> StockSnapshot:
        return cls(symbol=symbol, status=UNAVAILABLE)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "symbol": self.symbol,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "last": self.last,
            "volume": self.volume,
            "crossingVolume": self.crossing_volume,
            "change": self.change,
            "changePercent": self.change_percent,
        }
        if self.status:
            data["status"] = self.status
        return data


@dataclass
class Candle:
    date: Any
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass
class Trade:
    symbol: str | None
    price: float
    volume: float
    time: Any = None
    buyer: Any = None
    seller: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "volume": self.volume,
            "time": self.time,
            "buyer": self.buyer,
            "seller": self.seller,
        }


@dataclass
class FinancialReport:
    type: ReportType
    period: str | None
    url: str
    upload_date: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "period": self.period,
            "url": self.url,
            "uploadDate": self.upload_date,
        }


def unavailable_profile(symbol: str) -> dict[str, Any]:
    """Fallback for companyProfile, which is otherwise passed through as-is."""
    return {"symbol": symbol, "name": symbol, "status": UNAVAILABLE}
