"""
Dispatch tests — the CSE tool server driven in-process.

Exercises argument validation, scan_market filtering, result envelopes
and the JSON-RPC method handling, without a subprocess or network.
"""

import asyncio
import io
import json

import pytest

from csebridge.config import Settings
from csebridge.mcp.server import StdioToolServer, ToolHandler
from csebridge.mcp.servers.cse import TOOLS, build_server, filter_stocks, load_settings
from csebridge.models import StockRecord


def _stock(symbol, price, volume, turnover):
    return StockRecord(
        symbol=symbol, id=symbol, price=price, name=symbol,
        change=0, change_percent=0, turnover=turnover, volume=volume,
    )


def _payload(envelope):
    return json.loads(envelope["content"][0]["text"])


@pytest.fixture
def server_for(make_gateway):
    def _make(responses=None):
        gateway, fake = make_gateway(responses)
        return build_server(Settings(warm_up=False), gateway=gateway), fake

    return _make


def call(server, name, arguments=None):
    return asyncio.run(server.call_tool(name, arguments))


# ── Catalog ─────────────────────────────────────────────────

class TestCatalog:
    def test_all_tools_registered(self, server_for):
        server, _ = server_for()
        names = [t["name"] for t in server.list_tools()]
        assert names == [
            "scan_market", "get_sectors", "get_market_status", "get_market_summary",
            "get_top_gainers", "get_top_losers", "get_order_book", "get_stock_snapshot",
            "get_chart_data", "get_detailed_trades", "get_company_profile",
            "get_financial_reports", "get_noncompliance_list",
        ]

    def test_required_arguments_declared(self, server_for):
        server, _ = server_for()
        schemas = {t["name"]: t for t in server.list_tools()}
        for name in ("get_order_book", "get_stock_snapshot", "get_chart_data",
                     "get_company_profile", "get_financial_reports"):
            assert schemas[name]["inputSchema"]["required"] == ["symbol"]
        assert schemas["get_detailed_trades"]["inputSchema"]["required"] == []
        assert schemas["get_chart_data"]["inputSchema"]["properties"]["period"]["enum"] == ["1", "2", "3", "5"]

    def test_every_tool_has_description(self):
        assert all(tool.name and tool.description for tool in TOOLS)


# ── scan_market ─────────────────────────────────────────────

class TestScanMarket:
    def test_min_volume_drops_dead_stock(self):
        stocks = [_stock("A", price=10, volume=5, turnover=50), _stock("B", price=1, volume=0, turnover=1)]
        assert [s.symbol for s in filter_stocks(stocks, min_volume=1)] == ["A"]

    def test_sorted_by_turnover_descending(self):
        stocks = [_stock("A", 1, 1, 10), _stock("B", 1, 1, 300), _stock("C", 1, 1, 20)]
        assert [s.symbol for s in filter_stocks(stocks)] == ["B", "C", "A"]

    def test_max_price(self):
        stocks = [_stock("A", 10, 1, 1), _stock("B", 20, 1, 2), _stock("C", 20.5, 1, 3)]
        assert [s.symbol for s in filter_stocks(stocks, max_price=20)] == ["B", "A"]

    def test_filters_compose(self):
        stocks = [_stock("A", 10, 0, 9), _stock("B", 50, 100, 8), _stock("C", 5, 100, 7)]
        assert [s.symbol for s in filter_stocks(stocks, max_price=20, min_volume=10)] == ["C"]

    def test_zero_min_volume_keeps_everything(self):
        stocks = [_stock("A", 1, 0, 1)]
        assert len(filter_stocks(stocks, min_volume=0)) == 1

    def test_tool_end_to_end(self, server_for, listing):
        server, _ = server_for({"tradeSummary": listing})
        envelope = call(server, "scan_market", {"minVolume": 1, "maxPrice": 2000})

        assert "isError" not in envelope
        stocks = _payload(envelope)
        assert [s["symbol"] for s in stocks] == ["JKH.N0000", "DIAL.N0000"]
        assert stocks[0]["changePercent"] == 0.45
        assert stocks[0]["id"] == "204"

    def test_listing_failure_is_error_envelope(self, server_for):
        server, _ = server_for({})
        envelope = call(server, "scan_market")
        assert envelope["isError"] is True
        assert "Market scan failed" in _payload(envelope)["error"]

    def test_non_numeric_filter(self, server_for, listing):
        server, _ = server_for({"tradeSummary": listing})
        envelope = call(server, "scan_market", {"maxPrice": "cheap"})
        assert envelope["isError"] is True
        assert "maxPrice" in _payload(envelope)["error"]


# ── Argument handling ───────────────────────────────────────

class TestArguments:
    @pytest.mark.parametrize("name", [
        "get_order_book", "get_stock_snapshot", "get_chart_data",
        "get_company_profile", "get_financial_reports",
    ])
    def test_missing_symbol_fails_before_gateway(self, server_for, name):
        server, fake = server_for({})
        envelope = call(server, name, {})

        assert envelope["isError"] is True
        assert _payload(envelope) == {"error": "symbol is required"}
        assert fake.calls == []

    def test_empty_symbol_counts_as_missing(self, server_for):
        server, _ = server_for({})
        assert call(server, "get_order_book", {"symbol": ""})["isError"] is True

    def test_unknown_tool(self, server_for):
        server, _ = server_for({})
        envelope = call(server, "buy_everything")
        assert envelope["isError"] is True
        assert _payload(envelope) == {"error": "Unknown tool: buy_everything"}

    def test_unknown_symbol(self, server_for, listing):
        server, _ = server_for({"tradeSummary": listing})
        envelope = call(server, "get_order_book", {"symbol": "NOPE.N0000"})
        assert envelope["isError"] is True
        assert _payload(envelope)["error"] == "Symbol NOPE.N0000 not found on CSE"

    def test_limit_defaults_and_clamps(self, server_for):
        rows = [{"symbol": f"S{i}", "id": i} for i in range(15)]
        server, _ = server_for({"topGainers": rows, "topLosers": rows})

        assert len(_payload(call(server, "get_top_gainers"))) == 10
        assert len(_payload(call(server, "get_top_gainers", {"limit": 3}))) == 3
        assert len(_payload(call(server, "get_top_losers", {"limit": -1}))) == 10
        assert len(_payload(call(server, "get_top_losers", {"limit": "lots"}))) == 10

    def test_chart_period_coercion(self, server_for, listing):
        server, fake = server_for({"tradeSummary": listing, "companyChartDataByStock": []})
        call(server, "get_chart_data", {"symbol": "JKH.N0000", "period": 3})
        assert fake.calls[-1] == ("companyChartDataByStock", {"stockId": "204", "period": "3"})

    def test_invalid_chart_period(self, server_for, listing):
        server, fake = server_for({"tradeSummary": listing})
        envelope = call(server, "get_chart_data", {"symbol": "JKH.N0000", "period": "4"})
        assert envelope["isError"] is True
        assert "period" in _payload(envelope)["error"]
        assert fake.calls == []

    def test_detailed_trades_symbol_optional(self, server_for):
        server, fake = server_for({"detailedTrades": []})
        assert _payload(call(server, "get_detailed_trades")) == []
        assert fake.calls == [("detailedTrades", None)]


# ── Fallback results ────────────────────────────────────────

class TestFallbacks:
    def test_order_book_closed_is_not_an_error(self, server_for, listing):
        server, _ = server_for({"tradeSummary": listing, "orderBook": TimeoutError("timed out")})
        envelope = call(server, "get_order_book", {"symbol": "JKH.N0000"})

        assert "isError" not in envelope
        book = _payload(envelope)
        assert book["status"] == "Closed/Unavailable"
        assert book["totalBids"] == 0 and book["pressureIndex"] == 0

    def test_noncompliance_payload(self, server_for):
        server, _ = server_for({"getNonComplianceAnnouncements": {
            "nonComplianceAnnouncements": [{"company": "ABC.N0000"}],
        }})
        assert _payload(call(server, "get_noncompliance_list")) == {"noncompliant_companies": ["ABC.N0000"]}

    def test_market_status_payload(self, server_for):
        server, _ = server_for({})
        assert _payload(call(server, "get_market_status"))["status"] == "Unknown"


# ── JSON-RPC handling ───────────────────────────────────────

class EchoTool(ToolHandler):
    name = "echo"
    description = "Echo the arguments back"
    parameters = {"text": {"type": "string", "description": "Text to echo"}}
    required = ("text",)

    async def handle(self, params):
        return {"text": params["text"]}


class TestJsonRpc:
    def _server(self):
        server = StdioToolServer("test-server")
        server.register(EchoTool())
        return server

    def _roundtrip(self, server, line):
        reply = asyncio.run(server.handle_line(line))
        return json.loads(reply) if reply else None

    def test_initialize(self):
        response = self._roundtrip(self._server(), '{"jsonrpc": "2.0", "id": 1, "method": "initialize"}')
        assert response["result"]["serverInfo"]["name"] == "test-server"
        assert response["result"]["protocolVersion"] == "2024-11-05"

    def test_tools_list_shape(self):
        response = self._roundtrip(self._server(), '{"jsonrpc": "2.0", "id": 3, "method": "tools/list"}')
        [tool] = response["result"]["tools"]
        assert tool["name"] == "echo"
        assert tool["inputSchema"] == {
            "type": "object",
            "properties": {"text": {"type": "string", "description": "Text to echo"}},
            "required": ["text"],
        }

    def test_tools_call(self):
        line = json.dumps({
            "jsonrpc": "2.0", "id": 7, "method": "tools/call",
            "params": {"name": "echo", "arguments": {"text": "hi"}},
        })
        response = self._roundtrip(self._server(), line)
        assert response["id"] == 7
        assert json.loads(response["result"]["content"][0]["text"]) == {"text": "hi"}

    def test_unknown_method(self):
        response = self._roundtrip(self._server(), '{"jsonrpc": "2.0", "id": 2, "method": "resources/list"}')
        assert response["error"]["code"] == -32601

    def test_parse_error(self):
        response = self._roundtrip(self._server(), "{not json")
        assert response["error"]["code"] == -32700
        assert response["id"] is None

    @pytest.mark.parametrize("line", ["[1, 2]", '{"jsonrpc": "2.0", "id": 4}', '{"method": "tools/call", "params": [1]}'])
    def test_invalid_request(self, line):
        response = self._roundtrip(self._server(), line)
        assert response["error"]["code"] == -32600

    def test_notification_gets_no_reply(self):
        assert self._roundtrip(self._server(), '{"jsonrpc": "2.0", "method": "notifications/initialized"}') is None

    def test_serve_until_eof(self):
        server = self._server()
        events = []

        async def startup():
            events.append("started")
            await asyncio.sleep(3600)

        async def shutdown():
            events.append("stopped")

        server.on_startup(startup)
        server.on_shutdown(shutdown)

        stdin = io.StringIO(
            '{"jsonrpc": "2.0", "id": 1, "method": "tools/list"}\n'
            "\n"
            '{"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": {"name": "echo", "arguments": {}}}\n'
        )
        stdout = io.StringIO()
        asyncio.run(server.serve(stdin=stdin, stdout=stdout))

        replies = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [r["id"] for r in replies] == [1, 2]
        assert replies[0]["result"]["tools"][0]["name"] == "echo"
        assert replies[1]["result"]["isError"] is True
        assert events == ["started", "stopped"]


# ── CLI settings ────────────────────────────────────────────

class TestLoadSettings:
    def test_flags_override_env(self, monkeypatch):
        monkeypatch.setenv("CSE_LOG_LEVEL", "debug")
        monkeypatch.setenv("CSE_WARM_UP", "1")
        settings = load_settings(["--no-warm-up"])
        assert settings.warm_up is False
        assert settings.log_level == "DEBUG"

    def test_config_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CSE_TIMEOUT", raising=False)
        config = tmp_path / "cse.yaml"
        config.write_text("timeout: 5\n")
        settings = load_settings(["--config", str(config), "--log-level", "warning"])
        assert settings.timeout == 5.0
        assert settings.log_level == "WARNING"
