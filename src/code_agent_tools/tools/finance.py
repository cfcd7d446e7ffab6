"""
Stock market tools backed by Yahoo Finance (yfinance).

yfinance is synchronous, so every lookup runs on the shared tool worker pool.
"""

from typing import Any, Dict, List, Mapping, Optional

import yfinance as yf

from .base import BaseTool, Safety, ToolConfig, ToolError, ToolInput, ToolOutput
from ..core.config import settings
from ..core.logging import logger


HISTORY_PERIODS = ("1d", "5d", "1mo", "3mo", "6mo", "1y", "2y", "5y", "10y", "ytd", "max")

MAX_COMPARED_STOCKS = 5


def format_price(ticker: str, info: Mapping[str, Any]) -> Optional[str]:
    """One-line price summary, or None when no price is available."""
    current_price = info.get("currentPrice") or info.get("regularMarketPrice")
    if current_price is None:
        return None

    previous_close = info.get("previousClose")
    company_name = info.get("longName") or info.get("shortName") or ticker
    currency = info.get("currency", "USD")
    market_cap = info.get("marketCap")

    summary = f"{company_name} ({ticker}): {current_price:.2f} {currency}"

    if previous_close and previous_close > 0:
        change = current_price - previous_close
        change_percent = (change / previous_close) * 100
        sign = "+" if change >= 0 else ""
        summary += f" ({sign}{change:.2f}, {sign}{change_percent:.2f}%)"

    if market_cap:
        summary += f" | Market Cap: {market_cap:,} {currency}"

    return summary


def format_history(ticker: str, hist: Any) -> str:
    """Summarize a price history frame (Open/High/Low/Close/Volume columns)."""
    first_date = hist.index[0].strftime("%Y-%m-%d")
    last_date = hist.index[-1].strftime("%Y-%m-%d")
    first_price = hist["Close"].iloc[0]
    last_price = hist["Close"].iloc[-1]
    change = last_price - first_price
    change_percent = (change / first_price) * 100

    return (
        f"History {ticker} ({first_date} → {last_date}):\n"
        f"Start: {first_price:.2f} → End: {last_price:.2f}\n"
        f"Change: {change:+.2f} ({change_percent:+.2f}%)\n"
        f"Min: {hist['Low'].min():.2f} | Max: {hist['High'].max():.2f}\n"
        f"Avg Volume: {hist['Volume'].mean():,.0f}"
    )


def format_company(ticker: str, info: Mapping[str, Any]) -> str:
    """Multi-line company profile."""
    dividend_yield = info.get("dividendYield", "N/A")
    if dividend_yield not in ("N/A", None) and dividend_yield:
        dividend_yield = f"{dividend_yield * 100:.2f}%"

    summary = str(info.get("longBusinessSummary", "N/A"))
    if len(summary) > 300:
        summary = summary[:300] + "..."

    return (
        f"{info.get('longName', 'N/A')} ({ticker})\n"
        f"Sector: {info.get('sector', 'N/A')} | Industry: {info.get('industry', 'N/A')}\n"
        f"Country: {info.get('country', 'N/A')} | Employees: {info.get('fullTimeEmployees', 'N/A')}\n"
        f"Website: {info.get('website', 'N/A')}\n"
        f"P/E Ratio: {info.get('trailingPE', 'N/A')} | Dividend Yield: {dividend_yield}\n"
        f"\nDescription: {summary}"
    )


def format_comparison_line(ticker: str, info: Mapping[str, Any]) -> str:
    name = info.get("shortName", ticker)
    current_price = info.get("currentPrice") or info.get("regularMarketPrice")
    previous_close = info.get("previousClose")

    if current_price and previous_close:
        change = current_price - previous_close
        change_percent = (change / previous_close) * 100
        return f"{name} ({ticker}): {current_price:.2f} ({change:+.2f}, {change_percent:+.2f}%)"
    return f"{ticker}: Data not available"


class FinanceTool(BaseTool):
    """Common plumbing for the Yahoo Finance tools."""

    output_type = "string"
    safety = Safety.SAFE

    def __init__(self, name: str, description: str, config: Optional[ToolConfig] = None):
        if config is None:
            config = ToolConfig(name=name, description=description, timeout=settings.tool_timeout)
        super().__init__(config)

    @staticmethod
    def _ticker(validated_input: Dict[str, str], key: str = "ticker") -> str:
        return validated_input[key].strip().upper()

    async def _fetch_info(self, ticker: str) -> Dict[str, Any]:
        return await self._run_blocking(lambda: yf.Ticker(ticker).info)

    async def _guarded(self, coro) -> ToolOutput:
        try:
            return await coro
        except ToolError:
            raise
        except Exception as e:
            logger.warning(f"[{self.name}] Yahoo Finance lookup failed: {e}")
            raise ToolError(f"Error: {e}", self.name, {"error_type": type(e).__name__})


class StockPriceTool(FinanceTool):
    inputs = {
        "ticker": ToolInput(type="string", description="Stock ticker symbol (e.g., 'AAPL', 'GOOGL', 'TSLA')")
    }

    def __init__(self, config: Optional[ToolConfig] = None):
        super().__init__(
            "stock_price",
            "Gets current stock price and basic info. Call with: stock_price(ticker) e.g. stock_price('AAPL')",
            config
        )

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        return await self._guarded(self._price(self._ticker(validated_input)))

    async def _price(self, ticker: str) -> str:
        summary = format_price(ticker, await self._fetch_info(ticker))
        if summary is None:
            raise ToolError("Error: Unable to get price for this ticker", self.name, {"ticker": ticker})
        logger.info(f"[{self.name}] {summary}")
        return summary


class StockHistoryTool(FinanceTool):
    inputs = {
        "ticker": ToolInput(type="string", description="Stock ticker symbol"),
        "period": ToolInput(type="string", description="History period (default: '1mo')", default="1mo"),
    }

    def __init__(self, config: Optional[ToolConfig] = None):
        super().__init__(
            "stock_history",
            "Gets stock price history. Call with: stock_history(ticker, period). "
            f"Periods: {', '.join(repr(p) for p in HISTORY_PERIODS)}",
            config
        )

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        period = validated_input["period"].strip()
        if period not in HISTORY_PERIODS:
            raise ToolError(
                f"Error: Invalid period '{period}'. Valid periods: {', '.join(HISTORY_PERIODS)}",
                self.name
            )
        return await self._guarded(self._history(self._ticker(validated_input), period))

    async def _history(self, ticker: str, period: str) -> str:
        hist = await self._run_blocking(lambda: yf.Ticker(ticker).history(period=period))
        if hist.empty:
            raise ToolError("Error: No data available for this period", self.name, {"ticker": ticker})
        logger.info(f"[{self.name}] History retrieved for {ticker} ({period})")
        return format_history(ticker, hist)


class StockInfoTool(FinanceTool):
    inputs = {
        "ticker": ToolInput(type="string", description="Stock ticker symbol")
    }

    def __init__(self, config: Optional[ToolConfig] = None):
        super().__init__(
            "stock_info",
            "Gets detailed company information. Call with: stock_info(ticker)",
            config
        )

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        return await self._guarded(self._info(self._ticker(validated_input)))

    async def _info(self, ticker: str) -> str:
        profile = format_company(ticker, await self._fetch_info(ticker))
        logger.info(f"[{self.name}] Info retrieved for {ticker}")
        return profile


class CompareStocksTool(FinanceTool):
    inputs = {
        "tickers": ToolInput(type="string", description="Comma-separated list of tickers")
    }

    def __init__(self, config: Optional[ToolConfig] = None):
        super().__init__(
            "compare_stocks",
            f"Compares multiple stocks (up to {MAX_COMPARED_STOCKS}). "
            "Call with: compare_stocks(tickers) e.g. compare_stocks('AAPL,GOOGL,MSFT')",
            config
        )

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        tickers = [t.strip().upper() for t in validated_input["tickers"].split(",") if t.strip()]
        if not tickers:
            raise ToolError("Error: No tickers provided", self.name)
        if len(tickers) > MAX_COMPARED_STOCKS:
            raise ToolError(f"Error: Maximum {MAX_COMPARED_STOCKS} stocks can be compared at once", self.name)

        lines = []
        for ticker in tickers:
            try:
                lines.append(format_comparison_line(ticker, await self._fetch_info(ticker)))
            except Exception as e:
                logger.warning(f"[{self.name}] Lookup failed for {ticker}: {e}")
                lines.append(f"{ticker}: Retrieval error")

        logger.info(f"[{self.name}] Comparison done for {len(tickers)} ticker(s)")
        return "Stock Comparison:\n" + "\n".join(lines)


def finance_tools() -> List[BaseTool]:
    """Return all finance tools."""
    return [
        StockPriceTool(),
        StockHistoryTool(),
        StockInfoTool(),
        CompareStocksTool(),
    ]
