# jupbot/strategy.py
import asyncio
import time
import logging
from contextlib import asynccontextmanager
from typing import Optional

from .errors import LiquidationError, TradeInProgressError
from .execution import ExecutionService
from .models import (
    SwapResult,
    TokenInfo,
    TradeAction,
    TradeFlag,
    TradeThresholds,
    TradingState,
)
from .utils import safe_div, to_base_units


class TradingController:
    """
    Profit-band trader for one token pair.

    Every tick compares the price of token B (in token A) with a band of
    +/- profit_percent around the last anchor price. Crossing the top sells a
    lot, crossing the bottom buys one, and every confirmed fill re-anchors the
    band at the realised fill price. Only one trade may be in flight; the
    flag is taken and released through _trade_guard.
    """
    def __init__(
        self,
        config: dict,
        jupiter,
        wallet,
        execution: ExecutionService,
        token_a: TokenInfo,
        token_b: TokenInfo,
        logger: logging.Logger,
        audit_logger=None,
    ):
        self.jupiter = jupiter
        self.wallet = wallet
        self.execution = execution
        self.token_a = token_a
        self.token_b = token_b
        self.logger = logger
        self.audit_logger = audit_logger

        self.trade_size = float(config['target']['amount'])
        self.interval = float(config['trading']['monitor_interval_seconds'])
        profit = float(config['target']['profit_percent']) / 100
        self.state = TradingState(thresholds=TradeThresholds(profit_percentage=profit))

        self.running = False
        self.last_price: Optional[float] = None
        self.last_trade_status = "Waiting for first signal"
        self._idle = asyncio.Event()
        self._idle.set()
        self._stop = asyncio.Event()

    @property
    def thresholds(self) -> TradeThresholds:
        return self.state.thresholds

    @property
    def stats(self):
        return self.state.stats

    @property
    def flag(self) -> TradeFlag:
        return self.state.flag

    # --- LOOP ---

    async def run(self):
        self.running = True
        self._stop.clear()
        while self.running:
            try:
                await self.tick()
            except Exception as e:
                self.logger.error(f"autoTrade: {e}")
            await self._wait_next_tick()

    def stop(self):
        self.running = False
        self._stop.set()

    async def _wait_next_tick(self):
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def tick(self) -> TradeAction:
        price = await self.jupiter.get_price(self.token_b.address, self.token_a.address)
        if not price:
            self.logger.warning("Price unavailable, skipping this round")
            return TradeAction.SKIP
        self.last_price = price

        th = self.state.thresholds
        if not th.is_seeded:
            th.reanchor(price)

        if self.state.flag is not TradeFlag.NONE:
            self.logger.info(f"tradeFlag: {self.state.flag.value}")
            return TradeAction.SKIP
        if self._stop.is_set():
            return TradeAction.SKIP

        stats = self.state.stats
        if price > th.sell_price:
            holdings = await self.wallet.get_token_balance(self.token_b.address)
            if holdings is None:
                return TradeAction.SKIP
            if holdings * price <= self.trade_size:
                # Not enough inventory to sell a lot, restock instead
                await self.buy()
                return TradeAction.BUY
            if stats.buy_count > 0 and stats.sell_count <= stats.buy_count:
                await self.sell()
                return TradeAction.SELL
            th.reanchor(price)
            self.logger.info(f"No open position to realise, thresholds re-anchored at {price}")
            return TradeAction.REANCHOR

        if price < th.buy_price:
            capital = await self.wallet.get_token_balance(self.token_a.address)
            if capital is None:
                return TradeAction.SKIP
            if capital <= self.trade_size:
                await self.sell()
                return TradeAction.SELL
            await self.buy()
            return TradeAction.BUY

        return TradeAction.HOLD

    # --- TRADING ---

    @asynccontextmanager
    async def _trade_guard(self, flag: TradeFlag):
        if self.state.flag is not TradeFlag.NONE:
            raise TradeInProgressError(f"{self.state.flag.value} already in flight")
        self.state.flag = flag
        self._idle.clear()
        try:
            yield
        finally:
            self.state.flag = TradeFlag.NONE
            self._idle.set()

    async def wait_until_idle(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def buy(self) -> bool:
        """Spends one trade size of token A on token B."""
        try:
            async with self._trade_guard(TradeFlag.BUYING):
                amount = to_base_units(self.trade_size, self.token_a.decimals)
                self.logger.info(f"📉 Starting to buy {self.token_b.symbol} with {self.trade_size} {self.token_a.symbol}")
                return await self._swap(TradeFlag.BUYING, self.token_a, self.token_b, amount)
        except Exception as e:
            self.logger.error(f"buy: {e}")
            return False

    async def sell(self, lots: int = 1) -> bool:
        """Sells `lots` trade sizes worth of token B, priced at the current B/A rate."""
        try:
            async with self._trade_guard(TradeFlag.SELLING):
                price = await self.jupiter.get_price(self.token_b.address, self.token_a.address)
                if not price:
                    self.logger.warning("sell: price unavailable")
                    return False
                ui_amount = self.trade_size * lots / price
                amount = to_base_units(ui_amount, self.token_b.decimals)
                self.logger.info(f"📈 Starting to sell {self.token_b.symbol} {ui_amount}")
                return await self._swap(TradeFlag.SELLING, self.token_b, self.token_a, amount)
        except Exception as e:
            self.logger.error(f"sell: {e}")
            return False

    async def liquidate(self):
        """
        Sells every unmatched lot (buy_count - sell_count) in a single swap.
        Raises LiquidationError if the sale does not go through.
        """
        lots = self.state.stats.open_lots
        if lots <= 0:
            self.logger.info("No need to sell")
            return
        self.logger.info(f"Liquidating {lots} open lots")
        if not await self.sell(lots=lots):
            raise LiquidationError(f"Failed to sell {lots} lots of {self.token_b.symbol}")
        self.logger.info(f"📈 Successfully sold {self.token_b.symbol}")

    async def _swap(self, side: TradeFlag, token_in: TokenInfo, token_out: TokenInfo, amount: int) -> bool:
        if amount <= 0:
            self.logger.warning(f"{side.value}: computed amount is zero, nothing to do")
            return False
        quote = await self.jupiter.quote(token_in.address, token_out.address, amount)
        if quote is None:
            return False

        result = await self.execution.swap(quote, token_in, token_out)
        if not result.success:
            self.last_trade_status = f"[red]{side.value} failed: {result.error}[/red]"
            self.logger.info(f"Failed to {'buy' if side is TradeFlag.BUYING else 'sell'} {self.token_b.symbol}")
            await self._audit(side, result, 0.0, "FAILED")
            return False

        fill_price = self._record_fill(side, result)
        self.last_trade_status = f"[green]{side.value} filled @ {fill_price:.6f}[/green]"
        self.logger.info(f"Successfully {'bought' if side is TradeFlag.BUYING else 'sold'} {self.token_b.symbol}, price {fill_price}")
        await self._audit(side, result, fill_price, "SUCCESS")
        return True

    def _record_fill(self, side: TradeFlag, result: SwapResult) -> float:
        """
        Applies a confirmed fill to the statistics and re-anchors the band at
        the realised price (token A per token B). Caller holds the guard.
        """
        stats = self.state.stats
        if side is TradeFlag.BUYING:
            fill_price = safe_div(result.in_amount, result.out_amount)
            stats.buy_count += 1
            stats.remaining_amount += result.out_amount
            stats.total_buy_spend += result.in_amount
        else:
            fill_price = safe_div(result.out_amount, result.in_amount)
            stats.sell_count += 1
            stats.remaining_amount -= result.in_amount
            stats.total_sell_proceeds += result.out_amount

        if fill_price > 0:
            self.state.thresholds.reanchor(fill_price)
        return fill_price

    async def _audit(self, side: TradeFlag, result: SwapResult, fill_price: float, status: str):
        if self.audit_logger is None:
            return
        await self.audit_logger.log_trade([
            time.strftime('%Y-%m-%d %H:%M:%S'),
            side.value,
            f"{result.in_amount:.9f}",
            f"{result.out_amount:.9f}",
            f"{fill_price:.9f}",
            result.signature,
            status,
        ])
