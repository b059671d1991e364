# main.py
import argparse
import asyncio
import signal
import sys
import time
import questionary
from datetime import datetime
from rich.live import Live
from rich.table import Table
from rich.layout import Layout
from rich.console import Console
from rich.panel import Panel

from jupbot.accounting import compute_snapshot
from jupbot.config import load_config
from jupbot.errors import ConfigError
from jupbot.execution import ExecutionService
from jupbot.jupiter_api import JupiterClient
from jupbot.lifecycle import ShutdownCoordinator
from jupbot.logger import setup_console_logger, AsyncAuditLogger
from jupbot.models import BalanceInfo
from jupbot.rpc_client import SolanaRpcClient
from jupbot.strategy import TradingController
from jupbot.transaction_sender import TransactionSender
from jupbot.utils import format_date, format_time_difference, round_to_decimal
from jupbot.wallet import Wallet, load_keypair

# --- UI HELPER FUNCTIONS ---

def _money(value, places: int = 4) -> str:
    if value is None:
        return "[dim]n/a[/dim]"
    return f"{round_to_decimal(value, places)}"


def _signed(label_up: str, label_down: str, value, suffix: str = "") -> tuple:
    if value is None:
        return label_up, "[dim]n/a[/dim]"
    if value >= 0:
        return label_up, f"[green]{value}{suffix}[/green]"
    return label_down, f"[red]{value}{suffix}[/red]"


def generate_dashboard(bot: "JupBot", balance: BalanceInfo):
    """
    Status snapshot: run info, profit/loss, thresholds and wallet balances.
    """
    controller = bot.controller
    stats = controller.stats
    th = controller.thresholds
    token_b = controller.token_b.symbol
    snap = compute_snapshot(stats, controller.trade_size, controller.last_price)

    # 1. Run table
    run_table = Table(title="🚀🌕 Session", show_header=False)
    run_table.add_column("Key", style="cyan")
    run_table.add_column("Value", justify="right", style="orange1")
    run_table.add_row("Current time", format_date(datetime.now()))
    run_table.add_row("Run duration", format_time_difference(bot.start_time, time.time()))
    run_table.add_row("Wallet address", bot.wallet.public_key)
    run_table.add_row("Initial total assets", _money(stats.initial_valuation))
    run_table.add_row("Current price", _money(controller.last_price, 8))

    # 2. Trading table
    trade_table = Table(title="📈 Trading", show_header=False)
    trade_table.add_column("Key", style="cyan")
    trade_table.add_column("Value", justify="right", style="green")
    pct = None if snap.profit_percentage is None else round_to_decimal(snap.profit_percentage * 100, 3)
    trade_table.add_row(*_signed("Profit", "Loss", pct, "%"))
    trade_table.add_row(*_signed(
        f"Realized profit ({controller.token_a.symbol})",
        f"Realized loss ({controller.token_a.symbol})",
        round_to_decimal(snap.realized_profit, 6),
    ))
    trade_table.add_row("Average price", _money(snap.average_price, 8))
    trade_table.add_row("Holding", _money(snap.holding, 6))
    trade_table.add_row("Buy at", _money(th.buy_price, 8))
    trade_table.add_row("Sell at", _money(th.sell_price, 8))
    trade_table.add_row("Buys / Sells", f"{stats.buy_count} / {stats.sell_count}")

    # 3. Wallet table
    wallet_table = Table(title="💰 Wallet")
    wallet_table.add_column("Asset", style="magenta")
    wallet_table.add_column("Balance", justify="right", style="green")
    wallet_table.add_column("Price (USDC)", justify="right")
    wallet_table.add_row("SOL", _money(balance.sol), _money(balance.sol_price))
    wallet_table.add_row(token_b, _money(balance.token), _money(balance.token_price, 8))
    wallet_table.add_row("USDC", _money(balance.usdc, 2), "1")

    layout = Layout()
    layout.split_column(
        Layout(name="top"),
        Layout(name="bottom")
    )
    layout["top"].split_row(
        Layout(Panel(run_table)),
        Layout(Panel(trade_table)),
        Layout(Panel(wallet_table)),
    )

    total = balance.total_value
    total_str = "n/a" if total is None else f"{round_to_decimal(total, 4)}"
    footer = Panel(
        f"[bold gold1]Total value ({token_b}+USDC): {total_str}[/bold gold1]   {controller.last_trade_status}",
        style="white on blue",
    )
    layout["bottom"].update(footer)
    layout["bottom"].size = 3

    return layout

# --- MAIN CONTROLLER ---

class JupBot:
    def __init__(self, config: dict):
        self.config = config
        self.start_time = time.time()

        self.logger = setup_console_logger("JupBot", config['system']['log_level'], config['system']['log_dir'])
        self.audit_log = AsyncAuditLogger(config['audit']['trade_log'])

        net = config['network']
        self.rpc = SolanaRpcClient(net['rpc_endpoint'], net['ws_endpoint'], self.logger, net['network_timeout_ms'])
        self.jupiter = JupiterClient(config, self.logger)
        self.wallet = Wallet(load_keypair(config['wallet']['private_key']), self.rpc, self.jupiter, self.logger)
        self.sender = TransactionSender.from_config(self.rpc, self.logger, config)
        self.executor = ExecutionService(self.jupiter, self.wallet, self.rpc, self.sender, self.logger, config)

        self.controller = None
        self.shutdown = None
        self._stop_requested = asyncio.Event()

    async def _resolve_tokens(self):
        try:
            await self.jupiter.download_tokens_list()
        except Exception as e:
            self.logger.warning(f"Token list download failed, using cache: {e}")
        tokens = await self.jupiter.get_tokens_object()
        if not tokens:
            raise ConfigError("Token list is empty")

        target = self.config['target']
        token_a = tokens.get(target['token_a'])
        token_b = tokens.get(target['token_b'])
        if token_a is None:
            raise ConfigError("Please check if token_a is correct")
        if token_b is None:
            raise ConfigError("Please check if token_b is correct")
        return token_a, token_b

    async def initialize(self):
        print("Starting initialization...")
        token_a, token_b = await self._resolve_tokens()
        self.logger.info(f"API connection successful. Trading {token_b.symbol}/{token_a.symbol}")

        slot = await self.rpc.get_slot()
        self.logger.info(f"RPC connection successful. Current slot: {slot}")

        self.controller = TradingController(
            self.config, self.jupiter, self.wallet, self.executor,
            token_a, token_b, self.logger, self.audit_log,
        )
        self.shutdown = ShutdownCoordinator(
            self.controller, self.logger, float(self.config['trading']['liquidation_wait_seconds'])
        )

        balance = await self.wallet.get_balance_info(token_b.address)
        self.controller.stats.initial_valuation = balance.total_value or 0.0
        print("Initialization complete ✅")

    def _on_signal(self):
        self.shutdown.request_stop()
        self._stop_requested.set()

    async def _refresh_dashboard(self, live: Live):
        while not self._stop_requested.is_set():
            try:
                balance = await self.wallet.get_balance_info(self.controller.token_b.address)
                live.update(generate_dashboard(self, balance))
            except Exception as e:
                self.logger.error(f"dashboard: {e}")
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=self.controller.interval)
            except asyncio.TimeoutError:
                pass

    async def run(self) -> int:
        await self.audit_log.start()
        try:
            try:
                await self.initialize()
            except ConfigError as e:
                self.logger.error(str(e))
                return 1
            except Exception as e:
                self.logger.error(f"Startup check failed: {e}")
                return 1

            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._on_signal)

            trade_task = asyncio.create_task(self.controller.run())
            console = Console()
            with Live(console=console, refresh_per_second=4) as live:
                await self._refresh_dashboard(live)

            answer = await questionary.confirm(
                "Do you want to close positions at market price?", default=False
            ).ask_async()
            code = await self.shutdown.finish(bool(answer))
            await trade_task
            return code
        finally:
            print("Shutting down resources...")
            await self.audit_log.stop()
            await self.jupiter.shutdown()
            await self.rpc.shutdown()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Jupiter profit-band trading bot")
    parser.add_argument("--config", default="config.yaml", help="path to the YAML config")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    try:
        bot = JupBot(load_config(args.config))
    except ConfigError as e:
        print(f"❌ {e}")
        sys.exit(1)

    try:
        import uvloop
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except ImportError:
        pass
    sys.exit(asyncio.run(bot.run()))
