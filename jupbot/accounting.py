# jupbot/accounting.py
from typing import Optional

from .models import ProfitSnapshot, TradeStatistics
from .utils import safe_div


def compute_snapshot(stats: TradeStatistics, trade_size: float, token_price: Optional[float]) -> ProfitSnapshot:
    """
    Profit/loss view of the running counters.

    Unrealised profit compares the market value of what is still held with the
    net quote spent on it. Realised profit nets proceeds against spend and
    corrects for the unmatched lots, each of which is worth one trade size.
    Price-dependent fields are None while no price is available.
    """
    net_spend = stats.total_buy_spend - stats.total_sell_proceeds

    realized = stats.total_sell_proceeds - stats.total_buy_spend
    if stats.sell_count > stats.buy_count:
        realized -= (stats.sell_count - stats.buy_count) * trade_size
    else:
        realized += (stats.buy_count - stats.sell_count) * trade_size

    token_value = profit = profit_pct = None
    if token_price is not None:
        token_value = stats.remaining_amount * token_price
        if stats.sell_count > stats.buy_count:
            profit = token_value + net_spend
        else:
            profit = token_value - net_spend
        profit_pct = safe_div(profit, token_value)

    return ProfitSnapshot(
        holding=stats.remaining_amount,
        average_price=safe_div(stats.total_buy_spend, stats.remaining_amount),
        token_value=token_value,
        profit=profit,
        profit_percentage=profit_pct,
        realized_profit=realized,
    )
