# jupbot/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

UNSET_PRICE = -1.0


class TradeFlag(Enum):
    """
    In-flight trade marker. Only one non-NONE value may exist at a time.
    """
    NONE = "NONE"
    BUYING = "BUYING"
    SELLING = "SELLING"


class TradeAction(Enum):
    """What a single controller iteration decided to do."""
    SKIP = "SKIP"
    HOLD = "HOLD"
    BUY = "BUY"
    SELL = "SELL"
    REANCHOR = "REANCHOR"


class DeliveryStatus(Enum):
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    UNKNOWN = "UNKNOWN"


@dataclass(slots=True)
class TokenInfo:
    symbol: str
    address: str
    decimals: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenInfo":
        return cls(symbol=data['symbol'], address=data['address'], decimals=int(data['decimals']))


@dataclass(slots=True)
class TradeThresholds:
    """
    Symmetric profit band around an anchor price.
    buy_price = current * (1 - p), sell_price = current * (1 + p).
    """
    profit_percentage: float
    current_price: float = UNSET_PRICE
    buy_price: float = UNSET_PRICE
    sell_price: float = UNSET_PRICE

    @property
    def is_seeded(self) -> bool:
        return not (self.buy_price == UNSET_PRICE or self.sell_price == UNSET_PRICE)

    def reanchor(self, price: float):
        self.current_price = price
        self.sell_price = price + price * self.profit_percentage
        self.buy_price = price - price * self.profit_percentage


@dataclass(slots=True)
class TradeStatistics:
    """
    Running counters for the lifetime of the process.
    remaining_amount is in token B units, spend/proceeds in token A units.
    """
    buy_count: int = 0
    sell_count: int = 0
    remaining_amount: float = 0.0
    total_buy_spend: float = 0.0
    total_sell_proceeds: float = 0.0
    initial_valuation: float = 0.0

    @property
    def open_lots(self) -> int:
        return self.buy_count - self.sell_count


@dataclass(slots=True)
class TradingState:
    """Everything the controller mutates, owned by a single controller instance."""
    thresholds: TradeThresholds
    stats: TradeStatistics = field(default_factory=TradeStatistics)
    flag: TradeFlag = TradeFlag.NONE


@dataclass(slots=True)
class SwapQuote:
    """
    Priced route returned by the aggregator. Amounts are integer base units.
    `raw` is the untouched quote response, required to build the swap transaction.
    """
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    slippage_bps: int
    raw: Dict[str, Any]

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "SwapQuote":
        return cls(
            input_mint=data['inputMint'],
            output_mint=data['outputMint'],
            in_amount=int(data['inAmount']),
            out_amount=int(data['outAmount']),
            slippage_bps=int(data.get('slippageBps', 0)),
            raw=data,
        )


@dataclass(frozen=True, slots=True)
class SwapTransaction:
    """Unsigned transaction built by the aggregator for a quote."""
    serialized: bytes
    last_valid_block_height: int


@dataclass(frozen=True, slots=True)
class SignedTransactionEnvelope:
    serialized: bytes
    blockhash: str
    last_valid_block_height: int
    signature: str


@dataclass(frozen=True, slots=True)
class DeliveryOutcome:
    status: DeliveryStatus
    signature: str
    transaction: Optional[Dict[str, Any]] = None

    @classmethod
    def confirmed(cls, signature: str, transaction: Dict[str, Any]) -> "DeliveryOutcome":
        return cls(DeliveryStatus.CONFIRMED, signature, transaction)

    @classmethod
    def expired(cls, signature: str) -> "DeliveryOutcome":
        return cls(DeliveryStatus.EXPIRED, signature)

    @classmethod
    def unknown(cls, signature: str = "") -> "DeliveryOutcome":
        return cls(DeliveryStatus.UNKNOWN, signature)

    @property
    def is_confirmed(self) -> bool:
        return self.status is DeliveryStatus.CONFIRMED


@dataclass(slots=True)
class SwapResult:
    """Outcome of one swap. Amounts are realised fills in UI units."""
    success: bool
    signature: str = ""
    in_amount: float = 0.0
    out_amount: float = 0.0
    error: str = ""


@dataclass(slots=True)
class BalanceInfo:
    sol: float
    usdc: float
    token: float
    sol_price: Optional[float]
    token_price: Optional[float]

    @property
    def total_value(self) -> Optional[float]:
        if self.token_price is None:
            return None
        return self.token * self.token_price + self.usdc


@dataclass(slots=True)
class ProfitSnapshot:
    holding: float
    average_price: float
    token_value: Optional[float]
    profit: Optional[float]
    profit_percentage: Optional[float]
    realized_profit: float
