# jupbot/errors.py


class JupbotError(Exception):
    """Base class for every error raised by the bot."""


class ConfigError(JupbotError):
    """Missing or invalid setting. Fatal at startup."""


class RpcError(JupbotError):
    """JSON-RPC error object returned by a Solana node."""

    def __init__(self, message: str, code: int = 0):
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self):
        return f"RPC error {self.code}: {self.message}"


class TransactionExpiredError(JupbotError):
    """Block height passed the transaction's last valid block height."""

    def __init__(self, signature: str, block_height: int, deadline: int):
        super().__init__(f"Signature {signature} has expired: block height {block_height} exceeded {deadline}")
        self.signature = signature
        self.block_height = block_height
        self.deadline = deadline


class TradeInProgressError(JupbotError):
    pass


class LiquidationError(JupbotError):
    pass
