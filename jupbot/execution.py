# jupbot/execution.py
import logging
from typing import Any, Dict, Optional

from .models import SwapQuote, SwapResult, TokenInfo
from .transaction_sender import TransactionSender
from .utils import from_base_units


class ExecutionService:
    """
    Turns a quote into a landed swap: build, sign, optionally simulate, deliver.
    Reports the realised fill read from the confirmed transaction's token
    balances, falling back to the quoted amounts when the record has none.
    """
    def __init__(self, jupiter, wallet, rpc, sender: TransactionSender, logger: logging.Logger, config: dict):
        self.jupiter = jupiter
        self.wallet = wallet
        self.rpc = rpc
        self.sender = sender
        self.logger = logger

        self.dry_run = config['system'].get('dry_run', False)
        self.simulate = config['trading'].get('simulate_transaction', True)

    async def swap(self, quote: SwapQuote, token_in: TokenInfo, token_out: TokenInfo) -> SwapResult:
        quoted_in = from_base_units(quote.in_amount, token_in.decimals)
        quoted_out = from_base_units(quote.out_amount, token_out.decimals)

        if self.dry_run:
            self.logger.info(f"🔵 DRY RUN: {quoted_in} {token_in.symbol} -> {quoted_out} {token_out.symbol}")
            return SwapResult(success=True, in_amount=quoted_in, out_amount=quoted_out)

        try:
            swap_tx = await self.jupiter.swap_transaction(quote, self.wallet.public_key)
            envelope = self.wallet.sign(swap_tx)

            if self.simulate:
                sim = await self.rpc.simulate_transaction(envelope.serialized)
                if sim.get('err'):
                    self.logger.error("swap: Simulation Error:")
                    self.logger.info(f"swap: {sim['err']}")
                    self.logger.error(f"swap: {sim.get('logs')}")
                    return SwapResult(success=False, signature=envelope.signature, error=f"simulation: {sim['err']}")

            outcome = await self.sender.deliver(envelope)
            if not outcome.is_confirmed:
                self.logger.error(f"swap: Transaction not confirmed ({outcome.status.value})")
                return SwapResult(success=False, signature=outcome.signature, error=outcome.status.value)

            meta = outcome.transaction.get('meta') or {}
            if meta.get('err'):
                self.logger.error(f"swap: {meta['err']}")
                return SwapResult(success=False, signature=outcome.signature, error=str(meta['err']))

            owner = self.wallet.public_key
            spent = token_balance_delta(meta, owner, token_in.address)
            received = token_balance_delta(meta, owner, token_out.address)
            in_amount = -spent if spent is not None and spent < 0 else quoted_in
            out_amount = received if received is not None and received > 0 else quoted_out

            self.logger.info(f"swap: Transaction hash https://solscan.io/tx/{outcome.signature}")
            return SwapResult(success=True, signature=outcome.signature, in_amount=in_amount, out_amount=out_amount)

        except Exception as e:
            self.logger.error(f"swap: {e}")
            return SwapResult(success=False, error=str(e))


def token_balance_delta(meta: Dict[str, Any], owner: str, mint: str) -> Optional[float]:
    """
    Change of `owner`'s `mint` balance in UI units across the transaction, or
    None when the record carries no token balances for that pair.
    """
    def total(entries) -> Optional[float]:
        amounts = [
            e['uiTokenAmount'] for e in entries or []
            if e.get('owner') == owner and e.get('mint') == mint
        ]
        if not amounts:
            return None
        return sum(int(a['amount']) / (10 ** int(a['decimals'])) for a in amounts)

    pre = total(meta.get('preTokenBalances'))
    post = total(meta.get('postTokenBalances'))
    if pre is None and post is None:
        return None
    return (post or 0.0) - (pre or 0.0)
