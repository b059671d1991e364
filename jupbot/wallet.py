# jupbot/wallet.py
import asyncio
import logging
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from .errors import ConfigError
from .models import BalanceInfo, SignedTransactionEnvelope, SwapTransaction
from .rpc_client import SolanaRpcClient

USDC_MINT_ADDRESS = 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v'
SOL_MINT_ADDRESS = 'So11111111111111111111111111111111111111112'
LAMPORTS_PER_SOL = 1_000_000_000


def load_keypair(private_key: str) -> Keypair:
    """
    Accepts either the byte-array form written by solana-keygen ("[12,34,...]")
    or a base58 encoded secret key.
    """
    value = str(private_key).strip()
    try:
        if value.startswith('['):
            raw = bytes(int(b) for b in value.strip('[]').split(','))
            return Keypair.from_bytes(raw)
        return Keypair.from_bytes(base58.b58decode(value))
    except Exception as e:
        raise ConfigError(f"wallet.private_key is not a valid keypair: {type(e).__name__}") from e


class Wallet:
    """
    Holds the trading keypair, signs aggregator transactions and reads balances.
    """
    def __init__(self, keypair: Keypair, rpc: SolanaRpcClient, jupiter, logger: logging.Logger):
        self.keypair = keypair
        self.rpc = rpc
        self.jupiter = jupiter
        self.logger = logger

    @property
    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def sign(self, swap_tx: SwapTransaction) -> SignedTransactionEnvelope:
        unsigned = VersionedTransaction.from_bytes(swap_tx.serialized)
        signed = VersionedTransaction(unsigned.message, [self.keypair])
        if not signed.signatures:
            raise ValueError("Missing transaction signature, the transaction was not signed by the fee payer")
        return SignedTransactionEnvelope(
            serialized=bytes(signed),
            blockhash=str(signed.message.recent_blockhash),
            last_valid_block_height=swap_tx.last_valid_block_height,
            signature=str(signed.signatures[0]),
        )

    async def get_token_balance(self, mint: str) -> Optional[float]:
        """
        UI-unit balance of `mint`. 0.0 when the wallet has no account for it,
        None when the lookup failed.
        """
        try:
            if mint == SOL_MINT_ADDRESS:
                lamports = await self.rpc.get_balance(self.public_key)
                return lamports / LAMPORTS_PER_SOL
            accounts = await self.rpc.get_token_accounts_by_owner(self.public_key, mint)
            if not accounts:
                return 0.0
            amount = accounts[0]['account']['data']['parsed']['info']['tokenAmount']
            return float(amount.get('uiAmount') or 0.0)
        except Exception as e:
            self.logger.error(f"getTokenBalance: {e}")
            return None

    async def get_balance_info(self, mint: str) -> BalanceInfo:
        sol, usdc, token, sol_price, token_price = await asyncio.gather(
            self.get_token_balance(SOL_MINT_ADDRESS),
            self.get_token_balance(USDC_MINT_ADDRESS),
            self.get_token_balance(mint),
            self.jupiter.get_price(SOL_MINT_ADDRESS, USDC_MINT_ADDRESS),
            self.jupiter.get_price(mint, USDC_MINT_ADDRESS),
        )
        return BalanceInfo(
            sol=sol or 0.0,
            usdc=usdc or 0.0,
            token=token or 0.0,
            sol_price=sol_price,
            token_price=token_price,
        )
