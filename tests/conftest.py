"""
Shared fixtures and in-memory fakes for the RPC node, the aggregator and the wallet.
"""

import asyncio
import logging

import pytest

from jupbot.config import build_config
from jupbot.models import SwapQuote, SwapResult, TokenInfo
from jupbot.strategy import TradingController


USDC = TokenInfo(symbol="USDC", address="USDC_MINT", decimals=6)
SOL = TokenInfo(symbol="SOL", address="SOL_MINT", decimals=9)


class FakeRpc:
    """
    Scriptable stand-in for SolanaRpcClient.

    push_after: seconds until the websocket notification arrives (None = socket is dead)
    confirm_after_polls: poll number on which the status turns 'confirmed' (None = never)
    """
    def __init__(
        self,
        block_height: int = 100,
        push_after=None,
        confirm_after_polls=None,
        fetch_misses: int = 0,
        transaction=None,
    ):
        self.block_height = block_height
        self.push_after = push_after
        self.confirm_after_polls = confirm_after_polls
        self.fetch_misses = fetch_misses
        self.transaction = transaction if transaction is not None else {'meta': {'err': None}}

        self.sends = 0
        self.polls = 0
        self.fetches = 0
        self.send_error = None
        self.resend_error = None
        self.poll_errors = 0
        self.push_error = None

    async def send_raw_transaction(self, serialized: bytes, skip_preflight: bool = True) -> str:
        self.sends += 1
        if self.sends == 1 and self.send_error:
            raise self.send_error
        if self.sends > 1 and self.resend_error:
            raise self.resend_error
        return "SIG111"

    async def get_block_height(self, commitment: str = 'processed') -> int:
        return self.block_height

    async def wait_for_signature(self, signature: str, commitment: str = 'processed'):
        if self.push_error:
            raise self.push_error
        if self.push_after is None:
            await asyncio.Event().wait()
        await asyncio.sleep(self.push_after)
        return {'err': None}

    async def get_signature_status(self, signature: str, search_history: bool = False):
        self.polls += 1
        if self.polls <= self.poll_errors:
            raise ConnectionError("node unreachable")
        if self.confirm_after_polls is not None and self.polls >= self.confirm_after_polls:
            return {'confirmationStatus': 'confirmed', 'err': None}
        return {'confirmationStatus': 'processed', 'err': None}

    async def get_transaction(self, signature: str, commitment: str = 'confirmed'):
        self.fetches += 1
        if self.fetches <= self.fetch_misses:
            return None
        return self.transaction


class FakeJupiter:
    """Price source and quote endpoint. `price` of None means the API has no price."""
    def __init__(self, price=100.0):
        self.price = price
        self.quotes = []
        self.price_error = None

    async def get_price(self, ids: str, vs_token: str):
        if self.price_error:
            raise self.price_error
        return self.price

    async def quote(self, input_mint: str, output_mint: str, amount: int):
        self.quotes.append((input_mint, output_mint, amount))
        return SwapQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=amount,
            slippage_bps=50,
            raw={'inAmount': str(amount)},
        )


class FakeWallet:
    def __init__(self, balances=None):
        self.balances = balances or {}
        self.public_key = "OWNER"

    async def get_token_balance(self, mint: str):
        return self.balances.get(mint, 0.0)


class FakeExecution:
    """Returns queued SwapResults; an Exception in the queue is raised instead."""
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.gate = None

    async def swap(self, quote, token_in, token_out):
        self.calls.append((quote, token_in, token_out))
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if self.results else SwapResult(success=False, error="no result queued")
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def config():
    return build_config({
        'wallet': {'private_key': '[1,2,3]'},
        'target': {'token_a': USDC.address, 'token_b': SOL.address, 'amount': 10, 'profit_percent': 1},
        'trading': {'monitor_interval_seconds': 0.01, 'liquidation_wait_seconds': 0.5},
        'delivery': {
            'resend_interval_seconds': 0.01,
            'poll_interval_seconds': 0.01,
            'fetch_retries': 2,
            'fetch_backoff_seconds': 0.01,
        },
    })


@pytest.fixture
def logger():
    return logging.getLogger("jupbot-tests")


@pytest.fixture
def fake_rpc():
    return FakeRpc()


def make_controller(config, logger, price=100.0, balances=None, results=()):
    jupiter = FakeJupiter(price)
    wallet = FakeWallet(balances if balances is not None else {USDC.address: 1000.0, SOL.address: 0.0})
    execution = FakeExecution(*results)
    return TradingController(config, jupiter, wallet, execution, USDC, SOL, logger)


def filled(in_amount, out_amount):
    return SwapResult(success=True, signature="SIG", in_amount=in_amount, out_amount=out_amount)
