# jupbot/jupiter_api.py
import base64
import json
import os
import aiofiles
import aiohttp
from typing import Dict, List, Optional

from .models import SwapQuote, SwapTransaction, TokenInfo


class JupiterClient:
    """
    Quote / swap gateway backed by the Jupiter aggregator HTTP API.
    Also owns the on-disk token list cache used to resolve mints at startup.
    """
    def __init__(self, config: dict, logger):
        net = config['network']
        self.api_url = net['jupiter_api'].rstrip('/')
        self.price_url = net['price_api']
        self.token_list_url = net['token_list_url']
        self.token_cache = config['audit']['token_list_cache']
        self.slippage_bps = int(config['trading']['slippage_bps'])
        self.timeout = aiohttp.ClientTimeout(total=net['network_timeout_ms'] / 1000)
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def get_price(self, ids: str, vs_token: str) -> Optional[float]:
        """
        Price of `ids` expressed in `vs_token`. None when the API has no price
        or the request fails.
        """
        try:
            session = await self._get_session()
            async with session.get(self.price_url, params={'ids': ids, 'vsToken': vs_token}) as resp:
                if resp.status != 200:
                    self.logger.error(f"getPrice: HTTP {resp.status}")
                    return None
                payload = await resp.json(content_type=None)
        except Exception as e:
            self.logger.error(f"getPrice: {e}")
            return None

        data = (payload or {}).get('data') or {}
        entry = data.get(ids)
        if not entry or entry.get('price') is None:
            return None
        return float(entry['price'])

    async def quote(self, input_mint: str, output_mint: str, amount: int) -> Optional[SwapQuote]:
        """
        Best route for swapping `amount` base units of input_mint.
        """
        params = {
            'inputMint': input_mint,
            'outputMint': output_mint,
            'amount': str(amount),
            'slippageBps': self.slippage_bps,
            'onlyDirectRoutes': 'false',
            'asLegacyTransaction': 'false',
        }
        session = await self._get_session()
        async with session.get(f"{self.api_url}/quote", params=params) as resp:
            if resp.status != 200:
                error = await resp.text()
                self.logger.error(f"quote: unable to quote ({resp.status}) {error[:200]}")
                return None
            data = await resp.json(content_type=None)

        if not data or 'error' in data:
            self.logger.error(f"quote: unable to quote {data.get('error') if data else ''}")
            return None
        self.logger.info(f"quote: {json.dumps(data, indent=2)}")
        return SwapQuote.from_response(data)

    async def swap_transaction(self, quote: SwapQuote, user_public_key: str) -> SwapTransaction:
        """
        Asks the aggregator to build the unsigned versioned transaction for a quote.
        """
        payload = {
            'quoteResponse': quote.raw,
            'userPublicKey': user_public_key,
            'wrapAndUnwrapSol': False,
            'dynamicComputeUnitLimit': True,
            'prioritizationFeeLamports': 'auto',
        }
        session = await self._get_session()
        async with session.post(f"{self.api_url}/swap", json=payload) as resp:
            if resp.status != 200:
                error = await resp.text()
                raise RuntimeError(f"Swap transaction failed: {resp.status} - {error[:200]}")
            data = await resp.json(content_type=None)

        return SwapTransaction(
            serialized=base64.b64decode(data['swapTransaction']),
            last_valid_block_height=int(data['lastValidBlockHeight']),
        )

    async def download_tokens_list(self) -> List[TokenInfo]:
        session = await self._get_session()
        async with session.get(self.token_list_url) as resp:
            resp.raise_for_status()
            raw = await resp.json(content_type=None)

        tokens = [{'symbol': t['symbol'], 'address': t['address'], 'decimals': t['decimals']} for t in raw]
        directory = os.path.dirname(self.token_cache)
        if directory:
            os.makedirs(directory, exist_ok=True)
        async with aiofiles.open(self.token_cache, mode='w') as f:
            await f.write(json.dumps(tokens))
        return [TokenInfo.from_dict(t) for t in tokens]

    async def get_tokens(self) -> List[TokenInfo]:
        """Token list from the local cache, downloading it on first use."""
        if not os.path.exists(self.token_cache):
            return await self.download_tokens_list()
        async with aiofiles.open(self.token_cache, mode='r', encoding='utf-8') as f:
            data = json.loads(await f.read())
        return [TokenInfo.from_dict(t) for t in data]

    async def get_tokens_object(self) -> Dict[str, TokenInfo]:
        return {t.address: t for t in await self.get_tokens()}

    async def shutdown(self):
        if self._session and not self._session.closed:
            await self._session.close()
