# jupbot/rpc_client.py
import asyncio
import base64
import itertools
import json
import aiohttp
from typing import Any, Dict, List, Optional

from .errors import RpcError


class SolanaRpcClient:
    """
    Thin async JSON-RPC client for a Solana node.
    HTTP calls share one aiohttp session; signature subscriptions open their
    own websocket and reconnect until the caller cancels them.
    """
    def __init__(self, rpc_url: str, ws_url: str, logger, timeout_ms: int = 10000, reconnect_delay: float = 2.0):
        self.rpc_url = rpc_url
        self.ws_url = ws_url
        self.logger = logger
        self.timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)
        self.reconnect_delay = reconnect_delay
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        session = await self._get_session()
        payload = {'jsonrpc': '2.0', 'id': next(self._ids), 'method': method, 'params': params or []}
        async with session.post(self.rpc_url, json=payload) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise RpcError(f"{method} HTTP {resp.status}: {text[:200]}", resp.status)
            data = await resp.json(content_type=None)
        if 'error' in data:
            err = data['error']
            raise RpcError(err.get('message', 'Unknown error'), err.get('code', 0))
        return data.get('result')

    async def get_slot(self) -> int:
        return await self.call('getSlot')

    async def get_block_height(self, commitment: str = 'processed') -> int:
        return await self.call('getBlockHeight', [{'commitment': commitment}])

    async def send_raw_transaction(self, serialized: bytes, skip_preflight: bool = True) -> str:
        encoded = base64.b64encode(serialized).decode()
        return await self.call('sendTransaction', [
            encoded,
            {'encoding': 'base64', 'skipPreflight': skip_preflight, 'maxRetries': 0},
        ])

    async def simulate_transaction(self, serialized: bytes, commitment: str = 'processed') -> Dict[str, Any]:
        encoded = base64.b64encode(serialized).decode()
        result = await self.call('simulateTransaction', [
            encoded,
            {'encoding': 'base64', 'replaceRecentBlockhash': True, 'commitment': commitment},
        ])
        return result.get('value', {})

    async def get_signature_status(self, signature: str, search_history: bool = False) -> Optional[Dict[str, Any]]:
        result = await self.call('getSignatureStatuses', [
            [signature],
            {'searchTransactionHistory': search_history},
        ])
        statuses = (result or {}).get('value') or []
        return statuses[0] if statuses else None

    async def get_transaction(self, signature: str, commitment: str = 'confirmed') -> Optional[Dict[str, Any]]:
        return await self.call('getTransaction', [
            signature,
            {'encoding': 'json', 'commitment': commitment, 'maxSupportedTransactionVersion': 0},
        ])

    async def get_balance(self, owner: str) -> int:
        result = await self.call('getBalance', [owner, {'commitment': 'confirmed'}])
        return int(result['value'])

    async def get_token_accounts_by_owner(self, owner: str, mint: str) -> List[Dict[str, Any]]:
        result = await self.call('getTokenAccountsByOwner', [
            owner,
            {'mint': mint},
            {'encoding': 'jsonParsed', 'commitment': 'confirmed'},
        ])
        return result.get('value', [])

    async def wait_for_signature(self, signature: str, commitment: str = 'processed') -> Dict[str, Any]:
        """
        Subscribes to the signature over the websocket and returns the first
        notification value. A dropped socket is reconnected silently; only
        cancellation ends the wait without a result.
        """
        while True:
            try:
                session = await self._get_session()
                async with session.ws_connect(self.ws_url) as ws:
                    await ws.send_json({
                        'jsonrpc': '2.0',
                        'id': next(self._ids),
                        'method': 'signatureSubscribe',
                        'params': [signature, {'commitment': commitment}],
                    })
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            data = json.loads(msg.data)
                            if data.get('method') == 'signatureNotification':
                                return data['params']['result']['value']
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            break
            except Exception as e:
                self.logger.warning(f"Signature subscription error: {e}")
            await asyncio.sleep(self.reconnect_delay)

    async def shutdown(self):
        if self._session and not self._session.closed:
            await self._session.close()
