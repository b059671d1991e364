# jupbot/transaction_sender.py
import asyncio
import logging
from typing import Any, Dict, Optional

from .errors import TransactionExpiredError
from .models import DeliveryOutcome, SignedTransactionEnvelope
from .rpc_client import SolanaRpcClient

CONFIRMED_STATUSES = ('confirmed', 'finalized')


async def first_completed(*coros) -> Any:
    """
    Runs the coroutines as tasks and returns the result of the first one to
    finish. The others are cancelled and awaited before returning, so nothing
    outlives the call. A finished task that raised re-raises here unless
    another task finished cleanly at the same time.
    """
    tasks = [asyncio.create_task(c) for c in coros]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    finished = [t for t in tasks if t in done]
    for t in finished:
        if t.exception() is None:
            return t.result()
    raise finished[0].exception()


class TransactionSender:
    """
    Drives one signed transaction to a terminal outcome.

    The serialized bytes are sent once with preflight disabled, then resent on
    a fixed interval while two confirmation paths race:
      - push: websocket signature subscription, bounded by a block-height
        watcher that raises once the adjusted expiry height is passed
      - poll: getSignatureStatuses on a fixed interval, for when the socket
        dies without telling anyone
    The losing path is cancelled as soon as the other resolves, and a single
    asyncio.Event stops the resender on every exit path.
    """
    def __init__(
        self,
        rpc: SolanaRpcClient,
        logger: logging.Logger,
        resend_interval: float = 2.0,
        poll_interval: float = 2.0,
        expiry_margin: int = 150,
        fetch_retries: int = 5,
        fetch_backoff: float = 1.0,
    ):
        self.rpc = rpc
        self.logger = logger
        self.resend_interval = resend_interval
        self.poll_interval = poll_interval
        self.expiry_margin = expiry_margin
        self.fetch_retries = fetch_retries
        self.fetch_backoff = fetch_backoff

    @classmethod
    def from_config(cls, rpc: SolanaRpcClient, logger: logging.Logger, config: dict) -> "TransactionSender":
        d = config['delivery']
        return cls(
            rpc,
            logger,
            resend_interval=float(d['resend_interval_seconds']),
            poll_interval=float(d['poll_interval_seconds']),
            expiry_margin=int(d['expiry_margin_blocks']),
            fetch_retries=int(d['fetch_retries']),
            fetch_backoff=float(d['fetch_backoff_seconds']),
        )

    async def deliver(self, envelope: SignedTransactionEnvelope) -> DeliveryOutcome:
        try:
            signature = await self.rpc.send_raw_transaction(envelope.serialized, skip_preflight=True)
        except Exception as e:
            self.logger.error(f"Failed to send transaction {envelope.signature}: {e}")
            return DeliveryOutcome.unknown(envelope.signature)

        abort = asyncio.Event()
        resender = asyncio.create_task(self._resend_until_aborted(envelope, abort))
        try:
            await first_completed(
                self._push_confirmation(signature, envelope.last_valid_block_height - self.expiry_margin),
                self._poll_confirmation(signature),
            )
        except TransactionExpiredError as e:
            self.logger.error(str(e))
            return DeliveryOutcome.expired(signature)
        except Exception as e:
            self.logger.error(f"Confirmation of {signature} failed: {e}")
            return DeliveryOutcome.unknown(signature)
        finally:
            abort.set()
            resender.cancel()
            await asyncio.gather(resender, return_exceptions=True)

        record = await self._fetch_transaction(signature)
        if record is None:
            self.logger.error(f"Transaction {signature} confirmed but not retrievable after {self.fetch_retries} retries")
            return DeliveryOutcome.unknown(signature)
        return DeliveryOutcome.confirmed(signature, record)

    async def _resend_until_aborted(self, envelope: SignedTransactionEnvelope, abort: asyncio.Event):
        while True:
            await asyncio.sleep(self.resend_interval)
            if abort.is_set():
                return
            try:
                await self.rpc.send_raw_transaction(envelope.serialized, skip_preflight=True)
            except Exception as e:
                self.logger.warning(f"Failed to resend transaction: {e}")

    async def _push_confirmation(self, signature: str, deadline: int) -> Dict[str, Any]:
        return await first_completed(
            self.rpc.wait_for_signature(signature, commitment='processed'),
            self._watch_expiry(signature, deadline),
        )

    async def _watch_expiry(self, signature: str, deadline: int):
        while True:
            try:
                height = await self.rpc.get_block_height('processed')
            except Exception as e:
                self.logger.warning(f"getBlockHeight failed: {e}")
            else:
                if height > deadline:
                    raise TransactionExpiredError(signature, height, deadline)
            await asyncio.sleep(self.poll_interval)

    async def _poll_confirmation(self, signature: str) -> Dict[str, Any]:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                status = await self.rpc.get_signature_status(signature, search_history=False)
            except Exception as e:
                self.logger.warning(f"getSignatureStatuses failed: {e}")
                continue
            if status and status.get('confirmationStatus') in CONFIRMED_STATUSES:
                return status

    async def _fetch_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """
        The node that confirmed the signature may be ahead of the one serving
        getTransaction, so the record is retried with a fixed backoff.
        """
        for attempt in range(self.fetch_retries + 1):
            try:
                record = await self.rpc.get_transaction(signature, commitment='confirmed')
                if record:
                    return record
            except Exception as e:
                self.logger.warning(f"getTransaction attempt {attempt + 1} failed: {e}")
            if attempt < self.fetch_retries:
                await asyncio.sleep(self.fetch_backoff)
        return None
