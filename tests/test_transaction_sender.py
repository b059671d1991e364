"""
Tests for transaction delivery: resend loop, push/poll race and expiry.
"""

import asyncio

import pytest

from jupbot.errors import TransactionExpiredError
from jupbot.models import DeliveryStatus, SignedTransactionEnvelope
from jupbot.transaction_sender import TransactionSender, first_completed

from conftest import FakeRpc


def make_sender(rpc, logger, **overrides):
    options = dict(
        resend_interval=0.01,
        poll_interval=0.01,
        expiry_margin=150,
        fetch_retries=2,
        fetch_backoff=0.01,
    )
    options.update(overrides)
    return TransactionSender(rpc, logger, **options)


@pytest.fixture
def envelope():
    return SignedTransactionEnvelope(
        serialized=b"\x01signed",
        blockhash="HASH",
        last_valid_block_height=1000,
        signature="SIG111",
    )


class TestFirstCompleted:

    @pytest.mark.asyncio
    async def test_returns_fastest_and_cancels_the_rest(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async def fast():
            await asyncio.sleep(0.01)
            return "fast"

        assert await first_completed(slow(), fast()) == "fast"
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_reraises_when_first_finisher_fails(self):
        async def boom():
            raise TransactionExpiredError("SIG", 900, 850)

        async def never():
            await asyncio.Event().wait()

        with pytest.raises(TransactionExpiredError):
            await first_completed(never(), boom())


class TestDeliver:

    @pytest.mark.asyncio
    async def test_confirms_through_push_notification(self, logger, envelope):
        rpc = FakeRpc(push_after=0.05)
        outcome = await make_sender(rpc, logger).deliver(envelope)

        assert outcome.status is DeliveryStatus.CONFIRMED
        assert outcome.signature == "SIG111"
        assert outcome.transaction == {'meta': {'err': None}}

    @pytest.mark.asyncio
    async def test_poll_confirms_when_socket_is_silent(self, logger, envelope):
        rpc = FakeRpc(push_after=None, confirm_after_polls=3)
        outcome = await asyncio.wait_for(make_sender(rpc, logger).deliver(envelope), timeout=2)

        assert outcome.is_confirmed
        assert rpc.polls >= 3

    @pytest.mark.asyncio
    async def test_poll_errors_are_tolerated(self, logger, envelope):
        rpc = FakeRpc(confirm_after_polls=4)
        rpc.poll_errors = 2
        outcome = await asyncio.wait_for(make_sender(rpc, logger).deliver(envelope), timeout=2)

        assert outcome.is_confirmed

    @pytest.mark.asyncio
    async def test_expired_when_block_height_passed_deadline(self, logger, envelope):
        # deadline = 1000 - 150 = 850
        rpc = FakeRpc(block_height=851)
        outcome = await asyncio.wait_for(make_sender(rpc, logger).deliver(envelope), timeout=1)

        assert outcome.status is DeliveryStatus.EXPIRED
        assert outcome.transaction is None
        assert rpc.fetches == 0

    @pytest.mark.asyncio
    async def test_block_height_at_deadline_is_not_expired(self, logger, envelope):
        rpc = FakeRpc(block_height=850, push_after=0.05)
        outcome = await make_sender(rpc, logger).deliver(envelope)

        assert outcome.is_confirmed

    @pytest.mark.asyncio
    async def test_unknown_when_record_never_appears(self, logger, envelope):
        rpc = FakeRpc(push_after=0.01, fetch_misses=100)
        outcome = await make_sender(rpc, logger, fetch_retries=2).deliver(envelope)

        assert outcome.status is DeliveryStatus.UNKNOWN
        assert outcome.signature == "SIG111"
        assert rpc.fetches == 3

    @pytest.mark.asyncio
    async def test_record_found_after_retries(self, logger, envelope):
        rpc = FakeRpc(push_after=0.01, fetch_misses=2)
        outcome = await make_sender(rpc, logger, fetch_retries=2).deliver(envelope)

        assert outcome.is_confirmed
        assert rpc.fetches == 3

    @pytest.mark.asyncio
    async def test_initial_send_failure_is_unknown(self, logger, envelope):
        rpc = FakeRpc(push_after=0.01)
        rpc.send_error = ConnectionError("refused")
        outcome = await make_sender(rpc, logger).deliver(envelope)

        assert outcome.status is DeliveryStatus.UNKNOWN
        assert outcome.signature == "SIG111"
        assert rpc.sends == 1

    @pytest.mark.asyncio
    async def test_unexpected_confirmation_error_is_unknown(self, logger, envelope):
        rpc = FakeRpc()
        rpc.push_error = ValueError("bad notification")
        outcome = await make_sender(rpc, logger).deliver(envelope)

        assert outcome.status is DeliveryStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_resend_failures_do_not_abort_delivery(self, logger, envelope):
        rpc = FakeRpc(push_after=0.1)
        rpc.resend_error = ConnectionError("rate limited")
        outcome = await make_sender(rpc, logger).deliver(envelope)

        assert outcome.is_confirmed
        assert rpc.sends > 1

    @pytest.mark.asyncio
    async def test_resends_stop_once_delivery_returns(self, logger, envelope):
        rpc = FakeRpc(push_after=0.05)
        await make_sender(rpc, logger).deliver(envelope)
        sends = rpc.sends

        await asyncio.sleep(0.1)
        assert rpc.sends == sends

    @pytest.mark.asyncio
    async def test_resends_stop_after_expiry(self, logger, envelope):
        rpc = FakeRpc(block_height=2000)
        outcome = await make_sender(rpc, logger).deliver(envelope)
        sends = rpc.sends

        await asyncio.sleep(0.1)
        assert outcome.status is DeliveryStatus.EXPIRED
        assert rpc.sends == sends

    @pytest.mark.asyncio
    async def test_repeated_sends_yield_one_outcome(self, logger, envelope):
        rpc = FakeRpc(push_after=0.1)
        outcome = await make_sender(rpc, logger).deliver(envelope)

        assert rpc.sends > 1
        assert outcome.is_confirmed
        assert outcome.signature == envelope.signature


class TestFromConfig:

    def test_reads_delivery_section(self, config, logger):
        sender = TransactionSender.from_config(FakeRpc(), logger, config)

        assert sender.resend_interval == 0.01
        assert sender.poll_interval == 0.01
        assert sender.expiry_margin == 150
        assert sender.fetch_retries == 2
