"""
Unit Tests for the Resilient Stream Channel

Tests for backoff, outbound buffering, reconnection and result delivery.
"""

import random

import pytest

from conftest import (
    FailingTransport,
    RecordingChannelListener,
    TransportFactory,
    recognition_message,
    wait_until,
)
from interpreter_core.config import ChannelSettings, OverflowPolicy
from interpreter_core.core.errors import (
    CapacityExceeded,
    FatalAuthError,
    MaxReconnectAttemptsExceeded,
    ParseError,
    TransportError,
)
from interpreter_core.streaming import (
    ChunkBuffer,
    ConnectionState,
    InMemoryTransport,
    ResilientStreamChannel,
    SessionParams,
    compute_backoff_delay,
)


# =============================================================================
# Backoff
# =============================================================================


class TestComputeBackoffDelay:
    """Tests for compute_backoff_delay."""

    def test_doubles_until_cap(self):
        """Test the exponential sequence without jitter."""
        delays = [compute_backoff_delay(n, 1.0, 30.0, jitter=0.0) for n in range(1, 8)]

        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_jitter_bounds(self):
        """Test that jitter stays within +/- the configured fraction."""
        rng = random.Random(42)
        for attempt in range(1, 12):
            raw = min(1.0 * 2 ** (attempt - 1), 30.0)
            delay = compute_backoff_delay(attempt, 1.0, 30.0, jitter=0.2, rng=rng)
            assert raw * 0.8 <= delay <= raw * 1.2

    def test_attempt_is_one_based(self):
        with pytest.raises(ValueError):
            compute_backoff_delay(0, 1.0, 30.0)


# =============================================================================
# Buffer
# =============================================================================


class TestChunkBuffer:
    """Tests for ChunkBuffer."""

    def test_drop_oldest(self):
        """Test that a full buffer evicts its head."""
        buffer = ChunkBuffer(capacity=3, policy=OverflowPolicy.DROP_OLDEST)
        for chunk in (b"1", b"2", b"3"):
            assert buffer.push(chunk) is True

        assert buffer.push(b"4") is False

        assert buffer.snapshot() == [b"2", b"3", b"4"]
        assert buffer.dropped == 1

    def test_drop_newest(self):
        """Test that a full buffer discards the incoming chunk."""
        buffer = ChunkBuffer(capacity=2, policy=OverflowPolicy.DROP_NEWEST)
        buffer.push(b"1")
        buffer.push(b"2")

        assert buffer.push(b"3") is False

        assert buffer.snapshot() == [b"1", b"2"]
        assert buffer.dropped == 1

    def test_default_drops_new_chunks(self):
        """Test that a full buffer keeps its contents by default."""
        buffer = ChunkBuffer(capacity=2)
        for chunk in (b"1", b"2", b"3"):
            buffer.push(chunk)

        assert buffer.policy == OverflowPolicy.DROP_NEWEST
        assert buffer.snapshot() == [b"1", b"2"]
        assert buffer.dropped == 1

    def test_never_exceeds_capacity(self):
        buffer = ChunkBuffer(capacity=5)
        for i in range(50):
            buffer.push(str(i))
            assert len(buffer) <= 5

    def test_requeue_restores_order(self):
        buffer = ChunkBuffer(capacity=3)
        buffer.push(b"1")
        buffer.push(b"2")

        chunk = buffer.popleft()
        buffer.requeue(chunk)

        assert buffer.snapshot() == [b"1", b"2"]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ChunkBuffer(capacity=0)


# =============================================================================
# Channel
# =============================================================================


def make_channel(factory, listener, settings, sleep, **kwargs):
    return ResilientStreamChannel(
        transport_factory=factory,
        listener=listener,
        settings=settings,
        session_id="session_test",
        sleep=sleep,
        **kwargs,
    )


class TestChannelOpen:
    """Tests for opening the channel."""

    @pytest.mark.asyncio
    async def test_open_sends_config_first(self, channel_settings, instant_sleep):
        """Test that the session parameters are the first thing sent."""
        factory = TransportFactory()
        listener = RecordingChannelListener()
        channel = make_channel(factory, listener, channel_settings, instant_sleep)

        await channel.open(SessionParams(language="es-US"))

        assert channel.state == ConnectionState.CONNECTED
        assert factory.current.sent[0]["config"]["languageCode"] == "es-US"
        assert listener.states[:2] == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]

        await channel.close()

    @pytest.mark.asyncio
    async def test_open_auth_failure(self, channel_settings, instant_sleep):
        """Test that a rejected first connection closes the channel and raises."""
        factory = TransportFactory([FailingTransport(FatalAuthError("Unauthorized"))])
        channel = make_channel(factory, RecordingChannelListener(), channel_settings, instant_sleep)

        with pytest.raises(FatalAuthError):
            await channel.open(SessionParams())

        assert channel.state == ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_open_twice_rejected(self, channel_settings, instant_sleep):
        channel = make_channel(TransportFactory(), None, channel_settings, instant_sleep)
        await channel.open(SessionParams())

        with pytest.raises(RuntimeError):
            await channel.open(SessionParams())

        await channel.close()


class TestChannelDelivery:
    """Tests for inbound result delivery."""

    @pytest.mark.asyncio
    async def test_results_in_order(self, channel_settings, instant_sleep):
        """Test that results reach the listener in arrival order."""
        factory = TransportFactory()
        listener = RecordingChannelListener()
        channel = make_channel(factory, listener, channel_settings, instant_sleep)
        await channel.open(SessionParams())

        for i in range(5):
            factory.current.push(recognition_message(f"utterance {i}", is_final=i % 2 == 0))
        await factory.current.wait_consumed()

        assert [u.text for u in listener.results] == [f"utterance {i}" for i in range(5)]
        assert all(u.session_id == "session_test" for u in listener.results)

        timestamps = [u.timestamp for u in listener.results]
        assert timestamps == sorted(timestamps)

        await channel.close()

    @pytest.mark.asyncio
    async def test_parse_error_skipped(self, channel_settings, instant_sleep):
        """Test that a bad message is reported and the stream continues."""
        factory = TransportFactory()
        listener = RecordingChannelListener()
        channel = make_channel(factory, listener, channel_settings, instant_sleep)
        await channel.open(SessionParams())

        factory.current.push("garbage{")
        factory.current.push(recognition_message("still here"))
        await factory.current.wait_consumed()

        assert [u.text for u in listener.results] == ["still here"]
        assert len(listener.errors) == 1
        assert isinstance(listener.errors[0], ParseError)
        assert channel.stats().parse_failures == 1
        assert channel.state == ConnectionState.CONNECTED

        await channel.close()

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_stop_stream(self, channel_settings, instant_sleep):
        factory = TransportFactory()

        class ExplodingListener(RecordingChannelListener):
            async def on_result(self, utterance):
                await super().on_result(utterance)
                raise RuntimeError("listener bug")

        listener = ExplodingListener()
        channel = make_channel(factory, listener, channel_settings, instant_sleep)
        await channel.open(SessionParams())

        factory.current.push(recognition_message("one"))
        factory.current.push(recognition_message("two"))
        await factory.current.wait_consumed()

        assert len(listener.results) == 2

        await channel.close()


class TestChannelReconnect:
    """Tests for reconnection and buffering."""

    @pytest.mark.asyncio
    async def test_reconnects_after_drop(self, channel_settings, instant_sleep, sleeps):
        """Test that a dropped transport is replaced and attempts reset."""
        factory = TransportFactory()
        listener = RecordingChannelListener()
        channel = make_channel(factory, listener, channel_settings, instant_sleep)
        await channel.open(SessionParams())

        first = factory.current
        first.drop()
        await wait_until(lambda: len(factory.created) == 2 and channel.state == ConnectionState.CONNECTED)

        assert channel.reconnect_attempts == 0
        assert channel.stats().total_reconnects == 1
        assert sleeps == [1.0]
        assert ConnectionState.RECONNECTING in listener.states
        assert factory.current.sent[0]["config"]["languageCode"] == "en-US"

        await channel.close()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, channel_settings, instant_sleep, sleeps):
        """Test that ten failed reconnects close the channel with one error."""
        first = InMemoryTransport()
        factory = TransportFactory([first] + [FailingTransport() for _ in range(10)])
        listener = RecordingChannelListener()
        channel = make_channel(factory, listener, channel_settings, instant_sleep)
        await channel.open(SessionParams())

        first.drop()
        await wait_until(lambda: channel.state == ConnectionState.CLOSED)

        fatal = [e for e in listener.errors if isinstance(e, MaxReconnectAttemptsExceeded)]
        assert len(fatal) == 1
        assert fatal[0].attempts == 10
        assert not any(isinstance(e, FatalAuthError) for e in listener.errors)
        assert len(factory.created) == 11
        assert sleeps == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0, 30.0, 30.0]

        await channel.close()
        assert len([e for e in listener.errors if isinstance(e, MaxReconnectAttemptsExceeded)]) == 1

    @pytest.mark.asyncio
    async def test_auth_failure_on_reconnect_is_fatal(self, channel_settings, instant_sleep):
        """Test that a credential rejection during reconnect stops retrying."""
        first = InMemoryTransport()
        factory = TransportFactory([first, FailingTransport(FatalAuthError("Unauthorized"))])
        listener = RecordingChannelListener()
        channel = make_channel(factory, listener, channel_settings, instant_sleep)
        await channel.open(SessionParams())

        first.drop()
        await wait_until(lambda: channel.state == ConnectionState.CLOSED)

        assert len(factory.created) == 2
        assert [type(e) for e in listener.errors] == [FatalAuthError]

    @pytest.mark.asyncio
    async def test_buffer_flushed_in_order(self, channel_settings):
        """Test that chunks sent while reconnecting are flushed FIFO."""
        first = InMemoryTransport()
        second = InMemoryTransport()
        factory = TransportFactory([first, second])
        held = []

        async def held_sleep(delay):
            await wait_until(lambda: len(held) == 3)

        channel = make_channel(factory, RecordingChannelListener(), channel_settings, held_sleep)
        await channel.open(SessionParams())

        first.drop()
        await wait_until(lambda: channel.state == ConnectionState.RECONNECTING)
        for chunk in (b"a", b"b", b"c"):
            await channel.send(chunk)
            held.append(chunk)

        await wait_until(lambda: channel.state == ConnectionState.CONNECTED)

        assert second.sent[1:] == [b"a", b"b", b"c"]
        assert channel.buffered_chunks == 0

        await channel.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "policy,flushed",
        [
            (None, range(0, 5)),
            (OverflowPolicy.DROP_OLDEST, range(3, 8)),
        ],
    )
    async def test_buffer_overflow_reported_once(self, channel_settings, policy, flushed):
        """Test capacity overflow while reconnecting.

        By default a full buffer keeps what it has and drops new chunks.
        """
        if policy is not None:
            channel_settings.overflow_policy = policy
        first = InMemoryTransport()
        factory = TransportFactory([first])
        listener = RecordingChannelListener()
        release = []

        async def held_sleep(delay):
            await wait_until(lambda: release)

        channel = make_channel(factory, listener, channel_settings, held_sleep)
        await channel.open(SessionParams())

        first.drop()
        await wait_until(lambda: channel.state == ConnectionState.RECONNECTING)
        for i in range(8):
            await channel.send(f"chunk-{i}")

        assert channel.buffered_chunks == 5
        assert channel.stats().dropped_chunks == 3
        overflow = [e for e in listener.errors if isinstance(e, CapacityExceeded)]
        assert len(overflow) == 1

        release.append(True)
        await wait_until(lambda: channel.state == ConnectionState.CONNECTED)
        assert factory.current.sent[1:] == [f"chunk-{i}" for i in flushed]

        await channel.close()

    @pytest.mark.asyncio
    async def test_send_while_disconnected_dropped(self, channel_settings, instant_sleep):
        channel = make_channel(TransportFactory(), None, channel_settings, instant_sleep)

        await channel.send(b"early")

        assert channel.buffered_chunks == 0
        assert channel.stats().chunks_sent == 0


class FlakySendTransport(InMemoryTransport):
    """Transport whose next ``failures`` audio sends fail."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def send(self, data):
        if not isinstance(data, dict) and self.failures:
            self.failures -= 1
            raise TransportError("write failed", source="transport")
        await super().send(data)


class TestChannelSendFailure:
    """Tests for transmit failures while connected."""

    @pytest.mark.asyncio
    async def test_failed_chunk_sent_before_later_ones(self, channel_settings, instant_sleep):
        transport = FlakySendTransport(failures=1)
        channel = make_channel(
            TransportFactory([transport]), RecordingChannelListener(), channel_settings, instant_sleep
        )
        await channel.open(SessionParams())

        await channel.send(b"a")
        assert channel.buffered_chunks == 1

        await channel.send(b"b")

        assert channel.state == ConnectionState.CONNECTED
        assert transport.sent[1:] == [b"a", b"b"]
        assert channel.buffered_chunks == 0
        assert channel.stats().chunks_sent == 2

        await channel.close()

    @pytest.mark.asyncio
    async def test_nothing_overtakes_buffered_chunks(self, channel_settings, instant_sleep):
        """Test that new chunks queue behind a chunk that is still failing."""
        transport = FlakySendTransport(failures=2)
        channel = make_channel(
            TransportFactory([transport]), RecordingChannelListener(), channel_settings, instant_sleep
        )
        await channel.open(SessionParams())

        await channel.send(b"a")
        await channel.send(b"b")

        assert transport.sent[1:] == []
        assert channel.buffered_chunks == 2

        await channel.send(b"c")

        assert transport.sent[1:] == [b"a", b"b", b"c"]
        assert channel.buffered_chunks == 0

        await channel.close()


class TestChannelClose:
    """Tests for closing the channel."""

    @pytest.mark.asyncio
    async def test_close_idempotent(self, channel_settings, instant_sleep):
        factory = TransportFactory()
        channel = make_channel(factory, RecordingChannelListener(), channel_settings, instant_sleep)
        await channel.open(SessionParams())

        await channel.close()
        await channel.close()

        assert channel.state == ConnectionState.CLOSED
        assert factory.current.connected is False

    @pytest.mark.asyncio
    async def test_close_discards_buffer(self, channel_settings):
        first = InMemoryTransport()
        factory = TransportFactory([first])

        async def never_sleep(delay):
            await wait_until(lambda: False, timeout=60)

        channel = make_channel(factory, RecordingChannelListener(), channel_settings, never_sleep)
        await channel.open(SessionParams())
        first.drop()
        await wait_until(lambda: channel.state == ConnectionState.RECONNECTING)
        await channel.send(b"pending")

        await channel.close()

        assert channel.buffered_chunks == 0
        assert channel.state == ConnectionState.CLOSED
        assert len(factory.created) == 1

    @pytest.mark.asyncio
    async def test_send_after_close_dropped(self, channel_settings, instant_sleep):
        factory = TransportFactory()
        channel = make_channel(factory, None, channel_settings, instant_sleep)
        await channel.open(SessionParams())
        await channel.close()

        await channel.send(b"late")

        assert factory.current.sent == [factory.current.sent[0]]


def test_overflow_policy_setting():
    settings = ChannelSettings(overflow_policy="drop_newest", buffer_capacity=2)
    channel = ResilientStreamChannel(transport_factory=InMemoryTransport, settings=settings)

    assert channel.stats().buffered_chunks == 0
    assert channel._buffer.policy == OverflowPolicy.DROP_NEWEST


def test_default_overflow_policy():
    channel = ResilientStreamChannel(transport_factory=InMemoryTransport)

    assert channel._buffer.policy == OverflowPolicy.DROP_NEWEST
