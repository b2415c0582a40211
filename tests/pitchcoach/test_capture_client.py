import asyncio

import numpy as np
import pytest

from src.pitchcoach.client.capture import AudioCaptureClient, CaptureConstraints
from src.pitchcoach.errors import AlreadyActive, PermissionDenied, ProviderConnectionFailed, UnsupportedDevice


class FakeSource:
    def __init__(self, sample_rate=16000, error=None):
        self._sample_rate = sample_rate
        self.error = error
        self.on_frame = None
        self.started = 0
        self.stopped = 0

    @property
    def sample_rate(self):
        return self._sample_rate

    def start(self, constraints, on_frame):
        if self.error is not None:
            raise self.error
        self.started += 1
        self.on_frame = on_frame

    def stop(self):
        self.stopped += 1


class RecordingBuffer:
    has_active_session = True

    def __init__(self):
        self.chunks = []

    async def add_chunk(self, chunk, send_immediately=True):
        self.chunks.append(chunk)
        return True


def _client(source, connector, **kwargs):
    credentials = []

    def factory(credential):
        credentials.append(credential)
        return connector

    client = AudioCaptureClient(source=source, connector_factory=factory, **kwargs)
    return client, credentials


async def _settle():
    for _ in range(10):
        await asyncio.sleep(0)


async def test_start_streams_frames_as_pcm(connector_factory):
    source = FakeSource()
    connector = connector_factory()
    client, credentials = _client(source, connector)

    await client.start("S1", "dg-key", language="en")
    source.on_frame(np.array([0.0, 0.5, -0.5], dtype=np.float32))
    await _settle()

    assert client.is_capturing
    assert credentials == ["dg-key"]
    sent = connector.opened[0].sent
    assert len(sent) == 1
    assert np.frombuffer(sent[0], dtype="<i2").tolist() == [0, 16383, -16384]
    assert client.level > 0
    await client.stop()


async def test_frames_from_other_rates_are_resampled(connector_factory):
    source = FakeSource(sample_rate=48000)
    connector = connector_factory()
    client, _ = _client(source, connector)

    await client.start("S1", "dg-key")
    source.on_frame(np.zeros(4800, dtype=np.float32))
    await _settle()

    assert len(connector.opened[0].sent[0]) == 1600 * 2
    await client.stop()


async def test_results_are_normalized_before_listeners(connector_factory, live_connection_factory, make_result):
    connection = live_connection_factory()
    source = FakeSource()
    buffer = RecordingBuffer()
    client, _ = _client(source, connector_factory(connection), buffer=buffer)
    seen = []
    client.on_transcript(lambda text, is_final, confidence: seen.append((text, is_final)))

    await client.start("S1", "dg-key")
    connection.push(make_result("hello there everyone", is_final=True, confidence=0.9))
    connection.push(make_result("hello there everyone", is_final=True, confidence=0.9))
    connection.push(make_result("hm", is_final=True, confidence=0.2))
    await _settle()

    assert seen == [("Hello there everyone.", True)]
    assert [chunk.text for chunk in buffer.chunks] == ["Hello there everyone."]
    await client.stop()


async def test_removed_listener_is_not_called(connector_factory, live_connection_factory, make_result):
    connection = live_connection_factory()
    client, _ = _client(FakeSource(), connector_factory(connection))
    seen = []

    async def listener(text, is_final, confidence):
        seen.append(text)

    client.on_transcript(listener)
    client.remove_listener(listener)
    await client.start("S1", "dg-key")
    connection.push(make_result("a new thought", is_final=True))
    await _settle()

    assert seen == []
    await client.stop()


async def test_second_start_raises_already_active(connector_factory):
    client, _ = _client(FakeSource(), connector_factory())
    await client.start("S1", "dg-key")

    with pytest.raises(AlreadyActive):
        await client.start("S2", "dg-key")

    await client.stop()


@pytest.mark.parametrize("error", [UnsupportedDevice("no mic"), PermissionDenied("denied")])
async def test_microphone_errors_propagate(connector_factory, error):
    connector = connector_factory()
    client, _ = _client(FakeSource(error=error), connector)

    with pytest.raises(type(error)):
        await client.start("S1", "dg-key")

    assert not client.is_capturing
    assert connector.calls == []


async def test_provider_failure_releases_microphone(connector_factory):
    source = FakeSource()
    client, _ = _client(source, connector_factory(error=ProviderConnectionFailed("refused")))

    with pytest.raises(ProviderConnectionFailed):
        await client.start("S1", "dg-key")

    assert source.stopped == 1
    assert not client.is_capturing


async def test_stop_is_idempotent_and_releases_everything(connector_factory):
    source = FakeSource()
    connector = connector_factory()
    client, _ = _client(source, connector)

    await client.stop()
    await client.start("S1", "dg-key")
    await client.stop()
    await client.stop()

    assert source.stopped == 1
    assert connector.opened[0].closed
    assert not client.is_capturing
    assert client.session_id is None


async def test_provider_stream_error_stops_capture(connector_factory, live_connection_factory):
    connection = live_connection_factory()
    source = FakeSource()
    client, _ = _client(source, connector_factory(connection))
    await client.start("S1", "dg-key")

    connection.fail(RuntimeError("stream broke"))
    await _settle()

    assert not client.is_capturing
    assert source.stopped == 1
    assert connection.closed


def test_capture_constraints_defaults():
    constraints = CaptureConstraints()

    assert constraints.sample_rate == 16000
    assert constraints.channels == 1
    assert constraints.echo_cancellation and constraints.noise_suppression
    assert constraints.frame_ms == 250
