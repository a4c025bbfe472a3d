import logging
import math

import numpy as np
import pytest

from caption_client.capture import AudioCaptureEngine, resample_linear
from caption_server.errors import AcquisitionError, ErrorCode


class FakeStream:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True


class StreamFactory:
    def __init__(self):
        self.streams = []

    def __call__(self, **kwargs):
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        return stream


def _feed_blocks(engine, data, block_size=2048):
    for start in range(0, len(data), block_size):
        engine.process_block(data[start : start + block_size])


def test_resample_skips_conversion_at_matching_rates():
    """Test equal rates return the input samples unchanged."""
    data = np.arange(10, dtype=np.float32)
    assert np.array_equal(resample_linear(data, 16000, 16000), data)


@pytest.mark.parametrize("input_rate", [22050, 44100, 48000])
def test_resample_output_length_is_floor_of_ratio(input_rate):
    """Test output length equals floor(L / (input / target))."""
    data = np.zeros(4096, dtype=np.float32)
    out = resample_linear(data, input_rate, 16000)
    assert len(out) == math.floor(4096 / (input_rate / 16000))


def test_resample_integer_ratio_picks_source_samples():
    """Test a 3:1 ratio lands exactly on every third source sample."""
    data = np.arange(30, dtype=np.float32)
    out = resample_linear(data, 48000, 16000)
    assert np.allclose(out, data[::3])


def test_resample_uses_lower_sample_past_the_end():
    """Test interpolation falls back to the lower sample at the tail."""
    out = resample_linear(np.array([0.0, 1.0], dtype=np.float32), 8000, 16000)
    assert np.allclose(out, [0.0, 0.5, 1.0, 1.0])


def test_resample_preserves_monotonic_ramp():
    """Test index mapping never moves backwards."""
    ramp = np.linspace(0.0, 1.0, 4410, dtype=np.float32)
    out = resample_linear(ramp, 44100, 16000)
    assert np.all(np.diff(out) >= 0)


def test_single_chunk_emitted_at_exact_boundary_with_remainder_carried():
    """Test 16 kHz, 1500 ms, 2048-sample blocks -> one 24000-sample chunk."""
    engine = AudioCaptureEngine(sample_rate=16000, chunk_duration_ms=1500)
    chunks = []
    engine.on_chunk(chunks.append)
    stream = np.arange(2048 * 24, dtype=np.float32)

    for index in range(12):
        engine.process_block(stream[index * 2048 : (index + 1) * 2048])

    assert len(chunks) == 1
    assert len(chunks[0]) == 24000
    assert np.array_equal(chunks[0].samples, stream[:24000])
    assert engine.pending_samples == 12 * 2048 - 24000

    for index in range(12, 24):
        engine.process_block(stream[index * 2048 : (index + 1) * 2048])

    assert len(chunks) == 2
    assert np.array_equal(chunks[1].samples, stream[24000:48000])
    assert chunks[1].sample_rate == 16000
    assert chunks[1].duration_ms == pytest.approx(1500.0)


def test_emitted_chunks_are_read_only_copies():
    """Test later input never mutates a chunk already delivered."""
    engine = AudioCaptureEngine(sample_rate=16000, chunk_duration_ms=100)
    chunks = []
    engine.on_chunk(chunks.append)
    engine.process_block(np.ones(1600, dtype=np.float32))
    engine.process_block(np.full(1600, 2.0, dtype=np.float32))

    assert not chunks[0].samples.flags.writeable
    assert np.all(chunks[0].samples == 1.0)
    assert np.all(chunks[1].samples == 2.0)


def test_pending_buffer_grows_for_oversized_blocks(caplog):
    """Test one block larger than the buffer yields every complete chunk."""
    engine = AudioCaptureEngine(sample_rate=16000, chunk_duration_ms=100)
    chunks = []
    engine.on_chunk(chunks.append)

    with caplog.at_level(logging.WARNING, logger="caption_client.capture"):
        emitted = engine.process_block(np.arange(20000, dtype=np.float32))

    assert emitted == 12
    assert len(chunks) == 12
    assert engine.pending_samples == 800
    assert np.array_equal(chunks[-1].samples, np.arange(17600, 19200, dtype=np.float32))
    assert "expanded" in caplog.text


def test_input_is_resampled_before_chunking():
    """Test 48 kHz input produces target-rate chunks."""
    engine = AudioCaptureEngine(
        sample_rate=16000, chunk_duration_ms=100, input_sample_rate=48000
    )
    chunks = []
    engine.on_chunk(chunks.append)
    _feed_blocks(engine, np.zeros(4800, dtype=np.float32), block_size=2400)

    assert len(chunks) == 1
    assert len(chunks[0]) == 1600
    assert engine.pending_samples == 0


def test_subscribers_run_in_registration_order_once_per_chunk():
    """Test delivery order and that duplicate registration is ignored."""
    engine = AudioCaptureEngine(sample_rate=16000, chunk_duration_ms=100)
    calls = []

    def first(_chunk):
        calls.append("first")

    def second(_chunk):
        calls.append("second")

    engine.on_chunk(first)
    engine.on_chunk(second)
    engine.on_chunk(first)
    engine.process_block(np.zeros(1600, dtype=np.float32))

    assert calls == ["first", "second"]


def test_failing_subscriber_does_not_drop_chunks(caplog):
    """Test a raising subscriber is logged while others get every chunk."""
    engine = AudioCaptureEngine(sample_rate=16000, chunk_duration_ms=100)
    received = []

    def broken(_chunk):
        raise RuntimeError("subscriber exploded")

    engine.on_chunk(broken)
    engine.on_chunk(received.append)
    with caplog.at_level(logging.ERROR):
        emitted = engine.process_block(np.zeros(3200, dtype=np.float32))

    assert emitted == 2
    assert len(received) == 2
    assert engine.pending_samples == 0
    assert "Chunk subscriber failed" in caplog.text


def test_unsubscribe_stops_delivery():
    """Test the returned function removes the subscriber."""
    engine = AudioCaptureEngine(sample_rate=16000, chunk_duration_ms=100)
    chunks = []
    unsubscribe = engine.on_chunk(chunks.append)
    engine.process_block(np.zeros(1600, dtype=np.float32))
    unsubscribe()
    unsubscribe()
    engine.process_block(np.zeros(1600, dtype=np.float32))

    assert len(chunks) == 1


def test_start_opens_stream_and_callback_feeds_chunker():
    """Test device callbacks flow through resampling and chunking."""
    factory = StreamFactory()
    engine = AudioCaptureEngine(
        sample_rate=16000, chunk_duration_ms=100, stream_factory=factory
    )
    chunks = []
    engine.on_chunk(chunks.append)

    engine.start()

    assert engine.is_capturing
    stream = factory.streams[0]
    assert stream.started
    assert stream.kwargs["channels"] == 1
    assert stream.kwargs["blocksize"] == 2048
    assert stream.kwargs["samplerate"] == 16000

    indata = np.zeros((2048, 1), dtype=np.float32)
    stream.callback(indata, 2048, None, None)
    assert len(chunks) == 1
    assert engine.pending_samples == 448


def test_start_twice_warns_and_keeps_single_stream(caplog):
    """Test a second start while running is a logged no-op."""
    factory = StreamFactory()
    engine = AudioCaptureEngine(stream_factory=factory)
    engine.start()

    with caplog.at_level(logging.WARNING, logger="caption_client.capture"):
        engine.start()

    assert len(factory.streams) == 1
    assert "already running" in caplog.text


def test_stop_is_idempotent_and_discards_partial_chunk():
    """Test stop releases the stream and drops pending audio."""
    factory = StreamFactory()
    engine = AudioCaptureEngine(
        sample_rate=16000, chunk_duration_ms=100, stream_factory=factory
    )
    engine.stop()
    engine.start()
    engine.process_block(np.zeros(1000, dtype=np.float32))
    assert engine.pending_samples == 1000

    engine.stop()
    engine.stop()

    stream = factory.streams[0]
    assert stream.stopped and stream.closed
    assert not engine.is_capturing
    assert engine.pending_samples == 0


def test_callbacks_after_stop_are_ignored():
    """Test late device callbacks do not emit chunks."""
    factory = StreamFactory()
    engine = AudioCaptureEngine(
        sample_rate=16000, chunk_duration_ms=100, stream_factory=factory
    )
    chunks = []
    engine.on_chunk(chunks.append)
    engine.start()
    callback = factory.streams[0].callback
    engine.stop()

    callback(np.zeros((2048, 1), dtype=np.float32), 2048, None, None)
    assert chunks == []


def test_stream_open_failure_raises_acquisition_error():
    """Test device errors surface as AcquisitionError and leave the engine idle."""

    def failing_factory(**_kwargs):
        raise OSError("no input device")

    engine = AudioCaptureEngine(stream_factory=failing_factory)
    with pytest.raises(AcquisitionError) as excinfo:
        engine.start()

    assert excinfo.value.code == ErrorCode.AUDIO_ACQUISITION_FAILED
    assert "no input device" in str(excinfo.value)
    assert not engine.is_capturing


def test_acquisition_error_from_factory_propagates_unchanged():
    """Test an AcquisitionError raised by the factory is not rewrapped."""
    original = AcquisitionError(detail="permission denied")

    def denied_factory(**_kwargs):
        raise original

    engine = AudioCaptureEngine(stream_factory=denied_factory)
    with pytest.raises(AcquisitionError) as excinfo:
        engine.start()
    assert excinfo.value is original


def test_getters_reflect_configuration():
    """Test the read-only configuration properties."""
    engine = AudioCaptureEngine(
        sample_rate=16000, chunk_duration_ms=3000, input_sample_rate=44100
    )
    assert engine.sample_rate == 16000
    assert engine.chunk_duration_ms == 3000
    assert engine.input_sample_rate == 44100
    assert engine.chunk_samples == 48000
    assert not engine.is_capturing
