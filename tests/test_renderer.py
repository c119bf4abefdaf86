import numpy as np
import pytest
import soundfile as sf

from soundscape.core.config import TimelineConfig
from soundscape.core.models import SampleSource, SoundEvent, SynthSource
from soundscape.registry import DecodedBuffer
from soundscape.renderer import TimelineRenderer

from conftest import TEST_SR


@pytest.fixture
def renderer():
    return TimelineRenderer(sample_rate=TEST_SR, config=TimelineConfig(duration=4.0))


def no_buffers(source_id):
    return None


def chord(start, lane=0, duration=1.0, reverb=0.0):
    return SoundEvent(id=f"c{start}-{lane}", lane=lane, start_time=start, duration=duration,
                      source=SynthSource('G'), reverb_amount=reverb)


def test_empty_timeline_renders_silence(renderer):
    mix = renderer.render((), no_buffers)
    assert mix.shape == (2, 4 * TEST_SR)
    assert not mix.any()


def test_events_land_at_their_start(renderer):
    mix = renderer.render((chord(2.0), chord(2.0, lane=1)), no_buffers)
    assert mix.shape == (2, 4 * TEST_SR)
    before = np.abs(mix[:, :TEST_SR]).max()
    during = np.abs(mix[:, 2 * TEST_SR:3 * TEST_SR]).max()
    assert before < 1e-4
    assert during > 0.1
    assert np.abs(mix).max() <= 1.0


def test_reverb_tail_extends_mix(renderer):
    mix = renderer.render((chord(3.0, reverb=0.5),), no_buffers)
    assert mix.shape[1] == 3 * TEST_SR + TEST_SR + 2 * TEST_SR


def test_missing_samples_are_skipped(renderer):
    event = SoundEvent(id="s", lane=0, start_time=0.0, duration=1.0, source=SampleSource("gone"))
    buf = DecodedBuffer(np.full(TEST_SR, 0.5), TEST_SR)
    assert not renderer.render((event,), no_buffers).any()
    assert renderer.render((event,), {"gone": buf}.get).any()


def test_bounce_writes_wav(renderer, tmp_path):
    out = str(tmp_path / "exports" / "song.wav")
    assert renderer.bounce((chord(0.0),), no_buffers, out, progress=False) == out
    data, sr = sf.read(out)
    assert sr == TEST_SR
    assert data.shape == (4 * TEST_SR, 2)


def test_numpy_to_segment(renderer):
    seg = renderer.numpy_to_segment(np.zeros((2, TEST_SR), dtype=np.float32), TEST_SR)
    assert seg.channels == 2
    assert seg.frame_count() == TEST_SR
    assert len(renderer.numpy_to_segment(np.zeros((2, 0), dtype=np.float32), TEST_SR)) == 0
