import numpy as np
import pytest
import soundfile as sf

from soundscape.core.errors import SampleRejectedError
from soundscape.registry import DecodedBuffer, SoundRegistry, load_sound_file


@pytest.fixture
def wav_file(tmp_path):
    path = tmp_path / "pad.wav"
    t = np.arange(22050) / 22050
    sf.write(str(path), 0.5 * np.sin(2 * np.pi * 220 * t), 22050)
    return str(path)


def test_decoded_buffer_shape():
    buf = DecodedBuffer(np.zeros(4410), 44100)
    assert buf.samples.dtype == np.float32
    assert (buf.channels, buf.frames) == (1, 4410)
    assert buf.duration == pytest.approx(0.1)

    stereo = DecodedBuffer(np.zeros((2, 100)), 1000)
    assert stereo.channels == 2
    assert stereo.channel(1).shape == (100,)


def test_register_and_lookup():
    registry = SoundRegistry()
    buf = DecodedBuffer(np.zeros(10), 1000)
    sid = registry.register("hit.wav", buf)
    assert sid.endswith("-hit.wav")
    assert sid in registry
    assert registry.get(sid) is buf
    assert registry.name(sid) == "hit.wav"
    assert registry.get("unknown") is None
    assert registry.name("unknown") is None
    assert len(registry) == 1


def test_register_twice_under_one_id():
    registry = SoundRegistry()
    registry.register("a.wav", DecodedBuffer(np.zeros(10), 1000), "fixed")
    with pytest.raises(ValueError):
        registry.register("b.wav", DecodedBuffer(np.zeros(10), 1000), "fixed")
    assert registry.name("fixed") == "a.wav"


def test_load_sound_file(wav_file):
    registry = SoundRegistry()
    sid = load_sound_file(wav_file, registry, source_id="pad")
    assert sid == "pad"
    buf = registry.get("pad")
    assert buf.sample_rate == 22050
    assert buf.duration == pytest.approx(1.0)
    assert registry.entries()[0][1] == "pad.wav"


def test_load_rejects_large_files(wav_file):
    with pytest.raises(SampleRejectedError, match="size"):
        load_sound_file(wav_file, SoundRegistry(), max_bytes=1024)


def test_load_rejects_long_audio(wav_file):
    registry = SoundRegistry()
    with pytest.raises(SampleRejectedError, match="duration"):
        load_sound_file(wav_file, registry, max_seconds=0.5)
    assert len(registry) == 0


def test_load_rejects_missing_and_invalid(tmp_path):
    with pytest.raises(SampleRejectedError):
        load_sound_file(str(tmp_path / "nope.wav"), SoundRegistry())

    junk = tmp_path / "junk.wav"
    junk.write_bytes(b"definitely not audio")
    with pytest.raises(SampleRejectedError):
        load_sound_file(str(junk), SoundRegistry())


def test_load_rejects_taken_source_id(wav_file):
    registry = SoundRegistry()
    load_sound_file(wav_file, registry, source_id="pad")
    with pytest.raises(SampleRejectedError, match="already registered"):
        load_sound_file(wav_file, registry, source_id="pad")
    assert len(registry) == 1
