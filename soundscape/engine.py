import logging
from typing import Callable, List, Optional, Tuple

import numpy as np
from PyQt6.QtCore import QTimer

from soundscape.core.config import AppConfig
from soundscape.core.effects import ConvolutionReverb
from soundscape.core.errors import DeviceUnavailableError
from soundscape.core.models import ResizeBehavior, SampleSource, SoundEvent, SynthSource, WaveShape
from soundscape.devices import AudioDevice, SoundDeviceOutput, Voice
from soundscape.registry import DecodedBuffer

logger = logging.getLogger(__name__)

BufferLookup = Callable[[str], Optional[DecodedBuffer]]
Deferred = Callable[[int, Callable[[], None]], None]


def _qt_defer(delay_ms: int, callback: Callable[[], None]) -> None:
    QTimer.singleShot(delay_ms, callback)


def _open_default_device() -> AudioDevice:
    return SoundDeviceOutput().open()


class AudioContext:
    """Process-scoped audio state: one device handle, its reverb kernel, and live voices.

    The device is opened on first use and reopened if it was closed; the
    reverb kernel is rebuilt whenever the device handle changes.
    """

    def __init__(self, device_factory: Optional[Callable[[], AudioDevice]] = None,
                 defer: Optional[Deferred] = None) -> None:
        self.device_factory = device_factory or _open_default_device
        self.defer: Deferred = defer or _qt_defer
        self.active: List[Voice] = []
        self._device: Optional[AudioDevice] = None
        self._reverb: Optional[ConvolutionReverb] = None
        self._reverb_device: Optional[AudioDevice] = None

    @property
    def is_open(self) -> bool:
        return self._device is not None and not self._device.closed

    def device(self) -> AudioDevice:
        if self.is_open:
            return self._device
        try:
            device = self.device_factory()
        except DeviceUnavailableError:
            raise
        except Exception as e:
            raise DeviceUnavailableError(str(e)) from e
        self._device = device
        self._reverb = None
        self.active = []
        return device

    def reverb(self) -> ConvolutionReverb:
        device = self.device()
        if self._reverb is None or self._reverb_device is not device:
            self._reverb = ConvolutionReverb(device.sample_rate)
            self._reverb_device = device
        return self._reverb

    def close(self) -> None:
        stop_all(self)
        if self._device is not None:
            self._device.close()
        self._device = None
        self._reverb = None
        self._reverb_device = None


def playback_rate(event: SoundEvent) -> float:
    if (event.resize_behavior == ResizeBehavior.STRETCH
            and event.duration != event.original_duration and event.duration > 0):
        return event.original_duration / event.duration
    return 1.0


def envelope_points(duration: float, volume: float) -> List[Tuple[float, float]]:
    """Breakpoints (time, gain) of the attack/sustain/release envelope.

    Each ramp is floored at MIN_RAMP_SECONDS; when the floored ramps no longer
    fit inside the duration they are scaled down together.
    """
    attack = max(duration * AppConfig.ATTACK_FRACTION, AppConfig.MIN_RAMP_SECONDS)
    release = max(duration * AppConfig.RELEASE_FRACTION, AppConfig.MIN_RAMP_SECONDS)
    if attack + release > duration:
        scale = duration / (attack + release)
        attack *= scale
        release *= scale
    return [(0.0, 0.0), (attack, volume), (duration - release, volume), (duration, 0.0)]


def build_envelope(duration: float, volume: float, sr: int) -> np.ndarray:
    n = int(round(duration * sr))
    times, gains = zip(*envelope_points(duration, volume))
    t = np.arange(n) / sr
    return np.interp(t, times, gains).astype(np.float32)


class DetuneRandom:
    """32-bit LCG seeded from the event id, so an event always detunes the same way."""

    def __init__(self, event_id: str) -> None:
        self.state = sum(ord(c) for c in event_id) & 0xFFFFFFFF

    def next(self) -> float:
        self.state = (1664525 * self.state + 1013904223) & 0xFFFFFFFF
        return self.state / 4294967296.0

    def cents(self, amount: float) -> float:
        return (self.next() * 2.0 - 1.0) * amount * AppConfig.DETUNE_MAX_CENTS


def chord_frequencies(source: SynthSource, event_id: str, rate: float = 1.0) -> List[float]:
    rng = DetuneRandom(event_id)
    freqs = []
    for interval in source.intervals:
        f = source.root_frequency * 2.0 ** (interval / 12.0)
        if source.detune_amount > 0:
            f *= 2.0 ** (rng.cents(source.detune_amount) / 1200.0)
        freqs.append(f * rate)
    return freqs


def oscillator(shape: WaveShape, freq: float, n: int, sr: int) -> np.ndarray:
    phase = freq * np.arange(n) / sr
    frac = phase - np.floor(phase)
    if shape == WaveShape.SQUARE:
        y = np.where(frac < 0.5, 1.0, -1.0)
    elif shape == WaveShape.SAWTOOTH:
        y = 2.0 * (phase - np.floor(phase + 0.5))
    elif shape == WaveShape.TRIANGLE:
        y = 1.0 - 4.0 * np.abs(frac - 0.5)
    else:
        y = np.sin(2.0 * np.pi * phase)
    return y.astype(np.float32)


def synthesize_chord(event: SoundEvent, sr: int, rate: float = 1.0) -> np.ndarray:
    """Sums one oscillator per chord interval into a mono bus."""
    n = int(round(event.duration * sr))
    bus = np.zeros(n, dtype=np.float32)
    for f in chord_frequencies(event.source, event.id, rate):
        bus += oscillator(event.source.wave_shape, f, n, sr)
    return bus


def play_sample(buffer: DecodedBuffer, duration: float, rate: float, sr: int) -> np.ndarray:
    """Reads the buffer from its start at `rate`, for `duration` seconds or until it runs out."""
    n = int(round(duration * sr))
    step = rate * buffer.sample_rate / sr
    positions = np.arange(n) * step
    positions = positions[positions <= buffer.frames - 1]
    if positions.size == 0:
        return np.zeros((buffer.channels, 0), dtype=np.float32)
    grid = np.arange(buffer.frames)
    channels = [np.interp(positions, grid, buffer.channel(c)) for c in range(min(buffer.channels, 2))]
    return np.stack(channels).astype(np.float32)


def render_event(ctx: AudioContext, event: SoundEvent, lookup: BufferLookup,
                 volume: Optional[float] = None) -> Optional[Voice]:
    """Schedules one event on the context's device, starting now.

    Returns the started voice, or None when there is nothing to play (missing
    sample, empty buffer). Raises DeviceUnavailableError if no output can be opened.
    """
    device = ctx.device()
    sr = device.sample_rate
    volume = AppConfig.DEFAULT_VOLUME if volume is None else volume
    rate = playback_rate(event)

    if isinstance(event.source, SynthSource):
        bus = synthesize_chord(event, sr, rate)
    elif isinstance(event.source, SampleSource):
        buffer = lookup(event.source.source_id)
        if buffer is None:
            logger.warning("Missing audio for event %s (source %s)", event.id, event.source.source_id)
            return None
        bus = play_sample(buffer, event.duration, rate, sr)
    else:
        return None
    if bus.shape[-1] == 0:
        return None

    shaped = bus * build_envelope(event.duration, volume, sr)[:bus.shape[-1]]
    if shaped.ndim == 1:
        shaped = np.vstack([shaped, shaped])
    elif shaped.shape[0] == 1:
        shaped = np.vstack([shaped[0], shaped[0]])

    if event.reverb_amount > 0:
        wet = ctx.reverb().process(shaped) * event.reverb_amount
        dry = shaped * (1.0 - event.reverb_amount * AppConfig.DRY_REVERB_SCALE)
        wet[:, :dry.shape[1]] += dry
        out = wet
    else:
        out = shaped

    voice = device.start_voice(out, event.id)
    ctx.active.append(voice)
    release_after = max(event.duration, out.shape[1] / sr) + AppConfig.RELEASE_EPSILON
    ctx.defer(int(release_after * 1000), lambda: release_voice(ctx, voice))
    return voice


def release_voice(ctx: AudioContext, voice: Voice) -> bool:
    """Releases a voice once. Returns False if it was already released."""
    if voice not in ctx.active:
        return False
    ctx.active.remove(voice)
    if ctx.is_open:
        ctx.device().stop_voice(voice)
    return True


def stop_all(ctx: AudioContext) -> None:
    """Silences and releases every live voice immediately."""
    voices, ctx.active = ctx.active, []
    if not voices or not ctx.is_open:
        return
    device = ctx.device()
    for voice in voices:
        device.stop_voice(voice)
    logger.debug("Stopped %d voices", len(voices))
