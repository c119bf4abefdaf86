import logging
import threading
from typing import List, Optional

import numpy as np

from soundscape.core.config import AppConfig
from soundscape.core.errors import DeviceUnavailableError

logger = logging.getLogger(__name__)


class Voice:
    """One scheduled stereo buffer on a device timeline."""
    __slots__ = ("samples", "start_frame", "stop_frame", "event_id")

    def __init__(self, samples: np.ndarray, start_frame: int, event_id: str = "") -> None:
        if samples.ndim == 1:
            samples = np.stack([samples, samples])
        self.samples: np.ndarray = samples.astype(np.float32, copy=False)
        self.start_frame: int = int(start_frame)
        self.stop_frame: Optional[int] = None
        self.event_id: str = event_id

    @property
    def length(self) -> int:
        return self.samples.shape[1]

    @property
    def end_frame(self) -> int:
        end = self.start_frame + self.length
        if self.stop_frame is not None:
            end = min(end, self.stop_frame)
        return end

    def stop(self, frame: int) -> None:
        if self.stop_frame is None or frame < self.stop_frame:
            self.stop_frame = max(self.start_frame, int(frame))

    def mix_into(self, out: np.ndarray, block_start: int) -> None:
        """Adds the part of this voice overlapping [block_start, block_start + frames) to `out`."""
        lo = max(block_start, self.start_frame)
        hi = min(block_start + out.shape[1], self.end_frame)
        if hi <= lo:
            return
        out[:, lo - block_start:hi - block_start] += self.samples[:, lo - self.start_frame:hi - self.start_frame]


class AudioDevice:
    """Base output device: a frame clock plus a polyphonic voice mixer."""

    def __init__(self, sample_rate: Optional[int] = None) -> None:
        self.sample_rate: int = sample_rate or AppConfig.SAMPLE_RATE
        self.voices: List[Voice] = []
        self.lock = threading.Lock()
        self.closed: bool = False
        self._frame: int = 0

    def current_frame(self) -> int:
        with self.lock:
            return self._frame

    def current_time(self) -> float:
        return self.current_frame() / self.sample_rate

    def start_voice(self, samples: np.ndarray, event_id: str = "", at: Optional[float] = None) -> Voice:
        start = self.current_frame() if at is None else int(round(at * self.sample_rate))
        voice = Voice(samples, start, event_id)
        with self.lock:
            self.voices.append(voice)
        return voice

    def stop_voice(self, voice: Voice) -> None:
        with self.lock:
            voice.stop(self._frame)

    def pull(self, frames: int) -> np.ndarray:
        """Mixes the next block of output and advances the clock."""
        out = np.zeros((AppConfig.OUTPUT_CHANNELS, frames), dtype=np.float32)
        with self.lock:
            for voice in self.voices:
                voice.mix_into(out, self._frame)
            self._frame += frames
            self.voices = [v for v in self.voices if v.end_frame > self._frame]
        return out

    def close(self) -> None:
        self.closed = True


class SoundDeviceOutput(AudioDevice):
    """Real-time output through a PortAudio stream (sounddevice)."""

    def __init__(self, sample_rate: Optional[int] = None, blocksize: Optional[int] = None, device=None) -> None:
        super().__init__(sample_rate)
        self.blocksize: int = blocksize or AppConfig.BLOCK_SIZE
        self.device = device if device is not None else AppConfig.OUTPUT_DEVICE
        self._stream = None

    def open(self) -> 'SoundDeviceOutput':
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise DeviceUnavailableError(f"sounddevice/PortAudio unavailable: {e}") from e

        def callback(outdata, frames, time_info, status):
            if status:
                logger.debug("Output stream status: %s", status)
            outdata[:] = self.pull(frames).T

        try:
            self._stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=AppConfig.OUTPUT_CHANNELS,
                blocksize=self.blocksize,
                dtype="float32",
                device=self.device,
                callback=callback,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            raise DeviceUnavailableError(f"Could not open audio output: {e}") from e
        logger.info("Opened audio output (%d Hz, block %d)", self.sample_rate, self.blocksize)
        return self

    def close(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            logger.info("Closed audio output")
        super().close()


class OfflineDevice(AudioDevice):
    """A device whose clock is moved by hand. Used for bounces and tests."""

    def __init__(self, sample_rate: Optional[int] = None) -> None:
        super().__init__(sample_rate)
        self.history: List[Voice] = []

    def start_voice(self, samples: np.ndarray, event_id: str = "", at: Optional[float] = None) -> Voice:
        voice = super().start_voice(samples, event_id, at)
        self.history.append(voice)
        return voice

    def seek(self, seconds: float) -> None:
        with self.lock:
            self._frame = int(round(seconds * self.sample_rate))

    def advance(self, seconds: float) -> None:
        with self.lock:
            self._frame += int(round(seconds * self.sample_rate))

    def active_voices(self) -> List[Voice]:
        """Voices still sounding at the current clock position."""
        with self.lock:
            return [v for v in self.history if v.start_frame <= self._frame < v.end_frame]

    def mixdown(self, seconds: Optional[float] = None) -> np.ndarray:
        """Renders every voice ever started into one stereo buffer from frame 0."""
        with self.lock:
            voices = list(self.history)
        if seconds is None:
            total = max((v.end_frame for v in voices), default=0)
        else:
            total = int(round(seconds * self.sample_rate))
        out = np.zeros((AppConfig.OUTPUT_CHANNELS, total), dtype=np.float32)
        for voice in voices:
            voice.mix_into(out, 0)
        return out
