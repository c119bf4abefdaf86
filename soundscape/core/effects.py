import logging
from typing import Optional

import numpy as np
import pedalboard
from pedalboard import Convolution, Limiter

from soundscape.core.config import AppConfig

logger = logging.getLogger(__name__)


def build_impulse_response(sr, seconds=None, decay_power=None, rng: Optional[np.random.Generator] = None):
    """Synthesizes a stereo noise burst with a (1 - i/n)^p energy decay."""
    seconds = AppConfig.REVERB_SECONDS if seconds is None else seconds
    decay_power = AppConfig.REVERB_DECAY_POWER if decay_power is None else decay_power
    rng = rng or np.random.default_rng()

    length = int(sr * seconds)
    decay = np.power(1.0 - np.arange(length) / length, decay_power)
    noise = rng.uniform(-1.0, 1.0, size=(2, length))
    return (noise * decay).astype(np.float32)


class ConvolutionReverb:
    """Shared convolution reverb bound to one audio device lifetime."""

    def __init__(self, sr, impulse=None):
        self.sr = sr
        self.impulse = impulse if impulse is not None else build_impulse_response(sr)
        self.board = pedalboard.Pedalboard([
            Convolution(self.impulse, mix=1.0, sample_rate=float(sr))
        ])
        logger.info("Built reverb kernel (%.2fs @ %d Hz)", self.tail_seconds, sr)

    @property
    def tail_samples(self) -> int:
        return self.impulse.shape[1]

    @property
    def tail_seconds(self) -> float:
        return self.tail_samples / self.sr

    def process(self, samples):
        """Returns the fully wet signal, extended by the kernel length so the tail rings out."""
        if samples.ndim == 1:
            samples = np.stack([samples, samples])
        padded = np.pad(samples, ((0, 0), (0, self.tail_samples))).astype(np.float32)
        return self.board(padded, self.sr, reset=True)


class MasterBus:
    """Final limiter stage for offline bounces."""

    def __init__(self, ceiling_db=-0.1):
        self.board = pedalboard.Pedalboard([Limiter(threshold_db=ceiling_db)])

    def process(self, samples, sr):
        if samples.size == 0:
            return samples
        return self.board(samples.astype(np.float32), sr)
