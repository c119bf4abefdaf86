import logging
import os
from typing import Optional

import numpy as np
import soundfile as sf
from pydub import AudioSegment
from tqdm import tqdm

from soundscape.core.config import AppConfig, TimelineConfig
from soundscape.core.effects import MasterBus
from soundscape.core.models import Timeline
from soundscape.devices import OfflineDevice
from soundscape.engine import AudioContext, BufferLookup, render_event

logger = logging.getLogger(__name__)


class TimelineRenderer:
    """Bounces a timeline offline through the same engine used for live playback."""

    def __init__(self, sample_rate=None, config: Optional[TimelineConfig] = None):
        self.sr = sample_rate or AppConfig.SAMPLE_RATE
        self.config = config or TimelineConfig()
        self.master_bus = MasterBus()

    def render(self, timeline: Timeline, lookup: BufferLookup, progress=False) -> np.ndarray:
        """Returns a (2, frames) mix spanning at least the whole timeline plus any reverb tail."""
        device = OfflineDevice(self.sr)
        ctx = AudioContext(device_factory=lambda: device, defer=lambda delay_ms, callback: None)

        for event in tqdm(sorted(timeline, key=lambda e: e.start_time), disable=not progress, desc="Rendering"):
            device.seek(event.start_time)
            render_event(ctx, event, lookup)

        mix = device.mixdown()
        min_frames = int(round(self.config.duration * self.sr))
        if mix.shape[1] < min_frames:
            mix = np.pad(mix, ((0, 0), (0, min_frames - mix.shape[1])))
        return self.master_bus.process(mix, self.sr)

    def numpy_to_segment(self, samples, sr):
        """Helper to convert numpy float32 back to pydub segment."""
        if samples.size == 0:
            return AudioSegment.silent(duration=0, frame_rate=sr)
        peak = np.max(np.abs(samples))
        if peak > 1.0:
            samples = samples / (peak + 1e-6)

        samples = (samples * 32767).astype(np.int16)
        if samples.shape[0] == 2:
            samples = samples.T.flatten()
            return AudioSegment(samples.tobytes(), frame_rate=sr, sample_width=2, channels=2)
        return AudioSegment(samples.tobytes(), frame_rate=sr, sample_width=2, channels=1)

    def export(self, samples, output_path):
        """Writes a rendered mix. MP3 goes through pydub (ffmpeg), everything else through soundfile."""
        out_dir = os.path.dirname(output_path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        if output_path.lower().endswith(".mp3"):
            self.numpy_to_segment(samples, self.sr).export(output_path, format="mp3", bitrate="320k")
        else:
            sf.write(output_path, samples.T, self.sr)
        logger.info("Exported %.2fs mix to %s", samples.shape[1] / self.sr, output_path)
        return output_path

    def bounce(self, timeline: Timeline, lookup: BufferLookup, output_path, progress=True):
        return self.export(self.render(timeline, lookup, progress=progress), output_path)
