import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


class AppConfig:
    """Centralized configuration for Harmonic Soundscape."""

    # Audio Settings
    SAMPLE_RATE = int(os.getenv("SOUNDSCAPE_SAMPLE_RATE", "44100"))
    BLOCK_SIZE = int(os.getenv("SOUNDSCAPE_BLOCK_SIZE", "512"))
    OUTPUT_DEVICE = os.getenv("SOUNDSCAPE_OUTPUT_DEVICE") or None
    OUTPUT_CHANNELS = 2

    # Voice shaping
    DEFAULT_VOLUME = 0.25
    ATTACK_FRACTION = 0.1
    RELEASE_FRACTION = 0.4
    MIN_RAMP_SECONDS = 0.005
    DETUNE_MAX_CENTS = 50.0
    DRY_REVERB_SCALE = 0.5
    RELEASE_EPSILON = 0.1

    # Shared reverb kernel
    REVERB_SECONDS = 2.0
    REVERB_DECAY_POWER = 2.5

    # Transport
    TICK_INTERVAL_MS = 16
    PLAYBACK_SAFETY_MARGIN = 10.0

    # Editor
    HISTORY_LIMIT = int(os.getenv("SOUNDSCAPE_HISTORY_LIMIT", "100"))

    # Sample ingestion caps
    MAX_SAMPLE_BYTES = 5 * 1024 * 1024
    MAX_SAMPLE_SECONDS = 60.0

    # Paths (relative to project root)
    SAVE_PATH = os.getenv("SOUNDSCAPE_SAVE_PATH", "composition.json")
    EXPORTS_DIR = "exports"

    @classmethod
    def ensure_dirs(cls):
        """Ensures all required directories exist."""
        os.makedirs(cls.EXPORTS_DIR, exist_ok=True)

    @classmethod
    def get_export_path(cls, name, extension="wav"):
        """Returns a standardized export path for a bounce."""
        safe_name = str(name).replace(" ", "_").replace(".", "_")
        return os.path.join(cls.EXPORTS_DIR, f"{safe_name}.{extension}")


@dataclass(frozen=True)
class TimelineConfig:
    """Grid constants shared by the placement engine and the transport."""

    duration: float = 30.0
    lane_count: int = 4
    pixels_per_second: float = 100.0
    subdivisions_per_second: int = 4
    default_event_duration: float = 2.0
    lane_height_px: float = 64.0
    drag_threshold_px: float = 3.0

    @property
    def quantum(self) -> float:
        return 1.0 / self.subdivisions_per_second

    @property
    def width_px(self) -> float:
        return self.duration * self.pixels_per_second
