import logging
import os
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import librosa
import numpy as np

from soundscape.core.config import AppConfig
from soundscape.core.errors import SampleRejectedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedBuffer:
    """Decoded audio as float32 samples shaped (channels, frames)."""
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        object.__setattr__(self, 'samples', samples)

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frames(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        return self.frames / float(self.sample_rate)

    def channel(self, index: int) -> np.ndarray:
        return self.samples[index]


class SoundRegistry:
    """Append-only map of source ids to decoded buffers and display names."""

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[str, DecodedBuffer]] = {}

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, name: str, buffer: DecodedBuffer, source_id: Optional[str] = None) -> str:
        source_id = source_id or f"{uuid.uuid4().hex[:12]}-{name}"
        if source_id in self._entries:
            raise ValueError(f"Sound already registered: {source_id}")
        self._entries[source_id] = (name, buffer)
        logger.info("Registered sound '%s' (%.2fs)", name, buffer.duration)
        return source_id

    def get(self, source_id: str) -> Optional[DecodedBuffer]:
        entry = self._entries.get(source_id)
        return entry[1] if entry else None

    def name(self, source_id: str) -> Optional[str]:
        entry = self._entries.get(source_id)
        return entry[0] if entry else None

    def entries(self) -> List[Tuple[str, str, DecodedBuffer]]:
        return [(sid, name, buf) for sid, (name, buf) in self._entries.items()]


def load_sound_file(path: str, registry: SoundRegistry, source_id: Optional[str] = None,
                    max_bytes: Optional[int] = None, max_seconds: Optional[float] = None) -> str:
    """Decodes a user audio file, enforces the ingestion caps and registers it."""
    max_bytes = AppConfig.MAX_SAMPLE_BYTES if max_bytes is None else max_bytes
    max_seconds = AppConfig.MAX_SAMPLE_SECONDS if max_seconds is None else max_seconds

    if source_id is not None and source_id in registry:
        raise SampleRejectedError(f"Sound already registered: {source_id}")
    if not os.path.exists(path):
        raise SampleRejectedError(f"File not found: {path}")
    if os.path.getsize(path) > max_bytes:
        raise SampleRejectedError(f"File size cannot exceed {max_bytes // (1024 * 1024)}MB.")

    try:
        y, sr = librosa.load(path, sr=None, mono=False)
    except Exception as e:
        raise SampleRejectedError(f"Invalid audio file format: {os.path.basename(path)}") from e

    buffer = DecodedBuffer(y, int(sr))
    if buffer.duration > max_seconds:
        raise SampleRejectedError(f"Audio duration cannot exceed {int(max_seconds)} seconds.")
    return registry.register(os.path.basename(path), buffer, source_id)
