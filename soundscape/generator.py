import random
from typing import List, Optional

from soundscape.core.models import (
    ChordKind, NOTE_NAMES, ResizeBehavior, SoundEvent, SoundKind, SynthSource, Timeline,
    WaveShape, new_event_id,
)


class ProgressionGenerator:
    """Builds a short I-V-vi-IV chord progression in a random friendly key."""

    KEYS: List[str] = ['C', 'F', 'G', 'A', 'D']
    STEPS: List[int] = [0, 7, 9, 5]
    CHORDS: List[ChordKind] = [ChordKind.MAJOR, ChordKind.MAJOR, ChordKind.MINOR, ChordKind.MAJOR]

    def __init__(self, rng: Optional[random.Random] = None, lane: int = 1,
                 chord_seconds: float = 2.0, reverb: float = 0.2) -> None:
        self.rng = rng or random.Random()
        self.lane = lane
        self.chord_seconds = chord_seconds
        self.reverb = reverb

    def generate(self, key: Optional[str] = None) -> Timeline:
        key = key or self.rng.choice(self.KEYS)
        root_index = NOTE_NAMES.index(key)
        events = []
        for i, (step, chord) in enumerate(zip(self.STEPS, self.CHORDS)):
            note = NOTE_NAMES[(root_index + step) % 12]
            events.append(SoundEvent(
                id=new_event_id(SoundKind.SYNTH),
                lane=self.lane,
                start_time=i * self.chord_seconds,
                duration=self.chord_seconds,
                source=SynthSource(root_note=note, chord_kind=chord, wave_shape=WaveShape.SINE),
                reverb_amount=self.reverb,
                resize_behavior=ResizeBehavior.TRIM,
            ))
        return tuple(events)
