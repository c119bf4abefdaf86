import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union


class SoundKind(str, Enum):
    SYNTH = "synth"
    SAMPLE = "sample"


class ResizeBehavior(str, Enum):
    TRIM = "trim"
    STRETCH = "stretch"


class WaveShape(str, Enum):
    SINE = "sine"
    SQUARE = "square"
    SAWTOOTH = "sawtooth"
    TRIANGLE = "triangle"


class ChordKind(str, Enum):
    MAJOR = "major"
    MINOR = "minor"
    DIMINISHED = "diminished"
    MAJOR_7TH = "major_7th"
    MINOR_7TH = "minor_7th"
    DOMINANT_7TH = "dominant_7th"

    @property
    def display_name(self) -> str:
        return CHORD_DISPLAY_NAMES[self]


# Equal temperament, fourth octave (A4 = 440 Hz)
NOTE_FREQUENCIES: Dict[str, float] = {
    'C': 261.63, 'C#': 277.18,
    'D': 293.66, 'D#': 311.13,
    'E': 329.63, 'F': 349.23,
    'F#': 369.99, 'G': 392.00,
    'G#': 415.30, 'A': 440.00,
    'A#': 466.16, 'B': 493.88,
}

NOTE_NAMES: List[str] = list(NOTE_FREQUENCIES.keys())

CHORD_INTERVALS: Dict[ChordKind, Tuple[int, ...]] = {
    ChordKind.MAJOR: (0, 4, 7),
    ChordKind.MINOR: (0, 3, 7),
    ChordKind.DIMINISHED: (0, 3, 6),
    ChordKind.MAJOR_7TH: (0, 4, 7, 11),
    ChordKind.MINOR_7TH: (0, 3, 7, 10),
    ChordKind.DOMINANT_7TH: (0, 4, 7, 10),
}

CHORD_DISPLAY_NAMES: Dict[ChordKind, str] = {
    ChordKind.MAJOR: "Major",
    ChordKind.MINOR: "Minor",
    ChordKind.DIMINISHED: "Diminished",
    ChordKind.MAJOR_7TH: "Major 7th",
    ChordKind.MINOR_7TH: "Minor 7th",
    ChordKind.DOMINANT_7TH: "Dominant 7th",
}


@dataclass(frozen=True)
class SynthSource:
    """Payload of a synthesized chord event."""
    root_note: str = 'C'
    chord_kind: ChordKind = ChordKind.MAJOR
    wave_shape: WaveShape = WaveShape.SINE
    detune_amount: float = 0.0  # 0.0 to 1.0 ("warmth")

    def __post_init__(self) -> None:
        if self.root_note not in NOTE_FREQUENCIES:
            raise ValueError(f"Unknown root note: {self.root_note!r}")

    @property
    def root_frequency(self) -> float:
        return NOTE_FREQUENCIES[self.root_note]

    @property
    def intervals(self) -> Tuple[int, ...]:
        return CHORD_INTERVALS[self.chord_kind]


@dataclass(frozen=True)
class SampleSource:
    """Payload of a sample event. `source_id` may dangle if the buffer is gone."""
    source_id: str


@dataclass(frozen=True)
class SoundEvent:
    """A single placed sound on the timeline.

    Placement fields are shared by both kinds; `source` carries the variant
    payload and decides how the engine renders the event.
    """
    id: str
    lane: int
    start_time: float
    duration: float
    source: Union[SynthSource, SampleSource]
    original_duration: Optional[float] = None
    reverb_amount: float = 0.0  # 0.0 to 1.0
    resize_behavior: ResizeBehavior = ResizeBehavior.TRIM

    def __post_init__(self) -> None:
        if self.original_duration is None:
            object.__setattr__(self, 'original_duration', self.duration)

    @property
    def kind(self) -> SoundKind:
        if isinstance(self.source, SynthSource):
            return SoundKind.SYNTH
        return SoundKind.SAMPLE

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def with_placement(self, lane: int, start_time: float) -> 'SoundEvent':
        return replace(self, lane=lane, start_time=start_time)

    def with_span(self, start_time: float, duration: float) -> 'SoundEvent':
        return replace(self, start_time=start_time, duration=duration)


# Snapshots stored in history are tuples so they cannot be mutated in place
Timeline = Tuple[SoundEvent, ...]


def new_event_id(kind: SoundKind) -> str:
    return f"{uuid.uuid4().hex[:12]}-{kind.value}"


def find_event(timeline: Timeline, event_id: str) -> Optional[SoundEvent]:
    for event in timeline:
        if event.id == event_id:
            return event
    return None


def replace_event(timeline: Timeline, event: SoundEvent) -> Timeline:
    """Returns a new timeline with the event of matching id swapped in place."""
    return tuple(event if e.id == event.id else e for e in timeline)


def remove_event(timeline: Timeline, event_id: str) -> Timeline:
    return tuple(e for e in timeline if e.id != event_id)


def event_end(timeline: Timeline) -> float:
    """Returns the latest end time of any event, 0.0 for an empty timeline."""
    return max((e.end_time for e in timeline), default=0.0)
