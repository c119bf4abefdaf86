import json
import logging
import math
import os
from typing import Any, Dict, List, Optional

from soundscape.core.config import AppConfig, TimelineConfig
from soundscape.core.errors import TimelineFormatError
from soundscape.core.models import (
    CHORD_DISPLAY_NAMES, ChordKind, NOTE_FREQUENCIES, ResizeBehavior, SampleSource,
    SoundEvent, SoundKind, SynthSource, Timeline, WaveShape,
)
from soundscape.placement import GridPlacement

logger = logging.getLogger(__name__)

_MISSING = object()


def event_to_dict(event: SoundEvent) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        'id': event.id,
        'sound_type': event.kind.value,
        'lane': event.lane,
        'start_time': event.start_time,
        'duration': event.duration,
        'original_duration': event.original_duration,
        'reverb_amount': event.reverb_amount,
        'resize_behavior': event.resize_behavior.value,
    }
    if isinstance(event.source, SynthSource):
        d.update({
            'root_note': event.source.root_note,
            'chord_kind': event.source.chord_kind.value,
            'wave_shape': event.source.wave_shape.value,
            'detune_amount': event.source.detune_amount,
        })
    else:
        d['source_id'] = event.source.source_id
    return d


def serialize(timeline: Timeline) -> List[Dict[str, Any]]:
    """Plain-data form of a timeline, one mapping per event, order preserved."""
    return [event_to_dict(e) for e in timeline]


def _field(item: Dict[str, Any], key: str, default: Any = _MISSING) -> Any:
    if key in item and item[key] is not None:
        return item[key]
    if default is _MISSING:
        raise TimelineFormatError(f"Event {item.get('id', '?')!r} is missing '{key}'")
    return default


def _number(item: Dict[str, Any], key: str, default: Any = _MISSING) -> float:
    value = _field(item, key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TimelineFormatError(f"Event {item.get('id', '?')!r} has non-numeric '{key}': {value!r}")
    if not math.isfinite(value):
        raise TimelineFormatError(f"Event {item.get('id', '?')!r} has non-finite '{key}': {value!r}")
    return float(value)


def _enum(enum_cls, value: Any, aliases: Optional[Dict[str, Any]] = None):
    text = str(value).strip()
    if aliases and text in aliases:
        return aliases[text]
    try:
        return enum_cls(text.lower().replace(" ", "_"))
    except ValueError:
        raise TimelineFormatError(f"Unknown {enum_cls.__name__} value: {value!r}") from None


def event_from_dict(item: Any, config: TimelineConfig) -> SoundEvent:
    if not isinstance(item, dict):
        raise TimelineFormatError(f"Timeline entries must be objects, got {type(item).__name__}")

    event_id = str(_field(item, 'id'))
    kind = _enum(SoundKind, _field(item, 'sound_type'))
    lane = _field(item, 'lane')
    if isinstance(lane, bool) or not isinstance(lane, int):
        raise TimelineFormatError(f"Event {event_id!r} has a non-integer lane: {lane!r}")

    start = _number(item, 'start_time')
    duration = _number(item, 'duration')
    original = _number(item, 'original_duration', duration)
    reverb = _number(item, 'reverb_amount', 0.0)
    resize = _enum(ResizeBehavior, _field(item, 'resize_behavior', ResizeBehavior.TRIM.value))

    if kind == SoundKind.SYNTH:
        note = str(_field(item, 'root_note'))
        if note not in NOTE_FREQUENCIES:
            raise TimelineFormatError(f"Event {event_id!r} has unknown root note {note!r}")
        detune = _number(item, 'detune_amount', 0.0)
        source = SynthSource(
            root_note=note,
            chord_kind=_enum(ChordKind, _field(item, 'chord_kind'),
                             {name: ck for ck, name in CHORD_DISPLAY_NAMES.items()}),
            wave_shape=_enum(WaveShape, _field(item, 'wave_shape', WaveShape.SINE.value)),
            detune_amount=detune,
        )
    else:
        source = SampleSource(source_id=str(_field(item, 'source_id')))

    event = SoundEvent(
        id=event_id, lane=lane, start_time=start, duration=duration, source=source,
        original_duration=original, reverb_amount=reverb, resize_behavior=resize,
    )
    problem = GridPlacement(config).problem(event)
    if problem:
        raise TimelineFormatError(f"Event {event_id!r} {problem}")
    return event


def deserialize(data: Any, config: Optional[TimelineConfig] = None) -> Timeline:
    """Builds a timeline from plain data. Either every event is valid or TimelineFormatError is raised."""
    config = config or TimelineConfig()
    if not isinstance(data, list):
        raise TimelineFormatError(f"Timeline must be a list, got {type(data).__name__}")

    events = [event_from_dict(item, config) for item in data]
    seen = set()
    for e in events:
        if e.id in seen:
            raise TimelineFormatError(f"Duplicate event id: {e.id!r}")
        seen.add(e.id)
    return tuple(events)


def save_timeline(timeline: Timeline, path: Optional[str] = None) -> str:
    path = path or AppConfig.SAVE_PATH
    with open(path, 'w') as f:
        json.dump(serialize(timeline), f, indent=2)
    logger.info("Saved %d events to %s", len(timeline), path)
    return path


def load_timeline(path: Optional[str] = None, config: Optional[TimelineConfig] = None) -> Optional[Timeline]:
    """Returns the stored timeline, or None if nothing was saved at `path`."""
    path = path or AppConfig.SAVE_PATH
    if not os.path.exists(path):
        return None
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error("Rejected composition %s: %s", path, e)
        raise TimelineFormatError(f"Could not parse {path}: {e}") from e
    try:
        return deserialize(data, config)
    except TimelineFormatError as e:
        logger.error("Rejected composition %s: %s", path, e)
        raise
