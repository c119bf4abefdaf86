import pytest

from soundscape.core.models import (
    CHORD_INTERVALS, ChordKind, NOTE_FREQUENCIES, NOTE_NAMES, SampleSource, SoundEvent,
    SoundKind, SynthSource, event_end, find_event, new_event_id, remove_event, replace_event,
)


def make_event(event_id="a", lane=0, start=0.0, duration=2.0):
    return SoundEvent(id=event_id, lane=lane, start_time=start, duration=duration, source=SynthSource())


def test_note_table_is_equal_tempered():
    assert len(NOTE_NAMES) == 12
    assert NOTE_FREQUENCIES['A'] == 440.0
    # Each semitone is ~2^(1/12) above the previous one
    for lo, hi in zip(NOTE_NAMES, NOTE_NAMES[1:]):
        assert NOTE_FREQUENCIES[hi] / NOTE_FREQUENCIES[lo] == pytest.approx(2 ** (1 / 12), rel=1e-3)


def test_chord_catalog():
    assert CHORD_INTERVALS[ChordKind.MAJOR] == (0, 4, 7)
    assert CHORD_INTERVALS[ChordKind.MINOR] == (0, 3, 7)
    assert CHORD_INTERVALS[ChordKind.DOMINANT_7TH] == (0, 4, 7, 10)
    assert ChordKind.MAJOR_7TH.display_name == "Major 7th"


def test_original_duration_defaults_to_duration():
    e = make_event(duration=1.5)
    assert e.original_duration == 1.5
    assert e.with_span(0.0, 3.0).original_duration == 1.5


def test_kind_follows_source():
    synth = make_event()
    sample = SoundEvent(id="s", lane=1, start_time=0.0, duration=1.0, source=SampleSource("clip"))
    assert synth.kind == SoundKind.SYNTH
    assert sample.kind == SoundKind.SAMPLE


def test_unknown_root_note_rejected():
    with pytest.raises(ValueError):
        SynthSource(root_note='H')


def test_events_are_immutable():
    e = make_event()
    with pytest.raises(Exception):
        e.start_time = 4.0


def test_timeline_helpers():
    a, b = make_event("a"), make_event("b", start=3.0)
    timeline = (a, b)
    moved = b.with_placement(2, 5.0)

    assert find_event(timeline, "b") is b
    assert find_event(timeline, "zzz") is None
    assert replace_event(timeline, moved) == (a, moved)
    assert remove_event(timeline, "a") == (b,)
    assert event_end(timeline) == 5.0
    assert event_end(()) == 0.0


def test_new_event_ids_are_unique():
    ids = {new_event_id(SoundKind.SYNTH) for _ in range(50)}
    assert len(ids) == 50
    assert all(i.endswith("-synth") for i in ids)
