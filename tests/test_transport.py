from unittest.mock import MagicMock

import pytest

from soundscape.core.config import TimelineConfig
from soundscape.core.errors import DeviceUnavailableError, TransportStateError
from soundscape.core.models import SampleSource, SoundEvent, SynthSource
from soundscape.engine import AudioContext
from soundscape.transport import PlaybackTransport, TransportState


def ev(event_id, start, lane=0, duration=1.0):
    return SoundEvent(id=event_id, lane=lane, start_time=start, duration=duration, source=SynthSource('E'))


def no_buffers(source_id):
    return None


@pytest.fixture
def transport(qapp, context, clock):
    t = PlaybackTransport(context, no_buffers, TimelineConfig(), clock=clock)
    yield t
    t.stop()


@pytest.fixture
def fired(transport):
    ids = []
    transport.eventFired.connect(ids.append)
    return ids


def test_events_fire_once_when_the_clock_reaches_them(transport, clock, fired):
    transport.play((ev("a", 0.0), ev("b", 1.0), ev("c", 2.5)))
    assert fired == ["a"]

    clock.advance(0.5)
    transport.tick()
    assert fired == ["a"]

    clock.advance(0.5)
    transport.tick()
    transport.tick()
    assert fired == ["a", "b"]

    clock.advance(5.0)
    transport.tick()
    assert fired == ["a", "b", "c"]
    assert transport.fired == {"a", "b", "c"}


def test_same_tick_fires_in_timeline_order(transport, clock, fired):
    transport.play((ev("late", 0.75), ev("x", 0.5, lane=2), ev("early", 0.25)))
    clock.advance(1.0)
    transport.tick()
    assert fired == ["late", "x", "early"]


def test_playhead_follows_clock(transport, clock):
    heads = []
    transport.playheadMoved.connect(heads.append)
    transport.play((ev("a", 5.0),))
    clock.advance(1.25)
    transport.tick()
    assert heads == [0.0, 1.25]
    assert transport.playhead == 1.25


def test_play_schedules_next_tick(transport):
    transport.play((ev("a", 5.0),))
    assert transport.is_playing
    assert transport._timer.isActive()


def test_stop_resets_everything(transport, clock, context, device):
    states, heads = [], []
    transport.stateChanged.connect(states.append)
    transport.playheadMoved.connect(heads.append)

    transport.play((ev("a", 0.0, duration=3.0), ev("b", 0.0, lane=1, duration=3.0)))
    device.advance(0.5)
    assert len(device.active_voices()) == 2

    transport.stop()
    assert transport.state == TransportState.STOPPED
    assert transport.playhead == 0.0
    assert transport.fired == set()
    assert context.active == []
    assert device.active_voices() == []
    assert not transport._timer.isActive()
    assert states == ["playing", "stopped"]
    assert heads[-1] == 0.0


def test_stop_when_stopped_only_resets_playhead(transport):
    states, heads = [], []
    transport.stateChanged.connect(states.append)
    transport.playheadMoved.connect(heads.append)
    transport.stop()
    assert states == []
    assert heads == [0.0]


def test_auto_stop_after_duration_and_margin(transport, clock, fired):
    transport.play((ev("a", 29.0),))
    clock.advance(35.0)
    transport.tick()
    assert fired == ["a"]
    assert transport.is_playing

    clock.advance(5.1)
    transport.tick()
    assert not transport.is_playing
    assert transport.playhead == 0.0


def test_tick_after_stop_is_ignored(transport, clock, fired):
    transport.play((ev("a", 0.0), ev("b", 1.0)))
    transport.stop()
    clock.advance(2.0)
    transport.tick()
    assert fired == ["a"]


def test_empty_timeline_does_not_start(transport):
    states = []
    transport.stateChanged.connect(states.append)
    transport.play(())
    assert not transport.is_playing
    assert states == []


def test_play_while_playing_is_rejected(transport):
    transport.play((ev("a", 0.0),))
    with pytest.raises(TransportStateError):
        transport.play((ev("b", 0.0),))


def test_replay_fires_events_again(transport, clock, fired):
    timeline = (ev("a", 0.0),)
    transport.play(timeline)
    transport.stop()
    transport.play(timeline)
    assert fired == ["a", "a"]


def test_stop_from_event_slot_halts_the_tick(transport, fired):
    transport.eventFired.connect(lambda _: transport.stop())
    transport.play((ev("a", 0.0), ev("b", 0.0, lane=1)))
    assert fired == ["a"]
    assert not transport.is_playing
    assert not transport._timer.isActive()


def test_device_failure_stops_and_reports(qapp, clock, deferred):
    def broken():
        raise DeviceUnavailableError("no output")

    t = PlaybackTransport(AudioContext(device_factory=broken, defer=deferred), no_buffers,
                          TimelineConfig(), clock=clock)
    errors = []
    t.errorOccurred.connect(errors.append)
    t.play((ev("a", 0.0),))
    assert errors == ["no output"]
    assert not t.is_playing
    assert t.fired == set()


def test_sample_events_resolve_through_lookup(qapp, context, clock):
    fired = []
    lookup = MagicMock(return_value=None)
    t = PlaybackTransport(context, lookup, TimelineConfig(), clock=clock)
    t.eventFired.connect(fired.append)
    sample = SoundEvent(id="s", lane=0, start_time=0.0, duration=1.0, source=SampleSource("kick"))
    t.play((ev("a", 0.0), sample))
    lookup.assert_called_once_with("kick")
    assert fired == ["a", "s"]
    assert len(context.active) == 1
    t.stop()
