import logging
import random
from dataclasses import replace
from typing import List, Optional, Union

from soundscape.core.config import AppConfig, TimelineConfig
from soundscape.core.models import (
    SampleSource, SoundEvent, SoundKind, SynthSource, Timeline,
    find_event, new_event_id, remove_event, replace_event,
)
from soundscape.core.undo import TimelineHistory
from soundscape.devices import Voice
from soundscape.engine import AudioContext, render_event
from soundscape.generator import ProgressionGenerator
from soundscape.persistence import load_timeline, save_timeline
from soundscape.placement import DragGesture, Edge, GridPlacement, ResizeGesture
from soundscape.registry import SoundRegistry
from soundscape.transport import PlaybackTransport

logger = logging.getLogger(__name__)

Brush = Union[SynthSource, SampleSource]


def event_label(event: SoundEvent, registry: SoundRegistry) -> str:
    if isinstance(event.source, SynthSource):
        return f"{event.source.root_note} {event.source.chord_kind.display_name}"
    return registry.name(event.source.source_id) or "Missing audio"


class EditorSession:
    """Headless editor controller: every timeline edit is committed through the history."""

    def __init__(self, context: Optional[AudioContext] = None,
                 registry: Optional[SoundRegistry] = None,
                 config: Optional[TimelineConfig] = None,
                 transport: Optional[PlaybackTransport] = None,
                 save_path: Optional[str] = None,
                 history_limit: Optional[int] = None) -> None:
        self.config = config or TimelineConfig()
        self.registry = registry or SoundRegistry()
        self.context = context or AudioContext()
        self.history = TimelineHistory(limit=history_limit)
        self.placement = GridPlacement(self.config)
        self.transport = transport or PlaybackTransport(self.context, self.registry.get, self.config)
        self.save_path = save_path or AppConfig.SAVE_PATH
        self.brush: Brush = SynthSource()

    @property
    def timeline(self) -> Timeline:
        return self.history.current()

    def _commit(self, timeline: Timeline) -> None:
        self.history.commit(timeline)

    # --- Placement -------------------------------------------------------

    def candidate_from_brush(self) -> Optional[SoundEvent]:
        """A fresh, unplaced event built from the current brush; None if the brush sample is gone."""
        if isinstance(self.brush, SynthSource):
            duration = self.config.default_event_duration
            kind = SoundKind.SYNTH
        else:
            buffer = self.registry.get(self.brush.source_id)
            if buffer is None:
                return None
            duration = max(min(buffer.duration, self.config.default_event_duration), self.config.quantum)
            kind = SoundKind.SAMPLE
        return SoundEvent(id=new_event_id(kind), lane=0, start_time=0.0,
                          duration=duration, source=self.brush)

    def place(self, lane: int, time: float) -> Optional[SoundEvent]:
        candidate = self.candidate_from_brush()
        if candidate is None:
            return None
        event = self.placement.place(lane, time, candidate)
        if event is not None:
            self._commit(self.timeline + (event,))
        return event

    def place_at(self, x: float, y: float) -> Optional[SoundEvent]:
        lane, time = self.placement.pointer_to_cell(x, y)
        return self.place(lane, time)

    def remove(self, event_id: str) -> bool:
        if find_event(self.timeline, event_id) is None:
            return False
        self._commit(remove_event(self.timeline, event_id))
        return True

    def update_event(self, event: SoundEvent) -> bool:
        if find_event(self.timeline, event.id) is None:
            return False
        problem = self.placement.problem(event)
        if problem:
            logger.info("Rejected update of %s: %s", event.id, problem)
            return False
        self._commit(replace_event(self.timeline, event))
        return True

    # --- Gestures --------------------------------------------------------

    def begin_drag(self, event_id: str, x: float, y: float) -> Optional[DragGesture]:
        event = find_event(self.timeline, event_id)
        return DragGesture(self.placement, event, x, y) if event else None

    def end_drag(self, gesture: DragGesture, x: float, y: float) -> Optional[SoundEvent]:
        moved = gesture.end(x, y)
        if moved is not None:
            self._commit(replace_event(self.timeline, moved))
        return moved

    def begin_resize(self, event_id: str, edge: Edge, x: float) -> Optional[ResizeGesture]:
        event = find_event(self.timeline, event_id)
        return ResizeGesture(self.placement, event, edge, x) if event else None

    def end_resize(self, gesture: ResizeGesture, x: float) -> Optional[SoundEvent]:
        resized = gesture.end(x)
        if resized is not None:
            self._commit(replace_event(self.timeline, resized))
        return resized

    # --- Whole-timeline edits ---------------------------------------------

    def clear(self) -> None:
        self.stop()
        if self.timeline:
            self._commit(())

    def generate(self, rng: Optional[random.Random] = None) -> Timeline:
        self.stop()
        song = ProgressionGenerator(rng).generate()
        self._commit(song)
        return song

    def undo(self) -> bool:
        self.stop()
        return self.history.undo()

    def redo(self) -> bool:
        self.stop()
        return self.history.redo()

    def missing_sources(self, timeline: Optional[Timeline] = None) -> List[str]:
        timeline = self.timeline if timeline is None else timeline
        return [e.source.source_id for e in timeline
                if isinstance(e.source, SampleSource) and e.source.source_id not in self.registry]

    def save(self) -> str:
        return save_timeline(self.timeline, self.save_path)

    def load(self) -> Optional[int]:
        """Commits the saved composition. Returns how many sample events lack audio, None if nothing is saved."""
        self.stop()
        loaded = load_timeline(self.save_path, self.config)
        if loaded is None:
            return None
        self._commit(loaded)
        return len(self.missing_sources(loaded))

    def restore(self) -> Optional[int]:
        """Startup auto-load: the saved composition becomes the only history entry."""
        loaded = load_timeline(self.save_path, self.config)
        if loaded is None:
            return None
        self.history.reset(loaded)
        return len(self.missing_sources(loaded))

    # --- Sound -----------------------------------------------------------

    def play(self) -> None:
        self.transport.play(self.timeline)

    def stop(self) -> None:
        self.transport.stop()

    def audition(self) -> Optional[Voice]:
        """Plays the current brush once, outside the timeline."""
        self.stop()
        if isinstance(self.brush, SynthSource):
            source = replace(self.brush, detune_amount=0.0)
            duration = self.config.default_event_duration
        else:
            buffer = self.registry.get(self.brush.source_id)
            if buffer is None:
                return None
            source = self.brush
            duration = buffer.duration
        event = SoundEvent(id="audition", lane=0, start_time=0.0, duration=duration, source=source)
        return render_event(self.context, event, self.registry.get)
