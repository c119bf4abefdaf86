import math
from enum import Enum
from typing import Optional, Tuple

from soundscape.core.config import TimelineConfig
from soundscape.core.models import SoundEvent, SynthSource

# Tolerance for float noise when comparing against grid lines and the timeline end
EPSILON = 1e-9


class Edge(str, Enum):
    LEADING = "leading"
    TRAILING = "trailing"


def _tidy(value: float) -> float:
    return round(value, 9)


def snap_floor(value: float, quantum: float) -> float:
    return _tidy(math.floor(value / quantum + EPSILON) * quantum)


def snap_nearest(value: float, quantum: float) -> float:
    # Half-way values round up, not to even
    return _tidy(math.floor(value / quantum + 0.5) * quantum)


class GridPlacement:
    """Converts pointer coordinates to grid cells and computes move/resize outcomes.

    Placement floor-snaps so a new event never overhangs into the next cell;
    move and resize snap to the nearest grid line.
    """

    def __init__(self, config: Optional[TimelineConfig] = None) -> None:
        self.config = config or TimelineConfig()

    def pointer_to_cell(self, x: float, y: float) -> Tuple[int, float]:
        lane = int(math.floor(y / self.config.lane_height_px))
        time = snap_floor(x / self.config.pixels_per_second, self.config.quantum)
        return lane, time

    def fits(self, start_time: float, duration: float) -> bool:
        return start_time >= 0 and start_time + duration <= self.config.duration + EPSILON

    def problem(self, event: SoundEvent) -> Optional[str]:
        """Why `event` cannot sit on this grid, or None if it can."""
        cfg = self.config
        numbers = [event.start_time, event.duration, event.original_duration, event.reverb_amount]
        if isinstance(event.source, SynthSource):
            numbers.append(event.source.detune_amount)
        if not all(math.isfinite(n) for n in numbers):
            return "has a non-finite number"
        if not 0 <= event.lane < cfg.lane_count:
            return f"lane {event.lane} is outside 0..{cfg.lane_count - 1}"
        if not self.fits(event.start_time, event.duration):
            return f"does not fit the {cfg.duration}s timeline"
        if event.duration < cfg.quantum - EPSILON or event.original_duration <= 0:
            return "is shorter than one grid step"
        if not 0.0 <= event.reverb_amount <= 1.0:
            return f"reverb {event.reverb_amount} is outside 0..1"
        if isinstance(event.source, SynthSource) and not 0.0 <= event.source.detune_amount <= 1.0:
            return f"detune {event.source.detune_amount} is outside 0..1"
        return None

    def place(self, lane: int, time: float, candidate: SoundEvent) -> Optional[SoundEvent]:
        time = snap_floor(time, self.config.quantum)
        if not 0 <= lane < self.config.lane_count:
            return None
        if not self.fits(time, candidate.duration):
            return None
        return candidate.with_placement(lane, time)

    def place_at(self, x: float, y: float, candidate: SoundEvent) -> Optional[SoundEvent]:
        lane, time = self.pointer_to_cell(x, y)
        return self.place(lane, time, candidate)

    def move(self, event: SoundEvent, dx: float, dy: float) -> Tuple[int, float]:
        cfg = self.config
        lane_px = event.lane * cfg.lane_height_px + dy
        lane = int(math.floor(lane_px / cfg.lane_height_px + 0.5))
        lane = max(0, min(cfg.lane_count - 1, lane))

        time_px = event.start_time * cfg.pixels_per_second + dx
        start = max(0.0, snap_nearest(time_px / cfg.pixels_per_second, cfg.quantum))
        if start + event.duration > cfg.duration + EPSILON:
            # Pull back so the whole event still fits; duration is never cut by a move
            start = max(0.0, cfg.duration - event.duration)
        return lane, _tidy(start)

    def resize(self, event: SoundEvent, edge: Edge, dx: float) -> Tuple[float, float]:
        cfg = self.config
        q = cfg.quantum
        delta = snap_nearest(dx / cfg.pixels_per_second, q)
        original_end = event.start_time + event.duration

        if edge == Edge.LEADING:
            start = max(0.0, event.start_time + delta)
            duration = original_end - start
        else:
            start = event.start_time
            duration = event.duration + delta

        if start + duration > cfg.duration:
            duration = cfg.duration - start
        if duration < q - EPSILON:
            duration = q
            if edge == Edge.LEADING:
                start = original_end - duration
        return _tidy(start), _tidy(duration)


class DragGesture:
    """Two-phase move: pointer motion only yields preview offsets; `end` yields the committed event."""

    def __init__(self, placement: GridPlacement, event: SoundEvent, x: float, y: float) -> None:
        self.placement = placement
        self.event = event
        self.origin: Tuple[float, float] = (x, y)
        self.has_moved = False

    def _delta(self, x: float, y: float) -> Tuple[float, float]:
        dx, dy = x - self.origin[0], y - self.origin[1]
        threshold = self.placement.config.drag_threshold_px
        if abs(dx) > threshold or abs(dy) > threshold:
            self.has_moved = True
        return dx, dy

    def update(self, x: float, y: float) -> Tuple[float, float]:
        return self._delta(x, y)

    def end(self, x: float, y: float) -> Optional[SoundEvent]:
        dx, dy = self._delta(x, y)
        if not self.has_moved:
            return None
        lane, start = self.placement.move(self.event, dx, dy)
        if lane == self.event.lane and start == self.event.start_time:
            return None
        return self.event.with_placement(lane, start)


class ResizeGesture:
    """Two-phase resize of one edge; only `end` produces a committed event."""

    def __init__(self, placement: GridPlacement, event: SoundEvent, edge: Edge, x: float) -> None:
        self.placement = placement
        self.event = event
        self.edge = edge
        self.origin_x = x
        self.has_moved = False

    def update(self, x: float) -> Tuple[float, float]:
        """Preview span for the rendering layer. Does not touch the timeline."""
        dx = x - self.origin_x
        if abs(dx) > self.placement.config.drag_threshold_px:
            self.has_moved = True
        return self.placement.resize(self.event, self.edge, dx)

    def end(self, x: float) -> Optional[SoundEvent]:
        start, duration = self.update(x)
        if not self.has_moved:
            return None
        if start == self.event.start_time and duration == self.event.duration:
            return None
        return self.event.with_span(start, duration)
