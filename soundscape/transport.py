import logging
import time
from enum import Enum
from typing import Callable, Optional, Set

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from soundscape.core.config import AppConfig, TimelineConfig
from soundscape.core.errors import DeviceUnavailableError, TransportStateError
from soundscape.core.models import Timeline
from soundscape.engine import AudioContext, BufferLookup, render_event, stop_all

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


class PlaybackTransport(QObject):
    """Walks a virtual clock over a timeline snapshot and fires each event once.

    Every tick is a single-shot timer; stopping cancels the pending tick and
    the playing flag is checked at the top of each tick.
    """
    playheadMoved = pyqtSignal(float)
    stateChanged = pyqtSignal(str)
    eventFired = pyqtSignal(str)
    errorOccurred = pyqtSignal(str)

    def __init__(self, context: AudioContext, lookup: BufferLookup,
                 config: Optional[TimelineConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 tick_interval_ms: Optional[int] = None,
                 safety_margin: Optional[float] = None) -> None:
        super().__init__()
        self.context = context
        self.lookup = lookup
        self.config = config or TimelineConfig()
        self.clock = clock
        self.safety_margin = AppConfig.PLAYBACK_SAFETY_MARGIN if safety_margin is None else safety_margin
        self.state = TransportState.STOPPED
        self.playhead: float = 0.0
        self.fired: Set[str] = set()
        self.timeline: Timeline = ()
        self._start: float = 0.0

        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(tick_interval_ms or AppConfig.TICK_INTERVAL_MS)
        self._timer.timeout.connect(self.tick)

    @property
    def is_playing(self) -> bool:
        return self.state == TransportState.PLAYING

    def play(self, timeline: Timeline) -> None:
        if self.is_playing:
            raise TransportStateError("Transport is already playing; stop it first.")
        if not timeline:
            return
        stop_all(self.context)
        self.timeline = tuple(timeline)
        self._start = self.clock()
        self.fired.clear()
        self.playhead = 0.0
        self.state = TransportState.PLAYING
        logger.info("Playback started (%d events)", len(self.timeline))
        self.stateChanged.emit(self.state.value)
        self.tick()

    def stop(self) -> None:
        self._timer.stop()
        stop_all(self.context)
        self.playhead = 0.0
        self.fired.clear()
        if self.is_playing:
            self.state = TransportState.STOPPED
            logger.info("Playback stopped")
            self.stateChanged.emit(self.state.value)
        self.playheadMoved.emit(0.0)

    def tick(self) -> None:
        if not self.is_playing:
            return

        elapsed = self.clock() - self._start
        if elapsed > self.config.duration + self.safety_margin:
            logger.info("Playback reached the end of the timeline")
            self.stop()
            return

        self.playhead = elapsed
        self.playheadMoved.emit(elapsed)

        for event in self.timeline:
            if event.id in self.fired or event.start_time > elapsed:
                continue
            try:
                render_event(self.context, event, self.lookup)
            except DeviceUnavailableError as e:
                logger.error("Audio device unavailable: %s", e)
                self.stop()
                self.errorOccurred.emit(str(e))
                return
            self.fired.add(event.id)
            self.eventFired.emit(event.id)
            # A slot connected to eventFired may have stopped playback
            if not self.is_playing:
                return

        self._timer.start()
