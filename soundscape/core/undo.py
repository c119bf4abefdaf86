import logging
from typing import List, Optional

from soundscape.core.config import AppConfig
from soundscape.core.models import Timeline

logger = logging.getLogger(__name__)


class TimelineHistory:
    """Linear undo/redo history of immutable timeline snapshots.

    Committing while the index sits behind the newest snapshot prunes the
    redo branch. The index always points at a stored snapshot.
    """

    def __init__(self, initial: Timeline = (), limit: Optional[int] = None) -> None:
        self.snapshots: List[Timeline] = [tuple(initial)]
        self.index: int = 0
        self.limit: int = limit if limit is not None else AppConfig.HISTORY_LIMIT

    def __len__(self) -> int:
        return len(self.snapshots)

    def current(self) -> Timeline:
        return self.snapshots[self.index]

    def commit(self, timeline: Timeline) -> None:
        del self.snapshots[self.index + 1:]
        self.snapshots.append(tuple(timeline))
        if self.limit > 0 and len(self.snapshots) > self.limit:
            self.snapshots.pop(0)
        self.index = len(self.snapshots) - 1
        logger.debug("History commit: %d events, %d snapshots", len(timeline), len(self.snapshots))

    def can_undo(self) -> bool:
        return self.index > 0

    def can_redo(self) -> bool:
        return self.index < len(self.snapshots) - 1

    def undo(self) -> bool:
        if not self.can_undo():
            return False
        self.index -= 1
        return True

    def redo(self) -> bool:
        if not self.can_redo():
            return False
        self.index += 1
        return True

    def reset(self, timeline: Timeline = ()) -> None:
        """Replaces the whole history with a single snapshot."""
        self.snapshots = [tuple(timeline)]
        self.index = 0
