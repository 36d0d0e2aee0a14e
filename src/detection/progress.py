"""
Progress reporting for detection scans
"""

import inspect
import logging
from typing import Any, Callable, Optional

from .models import ProgressEvent, ProgressStage

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], Any]


def percent(done: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, round(done / total * 100))


class ProgressEmitter:
    """Pushes ProgressEvents to an optional sink, plain or async"""

    def __init__(self, sink: Optional[ProgressSink] = None):
        self.sink = sink
        self.last_event: Optional[ProgressEvent] = None
        self.events_sent = 0

    async def emit(self, stage: ProgressStage, progress_percent: int, message: str = "", **counts) -> ProgressEvent:
        event = ProgressEvent(stage=stage, progress_percent=progress_percent, message=message, **counts)
        self.last_event = event
        self.events_sent += 1

        if self.sink is None:
            return event

        try:
            result = self.sink(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Progress sink failed: {e}")

        logger.debug(f"Detection progress - {stage.value}: {progress_percent}% {message}")
        return event
