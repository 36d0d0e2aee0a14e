"""
Cooperative cancellation for detection scans

A scan sees a single read-only CancellationToken. The token reports cancelled
as soon as any of its sources fires: the caller's own signal or the internal
source that RouterDetection.cancel() triggers.
"""

import asyncio
import logging
import threading
from typing import Any, List, Set

from .exceptions import DetectionCancelled

logger = logging.getLogger(__name__)


def _is_signalled(signal: Any) -> bool:
    """Accepts CancellationToken/CancellationSource, asyncio.Event or threading.Event"""
    if signal is None:
        return False
    if isinstance(signal, (CancellationToken, CancellationSource)):
        return signal.cancelled
    if isinstance(signal, (asyncio.Event, threading.Event)):
        return signal.is_set()
    raise TypeError(f"Unsupported cancellation signal: {type(signal).__name__}")


class CancellationToken:
    """Read-only view over one or more cancellation sources"""

    def __init__(self, *signals: Any):
        self._signals = [s for s in signals if s is not None]

    @property
    def cancelled(self) -> bool:
        return any(_is_signalled(s) for s in self._signals)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise DetectionCancelled()


class CancellationSource:
    """Internal cancellation trigger"""

    def __init__(self):
        self._cancelled = False
        self.token = CancellationToken(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class CancellationCoordinator:
    """Hands out merged tokens and cancels every scan still in flight"""

    def __init__(self):
        self._active: Set[CancellationSource] = set()

    def begin(self, external_signal: Any = None) -> CancellationSource:
        """Create the internal source for a new scan"""
        # Validate the caller's signal up front rather than on first probe
        _is_signalled(external_signal)
        source = CancellationSource()
        source.token = CancellationToken(source, external_signal)
        self._active.add(source)
        return source

    def finish(self, source: CancellationSource) -> None:
        self._active.discard(source)

    def cancel(self) -> int:
        """Fire every active internal source, returns how many scans were signalled"""
        active: List[CancellationSource] = list(self._active)
        for source in active:
            source.cancel()
        if active:
            logger.info(f"Cancellation requested for {len(active)} running scan(s)")
        return len(active)

    @property
    def active_count(self) -> int:
        return len(self._active)
