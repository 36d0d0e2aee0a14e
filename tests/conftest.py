"""
Shared pytest fixtures for detection tests.

Provides fixtures for:
- Canned probe sets (no network traffic)
- Detection services with inter-batch delays disabled
- A controllable clock for cache expiry
"""
from typing import Callable, Dict, List, Optional

import pytest

from detection import RouterDetection
from detection.cache import ResultCache
from detection.cancellation import CancellationToken
from detection.models import CapabilityDescriptor, CapabilityKind, ProgressEvent
from detection.probes import MockProbeSet, make_descriptor


FAST_CONFIG = {
    'default_scan_range': '192.168.88.0/24',
    'network_batch_delay': 0,
    'full_scan_batch_delay': 0,
}


class FakeClock:
    """Manually advanced time source"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def advance(self, seconds: float):
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class HookedProbeSet(MockProbeSet):
    """MockProbeSet that runs a hook after each probe, e.g. to cancel mid-scan"""

    def __init__(self, responses: Dict[str, List[CapabilityDescriptor]],
                 hook: Optional[Callable[[str, int], None]] = None):
        super().__init__(responses)
        self.hook = hook

    async def probe(self, address: str, token: CancellationToken) -> List[CapabilityDescriptor]:
        result = await super().probe(address, token)
        if self.hook and address in self.probed:
            self.hook(address, len(self.probed))
        return result


def identity_router(name: str = "Core-Router") -> List[CapabilityDescriptor]:
    return [
        make_descriptor(CapabilityKind.SECURE_REST, identity=name),
        make_descriptor(CapabilityKind.SECURE_MANAGEMENT),
        make_descriptor(CapabilityKind.PLAINTEXT_MANAGEMENT),
    ]


def web_router() -> List[CapabilityDescriptor]:
    return [make_descriptor(CapabilityKind.PLAINTEXT_HTTP)]


def port_pattern_router() -> List[CapabilityDescriptor]:
    return [
        make_descriptor(CapabilityKind.PLAINTEXT_MANAGEMENT),
        make_descriptor(CapabilityKind.LEGACY_CONSOLE),
    ]


def console_only() -> List[CapabilityDescriptor]:
    return [make_descriptor(CapabilityKind.LEGACY_CONSOLE)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_detection():
    """Factory: RouterDetection over canned responses"""

    def _make(responses: Dict[str, List[CapabilityDescriptor]], probe_set=None,
              cache: Optional[ResultCache] = None, **overrides) -> RouterDetection:
        config = dict(FAST_CONFIG, **overrides)
        return RouterDetection(config, probe_set=probe_set or MockProbeSet(responses), cache=cache)

    return _make


@pytest.fixture
def events():
    """List-backed progress sink"""

    class Recorder(list):
        def __call__(self, event: ProgressEvent):
            self.append(event)

        def stages(self):
            return [e.stage for e in self]

    return Recorder()
