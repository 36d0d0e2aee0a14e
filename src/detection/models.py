"""
Detection data structures and models
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field, asdict


class CapabilityKind(Enum):
    """Management services a router can expose"""
    SECURE_REST = "secure-rest"
    PLAINTEXT_HTTP = "plaintext-http"
    SECURE_MANAGEMENT = "secure-management"
    PLAINTEXT_MANAGEMENT = "plaintext-management"
    LEGACY_CONSOLE = "legacy-console"


class FingerprintMethod(Enum):
    IDENTITY_CONFIRMED = "identity-confirmed"
    HEADER_HEURISTIC = "header-heuristic"
    PORT_PATTERN = "port-pattern"
    NONE = "none"


class DetectionSource(Enum):
    """Where a candidate came from"""
    CACHE = "cache"
    PRIORITY_SCAN = "priority-scan"
    NETWORK_SCAN = "network-scan"
    BACKEND_SCAN = "backend-scan"
    FULL_SCAN = "full-scan"


class DetectionStrategy(Enum):
    """Single-target strategies, tried in the order the caller lists them"""
    CACHED = "cached"
    PRIORITY_IPS = "priority_ips"
    NETWORK_SCAN = "network_scan"
    BACKEND_SCAN = "backend_scan"


class ProgressStage(Enum):
    INITIALIZING = "initializing"
    CACHE = "cache"
    PRIORITY = "priority"
    NETWORK = "network"
    BACKEND = "backend"
    SCANNING = "scanning"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Result of one successful probe"""
    kind: CapabilityKind
    port: int
    priority: int  # lower = more preferred
    secure: bool
    identity: Optional[str] = None  # only set when the probe returned identity data

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Invalid port: {self.port}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "port": self.port,
            "priority": self.priority,
            "secure": self.secure,
            "identity": self.identity,
        }


@dataclass(frozen=True)
class Fingerprint:
    """Aggregated verification judgment for one address"""
    verified: bool
    method: FingerprintMethod
    confidence: int
    identity: Optional[str] = None


@dataclass(frozen=True)
class RouterCandidate:
    """A verified router ready to be offered to the caller"""
    address: str
    capabilities: Tuple[CapabilityDescriptor, ...]
    recommended: CapabilityDescriptor
    fingerprint: Fingerprint
    source: DetectionSource
    detected_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.fingerprint.verified:
            raise ValueError(f"Candidate {self.address} has an unverified fingerprint")
        object.__setattr__(self, "capabilities", tuple(self.capabilities))

    def to_dict(self) -> Dict[str, Any]:
        fingerprint = asdict(self.fingerprint)
        fingerprint["method"] = self.fingerprint.method.value
        return {
            "address": self.address,
            "capabilities": [c.to_dict() for c in self.capabilities],
            "recommended": self.recommended.to_dict(),
            "fingerprint": fingerprint,
            "source": self.source.value,
            "detected_at": self.detected_at,
        }


@dataclass
class CacheEntry:
    candidate: RouterCandidate
    cached_at: float


@dataclass
class AddressProbeResult:
    """Outcome of probing one address: what answered and whether it verified"""
    address: str
    capabilities: List[CapabilityDescriptor]
    candidate: Optional[RouterCandidate] = None

    @property
    def responsive(self) -> bool:
        return bool(self.capabilities)


@dataclass
class ProgressEvent:
    """Progress update pushed to the progress sink"""
    stage: ProgressStage
    progress_percent: int
    message: str = ""
    current: Optional[int] = None
    total: Optional[int] = None
    batch_size: Optional[int] = None
    found_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["stage"] = self.stage.value
        return data
