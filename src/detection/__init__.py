"""
Detection module for router discovery
"""

from .manager import RouterDetection
from .models import (
    CapabilityDescriptor, CapabilityKind, DetectionSource, DetectionStrategy,
    Fingerprint, FingerprintMethod, ProgressEvent, ProgressStage, RouterCandidate
)
from .exceptions import DetectionError, DetectionCancelled, ScanRangeError
from .cancellation import CancellationSource, CancellationToken
from .probes import MockProbeSet, ProbeSet, RouterProbeSet

__all__ = [
    'RouterDetection', 'CapabilityDescriptor', 'CapabilityKind', 'DetectionSource',
    'DetectionStrategy', 'Fingerprint', 'FingerprintMethod', 'ProgressEvent', 'ProgressStage',
    'RouterCandidate', 'DetectionError', 'DetectionCancelled', 'ScanRangeError',
    'CancellationSource', 'CancellationToken', 'MockProbeSet', 'ProbeSet', 'RouterProbeSet'
]
