"""
Fingerprint verification for probed addresses
"""

from typing import List, Optional, Sequence

from .models import CapabilityDescriptor, CapabilityKind, Fingerprint, FingerprintMethod

UNVERIFIED = Fingerprint(verified=False, method=FingerprintMethod.NONE, confidence=0)


def verify_fingerprint(capabilities: Sequence[CapabilityDescriptor]) -> Fingerprint:
    """
    Judge whether the services found on one address belong to a router.
    Rules are applied in order and the first match wins:
      1. identity returned by the REST endpoint      -> 100
      2. router-specific web server headers          -> 90
      3. two or more distinct management services    -> 75
    Anything else is unverified (confidence 0).
    """
    for capability in capabilities:
        if capability.identity:
            return Fingerprint(
                verified=True,
                method=FingerprintMethod.IDENTITY_CONFIRMED,
                confidence=100,
                identity=capability.identity
            )

    if any(c.kind == CapabilityKind.PLAINTEXT_HTTP for c in capabilities):
        return Fingerprint(verified=True, method=FingerprintMethod.HEADER_HEURISTIC, confidence=90)

    if len({c.kind for c in capabilities}) >= 2:
        return Fingerprint(verified=True, method=FingerprintMethod.PORT_PATTERN, confidence=75)

    return UNVERIFIED


def recommended_capability(capabilities: Sequence[CapabilityDescriptor]) -> Optional[CapabilityDescriptor]:
    """Lowest priority value wins, first one on ties"""
    if not capabilities:
        return None
    return min(capabilities, key=lambda c: c.priority)


def unique_capabilities(capabilities: Sequence[CapabilityDescriptor]) -> List[CapabilityDescriptor]:
    """One descriptor per kind, keeping the first seen"""
    seen = set()
    unique = []
    for capability in capabilities:
        if capability.kind in seen:
            continue
        seen.add(capability.kind)
        unique.append(capability)
    return unique
