"""
Protocol probes used to recognise routers on an address

Every probe makes a single connection attempt bounded by the probe timeout.
Most addresses on a LAN sweep never answer, so a failed probe comes back as
None rather than as an exception.
"""

import asyncio
import logging
from typing import Dict, List, Optional

import aiohttp

from http_helper import create_probe_session
from .cancellation import CancellationToken
from .models import CapabilityDescriptor, CapabilityKind

logger = logging.getLogger(__name__)

# kind -> (port, priority, secure)
CAPABILITY_PORTS = {
    CapabilityKind.SECURE_MANAGEMENT: (8729, 1, True),
    CapabilityKind.PLAINTEXT_MANAGEMENT: (8728, 2, False),
    CapabilityKind.SECURE_REST: (443, 3, True),
    CapabilityKind.PLAINTEXT_HTTP: (80, 4, False),
    CapabilityKind.LEGACY_CONSOLE: (8291, 5, False),
}

ROUTER_SERVER_TOKEN = "mikrotik"
ROUTER_HEADER = "X-MikroTik-Router"

_PROBE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError)


def make_descriptor(kind: CapabilityKind, identity: Optional[str] = None) -> CapabilityDescriptor:
    port, priority, secure = CAPABILITY_PORTS[kind]
    return CapabilityDescriptor(kind=kind, port=port, priority=priority, secure=secure, identity=identity)


class ProbeSet:
    """Interface: find the management services an address exposes"""

    async def probe(self, address: str, token: CancellationToken) -> List[CapabilityDescriptor]:
        raise NotImplementedError


class RouterProbeSet(ProbeSet):
    """Live probes over HTTP(S) and raw TCP"""

    def __init__(self, timeout: float = 1.0):
        self.timeout = timeout

    async def probe(self, address: str, token: CancellationToken) -> List[CapabilityDescriptor]:
        """Run all probes for one address concurrently"""
        if token.cancelled:
            return []

        async with create_probe_session(self.timeout) as session:
            results = await asyncio.gather(
                self.probe_rest_api(session, address, token),
                self.probe_http(session, address, token),
                self.probe_tcp(address, CapabilityKind.SECURE_MANAGEMENT, token),
                self.probe_tcp(address, CapabilityKind.PLAINTEXT_MANAGEMENT, token),
                self.probe_tcp(address, CapabilityKind.LEGACY_CONSOLE, token),
                return_exceptions=True
            )

        capabilities = []
        for result in results:
            if isinstance(result, CapabilityDescriptor):
                capabilities.append(result)
            elif isinstance(result, BaseException):
                logger.debug(f"Probe error on {address}: {result!r}")
        return capabilities

    async def probe_rest_api(self, session: aiohttp.ClientSession, address: str,
                             token: CancellationToken) -> Optional[CapabilityDescriptor]:
        """Unauthenticated identity query against the REST API"""
        if token.cancelled:
            return None
        port = CAPABILITY_PORTS[CapabilityKind.SECURE_REST][0]
        url = f"https://{address}:{port}/rest/system/identity"
        try:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.debug(f"HTTP {response.status} for {url}")
                    return None
                identity = None
                try:
                    data = await response.json(content_type=None)
                    if isinstance(data, dict) and data.get('name'):
                        identity = str(data['name'])
                except ValueError:
                    logger.debug(f"Non-JSON identity response from {address}")
                return make_descriptor(CapabilityKind.SECURE_REST, identity=identity)
        except _PROBE_ERRORS as e:
            logger.debug(f"REST probe failed for {address}: {e!r}")
            return None

    async def probe_http(self, session: aiohttp.ClientSession, address: str,
                         token: CancellationToken) -> Optional[CapabilityDescriptor]:
        """Web interface probe, matched on router-specific response headers"""
        if token.cancelled:
            return None
        port = CAPABILITY_PORTS[CapabilityKind.PLAINTEXT_HTTP][0]
        try:
            async with session.head(f"http://{address}:{port}/", allow_redirects=False) as response:
                server = response.headers.get('Server', '')
                if ROUTER_SERVER_TOKEN in server.lower() or ROUTER_HEADER in response.headers:
                    return make_descriptor(CapabilityKind.PLAINTEXT_HTTP)
                return None
        except _PROBE_ERRORS as e:
            logger.debug(f"HTTP probe failed for {address}: {e!r}")
            return None

    async def probe_tcp(self, address: str, kind: CapabilityKind,
                        token: CancellationToken) -> Optional[CapabilityDescriptor]:
        """Raw management port probe: an accepted connection is a match"""
        if token.cancelled:
            return None
        port = CAPABILITY_PORTS[kind][0]
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port),
                timeout=self.timeout
            )
        except _PROBE_ERRORS as e:
            logger.debug(f"Port {port} closed on {address}: {e!r}")
            return None

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return make_descriptor(kind)


# Canned answers for demos, shaped like two typical installs
DEFAULT_MOCK_RESPONSES = {
    "192.168.88.1": [
        make_descriptor(CapabilityKind.SECURE_REST, identity="Core-Router"),
        make_descriptor(CapabilityKind.SECURE_MANAGEMENT),
        make_descriptor(CapabilityKind.PLAINTEXT_MANAGEMENT),
    ],
    "192.168.100.25": [
        make_descriptor(CapabilityKind.PLAINTEXT_HTTP),
        make_descriptor(CapabilityKind.PLAINTEXT_MANAGEMENT),
    ],
}


class MockProbeSet(ProbeSet):
    """Returns canned descriptors per address and records what was probed"""

    def __init__(self, responses: Optional[Dict[str, List[CapabilityDescriptor]]] = None,
                 delay: float = 0.0):
        self.responses = DEFAULT_MOCK_RESPONSES if responses is None else responses
        self.delay = delay
        self.probed: List[str] = []

    async def probe(self, address: str, token: CancellationToken) -> List[CapabilityDescriptor]:
        if token.cancelled:
            return []
        self.probed.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(self.responses.get(address, []))


def create_probe_set(config: Dict) -> ProbeSet:
    """Pick the probe implementation from detection config"""
    mode = config.get('probe_mode', 'live')
    if mode == 'mock':
        logger.warning("Detection running with mock probes - no network traffic will be sent")
        return MockProbeSet()
    if mode != 'live':
        raise ValueError(f"Unknown probe_mode: {mode}")
    return RouterProbeSet(timeout=config.get('probe_timeout', 1.0))
