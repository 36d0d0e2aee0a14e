# HTTP Helper for router probes
# Session configuration for short-lived LAN probes and the backend scanning service

import aiohttp
import logging

logger = logging.getLogger(__name__)

def create_probe_session(timeout_seconds: float = 1.0) -> aiohttp.ClientSession:
    """
    Create aiohttp session for probing one address
    Routers ship self-signed certificates, so TLS verification is disabled
    """
    connector = aiohttp.TCPConnector(
        limit_per_host=2,           # REST + web probe share the host
        ssl=False,
        force_close=True,           # Nothing is reused after the probe
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )

def create_backend_session(timeout_seconds: float = 2.0, ssl_verify: bool = True) -> aiohttp.ClientSession:
    """
    Create aiohttp session for the backend scanning service
    """
    if not ssl_verify:
        logger.warning("SSL verification disabled for backend scanner")

    connector = aiohttp.TCPConnector(
        ssl=None if ssl_verify else False,
        limit=5,
        force_close=False,
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )
