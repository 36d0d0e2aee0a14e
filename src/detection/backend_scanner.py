"""
Client for an external scanning service
"""

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from http_helper import create_backend_session
from .cancellation import CancellationToken
from .models import RouterCandidate

logger = logging.getLogger(__name__)


class BackendScanner:
    """Backend-assisted scan: only used when a scanning service answers its health check"""

    def __init__(self, config: Dict):
        self.base_url = (config.get('url') or '').rstrip('/')
        self.timeout = config.get('health_timeout', 2.0)
        self.ssl_verify = config.get('ssl_verify', True)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def is_available(self) -> bool:
        """GET /api/health on the scanning service"""
        if not self.configured:
            logger.debug("No backend scanner configured")
            return False

        url = f"{self.base_url}/api/health"
        try:
            async with create_backend_session(self.timeout, self.ssl_verify) as session:
                async with session.get(url) as response:
                    if response.status == 200:
                        return True
                    logger.warning(f"Backend scanner unhealthy: HTTP {response.status} from {url}")
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Backend scanner unreachable at {url}: {e!r}")
            return False

    async def scan(self, scan_range: str, token: CancellationToken) -> Optional[RouterCandidate]:
        """Returns None when the service is unavailable or has nothing to offer"""
        token.raise_if_cancelled()
        if not await self.is_available():
            return None

        # TODO: request a scan of scan_range once the backend exposes a scan endpoint
        logger.info(f"Backend scanner reachable at {self.base_url} but offers no scan endpoint for {scan_range}")
        return None
