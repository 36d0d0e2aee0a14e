"""
Discovery Server - wires configuration, detection service and HTTP API together
"""

import asyncio
import logging
from typing import Optional
import uvicorn

from config_loader import DEFAULT_CONFIG_PATH, load_config, setup_logging
from detection import RouterDetection
from detection_command_handler import DetectionCommandHandler, DetectionProgress
from api.main_api import DetectionAPI

logger = logging.getLogger(__name__)

class DiscoveryServer:
    """Main server hosting the router detection API"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH):
        self.config = load_config(config_path)
        setup_logging(self.config)

        self.detection = RouterDetection.from_config(self.config)
        self.handler = DetectionCommandHandler(self.detection)
        self.handler.add_progress_callback(self._log_progress)
        self.api = DetectionAPI(self.handler, self.config)

        self.server: Optional[uvicorn.Server] = None
        self.running = False

    async def start(self):
        """Start the API server and block until it exits"""
        logger.info("Starting Router Discovery Server...")
        logger.info(
            f"Default scan range {self.detection.default_scan_range}, "
            f"probes: {type(self.detection.probe_set).__name__}, "
            f"cache TTL {self.detection.cache.ttl_seconds}s"
        )
        self.running = True
        try:
            await self._start_api_server()
        except Exception as e:
            logger.error(f"Server startup failed: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop the server gracefully"""
        if not self.running:
            return
        logger.info("Stopping server...")
        self.running = False

        if self.handler.is_detection_active():
            self.handler.cancel_detection()
            try:
                await asyncio.wait_for(self.handler.wait(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning("Detection did not stop within 5s")

        if self.server:
            self.server.should_exit = True
        logger.info("Server stopped")

    async def _log_progress(self, progress: DetectionProgress):
        event = progress.event
        if event and event.message:
            logger.debug(f"[{progress.command_id}] {event.stage.value} {event.progress_percent}%: {event.message}")

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False  # We handle our own logging
        )

        self.server = uvicorn.Server(config)

        logger.info(f"Starting API server on {self.config['api']['host']}:{self.config['api']['port']}")
        await self.server.serve()
