"""
Local HTTP API for the Router Discovery Server
Exposes detection commands, progress polling and health
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict
import logging
from datetime import datetime, timezone

from detection_command_handler import DetectionCommandHandler

from .detection_routes import create_detection_routes

logger = logging.getLogger(__name__)


class DetectionAPI:
    """Local HTTP API for router detection"""

    def __init__(self, handler: DetectionCommandHandler, config: Dict):
        self.handler = handler
        self.config = config
        self.app = FastAPI(
            title="Router Discovery Server",
            description="Finds and verifies routers on the local network",
            version="1.0.0"
        )
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=config.get('api', {}).get('cors_origins', ['*']),
            allow_methods=["*"],
            allow_headers=["*"]
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes"""
        self.app.include_router(create_detection_routes(self.handler))
        self._setup_system_routes()

    def _setup_system_routes(self):

        @self.app.get("/api/system/health")
        async def system_health():
            """System health check"""
            detection = self.handler.detection
            return {
                "status": "healthy",
                "probe_set": type(detection.probe_set).__name__,
                "scan_in_progress": detection.scan_in_progress,
                "cache_entries": len(detection.cache),
                "backend_scanner_configured": detection.backend.configured,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
