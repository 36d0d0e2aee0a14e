"""
ASGI entry point for uvicorn
This module exposes the FastAPI app for use with uvicorn command line
"""

import logging

from config_loader import config_path_from_env, load_config, setup_logging
from detection import RouterDetection
from detection_command_handler import DetectionCommandHandler
from api.main_api import DetectionAPI

# Load configuration
config = load_config(config_path_from_env())
setup_logging(config)

logger = logging.getLogger(__name__)

logger.info("Initializing application components...")

detection = RouterDetection.from_config(config)
handler = DetectionCommandHandler(detection)
api = DetectionAPI(handler, config)

# Expose the FastAPI app for uvicorn
app = api.app

logger.info("ASGI app ready for uvicorn")
