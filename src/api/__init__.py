"""
API module for router detection
"""

from .main_api import DetectionAPI
from .detection_routes import create_detection_routes

__all__ = ['DetectionAPI', 'create_detection_routes']
