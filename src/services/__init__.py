"""
Server orchestration
"""

from .discovery_server import DiscoveryServer

__all__ = ['DiscoveryServer']
