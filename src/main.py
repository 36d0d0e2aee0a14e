"""
Router Discovery Server - Main Entry Point
"""

import asyncio
import signal
import sys
import logging

from config_loader import config_path_from_env
from services.discovery_server import DiscoveryServer

logger = logging.getLogger(__name__)

async def main() -> int:
    """Run the server until SIGINT/SIGTERM, then stop any running detection"""
    try:
        server = DiscoveryServer(config_path=config_path_from_env())
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Cannot start Router Discovery Server: {e}")
        return 1

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, lambda s=signum: asyncio.create_task(_shutdown(server, s)))

    try:
        await server.start()
    except Exception as e:
        logger.error(f"Server failed: {e}")
        return 1
    finally:
        await server.stop()

    return 0

async def _shutdown(server: DiscoveryServer, signum: int):
    logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
    await server.stop()

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
