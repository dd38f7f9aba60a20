"""
Entrypoint that boots the Gatekeeper verification bot via the Discord adapter.
"""

import asyncio
import logging

from discord_adapter import main


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        # PM2 restarts typically send SIGINT which surfaces as KeyboardInterrupt.
        print("[SHUTDOWN] Received interrupt; exiting cleanly.", flush=True)
