"""Standalone sync worker: runs the post sync loop without the HTTP API."""

import argparse
import asyncio
import logging

from config import require_platform_credentials, validate_security_settings
from services.scheduler import sync_scheduler


async def _run(once: bool) -> None:
    if once:
        await sync_scheduler.run_once()
        return
    await sync_scheduler.run_once()
    await sync_scheduler.run_forever()


def main():
    parser = argparse.ArgumentParser(description="Run the post sync scheduler")
    parser.add_argument("--once", action="store_true", help="Run a single batch and exit")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    validate_security_settings()
    require_platform_credentials()
    asyncio.run(_run(args.once))


if __name__ == "__main__":
    main()
