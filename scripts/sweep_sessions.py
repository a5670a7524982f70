#!/usr/bin/env python3
"""
Session Sweep

Cleans up avatar sessions abandoned past their end time plus the grace
period. Alternative to calling POST /functions/v1/sessions-cleanup from an
external scheduler.

Usage:
    # One pass (for cron)
    python3 scripts/sweep_sessions.py

    # Loop every 60 seconds
    python3 scripts/sweep_sessions.py --interval 60
"""

import argparse
import asyncio
import sys

from app.db.session import close_engine, get_db_session
from app.observability import get_logger, setup_logging
from app.services.liveavatar_gateway import close_liveavatar_gateway, get_liveavatar_gateway
from app.services.session_lifecycle import SessionLifecycleService

logger = get_logger(__name__)


async def sweep_once() -> int:
    """Run one cleanup pass. Returns the number of sessions cleaned."""
    async with get_db_session() as session:
        service = SessionLifecycleService(session, get_liveavatar_gateway())
        result = await service.sweep()
    return result.terminated_count


async def run(interval: float | None) -> None:
    """Run once, or forever with `interval` seconds between passes."""
    try:
        if interval is None:
            await sweep_once()
            return

        logger.info("session_sweeper_started", interval_seconds=interval)
        while True:
            try:
                await sweep_once()
            except Exception as e:
                logger.error("session_sweep_error", error=str(e), exc_info=True)
            await asyncio.sleep(interval)
    finally:
        await close_liveavatar_gateway()
        await close_engine()


def main():
    parser = argparse.ArgumentParser(description="Clean up expired avatar sessions")
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between passes; omit to run a single pass",
    )
    args = parser.parse_args()

    if args.interval is not None and args.interval <= 0:
        parser.error("--interval must be positive")

    setup_logging()

    try:
        asyncio.run(run(args.interval))
    except KeyboardInterrupt:
        logger.info("session_sweeper_stopped")
        sys.exit(0)


if __name__ == "__main__":
    main()
