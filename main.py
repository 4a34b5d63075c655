"""
CarInsight sales assistant entry point.

Runs the conversational engine in the terminal, or prints a summary of the
inventory index used by semantic ranking.

Usage:
    Console mode: python main.py console [--scenario sedan] [--vehicle veh-001]
    Index stats:  python main.py stats
"""

import asyncio
import logging
import sys

from carinsight.config import settings

logger = logging.getLogger(__name__)


async def _print_stats() -> None:
    """Report how much of the inventory carries an embedding."""
    from console_demo import build_service

    service = await build_service()
    ranker = service.machine.services.ranker
    stats = await ranker.search.search_stats()
    print(f"{settings.business.name} inventory")
    print(f"  Vehicles:        {stats.total_vehicles}")
    print(f"  With embedding:  {stats.vehicles_with_embedding}")
    print(f"  Coverage:        {stats.embedding_coverage}")


def _run_console_mode() -> None:
    """Start the console demo (no API keys required)."""
    from console_demo import main as console_main

    console_main()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "stats":
        asyncio.run(_print_stats())
    else:
        if len(sys.argv) > 1 and sys.argv[1] == "console":
            sys.argv.pop(1)
        _run_console_mode()
