"""
Job entry point for the external scheduler and for operators.

    python main.py init
    python main.py distribute [--date YYYY-MM-DD]
    python main.py convert-orders
    python main.py recalculate-ranks
"""
import argparse
import asyncio
import logging
from datetime import date

from init import Session, _engine, init_tables, setup_logging
from staking_system.services.admin_service import AdminService
from staking_system.services.distribution_service import DistributionService
from staking_system.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


async def run(command: str, runDate: date = None):
    session = Session()
    try:
        if command == "init":
            init_tables(_engine)
            return SettingsService(session).initializeDefaults()
        if command == "distribute":
            return await DistributionService(session).runDailyDistribution(runDate)
        if command == "convert-orders":
            return await AdminService(session).triggerConvertAllOrders()
        if command == "recalculate-ranks":
            return await AdminService(session).triggerRankRecalculation()
        raise ValueError(f"Unknown command {command}")
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="BellCoin staking engine jobs")
    parser.add_argument(
        "command",
        choices=["init", "distribute", "convert-orders", "recalculate-ranks"]
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Settlement day to distribute (default: today, UTC)"
    )
    args = parser.parse_args()

    setup_logging()
    result = asyncio.run(run(args.command, args.date))
    logger.info(f"{args.command}: {result}")


if __name__ == '__main__':
    main()
