"""Example running the overdue sweeper against the configured database."""

import asyncio
import sys

from rfiflow import OverdueSweeper, build_executor, get_notifier, get_repository
from rfiflow.config import load_config


async def main():
    config = load_config()
    lifespan = float(sys.argv[1]) if len(sys.argv) > 1 else None

    notifier = get_notifier(config=config)
    await notifier.connect()
    repository = get_repository(config=config)
    executor = build_executor(repository, notifier)

    sweeper = OverdueSweeper(repository, executor, config.sweeper.actor_id)
    total = await sweeper.run_periodic(config.sweeper.interval_seconds, lifespan=lifespan)
    print(f"Marked {total} RFI(s) overdue")

    await executor.outbox.close()
    await notifier.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
