"""Simple example walking one RFI from draft to closed."""

import asyncio
from datetime import datetime, timedelta, timezone

from rfiflow import build_executor, get_notifier, get_repository


async def main():
    """Basic RFI lifecycle example."""
    # Initialize notifier and repository from rfiflow.yaml / environment
    notifier = get_notifier()
    await notifier.connect()
    executor = build_executor(get_repository(), notifier)

    created = await executor.create(
        {"rfi_number": "RFI-001", "subject": "Beam size at grid C4"}, actor_id="pm-1"
    )
    rfi_id = created.record.id

    due = datetime.now(timezone.utc) + timedelta(days=7)
    steps = [
        ("active", {}),
        ("sent", {"due_date": due.isoformat(), "assigned_to": "engineer-7"}),
        ("responded", {"response": "Use W12x26"}),
        ("closed", {"reason": "Answered"}),
    ]
    for target, extra in steps:
        result = await executor.execute(rfi_id, target, "pm-1", extra)
        if not result.ok:
            print(f"❌ {target}: {', '.join(result.errors)}")
            break
        print(f"✅ {rfi_id} is now {result.record.status.value}")

    # Deliver queued activity entries and notifications before exiting
    await executor.outbox.close()
    await notifier.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
