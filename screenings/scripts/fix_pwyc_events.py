# screenings/scripts/fix_pwyc_events.py
"""
Legacy data repair: pay-what-you-can events saved without a price.

They cannot be charged for, so pay-what-you-can is switched off and they
become free events.

Only databases created before the ck_events_pwyc_requires_price CHECK
constraint can hold such rows; run this against them before adding the
constraint, or the ALTER TABLE fails on the bad rows. On a schema built
from the current models it always finds nothing.

    python -m screenings.scripts.fix_pwyc_events --dry-run
    python -m screenings.scripts.fix_pwyc_events
"""
import argparse
import asyncio

from screenings.core.config import settings
from screenings.db.session import Database
from screenings.services.event_service import (
    disable_pwyc_without_price,
    find_pwyc_events_without_price,
)


async def fix_pwyc_events(*, dry_run: bool) -> int:
    database = Database(settings.DATABASE_URL)
    await database.connect()
    try:
        async with database.session() as db:
            events = await find_pwyc_events_without_price(db)
            if not events:
                print("✅ No pay-what-you-can events without a price")
                return 0

            for event in events:
                print(f"- {event.id} {event.title!r} (price={event.price})")

            if dry_run:
                print(f"Dry run: {len(events)} event(s) would be changed")
                return len(events)

            changed = await disable_pwyc_without_price(db)
            print(f"✅ Disabled pay-what-you-can on {len(changed)} event(s)")
            return len(changed)
    finally:
        await database.disconnect()


def main() -> None:
    parser = argparse.ArgumentParser(description="Disable PWYC on events without a price")
    parser.add_argument("--dry-run", action="store_true", help="list affected events only")
    args = parser.parse_args()
    asyncio.run(fix_pwyc_events(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
