# screenings/scripts/create_tables.py
import asyncio

from screenings.core.config import settings
from screenings.db.session import Database

print("Creating database tables...")


async def create_all_tables() -> None:
    database = Database(settings.DATABASE_URL)
    await database.connect()
    try:
        # create_all imports every model so Base.metadata is complete
        await database.create_all()
        print("✅ Database tables created successfully!")
    except Exception as e:
        print(f"❌ Failed to create database tables: {e}")
        raise
    finally:
        await database.disconnect()


if __name__ == "__main__":
    asyncio.run(create_all_tables())
