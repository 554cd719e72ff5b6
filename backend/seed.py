import asyncio
import os
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from padelmatch.db import normalize_database_url
from padelmatch.models import Player

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
DATABASE_URL = normalize_database_url(DATABASE_URL)

engine = create_async_engine(DATABASE_URL, echo=False, pool_pre_ping=True)
Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

SAMPLE_PLAYERS = [
    ("padel-alex-ruiz", "Alex Ruiz", 1520.0),
    ("padel-bella-fernandez", "Bella Fernandez", 1480.0),
    ("padel-carlos-mendez", "Carlos Mendez", 1610.0),
    ("padel-diana-soto", "Diana Soto", 1390.0),
    ("padel-eli-vasquez", "Eli Vasquez", 1500.0),
    ("padel-fiona-castro", "Fiona Castro", 1725.0),
]


async def main():
    async with Session() as s:
        existing_players = {
            x.id for x in (await s.execute(select(Player))).scalars().all()
        }
        for pid, name, rating in SAMPLE_PLAYERS:
            if pid not in existing_players:
                s.add(Player(id=pid, name=name, rating=rating))
        await s.commit()
    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
