import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Honour any externally provided DATABASE_URL but fall back to an in-memory
# SQLite database so local runs remain isolated.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
# main.py refuses to start without explicit origins
os.environ.setdefault("ALLOWED_ORIGINS", "http://testserver")
os.environ.setdefault("ALLOW_CREDENTIALS", "false")
os.environ.setdefault("DISABLE_RATE_LIMITS", "true")

from padelmatch import models  # noqa: E402,F401  # register tables on Base
from padelmatch.db import Base, get_session  # noqa: E402
from padelmatch.models import Player  # noqa: E402

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


def run_db(scenario):
    """Run ``scenario(session)`` against a fresh in-memory database.

    Everything happens inside one event loop so the StaticPool connection is
    never shared across loops.
    """

    async def main():
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        maker = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        try:
            async with maker() as session:
                return await scenario(session)
        finally:
            await engine.dispose()

    return asyncio.run(main())


async def add_players(session, *ratings):
    """Create players ``p1``..``pN`` with the given ratings."""

    players = [
        Player(id=f"p{i}", name=f"Player {i}", rating=float(rating))
        for i, rating in enumerate(ratings, start=1)
    ]
    session.add_all(players)
    await session.commit()
    return players


@pytest.fixture()
def api_client(tmp_path):
    """TestClient on the full app backed by a throwaway SQLite file.

    Yields ``(client, clock)``; set ``clock["now"]`` to move time.
    """

    from fastapi.testclient import TestClient

    from padelmatch.main import app
    from padelmatch.routers.viewer import utcnow

    db_path = tmp_path / "padel.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    maker = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async def override_get_session():
        async with maker() as session:
            yield session

    clock = {"now": NOW}
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[utcnow] = lambda: clock["now"]
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            yield client, clock
    finally:
        app.dependency_overrides.clear()
        asyncio.run(engine.dispose())
