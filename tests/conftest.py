import os
import pytest
from typing import AsyncGenerator

# настройки читаются при импорте app.core.config, поэтому env ставим до импортов приложения
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./directory.db")
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("SEED_DEMO_DATA", "false")

from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.core.exceptions import setup_exception_handlers
from app.db.session import Base, get_db, register_sqlite_functions
from app.api.endpoints import router
from app.models.orm import Building, Organization
from app.services.activity_tree import insert_activity


@pytest.fixture
def database_url(tmp_path) -> str:
    """
    Fresh SQLite file per test unless TEST_DATABASE_URL points to a real server
    (e.g. postgresql+asyncpg://...).
    """
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """
    Creates the schema from scratch for each test.
    NullPool keeps connections from leaking between event loops.
    """
    test_engine = create_async_engine(database_url, poolclass=NullPool, echo=False)
    register_sqlite_functions(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Returns an AsyncClient with authorized headers and the DB dependency
    overridden to share the test session. Routes are mounted at the root.
    """
    test_app = FastAPI()
    setup_exception_handlers(test_app)
    test_app.include_router(router)

    async def override_get_db():
        yield session

    test_app.dependency_overrides[get_db] = override_get_db

    headers = {"X-API-Key": settings.API_KEY}

    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        ac.headers.update(headers)
        yield ac


@pytest.fixture
async def food_tree(session: AsyncSession):
    """
    Еда -> Мясная продукция -> Говядина
        -> Молочная продукция
    Автомобили
    """
    food = await insert_activity(session, "Еда")
    meat = await insert_activity(session, "Мясная продукция", food.id)
    beef = await insert_activity(session, "Говядина", meat.id)
    milk = await insert_activity(session, "Молочная продукция", food.id)
    cars = await insert_activity(session, "Автомобили")
    return {"food": food, "meat": meat, "beef": beef, "milk": milk, "cars": cars}


@pytest.fixture
async def moscow_building(session: AsyncSession) -> Building:
    building = Building(address="г. Москва, ул. Ленина 1", latitude=55.7558, longitude=37.6176)
    session.add(building)
    await session.commit()
    return building


@pytest.fixture
def make_organization(session: AsyncSession):
    async def _make(name: str, building: Building, activities=()) -> Organization:
        organization = Organization(name=name, building_id=building.id, activities=list(activities))
        session.add(organization)
        await session.commit()
        return organization

    return _make
