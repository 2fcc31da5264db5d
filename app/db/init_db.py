import structlog
from sqlalchemy import select

from app.core.config import settings
from app.db.session import engine, Base, AsyncSessionLocal
from app.models.orm import Activity
from app.schemas.all_schemas import BuildingCreate, OrganizationCreate
from app.services.activity_tree import insert_activity
from app.services.business import create_building, create_organization

logger = structlog.get_logger(__name__)

async def init_db():
    # в проде конечно лучше alembic, но для теста сойдет и create_all
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if not settings.SEED_DEMO_DATA:
        return

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Activity))
        if result.first():
            return

        # наливаем тестовые данные через сервисы, чтобы lft/rgt были честные
        # 1. категории
        food = await insert_activity(session, "Еда")
        cars = await insert_activity(session, "Автомобили")

        # уровень 2
        meat = await insert_activity(session, "Мясная продукция", food.id)
        milk = await insert_activity(session, "Молочная продукция", food.id)
        trucks = await insert_activity(session, "Грузовые", cars.id)
        spare_parts = await insert_activity(session, "Запчасти", cars.id)

        # уровень 3, глубже нельзя
        beef = await insert_activity(session, "Говядина", meat.id)
        tires = await insert_activity(session, "Шины", spare_parts.id)
        await insert_activity(session, "Аксессуары", spare_parts.id)

        # 2. здания (центр москвы и рядом)
        b1 = await create_building(session, BuildingCreate(address="г. Москва, ул. Ленина 1", latitude=55.7558, longitude=37.6176))
        b2 = await create_building(session, BuildingCreate(address="г. Москва, ул. Пушкина 2", latitude=55.751244, longitude=37.618423))
        b3 = await create_building(session, BuildingCreate(address="г. Санкт-Петербург, Невский пр. 28", latitude=59.935728, longitude=30.325812))
        await create_building(session, BuildingCreate(address="г. Москва, Блюхера 32/1"))

        # 3. организации
        await create_organization(session, OrganizationCreate(
            name="ООО Рога и Копыта",
            building_id=b1.id,
            activity_ids=[meat.id, milk.id],
            phones=["2-222-222", "3-333-333", "8-923-666-13-13"],
        ))
        await create_organization(session, OrganizationCreate(
            name="Молочный Мир",
            building_id=b2.id,
            activity_ids=[milk.id],
            phones=["8-800-555-35-35"],
        ))
        await create_organization(session, OrganizationCreate(
            name="Шиномонтаж у Ашота",
            building_id=b1.id,
            activity_ids=[tires.id],
            phones=["2-22-33"],
        ))
        await create_organization(session, OrganizationCreate(
            name="Мясной двор",
            building_id=b3.id,
            activity_ids=[beef.id],
        ))
        await create_organization(session, OrganizationCreate(
            name="Автопарк Север",
            building_id=b3.id,
            activity_ids=[trucks.id],
        ))

        logger.info("demo_data_seeded")
