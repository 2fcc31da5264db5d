from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete, insert
from sqlalchemy.orm import selectinload
from typing import Iterable, List, Tuple

import structlog

from app.core.exceptions import BadRequestError, NotFoundError, ValidationError
from app.models.orm import Activity, Organization, Building, OrganizationPhone, organization_activity
from app.schemas.all_schemas import (
    BuildingCreate,
    BuildingUpdate,
    OrganizationCreate,
    OrganizationUpdate,
)
from app.services.activity_tree import get_activity, get_subtree_ids

logger = structlog.get_logger(__name__)


def _organization_query():
    # организацию всегда отдаем вместе со зданием, деятельностями и телефонами
    return select(Organization).options(
        selectinload(Organization.building),
        selectinload(Organization.activities),
        selectinload(Organization.phones)
    ).execution_options(populate_existing=True)


async def list_organizations(session: AsyncSession) -> List[Organization]:
    result = await session.execute(_organization_query().order_by(Organization.id))
    return result.scalars().all()


async def get_organization(session: AsyncSession, organization_id: int) -> Organization:
    result = await session.execute(_organization_query().where(Organization.id == organization_id))
    organization = result.scalar_one_or_none()
    if organization is None:
        raise NotFoundError(f"Organization {organization_id} not found")
    return organization


async def search_organizations_by_name(session: AsyncSession, query: str) -> List[Organization]:
    if not query or not query.strip():
        raise BadRequestError("Search query is required")

    # подстрока без учета регистра, % и _ из запроса экранируются
    stmt = _organization_query().where(
        Organization.name.icontains(query.strip(), autoescape=True)
    ).order_by(Organization.name, Organization.id)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_organizations_for_activity(session: AsyncSession, activity_id: int) -> Tuple[Activity, List[Organization]]:
    activity = await get_activity(session, activity_id)
    stmt = _organization_query().where(
        Organization.activities.any(Activity.id == activity.id)
    ).order_by(Organization.id)
    result = await session.execute(stmt)
    return activity, result.scalars().all()


async def get_organizations_for_subtree(session: AsyncSession, activity_id: int) -> Tuple[Activity, List[Organization]]:
    # если ищем "Еда", должны найти и "Мясо", и "Говядину"
    activity = await get_activity(session, activity_id)
    activity_ids = await get_subtree_ids(session, activity.id)

    stmt = _organization_query().where(
        Organization.activities.any(Activity.id.in_(activity_ids))
    ).order_by(Organization.id)
    result = await session.execute(stmt)
    return activity, result.scalars().all()


async def get_organizations_by_building(session: AsyncSession, building_id: int) -> List[Organization]:
    await get_building(session, building_id)
    stmt = _organization_query().where(Organization.building_id == building_id).order_by(Organization.id)
    result = await session.execute(stmt)
    return result.scalars().all()


async def _ensure_building_exists(session: AsyncSession, building_id: int) -> None:
    if await session.get(Building, building_id) is None:
        raise ValidationError(f"Building {building_id} does not exist")


async def _ensure_activities_exist(session: AsyncSession, activity_ids: Iterable[int]) -> None:
    wanted = set(activity_ids)
    if not wanted:
        return
    result = await session.execute(select(Activity.id).where(Activity.id.in_(sorted(wanted))))
    missing = wanted - set(result.scalars().all())
    if missing:
        raise ValidationError(f"Activities do not exist: {sorted(missing)}")


async def _sync_activities(session: AsyncSession, organization_id: int, activity_ids: Iterable[int]) -> None:
    desired = set(activity_ids)
    result = await session.execute(
        select(organization_activity.c.activity_id).where(organization_activity.c.organization_id == organization_id)
    )
    current = set(result.scalars().all())

    to_remove = current - desired
    to_add = desired - current
    if to_remove:
        await session.execute(
            delete(organization_activity).where(
                organization_activity.c.organization_id == organization_id,
                organization_activity.c.activity_id.in_(sorted(to_remove))
            )
        )
    if to_add:
        await session.execute(
            insert(organization_activity),
            [{"organization_id": organization_id, "activity_id": activity_id} for activity_id in sorted(to_add)]
        )


async def _sync_phones(session: AsyncSession, organization_id: int, phones: Iterable[str]) -> None:
    desired = list(dict.fromkeys(phones))
    result = await session.execute(
        select(OrganizationPhone.id, OrganizationPhone.number)
        .where(OrganizationPhone.organization_id == organization_id)
        .order_by(OrganizationPhone.id)
    )

    kept = set()
    stale_ids = []
    for phone_id, number in result.all():
        if number in desired and number not in kept:
            kept.add(number)
        else:
            stale_ids.append(phone_id)

    if stale_ids:
        await session.execute(delete(OrganizationPhone).where(OrganizationPhone.id.in_(stale_ids)))
    to_add = [number for number in desired if number not in kept]
    if to_add:
        await session.execute(
            insert(OrganizationPhone),
            [{"organization_id": organization_id, "number": number} for number in to_add]
        )


async def create_organization(session: AsyncSession, data: OrganizationCreate) -> Organization:
    # все проверки до первой записи
    await _ensure_building_exists(session, data.building_id)
    await _ensure_activities_exist(session, data.activity_ids)

    organization = Organization(name=data.name, building_id=data.building_id)
    session.add(organization)
    await session.flush()

    await _sync_activities(session, organization.id, data.activity_ids)
    await _sync_phones(session, organization.id, data.phones)
    await session.commit()

    logger.info("organization_created", organization_id=organization.id, building_id=data.building_id)
    return await get_organization(session, organization.id)


async def update_organization(session: AsyncSession, organization_id: int, data: OrganizationUpdate) -> Organization:
    organization = await get_organization(session, organization_id)
    if data.building_id is not None:
        await _ensure_building_exists(session, data.building_id)
    if data.activity_ids is not None:
        await _ensure_activities_exist(session, data.activity_ids)

    if data.name is not None:
        organization.name = data.name
    if data.building_id is not None:
        organization.building_id = data.building_id
    await session.flush()

    if data.activity_ids is not None:
        await _sync_activities(session, organization_id, data.activity_ids)
    if data.phones is not None:
        await _sync_phones(session, organization_id, data.phones)
    await session.commit()

    logger.info("organization_updated", organization_id=organization_id)
    return await get_organization(session, organization_id)


async def delete_organization(session: AsyncSession, organization_id: int) -> None:
    # телефоны и связи с деятельностями уходят вместе с организацией
    organization = await get_organization(session, organization_id)
    await session.delete(organization)
    await session.commit()
    logger.info("organization_deleted", organization_id=organization_id)


async def list_buildings(session: AsyncSession) -> List[Building]:
    result = await session.execute(select(Building).order_by(Building.id))
    return result.scalars().all()


async def get_building(session: AsyncSession, building_id: int) -> Building:
    building = await session.get(Building, building_id, populate_existing=True)
    if building is None:
        raise NotFoundError(f"Building {building_id} not found")
    return building


async def create_building(session: AsyncSession, data: BuildingCreate) -> Building:
    building = Building(**data.model_dump())
    session.add(building)
    await session.commit()
    logger.info("building_created", building_id=building.id)
    return building


async def update_building(session: AsyncSession, building_id: int, data: BuildingUpdate) -> Building:
    building = await get_building(session, building_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if field == "address" and value is None:
            continue
        setattr(building, field, value)
    await session.commit()
    return building


async def delete_building(session: AsyncSession, building_id: int) -> None:
    await get_building(session, building_id)
    count = (await session.execute(
        select(func.count()).select_from(Organization).where(Organization.building_id == building_id)
    )).scalar_one()
    if count:
        raise ValidationError(f"Building {building_id} still houses {count} organization(s)")

    await session.execute(delete(Building).where(Building.id == building_id))
    await session.commit()
    logger.info("building_deleted", building_id=building_id)
