from typing import List, Optional

import structlog
from sqlalchemy import delete, func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.orm import Activity, organization_activity
from app.schemas.all_schemas import ActivityTree

logger = structlog.get_logger(__name__)


def would_violate_depth(parent_ancestor_count: int, max_depth: Optional[int] = None) -> bool:
    # глубина нового узла = предки родителя + 1 (сам родитель)
    if max_depth is None:
        max_depth = settings.ACTIVITY_MAX_DEPTH
    return parent_ancestor_count + 1 >= max_depth


async def _lock_tree(session: AsyncSession) -> None:
    # два параллельных insert не должны посчитать одинаковые границы
    # sqlite и так сериализует запись, блокируем только в postgres
    if session.get_bind().dialect.name == "postgresql":
        await session.execute(text("LOCK TABLE activities IN SHARE ROW EXCLUSIVE MODE"))


async def get_activity(session: AsyncSession, activity_id: int) -> Activity:
    activity = await session.get(Activity, activity_id, populate_existing=True)
    if activity is None:
        raise NotFoundError(f"Activity {activity_id} not found")
    return activity


async def list_activities(session: AsyncSession) -> List[Activity]:
    result = await session.execute(select(Activity).order_by(Activity.lft).execution_options(populate_existing=True))
    return result.scalars().all()


async def count_ancestors(session: AsyncSession, activity: Activity) -> int:
    stmt = select(func.count()).select_from(Activity).where(
        Activity.lft < activity.lft,
        Activity.rgt > activity.rgt
    )
    return (await session.execute(stmt)).scalar_one()


async def get_ancestors(session: AsyncSession, activity_id: int) -> List[Activity]:
    activity = await get_activity(session, activity_id)
    stmt = select(Activity).where(
        Activity.lft < activity.lft,
        Activity.rgt > activity.rgt
    ).order_by(Activity.lft).execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_descendants(session: AsyncSession, activity_id: int) -> List[Activity]:
    # включая сам узел
    activity = await get_activity(session, activity_id)
    stmt = select(Activity).where(
        Activity.lft >= activity.lft,
        Activity.rgt <= activity.rgt
    ).order_by(Activity.lft).execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_subtree_ids(session: AsyncSession, activity_id: int) -> List[int]:
    return [a.id for a in await get_descendants(session, activity_id)]


async def insert_activity(session: AsyncSession, name: str, parent_id: Optional[int] = None) -> Activity:
    await _lock_tree(session)

    if parent_id is None:
        # новый корень встает после всех существующих диапазонов
        max_rgt = (await session.execute(select(func.coalesce(func.max(Activity.rgt), 0)))).scalar_one()
        lft = max_rgt + 1
    else:
        parent = await session.get(Activity, parent_id, populate_existing=True)
        if parent is None:
            raise ValidationError(f"Parent activity {parent_id} does not exist")

        ancestors = await count_ancestors(session, parent)
        if would_violate_depth(ancestors):
            logger.warning("activity_depth_rejected", parent_id=parent_id, parent_ancestors=ancestors)
            raise ValidationError(
                f"Activity nesting is limited to {settings.ACTIVITY_MAX_DEPTH} levels"
            )

        # раздвигаем дерево на 2 справа от точки вставки
        lft = parent.rgt
        await session.execute(
            update(Activity).where(Activity.rgt >= lft).values(rgt=Activity.rgt + 2)
        )
        await session.execute(
            update(Activity).where(Activity.lft > lft).values(lft=Activity.lft + 2)
        )

    activity = Activity(name=name, parent_id=parent_id, lft=lft, rgt=lft + 1)
    session.add(activity)
    await session.commit()

    logger.info("activity_created", activity_id=activity.id, parent_id=parent_id, lft=activity.lft, rgt=activity.rgt)
    return activity


async def rename_activity(session: AsyncSession, activity_id: int, name: str) -> Activity:
    activity = await get_activity(session, activity_id)
    activity.name = name
    await session.commit()
    return activity


async def delete_activity(session: AsyncSession, activity_id: int) -> List[int]:
    """Delete an activity together with its whole subtree and close the gap.

    Returns the ids of every removed activity.
    """
    await _lock_tree(session)
    activity = await get_activity(session, activity_id)
    lft, rgt = activity.lft, activity.rgt
    width = rgt - lft + 1

    subtree = await session.execute(
        select(Activity.id).where(Activity.lft >= lft, Activity.rgt <= rgt)
    )
    removed_ids = subtree.scalars().all()

    await session.execute(
        delete(organization_activity).where(organization_activity.c.activity_id.in_(removed_ids))
    )
    await session.execute(delete(Activity).where(Activity.id.in_(removed_ids)))

    # сдвигаем всё что правее удаленного диапазона, сначала lft чтобы не нарушить lft < rgt
    await session.execute(
        update(Activity).where(Activity.lft > rgt).values(lft=Activity.lft - width)
    )
    await session.execute(
        update(Activity).where(Activity.rgt > rgt).values(rgt=Activity.rgt - width)
    )
    await session.commit()

    logger.info("activity_deleted", activity_id=activity_id, removed=len(removed_ids))
    return removed_ids


def build_activity_tree(activities: List[Activity]) -> List[ActivityTree]:
    # activities отсортированы по lft, родитель всегда лежит в стеке
    roots: List[ActivityTree] = []
    stack: List[ActivityTree] = []
    for activity in activities:
        node = ActivityTree.model_validate(activity)
        while stack and stack[-1].rgt < node.lft:
            stack.pop()
        if stack:
            stack[-1].children.append(node)
        else:
            roots.append(node)
        stack.append(node)
    return roots
