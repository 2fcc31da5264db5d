import math
from typing import List, Tuple

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.orm import Building, Organization

logger = structlog.get_logger(__name__)

EARTH_RADIUS_KM = 6371.0

# запас для bbox, чтобы погрешность acos не отрезала здания на границе
BOX_MARGIN_DEG = 1e-6


def great_circle_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    # сферическая теорема косинусов, как в исходном sql
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    cos_angle = (
        math.cos(phi1) * math.cos(phi2) * math.cos(math.radians(lon2) - math.radians(lon1))
        + math.sin(phi1) * math.sin(phi2)
    )
    # float может вылезти за [-1, 1], acos этого не прощает
    cos_angle = max(-1.0, min(1.0, cos_angle))
    return EARTH_RADIUS_KM * math.acos(cos_angle)


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lon, max_lon) enclosing every point within radius_km.

    The box is only used to narrow the SQL query. When the circle covers a pole
    or crosses the antimeridian, longitude is left unrestricted.
    """
    angular = radius_km / EARTH_RADIUS_KM
    if angular >= math.pi:
        return -90.0, 90.0, -180.0, 180.0

    delta_lat = math.degrees(angular) + BOX_MARGIN_DEG
    min_lat, max_lat = lat - delta_lat, lat + delta_lat
    if min_lat <= -90 or max_lat >= 90:
        return max(min_lat, -90.0), min(max_lat, 90.0), -180.0, 180.0

    delta_lon = math.degrees(math.asin(math.sin(angular) / math.cos(math.radians(lat)))) + BOX_MARGIN_DEG
    min_lon, max_lon = lon - delta_lon, lon + delta_lon
    if min_lon < -180 or max_lon > 180:
        return min_lat, max_lat, -180.0, 180.0

    return min_lat, max_lat, min_lon, max_lon


async def find_buildings_in_radius(
    session: AsyncSession, lat: float, lon: float, radius_km: float
) -> List[Tuple[Building, float]]:
    # грубо режем квадратом в базе, точное расстояние считаем в питоне
    min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, radius_km)
    stmt = select(Building).where(
        and_(
            Building.latitude.is_not(None),
            Building.longitude.is_not(None),
            Building.latitude >= min_lat,
            Building.latitude <= max_lat,
            Building.longitude >= min_lon,
            Building.longitude <= max_lon
        )
    )
    result = await session.execute(stmt)

    hits = []
    for building in result.scalars().all():
        distance = great_circle_distance(lat, lon, building.latitude, building.longitude)
        if distance <= radius_km:
            hits.append((building, distance))
    hits.sort(key=lambda hit: (hit[1], hit[0].id))

    logger.info("nearby_buildings_found", lat=lat, lon=lon, radius_km=radius_km, found=len(hits))
    return hits


async def find_organizations_in_radius(
    session: AsyncSession, lat: float, lon: float, radius_km: float
) -> Tuple[List[Organization], int]:
    hits = await find_buildings_in_radius(session, lat, lon, radius_km)
    if not hits:
        return [], 0

    distances = {building.id: distance for building, distance in hits}
    stmt = select(Organization).options(
        selectinload(Organization.building),
        selectinload(Organization.activities),
        selectinload(Organization.phones)
    ).where(Organization.building_id.in_(list(distances)))

    result = await session.execute(stmt)
    organizations = sorted(
        result.scalars().all(),
        key=lambda org: (distances[org.building_id], org.id)
    )
    return organizations, len(hits)
