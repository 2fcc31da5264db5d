import math

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm import Building
from app.services.geo import (
    EARTH_RADIUS_KM,
    bounding_box,
    find_buildings_in_radius,
    find_organizations_in_radius,
    great_circle_distance,
)

pytestmark = pytest.mark.asyncio

CENTER = (55.751244, 37.618423)


async def add_buildings(session: AsyncSession, *buildings: Building):
    session.add_all(buildings)
    await session.commit()
    return buildings


async def test_distance_is_zero_for_same_point():
    for lat, lon in [(0, 0), CENTER, (55.7558, 37.6176), (-33.8688, 151.2093), (89.999, -179.5)]:
        assert great_circle_distance(lat, lon, lat, lon) == 0.0


async def test_distance_known_pair():
    # ул. Ленина 1 -> ул. Пушкина 2, около полукилометра
    distance = great_circle_distance(*CENTER, 55.7558, 37.6176)
    assert 0.4 < distance < 0.7
    assert distance == pytest.approx(great_circle_distance(55.7558, 37.6176, *CENTER))


async def test_distance_antipodal_is_clamped():
    assert great_circle_distance(0, 0, 0, 180) == pytest.approx(math.pi * EARTH_RADIUS_KM)
    assert great_circle_distance(90, 0, -90, 0) == pytest.approx(math.pi * EARTH_RADIUS_KM)


async def test_distance_one_degree_on_equator():
    assert great_circle_distance(0, 0, 0, 1) == pytest.approx(2 * math.pi * EARTH_RADIUS_KM / 360)


async def test_bounding_box_one_degree_on_equator():
    radius = EARTH_RADIUS_KM * math.pi / 180
    min_lat, max_lat, min_lon, max_lon = bounding_box(0, 0, radius)
    assert min_lat == pytest.approx(-1, abs=1e-5)
    assert max_lat == pytest.approx(1, abs=1e-5)
    assert min_lon == pytest.approx(-1, abs=1e-5)
    assert max_lon == pytest.approx(1, abs=1e-5)


async def test_bounding_box_near_pole_drops_longitude():
    min_lat, max_lat, min_lon, max_lon = bounding_box(89.9, 10, 50)
    assert max_lat == 90.0
    assert min_lat < 89.9
    assert (min_lon, max_lon) == (-180.0, 180.0)


async def test_bounding_box_across_antimeridian_drops_longitude():
    min_lat, max_lat, min_lon, max_lon = bounding_box(0, 179.99, 10)
    assert (min_lon, max_lon) == (-180.0, 180.0)
    assert min_lat < 0 < max_lat


async def test_bounding_box_whole_globe():
    assert bounding_box(10, 10, 30000) == (-90.0, 90.0, -180.0, 180.0)


async def test_bounding_box_contains_every_point_in_radius():
    radius = 5
    min_lat, max_lat, min_lon, max_lon = bounding_box(*CENTER, radius)
    checked = 0
    for i in range(-40, 41):
        for j in range(-40, 41):
            lat = CENTER[0] + i * 0.0025
            lon = CENTER[1] + j * 0.004
            if great_circle_distance(*CENTER, lat, lon) <= radius:
                checked += 1
                assert min_lat <= lat <= max_lat
                assert min_lon <= lon <= max_lon
    assert checked > 100


async def test_find_buildings_sorted_and_filtered(session: AsyncSession):
    exact, near, far = await add_buildings(
        session,
        Building(address="Exact", latitude=CENTER[0], longitude=CENTER[1]),
        Building(address="Near", latitude=55.7558, longitude=37.6176),
        Building(address="Far", latitude=59.935728, longitude=30.325812),
    )

    hits = await find_buildings_in_radius(session, *CENTER, 5)

    assert [b.address for b, _ in hits] == ["Exact", "Near"]
    assert hits[0][1] == 0.0
    assert 0.4 < hits[1][1] < 0.7


async def test_exact_point_found_with_zero_radius(session: AsyncSession):
    await add_buildings(session, Building(address="Exact", latitude=CENTER[0], longitude=CENTER[1]))

    hits = await find_buildings_in_radius(session, *CENTER, 0)

    assert [b.address for b, _ in hits] == ["Exact"]


async def test_buildings_without_coordinates_are_skipped(session: AsyncSession):
    await add_buildings(
        session,
        Building(address="Nowhere"),
        Building(address="Half", latitude=CENTER[0]),
        Building(address="Here", latitude=CENTER[0], longitude=CENTER[1]),
    )

    hits = await find_buildings_in_radius(session, *CENTER, 20000)

    assert [b.address for b, _ in hits] == ["Here"]


async def test_results_grow_monotonically_with_radius(session: AsyncSession):
    buildings = [
        Building(address=f"b{i}", latitude=CENTER[0] + i * 0.01, longitude=CENTER[1] - i * 0.013)
        for i in range(-6, 7)
    ]
    await add_buildings(session, *buildings)

    previous = set()
    for radius in [0, 0.5, 1, 2, 3, 5, 8, 13]:
        current = {b.id for b, _ in await find_buildings_in_radius(session, *CENTER, radius)}
        assert previous <= current
        previous = current
    assert len(previous) == len(buildings)


async def test_find_organizations_joins_matching_buildings(session: AsyncSession, make_organization):
    near, far = await add_buildings(
        session,
        Building(address="Near", latitude=55.7558, longitude=37.6176),
        Building(address="Far", latitude=59.935728, longitude=30.325812),
    )
    await make_organization("Рога и Копыта", near)
    await make_organization("Шиномонтаж", near)
    await make_organization("Питерская контора", far)

    organizations, found_buildings = await find_organizations_in_radius(session, *CENTER, 5)

    assert found_buildings == 1
    assert [o.name for o in organizations] == ["Рога и Копыта", "Шиномонтаж"]
    assert organizations[0].building.address == "Near"


async def test_find_organizations_empty_when_nothing_near(session: AsyncSession):
    organizations, found_buildings = await find_organizations_in_radius(session, 0, 0, 1)
    assert organizations == []
    assert found_buildings == 0
