from fastapi import APIRouter, Depends, HTTPException, Security, Query, Response, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.db.session import get_db
from app.core.config import settings
from app.schemas.all_schemas import (
    ActivityCreate,
    ActivityOrganizations,
    ActivityRead,
    ActivityTree,
    ActivityUpdate,
    BuildingCreate,
    BuildingNearby,
    BuildingNearbyResponse,
    BuildingRead,
    BuildingUpdate,
    OrganizationCreate,
    OrganizationNearbyResponse,
    OrganizationRead,
    OrganizationUpdate,
)
from app.services import activity_tree, business, geo

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

async def get_api_key(api_key_header: str = Security(api_key_header)):
    if api_key_header == settings.API_KEY:
        return api_key_header
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


router = APIRouter(dependencies=[Depends(get_api_key)])


# --- деятельности ---

@router.get("/activities", response_model=List[ActivityRead])
async def list_activities(session: AsyncSession = Depends(get_db)):
    return await activity_tree.list_activities(session)

@router.get("/activities/tree", response_model=List[ActivityTree])
async def get_activity_tree(session: AsyncSession = Depends(get_db)):
    activities = await activity_tree.list_activities(session)
    return activity_tree.build_activity_tree(activities)

@router.post("/activities", response_model=ActivityRead, status_code=status.HTTP_201_CREATED)
async def create_activity(payload: ActivityCreate, session: AsyncSession = Depends(get_db)):
    # глубже 3-го уровня не пустит, вернется 422
    return await activity_tree.insert_activity(session, payload.name, payload.parent_id)

@router.get("/activities/{activity_id}", response_model=ActivityRead)
async def get_activity(activity_id: int, session: AsyncSession = Depends(get_db)):
    return await activity_tree.get_activity(session, activity_id)

@router.put("/activities/{activity_id}", response_model=ActivityRead)
async def update_activity(activity_id: int, payload: ActivityUpdate, session: AsyncSession = Depends(get_db)):
    return await activity_tree.rename_activity(session, activity_id, payload.name)

@router.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(activity_id: int, session: AsyncSession = Depends(get_db)):
    # удаляется всё поддерево
    await activity_tree.delete_activity(session, activity_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/activities/{activity_id}/ancestors", response_model=List[ActivityRead])
async def get_activity_ancestors(activity_id: int, session: AsyncSession = Depends(get_db)):
    return await activity_tree.get_ancestors(session, activity_id)

@router.get("/activities/{activity_id}/descendants", response_model=List[ActivityRead])
async def get_activity_descendants(activity_id: int, session: AsyncSession = Depends(get_db)):
    return await activity_tree.get_descendants(session, activity_id)

@router.get("/activities/{activity_id}/organizations", response_model=ActivityOrganizations)
async def get_organizations_by_activity(activity_id: int, session: AsyncSession = Depends(get_db)):
    # только прямая привязка к деятельности
    activity, organizations = await business.get_organizations_for_activity(session, activity_id)
    return {"activity": activity, "organizations": organizations}

@router.get("/activities/{activity_id}/organizations-with-descendants", response_model=ActivityOrganizations)
async def get_organizations_by_activity_subtree(activity_id: int, session: AsyncSession = Depends(get_db)):
    activity, organizations = await business.get_organizations_for_subtree(session, activity_id)
    return {"activity": activity, "organizations": organizations}


# --- здания ---

@router.get("/buildings", response_model=List[BuildingRead])
async def get_all_buildings(session: AsyncSession = Depends(get_db)):
    return await business.list_buildings(session)

@router.get("/buildings/nearby", response_model=BuildingNearbyResponse)
async def search_buildings_nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: Optional[float] = Query(None, ge=0, description="Radius in km"),
    session: AsyncSession = Depends(get_db)
):
    radius_km = settings.DEFAULT_RADIUS_KM if radius is None else radius
    hits = await geo.find_buildings_in_radius(session, lat, lng, radius_km)
    data = [
        BuildingNearby(
            id=building.id,
            address=building.address,
            latitude=building.latitude,
            longitude=building.longitude,
            distance_km=distance
        )
        for building, distance in hits
    ]
    return {
        "data": data,
        "meta": {
            "center": {"lat": lat, "lng": lng},
            "radius_km": radius_km,
            "found": len(data),
        },
    }

@router.post("/buildings", response_model=BuildingRead, status_code=status.HTTP_201_CREATED)
async def create_building(payload: BuildingCreate, session: AsyncSession = Depends(get_db)):
    return await business.create_building(session, payload)

@router.get("/buildings/{building_id}", response_model=BuildingRead)
async def get_building(building_id: int, session: AsyncSession = Depends(get_db)):
    return await business.get_building(session, building_id)

@router.put("/buildings/{building_id}", response_model=BuildingRead)
async def update_building(building_id: int, payload: BuildingUpdate, session: AsyncSession = Depends(get_db)):
    return await business.update_building(session, building_id, payload)

@router.delete("/buildings/{building_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_building(building_id: int, session: AsyncSession = Depends(get_db)):
    await business.delete_building(session, building_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/buildings/{building_id}/organizations", response_model=List[OrganizationRead])
async def get_organizations_by_building(building_id: int, session: AsyncSession = Depends(get_db)):
    # список всех организаций в здании
    return await business.get_organizations_by_building(session, building_id)


# --- организации ---

@router.get("/organizations", response_model=List[OrganizationRead])
async def get_all_organizations(session: AsyncSession = Depends(get_db)):
    return await business.list_organizations(session)

@router.get("/organizations/search", response_model=List[OrganizationRead])
async def search_organizations_by_name(
    query: Optional[str] = Query(None, description="Case-insensitive substring of the name"),
    session: AsyncSession = Depends(get_db)
):
    # пустой запрос -> 400
    return await business.search_organizations_by_name(session, query)

@router.get("/organizations/nearby", response_model=OrganizationNearbyResponse)
async def search_organizations_nearby(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: Optional[float] = Query(None, ge=0, description="Radius in km"),
    session: AsyncSession = Depends(get_db)
):
    radius_km = settings.DEFAULT_RADIUS_KM if radius is None else radius
    organizations, found_buildings = await geo.find_organizations_in_radius(session, lat, lng, radius_km)
    return {
        "data": organizations,
        "meta": {
            "radius_km": radius_km,
            "found_buildings": found_buildings,
            "found_organizations": len(organizations),
        },
    }

@router.post("/organizations", response_model=OrganizationRead, status_code=status.HTTP_201_CREATED)
async def create_organization(payload: OrganizationCreate, session: AsyncSession = Depends(get_db)):
    return await business.create_organization(session, payload)

@router.get("/organizations/{organization_id}", response_model=OrganizationRead)
async def get_organization_detail(organization_id: int, session: AsyncSession = Depends(get_db)):
    return await business.get_organization(session, organization_id)

@router.put("/organizations/{organization_id}", response_model=OrganizationRead)
async def update_organization(organization_id: int, payload: OrganizationUpdate, session: AsyncSession = Depends(get_db)):
    return await business.update_organization(session, organization_id, payload)

@router.delete("/organizations/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(organization_id: int, session: AsyncSession = Depends(get_db)):
    await business.delete_organization(session, organization_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
