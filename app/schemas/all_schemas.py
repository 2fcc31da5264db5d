from typing import Annotated, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

def _check_latitude(v: Optional[float]) -> Optional[float]:
    if v is not None and not (-90 <= v <= 90):
        raise ValueError('Latitude must be between -90 and 90')
    return v

def _check_longitude(v: Optional[float]) -> Optional[float]:
    if v is not None and not (-180 <= v <= 180):
        raise ValueError('Longitude must be between -180 and 180')
    return v

class BuildingBase(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator('latitude')
    @classmethod
    def validate_lat(cls, v: Optional[float]) -> Optional[float]:
        return _check_latitude(v)

    @field_validator('longitude')
    @classmethod
    def validate_lon(cls, v: Optional[float]) -> Optional[float]:
        return _check_longitude(v)

class BuildingCreate(BuildingBase):
    pass

class BuildingUpdate(BaseModel):
    address: Optional[str] = Field(None, min_length=1, max_length=255)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator('latitude')
    @classmethod
    def validate_lat(cls, v: Optional[float]) -> Optional[float]:
        return _check_latitude(v)

    @field_validator('longitude')
    @classmethod
    def validate_lon(cls, v: Optional[float]) -> Optional[float]:
        return _check_longitude(v)

class BuildingRead(BuildingBase):
    id: int
    model_config = ConfigDict(from_attributes=True)

class BuildingNearby(BuildingRead):
    distance_km: float

class GeoCenter(BaseModel):
    lat: float
    lng: float

class BuildingNearbyMeta(BaseModel):
    center: GeoCenter
    radius_km: float
    found: int

class BuildingNearbyResponse(BaseModel):
    data: List[BuildingNearby]
    meta: BuildingNearbyMeta

class ActivityBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

class ActivityCreate(ActivityBase):
    parent_id: Optional[int] = None

class ActivityUpdate(ActivityBase):
    pass

class ActivityRead(ActivityBase):
    id: int
    parent_id: Optional[int] = None
    lft: int
    rgt: int
    model_config = ConfigDict(from_attributes=True)

class ActivityTree(ActivityRead):
    children: List["ActivityTree"] = []

ActivityTree.model_rebuild()

PhoneNumber = Annotated[str, Field(min_length=1, max_length=64)]

class PhoneBase(BaseModel):
    number: str

class PhoneRead(PhoneBase):
    id: int
    model_config = ConfigDict(from_attributes=True)

class OrganizationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    building_id: int

class OrganizationCreate(OrganizationBase):
    activity_ids: List[int] = []
    phones: List[PhoneNumber] = []

class OrganizationUpdate(BaseModel):
    # None = поле не трогаем
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    building_id: Optional[int] = None
    activity_ids: Optional[List[int]] = None
    phones: Optional[List[PhoneNumber]] = None

class OrganizationRead(OrganizationBase):
    id: int
    building: BuildingRead
    activities: List[ActivityRead]
    phones: List[PhoneRead]
    model_config = ConfigDict(from_attributes=True)

class ActivityOrganizations(BaseModel):
    activity: ActivityRead
    organizations: List[OrganizationRead]

class OrganizationNearbyMeta(BaseModel):
    radius_km: float
    found_buildings: int
    found_organizations: int

class OrganizationNearbyResponse(BaseModel):
    data: List[OrganizationRead]
    meta: OrganizationNearbyMeta
