from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .commons import GeoPointIn, GeoPointOut, MeasurementStatus, SyncStatus, UtcDatetime


class MeasurementIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    polygon: List[GeoPointIn]
    notes: str = ""
    status: MeasurementStatus = "confirmed"
    offline_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class MeasurementReplace(BaseModel):
    """Full polygon replacement; every derived value is recomputed."""

    polygon: List[GeoPointIn]
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    notes: Optional[str] = None
    status: Optional[MeasurementStatus] = None


class MeasurementSyncCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=255)
    polygon: List[GeoPointIn]
    notes: str = ""
    status: MeasurementStatus = "confirmed"


class MeasurementSyncUpdate(BaseModel):
    # area/perimeter/center sent by a client are ignored: they derive from polygon
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    polygon: Optional[List[GeoPointIn]] = None
    notes: Optional[str] = None
    status: Optional[MeasurementStatus] = None


class MeasurementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: Optional[int] = None
    offline_id: Optional[str] = None
    name: str
    notes: Optional[str] = ""
    status: MeasurementStatus
    sync_status: SyncStatus
    polygon: List[dict]
    point_count: int
    area_square_meters: float
    area_acres: float
    area_hectares: float
    perimeter_meters: float
    center_latitude: float
    center_longitude: float
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
    deleted_at: Optional[UtcDatetime] = None

    @computed_field
    @property
    def center(self) -> GeoPointOut:
        return GeoPointOut(latitude=self.center_latitude, longitude=self.center_longitude)


class GeoCalcIn(BaseModel):
    polygon: List[GeoPointIn]


class GeoCalcOut(BaseModel):
    area_square_meters: float
    area_acres: float
    area_hectares: float
    area_square_feet: float
    perimeter_meters: float
    center: GeoPointOut
    point_count: int
    is_closed: bool
    geometry: dict
