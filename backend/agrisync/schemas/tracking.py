from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .commons import StoredDatetime, UtcDatetime


class LocationIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    altitude: Optional[float] = Field(default=None, ge=-500, le=10000)
    accuracy: Optional[float] = Field(default=None, ge=0, le=10000)
    speed: Optional[float] = Field(default=None, ge=0, le=200)  # m/s
    heading: Optional[float] = Field(default=None, ge=0, le=360)
    recorded_at: StoredDatetime


class TrackingBatchIn(BaseModel):
    driver_id: int
    job_id: Optional[int] = None
    device_id: Optional[str] = Field(default=None, max_length=100)
    locations: List[LocationIn] = Field(min_length=1)


class TrackingBatchOut(BaseModel):
    count: int


class TrackingPointSyncCreate(LocationIn):
    """A breadcrumb pushed through /sync/push; always inserted."""

    model_config = ConfigDict(extra="ignore")

    driver_id: Optional[int] = None
    job_id: Optional[int] = None
    device_id: Optional[str] = Field(default=None, max_length=100)


class TrackingPointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: Optional[int] = None
    driver_id: Optional[int] = None
    job_id: Optional[int] = None
    offline_id: Optional[str] = None
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    recorded_at: UtcDatetime
    device_id: Optional[str] = None


class DistanceOut(BaseModel):
    driver_id: Optional[int] = None
    job_id: Optional[int] = None
    start: Optional[UtcDatetime] = None
    end: Optional[UtcDatetime] = None
    point_count: int
    distance_meters: float
    distance_km: float
