from datetime import datetime, timezone
from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field

MeasurementStatus = Literal["draft", "confirmed", "archived"]
SyncStatus = Literal["synced", "pending", "conflict"]


def as_aware_utc(value: datetime) -> datetime:
    # rows are stored as naive UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# incoming timestamps, normalised for storage and comparison
StoredDatetime = Annotated[datetime, AfterValidator(as_naive_utc)]
# outgoing timestamps, always rendered with an explicit UTC offset
UtcDatetime = Annotated[datetime, AfterValidator(as_aware_utc)]


class GeoPointIn(BaseModel):
    # ranges are checked by the geo calculator so errors carry polygon indexes
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    accuracy: Optional[float] = Field(default=None, ge=0)


class GeoPointOut(BaseModel):
    latitude: float
    longitude: float


class GeoJSONFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: dict
    properties: dict
