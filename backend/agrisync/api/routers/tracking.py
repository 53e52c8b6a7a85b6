from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from agrisync.api.deps import get_tenant
from agrisync.config import Settings, get_settings
from agrisync.db import get_db
from agrisync.errors import BatchTooLarge
from agrisync.schemas.tracking import DistanceOut, TrackingBatchIn, TrackingBatchOut, TrackingPointOut
from agrisync.services.tenant import TenantContext
from agrisync.services.tracking.ingest import TrackingIngest

router = APIRouter()


@router.post("/batch", status_code=201)
def store_batch(
    payload: TrackingBatchIn,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
    settings: Settings = Depends(get_settings),
) -> TrackingBatchOut:
    if len(payload.locations) > settings.tracking_batch_max:
        raise BatchTooLarge(f"at most {settings.tracking_batch_max} locations per batch (got {len(payload.locations)})")
    count = TrackingIngest(db).ingest_batch(
        tenant,
        payload.locations,
        driver_id=payload.driver_id,
        job_id=payload.job_id,
        device_id=payload.device_id,
    )
    return TrackingBatchOut(count=count)


@router.get("/jobs/{job_id}")
def job_history(
    job_id: int,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> list[TrackingPointOut]:
    return [TrackingPointOut.model_validate(p) for p in TrackingIngest(db).job_history(tenant, job_id)]


@router.get("/distance")
def distance(
    driver_id: Optional[int] = None,
    job_id: Optional[int] = None,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> DistanceOut:
    return DistanceOut(**TrackingIngest(db).distance_traveled(tenant, driver_id=driver_id, job_id=job_id, start=start, end=end))


@router.get("/latest")
def latest_locations(
    driver_id: Optional[int] = None,
    job_id: Optional[int] = None,
    since: Optional[datetime] = Query(None, description="Only drivers seen at or after this time"),
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> list[TrackingPointOut]:
    """Live map: the latest breadcrumb of each driver."""
    points = TrackingIngest(db).latest_locations(tenant, driver_id=driver_id, job_id=job_id, since=since)
    return [TrackingPointOut.model_validate(p) for p in points]
