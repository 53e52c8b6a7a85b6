import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from agrisync.api.deps import get_tenant
from agrisync.db import get_db
from agrisync.errors import AlreadyExists, ConcurrentUpdate, InfrastructureError, NotFound
from agrisync.schemas.commons import MeasurementStatus, utcnow
from agrisync.schemas.measurement import GeoCalcIn, GeoCalcOut, MeasurementIn, MeasurementOut, MeasurementReplace
from agrisync.services.geo import calculator
from agrisync.services.sync.kinds import derive_measurement
from agrisync.services.sync.stores import MeasurementStore
from agrisync.services.tenant import TenantContext

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_or_404(store: MeasurementStore, measurement_id: int, tenant: TenantContext):
    m = store.get_active(measurement_id, tenant.organization_id)
    if m is None:
        raise NotFound(f"measurement {measurement_id} not found")
    return m


@router.post("/calculate")
def calculate(payload: GeoCalcIn) -> GeoCalcOut:
    """Preview area/perimeter/center without saving anything."""
    points = calculator.as_points(payload.polygon)
    metrics = calculator.compute(points)
    return GeoCalcOut(
        area_square_meters=metrics.area_square_meters,
        area_acres=metrics.area_acres,
        area_hectares=metrics.area_hectares,
        area_square_feet=calculator.convert_square_meters(metrics.area_square_meters)["square_feet"],
        perimeter_meters=metrics.perimeter_meters,
        center={"latitude": metrics.center.latitude, "longitude": metrics.center.longitude},
        point_count=metrics.point_count,
        is_closed=calculator.is_closed(points),
        geometry=calculator.to_geojson(points),
    )


@router.get("/features")
def list_features(
    status: Optional[MeasurementStatus] = None,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
):
    """Measurements of the organization as a GeoJSON FeatureCollection."""
    feats: list[dict] = []
    for m in MeasurementStore(db).find_by_organization(tenant.organization_id, status=status):
        feats.append({
            "type": "Feature",
            "geometry": json.loads(m.geometry),
            "properties": {
                "measurement_id": m.id,
                "offline_id": m.offline_id,
                "name": m.name,
                "status": m.status,
                "area_square_meters": m.area_square_meters,
                "area_acres": m.area_acres,
                "area_hectares": m.area_hectares,
                "perimeter_meters": m.perimeter_meters,
                "center": [m.center_longitude, m.center_latitude],
                "updated_at": m.updated_at.isoformat() if m.updated_at else None,
            },
        })
    return {"type": "FeatureCollection", "features": feats}


@router.get("/nearby")
def nearby(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: int = Query(1000, ge=100, le=50000, description="meters"),
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
):
    hits = MeasurementStore(db).find_nearby(tenant.organization_id, latitude, longitude, radius)
    return [
        {**MeasurementOut.model_validate(m).model_dump(mode="json"), "distance_meters": calculator.round_half_up(d, 2)}
        for m, d in hits
    ]


@router.get("")
@router.get("/")
def list_measurements(
    status: Optional[MeasurementStatus] = None,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> list[MeasurementOut]:
    rows = MeasurementStore(db).find_by_organization(tenant.organization_id, status=status)
    return [MeasurementOut.model_validate(m) for m in rows]


@router.post("", status_code=201)
@router.post("/", status_code=201)
def create_measurement(
    payload: MeasurementIn,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> MeasurementOut:
    store = MeasurementStore(db)
    if payload.offline_id and store.find_by_offline_id(payload.offline_id, tenant.organization_id):
        raise AlreadyExists(f"offline_id '{payload.offline_id}' already exists; use /sync/push to update it")

    data = derive_measurement(payload.model_dump(exclude={"offline_id"}))
    now = utcnow()
    try:
        m = store.create({
            **data,
            "organization_id": tenant.organization_id,
            "user_id": tenant.user_id,
            "offline_id": payload.offline_id,
            "sync_status": "synced",
            "created_at": now,
            "updated_at": now,
        })
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise AlreadyExists(f"offline_id '{payload.offline_id}' already exists") from e
    db.refresh(m)
    return MeasurementOut.model_validate(m)


@router.get("/{measurement_id}")
def get_measurement(
    measurement_id: int,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> MeasurementOut:
    return MeasurementOut.model_validate(_get_or_404(MeasurementStore(db), measurement_id, tenant))


@router.put("/{measurement_id}")
def replace_polygon(
    measurement_id: int,
    payload: MeasurementReplace,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
) -> MeasurementOut:
    store = MeasurementStore(db)
    m = _get_or_404(store, measurement_id, tenant)
    data = derive_measurement(payload.model_dump(exclude_none=True))
    try:
        store.update(m, {**data, "sync_status": "synced", "updated_at": utcnow()})
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentUpdate(f"measurement {measurement_id} was changed by another writer; reload and retry") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("measurement %s could not be replaced", measurement_id)
        raise InfrastructureError("measurement could not be stored") from e
    db.refresh(m)
    return MeasurementOut.model_validate(m)


@router.delete("/{measurement_id}")
def delete_measurement(
    measurement_id: int,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
):
    store = MeasurementStore(db)
    m = _get_or_404(store, measurement_id, tenant)
    # soft delete: jobs may still reference this measurement
    try:
        store.soft_delete(m)
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentUpdate(f"measurement {measurement_id} was changed by another writer; reload and retry") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("measurement %s could not be deleted", measurement_id)
        raise InfrastructureError("measurement could not be deleted") from e
    return {"ok": True}
