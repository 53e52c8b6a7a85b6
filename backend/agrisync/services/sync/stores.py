# backend/agrisync/services/sync/stores.py
"""
Storage boundary for syncable entities.

The sync engine only talks to the SyncStore protocol. SqlAlchemyStore is the
shipped implementation; every query is scoped by an explicit organization_id.
"""
from __future__ import annotations

from datetime import datetime
from math import cos, degrees, radians
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agrisync.models.measurement import Measurement
from agrisync.schemas.commons import utcnow
from agrisync.services.geo.calculator import EARTH_RADIUS_M, GeoPoint, distance_m


class SyncStore(Protocol):
    def find_by_offline_id(self, offline_id: str, organization_id: int, *, lock: bool = False) -> Optional[Any]: ...

    def get(self, entity_id: int, organization_id: int) -> Optional[Any]: ...

    def create(self, data: Dict[str, Any]) -> Any: ...

    def update(self, entity: Any, data: Dict[str, Any]) -> Any: ...

    def find_updated_since(self, organization_id: int, since: Optional[datetime]) -> List[Any]: ...

    def count_pending(self, organization_id: int) -> int: ...


class SqlAlchemyStore:
    def __init__(self, db: Session, model):
        self.db = db
        self.model = model

    def find_by_offline_id(self, offline_id, organization_id, *, lock=False):
        stmt = (
            select(self.model)
            .where(self.model.organization_id == organization_id, self.model.offline_id == offline_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            # row lock where the backend has one (no-op on SQLite)
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def get(self, entity_id, organization_id):
        obj = self.db.get(self.model, entity_id)
        if obj is None or obj.organization_id != organization_id:
            return None
        return obj

    def create(self, data):
        obj = self.model(**data)
        self.db.add(obj)
        self.db.flush()  # id, and unique (organization_id, offline_id) check
        return obj

    def update(self, entity, data):
        for key, value in data.items():
            setattr(entity, key, value)
        # version_id_col turns this flush into a compare-and-swap
        self.db.flush()
        return entity

    def find_updated_since(self, organization_id, since):
        stmt = select(self.model).where(self.model.organization_id == organization_id)
        if since is not None:
            stmt = stmt.where(self.model.updated_at > since)
        stmt = stmt.order_by(self.model.updated_at.asc(), self.model.id.asc())
        return list(self.db.execute(stmt).scalars())

    def count_pending(self, organization_id):
        stmt = select(func.count()).select_from(self.model).where(
            self.model.organization_id == organization_id,
            self.model.sync_status == "pending",
        )
        return self.db.execute(stmt).scalar_one()


class MeasurementStore(SqlAlchemyStore):
    def __init__(self, db: Session):
        super().__init__(db, Measurement)

    def get_active(self, entity_id: int, organization_id: int) -> Optional[Measurement]:
        obj = self.get(entity_id, organization_id)
        if obj is None or obj.deleted_at is not None:
            return None
        return obj

    def find_by_organization(self, organization_id: int, status: Optional[str] = None) -> List[Measurement]:
        stmt = select(Measurement).where(
            Measurement.organization_id == organization_id,
            Measurement.deleted_at.is_(None),
        )
        if status is not None:
            stmt = stmt.where(Measurement.status == status)
        return list(self.db.execute(stmt.order_by(Measurement.id.asc())).scalars())

    def soft_delete(self, entity: Measurement) -> Measurement:
        now = utcnow()
        return self.update(entity, {"deleted_at": now, "updated_at": now})

    def find_nearby(self, organization_id: int, latitude: float, longitude: float, radius_m: float) -> List[Tuple[Measurement, float]]:
        """Measurements whose center lies within radius_m, nearest first."""
        dlat = degrees(radius_m / EARTH_RADIUS_M)
        lon_scale = max(cos(radians(latitude)), 1e-6)
        dlon = min(dlat / lon_scale, 180.0)
        stmt = select(Measurement).where(
            Measurement.organization_id == organization_id,
            Measurement.deleted_at.is_(None),
            Measurement.center_latitude.between(latitude - dlat, latitude + dlat),
        )
        origin = GeoPoint(latitude=latitude, longitude=longitude)
        hits = []
        for m in self.db.execute(stmt).scalars():
            # longitude band is checked here so it can wrap around +-180
            if abs((m.center_longitude - longitude + 180.0) % 360.0 - 180.0) > dlon:
                continue
            d = distance_m(origin, GeoPoint(latitude=m.center_latitude, longitude=m.center_longitude))
            if d <= radius_m:
                hits.append((m, d))
        hits.sort(key=lambda pair: pair[1])
        return hits
