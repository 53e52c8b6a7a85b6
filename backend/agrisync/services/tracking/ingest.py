# backend/agrisync/services/tracking/ingest.py
"""GPS breadcrumbs: insert-only, no offline_id lookup, no conflict handling."""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import and_, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agrisync.errors import InfrastructureError
from agrisync.models.tracking_point import TrackingPoint
from agrisync.schemas.commons import as_naive_utc, utcnow
from agrisync.schemas.tracking import LocationIn
from agrisync.services.geo.calculator import GeoPoint, path_length_m, round_half_up
from agrisync.services.tenant import TenantContext

logger = logging.getLogger(__name__)


class TrackingIngest:
    def __init__(self, db: Session):
        self.db = db

    def ingest_batch(
        self,
        ctx: TenantContext,
        locations: Iterable[LocationIn],
        driver_id: Optional[int] = None,
        job_id: Optional[int] = None,
        device_id: Optional[str] = None,
    ) -> int:
        now = utcnow()
        rows = [
            {
                "organization_id": ctx.organization_id,
                "user_id": ctx.user_id,
                "driver_id": driver_id,
                "job_id": job_id,
                "device_id": device_id,
                "latitude": loc.latitude,
                "longitude": loc.longitude,
                "altitude": loc.altitude,
                "accuracy": loc.accuracy,
                "speed": loc.speed,
                "heading": loc.heading,
                "recorded_at": loc.recorded_at,
                "created_at": now,
            }
            for loc in locations
        ]
        if not rows:
            return 0
        try:
            self.db.execute(insert(TrackingPoint), rows)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("tracking batch of %d points dropped", len(rows))
            raise InfrastructureError("tracking batch could not be stored") from e
        logger.info("tracking batch org=%s driver=%s job=%s count=%d", ctx.organization_id, driver_id, job_id, len(rows))
        return len(rows)

    def _trail(
        self,
        ctx: TenantContext,
        driver_id: Optional[int] = None,
        job_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TrackingPoint]:
        stmt = select(TrackingPoint).where(TrackingPoint.organization_id == ctx.organization_id)
        if driver_id is not None:
            stmt = stmt.where(TrackingPoint.driver_id == driver_id)
        if job_id is not None:
            stmt = stmt.where(TrackingPoint.job_id == job_id)
        if start is not None:
            stmt = stmt.where(TrackingPoint.recorded_at >= as_naive_utc(start))
        if end is not None:
            stmt = stmt.where(TrackingPoint.recorded_at <= as_naive_utc(end))
        stmt = stmt.order_by(TrackingPoint.recorded_at.asc(), TrackingPoint.id.asc())
        return list(self.db.execute(stmt).scalars())

    def job_history(self, ctx: TenantContext, job_id: int) -> List[TrackingPoint]:
        return self._trail(ctx, job_id=job_id)

    def distance_traveled(
        self,
        ctx: TenantContext,
        driver_id: Optional[int] = None,
        job_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> dict:
        trail = self._trail(ctx, driver_id=driver_id, job_id=job_id, start=start, end=end)
        meters = path_length_m([GeoPoint(latitude=p.latitude, longitude=p.longitude) for p in trail])
        return {
            "driver_id": driver_id,
            "job_id": job_id,
            "start": start,
            "end": end,
            "point_count": len(trail),
            "distance_meters": round_half_up(meters, 2),
            "distance_km": round_half_up(meters / 1000, 2),
        }

    def latest_locations(
        self,
        ctx: TenantContext,
        driver_id: Optional[int] = None,
        job_id: Optional[int] = None,
        since: Optional[datetime] = None,
    ) -> List[TrackingPoint]:
        """Most recent breadcrumb of each driver, optionally only those seen after `since`."""
        latest = select(
            TrackingPoint.driver_id,
            func.max(TrackingPoint.recorded_at).label("max_recorded_at"),
        ).where(
            TrackingPoint.organization_id == ctx.organization_id,
            TrackingPoint.driver_id.is_not(None),
        )
        if driver_id is not None:
            latest = latest.where(TrackingPoint.driver_id == driver_id)
        if job_id is not None:
            latest = latest.where(TrackingPoint.job_id == job_id)
        if since is not None:
            latest = latest.where(TrackingPoint.recorded_at >= as_naive_utc(since))
        latest = latest.group_by(TrackingPoint.driver_id).subquery()

        stmt = (
            select(TrackingPoint)
            .join(
                latest,
                and_(
                    TrackingPoint.driver_id == latest.c.driver_id,
                    TrackingPoint.recorded_at == latest.c.max_recorded_at,
                ),
            )
            .where(TrackingPoint.organization_id == ctx.organization_id)
            .order_by(TrackingPoint.driver_id.asc(), TrackingPoint.id.desc())
        )
        if job_id is not None:
            stmt = stmt.where(TrackingPoint.job_id == job_id)

        points: List[TrackingPoint] = []
        for p in self.db.execute(stmt).scalars():
            # two fixes with the same timestamp: keep the last inserted
            if points and points[-1].driver_id == p.driver_id:
                continue
            points.append(p)
        return points
