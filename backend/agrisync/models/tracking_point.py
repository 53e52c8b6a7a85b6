# backend/agrisync/models/tracking_point.py
from sqlalchemy import Column, DateTime, Float, Index, Integer, String
from .base import Base


class TrackingPoint(Base):
    __tablename__ = "tracking_points"
    __table_args__ = (
        Index("ix_tracking_points_driver_recorded", "driver_id", "recorded_at"),
        Index("ix_tracking_points_job_recorded", "job_id", "recorded_at"),
    )

    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    driver_id = Column(Integer, nullable=True)
    job_id = Column(Integer, nullable=True)
    offline_id = Column(String(64), nullable=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    altitude = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    recorded_at = Column(DateTime, nullable=False)
    device_id = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False)
