# backend/agrisync/models/measurement.py
from sqlalchemy import Column, DateTime, Float, Integer, JSON, String, Text, UniqueConstraint
from .base import Base, SyncableMixin


class Measurement(SyncableMixin, Base):
    __tablename__ = "measurements"
    __table_args__ = (UniqueConstraint("organization_id", "offline_id", name="uq_measurements_org_offline"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    notes = Column(Text, default="")
    status = Column(String(16), nullable=False, default="confirmed")  # draft|confirmed|archived

    polygon = Column(JSON, nullable=False)  # [{"latitude":..,"longitude":..,...}, ...] EPSG:4326
    geometry = Column(Text, nullable=False)  # GeoJSON string (closed Polygon, lon/lat order)
    point_count = Column(Integer, nullable=False)

    # derived from polygon, always written together
    area_square_meters = Column(Float, nullable=False)
    area_acres = Column(Float, nullable=False)
    area_hectares = Column(Float, nullable=False)
    perimeter_meters = Column(Float, nullable=False)
    center_latitude = Column(Float, nullable=False)
    center_longitude = Column(Float, nullable=False)

    deleted_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
