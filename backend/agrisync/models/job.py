# backend/agrisync/models/job.py
from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint
from .base import Base, SyncableMixin


class Job(SyncableMixin, Base):
    __tablename__ = "jobs"
    __table_args__ = (UniqueConstraint("organization_id", "offline_id", name="uq_jobs_org_offline"),)

    id = Column(Integer, primary_key=True)
    # customers/drivers/machines live in other services; plain ids here
    customer_id = Column(Integer, nullable=False)
    measurement_id = Column(Integer, nullable=True)
    driver_id = Column(Integer, nullable=True)
    machine_id = Column(Integer, nullable=True)
    status = Column(String(16), nullable=False, default="pending")
    scheduled_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    notes = Column(Text, default="")

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
