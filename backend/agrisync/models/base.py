from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SyncableMixin:
    """Columns shared by every entity that takes part in offline sync."""

    organization_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    offline_id = Column(String(64), nullable=True)
    sync_status = Column(String(16), nullable=False, default="synced")  # synced|pending|conflict
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)
