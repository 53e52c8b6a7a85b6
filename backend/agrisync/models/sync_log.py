# backend/agrisync/models/sync_log.py
from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from .base import Base


class SyncLog(Base):
    __tablename__ = "sync_logs"
    id = Column(Integer, primary_key=True)
    organization_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)
    offline_id = Column(String(64), nullable=True, index=True)
    action = Column(String(16), nullable=False)  # create|update|conflict|reject
    status = Column(String(16), nullable=False, index=True)  # synced|conflict|resolved|failed
    # {"server_data":..., "client_data":..., "server_updated_at":..., "client_updated_at":...}
    conflict_data = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    resolution = Column(String(16), nullable=True)  # use_server|use_client
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False)
