# backend/agrisync/api/deps.py
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from agrisync.config import Settings, get_settings
from agrisync.db import get_db
from agrisync.services.sync.engine import SyncEngine
from agrisync.services.tenant import TenantContext


def get_tenant(
    x_organization_id: int = Header(..., description="Organization resolved by the auth gateway"),
    x_user_id: Optional[int] = Header(None, description="Authenticated user"),
) -> TenantContext:
    return TenantContext(organization_id=x_organization_id, user_id=x_user_id)


def get_sync_engine(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SyncEngine:
    return SyncEngine(db, max_attempts=settings.sync_lock_retries)
