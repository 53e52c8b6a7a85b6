# backend/agrisync/services/sync/conflict_log.py
"""Append-only audit trail of sync decisions (created, updated, conflict, rejected)."""
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agrisync.errors import NotFound
from agrisync.models.sync_log import SyncLog
from agrisync.schemas.commons import utcnow
from agrisync.services.tenant import TenantContext


class ConflictLog:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        ctx: TenantContext,
        *,
        action: str,
        status: str,
        entity_type: str,
        offline_id: Optional[str],
        entity_id: Optional[int] = None,
        conflict_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> SyncLog:
        entry = SyncLog(
            organization_id=ctx.organization_id,
            user_id=ctx.user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            offline_id=offline_id,
            action=action,
            status=status,
            conflict_data=conflict_data,
            error_message=error_message,
            created_at=utcnow(),
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get(self, log_id: int, organization_id: int) -> SyncLog:
        entry = self.db.get(SyncLog, log_id)
        if entry is None or entry.organization_id != organization_id:
            raise NotFound(f"sync log {log_id} not found")
        return entry

    def mark_resolved(self, entry: SyncLog, resolution: str) -> SyncLog:
        # the only mutation an entry ever sees
        entry.status = "resolved"
        entry.resolution = resolution
        entry.resolved_at = utcnow()
        self.db.flush()
        return entry

    def pending_conflicts(self, organization_id: int) -> int:
        stmt = select(func.count()).select_from(SyncLog).where(
            SyncLog.organization_id == organization_id,
            SyncLog.status == "conflict",
        )
        return self.db.execute(stmt).scalar_one()

    def list_conflicts(self, organization_id: int) -> List[SyncLog]:
        stmt = (
            select(SyncLog)
            .where(SyncLog.organization_id == organization_id, SyncLog.status == "conflict")
            .order_by(SyncLog.created_at.asc(), SyncLog.id.asc())
        )
        return list(self.db.execute(stmt).scalars())
