# backend/agrisync/services/sync/engine.py
"""
Offline-first sync: push (client -> server), pull (server -> client) and
manual conflict resolution, with last-write-wins on updated_at.

A push batch is one transaction. Each item runs in its own SAVEPOINT so a bad
item is rolled back and reported alone; only storage failures abort the batch.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from agrisync.errors import ErrorDetail, InfrastructureError, InvalidPolygon, NotFound, NotAConflict, details_from_pydantic
from agrisync.schemas.commons import as_aware_utc, as_naive_utc, utcnow
from agrisync.schemas.sync import SyncItem
from agrisync.services.sync.conflict_log import ConflictLog
from agrisync.services.sync.kinds import (
    COLLECTIONS,
    KIND_TABLE,
    SYNCABLE_KINDS,
    EntityKind,
    KindSpec,
    build_stores,
    kind_for,
)
from agrisync.services.tenant import TenantContext

logger = logging.getLogger(__name__)


class ItemRejected(Exception):
    """A single push item failed validation; carries the per-item error."""

    def __init__(self, message: str, details: Optional[List[ErrorDetail]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


def _rejection(exc: Exception) -> ItemRejected:
    if isinstance(exc, ValidationError):
        details = details_from_pydantic(exc.errors())
        summary = "; ".join(f"{d.field}: {d.message}" if d.field else d.message for d in details)
        return ItemRejected(f"invalid payload: {summary}", details)
    if isinstance(exc, InvalidPolygon):
        return ItemRejected(exc.message, exc.details)
    return ItemRejected(str(exc))


class SyncEngine:
    def __init__(self, db: Session, max_attempts: int = 3):
        self.db = db
        self.max_attempts = max_attempts
        self.stores = build_stores(db)
        self.log = ConflictLog(db)

    # -- push ------------------------------------------------------------

    def push(self, items: Iterable[Any], ctx: TenantContext) -> Dict[str, Any]:
        result = {"synced": 0, "conflicts": 0, "errors": 0, "details": []}
        try:
            for raw in items:
                detail = self._push_item(raw, ctx)
                if detail["status"] == "synced":
                    result["synced"] += 1
                elif detail["status"] == "conflict":
                    result["conflicts"] += 1
                else:
                    result["errors"] += 1
                result["details"].append(detail)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("sync push aborted for organization %s", ctx.organization_id)
            raise InfrastructureError("sync batch could not be stored; nothing was committed") from e

        logger.info(
            "sync push org=%s user=%s synced=%d conflicts=%d errors=%d",
            ctx.organization_id, ctx.user_id, result["synced"], result["conflicts"], result["errors"],
        )
        return result

    def _push_item(self, raw: Any, ctx: TenantContext) -> Dict[str, Any]:
        try:
            item = SyncItem.model_validate(raw)
            spec = kind_for(item.entity_type)
            spec.check_shape(item.data)
        except (ValidationError, ValueError) as e:
            return self._reject(raw, ctx, _rejection(e))

        for attempt in range(1, self.max_attempts + 1):
            try:
                with self.db.begin_nested():
                    return self._apply(spec, item, ctx)
            except (StaleDataError, IntegrityError) as e:
                # another writer committed this offline_id between lookup and write
                logger.warning(
                    "sync race on %s/%s (attempt %d/%d): %s",
                    spec.kind.value, item.offline_id, attempt, self.max_attempts, e.__class__.__name__,
                )
            except (ValidationError, InvalidPolygon) as e:
                return self._reject(raw, ctx, _rejection(e))

        return self._reject(raw, ctx, ItemRejected("concurrent writes to this offline_id; retry the item"))

    def _apply(self, spec: KindSpec, item: SyncItem, ctx: TenantContext) -> Dict[str, Any]:
        store = self.stores[spec.kind]
        ref = {"entity_type": spec.kind.value, "offline_id": item.offline_id}

        if spec.conflict_free:
            entity = store.create({
                **spec.prepare_create(item.data),
                "organization_id": ctx.organization_id,
                "user_id": ctx.user_id,
                "offline_id": item.offline_id,
                "created_at": utcnow(),
            })
            self.log.record(ctx, action="create", status="synced", entity_id=entity.id, **ref)
            return {**ref, "status": "synced", "action": "created", "entity_id": entity.id}

        existing = store.find_by_offline_id(item.offline_id, ctx.organization_id, lock=True)

        if existing is None:
            entity = store.create({
                **spec.prepare_create(item.data),
                "organization_id": ctx.organization_id,
                "user_id": ctx.user_id,
                "offline_id": item.offline_id,
                "sync_status": "synced",
                "created_at": utcnow(),
                "updated_at": item.updated_at,
            })
            self.log.record(ctx, action="create", status="synced", entity_id=entity.id, **ref)
            return {**ref, "status": "synced", "action": "created", "entity_id": entity.id}

        changes = spec.prepare_update(item.data)

        if existing.updated_at > item.updated_at:
            server_data = spec.serialize(existing)
            entry = self.log.record(
                ctx,
                action="conflict",
                status="conflict",
                entity_id=existing.id,
                conflict_data={
                    "server_data": server_data,
                    "client_data": item.data,
                    "server_updated_at": as_aware_utc(existing.updated_at).isoformat(),
                    "client_updated_at": as_aware_utc(item.updated_at).isoformat(),
                },
                **ref,
            )
            logger.warning(
                "sync conflict org=%s %s/%s server=%s client=%s",
                ctx.organization_id, spec.kind.value, item.offline_id,
                existing.updated_at.isoformat(), item.updated_at.isoformat(),
            )
            return {
                **ref,
                "status": "conflict",
                "entity_id": existing.id,
                "sync_log_id": entry.id,
                "server_data": server_data,
                "client_data": item.data,
            }

        # client newer or equal: ties go to the client
        store.update(existing, {
            **changes,
            "sync_status": "synced",
            "updated_at": item.updated_at,
        })
        self.log.record(ctx, action="update", status="synced", entity_id=existing.id, **ref)
        return {**ref, "status": "synced", "action": "updated", "entity_id": existing.id}

    def _reject(self, raw: Any, ctx: TenantContext, rejection: ItemRejected) -> Dict[str, Any]:
        raw = raw if isinstance(raw, dict) else {}
        entity_type = raw.get("entity_type")
        offline_id = raw.get("offline_id")
        entity_type = str(entity_type) if entity_type is not None else None
        offline_id = str(offline_id)[:64] if offline_id is not None else None
        self.log.record(
            ctx,
            action="reject",
            status="failed",
            entity_type=(entity_type or "unknown")[:50],
            offline_id=offline_id,
            error_message=rejection.message,
        )
        logger.warning("sync item rejected org=%s %s/%s: %s", ctx.organization_id, entity_type, offline_id, rejection.message)
        return {
            "entity_type": entity_type,
            "offline_id": offline_id,
            "status": "error",
            "message": rejection.message,
            "errors": [d.model_dump(exclude_none=True) for d in rejection.details],
        }

    # -- pull ------------------------------------------------------------

    def pull(self, ctx: TenantContext, since: Optional[datetime] = None, kinds: Optional[Iterable[EntityKind]] = None) -> Dict[str, Any]:
        """Entities changed after `since` (the client's last successful sync)."""
        sync_timestamp = utcnow()
        since = as_naive_utc(since) if since is not None else None
        kinds = list(kinds) if kinds is not None else list(SYNCABLE_KINDS)

        payload: Dict[str, Any] = {}
        for kind in kinds:
            spec = KIND_TABLE[kind]
            rows = self.stores[kind].find_updated_since(ctx.organization_id, since)
            payload[spec.collection] = [spec.serialize(row) for row in rows]
        payload["sync_timestamp"] = as_aware_utc(sync_timestamp).isoformat()
        return payload

    @staticmethod
    def parse_include(include: Optional[str]) -> List[EntityKind]:
        if not include:
            return list(SYNCABLE_KINDS)
        kinds = []
        for name in (s.strip() for s in include.split(",")):
            if not name:
                continue
            if name not in COLLECTIONS:
                raise ValueError(f"cannot pull '{name}' (expected any of: {', '.join(COLLECTIONS)})")
            if COLLECTIONS[name] not in kinds:
                kinds.append(COLLECTIONS[name])
        return kinds

    # -- conflicts -------------------------------------------------------

    def resolve_conflict(self, log_id: int, resolution: str, ctx: TenantContext) -> Dict[str, Any]:
        entry = self.log.get(log_id, ctx.organization_id)
        if entry.status != "conflict":
            raise NotAConflict(f"sync log {log_id} is '{entry.status}', not a conflict")

        spec = KIND_TABLE[EntityKind(entry.entity_type)]
        store = self.stores[spec.kind]
        entity = store.get(entry.entity_id, ctx.organization_id)
        if entity is None:
            raise NotFound(f"{spec.kind.value} {entry.entity_id} not found")

        try:
            if resolution == "use_client":
                client_data = (entry.conflict_data or {}).get("client_data") or {}
                store.update(entity, {
                    **spec.prepare_update(client_data),
                    "sync_status": "synced",
                    "updated_at": utcnow(),
                })
            # use_server: the stored row is already authoritative
            self.log.mark_resolved(entry, resolution)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("conflict %s could not be resolved", log_id)
            raise InfrastructureError("conflict resolution could not be stored") from e

        logger.info("conflict %s resolved with %s (org=%s)", log_id, resolution, ctx.organization_id)
        return {
            "sync_log_id": entry.id,
            "status": "resolved",
            "resolution": resolution,
            "entity": spec.serialize(entity),
        }

    def list_conflicts(self, ctx: TenantContext):
        return self.log.list_conflicts(ctx.organization_id)

    def status(self, ctx: TenantContext) -> Dict[str, Any]:
        return {
            "kinds": {
                KIND_TABLE[kind].collection: {"pending": self.stores[kind].count_pending(ctx.organization_id)}
                for kind in SYNCABLE_KINDS
            },
            "conflicts": self.log.pending_conflicts(ctx.organization_id),
        }
