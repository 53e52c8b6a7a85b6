from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from agrisync.api.deps import get_sync_engine, get_tenant
from agrisync.config import Settings, get_settings
from agrisync.errors import BadRequest, BatchTooLarge
from agrisync.schemas.sync import PushRequest, PushResult, ResolveRequest, ResolveResult, SyncLogOut, SyncStatusOut
from agrisync.services.sync.engine import SyncEngine
from agrisync.services.tenant import TenantContext

router = APIRouter()


@router.post("/push")
def push(
    payload: PushRequest,
    engine: SyncEngine = Depends(get_sync_engine),
    tenant: TenantContext = Depends(get_tenant),
    settings: Settings = Depends(get_settings),
) -> PushResult:
    if len(payload.items) > settings.sync_push_max_items:
        raise BatchTooLarge(f"at most {settings.sync_push_max_items} items per push (got {len(payload.items)})")
    return PushResult(**engine.push(payload.items, tenant))


@router.get("/pull")
def pull(
    since: Optional[datetime] = Query(None, description="Last successful sync (ISO 8601)"),
    include: Optional[str] = Query(None, description="Comma separated: measurements,jobs,expenses,payments"),
    engine: SyncEngine = Depends(get_sync_engine),
    tenant: TenantContext = Depends(get_tenant),
) -> dict:
    try:
        kinds = engine.parse_include(include)
    except ValueError as e:
        raise BadRequest(str(e)) from e
    return engine.pull(tenant, since=since, kinds=kinds)


@router.post("/resolve/{log_id}")
def resolve(
    log_id: int,
    payload: ResolveRequest,
    engine: SyncEngine = Depends(get_sync_engine),
    tenant: TenantContext = Depends(get_tenant),
) -> ResolveResult:
    return ResolveResult(**engine.resolve_conflict(log_id, payload.resolution, tenant))


@router.get("/status")
def sync_status(
    engine: SyncEngine = Depends(get_sync_engine),
    tenant: TenantContext = Depends(get_tenant),
) -> SyncStatusOut:
    return SyncStatusOut(**engine.status(tenant))


@router.get("/conflicts")
def list_conflicts(
    engine: SyncEngine = Depends(get_sync_engine),
    tenant: TenantContext = Depends(get_tenant),
) -> list[SyncLogOut]:
    return [SyncLogOut.model_validate(entry) for entry in engine.list_conflicts(tenant)]
