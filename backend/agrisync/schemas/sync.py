from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .commons import StoredDatetime, UtcDatetime

Resolution = Literal["use_server", "use_client"]


class SyncItem(BaseModel):
    entity_type: str
    offline_id: str = Field(min_length=1, max_length=64)
    updated_at: StoredDatetime
    data: Dict[str, Any]


class PushRequest(BaseModel):
    # items are validated one by one so a malformed item only fails itself
    items: List[Any] = Field(min_length=1)


class ItemResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    entity_type: Optional[str] = None
    offline_id: Optional[str] = None
    status: Literal["synced", "conflict", "error"]


class PushResult(BaseModel):
    synced: int = 0
    conflicts: int = 0
    errors: int = 0
    details: List[ItemResult] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    resolution: Resolution


class ResolveResult(BaseModel):
    sync_log_id: int
    status: Literal["resolved"] = "resolved"
    resolution: Resolution
    entity: Optional[Dict[str, Any]] = None


class SyncLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: Optional[int] = None
    entity_type: str
    entity_id: Optional[int] = None
    offline_id: Optional[str] = None
    action: str
    status: str
    conflict_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    resolution: Optional[str] = None
    resolved_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime


class KindStatus(BaseModel):
    pending: int


class SyncStatusOut(BaseModel):
    kinds: Dict[str, KindStatus]
    conflicts: int
