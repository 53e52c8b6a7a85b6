from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .commons import StoredDatetime, SyncStatus, UtcDatetime

JobStatus = Literal["pending", "assigned", "in_progress", "completed", "billed", "paid"]


class JobSyncCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    customer_id: int
    measurement_id: Optional[int] = None
    driver_id: Optional[int] = None
    machine_id: Optional[int] = None
    status: JobStatus = "pending"
    scheduled_at: Optional[StoredDatetime] = None
    started_at: Optional[StoredDatetime] = None
    completed_at: Optional[StoredDatetime] = None
    notes: str = Field(default="", max_length=5000)


class JobSyncUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    customer_id: Optional[int] = None
    measurement_id: Optional[int] = None
    driver_id: Optional[int] = None
    machine_id: Optional[int] = None
    status: Optional[JobStatus] = None
    scheduled_at: Optional[StoredDatetime] = None
    started_at: Optional[StoredDatetime] = None
    completed_at: Optional[StoredDatetime] = None
    notes: Optional[str] = Field(default=None, max_length=5000)


class JobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: Optional[int] = None
    offline_id: Optional[str] = None
    customer_id: int
    measurement_id: Optional[int] = None
    driver_id: Optional[int] = None
    machine_id: Optional[int] = None
    status: JobStatus
    scheduled_at: Optional[UtcDatetime] = None
    started_at: Optional[UtcDatetime] = None
    completed_at: Optional[UtcDatetime] = None
    notes: Optional[str] = ""
    sync_status: SyncStatus
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
