import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .commons import SyncStatus, UtcDatetime

ExpenseCategory = Literal["fuel", "spare_parts", "maintenance", "labor", "other"]


class ExpenseSyncCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: ExpenseCategory
    amount: float = Field(ge=0)
    expense_date: dt.date
    description: str = ""
    job_id: Optional[int] = None
    driver_id: Optional[int] = None
    machine_id: Optional[int] = None


class ExpenseSyncUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: Optional[ExpenseCategory] = None
    amount: Optional[float] = Field(default=None, ge=0)
    expense_date: Optional[dt.date] = None
    description: Optional[str] = None
    job_id: Optional[int] = None
    driver_id: Optional[int] = None
    machine_id: Optional[int] = None


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: Optional[int] = None
    offline_id: Optional[str] = None
    category: ExpenseCategory
    amount: float
    expense_date: dt.date
    description: Optional[str] = ""
    job_id: Optional[int] = None
    driver_id: Optional[int] = None
    machine_id: Optional[int] = None
    sync_status: SyncStatus
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
