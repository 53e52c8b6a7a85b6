from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .commons import StoredDatetime, SyncStatus, UtcDatetime

PaymentMethod = Literal["cash", "bank_transfer", "mobile_payment", "credit"]


class PaymentSyncCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: float = Field(gt=0)
    payment_method: PaymentMethod
    payment_date: StoredDatetime
    invoice_id: Optional[int] = None
    customer_id: Optional[int] = None
    reference_number: Optional[str] = Field(default=None, max_length=100)


class PaymentSyncUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Optional[float] = Field(default=None, gt=0)
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[StoredDatetime] = None
    invoice_id: Optional[int] = None
    customer_id: Optional[int] = None
    reference_number: Optional[str] = Field(default=None, max_length=100)


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: Optional[int] = None
    offline_id: Optional[str] = None
    amount: float
    payment_method: PaymentMethod
    payment_date: UtcDatetime
    invoice_id: Optional[int] = None
    customer_id: Optional[int] = None
    reference_number: Optional[str] = None
    sync_status: SyncStatus
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
