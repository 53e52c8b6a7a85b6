# backend/agrisync/services/sync/kinds.py
"""
The closed set of entity kinds a mobile client can push, and what each needs.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel
from sqlalchemy.orm import Session

from agrisync.models.expense import Expense
from agrisync.models.job import Job
from agrisync.models.measurement import Measurement
from agrisync.models.payment import Payment
from agrisync.models.tracking_point import TrackingPoint
from agrisync.schemas.expense import ExpenseOut, ExpenseSyncCreate, ExpenseSyncUpdate
from agrisync.schemas.job import JobOut, JobSyncCreate, JobSyncUpdate
from agrisync.schemas.measurement import MeasurementOut, MeasurementSyncCreate, MeasurementSyncUpdate
from agrisync.schemas.payment import PaymentOut, PaymentSyncCreate, PaymentSyncUpdate
from agrisync.schemas.tracking import TrackingPointOut, TrackingPointSyncCreate
from agrisync.services.geo import calculator
from agrisync.services.sync.stores import MeasurementStore, SqlAlchemyStore, SyncStore


class EntityKind(str, Enum):
    MEASUREMENT = "measurement"
    JOB = "job"
    EXPENSE = "expense"
    PAYMENT = "payment"
    TRACKING_POINT = "tracking_point"


def derive_measurement(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace client-side geometry with values computed from the polygon."""
    polygon = data.get("polygon")
    if polygon is None:
        return data
    metrics = calculator.compute(polygon)
    return {
        **data,
        **metrics.as_fields(),
        "geometry": json.dumps(calculator.to_geojson(polygon)),
    }


def _no_derive(data: Dict[str, Any]) -> Dict[str, Any]:
    return data


@dataclass(frozen=True)
class KindSpec:
    kind: EntityKind
    model: type
    create_schema: Type[BaseModel]
    update_schema: Optional[Type[BaseModel]]
    out_schema: Type[BaseModel]
    collection: str  # key used by pull / status
    derive: Callable[[Dict[str, Any]], Dict[str, Any]] = _no_derive
    # breadcrumbs have no server-side counterpart to conflict with
    conflict_free: bool = False

    def check_shape(self, data: Dict[str, Any]) -> None:
        """Validate the payload before any lookup; partial payloads pass."""
        (self.update_schema or self.create_schema).model_validate(data)

    def prepare_create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        fields = self.create_schema.model_validate(data).model_dump()
        return self.derive(fields)

    def prepare_update(self, data: Dict[str, Any]) -> Dict[str, Any]:
        fields = self.update_schema.model_validate(data).model_dump(exclude_unset=True)
        columns = self.model.__table__.c
        # an explicit null must not blank a NOT NULL column
        fields = {k: v for k, v in fields.items() if v is not None or columns[k].nullable}
        return self.derive(fields)

    def serialize(self, entity: Any) -> Dict[str, Any]:
        return self.out_schema.model_validate(entity).model_dump(mode="json")


KIND_TABLE: Dict[EntityKind, KindSpec] = {
    EntityKind.MEASUREMENT: KindSpec(
        kind=EntityKind.MEASUREMENT,
        model=Measurement,
        create_schema=MeasurementSyncCreate,
        update_schema=MeasurementSyncUpdate,
        out_schema=MeasurementOut,
        collection="measurements",
        derive=derive_measurement,
    ),
    EntityKind.JOB: KindSpec(
        kind=EntityKind.JOB,
        model=Job,
        create_schema=JobSyncCreate,
        update_schema=JobSyncUpdate,
        out_schema=JobOut,
        collection="jobs",
    ),
    EntityKind.EXPENSE: KindSpec(
        kind=EntityKind.EXPENSE,
        model=Expense,
        create_schema=ExpenseSyncCreate,
        update_schema=ExpenseSyncUpdate,
        out_schema=ExpenseOut,
        collection="expenses",
    ),
    EntityKind.PAYMENT: KindSpec(
        kind=EntityKind.PAYMENT,
        model=Payment,
        create_schema=PaymentSyncCreate,
        update_schema=PaymentSyncUpdate,
        out_schema=PaymentOut,
        collection="payments",
    ),
    EntityKind.TRACKING_POINT: KindSpec(
        kind=EntityKind.TRACKING_POINT,
        model=TrackingPoint,
        create_schema=TrackingPointSyncCreate,
        update_schema=None,
        out_schema=TrackingPointOut,
        collection="tracking_points",
        conflict_free=True,
    ),
}

# kinds that take part in last-write-wins and can be pulled
SYNCABLE_KINDS = tuple(k for k, spec in KIND_TABLE.items() if not spec.conflict_free)
COLLECTIONS: Dict[str, EntityKind] = {KIND_TABLE[k].collection: k for k in SYNCABLE_KINDS}


def kind_for(entity_type: str) -> KindSpec:
    try:
        return KIND_TABLE[EntityKind(entity_type)]
    except ValueError:
        allowed = ", ".join(k.value for k in EntityKind)
        raise ValueError(f"unknown entity_type '{entity_type}' (expected one of: {allowed})") from None


def build_stores(db: Session) -> Dict[EntityKind, SyncStore]:
    stores: Dict[EntityKind, SyncStore] = {}
    for kind, spec in KIND_TABLE.items():
        if kind is EntityKind.MEASUREMENT:
            stores[kind] = MeasurementStore(db)
        else:
            stores[kind] = SqlAlchemyStore(db, spec.model)
    return stores
