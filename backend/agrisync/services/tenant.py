# backend/agrisync/services/tenant.py
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TenantContext:
    """Identity handed over by the auth layer; passed explicitly to every call."""

    organization_id: int
    user_id: Optional[int] = None
