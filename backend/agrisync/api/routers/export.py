# backend/agrisync/api/routers/export.py
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pyproj.exceptions import CRSError
from sqlalchemy.orm import Session

from agrisync.api.deps import get_tenant
from agrisync.db import get_db
from agrisync.errors import BadRequest, NotFound
from agrisync.schemas.commons import MeasurementStatus
from agrisync.services.export.shapefile import export_measurements
from agrisync.services.sync.stores import MeasurementStore
from agrisync.services.tenant import TenantContext

router = APIRouter()


@router.post("/shapefile")
def make_shp(
    target_epsg: int = Query(4326, description="EPSG code of the output projection"),
    encoding: str = "UTF-8",
    status: Optional[MeasurementStatus] = None,
    db: Session = Depends(get_db),
    tenant: TenantContext = Depends(get_tenant),
):
    rows = MeasurementStore(db).find_by_organization(tenant.organization_id, status=status)
    if not rows:
        raise NotFound("no measurements to export")

    # build the zip in a temp dir and return it from memory (nothing left on the server)
    with tempfile.TemporaryDirectory() as tmpdir:
        out = Path(tmpdir) / f"measurements_{tenant.organization_id}.zip"
        try:
            export_measurements(rows, out, target_epsg, encoding)
        except CRSError as e:
            raise BadRequest(f"unknown EPSG code {target_epsg}") from e
        data = out.read_bytes()
    filename = out.name
    headers = {
        "Content-Disposition": f"attachment; filename=\"{filename}\"",
    }
    return Response(content=data, media_type="application/zip", headers=headers)
