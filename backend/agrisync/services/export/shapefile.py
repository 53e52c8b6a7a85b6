# backend/agrisync/services/export/shapefile.py
import shutil
import json
import shapefile  # pyshp
from pyproj import CRS, Transformer
from shapely.geometry import shape
from pathlib import Path
from typing import Iterable, Tuple

from agrisync.models.measurement import Measurement

# target_epsg: e.g. 32736 (WGS 84 / UTM zone 36S) for metric GIS work

# DBF field names are limited to 10 characters
MEASUREMENT_FIELDS: Tuple[Tuple[str, str, int, int], ...] = (
    ("meas_id", "N", 18, 0),
    ("name", "C", 80, 0),
    ("status", "C", 10, 0),
    ("area_m2", "N", 18, 2),
    ("acres", "N", 16, 4),
    ("hectares", "N", 16, 4),
    ("perim_m", "N", 18, 2),
    ("offline", "C", 64, 0),
    ("updated", "C", 25, 0),
)


def export_measurements(
    measurements: Iterable[Measurement],
    out_zip: Path,
    target_epsg: int,
    encoding: str = "UTF-8",
) -> int:
    """
    Write measurement polygons to <out_zip>/measurements.shp (+ .dbf/.shx/.prj)
    reprojected from EPSG:4326 and zip the result. Returns the polygon count.
    """
    out_dir = out_zip.parent / (out_zip.stem)
    out_dir.mkdir(parents=True, exist_ok=True)

    src_crs = CRS.from_epsg(4326)
    dst_crs = CRS.from_epsg(target_epsg)
    tf = Transformer.from_crs(src_crs, dst_crs, always_xy=True)

    path_base = out_dir / "measurements"
    w = shapefile.Writer(str(path_base), shapeType=shapefile.POLYGON, encoding=encoding)
    for f in MEASUREMENT_FIELDS:
        w.field(*f)

    count = 0
    for m in measurements:
        poly = shape(json.loads(m.geometry))  # Polygon, lon/lat
        # exterior ring only; field polygons have no holes
        coords = [tf.transform(x, y) for x, y in poly.exterior.coords]
        w.poly([coords])
        w.record(
            m.id,
            (m.name or "")[:80],
            m.status,
            m.area_square_meters,
            m.area_acres,
            m.area_hectares,
            m.perimeter_meters,
            m.offline_id or "",
            m.updated_at.isoformat()[:25] if m.updated_at else "",
        )
        count += 1
    w.close()
    path_base.with_suffix(".prj").write_text(dst_crs.to_wkt())

    shutil.make_archive(str(out_dir), "zip", root_dir=out_dir)
    Path(str(out_dir) + ".zip").replace(out_zip)
    return count
