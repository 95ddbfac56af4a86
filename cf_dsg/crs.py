"""
Coordinate metadata for geometry node and nominal coordinates.

Given a spatial reference, decide how the X/Y variables are named and which
CF attributes (``units``, ``standard_name``) they carry, and which attributes
go on the grid mapping variable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

GRID_MAPPING_NAME = "grid_mapping"

_GEOGRAPHIC = {
    "EPSG:4326",
    "epsg:4326",
    4326,
    "OGC:CRS84",
    "WGS84",
}


@dataclass
class CoordinateMetadata:
    """Names and attributes for the X/Y coordinate variables of one reference."""

    grid_mapping_name: str | None
    x_name: str = "crd_x"
    y_name: str = "crd_y"
    x_attrs: dict[str, str] = field(default_factory=dict)
    y_attrs: dict[str, str] = field(default_factory=dict)
    grid_mapping_attrs: dict[str, Any] = field(default_factory=dict)

    @property
    def is_default(self) -> bool:
        return not self.grid_mapping_attrs


def coordinate_metadata(crs=None) -> CoordinateMetadata:
    """
    Look up coordinate metadata for a spatial reference.

    Parameters
    ----------
    crs : None, str, int or mapping, optional
        ``None`` means no reference at all: generic ``crd_x``/``crd_y`` names
        and no grid mapping variable. A CF grid mapping name (``"latitude_longitude"``,
        ``"rotated_latitude_longitude"``, ...) selects the matching attributes.
        A mapping is taken as the attributes of a CF grid mapping variable.
        Anything else (EPSG codes, WKT, PROJ strings) is handed to
        ``pyproj.CRS.from_user_input`` and translated with ``CRS.to_cf``.

    Returns
    -------
    CoordinateMetadata
    """
    if crs is None:
        return CoordinateMetadata(None)

    if isinstance(crs, dict):
        attrs = dict(crs)
        if "grid_mapping_name" not in attrs:
            raise ValueError(
                f"Grid mapping attributes must include 'grid_mapping_name'. Got {sorted(attrs)!r}"
            )
        return _metadata_for(attrs["grid_mapping_name"], attrs)

    if isinstance(crs, str) and crs in (
        "latitude_longitude",
        "rotated_latitude_longitude",
    ):
        return _metadata_for(crs, {"grid_mapping_name": crs})

    if isinstance(crs, (str, int)) and crs in _GEOGRAPHIC:
        attrs = {
            "grid_mapping_name": "latitude_longitude",
            "semi_major_axis": 6378137.0,
            "inverse_flattening": 298.257223563,
            "longitude_of_prime_meridian": 0.0,
        }
        return _metadata_for("latitude_longitude", attrs)

    return _metadata_for_pyproj(crs)


def _metadata_for(
    grid_mapping_name: str | None, attrs: dict, units: str | None = None
) -> CoordinateMetadata:
    meta = CoordinateMetadata(grid_mapping_name, grid_mapping_attrs=attrs)
    # Special treatment of selected grid mappings
    if grid_mapping_name == "latitude_longitude":
        meta.x_name, meta.y_name = "lon", "lat"
        meta.x_attrs = dict(units="degrees_east", standard_name="longitude")
        meta.y_attrs = dict(units="degrees_north", standard_name="latitude")
    elif grid_mapping_name == "rotated_latitude_longitude":
        meta.x_name, meta.y_name = "rlon", "rlat"
        meta.x_attrs = dict(units="degrees", standard_name="grid_longitude")
        meta.y_attrs = dict(units="degrees", standard_name="grid_latitude")
    elif grid_mapping_name is not None:
        meta.x_attrs = dict(standard_name="projection_x_coordinate")
        meta.y_attrs = dict(standard_name="projection_y_coordinate")
        if units:
            meta.x_attrs["units"] = meta.y_attrs["units"] = units
    if attrs:
        meta.x_attrs["grid_mapping"] = GRID_MAPPING_NAME
        meta.y_attrs["grid_mapping"] = GRID_MAPPING_NAME
    return meta


def _metadata_for_pyproj(crs) -> CoordinateMetadata:
    try:
        from pyproj import CRS
    except ImportError as e:
        raise ValueError(
            f"Looking up coordinate metadata for {crs!r} requires pyproj."
        ) from e

    proj_crs = CRS.from_user_input(crs)
    attrs = proj_crs.to_cf()
    units = None
    if proj_crs.is_projected and proj_crs.axis_info:
        if proj_crs.axis_info[0].unit_name in ("metre", "meter"):
            units = "m"
    return _metadata_for(attrs.get("grid_mapping_name"), attrs, units)
