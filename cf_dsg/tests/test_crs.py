import pytest

from .. import crs as crs_module
from ..crs import GRID_MAPPING_NAME, coordinate_metadata
from . import requires_pyproj


def test_no_crs():
    meta = coordinate_metadata(None)
    assert meta.is_default
    assert (meta.x_name, meta.y_name) == ("crd_x", "crd_y")
    assert meta.x_attrs == {}


@pytest.mark.parametrize("crs", ["EPSG:4326", 4326, "WGS84", "latitude_longitude"])
def test_geographic(crs):
    meta = coordinate_metadata(crs)
    assert not meta.is_default
    assert meta.grid_mapping_name == "latitude_longitude"
    assert (meta.x_name, meta.y_name) == ("lon", "lat")
    assert meta.x_attrs == {
        "units": "degrees_east",
        "standard_name": "longitude",
        "grid_mapping": GRID_MAPPING_NAME,
    }
    assert meta.y_attrs["standard_name"] == "latitude"


def test_rotated():
    meta = coordinate_metadata(
        {
            "grid_mapping_name": "rotated_latitude_longitude",
            "grid_north_pole_latitude": 39.25,
            "grid_north_pole_longitude": -162.0,
        }
    )
    assert (meta.x_name, meta.y_name) == ("rlon", "rlat")
    assert meta.x_attrs["standard_name"] == "grid_longitude"
    assert meta.grid_mapping_attrs["grid_north_pole_latitude"] == 39.25


def test_mapping_without_name():
    with pytest.raises(ValueError, match="must include 'grid_mapping_name'"):
        coordinate_metadata({"semi_major_axis": 6378137.0})


@requires_pyproj
def test_projected():
    meta = coordinate_metadata("EPSG:5070")
    assert meta.grid_mapping_name == "albers_conical_equal_area"
    assert (meta.x_name, meta.y_name) == ("crd_x", "crd_y")
    assert meta.x_attrs["standard_name"] == "projection_x_coordinate"
    assert meta.x_attrs["units"] == "m"
    assert "crs_wkt" in meta.grid_mapping_attrs


def test_unhashable_goes_to_pyproj(monkeypatch):
    seen = []
    monkeypatch.setattr(crs_module, "_metadata_for_pyproj", lambda value: seen.append(value))
    coordinate_metadata(["EPSG", "4326"])
    assert seen == [["EPSG", "4326"]]
