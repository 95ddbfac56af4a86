import numpy as np
import pytest
import xarray as xr

import cf_dsg

from ..errors import (
    GeometryIndexInconsistent,
    InvalidGeometryEncoding,
    MixedGeometryKind,
    OrphanInteriorRing,
)
from ..geometry import (
    GeometryContainer,
    Line,
    Point,
    Polygon,
    cf_to_geometries,
    decode_geometries,
    encode_geometries,
    geometries_to_cf,
)
from . import requires_shapely


@pytest.fixture
def shapely_polygons() -> xr.DataArray:
    from shapely.geometry import MultiPolygon
    from shapely.geometry import Polygon as ShapelyPolygon

    # empty/fill workaround to avoid numpy deprecation(warning) due to the array interface of shapely geometries.
    geoms = np.empty(2, dtype=object)
    geoms[:] = [
        MultiPolygon(
            [
                (
                    ([20, 0], [10, 15], [0, 0]),
                    [
                        ([5, 5], [10, 10], [15, 5]),
                    ],
                ),
                (([20, 20], [10, 35], [0, 20]),),
            ]
        ),
        ShapelyPolygon(([50, 0], [40, 15], [30, 0])),
    ]
    return xr.DataArray(geoms, dims=("index",), name="geometry")


@pytest.fixture
def shapely_lines() -> xr.DataArray:
    from shapely.geometry import LineString, MultiLineString

    # empty/fill workaround to avoid numpy deprecation(warning) due to the array interface of shapely geometries.
    geoms = np.empty(3, dtype=object)
    geoms[:] = [
        MultiLineString([[[0, 0], [1, 2]], [[4, 4], [5, 6]]]),
        LineString([[0, 0], [1, 0], [1, 1]]),
        LineString([[1.0, 1.0], [2.0, 2.0], [1.7, 9.5]]),
    ]
    return xr.DataArray(geoms, dims=("index",), name="geometry")


def test_encode_polygon_with_hole(polygon_with_hole):
    container = encode_geometries([polygon_with_hole])

    assert container.geometry_type == "polygon"
    np.testing.assert_array_equal(container.node_count, [8])
    np.testing.assert_array_equal(container.part_node_count, [4, 4])
    np.testing.assert_array_equal(container.interior_ring, [0, 1])
    np.testing.assert_array_equal(container.x, [0, 0, 10, 0, 2, 3, 5, 2])
    np.testing.assert_array_equal(container.y, [0, 10, 10, 0, 2, 5, 2, 2])


def test_decode_polygon_with_hole(polygon_with_hole):
    (decoded,) = decode_geometries(encode_geometries([polygon_with_hole]))

    assert isinstance(decoded, Polygon)
    assert len(decoded.parts) == 1
    (part,) = decoded.parts
    assert len(part.rings) == 2
    assert part.exterior.nodes == ((0, 0), (0, 10), (10, 10), (0, 0))
    assert part.interiors[0].nodes == ((2, 2), (3, 5), (5, 2), (2, 2))
    assert decoded == polygon_with_hole


def test_encode_points():
    container = encode_geometries([Point.from_xy(1, 2), Point.from_xy(3, 4)])
    assert container.node_count is None
    assert container.part_node_count is None
    assert container.interior_ring is None
    assert container.n_geometries == 2

    container = encode_geometries(
        [Point.from_nodes([(1, 2), (2, 3)]), Point.from_xy(3, 4)]
    )
    np.testing.assert_array_equal(container.node_count, [2, 1])
    assert container.part_node_count is None
    assert decode_geometries(container) == [
        Point.from_nodes([(1, 2), (2, 3)]),
        Point.from_xy(3, 4),
    ]


def test_encode_lines():
    single = [Line.from_parts([[(0, 0), (1, 0), (1, 1)]])]
    container = encode_geometries(single)
    np.testing.assert_array_equal(container.node_count, [3])
    assert container.part_node_count is None
    assert container.interior_ring is None

    multi = single + [Line.from_parts([[(0, 0), (1, 2)], [(4, 4), (5, 6)]])]
    container = encode_geometries(multi)
    np.testing.assert_array_equal(container.node_count, [3, 4])
    np.testing.assert_array_equal(container.part_node_count, [3, 2, 2])
    assert container.interior_ring is None
    assert decode_geometries(container) == multi


def test_encode_multipolygon():
    geoms = [
        Polygon.from_parts(
            [
                [[(20, 0), (10, 15), (0, 0), (20, 0)], [(5, 5), (10, 10), (15, 5), (5, 5)]],
                [[(20, 20), (10, 35), (0, 20), (20, 20)]],
            ]
        ),
        Polygon.from_rings([(50, 0), (40, 15), (30, 0), (50, 0)]),
    ]
    container = encode_geometries(geoms)
    np.testing.assert_array_equal(container.node_count, [12, 4])
    np.testing.assert_array_equal(container.part_node_count, [4, 4, 4, 4])
    np.testing.assert_array_equal(container.interior_ring, [0, 1, 0, 0])
    assert container.node_count.sum() == len(container.x)
    assert container.part_node_count.sum() == len(container.x)

    decoded = decode_geometries(container)
    assert decoded == geoms
    assert [len(p.rings) for p in decoded[0].parts] == [2, 1]


def test_mixed_kinds():
    geoms = [Point.from_xy(0, 0), Line.from_parts([[(0, 0), (1, 1)]]), Point.from_xy(1, 1)]
    with pytest.raises(MixedGeometryKind, match="'line': 1, 'point': 2"):
        encode_geometries(geoms)


def test_encode_errors():
    with pytest.raises(ValueError, match="At least one geometry"):
        encode_geometries([])
    with pytest.raises(TypeError, match="Expected Point, Line or Polygon"):
        encode_geometries([(0, 0)])


def test_unclosed_polygon():
    with pytest.raises(InvalidGeometryEncoding, match="must be closed"):
        Polygon.from_rings([(0, 0), (0, 1), (1, 1)])


def test_orphan_interior_ring():
    container = GeometryContainer(
        "polygon",
        x=np.array([2, 3, 5, 2, 0, 0, 10, 0.0]),
        y=np.array([2, 5, 2, 2, 0, 10, 10, 0.0]),
        node_count=np.array([8]),
        part_node_count=np.array([4, 4]),
        interior_ring=np.array([1, 0]),
    )
    with pytest.raises(OrphanInteriorRing, match="starts with an interior ring"):
        decode_geometries(container)

    # catchable as either parent
    with pytest.raises(GeometryIndexInconsistent):
        decode_geometries(container)
    with pytest.raises(InvalidGeometryEncoding):
        decode_geometries(container)


def test_decode_errors():
    x = np.arange(6.0)

    with pytest.raises(InvalidGeometryEncoding, match="Valid CF geometry types"):
        decode_geometries(GeometryContainer("punkt", x, x))

    with pytest.raises(InvalidGeometryEncoding, match="'node_count' must be provided"):
        decode_geometries(GeometryContainer("line", x, x))

    with pytest.raises(InvalidGeometryEncoding, match="Point geometries cannot"):
        decode_geometries(
            GeometryContainer("point", x, x, part_node_count=np.array([3, 3]))
        )

    with pytest.raises(InvalidGeometryEncoding, match="Line geometries cannot have interior"):
        decode_geometries(
            GeometryContainer(
                "line",
                x,
                x,
                node_count=np.array([6]),
                part_node_count=np.array([3, 3]),
                interior_ring=np.array([0, 1]),
            )
        )

    with pytest.raises(GeometryIndexInconsistent, match="sums to 5 but there are 6"):
        decode_geometries(GeometryContainer("line", x, x, node_count=np.array([2, 3])))

    with pytest.raises(GeometryIndexInconsistent, match="do not line up"):
        decode_geometries(
            GeometryContainer(
                "line",
                x,
                x,
                node_count=np.array([3, 3]),
                part_node_count=np.array([2, 4]),
            )
        )

    with pytest.raises(GeometryIndexInconsistent, match="interior_ring has 1 entries"):
        decode_geometries(
            GeometryContainer(
                "polygon",
                x,
                x,
                node_count=np.array([6]),
                part_node_count=np.array([3, 3]),
                interior_ring=np.array([0]),
            )
        )


def test_geometries_to_cf(polygon_with_hole):
    other = Polygon.from_rings([(50, 0), (40, 15), (30, 0), (50, 0)])
    ds = geometries_to_cf([polygon_with_hole, other], dim="station")

    container = ds["geometry_container"]
    assert container.attrs["geometry_type"] == "polygon"
    assert container.attrs["node_count"] == "node_count"
    assert container.attrs["part_node_count"] == "part_node_count"
    assert container.attrs["interior_ring"] == "interior_ring"
    assert container.attrs["node_coordinates"] == "x y"
    assert container.attrs["coordinates"] == "crd_x crd_y"
    assert "grid_mapping" not in ds

    assert ds.node_count.dims == ("station",)
    assert ds.part_node_count.dims == ("part",)
    assert ds.x.attrs["axis"] == "X"
    assert ds.y.attrs["axis"] == "Y"
    np.testing.assert_array_equal(ds.node_count, [8, 4])
    np.testing.assert_array_equal(ds.interior_ring, [0, 1, 0])
    # nominal coordinates are the first node of each geometry
    np.testing.assert_array_equal(ds.crd_x, [0, 50])
    np.testing.assert_array_equal(ds.crd_y, [0, 0])
    assert ds.crd_x.attrs["nodes"] == "x"

    geoms = cf_to_geometries(ds)
    assert geoms.dims == ("station",)
    assert list(geoms.values) == [polygon_with_hole, other]


def test_geometries_to_cf_with_crs(station_points):
    ds = geometries_to_cf(station_points, crs="EPSG:4326")

    assert ds["geometry_container"].attrs["grid_mapping"] == "grid_mapping"
    assert ds["geometry_container"].attrs["coordinates"] == "lon lat"
    assert ds["grid_mapping"].attrs["grid_mapping_name"] == "latitude_longitude"
    assert ds.x.attrs["standard_name"] == "longitude"
    assert ds.y.attrs["units"] == "degrees_north"
    assert "node_count" not in ds
    np.testing.assert_array_equal(ds.lon, [-105, -104, -103])

    geoms = cf_to_geometries(ds)
    assert geoms.attrs["grid_mapping"] == "grid_mapping"
    assert list(geoms.values) == station_points


def test_cf_to_geometries_errors(polygon_with_hole):
    ds = geometries_to_cf([polygon_with_hole])

    with pytest.raises(ValueError, match="not the name of a variable"):
        cf_to_geometries(ds, container="foo")

    with pytest.raises(ValueError, match="does not have a `geometry_type`"):
        cf_to_geometries(ds, container="node_count")

    broken = ds.drop_vars("part_node_count")
    with pytest.raises(InvalidGeometryEncoding, match="which is missing"):
        cf_to_geometries(broken)

    two = ds.assign(second=ds["geometry_container"])
    with pytest.raises(ValueError, match="Expected exactly one geometry container"):
        cf_to_geometries(two)


@requires_shapely
def test_shapely_to_cf_lines(shapely_lines):
    ds = cf_dsg.shapely_to_cf(shapely_lines)

    assert ds["geometry_container"].attrs["geometry_type"] == "line"
    np.testing.assert_array_equal(ds.node_count, [4, 3, 3])
    np.testing.assert_array_equal(ds.part_node_count, [2, 2, 3, 3])
    np.testing.assert_array_equal(ds.x, [0, 1, 4, 5, 0, 1, 1, 1.0, 2.0, 1.7])
    np.testing.assert_array_equal(ds.crd_y, [0, 0, 1])
    assert ds.node_count.dims == ("index",)


@requires_shapely
def test_shapely_to_cf_polygons(shapely_polygons):
    ds = cf_dsg.shapely_to_cf(shapely_polygons)

    assert ds["geometry_container"].attrs["geometry_type"] == "polygon"
    np.testing.assert_array_equal(ds.node_count, [12, 4])
    np.testing.assert_array_equal(ds.part_node_count, [4, 4, 4, 4])
    np.testing.assert_array_equal(ds.interior_ring, [0, 1, 0, 0])


@requires_shapely
def test_shapely_to_cf_points():
    from shapely.geometry import MultiPoint
    from shapely.geometry import Point as ShapelyPoint

    ds = cf_dsg.shapely_to_cf(
        [MultiPoint([(1.0, 2.0), (2.0, 3.0)]), ShapelyPoint(3.0, 4.0)],
        suffix="_pts",
    )
    assert "geometry_container_pts" in ds
    np.testing.assert_array_equal(ds.node_count_pts, [2, 1])
    np.testing.assert_array_equal(ds.x_pts, [1, 2, 3])
    assert ds.node_count_pts.dims == ("instance",)


@requires_shapely
def test_shapely_to_cf_errors():
    from shapely.geometry import Point as ShapelyPoint
    from shapely.geometry import Polygon as ShapelyPolygon

    with pytest.raises(MixedGeometryKind):
        cf_dsg.shapely_to_cf(
            [ShapelyPoint(0, 0), ShapelyPolygon([(0, 0), (1, 0), (1, 1)])]
        )

    with pytest.raises(ValueError, match="Only 1D DataArrays"):
        cf_dsg.shapely_to_cf(xr.DataArray(np.empty((1, 1), dtype=object), dims=("a", "b")))


@requires_shapely
@pytest.mark.parametrize("fixture", ["shapely_lines", "shapely_polygons"])
def test_shapely_roundtrip(fixture, request):
    expected = request.getfixturevalue(fixture)
    actual = cf_dsg.cf_to_shapely(cf_dsg.shapely_to_cf(expected))

    assert actual.dims == ("index",)
    assert actual.name == "geometry"
    for a, e in zip(actual.values, expected.values):
        assert a.equals(e)
