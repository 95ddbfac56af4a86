from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import ClassVar

import numpy as np
import xarray as xr
from numpy.typing import ArrayLike

from .crs import GRID_MAPPING_NAME, CoordinateMetadata, coordinate_metadata
from .errors import (
    GeometryIndexInconsistent,
    InvalidGeometryEncoding,
    MixedGeometryKind,
    OrphanInteriorRing,
)
from .utils import parse_names_attr

GEOMETRY_CONTAINER_NAME = "geometry_container"
INSTANCE_DIM_NAME = "instance"
GEOMETRY_TYPES = ("point", "line", "polygon")

__all__ = [
    "Ring",
    "Part",
    "Point",
    "Line",
    "Polygon",
    "GeometryContainer",
    "encode_geometries",
    "decode_geometries",
    "geometries_to_cf",
    "cf_to_geometries",
    "shapely_to_cf",
    "cf_to_shapely",
]


# Useful convention language:
# 1. Whether linked to normal CF space-time coordinates with a nodes attribute or not, inclusion of such coordinates is
#    recommended to maintain backward compatibility with software that has not implemented geometry capabilities.
# 2. The geometry node coordinate variables must each have an axis attribute whose allowable values are X, Y, and Z.
# 3. For polygons, the first ring of a part is its exterior, any further ring is an interior ring (a hole)
#    and is flagged 1 in the interior_ring variable.
#
# Interpretation:
# 1. node coordinates are exact; the 'normal' coordinates are a reasonable value to use, if you do not know how to interpret the nodes.


def _as_nodes(nodes: Iterable) -> tuple[tuple[float, float], ...]:
    return tuple((float(node[0]), float(node[1])) for node in nodes)


@dataclass(frozen=True)
class Ring:
    """An ordered sequence of (x, y) nodes."""

    nodes: tuple[tuple[float, float], ...]

    def __post_init__(self):
        object.__setattr__(self, "nodes", _as_nodes(self.nodes))

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def is_closed(self) -> bool:
        return len(self.nodes) > 0 and self.nodes[0] == self.nodes[-1]


@dataclass(frozen=True)
class Part:
    """One part of a geometry. For polygons the first ring is the exterior."""

    rings: tuple[Ring, ...]

    def __post_init__(self):
        rings = tuple(r if isinstance(r, Ring) else Ring(r) for r in self.rings)
        object.__setattr__(self, "rings", rings)

    @property
    def node_count(self) -> int:
        return sum(len(r) for r in self.rings)

    @property
    def exterior(self) -> Ring:
        return self.rings[0]

    @property
    def interiors(self) -> tuple[Ring, ...]:
        return self.rings[1:]


@dataclass(frozen=True)
class Geometry:
    """Base of the Point, Line and Polygon variants."""

    parts: tuple[Part, ...]

    kind: ClassVar[str] = ""

    def __post_init__(self):
        parts = tuple(p if isinstance(p, Part) else Part(p) for p in self.parts)
        object.__setattr__(self, "parts", parts)
        self._validate()

    def _validate(self):
        pass

    @property
    def node_count(self) -> int:
        return sum(p.node_count for p in self.parts)

    @property
    def is_multipart(self) -> bool:
        return len(self.parts) > 1

    @property
    def has_interiors(self) -> bool:
        return any(len(p.rings) > 1 for p in self.parts)

    @property
    def first_node(self) -> tuple[float, float]:
        if self.node_count == 0:
            return (np.nan, np.nan)
        return next(n for p in self.parts for r in p.rings for n in r.nodes)


@dataclass(frozen=True)
class Point(Geometry):
    """A point, or a multipoint when it has several parts of one node each."""

    kind: ClassVar[str] = "point"

    @classmethod
    def from_xy(cls, x: float, y: float) -> Point:
        return cls(parts=(Part((Ring(((x, y),)),)),))

    @classmethod
    def from_nodes(cls, nodes: Iterable) -> Point:
        return cls(parts=tuple(Part((Ring((node,)),)) for node in nodes))

    def _validate(self):
        for part in self.parts:
            if len(part.rings) != 1 or len(part.rings[0]) != 1:
                raise InvalidGeometryEncoding(
                    "Each part of a point geometry must be a single node."
                )


@dataclass(frozen=True)
class Line(Geometry):
    """A line; each part is one open sequence of nodes."""

    kind: ClassVar[str] = "line"

    @classmethod
    def from_parts(cls, parts: Iterable[Iterable]) -> Line:
        return cls(parts=tuple(Part((Ring(nodes),)) for nodes in parts))

    def _validate(self):
        for part in self.parts:
            if len(part.rings) != 1:
                raise InvalidGeometryEncoding(
                    f"Line parts cannot have interior rings. Got a part with {len(part.rings)} rings."
                )


@dataclass(frozen=True)
class Polygon(Geometry):
    """A polygon; each part is an exterior ring followed by its holes."""

    kind: ClassVar[str] = "polygon"

    @classmethod
    def from_rings(cls, exterior: Iterable, *interiors: Iterable) -> Polygon:
        return cls(parts=(Part((Ring(exterior),) + tuple(Ring(r) for r in interiors)),))

    @classmethod
    def from_parts(cls, parts: Iterable[Iterable[Iterable]]) -> Polygon:
        return cls(parts=tuple(Part(tuple(Ring(r) for r in rings)) for rings in parts))

    def _validate(self):
        for i, part in enumerate(self.parts):
            for j, ring in enumerate(part.rings):
                if not ring.is_closed:
                    raise InvalidGeometryEncoding(
                        f"Polygon rings must be closed. Ring {j} of part {i} starts at "
                        f"{ring.nodes[0] if len(ring) else None} and ends at "
                        f"{ring.nodes[-1] if len(ring) else None}."
                    )


_GEOMETRY_CLASSES: dict[str, type[Geometry]] = {
    cls.kind: cls for cls in (Point, Line, Polygon)
}


@dataclass
class GeometryContainer:
    """The flat arrays of a CF geometry container."""

    geometry_type: str
    x: np.ndarray
    y: np.ndarray
    node_count: np.ndarray | None = None
    part_node_count: np.ndarray | None = None
    interior_ring: np.ndarray | None = None

    @property
    def n_geometries(self) -> int:
        if self.node_count is None:
            return len(self.x)
        return len(self.node_count)


def _geometry_kind(geoms: Sequence[Geometry]) -> str:
    for geom in geoms:
        if not isinstance(geom, Geometry):
            raise TypeError(
                f"Expected Point, Line or Polygon geometries. Got {type(geom).__name__}"
            )
    kinds = sorted({geom.kind for geom in geoms})
    if len(kinds) > 1:
        counts = {k: sum(g.kind == k for g in geoms) for k in kinds}
        raise MixedGeometryKind(
            f"All geometries in a container must be of the same kind. Got {counts}"
        )
    if not kinds:
        raise ValueError("At least one geometry is required.")
    return kinds[0]


def encode_geometries(geoms: Sequence[Geometry]) -> GeometryContainer:
    """
    Flatten geometries into CF geometry container arrays.

    Nodes are laid out geometry by geometry, part by part and ring by ring.
    ``part_node_count`` (and, for polygons, ``interior_ring``) are only
    produced when some geometry has several parts or holes.

    Parameters
    ----------
    geoms : sequence of Point, Line or Polygon
        All of the same kind.

    Returns
    -------
    GeometryContainer
    """
    geoms = list(geoms)
    kind = _geometry_kind(geoms)

    x: list[float] = []
    y: list[float] = []
    node_count: list[int] = []
    part_node_count: list[int] = []
    interior_ring: list[int] = []
    for geom in geoms:
        node_count.append(geom.node_count)
        for part in geom.parts:
            for i, ring in enumerate(part.rings):
                x.extend(node[0] for node in ring.nodes)
                y.extend(node[1] for node in ring.nodes)
                part_node_count.append(len(ring))
                interior_ring.append(int(i > 0))

    container = GeometryContainer(
        geometry_type=kind,
        x=np.asarray(x, dtype=np.float64),
        y=np.asarray(y, dtype=np.float64),
        node_count=np.asarray(node_count, dtype=np.int32),
    )

    multipart = any(g.is_multipart or g.has_interiors for g in geoms)
    if kind == "point":
        # Special case when we have no MultiPoints
        if all(n == 1 for n in node_count):
            container.node_count = None
    elif multipart:
        container.part_node_count = np.asarray(part_node_count, dtype=np.int32)
        if kind == "polygon":
            container.interior_ring = np.asarray(interior_ring, dtype=np.int32)

    _check_counts(container)
    return container


def _check_counts(container: GeometryContainer) -> None:
    n_nodes = len(container.x)
    if len(container.y) != n_nodes:
        raise GeometryIndexInconsistent(
            f"Node coordinate lengths differ: x has {n_nodes} nodes, y has {len(container.y)}."
        )
    for name in ("node_count", "part_node_count"):
        counts = getattr(container, name)
        if counts is None:
            continue
        if (counts < 0).any():
            raise GeometryIndexInconsistent(f"{name} contains negative counts.")
        if int(counts.sum()) != n_nodes:
            raise GeometryIndexInconsistent(
                f"{name} sums to {int(counts.sum())} but there are {n_nodes} nodes."
            )


def decode_geometries(container: GeometryContainer) -> list[Geometry]:
    """
    Rebuild geometries from CF geometry container arrays.

    ``node_count[i]`` nodes are consumed for geometry ``i``. When
    ``part_node_count`` is present those nodes are split into rings; a ring
    not flagged as interior starts a new part, an interior ring is appended
    to the current part.

    Parameters
    ----------
    container : GeometryContainer

    Returns
    -------
    list of Point, Line or Polygon
    """
    kind = container.geometry_type
    if kind not in GEOMETRY_TYPES:
        raise InvalidGeometryEncoding(
            f"Valid CF geometry types are 'point', 'line' and 'polygon'. Got {kind!r}"
        )
    cls = _GEOMETRY_CLASSES[kind]

    x = np.asarray(container.x, dtype=np.float64)
    y = np.asarray(container.y, dtype=np.float64)
    n_nodes = len(x)

    node_count = container.node_count
    part_node_count = container.part_node_count
    interior_ring = container.interior_ring

    if kind == "point":
        if part_node_count is not None or interior_ring is not None:
            raise InvalidGeometryEncoding(
                "Point geometries cannot have part_node_count or interior_ring variables."
            )
        if node_count is None:
            # No node_count means all geometries are single points
            node_count = np.ones(n_nodes, dtype=np.int64)
    elif node_count is None:
        raise InvalidGeometryEncoding(
            f"'node_count' must be provided for {kind} geometries"
        )

    node_count = np.asarray(node_count, dtype=np.int64)
    if part_node_count is None:
        if interior_ring is not None:
            raise InvalidGeometryEncoding(
                "interior_ring requires a part_node_count variable."
            )
        part_node_count = node_count
    part_node_count = np.asarray(part_node_count, dtype=np.int64)

    if interior_ring is None:
        interior_ring = np.zeros(len(part_node_count), dtype=bool)
    else:
        interior_ring = np.asarray(interior_ring).astype(bool)
        if len(interior_ring) != len(part_node_count):
            raise GeometryIndexInconsistent(
                f"interior_ring has {len(interior_ring)} entries but "
                f"part_node_count has {len(part_node_count)}."
            )
    if kind == "line" and interior_ring.any():
        raise InvalidGeometryEncoding(
            f"Line geometries cannot have interior rings. Got {int(interior_ring.sum())} flagged."
        )

    _check_counts(
        GeometryContainer(kind, x, y, node_count, part_node_count, interior_ring)
    )

    geoms: list[Geometry] = []
    node = 0
    p = 0
    for i, n in enumerate(node_count):
        parts: list[list[Ring]] = []
        consumed = 0
        while consumed < n:
            m = part_node_count[p]
            ring = Ring(tuple(zip(x[node : node + m], y[node : node + m])))
            if interior_ring[p]:
                if not parts:
                    raise OrphanInteriorRing(
                        f"Geometry {i} starts with an interior ring (part_node_count entry {p}); "
                        "an exterior ring must come first."
                    )
                parts[-1].append(ring)
            else:
                parts.append([ring])
            node += m
            consumed += m
            p += 1
        if consumed != n:
            raise GeometryIndexInconsistent(
                f"part_node_count entries do not line up with node_count for geometry {i}: "
                f"{consumed} part nodes vs node_count {n}."
            )
        if kind == "point":
            # Every node of a point geometry is a part
            nodes = [node_ for rings in parts for r in rings for node_ in r.nodes]
            geoms.append(Point.from_nodes(nodes))
        else:
            geoms.append(cls(parts=tuple(Part(tuple(rings)) for rings in parts)))

    if p != len(part_node_count):
        raise GeometryIndexInconsistent(
            f"{len(part_node_count) - p} part_node_count entries are left over "
            f"after decoding {len(node_count)} geometries."
        )
    return geoms


@dataclass
class GeometryNames:
    """Helper class to ease handling of all the variable names needed for CF geometries."""

    def __init__(
        self,
        suffix: str = "",
        metadata: CoordinateMetadata | None = None,
    ):
        if metadata is None:
            metadata = coordinate_metadata(None)
        self.metadata = metadata
        self.container_name: str = GEOMETRY_CONTAINER_NAME + suffix
        self.node_dim: str = "node" + suffix
        self.node_count: str = "node_count" + suffix
        self.node_coordinates_x: str = "x" + suffix
        self.node_coordinates_y: str = "y" + suffix
        self.coordinates_x: str = metadata.x_name + suffix
        self.coordinates_y: str = metadata.y_name + suffix
        self.part_node_count: str = "part_node_count" + suffix
        self.part_dim: str = "part" + suffix
        self.interior_ring: str = "interior_ring" + suffix
        self.attrs_x: dict[str, str] = dict(metadata.x_attrs)
        self.attrs_y: dict[str, str] = dict(metadata.y_attrs)
        self.grid_mapping_attr = (
            {} if metadata.is_default else {"grid_mapping": GRID_MAPPING_NAME}
        )

    @property
    def geometry_container_attrs(self) -> dict[str, str]:
        return {
            "node_count": self.node_count,
            "node_coordinates": f"{self.node_coordinates_x} {self.node_coordinates_y}",
            "coordinates": f"{self.coordinates_x} {self.coordinates_y}",
            **self.grid_mapping_attr,
        }

    def coords(
        self,
        *,
        dim: Hashable,
        x: ArrayLike,
        y: ArrayLike,
        crdX: ArrayLike | None = None,
        crdY: ArrayLike | None = None,
    ) -> dict[str, xr.DataArray]:
        """
        Construct coordinate DataArrays for the numpy data (x, y, crdX, crdY)

        Parameters
        ----------
        x: array
            Node coordinates for X coordinate
        y: array
            Node coordinates for Y coordinate
        crdX: array, optional
            Nominal X coordinate
        crdY: array, optional
            Nominal Y coordinate
        """
        mapping = {
            self.node_coordinates_x: xr.DataArray(
                x, dims=self.node_dim, attrs={"axis": "X", **self.attrs_x}
            ),
            self.node_coordinates_y: xr.DataArray(
                y, dims=self.node_dim, attrs={"axis": "Y", **self.attrs_y}
            ),
        }
        if crdX is not None:
            mapping[self.coordinates_x] = xr.DataArray(
                crdX,
                dims=(dim,),
                attrs={"nodes": self.node_coordinates_x, **self.attrs_x},
            )
        if crdY is not None:
            mapping[self.coordinates_y] = xr.DataArray(
                crdY,
                dims=(dim,),
                attrs={"nodes": self.node_coordinates_y, **self.attrs_y},
            )
        return mapping


def geometries_to_cf(
    geoms: Sequence[Geometry],
    *,
    dim: Hashable = INSTANCE_DIM_NAME,
    crs=None,
    names: GeometryNames | None = None,
) -> xr.Dataset:
    """
    Convert a sequence of geometries into a CF-compliant geometry dataset.

    Parameters
    ----------
    geoms : sequence of Point, Line or Polygon
        All geometries must be of the same kind, multipart geometries are accepted.
    dim : hashable
        Name of the instance dimension the geometries are laid along.
    crs : optional
        Spatial reference, see :py:func:`cf_dsg.crs.coordinate_metadata`.
        When given, a ``grid_mapping`` variable is added.
    names : GeometryNames, optional
        Variable names to use. Built from ``crs`` if not given.

    Returns
    -------
    xr.Dataset
        A dataset with :
         - 'x', 'y' : the node coordinates
         - nominal coordinates ('crd_x', 'crd_y', or 'lon', 'lat' for geographic references), the first node of each geometry
         - 'node_count' : The number of nodes per geometry. Always present for Lines and Polygons. For Points: only present if there are multipoints.
         - 'part_node_count' : The number of nodes per ring. Only for multipart geometries and for Polygons with holes.
         - 'interior_ring' : Integer boolean indicating whether rings are interior or exterior. Only with part_node_count on Polygons.
         - 'geometry_container' : Empty variable with attributes describing the geometry type.
    """
    if names is None:
        names = GeometryNames(metadata=coordinate_metadata(crs))

    container = encode_geometries(geoms)
    first = np.array([g.first_node for g in geoms], dtype=np.float64).reshape(-1, 2)

    data_vars: dict[Hashable, xr.DataArray] = {}
    geometry_attrs = {"geometry_type": container.geometry_type}
    geometry_attrs.update(names.geometry_container_attrs)

    if container.node_count is not None:
        data_vars[names.node_count] = xr.DataArray(container.node_count, dims=(dim,))
    else:
        del geometry_attrs["node_count"]
    if container.part_node_count is not None:
        data_vars[names.part_node_count] = xr.DataArray(
            container.part_node_count, dims=(names.part_dim,)
        )
        geometry_attrs["part_node_count"] = names.part_node_count
    if container.interior_ring is not None:
        data_vars[names.interior_ring] = xr.DataArray(
            container.interior_ring, dims=(names.part_dim,)
        )
        geometry_attrs["interior_ring"] = names.interior_ring

    data_vars[names.container_name] = xr.DataArray(
        np.int32(0), attrs=geometry_attrs
    )
    if not names.metadata.is_default:
        data_vars[GRID_MAPPING_NAME] = xr.DataArray(
            np.int32(0), attrs=dict(names.metadata.grid_mapping_attrs)
        )

    return xr.Dataset(
        data_vars=data_vars,
        coords=names.coords(
            x=container.x, y=container.y, crdX=first[:, 0], crdY=first[:, 1], dim=dim
        ),
    )


def _get_geometry_containers(ds: xr.Dataset) -> list[Hashable]:
    return [name for name, var in ds.variables.items() if "geometry_type" in var.attrs]


def cf_to_geometries(
    ds: xr.Dataset, *, container: Hashable | None = None
) -> xr.DataArray:
    """
    Convert geometries stored in a CF-compliant way to a 1D object DataArray of geometries.

    Parameters
    ----------
    ds : xr.Dataset
        Must contain a geometry container variable with attributes giving the geometry specifications.
        Must contain all variables needed to reconstruct the geometries listed in these specifications.
    container : hashable, optional
        Name of the geometry container. Required only if ``ds`` holds several.

    Returns
    -------
    da: xr.DataArray
        A 1D DataArray of Point, Line or Polygon objects.
        It has the same dimension as the ``node_count`` or the coordinates variables, or
        ``instance`` if those were not present in ``ds``.
    """
    if container is None:
        containers = _get_geometry_containers(ds)
        if len(containers) != 1:
            raise ValueError(
                f"Expected exactly one geometry container, found {len(containers)}: {containers!r}. "
                "Pass `container` to choose one."
            )
        (container,) = containers
    if container not in ds.variables:
        raise ValueError(
            f"{container!r} is not the name of a variable in the provided Dataset."
        )
    # Shorthand for convenience
    geo = ds[container].attrs
    if not (geom_type := geo.get("geometry_type", None)):
        raise ValueError(
            f"{container!r} is not the name of a valid geometry variable. "
            "It does not have a `geometry_type` attribute."
        )

    node_coordinates = parse_names_attr(geo.get("node_coordinates"))
    if len(node_coordinates) < 2:
        raise InvalidGeometryEncoding(
            f"{container!r} must name two node coordinate variables. Got {geo.get('node_coordinates')!r}"
        )
    x_name, y_name = node_coordinates[:2]

    def _get(attr):
        if (name := geo.get(attr)) is None:
            return None
        if name not in ds.variables:
            raise InvalidGeometryEncoding(
                f"{container!r} refers to {attr} variable {name!r}, which is missing."
            )
        return ds[name].values

    encoded = GeometryContainer(
        geometry_type=geom_type,
        x=ds[x_name].values,
        y=ds[y_name].values,
        node_count=_get("node_count"),
        part_node_count=_get("part_node_count"),
        interior_ring=_get("interior_ring"),
    )
    geoms = decode_geometries(encoded)

    # The instance dimension name, defaults to the one of 'node_count' or
    # the dimension of the coordinates, if present.
    dim: Hashable = INSTANCE_DIM_NAME
    if (node_count_name := geo.get("node_count")) is not None:
        (dim,) = ds[node_count_name].dims
    elif coordinates := parse_names_attr(
        geo.get("coordinates", ds[container].encoding.get("coordinates"))
    ):
        if coordinates[0] in ds.variables:
            (dim,) = ds[coordinates[0]].dims

    values = np.empty(len(geoms), dtype=object)
    values[:] = geoms
    da = xr.DataArray(values, dims=(dim,), name="geometry")
    if gm := geo.get("grid_mapping"):
        da.attrs["grid_mapping"] = gm
    return da


def from_shapely(geom) -> Geometry:
    """Convert one shapely geometry to a Point, Line or Polygon."""
    type_ = geom.geom_type
    if type_ == "Point":
        return Point.from_nodes(geom.coords)
    elif type_ == "MultiPoint":
        return Point.from_nodes([p.coords[0] for p in geom.geoms])
    elif type_ == "LineString":
        return Line.from_parts([geom.coords])
    elif type_ == "MultiLineString":
        return Line.from_parts([line.coords for line in geom.geoms])
    elif type_ == "Polygon":
        return Polygon.from_parts([_shapely_rings(geom)])
    elif type_ == "MultiPolygon":
        return Polygon.from_parts([_shapely_rings(p) for p in geom.geoms])
    raise ValueError(
        f"This geometry type is not supported in CF-compliant datasets. Got {type_}"
    )


def _shapely_rings(polygon) -> list:
    return [polygon.exterior.coords] + [ring.coords for ring in polygon.interiors]


def to_shapely(geom: Geometry):
    """Convert a Point, Line or Polygon to the matching shapely geometry."""
    from shapely.geometry import (
        LineString,
        MultiLineString,
        MultiPoint,
        MultiPolygon,
    )
    from shapely.geometry import Point as ShapelyPoint
    from shapely.geometry import Polygon as ShapelyPolygon

    if isinstance(geom, Point):
        nodes = [r.nodes[0] for p in geom.parts for r in p.rings]
        if len(nodes) == 1:
            return ShapelyPoint(nodes[0])
        return MultiPoint(nodes)
    elif isinstance(geom, Line):
        lines = [LineString(p.rings[0].nodes) for p in geom.parts]
        return lines[0] if len(lines) == 1 else MultiLineString(lines)
    elif isinstance(geom, Polygon):
        polygons = [
            ShapelyPolygon(p.exterior.nodes, [r.nodes for r in p.interiors])
            for p in geom.parts
        ]
        return polygons[0] if len(polygons) == 1 else MultiPolygon(polygons)
    raise TypeError(f"Expected Point, Line or Polygon. Got {type(geom).__name__}")


def shapely_to_cf(
    geometries: xr.DataArray | Sequence,
    crs=None,
    *,
    suffix: str = "",
):
    """
    Convert shapely geometry objects into a CF-compliant dataset.

    Parameters
    ----------
    geometries : sequence of shapely geometries or xarray.DataArray
        All geometries must be of the same base type : Point, Line or Polygon, but multipart geometries are accepted.
    crs : optional
        Spatial reference, see :py:func:`cf_dsg.crs.coordinate_metadata`.
    suffix : str
        Appended to every variable and dimension name.

    Returns
    -------
    xr.Dataset
        See :py:func:`geometries_to_cf`.

    References
    ----------
    Please refer to the CF conventions document: http://cfconventions.org/Data/cf-conventions/cf-conventions-1.8/cf-conventions.html#geometries
    """
    if isinstance(geometries, xr.DataArray):
        if geometries.ndim != 1:
            raise ValueError("Only 1D DataArrays are supported.")
        dim = geometries.dims[0]
        shapes = geometries.values.tolist()
    else:
        dim = INSTANCE_DIM_NAME
        shapes = list(geometries)

    names = GeometryNames(suffix=suffix, metadata=coordinate_metadata(crs))
    ds = geometries_to_cf([from_shapely(g) for g in shapes], dim=dim, names=names)
    if isinstance(geometries, xr.DataArray) and dim in geometries.coords:
        ds = ds.assign_coords({dim: geometries[dim]})
    return ds


def cf_to_shapely(ds: xr.Dataset, *, container: Hashable | None = None):
    """
    Convert geometries stored in a CF-compliant way to shapely objects stored in a single variable.

    References
    ----------
    Please refer to the CF conventions document: http://cfconventions.org/Data/cf-conventions/cf-conventions-1.8/cf-conventions.html#geometries
    """
    da = cf_to_geometries(ds, container=container)
    shapes = np.empty(da.shape, dtype=object)
    shapes[:] = [to_shapely(g) for g in da.values]
    return da.copy(data=shapes)
