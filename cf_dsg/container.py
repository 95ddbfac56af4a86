"""
Write and read CF discrete sampling geometry files.

Every write validates and plans the whole file in memory first; only then is
the file opened, so a validation error never leaves a partially written file.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pandas as pd
import xarray as xr

from .backend import FileAccess, NetCDF4FileAccess, opened
from .errors import InstanceMismatch, ShapeMismatch
from .crs import coordinate_metadata
from .geometry import (
    INSTANCE_DIM_NAME,
    Geometry,
    GeometryNames,
    cf_to_geometries,
    geometries_to_cf,
)
from .options import OPTIONS
from .planner import (
    ContainerPlan,
    DSGNames,
    _describe_id_mismatch,
    check_append,
    is_metadata_variable,
    plan_container,
)
from .timeseries import (
    Instance,
    TimeSeriesSet,
    attributes_to_cf,
    cf_to_instances,
    classify_layout,
    decode_timeseries,
    encode_timeseries,
)
from .utils import _get_version, as_str_array, emit_user_level_warning, parse_names_attr

logger = logging.getLogger(__name__)

__all__ = [
    "open_dsg",
    "read_dsg",
    "read_geometry",
    "read_timeseries_dsg",
    "write_attribute_data",
    "write_geometry",
    "write_timeseries_dsg",
    "DSGResult",
    "GeometryResult",
    "TimeSeriesResult",
]


@dataclass
class TimeSeriesResult:
    """Decoded time series of a file, one entry of ``data`` per data variable."""

    layout: str
    instances: list[Instance]
    data: dict[str, TimeSeriesSet]
    attrs: dict[str, Any] = field(default_factory=dict)

    @property
    def instance_names(self) -> list[str]:
        return [i.name for i in self.instances]

    @property
    def times(self) -> pd.DatetimeIndex:
        """The shared time axis, or the sorted union of all timestamps for ragged data."""
        if not self.data:
            return pd.DatetimeIndex([], name="time")
        frames = [ts.to_wide().index for ts in self.data.values()]
        times = frames[0]
        for other in frames[1:]:
            times = times.union(other)
        return times

    @property
    def units(self) -> dict[str, str]:
        return {name: ts.units for name, ts in self.data.items()}

    @property
    def precision(self) -> dict[str, str]:
        return {name: ts.precision for name, ts in self.data.items()}

    @property
    def long_names(self) -> dict[str, str | None]:
        return {name: ts.long_name for name, ts in self.data.items()}

    def series(self, variable: str, instance: str) -> pd.Series:
        return self.data[variable].series(instance)


@dataclass
class GeometryResult:
    geometry_type: str
    geometries: list[Geometry]
    instance_names: list[str] | None = None
    attributes: pd.DataFrame | None = None
    grid_mapping: dict[str, Any] = field(default_factory=dict)
    attrs: dict[str, Any] = field(default_factory=dict)


@dataclass
class DSGResult:
    layout: str | None
    timeseries: TimeSeriesResult | None = None
    geometry: GeometryResult | None = None
    attrs: dict[str, Any] = field(default_factory=dict)


def _backend(backend: FileAccess | None) -> FileAccess:
    return NetCDF4FileAccess() if backend is None else backend


def _global_attrs(attributes: dict | None) -> dict[str, Any]:
    now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    attrs = {"history": f"{now}: written by cf_dsg {_get_version()}"}
    attrs.update(attributes or {})
    return attrs


def _read_raw(backend: FileAccess, handle) -> xr.Dataset:
    variables = {}
    for name in backend.list_variables(handle):
        attrs = {
            attr: backend.get_attribute(handle, name, attr)
            for attr in backend.list_attributes(handle, name)
        }
        variables[name] = xr.Variable(
            backend.variable_dimensions(handle, name),
            backend.get_values(handle, name),
            attrs,
        )
    attrs = {
        attr: backend.get_attribute(handle, None, attr)
        for attr in backend.list_attributes(handle, None)
    }
    return xr.Dataset(variables, attrs=attrs)


def _warn_missing_variables(ds: xr.Dataset) -> None:
    if not OPTIONS["warn_on_missing_variables"]:
        return
    for name, var in ds.variables.items():
        attrs = dict(var.attrs)
        attrs.update(var.encoding)
        referenced = parse_names_attr(attrs.get("coordinates")) + parse_names_attr(
            attrs.get("geometry")
        )
        missing = [r for r in referenced if r not in ds.variables]
        if missing:
            emit_user_level_warning(
                f"Variables {missing!r} referred to by {name!r} are not present in the file.",
                UserWarning,
            )


def open_dsg(path, *, backend: FileAccess | None = None) -> xr.Dataset:
    """
    Read every variable of a file into a CF-decoded ``xarray.Dataset``.

    Times become datetimes, fill values become NaN and character arrays
    become byte strings.
    """
    backend = _backend(backend)
    with opened(backend, path, "r") as handle:
        raw = _read_raw(backend, handle)
    _warn_missing_variables(raw)
    return xr.decode_cf(raw)


def _execute(
    backend: FileAccess,
    handle,
    plan: ContainerPlan,
    *,
    skip: Sequence[Hashable] = (),
    existing_dims: dict | None = None,
    write_globals: bool = True,
) -> None:
    existing_dims = existing_dims or {}
    variables = [v for v in plan.variables if v.name not in skip]

    for dim in plan.dimensions:
        if dim.name not in existing_dims:
            backend.define_dimension(handle, dim.name, dim.size)
    for var in variables:
        backend.define_variable(handle, var.name, var.dtype, var.dims, var.fill_value)
        for key, value in var.attrs.items():
            backend.set_attribute(handle, var.name, key, value)
    if write_globals:
        for key, value in plan.attrs.items():
            backend.set_attribute(handle, None, key, value)

    for var in plan.coordinate_variables:
        if var.name not in skip:
            backend.put_values(handle, var.name, var.data)
    for var in plan.data_variables:
        if var.name not in skip:
            backend.put_values(handle, var.name, var.data)

    for target, attrs in plan.linkage.items():
        for key, value in attrs.items():
            backend.set_attribute(handle, target, key, value)


def _check_file_dimensions(plan: ContainerPlan, skip, file_dims: dict) -> None:
    needed = {d for v in plan.variables if v.name not in skip for d in v.dims}
    for dim in plan.dimensions:
        size = file_dims.get(dim.name)
        if dim.name in needed and size is not None and size != dim.size:
            raise ShapeMismatch(
                f"Dimension {dim.name!r} has size {size} in the file vs {dim.size} in the new data."
            )


def _read_existing(backend: FileAccess, path) -> tuple[xr.Dataset, dict]:
    with opened(backend, path, "r") as handle:
        raw = _read_raw(backend, handle)
        file_dims = backend.list_dimensions(handle)
    return xr.decode_cf(raw), file_dims


def _containers(ds: xr.Dataset) -> list[Hashable]:
    return [name for name, var in ds.variables.items() if "geometry_type" in var.attrs]


def _instance_dim(existing: xr.Dataset) -> Hashable:
    """The instance dimension of a file, from its identifiers or its geometry container."""
    for var in existing.variables.values():
        if var.attrs.get("cf_role") == "timeseries_id":
            return var.dims[0]
    for name in _containers(existing):
        container = existing[name]
        if node_count := container.attrs.get("node_count"):
            return existing[node_count].dims[0]
        coordinates = container.attrs.get(
            "coordinates", container.encoding.get("coordinates")
        )
        for coord in parse_names_attr(coordinates):
            if coord in existing.variables:
                return existing[coord].dims[0]
    raise ShapeMismatch("The existing file has no instance dimension.")


def _write_dataset(
    path,
    ds: xr.Dataset,
    names: DSGNames,
    *,
    backend: FileAccess,
    existing: tuple[xr.Dataset, dict] | None = None,
    linkage: dict | None = None,
) -> None:
    """Plan ``ds``, then write it to a new file or, given ``existing``, append it."""
    plan = plan_container(ds)
    for target, attrs in (linkage or {}).items():
        plan.linkage.setdefault(target, {}).update(attrs)

    if existing is None:
        with opened(backend, path, "w") as handle:
            _execute(backend, handle, plan)
        return

    current, file_dims = existing
    skip = check_append(current, ds, names)
    _check_file_dimensions(plan, skip, file_dims)
    logger.debug("appending to %s, keeping existing %s", path, skip)
    with opened(backend, path, "a") as handle:
        _execute(
            backend, handle, plan, skip=skip, existing_dims=file_dims, write_globals=False
        )


def write_timeseries_dsg(
    path,
    ts: TimeSeriesSet,
    *,
    attributes: dict | None = None,
    add_to_existing: bool = False,
    encoding: str | None = None,
    names: DSGNames | None = None,
    backend: FileAccess | None = None,
) -> None:
    """
    Write a :py:class:`TimeSeriesSet` to a CF ``timeSeries`` file.

    Parameters
    ----------
    path : str or path-like
    ts : TimeSeriesSet
        Orthogonal when ``ts.values`` is set, ragged when ``ts.observations`` is.
    attributes : dict, optional
        Global attributes, e.g. ``title``.
    add_to_existing : bool
        Add ``ts`` as a new data variable to an existing file. The file's
        instances must match ``ts.instances`` in identity and order. If the
        file has a geometry container, the new variable is linked to it.
    encoding : {"contiguous", "indexed"}, optional
        Ragged representation. Defaults to the ``ragged_encoding`` option.
    names : DSGNames, optional
        Variable names. When appending, the instance dimension defaults to
        the one of the file.
    backend : FileAccess, optional
        Defaults to :py:class:`cf_dsg.backend.NetCDF4FileAccess`.

    Raises
    ------
    ShapeMismatch, InstanceMismatch, InvalidEncoding
        Before anything is written.
    """
    backend = _backend(backend)
    existing = None
    linkage = {}
    if add_to_existing:
        existing = _read_existing(backend, path)
        if names is None:
            names = DSGNames(instance_dim=str(_instance_dim(existing[0])))
        containers = _containers(existing[0])
        if len(containers) == 1:
            linkage[ts.name] = {"geometry": containers[0]}
    if names is None:
        names = DSGNames()

    ds = encode_timeseries(
        ts, encoding=encoding, names=names, attributes=_global_attrs(attributes)
    )
    _write_dataset(
        path, ds, names, backend=backend, existing=existing, linkage=linkage
    )


def write_geometry(
    path,
    geoms: Sequence[Geometry],
    *,
    instance_names: Sequence | None = None,
    data: pd.DataFrame | None = None,
    crs=None,
    attributes: dict | None = None,
    add_to_existing: bool = False,
    backend: FileAccess | None = None,
) -> None:
    """
    Write geometries as a CF-1.8 geometry container.

    Parameters
    ----------
    path : str or path-like
    geoms : sequence of Point, Line or Polygon
        All of the same kind, one per instance.
    instance_names : sequence, optional
        Identifiers written with ``cf_role="timeseries_id"``. When appending,
        they must match the identifiers of the file instead.
    data : pandas.DataFrame, optional
        One row per geometry; every column becomes a variable linked to the
        geometry container.
    crs : optional
        Spatial reference of the node coordinates.
    attributes : dict, optional
        Global attributes.
    add_to_existing : bool
        Link the geometries to the instances of an existing timeseries file.
        Every data variable of the file gets a ``geometry`` attribute.
    backend : FileAccess, optional
    """
    backend = _backend(backend)
    geoms = list(geoms)

    if instance_names is not None and len(instance_names) != len(geoms):
        raise ShapeMismatch(
            f"instance count {len(instance_names)} vs geometry count {len(geoms)}"
        )
    if data is not None and len(data) != len(geoms):
        raise ShapeMismatch(
            f"attribute table has {len(data)} rows vs geometry count {len(geoms)}"
        )

    existing = None
    dim: Hashable = INSTANCE_DIM_NAME
    if add_to_existing:
        existing = _read_existing(backend, path)
        current = existing[0]
        if _containers(current):
            raise ValueError(f"{path!r} already has a geometry container.")
        dim = _instance_dim(current)
        if current.sizes[dim] != len(geoms):
            raise ShapeMismatch(
                f"existing instance dimension {dim!r} has size {current.sizes[dim]} "
                f"vs geometry count {len(geoms)}"
            )
    names = DSGNames(instance_dim=str(dim))

    gnames = GeometryNames(metadata=coordinate_metadata(crs))
    ds = geometries_to_cf(geoms, dim=dim, names=gnames)

    if existing is not None:
        # nominal coordinates already in the file (e.g. station lon/lat) are kept
        present = [
            n
            for n in (gnames.coordinates_x, gnames.coordinates_y)
            if n in existing[0].variables
        ]
        ds = ds.drop_vars(present)

    if instance_names is not None:
        ids = as_str_array(instance_names)
        if existing is not None:
            _, file_instances = cf_to_instances(existing[0])
            file_ids = [i.name for i in file_instances]
            if list(ids) != file_ids:
                raise InstanceMismatch(_describe_id_mismatch(file_ids, ids))
        else:
            id_var = xr.Variable((dim,), ids, names.id_attrs)
            id_var.encoding["char_dim_name"] = names.strlen_dim
            ds[names.instance_id] = id_var

    if data is not None:
        table = attributes_to_cf(data.reset_index(drop=True), names)
        for var in table.data_vars.values():
            var.attrs["geometry"] = gnames.container_name
        ds = ds.merge(table)

    linkage: dict[Hashable, dict[str, str]] = {}
    if existing is None:
        ds.attrs.update(
            {"Conventions": OPTIONS["conventions"], **_global_attrs(attributes)}
        )
    else:
        current = existing[0]
        for name in current.data_vars:
            if not is_metadata_variable(name, current):
                linkage[name] = {"geometry": gnames.container_name}
        if "CF-1.8" not in current.attrs.get("Conventions", ""):
            linkage[None] = {"Conventions": "CF-1.8"}

    _write_dataset(
        path, ds, names, backend=backend, existing=existing, linkage=linkage
    )


def write_attribute_data(
    path,
    table: pd.DataFrame,
    *,
    add_to_existing: bool = True,
    attributes: dict | None = None,
    backend: FileAccess | None = None,
) -> None:
    """
    Write per-instance attributes.

    Every column of ``table`` becomes a variable along the instance dimension.
    With ``add_to_existing`` (the default) the variables are added to the file
    at ``path`` and linked to its geometry container if it has one; otherwise
    a new file holding only the table is written.
    """
    backend = _backend(backend)
    if not add_to_existing:
        names = DSGNames(instance_dim=INSTANCE_DIM_NAME)
        ds = attributes_to_cf(table.reset_index(drop=True), names)
        ds.attrs.update(
            {"Conventions": OPTIONS["conventions"], **_global_attrs(attributes)}
        )
        _write_dataset(path, ds, names, backend=backend)
        return

    current, file_dims = _read_existing(backend, path)
    dim = _instance_dim(current)
    if current.sizes[dim] != len(table):
        raise ShapeMismatch(
            f"existing instance dimension {dim!r} has size {current.sizes[dim]} "
            f"vs attribute table length {len(table)}"
        )
    ds = attributes_to_cf(table.reset_index(drop=True), DSGNames(instance_dim=str(dim)))
    for name in ds.data_vars:
        if name in current.variables:
            raise ValueError(
                f"Variable {name!r} already exists in the file; choose another name."
            )

    plan = plan_container(ds)
    containers = _containers(current)
    if len(containers) == 1:
        for name in ds.data_vars:
            plan.linkage.setdefault(name, {})["geometry"] = containers[0]
    _check_file_dimensions(plan, (), file_dims)
    with opened(backend, path, "a") as handle:
        _execute(backend, handle, plan, existing_dims=file_dims, write_globals=False)


def _timeseries_result(ds: xr.Dataset, layout: str) -> TimeSeriesResult:
    decoded = decode_timeseries(ds)
    _, instances = cf_to_instances(ds)
    return TimeSeriesResult(
        layout=layout,
        instances=instances,
        data={ts.name: ts for ts in decoded},
        attrs=dict(ds.attrs),
    )


def _geometry_result(ds: xr.Dataset, container: Hashable) -> GeometryResult:
    geoms = cf_to_geometries(ds, container=container)
    (dim,) = geoms.dims
    geo = ds[container].attrs

    instance_names = None
    for var in ds.variables.values():
        if var.attrs.get("cf_role") == "timeseries_id" and var.dims == (dim,):
            instance_names = [str(n) for n in as_str_array(var.values)]

    columns = {}
    for name, var in ds.data_vars.items():
        if var.attrs.get("geometry") == container and var.dims == (dim,):
            values = var.values
            if values.dtype.kind in "SO":
                values = as_str_array(values)
            columns[str(name)] = values
    attributes = pd.DataFrame(columns) if columns else None

    grid_mapping = {}
    if (gm := geo.get("grid_mapping")) and gm in ds.variables:
        grid_mapping = dict(ds[gm].attrs)

    return GeometryResult(
        geometry_type=geo["geometry_type"],
        geometries=list(geoms.values),
        instance_names=instance_names,
        attributes=attributes,
        grid_mapping=grid_mapping,
        attrs=dict(ds.attrs),
    )


def _single_container(ds: xr.Dataset) -> Hashable | None:
    containers = _containers(ds)
    if len(containers) > 1:
        raise ValueError(
            f"Only one geometry container per file is supported. Got {containers!r}"
        )
    return containers[0] if containers else None


def read_timeseries_dsg(path, *, backend: FileAccess | None = None) -> TimeSeriesResult:
    """
    Read the time series of a CF ``timeSeries`` file.

    Returns
    -------
    TimeSeriesResult
        Instances (identifiers, coordinates, attributes), one
        :py:class:`TimeSeriesSet` per data variable with its units, long name
        and precision, and the global attributes.
    """
    ds = open_dsg(path, backend=backend)
    layout = classify_layout(ds)
    if layout is None:
        raise ValueError(f"{path!r} does not contain time series.")
    return _timeseries_result(ds, layout)


def read_geometry(path, *, backend: FileAccess | None = None) -> GeometryResult:
    """Read the geometry container of a file, with its linked attribute data."""
    ds = open_dsg(path, backend=backend)
    container = _single_container(ds)
    if container is None:
        raise ValueError(
            f"{path!r} has no geometry container, none of its variables "
            "have a `geometry_type` attribute."
        )
    return _geometry_result(ds, container)


def read_dsg(path, *, backend: FileAccess | None = None) -> DSGResult:
    """
    Read a file whatever its layout.

    ``layout`` is ``"orthogonal"`` or ``"ragged"`` for time series files and
    ``"geometry"`` for files holding only geometries. A time series file
    linked to geometries returns both parts.
    """
    ds = open_dsg(path, backend=backend)
    layout = classify_layout(ds)
    container = _single_container(ds)

    result = DSGResult(layout=layout, attrs=dict(ds.attrs))
    if layout is not None:
        result.timeseries = _timeseries_result(ds, layout)
    if container is not None:
        result.geometry = _geometry_result(ds, container)
        if layout is None:
            result.layout = "geometry"
    return result
