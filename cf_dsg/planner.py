"""
Turn an in-memory CF dataset into dimension and variable definitions.

Nothing here touches a file: the container builder executes the plan.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import xarray as xr
from xarray.conventions import cf_encoder

from .errors import (
    GeometryIndexInconsistent,
    InstanceMismatch,
    InvalidEncoding,
    RaggedIndexInconsistent,
    ShapeMismatch,
)
from .utils import as_str_array, parse_names_attr

PRECISIONS: dict[str, np.dtype] = {
    "double": np.dtype("float64"),
    "float": np.dtype("float32"),
    "integer": np.dtype("int32"),
    "short": np.dtype("int16"),
}

#: Attributes set after every variable has been written.
LINKAGE_ATTRS = ("geometry", "coordinates")

#: Attributes marking a variable as structural rather than data.
_METADATA_ATTRS = (
    "cf_role",
    "sample_dimension",
    "instance_dimension",
    "geometry_type",
    "grid_mapping_name",
    "axis",
    "nodes",
)


def precision_dtype(precision: str) -> np.dtype:
    try:
        return PRECISIONS[precision]
    except KeyError:
        raise ValueError(
            f"precision must be one of {tuple(PRECISIONS)!r}. Got {precision!r}"
        ) from None


def dtype_precision(dtype) -> str:
    """Inverse of :py:func:`precision_dtype`; unknown dtypes map to their name."""
    dtype = np.dtype(dtype)
    for name, candidate in PRECISIONS.items():
        if candidate == dtype:
            return name
    return dtype.name


def check_precision(values: np.ndarray, precision: str) -> None:
    """
    Raise ShapeMismatch if float ``values`` cannot be stored losslessly as ``precision``.

    NaN is ignored; it becomes the fill value.
    """
    dtype = precision_dtype(precision)
    if not np.issubdtype(dtype, np.integer):
        return
    finite = values[~np.isnan(values)]
    if (finite % 1 != 0).any():
        raise ShapeMismatch(
            f"Values with a fractional part cannot be stored as {precision!r}."
        )
    info = np.iinfo(dtype)
    if finite.size and (finite.min() < info.min or finite.max() > info.max):
        raise ShapeMismatch(
            f"Values in [{finite.min()}, {finite.max()}] do not fit in {precision!r}."
        )


@dataclass
class DSGNames:
    """Helper class to ease handling of all the variable names needed for CF timeseries."""

    def __init__(self, instance_dim: str = "station"):
        self.instance_dim: str = instance_dim
        self.strlen_dim: str = "name_strlen"
        self.instance_id: str = "station_name"
        self.lat: str = "lat"
        self.lon: str = "lon"
        self.alt: str = "alt"
        self.time: str = "time"
        self.obs_dim: str = "obs"
        self.row_size: str = "row_size"
        self.index: str = "station_index"

    @property
    def id_attrs(self) -> dict[str, str]:
        return {"cf_role": "timeseries_id", "long_name": "Station Names"}

    @property
    def lat_attrs(self) -> dict[str, str]:
        return {
            "units": "degrees_north",
            "standard_name": "latitude",
            "long_name": "latitude of the observation",
        }

    @property
    def lon_attrs(self) -> dict[str, str]:
        return {
            "units": "degrees_east",
            "standard_name": "longitude",
            "long_name": "longitude of the observation",
        }

    @property
    def alt_attrs(self) -> dict[str, str]:
        return {
            "units": "m",
            "standard_name": "height",
            "long_name": "vertical distance above the surface",
            "positive": "up",
            "axis": "Z",
        }

    @property
    def time_attrs(self) -> dict[str, str]:
        return {"standard_name": "time", "long_name": "time of measurement"}

    @property
    def row_size_attrs(self) -> dict[str, str]:
        return {
            "long_name": "number of observations for this station",
            "sample_dimension": self.obs_dim,
        }

    @property
    def index_attrs(self) -> dict[str, str]:
        return {
            "long_name": "which station this is",
            "instance_dimension": self.instance_dim,
        }

    @property
    def coordinates_attr(self) -> str:
        return f"{self.time} {self.lat} {self.lon} {self.instance_id}"


def validate_instances(names: Sequence, lats, lons, alts=None) -> np.ndarray:
    """
    Check that identifiers and coordinates describe the same instances.

    Returns
    -------
    numpy.ndarray
        The identifiers as strings.
    """
    ids = as_str_array(names)
    for label, values in (("lat", lats), ("lon", lons), ("alt", alts)):
        if values is not None and len(values) != len(ids):
            raise ShapeMismatch(
                f"instance count {len(ids)} vs {label} length {len(values)}"
            )
    if len(set(ids)) != len(ids):
        seen: set[str] = set()
        dupes = sorted({i for i in ids if i in seen or seen.add(i)})
        raise ShapeMismatch(f"Instance identifiers must be unique. Duplicated: {dupes!r}")
    return ids


@dataclass
class DimensionSpec:
    name: Hashable
    size: int | None


@dataclass
class VariableSpec:
    name: Hashable
    dtype: np.dtype
    dims: tuple[Hashable, ...]
    attrs: dict[str, Any]
    data: np.ndarray
    fill_value: Any = None


@dataclass
class ContainerPlan:
    dimensions: list[DimensionSpec] = field(default_factory=list)
    coordinate_variables: list[VariableSpec] = field(default_factory=list)
    data_variables: list[VariableSpec] = field(default_factory=list)
    attrs: dict[str, Any] = field(default_factory=dict)
    linkage: dict[Hashable, dict[str, str]] = field(default_factory=dict)

    @property
    def variables(self) -> list[VariableSpec]:
        return self.coordinate_variables + self.data_variables

    @property
    def sizes(self) -> dict[Hashable, int | None]:
        return {d.name: d.size for d in self.dimensions}

    def __getitem__(self, name: Hashable) -> VariableSpec:
        for var in self.variables:
            if var.name == name:
                return var
        raise KeyError(name)


def _referenced_metadata(ds: xr.Dataset) -> set[Hashable]:
    names: set[Hashable] = set()
    for var in ds.variables.values():
        if "geometry_type" in var.attrs:
            for attr in ("node_count", "part_node_count", "interior_ring"):
                names.update(parse_names_attr(var.attrs.get(attr)))
    return names


def is_metadata_variable(name: Hashable, ds: xr.Dataset) -> bool:
    """Coordinates, instance identifiers, ragged indexes and geometry structure."""
    var = ds.variables[name]
    if name in ds.coords or name in _referenced_metadata(ds):
        return True
    return any(attr in var.attrs for attr in _METADATA_ATTRS)


def validate_required_attrs(ds: xr.Dataset) -> None:
    """
    Check, before anything is written, that ``ds`` carries the CF attributes
    needed to read it back.
    """
    variables = ds.variables

    if ds.attrs.get("featureType") == "timeSeries":
        ids = [n for n, v in variables.items() if v.attrs.get("cf_role") == "timeseries_id"]
        if len(ids) != 1:
            raise InvalidEncoding(
                f"A timeSeries dataset needs exactly one variable with cf_role='timeseries_id'. Got {ids!r}"
            )

    for name, var in variables.items():
        standard_name = var.attrs.get("standard_name")
        if standard_name in ("latitude", "longitude") and "units" not in var.attrs:
            raise InvalidEncoding(f"Coordinate {name!r} ({standard_name}) has no units.")
        if standard_name == "time" and not (
            "units" in var.attrs
            or "units" in var.encoding
            or np.issubdtype(var.dtype, np.datetime64)
        ):
            raise InvalidEncoding(f"Time variable {name!r} has no units.")

        if sample_dim := var.attrs.get("sample_dimension"):
            if sample_dim not in ds.dims:
                raise InvalidEncoding(
                    f"{name!r} names sample_dimension {sample_dim!r}, which does not exist."
                )
            total = int(np.asarray(var.values).sum())
            if total != ds.sizes[sample_dim]:
                raise RaggedIndexInconsistent(
                    f"{name!r} sums to {total} but {sample_dim!r} has size {ds.sizes[sample_dim]}."
                )
        if instance_dim := var.attrs.get("instance_dimension"):
            if instance_dim not in ds.dims:
                raise InvalidEncoding(
                    f"{name!r} names instance_dimension {instance_dim!r}, which does not exist."
                )
            index = np.asarray(var.values)
            if index.size and (index.min() < 0 or index.max() >= ds.sizes[instance_dim]):
                raise RaggedIndexInconsistent(
                    f"{name!r} has indexes outside [0, {ds.sizes[instance_dim]})."
                )

        if "geometry_type" in var.attrs:
            _validate_container(ds, name)

        if container := var.attrs.get("geometry"):
            if container not in variables or "geometry_type" not in variables[container].attrs:
                raise InvalidEncoding(
                    f"{name!r} links to geometry container {container!r}, which does not exist."
                )


def _validate_container(ds: xr.Dataset, name: Hashable) -> None:
    attrs = ds.variables[name].attrs
    node_coordinates = parse_names_attr(attrs.get("node_coordinates"))
    if len(node_coordinates) < 2:
        raise InvalidEncoding(
            f"Geometry container {name!r} must name its node_coordinates."
        )
    for attr in ("node_count", "part_node_count", "interior_ring"):
        node_coordinates += parse_names_attr(attrs.get(attr))
    missing = [n for n in node_coordinates if n not in ds.variables]
    if missing:
        raise InvalidEncoding(
            f"Geometry container {name!r} refers to missing variables {missing!r}."
        )
    if node_count := attrs.get("node_count"):
        n_nodes = ds.variables[node_coordinates[0]].size
        total = int(ds.variables[node_count].values.sum())
        if total != n_nodes:
            raise GeometryIndexInconsistent(
                f"{node_count!r} sums to {total} but there are {n_nodes} nodes."
            )


def _encode_chars(var: xr.Variable, name: Hashable, encoding: dict) -> xr.Variable:
    encoded = np.char.encode(as_str_array(var.values.ravel()), "utf-8")
    strlen = max(encoded.dtype.itemsize, 1)
    chars = encoded.astype(f"S{strlen}").view("S1").reshape(var.shape + (strlen,))
    char_dim = encoding.get("char_dim_name", f"{name}_strlen")
    return xr.Variable(var.dims + (char_dim,), chars, attrs=var.attrs)


def plan_container(ds: xr.Dataset) -> ContainerPlan:
    """
    Compute the dimensions and variable definitions needed to store ``ds``.

    Parameters
    ----------
    ds : xarray.Dataset
        A CF dataset in decoded form: datetimes, NaN for missing values and
        unicode identifiers. ``encoding`` entries (``units``, ``dtype``,
        ``_FillValue``, ``char_dim_name``) steer how they are stored.

    Returns
    -------
    ContainerPlan
    """
    validate_required_attrs(ds)

    encoded, global_attrs = cf_encoder(dict(ds.variables), dict(ds.attrs))

    plan = ContainerPlan(attrs=dict(global_attrs))
    sizes: dict[Hashable, int] = {}
    for name, var in encoded.items():
        if var.dtype.kind in "UO":
            var = _encode_chars(var, name, ds.variables[name].encoding)

        for dim, size in zip(var.dims, var.shape):
            if sizes.setdefault(dim, size) != size:
                raise ShapeMismatch(
                    f"Dimension {dim!r} has size {sizes[dim]} but {name!r} needs {size}."
                )

        attrs = dict(var.attrs)
        fill_value = attrs.pop("_FillValue", var.encoding.get("_FillValue"))
        spec = VariableSpec(
            name=name,
            dtype=var.dtype,
            dims=tuple(var.dims),
            attrs=attrs,
            data=np.asarray(var.values),
            fill_value=fill_value,
        )
        if is_metadata_variable(name, ds):
            plan.coordinate_variables.append(spec)
        else:
            linkage = {k: attrs.pop(k) for k in LINKAGE_ATTRS if k in attrs}
            if linkage:
                plan.linkage[name] = linkage
            plan.data_variables.append(spec)

    plan.dimensions = [DimensionSpec(dim, size) for dim, size in sizes.items()]
    return plan


def check_append(existing: xr.Dataset, new: xr.Dataset, names: DSGNames) -> list[Hashable]:
    """
    Check that ``new`` can be added to a file holding ``existing``.

    Parameters
    ----------
    existing : xarray.Dataset
        Decoded contents of the file.
    new : xarray.Dataset
        Decoded dataset about to be written.
    names : DSGNames

    Returns
    -------
    list
        Variables of ``new`` already present in the file; they are skipped
        when writing.
    """
    dim = names.instance_dim
    if dim not in existing.dims:
        raise ShapeMismatch(
            f"The existing file has no instance dimension {dim!r}. "
            f"Dimensions: {list(existing.dims)!r}"
        )
    if dim in new.dims and existing.sizes[dim] != new.sizes[dim]:
        raise ShapeMismatch(
            f"existing instance dimension {dim!r} has size {existing.sizes[dim]} "
            f"vs new instance count {new.sizes[dim]}"
        )
    for d, size in new.sizes.items():
        if d in existing.dims and existing.sizes[d] != size:
            raise ShapeMismatch(
                f"Dimension {d!r} has size {existing.sizes[d]} in the file vs {size} in the new data."
            )

    skip = []
    for name in new.variables:
        if name not in existing.variables:
            continue
        old, candidate = existing[name].values, new[name].values
        if old.dtype.kind in "USO" or candidate.dtype.kind in "USO":
            same = old.shape == candidate.shape and (
                as_str_array(old.ravel()) == as_str_array(candidate.ravel())
            ).all()
        else:
            same = old.shape == candidate.shape and np.array_equal(
                old, candidate, equal_nan=old.dtype.kind in "fc"
            )
        if not is_metadata_variable(name, new) and not (
            same and new[name].dims == (dim,)
        ):
            # per-instance attributes shared with the file are fine
            raise ValueError(
                f"Variable {name!r} already exists in the file; choose another name."
            )
        if not same:
            if new[name].attrs.get("cf_role") == "timeseries_id":
                raise InstanceMismatch(_describe_id_mismatch(old, candidate))
            raise ShapeMismatch(
                f"Variable {name!r} in the file differs from the new data."
            )
        skip.append(name)
    return skip


def _describe_id_mismatch(old, new) -> str:
    old, new = as_str_array(old), as_str_array(new)
    if sorted(old) == sorted(new):
        for i, (a, b) in enumerate(zip(old, new)):
            if a != b:
                return (
                    f"Instances are in a different order: position {i} is {a!r} "
                    f"in the file but {b!r} in the new data."
                )
    extra = sorted(set(new) - set(old))
    missing = sorted(set(old) - set(new))
    return (
        f"Instances do not match the file. Not in the file: {extra!r}; "
        f"missing from the new data: {missing!r}."
    )
