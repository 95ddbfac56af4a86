"""
Time series of discrete instances (stations) as CF ``timeSeries`` datasets.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
import xarray as xr

from .errors import ShapeMismatch
from .options import OPTIONS
from .orthogonal import decode_orthogonal, encode_orthogonal
from .planner import (
    DSGNames,
    check_precision,
    dtype_precision,
    is_metadata_variable,
    precision_dtype,
    validate_instances,
)
from .ragged import RaggedIndex, decode_ragged, encode_ragged, ragged_to_wide
from .utils import as_str_array, to_utc_index

__all__ = [
    "Instance",
    "TimeSeriesSet",
    "encode_timeseries",
    "decode_timeseries",
    "instances_to_cf",
    "cf_to_instances",
]


@dataclass
class Instance:
    """One station: identifier, location and scalar attributes."""

    name: str
    lat: float
    lon: float
    alt: float | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class TimeSeriesSet:
    """
    One data variable observed at a sequence of instances.

    Exactly one of ``values`` (orthogonal layout, shape ``(time, instance)``
    with ``times`` giving the shared axis) or ``observations`` (ragged
    layout, long table with ``instance``, ``time`` and ``value`` columns)
    is set.
    """

    name: str
    instances: list[Instance]
    times: pd.DatetimeIndex | None = None
    values: np.ndarray | None = None
    observations: pd.DataFrame | None = None
    units: str = ""
    long_name: str | None = None
    precision: str = "double"
    fill_value: Any = None

    def __post_init__(self):
        if (self.values is None) == (self.observations is None):
            raise ValueError(
                "Exactly one of `values` (orthogonal) or `observations` (ragged) must be given."
            )
        if self.values is not None:
            if self.times is None:
                raise ValueError("`times` is required with `values`.")
            self.times = to_utc_index(self.times)
            self.values = np.asarray(self.values)
            if self.values.ndim != 2:
                raise ShapeMismatch(
                    f"`values` must be a (time, instance) matrix. Got {self.values.ndim} dimensions."
                )
            if self.values.shape[0] != len(self.times):
                raise ShapeMismatch(
                    f"timestamp count {len(self.times)} vs value rows {self.values.shape[0]}"
                )
        precision_dtype(self.precision)

    @classmethod
    def from_wide(
        cls,
        name: str,
        table: pd.DataFrame,
        instances: Sequence[Instance],
        *,
        time_col: str | None = None,
        **kwargs,
    ) -> TimeSeriesSet:
        """Build from a table with one row per timestamp and one column per instance."""
        if time_col is not None:
            table = table.set_index(time_col)
        return cls(
            name=name,
            instances=list(instances),
            times=table.index,
            values=table.to_numpy(),
            **kwargs,
        )

    @classmethod
    def from_long(
        cls,
        name: str,
        obs: pd.DataFrame,
        instances: Sequence[Instance],
        *,
        instance_col: str = "instance",
        time_col: str = "time",
        value_col: str = "value",
        **kwargs,
    ) -> TimeSeriesSet:
        """Build from a table with one row per observation."""
        obs = obs[[instance_col, time_col, value_col]].set_axis(
            ["instance", "time", "value"], axis=1
        )
        return cls(name=name, instances=list(instances), observations=obs, **kwargs)

    @property
    def layout(self) -> str:
        return "orthogonal" if self.values is not None else "ragged"

    @property
    def instance_names(self) -> list[str]:
        return [i.name for i in self.instances]

    def series(self, instance: str) -> pd.Series:
        """The (time, value) sequence of one instance."""
        names = self.instance_names
        if instance not in names:
            raise KeyError(instance)
        if self.values is not None:
            j = names.index(instance)
            return pd.Series(
                self.values[:, j], index=pd.DatetimeIndex(self.times, name="time"), name=instance
            )
        obs = self.observations
        sel = obs[as_str_array(obs["instance"].tolist()) == instance]
        series = pd.Series(
            sel["value"].to_numpy(),
            index=pd.DatetimeIndex(sel["time"], name="time"),
            name=instance,
        )
        return series.sort_index(kind="stable")

    def to_wide(self) -> pd.DataFrame:
        """Time by instance table; ragged data are placed on the union of timestamps."""
        if self.values is not None:
            return decode_orthogonal(self.times, self.values, self.instance_names)
        return ragged_to_wide([self.series(name) for name in self.instance_names])


def instances_to_cf(
    instances: Sequence[Instance], names: DSGNames | None = None
) -> xr.Dataset:
    """
    Identifier, latitude, longitude (and altitude) variables along the instance dimension.

    Scalar ``attributes`` of the instances become data variables along the
    instance dimension.
    """
    if names is None:
        names = DSGNames()
    instances = list(instances)
    alts = [i.alt for i in instances]
    has_alt = any(a is not None for a in alts)
    ids = validate_instances(
        [i.name for i in instances],
        [i.lat for i in instances],
        [i.lon for i in instances],
    )

    dim = names.instance_dim
    coords = {
        names.instance_id: xr.Variable((dim,), ids, names.id_attrs),
        names.lat: xr.Variable(
            (dim,), np.array([i.lat for i in instances], dtype=np.float64), names.lat_attrs
        ),
        names.lon: xr.Variable(
            (dim,), np.array([i.lon for i in instances], dtype=np.float64), names.lon_attrs
        ),
    }
    if has_alt:
        coords[names.alt] = xr.Variable(
            (dim,),
            np.array([np.nan if a is None else a for a in alts], dtype=np.float64),
            names.alt_attrs,
        )
    ds = xr.Dataset(coords=coords)
    ds[names.instance_id].encoding["char_dim_name"] = names.strlen_dim

    keys: dict[str, None] = {}
    for instance in instances:
        keys.update(dict.fromkeys(instance.attributes))
    if keys:
        table = pd.DataFrame([i.attributes for i in instances], columns=list(keys))
        ds = ds.merge(attributes_to_cf(table, names))
    return ds


def attributes_to_cf(table: pd.DataFrame, names: DSGNames | None = None) -> xr.Dataset:
    """One variable along the instance dimension per column of ``table``."""
    if names is None:
        names = DSGNames()
    data_vars = {}
    for column, values in table.items():
        if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
            data = values.to_numpy()
        else:
            data = as_str_array(["" if pd.isna(v) else v for v in values])
        data_vars[str(column)] = xr.Variable((names.instance_dim,), data)
        if data.dtype.kind == "U":
            data_vars[str(column)].encoding["char_dim_name"] = f"{column}_strlen"
    return xr.Dataset(data_vars)


def _value_encoding(precision: str, fill_value) -> dict:
    dtype = precision_dtype(precision)
    if fill_value is None:
        fill_value = OPTIONS["fill_value"]
    return {"dtype": dtype, "_FillValue": dtype.type(fill_value)}


def _time_encoding(times) -> dict:
    """
    Integer encoding of ``times`` in the ``time_units`` option.

    If a timestamp is not a whole multiple of that unit, the units are left
    to xarray, which picks one fine enough to store every timestamp exactly.
    """
    units = OPTIONS["time_units"]
    step, _, reference = units.partition(" since ")
    offsets = pd.DatetimeIndex(times) - to_utc_index([reference])[0]
    if (offsets.asi8 % pd.Timedelta(1, unit=step).value != 0).any():
        return {"calendar": "standard", "dtype": "int64"}
    return {"units": units, "calendar": "standard", "dtype": "int64"}



def encode_timeseries(
    ts: TimeSeriesSet,
    *,
    encoding: str | None = None,
    names: DSGNames | None = None,
    attributes: dict | None = None,
) -> xr.Dataset:
    """
    Encode a :py:class:`TimeSeriesSet` as a CF ``timeSeries`` dataset.

    Parameters
    ----------
    ts : TimeSeriesSet
    encoding : {"contiguous", "indexed"}, optional
        Ragged representation for ``observations``. Ignored for the orthogonal layout.
    names : DSGNames, optional
    attributes : dict, optional
        Global attributes.

    Returns
    -------
    xarray.Dataset
        Decoded values with ``encoding`` set so that :py:func:`cf_dsg.planner.plan_container`
        stores them with the requested precision and fill value.
    """
    if names is None:
        names = DSGNames()

    ds = instances_to_cf(ts.instances, names)
    ids = ds[names.instance_id].values
    var_attrs = {"units": ts.units, "long_name": ts.long_name or ts.name}

    if ts.layout == "orthogonal":
        table = pd.DataFrame(ts.values, index=ts.times)
        arrays = encode_orthogonal(
            table, ids, precision=ts.precision, fill_value=ts.fill_value
        )
        ds = ds.assign_coords(
            {names.time: xr.Variable((names.time,), arrays.times, names.time_attrs)}
        )
        data = xr.Variable((names.time, names.instance_dim), arrays.values, var_attrs)
        data.encoding.update(arrays.encoding)
    else:
        arrays = encode_ragged(ts.observations, instances=ids, encoding=encoding)
        values = _check_ragged_values(arrays.values, ts.precision)
        ds = ds.assign_coords(
            {names.time: xr.Variable((names.obs_dim,), arrays.times, names.time_attrs)}
        )
        if arrays.index.row_size is not None:
            ds[names.row_size] = xr.Variable(
                (names.instance_dim,), arrays.index.row_size, names.row_size_attrs
            )
        else:
            ds[names.index] = xr.Variable(
                (names.obs_dim,), arrays.index.index, names.index_attrs
            )
        data = xr.Variable((names.obs_dim,), values, var_attrs)
        data.encoding.update(_value_encoding(ts.precision, ts.fill_value))

    data.attrs["coordinates"] = " ".join(
        n for n in (names.time, names.lat, names.lon, names.alt, names.instance_id) if n in ds
    )
    ds[ts.name] = data
    ds[names.time].encoding.update(_time_encoding(ds[names.time].values))

    ds.attrs.update(
        {
            "Conventions": OPTIONS["conventions"],
            "featureType": "timeSeries",
            "cdm_data_type": "Station",
        }
    )
    ds.attrs.update(attributes or {})
    return ds


def _check_ragged_values(values: np.ndarray, precision: str) -> np.ndarray:
    if values.dtype.kind not in "iuf":
        try:
            values = values.astype(np.float64)
        except (TypeError, ValueError) as e:
            raise ShapeMismatch(
                f"Observation values of dtype {values.dtype} cannot be stored as {precision!r}."
            ) from e
    values = values.astype(np.float64)
    check_precision(values, precision)
    return values


def _find_by_attr(ds: xr.Dataset, attr: str, value=None) -> list[Hashable]:
    return [
        name
        for name, var in ds.variables.items()
        if attr in var.attrs and (value is None or var.attrs[attr] == value)
    ]


def _instance_coordinate(ds, dim, standard_names) -> Hashable | None:
    for name, var in ds.variables.items():
        if var.dims == (dim,) and var.attrs.get("standard_name") in standard_names:
            return name
    return None


def cf_to_instances(ds: xr.Dataset) -> tuple[Hashable, list[Instance]]:
    """
    Read the instances of a decoded CF ``timeSeries`` dataset.

    Returns
    -------
    dim : hashable
        The instance dimension.
    instances : list of Instance
    """
    id_names = _find_by_attr(ds, "cf_role", "timeseries_id")
    if len(id_names) != 1:
        raise ValueError(
            f"Expected one variable with cf_role='timeseries_id'. Got {id_names!r}"
        )
    id_var = ds[id_names[0]]
    (dim,) = id_var.dims
    ids = as_str_array(id_var.values)

    lat = _instance_coordinate(ds, dim, ("latitude",))
    lon = _instance_coordinate(ds, dim, ("longitude",))
    alt = _instance_coordinate(ds, dim, ("height", "altitude"))
    lats = ds[lat].values if lat is not None else np.full(len(ids), np.nan)
    lons = ds[lon].values if lon is not None else np.full(len(ids), np.nan)
    alts = ds[alt].values if alt is not None else None

    attr_names = [
        name
        for name, var in ds.variables.items()
        if var.dims == (dim,) and not is_metadata_variable(name, ds)
    ]
    instances = []
    for i, name in enumerate(ids):
        attributes = {}
        for attr in attr_names:
            value = ds[attr].values[i]
            if isinstance(value, bytes):
                value = value.decode("utf-8")
            attributes[str(attr)] = value.item() if hasattr(value, "item") else value
        instances.append(
            Instance(
                name=str(name),
                lat=float(lats[i]),
                lon=float(lons[i]),
                alt=None if alts is None or np.isnan(alts[i]) else float(alts[i]),
                attributes=attributes,
            )
        )
    return dim, instances


def classify_layout(ds: xr.Dataset) -> str | None:
    """
    ``"ragged"`` when a count or index variable is present, ``"orthogonal"``
    when instance identifiers and a time variable are, ``None`` otherwise.
    """
    if _find_by_attr(ds, "sample_dimension") or _find_by_attr(ds, "instance_dimension"):
        return "ragged"
    if _find_by_attr(ds, "cf_role", "timeseries_id") and _time_variables(ds):
        return "orthogonal"
    return None


def _time_variables(ds: xr.Dataset) -> list[Hashable]:
    return [
        name
        for name, var in ds.variables.items()
        if var.attrs.get("standard_name") == "time"
        or np.issubdtype(var.dtype, np.datetime64)
    ]


def decode_timeseries(ds: xr.Dataset) -> list[TimeSeriesSet]:
    """
    Decode every data variable of a CF ``timeSeries`` dataset.

    Parameters
    ----------
    ds : xarray.Dataset
        CF-decoded dataset (datetimes and NaN for missing values), e.g. from
        :py:func:`cf_dsg.open_dsg`.

    Returns
    -------
    list of TimeSeriesSet
    """
    layout = classify_layout(ds)
    if layout is None:
        raise ValueError("No variable with cf_role='timeseries_id' found.")
    dim, instances = cf_to_instances(ds)
    ids = [i.name for i in instances]

    time_names = _time_variables(ds)
    if not time_names:
        raise ValueError("No time variable found.")
    time = ds[time_names[0]]
    (time_dim,) = time.dims

    if layout == "ragged":
        count_names = _find_by_attr(ds, "sample_dimension")
        if count_names:
            index = RaggedIndex(len(ids), row_size=ds[count_names[0]].values)
        else:
            (index_name,) = _find_by_attr(ds, "instance_dimension")
            index = RaggedIndex(len(ids), index=ds[index_name].values)

    results = []
    for name, var in ds.data_vars.items():
        if is_metadata_variable(name, ds) or time_dim not in var.dims:
            continue
        common = dict(
            name=str(name),
            instances=instances,
            units=var.attrs.get("units", ""),
            long_name=var.attrs.get("long_name"),
            precision=_precision(var),
            fill_value=var.encoding.get("_FillValue"),
        )
        if layout == "orthogonal":
            values = var.transpose(time_dim, dim).values
            table = decode_orthogonal(time.values, values, ids)
            results.append(
                TimeSeriesSet(times=table.index, values=table.to_numpy(), **common)
            )
        else:
            series = decode_ragged(index, time.values, var.values, instance_names=ids)
            obs = pd.DataFrame(
                {
                    "instance": np.repeat(ids, [len(s) for s in series]),
                    "time": np.concatenate([s.index.values for s in series])
                    if series
                    else np.array([], dtype="datetime64[ns]"),
                    "value": np.concatenate([s.to_numpy() for s in series])
                    if series
                    else np.array([], dtype=np.float64),
                }
            )
            results.append(TimeSeriesSet(observations=obs, **common))
    return results


def _precision(var: xr.DataArray) -> str:
    precision = dtype_precision(var.encoding.get("dtype", var.dtype))
    return precision if precision in ("double", "float", "integer", "short") else "double"
