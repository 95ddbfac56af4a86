"""
Orthogonal multidimensional array representation of time series.

Every instance shares one time axis, so the data are a dense
(time, instance) matrix.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .errors import ShapeMismatch
from .options import OPTIONS
from .planner import check_precision, precision_dtype
from .utils import as_str_array, to_utc_index

__all__ = ["OrthogonalArrays", "encode_orthogonal", "decode_orthogonal"]


@dataclass
class OrthogonalArrays:
    times: pd.DatetimeIndex
    values: np.ndarray
    encoding: dict = field(default_factory=dict)


def encode_orthogonal(
    table: pd.DataFrame,
    instance_names: Sequence,
    *,
    time_col: str | None = None,
    precision: str = "double",
    fill_value=None,
) -> OrthogonalArrays:
    """
    Encode a wide table as a dense (time, instance) array.

    Parameters
    ----------
    table : pandas.DataFrame
        One row per timestamp. Columns other than ``time_col`` are aligned,
        in order, with ``instance_names``.
    instance_names : sequence
        Instance identifiers.
    time_col : str, optional
        Column holding the timestamps. The index is used if not given.
    precision : {"double", "float", "integer", "short"}
        Storage type of the values.
    fill_value : optional
        Value written for missing data. Defaults to the ``fill_value`` option.

    Returns
    -------
    OrthogonalArrays
        Values keep NaN for missing data; ``encoding`` carries the storage
        dtype and ``_FillValue`` applied when the file is written.
    """
    dtype = precision_dtype(precision)
    if time_col is None:
        times = to_utc_index(table.index)
        data = table
    else:
        if time_col not in table.columns:
            raise ValueError(f"Time column {time_col!r} not found in table.")
        times = to_utc_index(table[time_col])
        data = table.drop(columns=time_col)

    names = as_str_array(instance_names)
    if data.shape[1] != len(names):
        raise ShapeMismatch(
            f"table has {data.shape[1]} data columns vs instance count {len(names)}"
        )
    if times.hasnans:
        raise ShapeMismatch(f"{int(times.isna().sum())} rows have no timestamp.")

    for name, column in data.items():
        if not pd.api.types.is_numeric_dtype(column) or pd.api.types.is_bool_dtype(
            column
        ):
            raise ShapeMismatch(
                f"Column {name!r} has dtype {column.dtype} which cannot be stored as {precision!r}."
            )
    values = data.to_numpy(dtype=np.float64)
    check_precision(values, precision)

    if fill_value is None:
        fill_value = OPTIONS["fill_value"]
    return OrthogonalArrays(
        times=times,
        values=values,
        encoding={"dtype": dtype, "_FillValue": dtype.type(fill_value)},
    )


def decode_orthogonal(
    times,
    values,
    instance_names: Sequence,
    fill_value=None,
) -> pd.DataFrame:
    """
    Split a dense (time, instance) array back into one column per instance.

    Parameters
    ----------
    times : array-like
        Shared time axis.
    values : array-like
        2D array with shape ``(len(times), len(instance_names))``.
    instance_names : sequence
        Column names, in instance order.
    fill_value : optional
        Values equal to it are returned as NaN.

    Returns
    -------
    pandas.DataFrame
        Indexed by time, one column per instance.
    """
    times = pd.DatetimeIndex(times, name="time")
    names = as_str_array(instance_names)
    values = np.asarray(values)
    if values.shape != (len(times), len(names)):
        raise ShapeMismatch(
            f"values have shape {values.shape} vs (time, instance) = "
            f"({len(times)}, {len(names)})"
        )
    if fill_value is not None:
        values = np.where(values == fill_value, np.nan, values.astype(np.float64))
    return pd.DataFrame(values, index=times, columns=pd.Index(names, name="instance"))
