"""
Ragged array representation of time series (CF "long" layout).

Contiguous ragged arrays store the observations of each instance as one run
and record the run lengths in a count variable (``row_size``). Indexed ragged
arrays record, for every observation, the index of the instance it belongs to.

References
----------
CF conventions on `ragged arrays <http://cfconventions.org/Data/cf-conventions/cf-conventions-1.8/cf-conventions.html#representations-features>`_
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import RaggedIndexInconsistent, ShapeMismatch
from .options import OPTIONS, RAGGED_ENCODINGS
from .utils import as_str_array, to_utc_index

__all__ = [
    "RaggedIndex",
    "RaggedArrays",
    "encode_ragged",
    "decode_ragged",
    "decode_contiguous",
    "decode_indexed",
    "contiguous_to_indexed",
    "indexed_to_contiguous",
    "ragged_to_wide",
]


@dataclass
class RaggedIndex:
    """Either per-instance counts (contiguous) or per-observation instance indexes."""

    n_instances: int
    row_size: np.ndarray | None = None
    index: np.ndarray | None = None

    @property
    def encoding(self) -> str:
        return "contiguous" if self.row_size is not None else "indexed"

    @property
    def n_obs(self) -> int:
        if self.row_size is not None:
            return int(self.row_size.sum())
        return len(self.index)


@dataclass
class RaggedArrays:
    instance_names: np.ndarray
    times: pd.DatetimeIndex
    values: np.ndarray
    index: RaggedIndex


def _stable_order(codes: np.ndarray, times: pd.DatetimeIndex) -> np.ndarray:
    # sort by time, then by instance; both stable so ties keep row order
    order = np.argsort(times.asi8, kind="stable")
    return order[np.argsort(codes[order], kind="stable")]


def encode_ragged(
    obs: pd.DataFrame,
    *,
    instances: Sequence | None = None,
    encoding: str | None = None,
    instance_col: str = "instance",
    time_col: str = "time",
    value_col: str = "value",
) -> RaggedArrays:
    """
    Encode a long-format table (one row per observation) as a ragged array.

    Rows are grouped by instance and sorted by time within each instance.
    The sort is stable: rows sharing an instance and a timestamp keep their
    original order.

    Parameters
    ----------
    obs : pandas.DataFrame
        Table with an instance, a time and a value column.
    instances : sequence, optional
        Instance order. Defaults to the order in which instances first appear
        in ``obs``. Instances without observations get a zero count.
    encoding : {"contiguous", "indexed"}, optional
        Defaults to the ``ragged_encoding`` option.
    instance_col, time_col, value_col : str
        Column names in ``obs``.

    Returns
    -------
    RaggedArrays
    """
    if encoding is None:
        encoding = OPTIONS["ragged_encoding"]
    if encoding not in RAGGED_ENCODINGS:
        raise ValueError(
            f"encoding must be one of {RAGGED_ENCODINGS!r}. Got {encoding!r}"
        )
    missing = [c for c in (instance_col, time_col, value_col) if c not in obs.columns]
    if missing:
        raise ValueError(
            f"Columns {missing!r} not found in the observation table. "
            f"Available columns: {list(obs.columns)!r}"
        )

    ids = as_str_array(obs[instance_col].tolist())
    times = to_utc_index(obs[time_col])
    if times.hasnans:
        raise ValueError(
            f"{int(times.isna().sum())} observations have no timestamp."
        )
    values = np.asarray(obs[value_col])

    if instances is None:
        names = as_str_array(pd.unique(ids))
    else:
        names = as_str_array(instances)
        if len(set(names)) != len(names):
            raise ShapeMismatch(
                f"Instance names must be unique. Got {len(names)} names, "
                f"{len(set(names))} distinct."
            )
        unknown = sorted(set(ids) - set(names))
        if unknown:
            raise ShapeMismatch(
                f"Observations refer to instances not in the instance list: {unknown!r}"
            )

    codes = pd.Index(names).get_indexer(ids)
    order = _stable_order(codes, times)
    codes = codes[order]

    if encoding == "contiguous":
        index = RaggedIndex(
            len(names), row_size=np.bincount(codes, minlength=len(names)).astype(np.int32)
        )
    else:
        index = RaggedIndex(len(names), index=codes.astype(np.int32))

    return RaggedArrays(
        instance_names=names,
        times=times[order],
        values=values[order],
        index=index,
    )


def _check_lengths(times, values, n_obs=None):
    if len(times) != len(values):
        raise RaggedIndexInconsistent(
            f"Time and value arrays differ in length: {len(times)} vs {len(values)}."
        )
    if n_obs is not None and n_obs != len(values):
        raise RaggedIndexInconsistent(
            f"Observation dimension has size {n_obs} but {len(values)} values were given."
        )


def _series(times, values, names, n_instances, slices):
    if names is None:
        names = range(n_instances)
    elif len(names) != n_instances:
        raise RaggedIndexInconsistent(
            f"Got {len(names)} instance names for {n_instances} instances."
        )
    return [
        pd.Series(values[s], index=pd.DatetimeIndex(times[s], name="time"), name=name)
        for name, s in zip(names, slices)
    ]


def decode_contiguous(
    row_size,
    times,
    values,
    *,
    instance_names: Sequence | None = None,
    n_obs: int | None = None,
) -> list[pd.Series]:
    """
    Split contiguous ragged arrays into one time series per instance.

    Parameters
    ----------
    row_size : array-like of int
        Number of observations of each instance.
    times, values : array-like
        Flat observation arrays.
    instance_names : sequence, optional
        Names given to the returned series.
    n_obs : int, optional
        Declared size of the observation dimension.

    Returns
    -------
    list of pandas.Series
        One series indexed by time per instance, in instance order.
    """
    row_size = np.asarray(row_size, dtype=np.int64)
    times = pd.DatetimeIndex(times)
    values = np.asarray(values)
    _check_lengths(times, values, n_obs)
    if (row_size < 0).any():
        raise RaggedIndexInconsistent("row_size contains negative counts.")
    if int(row_size.sum()) != len(values):
        raise RaggedIndexInconsistent(
            f"row_size sums to {int(row_size.sum())} but the observation "
            f"dimension has size {len(values)}."
        )

    offsets = np.concatenate([[0], np.cumsum(row_size)])
    slices = [slice(start, stop) for start, stop in zip(offsets[:-1], offsets[1:])]
    return _series(times, values, instance_names, len(row_size), slices)


def decode_indexed(
    index,
    times,
    values,
    n_instances: int,
    *,
    instance_names: Sequence | None = None,
) -> list[pd.Series]:
    """
    Gather indexed ragged arrays into one time series per instance.

    Observations of an instance are returned in time order, keeping file
    order for equal timestamps.

    Parameters
    ----------
    index : array-like of int
        Instance index (0-based) of every observation.
    times, values : array-like
        Flat observation arrays.
    n_instances : int
        Size of the instance dimension.
    instance_names : sequence, optional
        Names given to the returned series.

    Returns
    -------
    list of pandas.Series
    """
    index = np.asarray(index, dtype=np.int64)
    times = pd.DatetimeIndex(times)
    values = np.asarray(values)
    _check_lengths(times, values, len(index))
    bad = (index < 0) | (index >= n_instances)
    if bad.any():
        raise RaggedIndexInconsistent(
            f"Instance index out of range [0, {n_instances}): "
            f"{sorted(set(index[bad].tolist()))!r}"
        )

    order = _stable_order(index, times)
    row_size = np.bincount(index, minlength=n_instances)
    offsets = np.concatenate([[0], np.cumsum(row_size)])
    slices = [order[start:stop] for start, stop in zip(offsets[:-1], offsets[1:])]
    return _series(times, values, instance_names, n_instances, slices)


def decode_ragged(
    index: RaggedIndex,
    times,
    values,
    *,
    instance_names: Sequence | None = None,
) -> list[pd.Series]:
    """Dispatch to :py:func:`decode_contiguous` or :py:func:`decode_indexed`."""
    if index.row_size is not None:
        if len(index.row_size) != index.n_instances:
            raise RaggedIndexInconsistent(
                f"row_size has {len(index.row_size)} entries for "
                f"{index.n_instances} instances."
            )
        return decode_contiguous(
            index.row_size, times, values, instance_names=instance_names
        )
    if index.index is None:
        raise RaggedIndexInconsistent("Neither row_size nor an instance index given.")
    return decode_indexed(
        index.index, times, values, index.n_instances, instance_names=instance_names
    )


def contiguous_to_indexed(row_size) -> np.ndarray:
    """Per-observation instance index equivalent to ``row_size``."""
    row_size = np.asarray(row_size, dtype=np.int64)
    if (row_size < 0).any():
        raise RaggedIndexInconsistent("row_size contains negative counts.")
    return np.repeat(np.arange(len(row_size), dtype=np.int32), row_size)


def indexed_to_contiguous(index, times, values, n_instances: int):
    """
    Reorder indexed ragged arrays into contiguous ones.

    Returns
    -------
    row_size : numpy.ndarray
    times : pandas.DatetimeIndex
    values : numpy.ndarray
    """
    index = np.asarray(index, dtype=np.int64)
    times = pd.DatetimeIndex(times)
    values = np.asarray(values)
    _check_lengths(times, values, len(index))
    if ((index < 0) | (index >= n_instances)).any():
        raise RaggedIndexInconsistent(
            f"Instance index out of range [0, {n_instances})."
        )
    order = _stable_order(index, times)
    row_size = np.bincount(index, minlength=n_instances).astype(np.int32)
    return row_size, times[order], values[order]


def ragged_to_wide(series: Sequence[pd.Series]) -> pd.DataFrame:
    """
    Combine per-instance series on the union of their timestamps.

    Instances without an observation at a timestamp get NaN.
    """
    for s in series:
        if s.index.has_duplicates:
            raise ValueError(
                f"Instance {s.name!r} has several observations at the same time; "
                "it cannot be placed on a shared time axis."
            )
    if not series:
        return pd.DataFrame(index=pd.DatetimeIndex([], name="time"))
    wide = pd.concat(list(series), axis=1).sort_index()
    wide.index.name = "time"
    return wide
