import numpy as np
import pandas as pd
import pytest

from ..errors import ShapeMismatch
from ..orthogonal import decode_orthogonal, encode_orthogonal


@pytest.fixture
def table():
    return pd.DataFrame(
        [[1, 2, 3], [4, 5, 6]],
        index=pd.to_datetime(["2020-01-01", "2020-02-01"]),
        columns=["a", "b", "c"],
    )


def test_roundtrip(table):
    arrays = encode_orthogonal(table, ["A", "B", "C"])
    assert arrays.values.shape == (2, 3)
    assert arrays.encoding["dtype"] == np.dtype("float64")
    assert arrays.encoding["_FillValue"] == -999.0

    decoded = decode_orthogonal(arrays.times, arrays.values, ["A", "B", "C"])
    assert decoded.columns.name == "instance"
    assert decoded.index.name == "time"
    assert decoded["B"].tolist() == [2, 5]
    assert list(decoded.index) == [pd.Timestamp("2020-01-01"), pd.Timestamp("2020-02-01")]


def test_time_column(table):
    arrays = encode_orthogonal(
        table.reset_index(names="when"), ["A", "B", "C"], time_col="when"
    )
    assert list(arrays.times) == list(table.index)

    with pytest.raises(ValueError, match="Time column 'time' not found"):
        encode_orthogonal(table, ["A", "B", "C"], time_col="time")


def test_timezone_aware(table):
    table.index = table.index.tz_localize("US/Mountain")
    with pytest.warns(UserWarning, match="to UTC"):
        arrays = encode_orthogonal(table, ["A", "B", "C"])
    assert arrays.times.tz is None
    assert arrays.times[0] == pd.Timestamp("2020-01-01 07:00")


def test_precision(table):
    arrays = encode_orthogonal(table, ["A", "B", "C"], precision="short", fill_value=-1)
    assert arrays.encoding == {"dtype": np.dtype("int16"), "_FillValue": np.int16(-1)}

    with pytest.raises(ShapeMismatch, match="fractional part"):
        encode_orthogonal(table / 2, ["A", "B", "C"], precision="integer")

    with pytest.raises(ShapeMismatch, match="do not fit in 'short'"):
        encode_orthogonal(table * 10_000, ["A", "B", "C"], precision="short")

    with pytest.raises(ValueError, match="precision must be one of"):
        encode_orthogonal(table, ["A", "B", "C"], precision="quad")


def test_shape_mismatch(table):
    with pytest.raises(ShapeMismatch, match="table has 3 data columns vs instance count 2"):
        encode_orthogonal(table, ["A", "B"])

    with pytest.raises(ShapeMismatch, match="cannot be stored as 'double'"):
        encode_orthogonal(table.assign(c=["x", "y"]), ["A", "B", "C"])

    with pytest.raises(ShapeMismatch, match=r"shape \(2, 3\) vs \(time, instance\) = \(2, 2\)"):
        decode_orthogonal(table.index, table.to_numpy(), ["A", "B"])


def test_decode_fill_value(table):
    decoded = decode_orthogonal(table.index, table.to_numpy(), ["A", "B", "C"], fill_value=5)
    assert np.isnan(decoded.loc["2020-02-01", "B"])
    assert decoded.loc["2020-02-01", "C"] == 6
