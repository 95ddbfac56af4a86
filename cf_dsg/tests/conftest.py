import numpy as np
import pandas as pd
import pytest

from cf_dsg.geometry import Point, Polygon
from cf_dsg.timeseries import Instance, TimeSeriesSet


@pytest.fixture
def instances():
    return [
        Instance("A", lat=40.0, lon=-105.0),
        Instance("B", lat=41.0, lon=-104.0),
        Instance("C", lat=42.0, lon=-103.0),
    ]


@pytest.fixture
def wide_table():
    times = pd.date_range("2020-01-01", periods=4, freq="D")
    return pd.DataFrame(
        {
            "A": [1.0, 2.0, np.nan, 4.0],
            "B": [10.0, 20.0, 30.0, 40.0],
            "C": [100.0, np.nan, 300.0, 400.0],
        },
        index=times,
    )


@pytest.fixture
def orthogonal_ts(instances, wide_table):
    return TimeSeriesSet.from_wide(
        "flow", wide_table, instances, units="m3/s", long_name="streamflow"
    )


@pytest.fixture
def observations():
    return pd.DataFrame(
        {
            "instance": ["B", "A", "A", "C", "B"],
            "time": pd.to_datetime(
                ["2020-01-02", "2020-01-03", "2020-01-01", "2020-01-01", "2020-01-01"]
            ),
            "value": [2.5, 3.0, 1.0, 7.0, 2.0],
        }
    )


@pytest.fixture
def ragged_ts(instances, observations):
    return TimeSeriesSet.from_long(
        "stage", observations, instances, units="m", long_name="river stage"
    )


@pytest.fixture
def polygon_with_hole():
    return Polygon.from_rings(
        [(0, 0), (0, 10), (10, 10), (0, 0)],
        [(2, 2), (3, 5), (5, 2), (2, 2)],
    )


@pytest.fixture
def station_points(instances):
    return [Point.from_xy(i.lon, i.lat) for i in instances]
