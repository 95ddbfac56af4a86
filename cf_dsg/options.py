"""
Started from xarray options.py
"""

import copy
from typing import Any, MutableMapping

RAGGED_ENCODINGS = ("contiguous", "indexed")

OPTIONS: MutableMapping[str, Any] = {
    "ragged_encoding": "contiguous",
    "time_units": "seconds since 1970-01-01 00:00:00",
    "fill_value": -999.0,
    "conventions": "CF-1.8",
    "warn_on_missing_variables": True,
}


def _validate_ragged_encoding(value):
    if value not in RAGGED_ENCODINGS:
        raise ValueError(
            f"ragged_encoding must be one of {RAGGED_ENCODINGS!r}. Got {value!r}"
        )


_VALIDATORS = {"ragged_encoding": _validate_ragged_encoding}


class set_options:
    """Set options for cf_dsg in a controlled context.

    Parameters
    ----------
    ragged_encoding : {"contiguous", "indexed"}
        Ragged array representation written for long-format time series.
        Default: "contiguous".
    time_units : str
        CF units string used to encode timestamps as integers. Timestamps
        that are not whole multiples of the unit are written with a finer one.
        Default: "seconds since 1970-01-01 00:00:00".
    fill_value : float
        Value written in place of missing data. Default: -999.0.
    conventions : str
        Value of the ``Conventions`` global attribute. Default: "CF-1.8".
    warn_on_missing_variables : bool
        Whether to raise a warning when variables referred to in attributes
        are not present in a file being read.

    Examples
    --------

    You can use ``set_options`` either as a context manager:

    >>> with cf_dsg.set_options(ragged_encoding="indexed"):
    ...     cf_dsg.write_timeseries_dsg("out.nc", ts)
    ...

    Or to set global options:

    >>> cf_dsg.set_options(fill_value=-9999.0)
    """

    def __init__(self, **kwargs):
        self.old = {}
        for k, v in kwargs.items():
            if k not in OPTIONS:
                raise ValueError(
                    f"argument name {k!r} is not in the set of valid options {set(OPTIONS)!r}"
                )
            if k in _VALIDATORS:
                _VALIDATORS[k](v)
            self.old[k] = OPTIONS[k]
        self._apply_update(kwargs)

    def _apply_update(self, options_dict):
        OPTIONS.update(copy.deepcopy(options_dict))

    def __enter__(self):
        return

    def __exit__(self, type, value, traceback):
        self._apply_update(self.old)
