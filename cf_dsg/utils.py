import inspect
import os
import warnings

import numpy as np
import pandas as pd


def parse_names_attr(attr: str | None) -> list[str]:
    """Split a whitespace separated list of variable names (e.g. ``coordinates``)."""
    if not attr:
        return []
    return attr.split()


def to_utc_index(times) -> pd.DatetimeIndex:
    """
    Convert timestamps to a timezone-naive DatetimeIndex expressed in UTC.

    Timezone-aware input is converted to UTC first, with a warning since the
    original offset is not kept in the file.
    """
    index = pd.DatetimeIndex(times)
    if index.tz is not None:
        if str(index.tz) != "UTC":
            emit_user_level_warning(
                f"Converting timestamps from {index.tz} to UTC.", UserWarning
            )
        index = index.tz_convert("UTC").tz_localize(None)
    return index


def as_str_array(values) -> np.ndarray:
    """Identifiers as a unicode array, decoding bytes as read from char variables."""
    out = [v.decode("utf-8") if isinstance(v, bytes) else str(v) for v in values]
    return np.array(out, dtype=str) if out else np.array([], dtype=str)


def _get_version():
    __version__ = "unknown"
    try:
        from ._version import __version__
    except ImportError:
        pass
    return __version__


def find_stack_level(test_mode=False) -> int:
    """Find the first place in the stack that is not inside cf_dsg.

    This is unless the code emanates from a test, in which case we would prefer
    to see the cf_dsg source.

    This function is taken from pandas.

    Parameters
    ----------
    test_mode : bool
        Flag used for testing purposes to switch off the detection of test
        directories in the stack trace.

    Returns
    -------
    stacklevel : int
        First level in the stack that is not part of cf_dsg.
    """
    import cf_dsg

    pkg_dir = os.path.dirname(cf_dsg.__file__)
    test_dir = os.path.join(pkg_dir, "tests")

    # https://stackoverflow.com/questions/17407119/python-inspect-stack-is-slow
    frame = inspect.currentframe()
    n = 0
    while frame:
        fname = inspect.getfile(frame)
        if fname.startswith(pkg_dir) and (not fname.startswith(test_dir) or test_mode):
            frame = frame.f_back
            n += 1
        else:
            break
    return n


def emit_user_level_warning(message, category=None):
    """Emit a warning at the user level by inspecting the stack trace."""
    stacklevel = find_stack_level()
    warnings.warn(message, category=category, stacklevel=stacklevel)
