import importlib
import re
from contextlib import contextmanager

import pytest
from packaging.version import Version


@contextmanager
def raises_regex(error, pattern):
    __tracebackhide__ = True
    with pytest.raises(error) as excinfo:
        yield
    message = str(excinfo.value)
    if not re.search(pattern, message):
        raise AssertionError(
            f"exception {excinfo.value!r} did not match pattern {pattern!r}"
        )


def _importorskip(modname, minversion=None):
    try:
        mod = importlib.import_module(modname)
        has = True
        if minversion is not None:
            if _version(mod.__version__) < Version(minversion):
                raise ImportError("Minimum version not satisfied")
    except ImportError:
        has = False
    func = pytest.mark.skipif(not has, reason=f"requires {modname}")
    return has, func


def _version(vstring):
    # Development versions look like '1.7.0+aac7bfc'; the local part is ignored.
    return Version(vstring.split("+")[0])


has_netcdf4, requires_netcdf4 = _importorskip("netCDF4")
has_shapely, requires_shapely = _importorskip("shapely", minversion="2.0")
has_pyproj, requires_pyproj = _importorskip("pyproj")
