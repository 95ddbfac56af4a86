"""
Narrow file access interface used by the container builder and reader.

Values travel in their stored (encoded) form: no masking, scaling or
character array conversion happens at this level.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Hashable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Protocol

import numpy as np

logger = logging.getLogger(__name__)

#: Attributes that can only be set when a variable is defined.
_CREATION_ONLY_ATTRS = ("_FillValue",)


class FileAccess(Protocol):
    def open(self, path, mode: str): ...

    def define_dimension(self, handle, name: Hashable, size: int | None) -> None: ...

    def define_variable(
        self,
        handle,
        name: Hashable,
        dtype,
        dims: Sequence[Hashable],
        fill_value: Any = None,
    ) -> None: ...

    def set_attribute(self, handle, target: Hashable | None, name: str, value) -> None: ...

    def put_values(self, handle, variable: Hashable, values: np.ndarray) -> None: ...

    def get_values(self, handle, variable: Hashable) -> np.ndarray: ...

    def get_attribute(self, handle, target: Hashable | None, name: str) -> Any: ...

    def list_attributes(self, handle, target: Hashable | None) -> list[str]: ...

    def list_variables(self, handle) -> list[Hashable]: ...

    def list_dimensions(self, handle) -> dict[Hashable, int]: ...

    def variable_dimensions(self, handle, variable: Hashable) -> tuple[Hashable, ...]: ...

    def close(self, handle) -> None: ...


@contextmanager
def opened(backend: FileAccess, path, mode: str) -> Iterator[Any]:
    """Open ``path`` with ``backend`` and close it on every exit path."""
    handle = backend.open(path, mode)
    try:
        yield handle
    finally:
        backend.close(handle)


class NetCDF4FileAccess:
    """:py:class:`FileAccess` on top of ``netCDF4.Dataset``."""

    def __init__(self, format: str = "NETCDF4"):
        self.format = format

    def open(self, path, mode: str):
        import netCDF4

        logger.debug("opening %s with mode %r", path, mode)
        if mode == "w":
            handle = netCDF4.Dataset(os.fspath(path), mode="w", format=self.format)
        else:
            handle = netCDF4.Dataset(os.fspath(path), mode=mode)
        handle.set_auto_maskandscale(False)
        handle.set_auto_chartostring(False)
        return handle

    def define_dimension(self, handle, name, size):
        logger.debug("defining dimension %s (%s)", name, size)
        handle.createDimension(name, size)

    def define_variable(self, handle, name, dtype, dims, fill_value=None):
        logger.debug("defining variable %s%s as %s", name, tuple(dims), dtype)
        dtype = np.dtype(dtype)
        if dtype.kind == "S":
            dtype = np.dtype("S1")
        if fill_value is not None:
            fill_value = dtype.type(fill_value)
        var = handle.createVariable(name, dtype, tuple(dims), fill_value=fill_value)
        var.set_auto_maskandscale(False)
        var.set_auto_chartostring(False)

    def set_attribute(self, handle, target, name, value):
        if name in _CREATION_ONLY_ATTRS:
            return
        obj = handle if target is None else handle.variables[target]
        if isinstance(value, (list, tuple)):
            value = np.asarray(value)
        if isinstance(value, (bool, np.bool_)):
            value = np.int8(value)
        obj.setncattr(name, value)

    def put_values(self, handle, variable, values):
        logger.debug("writing %s", variable)
        var = handle.variables[variable]
        if var.ndim == 0:
            var.assignValue(np.asarray(values).item())
        else:
            var[...] = values

    def get_values(self, handle, variable):
        var = handle.variables[variable]
        if var.ndim == 0:
            return np.asarray(var.getValue())
        return np.asarray(var[...])

    def get_attribute(self, handle, target, name):
        obj = handle if target is None else handle.variables[target]
        if name not in obj.ncattrs():
            raise KeyError(f"{name!r} is not an attribute of {target or 'the file'!r}")
        return obj.getncattr(name)

    def list_attributes(self, handle, target):
        obj = handle if target is None else handle.variables[target]
        return list(obj.ncattrs())

    def list_variables(self, handle):
        return list(handle.variables)

    def list_dimensions(self, handle):
        return {
            name: (None if dim.isunlimited() else len(dim))
            for name, dim in handle.dimensions.items()
        }

    def variable_dimensions(self, handle, variable):
        return tuple(handle.variables[variable].dimensions)

    def close(self, handle):
        logger.debug("closing file")
        handle.close()
