#!/usr/bin/env python
from setuptools import find_packages, setup

setup(
    name="cf_dsg",
    version="0.1.0",
    description="Write and read CF discrete sampling geometry time series and geometries in NetCDF",
    long_description="Encoding and decoding of CF-1.8 timeSeries (orthogonal and ragged) and geometry containers.",
    license="Apache-2.0",
    packages=find_packages(),
    python_requires=">=3.10",
    install_requires=[
        "numpy<2",
        "pandas<2",
        "xarray",
        "netCDF4",
    ],
    extras_require={
        "geometry": ["shapely"],
        "crs": ["pyproj"],
        "test": ["pytest", "packaging", "shapely", "pyproj"],
    },
)
