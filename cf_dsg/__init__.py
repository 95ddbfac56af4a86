from . import geometry as geometry
from .container import (  # noqa
    DSGResult,
    GeometryResult,
    TimeSeriesResult,
    open_dsg,
    read_dsg,
    read_geometry,
    read_timeseries_dsg,
    write_attribute_data,
    write_geometry,
    write_timeseries_dsg,
)
from .errors import (  # noqa
    DSGError,
    GeometryIndexInconsistent,
    InstanceMismatch,
    InvalidEncoding,
    InvalidGeometryEncoding,
    MixedGeometryKind,
    OrphanInteriorRing,
    RaggedIndexInconsistent,
    ShapeMismatch,
)
from .geometry import (  # noqa
    Line,
    Point,
    Polygon,
    cf_to_geometries,
    cf_to_shapely,
    geometries_to_cf,
    shapely_to_cf,
)
from .options import set_options  # noqa
from .timeseries import Instance, TimeSeriesSet  # noqa
from .utils import _get_version

__version__ = _get_version()
