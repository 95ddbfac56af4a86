"""
Exceptions raised while encoding or decoding discrete sampling geometries.

All of them subclass ``ValueError`` so that callers catching bad input the
usual way keep working.
"""


class DSGError(ValueError):
    """Base class for all codec errors."""


class ShapeMismatch(DSGError):
    """Input dimensions disagree with the declared instance or time counts."""


class MixedGeometryKind(DSGError):
    """Geometries of different kinds were given to a single container."""


class RaggedIndexInconsistent(DSGError):
    """Ragged array counts or indexes do not add up."""


class GeometryIndexInconsistent(DSGError):
    """Node counts do not add up to the node coordinate arrays."""


class InvalidGeometryEncoding(DSGError):
    """A structurally impossible geometry encoding, e.g. holes in a line."""


class InstanceMismatch(DSGError):
    """Instances of an existing file do not match the data being appended."""


class InvalidEncoding(DSGError):
    """A required CF attribute or linked variable is missing."""


class OrphanInteriorRing(GeometryIndexInconsistent, InvalidGeometryEncoding):
    """An interior ring was flagged before the exterior ring of its part."""
