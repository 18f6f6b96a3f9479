"""
Coordinate projection callables.

A projection is any callable mapping an ``(x, y)`` pair in the dataset's
coordinate system to an ``(x', y')`` pair on the rendering surface. The grid
engine treats it as opaque; this module builds one from pyproj.
"""

from collections.abc import Callable

import pyproj

Projection = Callable[[float, float], tuple[float, float]]


def identity(x: float, y: float) -> tuple[float, float]:
    return x, y


def transformer_projection(
    crs_from: str | pyproj.CRS = "EPSG:4326", crs_to: str | pyproj.CRS = "EPSG:3857"
) -> Projection:
    """
    Build a projection from a pyproj transformation.

    Parameters
    ----------
    crs_from : str or pyproj.CRS, optional
        CRS of the dataset coordinates. Defaults to WGS84 lon/lat.
    crs_to : str or pyproj.CRS, optional
        Target CRS. Defaults to Web Mercator.

    Returns
    -------
    Projection
        Callable taking ``(x, y)`` in ``crs_from`` (longitude first for
        geographic CRSs) and returning ``(x, y)`` in ``crs_to``.
    """
    transformer = pyproj.Transformer.from_crs(crs_from, crs_to, always_xy=True)

    def project(x: float, y: float) -> tuple[float, float]:
        px, py = transformer.transform(x, y)
        return float(px), float(py)

    return project
