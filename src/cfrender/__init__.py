"""
cfrender: Python package for reading and gridding NetCDF classic files.

This package decodes NetCDF v3.x (classic and 64-bit offset) files that follow
the CF metadata conventions, resolves their spatial axes and cell bounds, and
hands validated 2D slices to a renderer as cells, or to pandas and xarray.
"""

__version__ = "2026.10.0"
__author__ = "James Mineau"
__email__ = "jameskmineau@gmail.com"

from .grid import CFGrid, Cell, CellStyle, open_dataset
from .netcdf import NetCDFReader

__all__ = ["CFGrid", "Cell", "CellStyle", "NetCDFReader", "open_dataset"]
