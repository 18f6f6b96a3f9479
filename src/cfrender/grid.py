"""
Grid data engine for CF datasets.

This module provides :class:`CFGrid`, which binds a NetCDF dataset to its X,
Y and T axes, validates two-dimensional slices of multi-dimensional
variables, and produces per-cell values and geometry for a renderer. Results
that only depend on the file content (statistics, bounds, bounding box and
projected extents) are cached while the handle is read only.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, ClassVar

import numpy as np
import pandas as pd
import xarray as xr

from cfrender.axes import AXES, Bounds, resolve_axes, search_bounds
from cfrender.errors import (
    GridValidationError,
    UnsupportedLayoutError,
    VariableNotFoundError,
)
from cfrender.netcdf import NetCDFReader
from cfrender.projection import Projection, identity
from cfrender.records import Attribute, Variable, find_attribute, flatten

logger = logging.getLogger(__name__)

# Attributes consumed by cleansing
PACKING_ATTRIBUTES = ("_FillValue", "missing_value", "scale_factor", "add_offset")


def _scalar(attribute: Attribute | None) -> Any:
    if attribute is None:
        return None
    value = attribute.value
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _as_numbers(data: list) -> list:
    """Flatten decoded data, expanding raw ``bytes`` into one integer per byte."""
    values = []
    for item in flatten(data):
        if isinstance(item, (bytes, bytearray)):
            values.extend(item)
        else:
            values.append(item)
    return values


def _extent(values: tuple[float, ...]) -> tuple[float, float]:
    if not values:
        return math.nan, math.nan
    return min(values), max(values)


def _is_fill(value: Any, fills: list) -> bool:
    for fill in fills:
        if value == fill:
            return True
        if isinstance(value, float) and isinstance(fill, float):
            if math.isnan(value) and math.isnan(fill):
                return True
    return False


def cleanse(values: list, attributes: list[Attribute]) -> list:
    """
    Mask and unpack raw values using CF packing attributes.

    In order: values equal to the first ``_FillValue`` or ``missing_value``
    attribute become None, then non-null values are multiplied by
    ``scale_factor`` and finally ``add_offset`` is added.

    Parameters
    ----------
    values : list
        Flat raw values.
    attributes : list[Attribute]
        Attributes of the variable.

    Returns
    -------
    list
        Cleansed values, None where there is no data.
    """
    fill = None
    for attr in attributes:
        if attr.name in ("_FillValue", "missing_value"):
            fill = attr.value
            break
    if fill is None:
        fills = []
    elif isinstance(fill, list):
        fills = fill
    else:
        fills = [fill]

    scale = _scalar(find_attribute(attributes, "scale_factor"))
    offset = _scalar(find_attribute(attributes, "add_offset"))

    cleansed = []
    for value in values:
        if value is None or _is_fill(value, fills):
            cleansed.append(None)
            continue
        if scale is not None:
            value = value * scale
        if offset is not None:
            value = value + offset
        cleansed.append(value)
    return cleansed


@dataclass(frozen=True)
class VariableStats:
    """Summary statistics of the cleansed values of a variable."""

    min: Any
    max: Any
    sum: float
    mean: float
    median: float
    null_count: int
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "sum": self.sum,
            "mean": self.mean,
            "median": self.median,
            "nullCount": self.null_count,
            "count": self.count,
        }


def compute_stats(values: list) -> VariableStats:
    """
    Statistics of a value sequence, ignoring None.

    Mean and median are NaN, and min and max None, when every value is None.
    """
    null_count = 0
    min_value = None
    max_value = None
    total = 0

    for value in values:
        if value is None:
            null_count += 1
            continue
        if min_value is None or value < min_value:
            min_value = value
        if max_value is None or value > max_value:
            max_value = value
        total += value

    valid = sorted(v for v in values if v is not None)
    n = len(valid)
    if n == 0:
        median = math.nan
    elif n % 2:
        median = valid[n // 2]
    else:
        median = (valid[n // 2 - 1] + valid[n // 2]) / 2

    return VariableStats(
        min=min_value,
        max=max_value,
        sum=total,
        mean=total / n if n else math.nan,
        median=median,
        null_count=null_count,
        count=len(values),
    )


@dataclass(frozen=True)
class BoundingBox:
    """Extent of the X and Y bounds; ``mode`` as in :class:`~cfrender.axes.Bounds`."""

    min: tuple[float, float]
    max: tuple[float, float]
    mode: str

    @property
    def bbox(self) -> list[list[float]]:
        return [list(self.min), list(self.max)]


@dataclass(frozen=True)
class GridSelection:
    """
    A validated two-dimensional slice of a variable.

    Attributes
    ----------
    variable : str
        Name of the sliced variable.
    x_axis, y_axis : str
        Names of the X and Y coordinate variables.
    dimension_filter : dict[str, Any]
        One coordinate value for every non-spatial dimension, including the
        ones bound automatically because they hold a single value.
    offset : int
        Flat index of the first value of the slice.
    x_size, y_size : int
        Number of X and Y coordinates.
    x_major : bool
        True when Y is the innermost dimension, i.e. values are stored with X
        varying slowest.
    """

    variable: str
    x_axis: str
    y_axis: str
    dimension_filter: dict[str, Any]
    offset: int
    x_size: int
    y_size: int
    x_major: bool

    def flat_index(self, x_index: int, y_index: int) -> int:
        if self.x_major:
            return self.offset + x_index * self.y_size + y_index
        return self.offset + y_index * self.x_size + x_index


@dataclass(frozen=True)
class GridPoint:
    x: Any
    y: Any
    x_index: int
    y_index: int
    value: Any
    raw_value: Any


@dataclass(frozen=True)
class Cell:
    """
    A grid cell handed to a renderer.

    Attributes
    ----------
    corners : tuple
        ``(x, y)`` corners before projection, in drawing order: lower X and
        lower Y, lower X and upper Y, upper X and upper Y, upper X and lower Y.
    projected : tuple or None
        The corners after projection, when a projection was supplied.
    value : Any
        Cleansed value (never None).
    raw_value : Any
        Value as stored in the file.
    x_index, y_index : int
        Position of the cell in the grid.
    dimensions : dict[str, Any]
        The dimension filter plus the X and Y coordinates of the cell.
    style : dict or None
        Resolved :class:`CellStyle`, when a style was supplied.
    """

    corners: tuple[tuple[float, float], ...]
    projected: tuple[tuple[float, float], ...] | None
    value: Any
    raw_value: Any
    x_index: int
    y_index: int
    dimensions: dict[str, Any]
    style: dict[str, Any] | None = None


StyleValue = str | float | bool | Callable[[Cell], str | float | bool]


@dataclass(frozen=True)
class CellStyle:
    """
    Per-cell styling for a renderer.

    Each field is either a literal or a function of the :class:`Cell`. Cells
    whose ``visible`` resolves to False are not emitted.
    """

    fill: StyleValue = "black"
    stroke: StyleValue = "none"
    stroke_width: StyleValue = 1.0
    opacity: StyleValue = 1.0
    visible: StyleValue = True

    FIELDS: ClassVar[tuple[str, ...]] = (
        "fill",
        "stroke",
        "stroke_width",
        "opacity",
        "visible",
    )

    def resolve(self, cell: Cell) -> dict[str, Any]:
        resolved = {}
        for name in self.FIELDS:
            value = getattr(self, name)
            resolved[name] = value(cell) if callable(value) else value
        return resolved


def open_dataset(filename: Path | str, **kwargs) -> "CFGrid":
    """
    Open a NetCDF classic file as a :class:`CFGrid`.

    Parameters
    ----------
    filename : Path or str
        Path to the NetCDF file.
    **kwargs
        Passed to :class:`CFGrid`.
    """
    return CFGrid.from_file(filename, **kwargs)


class CFGrid:
    """
    Cartesian 2D grid view of a NetCDF dataset in CF convention.

    Parameters
    ----------
    source : bytes, bytearray, memoryview or NetCDFReader
        File content or an already parsed reader.
    read_only : bool, optional
        Treat the source as immutable and cache derived results. Call
        :meth:`invalidate` if the data changes anyway. Defaults to True.
    byte_as_integer : bool, optional
        Passed to :class:`~cfrender.netcdf.NetCDFReader` when ``source`` is raw
        bytes.

    Attributes
    ----------
    netcdf : NetCDFReader
        The underlying reader.
    axes : dict[str, str]
        Axis letter to coordinate variable name.
    stats_scans : int
        Number of full statistics scans performed so far.
    """

    def __init__(
        self,
        source: bytes | bytearray | memoryview | NetCDFReader,
        read_only: bool = True,
        byte_as_integer: bool = True,
    ):
        if isinstance(source, NetCDFReader):
            self.netcdf = source
        else:
            self.netcdf = NetCDFReader(source, byte_as_integer=byte_as_integer)

        self.read_only = read_only

        self.dim_index = {d.name: i for i, d in enumerate(self.netcdf.dimensions)}
        self.var_index = {v.name: i for i, v in enumerate(self.netcdf.variables)}

        self.axes = resolve_axes(self.netcdf.variables)

        self.stats_scans = 0
        self._stats: dict[str, VariableStats] = {}
        self._bounds: dict[str, Bounds] = {}
        self._bbox: BoundingBox | None = None
        self._projection_cache: dict[tuple, tuple[float, float]] = {}
        self._extents: dict[Any, tuple[tuple[float, float], tuple[float, float]]] = {}

    @classmethod
    def from_file(cls, filename: Path | str, **kwargs) -> "CFGrid":
        byte_as_integer = kwargs.pop("byte_as_integer", True)
        reader = NetCDFReader.from_file(filename, byte_as_integer=byte_as_integer)
        return cls(reader, **kwargs)

    def __repr__(self) -> str:
        return f"CFGrid(axes={self.axes}, read_only={self.read_only})"

    # -- caches ---------------------------------------------------------------

    def invalidate(self):
        """Drop every cached result."""
        self._stats.clear()
        self._bounds.clear()
        self._bbox = None
        self.reset_projection_cache()

    def reset_projection_cache(self):
        """Drop memoized projection results and projected extents."""
        self._projection_cache.clear()
        self._extents.clear()

    # -- lookups --------------------------------------------------------------

    def dimension_index(self, name: str) -> int | None:
        return self.dim_index.get(name)

    def _get_variable(self, name: str) -> Variable:
        if name not in self.var_index:
            raise VariableNotFoundError(f"DataVariable {name} not found in NetCDF Variables")
        return self.netcdf.variables[self.var_index[name]]

    def _axis_variable(self, axis: str) -> str:
        if axis not in self.axes:
            raise GridValidationError(
                f'"{axis}" not found in Axes. Please set {axis} with set_axis() manually '
                f'if required. Perhaps "axis" = "{axis}" is missing from the NetCDF '
                "attribute data."
            )
        return self.axes[axis]

    def set_axis(self, axis: str, variable_name: str):
        """
        Bind an axis to a coordinate variable manually.

        Raises
        ------
        ValueError
            If ``axis`` is unknown or the variable is not one-dimensional.
        VariableNotFoundError
            If the variable does not exist.
        """
        if axis not in AXES:
            raise ValueError(f"Unknown axis {axis!r}, expected one of {AXES}")
        variable = self._get_variable(variable_name)
        if len(variable.dimensions) != 1:
            raise ValueError(f"Axis variable {variable_name} must have exactly one dimension")
        self.axes[axis] = variable_name
        self.invalidate()

    def coordinates(self, variable_name: str) -> list:
        return _as_numbers(self.netcdf.get_data_variable(variable_name))

    # -- values ---------------------------------------------------------------

    def raw_data(self, variable_name: str) -> list:
        """
        Flat values of a variable as stored in the file.

        Byte data is always returned as integers, whatever ``byte_as_integer``
        the reader was built with.
        """
        return _as_numbers(self.netcdf.get_data_variable(self._get_variable(variable_name)))

    def cleansed_data(self, variable_name: str) -> list:
        """Flat values with fill values masked and packing undone."""
        variable = self._get_variable(variable_name)
        return cleanse(self.raw_data(variable_name), variable.attributes)

    def stats(self, variable_name: str) -> VariableStats:
        """
        Statistics of the cleansed values of a variable.

        Cached per variable while the grid is read only.
        """
        if self.read_only and variable_name in self._stats:
            logger.debug(f"Stats cache hit for {variable_name!r}")
            return self._stats[variable_name]

        values = self.cleansed_data(variable_name)
        self.stats_scans += 1
        logger.debug(f"Computed stats for {variable_name!r} over {len(values)} values")

        stats = compute_stats(values)
        if self.read_only:
            self._stats[variable_name] = stats
        return stats

    # -- geometry -------------------------------------------------------------

    def bounds(self, axis: str) -> Bounds:
        """
        Cell edges of an axis.

        Raises
        ------
        GridValidationError
            If the axis is not resolved.
        """
        if self.read_only and axis in self._bounds:
            return self._bounds[axis]

        bounds = search_bounds(self.netcdf, self._axis_variable(axis))
        logger.debug(f"Bounds for axis {axis}: {len(bounds)} cells, {bounds.mode}")
        if self.read_only:
            self._bounds[axis] = bounds
        return bounds

    def bbox(self) -> BoundingBox:
        """
        Extent of all X and Y bounds.

        The mode is definitive only when both axes have definitive bounds. An
        axis without values gives a NaN extent.
        """
        if self.read_only and self._bbox is not None:
            return self._bbox

        x_bounds = self.bounds("X")
        y_bounds = self.bounds("Y")

        mode = Bounds.DEFINITIVE
        if not (x_bounds.is_definitive and y_bounds.is_definitive):
            mode = Bounds.INTERPOLATED

        x_min, x_max = _extent(x_bounds.values)
        y_min, y_max = _extent(y_bounds.values)
        bbox = BoundingBox(min=(x_min, y_min), max=(x_max, y_max), mode=mode)
        if self.read_only:
            self._bbox = bbox
        return bbox

    def project(self, projection: Projection, x: float, y: float) -> tuple[float, float]:
        """Apply ``projection`` to a coordinate pair, memoized while read only."""
        if not self.read_only:
            return projection(x, y)

        key = (projection, x, y)
        if key not in self._projection_cache:
            self._projection_cache[key] = projection(x, y)
        return self._projection_cache[key]

    def projected_extent(
        self, projection: Projection | None = None
    ) -> tuple[tuple[float, float], tuple[float, float]]:
        """
        Min and max point over every projected pair of X and Y bounds.

        Parameters
        ----------
        projection : Projection, optional
            Coordinate transform; identity when omitted.

        Returns
        -------
        tuple
            ``((x_min, y_min), (x_max, y_max))`` in projected coordinates, NaN
            when an axis has no values.
        """
        projection = projection or identity
        if self.read_only and projection in self._extents:
            return self._extents[projection]

        x_bounds = self.bounds("X").values
        y_bounds = self.bounds("Y").values

        points = [self.project(projection, x, y) for x in x_bounds for y in y_bounds]
        x_min, x_max = _extent(tuple(px for px, _ in points))
        y_min, y_max = _extent(tuple(py for _, py in points))

        extent = ((x_min, y_min), (x_max, y_max))
        if self.read_only:
            self._extents[projection] = extent
            logger.debug(f"Projection cache holds {len(self._projection_cache)} points")
        return extent

    # -- queries --------------------------------------------------------------

    def prepare(
        self, variable: str, dimension_filter: dict[str, Any] | None = None
    ) -> GridSelection:
        """
        Validate a 2D slice of ``variable``.

        Parameters
        ----------
        variable : str
            Name of the data variable.
        dimension_filter : dict, optional
            Coordinate value for each dimension other than X and Y. Dimensions
            whose coordinate variable holds a single value may be omitted. The
            mapping is not modified.

        Returns
        -------
        GridSelection

        Raises
        ------
        GridValidationError
            If the axes cannot be used, a dimension is unbound or a filter value
            does not exist.
        UnsupportedLayoutError
            If X and Y are not the two trailing dimensions.
        VariableNotFoundError
            If the variable does not exist.
        """
        x_name = self._axis_variable("X")
        y_name = self._axis_variable("Y")

        if not variable:
            raise GridValidationError("DataVariable is a required parameter.")
        data_variable = self._get_variable(variable)

        x_dim = self._get_variable(x_name).dimensions[0]
        y_dim = self._get_variable(y_name).dimensions[0]

        dims = data_variable.dimensions
        if x_dim not in dims:
            raise GridValidationError(
                f'"X" Axis "{x_name}" not found as a dimension of {variable} in NetCDF.'
            )
        if y_dim not in dims:
            raise GridValidationError(
                f'"Y" Axis "{y_name}" not found as a dimension of {variable} in NetCDF.'
            )
        x_pos = dims.index(x_dim)
        y_pos = dims.index(y_dim)

        if (len(dims) - (x_pos + 1)) + (len(dims) - (y_pos + 1)) != 1:
            raise UnsupportedLayoutError(
                "Currently unable to perform interlaced data reading. Please ensure "
                f'"X" and "Y" are final dimensions in the Data Variable "{variable}".'
            )

        requested = dimension_filter or {}
        resolved = {}
        positions = []
        for pos, dim_id in enumerate(dims):
            if pos in (x_pos, y_pos):
                continue

            dim_name = self.netcdf.dimensions[dim_id].name
            if not dim_name:
                raise GridValidationError(
                    f"Data Variable {variable} in NetCDF contains unnamed dimension variables."
                )
            if dim_name not in self.var_index:
                raise GridValidationError(
                    f"Data Variable {variable} in NetCDF contains undefined dimension "
                    f"variable: {dim_name}."
                )

            coords = self.coordinates(dim_name)
            if dim_name in requested:
                value = requested[dim_name]
                if value not in coords:
                    raise GridValidationError(
                        f'DimensionFilter data value "{value}" not found in NetCDF data '
                        f"values for variable {dim_name}."
                    )
            elif len(coords) == 1:
                value = coords[0]
            else:
                raise GridValidationError(
                    f'Unbound dimension "{dim_name}". Please use DimensionFilter '
                    f'parameter and set "{dim_name}" to a valid value.'
                )

            resolved[dim_name] = value
            positions.append((coords.index(value), len(coords)))

        x_size = len(self.coordinates(x_name))
        y_size = len(self.coordinates(y_name))

        # Row-major offset of the slice; the spatial plane is innermost
        offset = 0
        stride = x_size * y_size
        for index, size in reversed(positions):
            offset += index * stride
            stride *= size

        return GridSelection(
            variable=variable,
            x_axis=x_name,
            y_axis=y_name,
            dimension_filter=resolved,
            offset=offset,
            x_size=x_size,
            y_size=y_size,
            x_major=dims[-1] == y_dim,
        )

    def _extract(self, selection: GridSelection) -> list[GridPoint]:
        variable = self._get_variable(selection.variable)
        raw = self.raw_data(selection.variable)
        data = cleanse(raw, variable.attributes)
        x_data = self.coordinates(selection.x_axis)
        y_data = self.coordinates(selection.y_axis)

        if selection.x_major:
            order = [(xi, yi) for xi in range(selection.x_size) for yi in range(selection.y_size)]
        else:
            order = [(xi, yi) for yi in range(selection.y_size) for xi in range(selection.x_size)]

        points = []
        for position, (xi, yi) in enumerate(order, start=selection.offset):
            in_range = position < len(data)
            points.append(
                GridPoint(
                    x=x_data[xi],
                    y=y_data[yi],
                    x_index=xi,
                    y_index=yi,
                    value=data[position] if in_range else None,
                    raw_value=raw[position] if in_range else None,
                )
            )
        return points

    def extract(
        self, variable: str, dimension_filter: dict[str, Any] | None = None
    ) -> list[GridPoint]:
        """
        Values of a 2D slice, one point per X/Y coordinate pair.

        Points are ordered as stored: X-major when Y is the innermost
        dimension, Y-major otherwise.
        """
        return self._extract(self.prepare(variable, dimension_filter))

    def cell_value(
        self,
        variable: str,
        dimension_filter: dict[str, Any] | None,
        x: float,
        y: float,
    ) -> Any:
        """
        Cleansed value of the cell enclosing the point ``(x, y)``.

        Returns
        -------
        Any
            The value, or None if the point lies outside every cell (or the
            cell holds no data).
        """
        selection = self.prepare(variable, dimension_filter)

        x_index = _find_cell(self.bounds("X"), x)
        if x_index is None:
            return None
        y_index = _find_cell(self.bounds("Y"), y)
        if y_index is None:
            return None

        data = self.cleansed_data(variable)
        position = selection.flat_index(x_index, y_index)
        return data[position] if position < len(data) else None

    def cells(
        self,
        variable: str,
        dimension_filter: dict[str, Any] | None = None,
        projection: Projection | None = None,
        style: CellStyle | None = None,
    ) -> list[Cell]:
        """
        Cells with data, ready to be drawn.

        Parameters
        ----------
        variable : str
            Name of the data variable.
        dimension_filter : dict, optional
            See :meth:`prepare`.
        projection : Projection, optional
            Applied to every corner; results are memoized.
        style : CellStyle, optional
            Resolved for every cell; invisible cells are dropped.

        Returns
        -------
        list[Cell]
        """
        selection = self.prepare(variable, dimension_filter)
        x_bounds = self.bounds("X").values
        y_bounds = self.bounds("Y").values

        cells = []
        for point in self._extract(selection):
            if point.value is None:
                continue

            x0, x1 = x_bounds[point.x_index * 2], x_bounds[point.x_index * 2 + 1]
            y0, y1 = y_bounds[point.y_index * 2], y_bounds[point.y_index * 2 + 1]
            corners = ((x0, y0), (x0, y1), (x1, y1), (x1, y0))

            projected = None
            if projection is not None:
                projected = tuple(self.project(projection, cx, cy) for cx, cy in corners)

            dimensions = dict(selection.dimension_filter)
            dimensions[selection.x_axis] = point.x
            dimensions[selection.y_axis] = point.y

            cell = Cell(
                corners=corners,
                projected=projected,
                value=point.value,
                raw_value=point.raw_value,
                x_index=point.x_index,
                y_index=point.y_index,
                dimensions=dimensions,
            )

            if style is not None:
                resolved = style.resolve(cell)
                if not resolved["visible"]:
                    continue
                cell = replace(cell, style=resolved)

            cells.append(cell)
        return cells

    # -- containers -----------------------------------------------------------

    def to_dataframe(
        self, variable: str, dimension_filter: dict[str, Any] | None = None
    ) -> pd.DataFrame:
        """
        A 2D slice as a long-format DataFrame.

        Returns
        -------
        pd.DataFrame
            One row per grid point with the X and Y coordinates (named after
            their variables), ``x_index``, ``y_index``, ``value`` (NaN for no
            data), ``raw_value`` and one column per filtered dimension.
        """
        selection = self.prepare(variable, dimension_filter)
        rows = [
            {
                selection.x_axis: p.x,
                selection.y_axis: p.y,
                "x_index": p.x_index,
                "y_index": p.y_index,
                "value": np.nan if p.value is None else p.value,
                "raw_value": p.raw_value,
            }
            for p in self._extract(selection)
        ]
        df = pd.DataFrame(rows)
        for name, value in selection.dimension_filter.items():
            df[name] = value
        return df

    def to_dataarray(
        self, variable: str, dimension_filter: dict[str, Any] | None = None
    ) -> xr.DataArray:
        """
        A 2D slice as an xarray DataArray.

        The array has dims ``(y, x)`` named after the axis variables, with the
        filtered dimensions expanded as length-1 leading dims. Variable
        attributes are copied, except the packing attributes already applied.
        """
        selection = self.prepare(variable, dimension_filter)
        x_data = self.coordinates(selection.x_axis)
        y_data = self.coordinates(selection.y_axis)

        values = np.full((selection.y_size, selection.x_size), np.nan)
        for point in self._extract(selection):
            if point.value is not None:
                values[point.y_index, point.x_index] = point.value

        attrs = {
            attr.name: attr.value
            for attr in self._get_variable(variable).attributes
            if attr.name not in PACKING_ATTRIBUTES
        }

        da = xr.DataArray(
            data=values,
            dims=(selection.y_axis, selection.x_axis),
            coords={selection.y_axis: y_data, selection.x_axis: x_data},
            name=variable,
            attrs=attrs,
        )

        if selection.dimension_filter:
            da = da.expand_dims({k: [v] for k, v in selection.dimension_filter.items()})
        return da


def _find_cell(bounds: Bounds, value: float) -> int | None:
    for index, (lower, upper) in enumerate(bounds.pairs):
        if min(lower, upper) <= value <= max(lower, upper):
            return index
    return None
