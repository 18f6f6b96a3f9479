"""
Spatial and temporal axis discovery for CF datasets.

This module identifies which variables hold the X, Y and T coordinates of a
dataset, using the CF ``axis`` attribute and the older conventions that
predate it, and derives the cell edges ("bounds") of an axis either from the
variable named by its ``bounds`` attribute or by midpoint interpolation.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import ClassVar

from cfrender.errors import NetCDFFormatError, VariableNotFoundError
from cfrender.netcdf import NetCDFReader
from cfrender.records import Attribute, Variable, flatten

logger = logging.getLogger(__name__)

AXES = ("X", "Y", "T")

# _CoordinateAxisType values
COORDINATE_AXIS_TYPES = {"X": "Lon", "Y": "Lat", "T": "Time"}

# CF standard_name values
STANDARD_NAMES = {"X": "longitude", "Y": "latitude", "T": "time"}


def _is_axis(attr: Attribute, axis: str) -> bool:
    return attr.name.lower() == "axis" and attr.value == axis


def _is_cartesian_axis(attr: Attribute, axis: str) -> bool:
    return attr.name.lower() == "cartesian_axis" and attr.value == axis


def _is_coordinate_axis_type(attr: Attribute, axis: str) -> bool:
    return attr.name == "_CoordinateAxisType" and attr.value == COORDINATE_AXIS_TYPES[axis]


def _is_standard_name(attr: Attribute, axis: str) -> bool:
    return (
        attr.name == "standard_name"
        and isinstance(attr.value, str)
        and attr.value.lower() == STANDARD_NAMES[axis]
    )


# Evaluated in order; the first rule matching any variable wins
AXIS_RULES: tuple[tuple[str, Callable[[Attribute, str], bool]], ...] = (
    ("axis", _is_axis),
    ("cartesian_axis", _is_cartesian_axis),
    ("_CoordinateAxisType", _is_coordinate_axis_type),
    ("standard_name", _is_standard_name),
)


def match_axis_rule(
    variables: Sequence[Variable], axis: str, rule: Callable[[Attribute, str], bool]
) -> str | None:
    """Name of the first one-dimensional variable with an attribute matching ``rule``."""
    for variable in variables:
        if len(variable.dimensions) != 1:
            continue
        if any(rule(attr, axis) for attr in variable.attributes):
            return variable.name
    return None


def search_variables_for_axis(variables: Sequence[Variable], axis: str) -> str | None:
    """
    Find the coordinate variable of an axis.

    Parameters
    ----------
    variables : Sequence[Variable]
        Variables of the dataset.
    axis : str
        ``"X"``, ``"Y"`` or ``"T"``.

    Returns
    -------
    str or None
        Name of the variable, or None if no rule matches.
    """
    if axis not in AXES:
        raise ValueError(f"Unknown axis {axis!r}, expected one of {AXES}")

    for rule_name, rule in AXIS_RULES:
        name = match_axis_rule(variables, axis, rule)
        if name is not None:
            logger.debug(f"Axis {axis} resolved to {name!r} by {rule_name!r}")
            return name
    return None


def resolve_axes(variables: Sequence[Variable]) -> dict[str, str]:
    """
    Resolve X, Y and T.

    Missing X or Y axes are logged as warnings since they make grid queries
    impossible; a missing T axis is only informational.

    Returns
    -------
    dict[str, str]
        Axis letter to variable name, for the axes that could be resolved.
    """
    axes = {}
    for axis in AXES:
        name = search_variables_for_axis(variables, axis)
        if name is not None:
            axes[axis] = name
        elif axis == "T":
            logger.info("Cannot determine T axis - info only")
        else:
            logger.warning(f"Cannot determine {axis} axis")
    return axes


@dataclass(frozen=True)
class Bounds:
    """
    Cell edges of an axis.

    Parameters
    ----------
    values : tuple[float, ...]
        ``2 * n`` edges, the lower and upper edge of each of the ``n`` cells.
    mode : str
        ``"definitive"`` when read from the file, ``"interpolated"`` otherwise.
    """

    values: tuple[float, ...]
    mode: str

    DEFINITIVE: ClassVar[str] = "definitive"
    INTERPOLATED: ClassVar[str] = "interpolated"

    @property
    def is_definitive(self) -> bool:
        return self.mode == self.DEFINITIVE

    @property
    def pairs(self) -> list[tuple[float, float]]:
        return [(self.values[i], self.values[i + 1]) for i in range(0, len(self.values) - 1, 2)]

    def __len__(self) -> int:
        return len(self.pairs)


def interpolate_bounds(values: Sequence[float]) -> list[float]:
    """
    Cell edges halfway between consecutive axis values.

    The values are assumed to be ordered and evenly enough spaced to form a
    grid. The first cell takes its half-width from the second value, every
    other cell from the previous one. A single value yields a zero-width cell.

    Examples
    --------
    >>> interpolate_bounds([10, 20, 30])
    [5.0, 15.0, 15.0, 25.0, 25.0, 35.0]
    """
    bounds = []
    for i, value in enumerate(values):
        if i == 0:
            delta = (values[1] - values[0]) / 2 if len(values) > 1 else 0.0
        else:
            delta = (values[i] - values[i - 1]) / 2
        bounds.append(float(value - delta))
        bounds.append(float(value + delta))
    return bounds


def search_bounds(reader: NetCDFReader, axis_variable: str) -> Bounds:
    """
    Cell edges of an axis variable.

    The variable named by the ``bounds`` attribute is used when it exists and
    holds two edges per axis value. Otherwise the edges are interpolated.

    Parameters
    ----------
    reader : NetCDFReader
        Source dataset.
    axis_variable : str
        Name of the coordinate variable.

    Returns
    -------
    Bounds
    """
    variable = reader.get_variable(axis_variable)
    axis_data = reader.get_data_variable(variable)

    for attr in variable.attributes:
        if attr.name.lower() != "bounds":
            continue
        if not isinstance(attr.value, str):
            logger.warning(
                f"Bounds attribute of {axis_variable!r} is not a variable name "
                f"({attr.value!r}); interpolating"
            )
            break
        try:
            bounds_data = flatten(reader.get_data_variable(attr.value))
        except (VariableNotFoundError, NetCDFFormatError, IndexError, TypeError) as e:
            logger.warning(
                f"Bounds variable {attr.value!r} of {axis_variable!r} unreadable "
                f"({e}); interpolating"
            )
            break
        if len(bounds_data) != 2 * len(axis_data):
            logger.warning(
                f"Bounds variable {attr.value!r} has {len(bounds_data)} values, expected "
                f"{2 * len(axis_data)}; interpolating"
            )
            break
        return Bounds(values=tuple(bounds_data), mode=Bounds.DEFINITIVE)

    return Bounds(values=tuple(interpolate_bounds(axis_data)), mode=Bounds.INTERPOLATED)
