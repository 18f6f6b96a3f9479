"""
NetCDF header parsing and variable data reading.

This module provides the dataclasses describing a NetCDF classic header
(dimensions, attributes, variables and the record dimension) and the
functions that decode them from a :class:`~cfrender.buffer.ByteCursor`. It
also reads the flat value sequence of a variable, for both the contiguous
(non-record) layout and the interleaved record layout.

Format reference:
https://docs.unidata.ucar.edu/netcdf-c/current/file_format_specifications.html
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar

from cfrender.buffer import ByteCursor
from cfrender.errors import AttributeNotFoundError
from cfrender.nctypes import (
    NC_ATTRIBUTE,
    NC_BYTE,
    NC_CHAR,
    NC_DIMENSION,
    NC_UNLIMITED,
    NC_VARIABLE,
    ZERO,
    not_netcdf,
    padding,
    read_name,
    read_type,
    trim_null,
    type_code,
    type_name,
    type_size,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Dimension:
    """A named dimension. Size 0 marks the unlimited (record) dimension."""

    name: str
    size: int

    @property
    def is_unlimited(self) -> bool:
        return self.size == NC_UNLIMITED


@dataclass(frozen=True)
class Attribute:
    """
    A global or variable attribute.

    Parameters
    ----------
    name : str
        Attribute name.
    type : str
        Type name (``"byte"``, ``"char"``, ``"short"``, ...).
    value : str, int, float or list
        Trimmed string for char attributes, a bare number for single-element
        numeric attributes and a list of numbers otherwise.
    """

    name: str
    type: str
    value: Any


def find_attribute(attributes: list[Attribute], name: str) -> Attribute | None:
    for attribute in attributes:
        if attribute.name == name:
            return attribute
    return None


@dataclass
class Variable:
    """
    Header entry for a variable.

    Parameters
    ----------
    name : str
        Variable name.
    dimensions : tuple[int, ...]
        Dimension ids, outermost first.
    attributes : list[Attribute]
        Variable attributes in file order.
    type : str
        Type name.
    size : int
        Declared size in bytes (per record for record variables).
    offset : int
        Byte offset of the data (of the first record for record variables).
    record : bool
        True if the outermost dimension is the record dimension.
    """

    name: str
    dimensions: tuple[int, ...]
    attributes: list[Attribute] = field(repr=False)
    type: str
    size: int
    offset: int
    record: bool = False

    @property
    def type_code(self) -> int:
        return type_code(self.type)

    @property
    def attribute_names(self) -> list[str]:
        return [attribute.name for attribute in self.attributes]

    def get_attribute(self, name: str) -> Any:
        """
        Value of the attribute called ``name``.

        Raises
        ------
        AttributeNotFoundError
            If the variable has no such attribute.
        """
        attribute = find_attribute(self.attributes, name)
        if attribute is None:
            raise AttributeNotFoundError(
                f"attribute not found on variable {self.name}: {name}"
            )
        return attribute.value

    def has_attribute(self, name: str) -> bool:
        return find_attribute(self.attributes, name) is not None


@dataclass
class RecordDimension:
    """
    Metadata for the record dimension.

    ``length`` is the number of records, ``record_step`` the byte distance
    between two consecutive records (sum of declared sizes of all record
    variables). ``id`` and ``name`` are None when there is no record dimension.
    """

    length: int
    id: int | None = None
    name: str | None = None
    record_step: int = 0


def read_list(
    cursor: ByteCursor, tag: int, read_item: Callable[[ByteCursor], T], label: str
) -> list[T]:
    """
    Read a tagged header list.

    Dimension, attribute and variable lists share one encoding: a 4-byte tag
    and a 4-byte count. An absent list is written as ``ZERO ZERO``.

    Parameters
    ----------
    cursor : ByteCursor
        Buffer positioned at the list tag.
    tag : int
        Expected tag (``NC_DIMENSION``, ``NC_ATTRIBUTE`` or ``NC_VARIABLE``).
    read_item : callable
        Reads one element from the cursor.
    label : str
        Name of the list for error messages.

    Returns
    -------
    list
        Decoded elements.
    """
    list_tag = cursor.read_uint32()
    if list_tag == ZERO:
        not_netcdf(
            cursor.read_uint32() != ZERO, f"wrong empty tag for list of {label}"
        )
        return []

    not_netcdf(list_tag != tag, f"wrong tag for list of {label}")

    count = cursor.read_uint32()
    return [read_item(cursor) for _ in range(count)]


def read_dimension(cursor: ByteCursor) -> Dimension:
    name = read_name(cursor)
    size = cursor.read_uint32()
    return Dimension(name=name, size=size)


def read_attribute(cursor: ByteCursor) -> Attribute:
    name = read_name(cursor)

    code = cursor.read_uint32()
    not_netcdf(code < 1 or code > 6, f"non valid type {code}")

    size = cursor.read_uint32()
    value = read_type(cursor, code, size)

    padding(cursor)
    return Attribute(name=name, type=type_name(code), value=value)


def read_attributes(cursor: ByteCursor) -> list[Attribute]:
    return read_list(cursor, NC_ATTRIBUTE, read_attribute, "attributes")


def read_variable(
    cursor: ByteCursor, version: int, record_id: int | None, dimension_count: int
) -> Variable:
    name = read_name(cursor)

    dimensionality = cursor.read_uint32()
    dimensions = tuple(cursor.read_uint32() for _ in range(dimensionality))
    for dim_id in dimensions:
        not_netcdf(dim_id >= dimension_count, f"undefined dimension id {dim_id} in {name}")

    attributes = read_attributes(cursor)

    code = cursor.read_uint32()
    not_netcdf(code < 1 or code > 6, f"non valid type {code}")

    # vsize is clamped to 2^32 - 1 for variables larger than 4 GiB
    size = cursor.read_uint32()

    offset = cursor.read_uint32()
    if version == 2:
        not_netcdf(offset > 0, "offsets larger than 4GB not supported")
        offset = cursor.read_uint32()

    record = record_id is not None and len(dimensions) > 0 and dimensions[0] == record_id

    return Variable(
        name=name,
        dimensions=dimensions,
        attributes=attributes,
        type=type_name(code),
        size=size,
        offset=offset,
        record=record,
    )


@dataclass
class Header:
    """
    Decoded NetCDF classic header.

    Attributes
    ----------
    version : int
        1 for the classic format, 2 for the 64-bit offset format.
    record_dimension : RecordDimension
        Record count, id, name and byte step.
    dimensions : list[Dimension]
    global_attributes : list[Attribute]
    variables : list[Variable]
    """

    version: int
    record_dimension: RecordDimension
    dimensions: list[Dimension]
    global_attributes: list[Attribute]
    variables: list[Variable]

    MAGIC: ClassVar[str] = "CDF"
    VERSIONS: ClassVar[tuple[int, ...]] = (1, 2)

    @classmethod
    def from_cursor(cls, cursor: ByteCursor) -> "Header":
        """
        Parse a header from the start of a NetCDF stream.

        Parameters
        ----------
        cursor : ByteCursor
            Big-endian buffer positioned at the magic bytes.

        Returns
        -------
        Header

        Raises
        ------
        NetCDFFormatError
            If the stream violates the classic format grammar.
        """
        not_netcdf(cursor.read_chars(3) != cls.MAGIC, "should start with CDF")

        version = cursor.read_byte()
        not_netcdf(version not in cls.VERSIONS, "unknown version")

        record_dimension = RecordDimension(length=cursor.read_uint32())

        dimensions = read_list(cursor, NC_DIMENSION, read_dimension, "dimensions")
        unlimited = [i for i, dim in enumerate(dimensions) if dim.is_unlimited]
        not_netcdf(len(unlimited) > 1, "more than one unlimited dimension")
        if unlimited:
            record_dimension.id = unlimited[0]
            record_dimension.name = dimensions[unlimited[0]].name

        global_attributes = read_attributes(cursor)

        variables = read_list(
            cursor,
            NC_VARIABLE,
            lambda c: read_variable(c, version, record_dimension.id, len(dimensions)),
            "variables",
        )
        record_dimension.record_step = sum(v.size for v in variables if v.record)

        logger.info(
            f"Parsed NetCDF header: {len(dimensions)} dimensions, "
            f"{len(global_attributes)} global attributes, {len(variables)} variables"
        )

        return cls(
            version=version,
            record_dimension=record_dimension,
            dimensions=dimensions,
            global_attributes=global_attributes,
            variables=variables,
        )


def flatten(data: list) -> list:
    """Flatten one level of record slices into a single value sequence."""
    flat = []
    for item in data:
        if isinstance(item, list):
            flat.extend(item)
        else:
            flat.append(item)
    return flat


def fixed_shape(variable: Variable, dimensions: list[Dimension]) -> tuple[int, ...]:
    """Sizes of the variable's dimensions, excluding the record dimension."""
    dim_ids = variable.dimensions[1:] if variable.record else variable.dimensions
    return tuple(dimensions[i].size for i in dim_ids)


def _element_count(variable: Variable, dimensions: list[Dimension]) -> int:
    width = type_size(variable.type_code)
    count = variable.size // width if variable.size else 1
    # Declared sizes are rounded up to 4 bytes; never decode the padding
    return min(count, math.prod(fixed_shape(variable, dimensions)))


def _read_values(
    cursor: ByteCursor, variable: Variable, count: int, byte_as_integer: bool
) -> Any:
    code = variable.type_code
    if code == NC_CHAR:
        return read_type(cursor, code, count)
    if code == NC_BYTE and not byte_as_integer:
        return read_type(cursor, code, count, byte_as_integer=False)
    values = read_type(cursor, code, count)
    return values if count != 1 else [values]


def read_non_record(
    cursor: ByteCursor,
    variable: Variable,
    dimensions: list[Dimension],
    byte_as_integer: bool = True,
) -> list:
    """
    Read a contiguous (non-record) variable.

    Parameters
    ----------
    cursor : ByteCursor
        Buffer for the file data.
    variable : Variable
        Header entry of the variable.
    dimensions : list[Dimension]
        Dimensions of the dataset.
    byte_as_integer : bool, optional
        Expose byte data as integers rather than one-byte ``bytes`` objects.

    Returns
    -------
    list
        One element per value; char data yields one-character strings.
    """
    count = _element_count(variable, dimensions)
    cursor.seek(variable.offset)

    if variable.type_code == NC_CHAR:
        return [trim_null(char) for char in cursor.read_chars(count)]
    if variable.type_code == NC_BYTE and not byte_as_integer:
        raw = cursor.read_bytes(count)
        return [raw[i : i + 1] for i in range(count)]
    return _read_values(cursor, variable, count, byte_as_integer)


def read_record(
    cursor: ByteCursor,
    variable: Variable,
    record_dimension: RecordDimension,
    dimensions: list[Dimension],
    byte_as_integer: bool = True,
) -> list:
    """
    Read a record variable, one slice per record.

    Slices are ``record_dimension.record_step`` bytes apart. A slice holding a
    single value is returned as a bare value, otherwise as a list (a string
    for char data, ``bytes`` for raw byte data).

    Returns
    -------
    list
        ``record_dimension.length`` slices.
    """
    width = _element_count(variable, dimensions)
    step = record_dimension.record_step

    data = []
    for index in range(record_dimension.length):
        cursor.seek(variable.offset + index * step)
        values = _read_values(cursor, variable, width, byte_as_integer)
        if isinstance(values, list) and width == 1:
            values = values[0]
        data.append(values)
    return data
