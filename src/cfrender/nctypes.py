"""
NetCDF classic type codes and primitive decoding.

Stateless helpers shared by the header parser and the variable data reader:
type code lookups, typed value reads, NUL trimming, names and 4-byte padding.
"""

from typing import Any

from cfrender.buffer import ByteCursor
from cfrender.errors import NetCDFFormatError

# Type codes
NC_BYTE = 1
NC_CHAR = 2
NC_SHORT = 3
NC_INT = 4
NC_FLOAT = 5
NC_DOUBLE = 6

# Grammar constants
ZERO = 0
NC_DIMENSION = 10
NC_VARIABLE = 11
NC_ATTRIBUTE = 12
NC_UNLIMITED = 0

TYPE_NAMES = {
    NC_BYTE: "byte",
    NC_CHAR: "char",
    NC_SHORT: "short",
    NC_INT: "int",
    NC_FLOAT: "float",
    NC_DOUBLE: "double",
}

TYPE_SIZES = {
    NC_BYTE: 1,
    NC_CHAR: 1,
    NC_SHORT: 2,
    NC_INT: 4,
    NC_FLOAT: 4,
    NC_DOUBLE: 8,
}

# numpy codes for the numeric types; bytes are read unsigned
DTYPE_CODES = {
    NC_BYTE: "u1",
    NC_SHORT: "i2",
    NC_INT: "i4",
    NC_FLOAT: "f4",
    NC_DOUBLE: "f8",
}


def not_netcdf(statement: bool, reason: str):
    """
    Raise if ``statement`` is true.

    Raises
    ------
    NetCDFFormatError
        With ``reason`` in the message.
    """
    if statement:
        raise NetCDFFormatError(f"Not a valid NetCDF v3.x file: {reason}")


def type_name(code: int) -> str:
    """Name of a type code, ``"undefined"`` for unknown codes."""
    return TYPE_NAMES.get(int(code), "undefined")


def type_size(code: int) -> int:
    """Width in bytes of a type code, -1 for unknown codes."""
    return TYPE_SIZES.get(int(code), -1)


def type_code(name: str) -> int:
    """Reverse of :func:`type_name`, -1 for unknown names."""
    for code, value in TYPE_NAMES.items():
        if value == str(name):
            return code
    return -1


def padding(cursor: ByteCursor):
    """Move the cursor 1, 2 or 3 bytes forward to the next 4-byte boundary."""
    if cursor.offset % 4 != 0:
        cursor.skip(4 - (cursor.offset % 4))


def trim_null(value: str) -> str:
    """Remove one trailing NUL character, if present."""
    if value.endswith("\x00"):
        return value[:-1]
    return value


def read_name(cursor: ByteCursor) -> str:
    """Read a length-prefixed name and skip its padding."""
    length = cursor.read_uint32()
    name = cursor.read_chars(length)
    padding(cursor)
    return name


def read_type(
    cursor: ByteCursor, code: int, size: int, byte_as_integer: bool = True
) -> Any:
    """
    Read ``size`` elements of type ``code``.

    Parameters
    ----------
    cursor : ByteCursor
        Buffer positioned at the first element.
    code : int
        NetCDF type code.
    size : int
        Number of elements.
    byte_as_integer : bool, optional
        Decode ``byte`` elements as integers instead of raw ``bytes``.

    Returns
    -------
    str, bytes, int, float or list
        Char data as a NUL-trimmed string; raw ``bytes`` for byte data when
        ``byte_as_integer`` is off; otherwise a bare number when ``size`` is 1
        and a list of numbers for any other size.

    Raises
    ------
    NetCDFFormatError
        If ``code`` is not a valid type code.
    """
    not_netcdf(code not in TYPE_NAMES, f"non valid type {code}")

    if code == NC_CHAR:
        return trim_null(cursor.read_chars(size))
    if code == NC_BYTE and not byte_as_integer:
        return cursor.read_bytes(size)

    values = cursor.read_array(DTYPE_CODES[code], size).tolist()
    if size == 1:
        return values[0]
    return values
