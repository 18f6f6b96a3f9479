"""
Exceptions raised by cfrender.

Each exception derives from the built-in type callers would naturally catch
(``ValueError`` for malformed input, ``KeyError`` for failed lookups, ...), so
code written against plain Python exceptions keeps working.
"""


class NetCDFFormatError(ValueError):
    """The byte stream is not a valid NetCDF v3.x file."""


class VariableNotFoundError(KeyError):
    """A variable name is not present in the dataset."""


class AttributeNotFoundError(KeyError):
    """An attribute name is not present on the dataset or variable."""


class GridValidationError(ValueError):
    """A grid query cannot be satisfied for the requested variable and filter."""


class UnsupportedLayoutError(GridValidationError, NotImplementedError):
    """The variable layout is valid NetCDF but not supported (e.g. interlaced X/Y)."""


class OutOfBoundsError(IndexError):
    """A read went past the end of the byte buffer."""


class BufferStateError(RuntimeError):
    """The byte buffer is in a state that does not allow the operation."""
