"""
Seekable byte buffer with typed reads and writes.

This module provides :class:`ByteCursor`, a movable position over a fixed
byte region. Multi-byte values are decoded with numpy dtypes so the byte
order is explicit and independent of the platform.
"""

from typing import ClassVar

import numpy as np

from cfrender.errors import BufferStateError, OutOfBoundsError

DEFAULT_BYTE_LENGTH = 1024 * 8


class ByteCursor:
    """
    Read/write cursor over a byte region.

    Parameters
    ----------
    data : bytes, bytearray, memoryview, int or None
        Initial content. An integer allocates an empty region of that many
        bytes; ``None`` allocates :data:`DEFAULT_BYTE_LENGTH` bytes.
    offset : int, optional
        Ignore the first ``offset`` bytes of ``data``.
    big_endian : bool, optional
        Byte order for multi-byte values. NetCDF is big-endian, which is the
        default.

    Attributes
    ----------
    offset : int
        Current position in bytes.
    length : int
        Size of the backing region in bytes.
    """

    SIZES: ClassVar[dict[str, int]] = {
        "i1": 1,
        "u1": 1,
        "i2": 2,
        "u2": 2,
        "i4": 4,
        "u4": 4,
        "f4": 4,
        "f8": 8,
    }

    def __init__(
        self,
        data: bytes | bytearray | memoryview | int | None = None,
        offset: int = 0,
        big_endian: bool = True,
    ):
        if data is None:
            data = DEFAULT_BYTE_LENGTH

        if isinstance(data, int):
            self._data = bytearray(data)
            self._last_written_byte = 0
        else:
            self._data = bytearray(memoryview(data)[offset:])
            self._last_written_byte = len(self._data)

        self.offset = 0
        self.big_endian = big_endian
        self._mark = 0
        self._marks: list[int] = []

    @property
    def length(self) -> int:
        return len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        order = "big" if self.big_endian else "little"
        return f"ByteCursor(length={self.length}, offset={self.offset}, order={order!r})"

    # -- position -------------------------------------------------------------

    def available(self, byte_length: int = 1) -> bool:
        """Check whether ``byte_length`` bytes fit after the current offset."""
        return self.offset + byte_length <= self.length

    @property
    def is_big_endian(self) -> bool:
        return self.big_endian

    @property
    def is_little_endian(self) -> bool:
        return not self.big_endian

    def set_big_endian(self) -> "ByteCursor":
        self.big_endian = True
        return self

    def set_little_endian(self) -> "ByteCursor":
        self.big_endian = False
        return self

    def skip(self, n: int = 1) -> "ByteCursor":
        self.offset += n
        return self

    def seek(self, offset: int) -> "ByteCursor":
        self.offset = offset
        return self

    def rewind(self) -> "ByteCursor":
        self.offset = 0
        return self

    def mark(self) -> "ByteCursor":
        """Store the current offset in the single mark slot."""
        self._mark = self.offset
        return self

    def reset(self) -> "ByteCursor":
        """Move back to the offset stored by :meth:`mark`."""
        self.offset = self._mark
        return self

    def push_mark(self) -> "ByteCursor":
        self._marks.append(self.offset)
        return self

    def pop_mark(self) -> "ByteCursor":
        """
        Pop the last pushed offset and move to it.

        Raises
        ------
        BufferStateError
            If the mark stack is empty.
        """
        if not self._marks:
            raise BufferStateError("Mark stack empty")
        self.seek(self._marks.pop())
        return self

    # -- reads ----------------------------------------------------------------

    def _dtype(self, code: str) -> np.dtype:
        if self.SIZES[code] == 1:
            return np.dtype(code)
        return np.dtype((">" if self.big_endian else "<") + code)

    def _check(self, byte_length: int):
        if self.offset < 0 or not self.available(byte_length):
            raise OutOfBoundsError(
                f"Cannot read {byte_length} byte(s) at offset {self.offset}: "
                f"buffer length is {self.length}"
            )

    def read_array(self, code: str, count: int) -> np.ndarray:
        """
        Read ``count`` consecutive values of numpy type ``code``.

        Parameters
        ----------
        code : str
            One of ``i1, u1, i2, u2, i4, u4, f4, f8``.
        count : int
            Number of values to read.

        Returns
        -------
        np.ndarray
            Native-endian copy of the decoded values.
        """
        dtype = self._dtype(code)
        nbytes = dtype.itemsize * count
        self._check(nbytes)
        values = np.frombuffer(self._data, dtype=dtype, count=count, offset=self.offset)
        self.offset += nbytes
        return values.astype(dtype.newbyteorder("="))

    def _read_scalar(self, code: str):
        return self.read_array(code, 1)[0].item()

    def read_boolean(self) -> bool:
        return self.read_uint8() != 0

    def read_int8(self) -> int:
        return self._read_scalar("i1")

    def read_uint8(self) -> int:
        return self._read_scalar("u1")

    def read_byte(self) -> int:
        return self.read_uint8()

    def read_int16(self) -> int:
        return self._read_scalar("i2")

    def read_uint16(self) -> int:
        return self._read_scalar("u2")

    def read_int32(self) -> int:
        return self._read_scalar("i4")

    def read_uint32(self) -> int:
        return self._read_scalar("u4")

    def read_float32(self) -> float:
        return self._read_scalar("f4")

    def read_float64(self) -> float:
        return self._read_scalar("f8")

    def read_bytes(self, n: int = 1) -> bytes:
        self._check(n)
        value = bytes(self._data[self.offset : self.offset + n])
        self.offset += n
        return value

    def read_char(self) -> str:
        return self.read_chars(1)

    def read_chars(self, n: int = 1) -> str:
        """Read ``n`` one-byte characters as a string of length ``n``."""
        return self.read_bytes(n).decode("latin-1")

    # -- writes ---------------------------------------------------------------

    def ensure_available(self, byte_length: int = 1) -> "ByteCursor":
        """
        Grow the backing region so ``byte_length`` bytes fit at the offset.

        The new region is twice the length needed.
        """
        if not self.available(byte_length):
            needed = self.offset + byte_length
            self._data.extend(bytes(needed * 2 - self.length))
        return self

    def _update_last_written_byte(self):
        if self.offset > self._last_written_byte:
            self._last_written_byte = self.offset

    def write_bytes(self, data: bytes | bytearray | list[int]) -> "ByteCursor":
        data = bytes(data)
        self.ensure_available(len(data))
        self._data[self.offset : self.offset + len(data)] = data
        self.offset += len(data)
        self._update_last_written_byte()
        return self

    def _write_scalar(self, code: str, value) -> "ByteCursor":
        return self.write_bytes(np.array(value, dtype=self._dtype(code)).tobytes())

    def write_boolean(self, value) -> "ByteCursor":
        return self.write_uint8(0xFF if value else 0x00)

    def write_int8(self, value: int) -> "ByteCursor":
        return self._write_scalar("i1", value)

    def write_uint8(self, value: int) -> "ByteCursor":
        return self._write_scalar("u1", value)

    def write_byte(self, value: int) -> "ByteCursor":
        return self.write_uint8(value)

    def write_int16(self, value: int) -> "ByteCursor":
        return self._write_scalar("i2", value)

    def write_uint16(self, value: int) -> "ByteCursor":
        return self._write_scalar("u2", value)

    def write_int32(self, value: int) -> "ByteCursor":
        return self._write_scalar("i4", value)

    def write_uint32(self, value: int) -> "ByteCursor":
        return self._write_scalar("u4", value)

    def write_float32(self, value: float) -> "ByteCursor":
        return self._write_scalar("f4", value)

    def write_float64(self, value: float) -> "ByteCursor":
        return self._write_scalar("f8", value)

    def write_char(self, value: str) -> "ByteCursor":
        return self.write_chars(value[0])

    def write_chars(self, value: str) -> "ByteCursor":
        return self.write_bytes(value.encode("latin-1"))

    def to_bytes(self) -> bytes:
        """Content up to the last written byte (or the initial content length)."""
        return bytes(self._data[: self._last_written_byte])
