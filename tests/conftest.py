"""Shared fixtures: NetCDF classic files built in memory."""

import math

import pytest

from cfrender.buffer import ByteCursor
from cfrender.nctypes import (
    NC_ATTRIBUTE,
    NC_BYTE,
    NC_CHAR,
    NC_DIMENSION,
    NC_DOUBLE,
    NC_FLOAT,
    NC_INT,
    NC_SHORT,
    NC_VARIABLE,
    TYPE_SIZES,
)

WRITERS = {
    NC_BYTE: "write_uint8",
    NC_SHORT: "write_int16",
    NC_INT: "write_int32",
    NC_FLOAT: "write_float32",
    NC_DOUBLE: "write_float64",
}


def pad(cursor: ByteCursor):
    while cursor.offset % 4:
        cursor.write_uint8(0)


def write_name(cursor: ByteCursor, name: str):
    cursor.write_uint32(len(name))
    cursor.write_chars(name)
    pad(cursor)


def write_values(cursor: ByteCursor, nc_type: int, values):
    if nc_type == NC_CHAR:
        cursor.write_chars(values)
        return
    for value in values:
        getattr(cursor, WRITERS[nc_type])(value)


def write_attributes(cursor: ByteCursor, attributes: dict | None):
    if not attributes:
        cursor.write_uint32(0).write_uint32(0)
        return
    cursor.write_uint32(NC_ATTRIBUTE).write_uint32(len(attributes))
    for name, (nc_type, value) in attributes.items():
        write_name(cursor, name)
        cursor.write_uint32(nc_type)
        if nc_type == NC_CHAR:
            cursor.write_uint32(len(value))
            write_values(cursor, nc_type, value)
        else:
            values = list(value) if isinstance(value, (list, tuple)) else [value]
            cursor.write_uint32(len(values))
            write_values(cursor, nc_type, values)
        pad(cursor)


def build_netcdf(
    dimensions: list[tuple[str, int]],
    variables: list[dict],
    global_attributes: dict | None = None,
    numrecs: int = 0,
    version: int = 1,
) -> bytes:
    """
    Encode a NetCDF classic file.

    ``dimensions`` is a list of ``(name, size)`` with size 0 for the record
    dimension. Each variable is a dict with ``name``, ``dims`` (dimension
    names), ``type`` (type code), optional ``attrs`` (name to
    ``(type, value)``) and ``data`` (flat values, record-major for record
    variables, a string for char data).
    """
    dim_names = [name for name, _ in dimensions]
    dim_sizes = dict(dimensions)
    record_name = next((name for name, size in dimensions if size == 0), None)

    def is_record(var):
        return record_name is not None and bool(var["dims"]) and var["dims"][0] == record_name

    def slice_count(var):
        dims = var["dims"][1:] if is_record(var) else var["dims"]
        return math.prod(dim_sizes[d] for d in dims)

    def vsize(var):
        n = slice_count(var) * TYPE_SIZES[var["type"]]
        return n + (-n % 4)

    def write_header(offsets):
        cursor = ByteCursor()
        cursor.write_chars("CDF")
        cursor.write_uint8(version)
        cursor.write_uint32(numrecs)

        if dimensions:
            cursor.write_uint32(NC_DIMENSION).write_uint32(len(dimensions))
            for name, size in dimensions:
                write_name(cursor, name)
                cursor.write_uint32(size)
        else:
            cursor.write_uint32(0).write_uint32(0)

        write_attributes(cursor, global_attributes)

        if variables:
            cursor.write_uint32(NC_VARIABLE).write_uint32(len(variables))
            for var, offset in zip(variables, offsets):
                write_name(cursor, var["name"])
                cursor.write_uint32(len(var["dims"]))
                for dim in var["dims"]:
                    cursor.write_uint32(dim_names.index(dim))
                write_attributes(cursor, var.get("attrs"))
                cursor.write_uint32(var["type"])
                cursor.write_uint32(vsize(var))
                if version == 2:
                    cursor.write_uint32(0)
                cursor.write_uint32(offset)
        else:
            cursor.write_uint32(0).write_uint32(0)
        return cursor

    position = write_header([0] * len(variables)).offset

    offsets = {}
    for var in variables:
        if not is_record(var):
            offsets[var["name"]] = position
            position += vsize(var)
    record_size = 0
    for var in variables:
        if is_record(var):
            offsets[var["name"]] = position + record_size
            record_size += vsize(var)

    cursor = write_header([offsets[var["name"]] for var in variables])

    for var in variables:
        if not is_record(var):
            cursor.seek(offsets[var["name"]])
            write_values(cursor, var["type"], var["data"])
            pad(cursor)

    for record in range(numrecs):
        for var in variables:
            if is_record(var):
                n = slice_count(var)
                cursor.seek(offsets[var["name"]] + record * record_size)
                write_values(cursor, var["type"], var["data"][record * n : (record + 1) * n])
                pad(cursor)

    return cursor.to_bytes()


@pytest.fixture
def builder():
    return build_netcdf


@pytest.fixture
def simple_grid_bytes() -> bytes:
    """Packed ``temp`` on a 3 (lon) x 2 (lat) grid, stored [lat, lon] and [lon, lat]."""
    packing = {
        "_FillValue": (NC_SHORT, -999),
        "scale_factor": (NC_FLOAT, 0.5),
        "add_offset": (NC_FLOAT, 10.0),
        "units": (NC_CHAR, "K"),
    }
    return build_netcdf(
        dimensions=[("lon", 3), ("lat", 2)],
        global_attributes={"title": (NC_CHAR, "simple grid"), "version": (NC_INT, 3)},
        variables=[
            {
                "name": "lon",
                "dims": ["lon"],
                "type": NC_FLOAT,
                "attrs": {"axis": (NC_CHAR, "X"), "units": (NC_CHAR, "degrees_east")},
                "data": [10.0, 20.0, 30.0],
            },
            {
                "name": "lat",
                "dims": ["lat"],
                "type": NC_FLOAT,
                "attrs": {"axis": (NC_CHAR, "Y"), "units": (NC_CHAR, "degrees_north")},
                "data": [-5.0, 5.0],
            },
            {
                "name": "temp",
                "dims": ["lat", "lon"],
                "type": NC_SHORT,
                "attrs": packing,
                "data": [0, 2, -999, 4, 6, 8],
            },
            {
                "name": "temp_t",
                "dims": ["lon", "lat"],
                "type": NC_SHORT,
                "attrs": packing,
                "data": [0, 4, 2, 6, -999, 8],
            },
        ],
    )


@pytest.fixture
def record_grid_bytes() -> bytes:
    """Three records of ``precip`` [time, lat, lon] plus a short record variable."""
    precip = []
    for record in range(3):
        precip.extend(float(record * 10 + k) for k in range(6))
    precip[10] = -1.0  # record 1, lat 1, lon 1

    return build_netcdf(
        dimensions=[("time", 0), ("lat", 2), ("lon", 3), ("nv", 2)],
        numrecs=3,
        variables=[
            {
                "name": "time",
                "dims": ["time"],
                "type": NC_DOUBLE,
                "attrs": {"axis": (NC_CHAR, "T"), "units": (NC_CHAR, "hours since 2000-01-01")},
                "data": [0.0, 6.0, 12.0],
            },
            {
                "name": "lat",
                "dims": ["lat"],
                "type": NC_FLOAT,
                "attrs": {"standard_name": (NC_CHAR, "latitude")},
                "data": [-5.0, 5.0],
            },
            {
                "name": "lon",
                "dims": ["lon"],
                "type": NC_FLOAT,
                "attrs": {
                    "_CoordinateAxisType": (NC_CHAR, "Lon"),
                    "bounds": (NC_CHAR, "lon_bnds"),
                },
                "data": [10.0, 20.0, 30.0],
            },
            {
                "name": "lon_bnds",
                "dims": ["lon", "nv"],
                "type": NC_FLOAT,
                "data": [8.0, 12.0, 18.0, 22.0, 28.0, 32.0],
            },
            {
                "name": "precip",
                "dims": ["time", "lat", "lon"],
                "type": NC_FLOAT,
                "attrs": {"missing_value": (NC_FLOAT, -1.0)},
                "data": precip,
            },
            {
                "name": "flag",
                "dims": ["time"],
                "type": NC_SHORT,
                "data": [1, 2, 3],
            },
        ],
    )


@pytest.fixture
def level_grid_bytes() -> bytes:
    """4D variable [t, z, y, x], a single-level variable and an interlaced one."""
    xy = {"x": [0.0, 1.0], "y": [0.0, 1.0]}
    return build_netcdf(
        dimensions=[("t", 2), ("z", 2), ("level", 1), ("y", 2), ("x", 2)],
        variables=[
            {"name": "t", "dims": ["t"], "type": NC_INT, "data": [100, 200]},
            {"name": "z", "dims": ["z"], "type": NC_INT, "data": [1000, 500]},
            {"name": "level", "dims": ["level"], "type": NC_INT, "data": [850]},
            {
                "name": "y",
                "dims": ["y"],
                "type": NC_DOUBLE,
                "attrs": {"cartesian_axis": (NC_CHAR, "Y")},
                "data": xy["y"],
            },
            {
                "name": "x",
                "dims": ["x"],
                "type": NC_DOUBLE,
                "attrs": {"cartesian_axis": (NC_CHAR, "X")},
                "data": xy["x"],
            },
            {
                "name": "field",
                "dims": ["t", "z", "y", "x"],
                "type": NC_INT,
                "data": list(range(16)),
            },
            {
                "name": "single",
                "dims": ["level", "y", "x"],
                "type": NC_INT,
                "data": [1, 2, 3, 4],
            },
            {
                "name": "interlaced",
                "dims": ["y", "z", "x"],
                "type": NC_INT,
                "data": list(range(8)),
            },
        ],
    )
