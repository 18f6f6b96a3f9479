"""
NetCDF v3.x reader.

This module provides :class:`NetCDFReader`, which parses the header of a
NetCDF classic (or 64-bit offset) byte stream once and decodes variable data
on request.
"""

import json
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from cfrender.buffer import ByteCursor
from cfrender.errors import AttributeNotFoundError, VariableNotFoundError
from cfrender.records import (
    Attribute,
    Dimension,
    Header,
    RecordDimension,
    Variable,
    find_attribute,
    read_non_record,
    read_record,
)


class NetCDFReader:
    """
    Reads a NetCDF v3.x file held in memory.

    Parameters
    ----------
    data : bytes, bytearray or memoryview
        Complete file content.
    byte_as_integer : bool, optional
        Return ``byte`` variable data as integers so it can be scaled and
        rendered like any other numeric data. Defaults to True.

    Raises
    ------
    NetCDFFormatError
        If the header is not valid. No reader is constructed in that case.
    """

    def __init__(self, data: bytes | bytearray | memoryview, byte_as_integer: bool = True):
        buffer = ByteCursor(data)
        buffer.set_big_endian()

        self.headers = Header.from_cursor(buffer)
        self.buffer = buffer
        self.byte_as_integer = byte_as_integer

        self._variable_index = {v.name: v for v in self.headers.variables}

    @classmethod
    def from_file(cls, filename: Path | str, **kwargs) -> "NetCDFReader":
        """
        Read a local NetCDF file.

        Raises
        ------
        ValueError
            If the file does not exist.
        """
        path = Path(filename)

        if not path.exists():
            raise ValueError(f"Invalid file path: {path}")

        with path.open("rb") as f:
            data = f.read()

        return cls(data, **kwargs)

    @property
    def version(self) -> str:
        if self.headers.version == 1:
            return "classic format"
        return "64-bit offset format"

    @property
    def record_dimension(self) -> RecordDimension:
        return self.headers.record_dimension

    @property
    def dimensions(self) -> list[Dimension]:
        return self.headers.dimensions

    @property
    def global_attributes(self) -> list[Attribute]:
        return self.headers.global_attributes

    @property
    def variables(self) -> list[Variable]:
        return self.headers.variables

    def get_attribute(self, attribute_name: str) -> Any:
        """
        Value of a global attribute.

        Raises
        ------
        AttributeNotFoundError
            If there is no global attribute with that name.
        """
        attribute = find_attribute(self.global_attributes, attribute_name)
        if attribute is None:
            raise AttributeNotFoundError(f"attribute not found: {attribute_name}")
        return attribute.value

    def attribute_exists(self, attribute_name: str) -> bool:
        return find_attribute(self.global_attributes, attribute_name) is not None

    def data_variable_exists(self, variable_name: str) -> bool:
        return variable_name in self._variable_index

    def get_variable(self, variable_name: str) -> Variable:
        """
        Header entry of a variable.

        Raises
        ------
        VariableNotFoundError
            If the variable does not exist.
        """
        try:
            return self._variable_index[variable_name]
        except KeyError:
            raise VariableNotFoundError(f"variable not found: {variable_name}") from None

    def get_data_variable(self, variable: str | Variable) -> list:
        """
        Decode the data of a variable.

        Parameters
        ----------
        variable : str or Variable
            Name of the variable, or its header entry.

        Returns
        -------
        list
            Values for non-record variables; one slice per record for record
            variables (a bare value when each record holds a single value).
        """
        if isinstance(variable, str):
            variable = self.get_variable(variable)

        if variable.record:
            return read_record(
                self.buffer,
                variable,
                self.record_dimension,
                self.dimensions,
                byte_as_integer=self.byte_as_integer,
            )
        return read_non_record(
            self.buffer, variable, self.dimensions, byte_as_integer=self.byte_as_integer
        )

    def get_data_variable_as_string(self, variable_name: str) -> str:
        """Char data of a variable joined into a single string."""
        return "".join(self.get_data_variable(variable_name))

    def shape(self, variable: str | Variable) -> tuple[int, ...]:
        """Shape of a variable, using the record count for the record dimension."""
        if isinstance(variable, str):
            variable = self.get_variable(variable)
        return tuple(
            self.record_dimension.length
            if dim_id == self.record_dimension.id
            else self.dimensions[dim_id].size
            for dim_id in variable.dimensions
        )

    def get_array(self, variable_name: str) -> np.ndarray:
        """
        Numeric data of a variable as an array shaped by its dimensions.

        Returns
        -------
        np.ndarray
            Array of shape :meth:`shape`.
        """
        variable = self.get_variable(variable_name)
        data = self.get_data_variable(variable)
        return np.asarray(data).reshape(self.shape(variable))

    def variables_frame(self) -> pd.DataFrame:
        """
        Variable metadata as a DataFrame indexed by variable name.

        Returns
        -------
        pd.DataFrame
            Columns ``type``, ``dimensions`` (names), ``size``, ``offset``,
            ``record`` and ``attributes`` (names).
        """
        rows = [
            {
                "name": v.name,
                "type": v.type,
                "dimensions": tuple(self.dimensions[i].name for i in v.dimensions),
                "size": v.size,
                "offset": v.offset,
                "record": v.record,
                "attributes": tuple(v.attribute_names),
            }
            for v in self.variables
        ]
        columns = ["name", "type", "dimensions", "size", "offset", "record", "attributes"]
        return pd.DataFrame(rows, columns=columns).set_index("name")

    def __str__(self) -> str:
        result = ["DIMENSIONS"]
        for dimension in self.dimensions:
            result.append(f"  {dimension.name:<30} = size: {dimension.size}")

        result.append("")
        result.append("GLOBAL ATTRIBUTES")
        for attribute in self.global_attributes:
            result.append(f"  {attribute.name:<30} = {attribute.value}")

        result.append("")
        result.append("VARIABLES:")
        for variable in self.variables:
            value = self.get_data_variable(variable)
            text = json.dumps(value, default=str)[:50]
            text += f" (length: {len(value)})"
            result.append(f"  {variable.name:<30} = {text}")

        return "\n".join(result)

    def __repr__(self) -> str:
        return (
            f"NetCDFReader(version={self.version!r}, "
            f"dimensions={len(self.dimensions)}, variables={len(self.variables)})"
        )
