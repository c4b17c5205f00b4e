"""Tagged values read from a MAT-file and the handles that own them.

Values:
- ``StructRecord``: named fields of the first element of a struct array.
- ``CellArray``: a cell array, elements stored in column-major order.
- ``NumericArray``: a numeric (or char/logical) array with an element kind.

Every value reachable by field name belongs to its ``Container`` and is never
released on its own. Values returned by ``Container.enumerate_cells`` are
handed out as ``OwnedValue`` handles which must each be released once.
"""

from __future__ import annotations

import math
import zlib
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
from scipy import sparse
from scipy.io import loadmat
from scipy.io.matlab import MatReadError

from labelmaps.errors import ContainerError, InvalidShapeError, UnsupportedTypeError

# Size of one element slot in struct and cell storage.
POINTER_SIZE = 8


class ValueTag(Enum):
    STRUCT = "struct"
    CELL = "cell"
    NUMERIC = "numeric"


class ElementKind(Enum):
    INT8 = "int8"
    UINT8 = "uint8"
    INT16 = "int16"
    UINT16 = "uint16"
    INT32 = "int32"
    UINT32 = "uint32"
    INT64 = "int64"
    UINT64 = "uint64"
    SINGLE = "single"
    DOUBLE = "double"
    LOGICAL = "logical"
    CHAR = "char"
    UNKNOWN = "unknown"

    @classmethod
    def from_dtype(cls, dtype: np.dtype) -> "ElementKind":
        dtype = np.dtype(dtype)
        if dtype.kind == "b":
            return cls.LOGICAL
        if dtype.kind in "US":
            return cls.CHAR
        if dtype.kind == "c":
            return _DTYPE_KINDS.get(("f", dtype.itemsize // 2), cls.UNKNOWN)
        return _DTYPE_KINDS.get((dtype.kind, dtype.itemsize), cls.UNKNOWN)


_DTYPE_KINDS: Dict[Tuple[str, int], ElementKind] = {
    ("i", 1): ElementKind.INT8,
    ("u", 1): ElementKind.UINT8,
    ("i", 2): ElementKind.INT16,
    ("u", 2): ElementKind.UINT16,
    ("i", 4): ElementKind.INT32,
    ("u", 4): ElementKind.UINT32,
    ("i", 8): ElementKind.INT64,
    ("u", 8): ElementKind.UINT64,
    ("f", 4): ElementKind.SINGLE,
    ("f", 8): ElementKind.DOUBLE,
}

# Accepted kinds and the dtype each one is widened (or narrowed) to.
INTEGER_KINDS: Mapping[ElementKind, type] = {
    ElementKind.INT32: np.int64,
    ElementKind.INT64: np.int64,
}
FLOAT_KINDS: Mapping[ElementKind, type] = {
    ElementKind.SINGLE: np.float32,
    ElementKind.DOUBLE: np.float32,
}


def element_count(shape: Tuple[int, ...]) -> int:
    return int(math.prod(shape))


@dataclass(eq=False)
class NumericArray:
    data: np.ndarray

    tag: ClassVar[ValueTag] = ValueTag.NUMERIC

    def __post_init__(self) -> None:
        data = np.asarray(self.data)
        # MAT-file arrays are at least 2D.
        if data.ndim < 2:
            raise InvalidShapeError(f"numeric arrays need at least 2 dimensions, got shape {data.shape}")
        self.data = data

    @property
    def kind(self) -> ElementKind:
        return ElementKind.from_dtype(self.data.dtype)

    @property
    def is_complex(self) -> bool:
        return self.data.dtype.kind == "c"

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(int(d) for d in self.data.shape)

    @property
    def rank(self) -> int:
        return self.data.ndim

    @property
    def data_size(self) -> int:
        """Width in bytes of one (real) element."""
        itemsize = self.data.dtype.itemsize
        return itemsize // 2 if self.is_complex else itemsize

    @property
    def nbytes(self) -> int:
        return int(self.data.size) * self.data_size

    @property
    def flat(self) -> np.ndarray:
        """Elements in storage order (column-major)."""
        return self.data.ravel(order="F")


@dataclass(eq=False)
class StructRecord:
    fields: Dict[str, "Value"] = field(default_factory=dict)
    shape: Tuple[int, ...] = (1, 1)

    tag: ClassVar[ValueTag] = ValueTag.STRUCT

    @property
    def nbytes(self) -> int:
        return element_count(self.shape) * len(self.fields) * POINTER_SIZE

    def get(self, name: str) -> Optional["Value"]:
        return self.fields.get(name)


@dataclass(eq=False)
class CellArray:
    cells: List["Value"] = field(default_factory=list)
    shape: Optional[Tuple[int, ...]] = None

    tag: ClassVar[ValueTag] = ValueTag.CELL

    def __post_init__(self) -> None:
        self.cells = list(self.cells)
        if self.shape is None:
            self.shape = (1, len(self.cells))
        self.shape = tuple(int(d) for d in self.shape)

    @property
    def nbytes(self) -> int:
        return len(self.cells) * POINTER_SIZE


Value = Union[NumericArray, StructRecord, CellArray]


def value_kind(value: Value) -> Union[ElementKind, ValueTag]:
    if isinstance(value, NumericArray):
        return value.kind
    return value.tag


def read_numeric(
    value: Value,
    name: str,
    accepted: Mapping[ElementKind, type],
    message: Optional[str] = None,
) -> np.ndarray:
    """Return the elements of ``value`` converted to the dtype ``accepted`` maps its kind to.

    Any kind missing from ``accepted`` (including struct and cell values) raises
    ``UnsupportedTypeError``.
    """
    kind = value_kind(value)
    target = accepted.get(kind) if isinstance(kind, ElementKind) else None
    if target is None or not isinstance(value, NumericArray) or value.is_complex:
        raise UnsupportedTypeError(name, kind, message)
    return value.flat.astype(target, copy=False)


def from_matlab(obj: Any) -> Value:
    """Convert one ``scipy.io.loadmat`` value into a tagged value.

    Nested structs and cells are walked with an explicit stack, so nesting
    depth is bounded by memory rather than by the interpreter's recursion limit.
    """
    result: List[Value] = []
    pending: List[Tuple[Any, Callable[[Value], None]]] = [(obj, result.append)]

    while pending:
        item, store = pending.pop()
        if sparse.issparse(item):
            item = item.toarray()
        arr = np.asarray(item)

        if arr.dtype.names:
            record = StructRecord(shape=tuple(arr.shape))
            if arr.size:
                first = arr.ravel(order="F")[0]
                for name in arr.dtype.names:
                    record.fields[name] = None
                    pending.append((first[name], partial(record.fields.__setitem__, name)))
            store(record)
        elif arr.dtype == object:
            cells = CellArray(cells=[None] * arr.size, shape=tuple(arr.shape))
            for idx, cell in enumerate(arr.ravel(order="F")):
                pending.append((cell, partial(cells.cells.__setitem__, idx)))
            store(cells)
        else:
            store(NumericArray(arr))

    return result[0]


class OwnedValue:
    """Exclusive handle on one enumerated value.

    Used as a context manager it yields the raw value and releases it on exit,
    whichever way the block is left.
    """

    def __init__(self, container: "Container", value: Value) -> None:
        self._container = container
        self._value = value
        self._released = False

    @property
    def value(self) -> Value:
        return self._value

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._container.release(self)

    def __enter__(self) -> Value:
        return self._value

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class Container:
    """An opened container with ``root`` as its top-level record."""

    def __init__(self, root: StructRecord) -> None:
        self.root = root
        self._owned: Dict[int, OwnedValue] = {}
        self._closed = False

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def outstanding(self) -> int:
        """Number of enumerated values not yet released."""
        return len(self._owned)

    def _check_open(self) -> None:
        if self._closed:
            raise ContainerError("container is closed")

    def get_field(self, record: Value, name: str) -> Optional[Value]:
        self._check_open()
        if not isinstance(record, StructRecord):
            return None
        return record.get(name)

    def enumerate_cells(self, cell_array: Value, start: int, stride: int, count: int) -> List[OwnedValue]:
        self._check_open()
        if not isinstance(cell_array, CellArray):
            raise ContainerError(f"expected a cell array, got {value_kind(cell_array).value}")
        if start < 0 or stride < 1 or count < 0:
            raise ContainerError(f"invalid enumeration start={start} stride={stride} count={count}")
        if count and start + stride * (count - 1) >= len(cell_array.cells):
            raise ContainerError(
                f"cannot enumerate {count} cells from a cell array holding {len(cell_array.cells)}"
            )

        handles: List[OwnedValue] = []
        for idx in range(start, start + stride * count, stride):
            handle = OwnedValue(self, cell_array.cells[idx])
            self._owned[id(handle)] = handle
            handles.append(handle)
        return handles

    def release(self, handle: OwnedValue) -> None:
        if self._owned.pop(id(handle), None) is None and not self._closed:
            raise ContainerError("value is not owned by this container or was already released")

    def close(self) -> None:
        self._closed = True
        self._owned.clear()


class MatContainer(Container):
    """MAT-file (v4 to v7.2) opened with ``scipy.io.loadmat``."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        try:
            raw = loadmat(str(self.path), squeeze_me=False, struct_as_record=True)
        except NotImplementedError as exc:
            raise ContainerError(f"{self.path}: MAT v7.3 (HDF5) files are not supported") from exc
        except (MatReadError, ValueError, OSError, zlib.error) as exc:
            raise ContainerError(f"Failed to read MAT-file {self.path}: {exc}") from exc

        variables = {name: from_matlab(value) for name, value in raw.items() if not name.startswith("__")}
        super().__init__(StructRecord(fields=variables))


def open_mat(path: Union[str, Path]) -> MatContainer:
    return MatContainer(path)
