from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from labelmaps.container import (
    FLOAT_KINDS,
    INTEGER_KINDS,
    CellArray,
    Container,
    StructRecord,
    Value,
    element_count,
    read_numeric,
)
from labelmaps.errors import ContainerError, InvalidStructureError, MissingFieldError

DEFAULT_MAX_DEPTH = 256

ATOMIC_SUPERPIXELS_FIELD = "list_of_atomic_superpixels"
SCALE_FIELD = "scale"
CHILDREN_FIELD = "children"


def _empty_ids() -> np.ndarray:
    return np.empty((0,), dtype=np.uint64)


@dataclass(eq=False)
class CompoundRegion:
    atomic_superpixels: np.ndarray = field(default_factory=_empty_ids)


@dataclass(eq=False)
class HierarchicalRegionNode(CompoundRegion):
    scale: float = 0.0
    children: List["HierarchicalRegionNode"] = field(default_factory=list)


def get_field(record: Value, name: str, optional: bool = False) -> Optional[Value]:
    """Return field ``name`` of a struct record.

    A field that is absent or stores zero bytes counts as missing: ``None`` when
    ``optional``, otherwise ``MissingFieldError``. The returned value belongs to
    the record's container.
    """
    if not isinstance(record, StructRecord):
        raise InvalidStructureError(f"Expected a struct while reading {name}")
    value = record.get(name)
    if value is None or value.nbytes <= 0:
        if optional:
            return None
        raise MissingFieldError(name)
    return value


def load_region(record: Value) -> CompoundRegion:
    """Load the atomic superpixel list (int32 or int64) of one region record."""
    if not isinstance(record, StructRecord):
        raise InvalidStructureError("cells should have struct array")

    ids = get_field(record, ATOMIC_SUPERPIXELS_FIELD)
    values = read_numeric(
        ids, ATOMIC_SUPERPIXELS_FIELD, INTEGER_KINDS, f"{ATOMIC_SUPERPIXELS_FIELD} has unknown type"
    )
    count = ids.nbytes // ids.data_size
    return CompoundRegion(atomic_superpixels=values[:count].astype(np.uint64))


def _load_scale(record: StructRecord) -> float:
    value = get_field(record, SCALE_FIELD)
    scale = read_numeric(value, SCALE_FIELD, FLOAT_KINDS, "Scale has unknown type")
    return float(scale[0])


def _load_node(record: Value, container: Container, max_depth: int, depth: int) -> HierarchicalRegionNode:
    region = load_region(record)
    node = HierarchicalRegionNode(atomic_superpixels=region.atomic_superpixels, scale=_load_scale(record))

    children = get_field(record, CHILDREN_FIELD, optional=True)
    if children is not None:
        node.children = _load_forest(children, container, max_depth, depth + 1)
    return node


def _load_forest(
    cell_array: Value, container: Container, max_depth: int, depth: int
) -> List[HierarchicalRegionNode]:
    if not isinstance(cell_array, CellArray) or cell_array.nbytes < 1:
        raise InvalidStructureError("Invalid tree data structure")
    if depth >= max_depth:
        raise InvalidStructureError(f"Region tree is nested deeper than {max_depth} levels")

    count = element_count(cell_array.shape)
    output: List[HierarchicalRegionNode] = []
    with ExitStack() as stack:
        try:
            handles = container.enumerate_cells(cell_array, 0, 1, count)
        except ContainerError as exc:
            raise InvalidStructureError("Invalid tree data structure") from exc
        records = [stack.enter_context(handle) for handle in handles]

        for record in records:
            output.append(_load_node(record, container, max_depth, depth))
    return output


def load_region_tree(
    cell_array: Value, container: Container, *, max_depth: int = DEFAULT_MAX_DEPTH
) -> List[HierarchicalRegionNode]:
    """Load a forest of region nodes from a cell array of region records.

    Each record holds ``list_of_atomic_superpixels``, ``scale`` (single or
    double) and an optional ``children`` cell array with the same layout.
    Records enumerated from ``container`` are released before returning, also
    when loading fails at any depth.
    """
    return _load_forest(cell_array, container, max_depth, 0)


def iter_nodes(forest: Sequence[HierarchicalRegionNode]) -> Iterator[Tuple[int, HierarchicalRegionNode]]:
    """Yield ``(depth, node)`` in depth-first pre-order."""
    stack = [(0, node) for node in reversed(forest)]
    while stack:
        depth, node = stack.pop()
        yield depth, node
        stack.extend((depth + 1, child) for child in reversed(node.children))


def count_nodes(forest: Sequence[HierarchicalRegionNode]) -> int:
    return sum(1 for _ in iter_nodes(forest))


def tree_depth(forest: Sequence[HierarchicalRegionNode]) -> int:
    return max((depth + 1 for depth, _ in iter_nodes(forest)), default=0)


def scales(forest: Sequence[HierarchicalRegionNode]) -> List[float]:
    return sorted({node.scale for _, node in iter_nodes(forest)})
