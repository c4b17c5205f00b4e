from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from labelmaps.atomic import IMAGE_SHAPE_FIELD, RLE_FIELD, ImageSize, expand_rle, label_map, load_image_size
from labelmaps.container import CellArray, Container, open_mat
from labelmaps.errors import InvalidStructureError, MissingFieldError
from labelmaps.regions import DEFAULT_MAX_DEPTH, HierarchicalRegionNode, load_region_tree


@dataclass
class LoaderConfig:
    # None picks the only top-level cell array in the file.
    tree_field: Optional[str] = None
    image_shape_field: str = IMAGE_SHAPE_FIELD
    rle_field: str = RLE_FIELD
    max_depth: int = DEFAULT_MAX_DEPTH
    strict_rle: bool = True


@dataclass(eq=False)
class Segmentation:
    image_size: ImageSize
    atomic_regions: np.ndarray
    regions: List[HierarchicalRegionNode]
    run_count: int = 0

    def label_map(self, order: str = "C") -> np.ndarray:
        return label_map(self.atomic_regions, self.image_size, order=order)


def find_tree_field(container: Container) -> str:
    names = [name for name, value in container.root.fields.items() if isinstance(value, CellArray)]
    if not names:
        raise MissingFieldError("region tree", "File does not include a region tree cell array")
    if len(names) > 1:
        raise InvalidStructureError(
            f"File holds several cell arrays ({', '.join(sorted(names))}); pick the region tree explicitly"
        )
    return names[0]


def read_segmentation(container: Container, config: Optional[LoaderConfig] = None) -> Segmentation:
    config = config or LoaderConfig()
    root = container.root

    image_size = load_image_size(
        container.get_field(root, config.image_shape_field), name=config.image_shape_field
    )
    rle = container.get_field(root, config.rle_field)
    atomic_regions = expand_rle(
        rle,
        image_size,
        strict=config.strict_rle,
        name=config.rle_field,
    )

    tree_field = config.tree_field or find_tree_field(container)
    tree = container.get_field(root, tree_field)
    if tree is None:
        raise MissingFieldError(tree_field, f"File does not include {tree_field}")
    regions = load_region_tree(tree, container, max_depth=config.max_depth)

    return Segmentation(
        image_size=image_size,
        atomic_regions=atomic_regions,
        regions=regions,
        run_count=rle.shape[0],
    )


def load_segmentation(path: Union[str, Path], config: Optional[LoaderConfig] = None) -> Segmentation:
    with open_mat(path) as container:
        return read_segmentation(container, config)
