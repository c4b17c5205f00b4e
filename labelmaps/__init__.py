from labelmaps.atomic import ImageSize, expand_rle, label_map, load_image_size
from labelmaps.container import CellArray, Container, NumericArray, StructRecord, open_mat
from labelmaps.errors import (
    ContainerError,
    InconsistentRleError,
    InvalidShapeError,
    InvalidStructureError,
    MissingFieldError,
    RegionFormatError,
    UnsupportedTypeError,
)
from labelmaps.regions import CompoundRegion, HierarchicalRegionNode, get_field, load_region, load_region_tree
from labelmaps.segmentation import LoaderConfig, Segmentation, load_segmentation, read_segmentation

__all__ = [
    "CellArray",
    "CompoundRegion",
    "Container",
    "ContainerError",
    "HierarchicalRegionNode",
    "ImageSize",
    "InconsistentRleError",
    "InvalidShapeError",
    "InvalidStructureError",
    "LoaderConfig",
    "MissingFieldError",
    "NumericArray",
    "RegionFormatError",
    "Segmentation",
    "StructRecord",
    "UnsupportedTypeError",
    "expand_rle",
    "get_field",
    "label_map",
    "load_image_size",
    "load_region",
    "load_region_tree",
    "load_segmentation",
    "open_mat",
    "read_segmentation",
]
