from __future__ import annotations

import numpy as np
import pytest
from scipy.io import savemat

from labelmaps.errors import ContainerError, InvalidShapeError, InvalidStructureError, MissingFieldError
from labelmaps.segmentation import LoaderConfig, load_segmentation


def cell(items):
    arr = np.empty((1, len(items)), dtype=object)
    for i, item in enumerate(items):
        arr[0, i] = item
    return arr


def region(ids, scale, children=None):
    rec = {"list_of_atomic_superpixels": ids, "scale": scale}
    if children is not None:
        rec["children"] = cell(children)
    return rec


def leaf():
    return region(np.array([1, 2, 3], dtype=np.int32), np.float32(1.0))


def write_segmentation(path, **overrides):
    variables = {
        "image_shape": np.array([[1, 5, 1]], dtype=np.int32),
        "atomic_SLIC_rle": np.array([[2, 7], [3, 9]], dtype=np.int32),
        "region_tree": cell(
            [
                leaf(),
                region(np.array([4], dtype=np.int64), np.float64(0.5), children=[leaf()]),
            ]
        ),
    }
    variables.update(overrides)
    savemat(path, variables)
    return path


def test_load_segmentation_end_to_end(tmp_path):
    seg = load_segmentation(write_segmentation(tmp_path / "seg.mat"))

    assert (seg.image_size.rows, seg.image_size.cols, seg.image_size.stride) == (1, 5, 1)
    assert seg.atomic_regions.tolist() == [7, 7, 9, 9, 9]
    assert seg.label_map().tolist() == [[7, 7, 9, 9, 9]]

    assert len(seg.regions) == 2
    node0, node1 = seg.regions
    assert node0.atomic_superpixels.tolist() == [1, 2, 3]
    assert node0.scale == 1.0
    assert node0.children == []
    assert node1.atomic_superpixels.tolist() == [4]
    assert node1.scale == 0.5
    assert len(node1.children) == 1
    assert node1.children[0].atomic_superpixels.tolist() == [1, 2, 3]
    assert node1.children[0].scale == 1.0
    assert node1.children[0].children == []


def test_load_segmentation_explicit_tree_field(tmp_path):
    path = write_segmentation(tmp_path / "seg.mat", other_cells=cell([np.int32(1)]))

    with pytest.raises(InvalidStructureError, match="several cell arrays"):
        load_segmentation(path)

    seg = load_segmentation(path, LoaderConfig(tree_field="region_tree"))
    assert len(seg.regions) == 2


def test_load_segmentation_missing_variables(tmp_path):
    path = tmp_path / "partial.mat"
    savemat(path, {"atomic_SLIC_rle": np.array([[5, 1]], dtype=np.int32)})
    with pytest.raises(MissingFieldError, match="File does not include image_shape"):
        load_segmentation(path)

    path = tmp_path / "no_tree.mat"
    savemat(
        path,
        {
            "image_shape": np.array([[1, 5, 1]], dtype=np.int32),
            "atomic_SLIC_rle": np.array([[5, 1]], dtype=np.int32),
        },
    )
    with pytest.raises(MissingFieldError):
        load_segmentation(path)


def test_load_segmentation_rle_with_three_columns(tmp_path):
    path = write_segmentation(tmp_path / "bad.mat", atomic_SLIC_rle=np.ones((5, 3), dtype=np.int32))
    with pytest.raises(InvalidShapeError, match="atomic_SLIC_rle is invalid"):
        load_segmentation(path)


def test_load_segmentation_lenient_rle(tmp_path):
    path = write_segmentation(tmp_path / "short.mat", atomic_SLIC_rle=np.array([[2, 7]], dtype=np.int32))
    seg = load_segmentation(path, LoaderConfig(strict_rle=False))
    assert seg.atomic_regions.tolist() == [7, 7, 0, 0, 0]


def test_load_segmentation_finds_tree_by_default(tmp_path):
    assert LoaderConfig().tree_field is None

    path = tmp_path / "renamed.mat"
    savemat(
        path,
        {
            "image_shape": np.array([[1, 5, 1]], dtype=np.int32),
            "atomic_SLIC_rle": np.array([[2, 7], [3, 9]], dtype=np.int32),
            "hierarchy": cell([leaf()]),
        },
    )
    seg = load_segmentation(path)
    assert len(seg.regions) == 1
    assert seg.run_count == 2


def test_load_segmentation_reads_2d_cell_array_in_column_major_order(tmp_path):
    grid = np.empty((2, 2), dtype=object)
    grid[0, 0] = region(np.array([0], dtype=np.int32), np.float32(1.0))
    grid[1, 0] = region(np.array([1], dtype=np.int32), np.float32(1.0))
    grid[0, 1] = region(np.array([2], dtype=np.int32), np.float32(1.0))
    grid[1, 1] = region(np.array([3], dtype=np.int32), np.float32(1.0))
    path = write_segmentation(tmp_path / "grid.mat", region_tree=grid)

    seg = load_segmentation(path)

    assert len(seg.regions) == 4
    assert [int(node.atomic_superpixels[0]) for node in seg.regions] == [0, 1, 2, 3]


def nested_tree(levels):
    node = leaf()
    for i in range(1, levels):
        node = region(np.array([i], dtype=np.int32), np.float32(1.0), children=[node])
    return cell([node])


def test_load_segmentation_depth_limit_on_file(tmp_path):
    path = write_segmentation(tmp_path / "deep.mat", region_tree=nested_tree(12))

    seg = load_segmentation(path, LoaderConfig(max_depth=12))
    assert len(seg.regions) == 1

    with pytest.raises(InvalidStructureError, match="deeper than 10"):
        load_segmentation(path, LoaderConfig(max_depth=10))


def test_load_segmentation_truncated_file(tmp_path):
    path = tmp_path / "full.mat"
    savemat(path, {"atomic_SLIC_rle": np.arange(20000, dtype=np.int64).reshape(10000, 2)}, do_compression=True)
    data = path.read_bytes()
    truncated = tmp_path / "truncated.mat"
    truncated.write_bytes(data[: len(data) // 2])

    with pytest.raises(ContainerError):
        load_segmentation(truncated)
