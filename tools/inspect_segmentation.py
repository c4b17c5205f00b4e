#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

if __package__ is None or __package__ == "":
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from labelmaps.errors import ContainerError, RegionFormatError
from labelmaps.regions import count_nodes, iter_nodes, scales, tree_depth
from labelmaps.segmentation import LoaderConfig, Segmentation, load_segmentation


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print a summary of a multi-scale segmentation MAT-file")
    parser.add_argument("path", type=Path)
    parser.add_argument("--tree-field", type=str, default=None)
    parser.add_argument("--max-depth", type=int, default=LoaderConfig.max_depth)
    parser.add_argument("--lenient-rle", action="store_true", help="Truncate/zero-fill inconsistent RLE")
    parser.add_argument("--nodes", action="store_true", help="Also print one line per region node")
    args = parser.parse_args()

    if args.max_depth < 1:
        raise ValueError("--max-depth must be >= 1")
    return args


def describe(seg: Segmentation, with_nodes: bool = False) -> List[str]:
    size = seg.image_size
    n_atomic = len(set(seg.atomic_regions.tolist()))
    lines = [
        f"image: rows={size.rows} cols={size.cols} stride={size.stride}",
        f"rle: runs={seg.run_count} pixels={seg.atomic_regions.size} atomic_ids={n_atomic}",
        f"regions: roots={len(seg.regions)} nodes={count_nodes(seg.regions)} depth={tree_depth(seg.regions)}",
        "scales: " + ", ".join(f"{s:g}" for s in scales(seg.regions)),
    ]
    if with_nodes:
        for depth, node in iter_nodes(seg.regions):
            lines.append(
                f"{'  ' * depth}- scale={node.scale:g} atomic={node.atomic_superpixels.size} "
                f"children={len(node.children)}"
            )
    return lines


def main() -> int:
    args = parse_args()
    config = LoaderConfig(tree_field=args.tree_field, max_depth=args.max_depth, strict_rle=not args.lenient_rle)

    try:
        seg = load_segmentation(args.path, config)
    except (RegionFormatError, ContainerError) as exc:
        print(f"ERROR: {args.path}: {exc}", file=sys.stderr)
        return 1

    print(f"file: {args.path}")
    for line in describe(seg, with_nodes=args.nodes):
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
