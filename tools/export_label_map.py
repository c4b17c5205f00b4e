#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import cv2
import numpy as np

if __package__ is None or __package__ == "":
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from labelmaps.atomic import expand_rle, label_map, load_image_size
from labelmaps.container import open_mat
from labelmaps.segmentation import LoaderConfig


def to_png_dtype(labels: np.ndarray) -> np.ndarray:
    max_id = int(labels.max()) if labels.size else 0
    if max_id <= np.iinfo(np.uint8).max:
        return labels.astype(np.uint8)
    if max_id <= np.iinfo(np.uint16).max:
        return labels.astype(np.uint16)
    raise ValueError(f"atomic superpixel id {max_id} does not fit a 16-bit PNG")


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Write the atomic superpixel map of a segmentation MAT-file as PNG")
    p.add_argument("--mat", type=Path, required=True)
    p.add_argument("--out-png", type=Path, required=True)
    p.add_argument("--order", type=str, choices=["C", "F"], default="C", help="Pixel scan order of the RLE")
    p.add_argument("--lenient-rle", action="store_true")
    return p.parse_args()


def main() -> None:
    args = parse_args()
    config = LoaderConfig(strict_rle=not args.lenient_rle)

    with open_mat(args.mat) as container:
        size = load_image_size(container.get_field(container.root, config.image_shape_field))
        pixels = expand_rle(
            container.get_field(container.root, config.rle_field), size, strict=config.strict_rle
        )

    mask = to_png_dtype(label_map(pixels, size, order=args.order))
    args.out_png.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(args.out_png), mask):
        raise RuntimeError(f"Failed to write {args.out_png}")
    print(f"OK: wrote {size.rows}x{size.cols} {mask.dtype} label map to {args.out_png}")


if __name__ == "__main__":
    main()
