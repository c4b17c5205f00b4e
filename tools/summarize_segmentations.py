#!/usr/bin/env python3
from __future__ import annotations

import argparse
import csv
import sys
from pathlib import Path
from typing import Dict

from tqdm import tqdm

if __package__ is None or __package__ == "":
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from labelmaps.errors import ContainerError, RegionFormatError
from labelmaps.regions import count_nodes, scales, tree_depth
from labelmaps.segmentation import LoaderConfig, load_segmentation

FIELDNAMES = [
    "path", "rows", "cols", "stride", "runs", "pixels", "atomic_ids",
    "roots", "nodes", "depth", "min_scale", "max_scale", "error",
]


def summarize(path: Path, config: LoaderConfig) -> Dict[str, object]:
    row: Dict[str, object] = {name: "" for name in FIELDNAMES}
    row["path"] = str(path)
    try:
        seg = load_segmentation(path, config)
    except (RegionFormatError, ContainerError) as exc:
        row["error"] = f"{type(exc).__name__}: {exc}"
        return row

    all_scales = scales(seg.regions)
    row.update(
        rows=seg.image_size.rows,
        cols=seg.image_size.cols,
        stride=seg.image_size.stride,
        runs=seg.run_count,
        pixels=int(seg.atomic_regions.size),
        atomic_ids=len(set(seg.atomic_regions.tolist())),
        roots=len(seg.regions),
        nodes=count_nodes(seg.regions),
        depth=tree_depth(seg.regions),
        min_scale=all_scales[0] if all_scales else "",
        max_scale=all_scales[-1] if all_scales else "",
    )
    return row


def main() -> None:
    ap = argparse.ArgumentParser("Summarize a directory of segmentation MAT-files into a CSV")
    ap.add_argument("--root", type=Path, required=True, help="Directory searched recursively")
    ap.add_argument("--pattern", default="*.mat", help="Glob pattern for MAT-files")
    ap.add_argument("--out", type=Path, required=True, help="Output CSV")
    ap.add_argument("--tree-field", type=str, default=None)
    ap.add_argument("--max-depth", type=int, default=LoaderConfig.max_depth)
    ap.add_argument("--lenient-rle", action="store_true")
    ap.add_argument("--max-files", type=int, default=0, help="If >0 limit number of files")
    args = ap.parse_args()

    config = LoaderConfig(tree_field=args.tree_field, max_depth=args.max_depth, strict_rle=not args.lenient_rle)

    files = sorted(args.root.rglob(args.pattern))
    if args.max_files and args.max_files > 0:
        files = files[: args.max_files]
    if not files:
        print(f"[WARN] no files matching {args.pattern} under {args.root}")

    args.out.parent.mkdir(parents=True, exist_ok=True)
    failed = 0
    with args.out.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=FIELDNAMES)
        w.writeheader()
        for p in tqdm(files, desc="summarize", unit="file", dynamic_ncols=True):
            row = summarize(p, config)
            if row["error"]:
                failed += 1
            w.writerow(row)

    print(f"OK: wrote {len(files)} rows to {args.out} (failed={failed})")


if __name__ == "__main__":
    main()
