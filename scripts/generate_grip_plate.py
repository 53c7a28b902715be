#!/usr/bin/env python3
"""
Compose a grip plate from a project JSON file and export its solids.

Usage:
    python scripts/generate_grip_plate.py --project plate.json --out-dir out/
    python scripts/generate_grip_plate.py --project plate.json --format obj --include-debug
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gripplate import CompositionController, export_solids, load_project
from gripplate.export import SUPPORTED_FORMATS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compose base, pattern and inlay solids for a grip plate"
    )
    parser.add_argument("--project", required=True, help="Path to project JSON")
    parser.add_argument("--out-dir", default="out", help="Directory for exported solids")
    parser.add_argument(
        "--include-debug",
        action="store_true",
        help="Also export waste (cut-away) solids",
    )
    parser.add_argument(
        "--format",
        default="stl",
        choices=list(SUPPORTED_FORMATS),
        help="Mesh file format (default: stl)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=600.0,
        help="Seconds to wait for composition before giving up (default: 600)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logs"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        request = load_project(args.project)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    failures = []
    controller = CompositionController(on_failed=lambda job, exc: failures.append(exc))
    controller.submit(request)
    finished = controller.wait_idle(args.timeout)
    controller.shutdown(wait=finished)
    if not finished:
        print(f"Error: composition did not finish within {args.timeout:g}s")
        return 1

    if failures:
        print(f"Error: composition failed: {failures[0]}")
        return 1

    result = controller.last_result
    paths = export_solids(
        controller.arena,
        args.out_dir,
        include_debug=args.include_debug,
        file_type=args.format,
    )

    stats = result.stats
    print(f"\nSolids: {', '.join(result.names()) or 'none'}")
    print(f"Tiles: {stats.tile_count} ({stats.pattern_path or 'no pattern'} path)")
    print(f"Boolean ops: {stats.boolean_ops} ({stats.boolean_failures} failed)")
    print(f"Elapsed: {stats.elapsed_s:.2f}s")
    if result.diagnostics:
        print(f"\nDiagnostics ({len(result.diagnostics)}):")
        for d in result.diagnostics:
            print(f"  [{d.severity}] {d.stage}: {d.message}")
    print(f"\n{len(paths)} file(s) exported to {args.out_dir}/")
    return 0


if __name__ == "__main__":
    sys.exit(main())
