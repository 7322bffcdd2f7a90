"""Command line: read TM-25 ray files and report on them."""

from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from tm25rays.rayset import TM25RaySet


def _parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="tm25rays", description="Read TM-25 ray files and print their warnings and bounding box."
    )
    p.add_argument("files", nargs="+", help="TM-25 ray files to read")
    p.add_argument("--normalize-k", action="store_true", help="scale ray directions to unit length")
    p.add_argument("--diagnostics", action="store_true", help="print focus and histograms too")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Read each file, print its warnings and bounding box; returns the exit status."""
    args = _parser().parse_args(argv)
    status = 0
    for filename in args.files:
        try:
            rs = TM25RaySet.read(filename, args.normalize_k)
            for w in rs.warnings:
                print(w)
            if args.diagnostics:
                print(rs.diagnostics(), end="")
            else:
                lo, hi = rs.bounding_box()
                print(
                    f"Bounding Box: x in [{lo.x:g},{hi.x:g}], y in [{lo.y:g},{hi.y:g}], "
                    f"z in [{lo.z:g},{hi.z:g}]"
                )
        except (OSError, ValueError) as err:
            print(f"{filename}: {err}")
            status = 1
    return status


if __name__ == "__main__":
    sys.exit(main())