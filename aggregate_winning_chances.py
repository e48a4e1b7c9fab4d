#!/usr/bin/env python3
"""
aggregate_winning_chances.py

Scan several PGN files with winning_chances.py and merge the results into one report.

- Each file is scanned independently into its own WDLAccumulator, then folded into the total.
- The merge is a per-bucket sum, so the order of the files does not change the report.
- The first unreadable file or malformed tag aborts the whole run; no partial report is printed.

Paths come from the command line (space- and/or comma-separated). With none given, the tool
prompts for a comma-separated list on stdin.
"""

from __future__ import annotations

import argparse
import sys
import time
from functools import reduce
from typing import Iterable, List, Optional, TextIO

from winning_chances import (
    MalformedInput,
    SourceUnavailable,
    WDLAccumulator,
    format_report,
    scan_file,
)


PROMPT = "Enter the file paths, comma-separated:"


def split_paths(text: str) -> List[str]:
    # Empty entries are kept on purpose: they fail later as unreadable sources.
    return [p.strip() for p in text.strip().split(",")]


def prompt_for_paths(stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> List[str]:
    print(PROMPT, file=stdout or sys.stdout, flush=True)
    line = (stdin or sys.stdin).readline()
    return split_paths(line)


def calculate_from_files(paths: Iterable[str], progress_every: int = 0) -> WDLAccumulator:
    """Scan every file in order and merge the per-file accumulators."""
    scans = (scan_file(p, progress_every=progress_every) for p in paths)
    return reduce(lambda total, acc: total.merge(acc), scans, WDLAccumulator())


def collect_paths(args: argparse.Namespace) -> List[str]:
    if not args.paths:
        return prompt_for_paths()
    out: List[str] = []
    for p in args.paths:
        out.extend(split_paths(p))
    return out


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Merge win/draw/loss rates by rating difference across PGN files."
    )
    ap.add_argument(
        "paths",
        nargs="*",
        help="PGN files (.pgn or .pgn.zst); comma-separated lists accepted. If omitted, prompts on stdin.",
    )
    ap.add_argument(
        "--progress-every",
        type=int,
        default=0,
        help="Classified games between progress lines on stderr; 0 disables.",
    )
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    t0 = time.time()
    paths = collect_paths(args)

    try:
        total = calculate_from_files(paths, progress_every=args.progress_every)
    except (SourceUnavailable, MalformedInput) as e:
        print(f"error: {e}", file=sys.stderr, flush=True)
        return 1

    sys.stdout.write(format_report(total))
    print(f"Time: {time.time() - t0:.1f} seconds", file=sys.stderr, flush=True)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
