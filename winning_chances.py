#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Win/draw/loss rates by rating difference from PGN streams (Lichess exports).
#
# Key conventions (explicit):
# - bucket = round_rating(higher Elo) - round_rating(lower Elo); each side is rounded before differencing.
# - wins/draws/losses are always stated from the LOWER-rated player's point of view.
# - every classified game bumps total[bucket] in all three datasets, successes[bucket] in exactly one.
#
# Notes:
# - Only TimeControl, WhiteElo, BlackElo and Result tags are read; movetext is never parsed.
# - Malformed tag values are fatal (abort the run), as are unreadable files.
# - Games with unequal ratings only; unfinished ("*") games are discarded.

from __future__ import annotations

import argparse
import io
import math
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, TextIO, Tuple

import chess.pgn
import zstandard as zstd


# ----------------------------
# Constants
# ----------------------------

RATING_STEP = 25

# Estimated game length = initial + ESTIMATED_MOVES * increment (Lichess speed convention).
ESTIMATED_MOVES = 40
MIN_ESTIMATED_SECONDS = 480

TAG_TIME_CONTROL = "TimeControl"
TAG_WHITE_ELO = "WhiteElo"
TAG_BLACK_ELO = "BlackElo"
TAG_RESULT = "Result"

# Tolerates a leading byte-order mark.
PGN_ENCODING = "utf-8-sig"


# ----------------------------
# Errors
# ----------------------------

class SourceUnavailable(RuntimeError):
    """A record file could not be opened or read. Fatal for the whole run."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"cannot read {source!r}: {reason}")


class MalformedInput(ValueError):
    """A tag value failed to parse. Fatal for the whole run.

    The scanner fills in `source` and `line_no` on the way out so the
    diagnostic points at the offending line.
    """

    def __init__(
        self,
        message: str,
        value: Optional[str] = None,
        source: Optional[str] = None,
        line_no: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.value = value
        self.source = source
        self.line_no = line_no

    def __str__(self) -> str:
        where = ""
        if self.source is not None:
            where = f"{self.source}:{self.line_no}: " if self.line_no is not None else f"{self.source}: "
        what = f" (value={self.value!r})" if self.value is not None else ""
        return f"{where}{self.message}{what}"


# ----------------------------
# Rating / time control
# ----------------------------

def round_rating(rating: int) -> int:
    # Half away from zero; Python's round() would round half to even.
    scaled = rating / RATING_STEP
    rounded = math.copysign(math.floor(abs(scaled) + 0.5), scaled)
    return int(rounded) * RATING_STEP


def parse_time_control(time_control: str) -> Tuple[int, int]:
    parts = time_control.split("+")
    if len(parts) != 2:
        raise MalformedInput("time control must look like '<initial>+<increment>'", value=time_control)
    try:
        return int(parts[0]), int(parts[1])
    except ValueError as e:
        raise MalformedInput("time control fields must be integers", value=time_control) from e


def time_control_qualifies(time_control: str) -> bool:
    """True when `initial + 40 * increment` reaches MIN_ESTIMATED_SECONDS (inclusive)."""
    initial, increment = parse_time_control(time_control)
    return initial + ESTIMATED_MOVES * increment >= MIN_ESTIMATED_SECONDS


# ----------------------------
# Results
# ----------------------------

class GameResult(Enum):
    WIN = "win"
    DRAW = "draw"
    LOSS = "loss"
    UNFINISHED = "unfinished"
    UNKNOWN = "unknown"


RESULT_TOKENS: Dict[str, GameResult] = {
    "1-0": GameResult.WIN,
    "1/2-1/2": GameResult.DRAW,
    "0-1": GameResult.LOSS,
    "*": GameResult.UNFINISHED,
}

_INVERTED: Dict[GameResult, GameResult] = {
    GameResult.WIN: GameResult.LOSS,
    GameResult.LOSS: GameResult.WIN,
    GameResult.DRAW: GameResult.DRAW,
    GameResult.UNFINISHED: GameResult.UNFINISHED,
    GameResult.UNKNOWN: GameResult.UNKNOWN,
}


def parse_result(token: str) -> GameResult:
    try:
        return RESULT_TOKENS[token]
    except KeyError:
        raise MalformedInput("unrecognized result token", value=token) from None


def invert_result(result: GameResult) -> GameResult:
    """Same game seen from the other side of the board."""
    return _INVERTED[result]


def parse_rating(value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise MalformedInput("rating must be an integer", value=value) from e


# ----------------------------
# Accumulators
# ----------------------------

@dataclass
class Datapoint:
    successes: int = 0
    total: int = 0

    @property
    def rate(self) -> float:
        if self.total == 0:
            return math.nan
        return self.successes / self.total

    def record(self, success: bool) -> None:
        self.total += 1
        if success:
            self.successes += 1

    def merge(self, other: Datapoint) -> Datapoint:
        return Datapoint(successes=self.successes + other.successes, total=self.total + other.total)


Dataset = Dict[int, Datapoint]


def merge_datasets(a: Dataset, b: Dataset) -> Dataset:
    """Union of two datasets; buckets present on both sides are summed field-wise."""
    out: Dataset = {k: Datapoint(dp.successes, dp.total) for k, dp in a.items()}
    for k, dp in b.items():
        mine = out.get(k)
        out[k] = dp.merge(mine) if mine is not None else Datapoint(dp.successes, dp.total)
    return out


@dataclass
class WDLAccumulator:
    wins: Dataset = field(default_factory=dict)
    draws: Dataset = field(default_factory=dict)
    losses: Dataset = field(default_factory=dict)

    def record(self, bucket: int, result: GameResult) -> None:
        """Count one game for `bucket`; `result` is the lower-rated player's."""
        targets = {
            GameResult.WIN: self.wins,
            GameResult.DRAW: self.draws,
            GameResult.LOSS: self.losses,
        }
        if result not in targets:
            raise ValueError(f"cannot classify result {result}")
        for ds in (self.wins, self.draws, self.losses):
            ds.setdefault(bucket, Datapoint()).record(ds is targets[result])

    def merge(self, other: WDLAccumulator) -> WDLAccumulator:
        return WDLAccumulator(
            wins=merge_datasets(self.wins, other.wins),
            draws=merge_datasets(self.draws, other.draws),
            losses=merge_datasets(self.losses, other.losses),
        )

    def games(self) -> int:
        return sum(dp.total for dp in self.wins.values())


# ----------------------------
# Scanner
# ----------------------------

def _parse_tag_line(line: str) -> Optional[Tuple[str, str]]:
    m = chess.pgn.TAG_REGEX.match(line)
    if m is None:
        return None
    return m.group(1), m.group(2)


def fmt_int(n: int) -> str:
    return f"{n:,}".replace(",", " ")


def scan_stream(stream: TextIO, source: str = "<stream>", progress_every: int = 0) -> WDLAccumulator:
    """Single pass over a PGN text stream, returning the per-file accumulator.

    Tag lines update the parse state; the first non-tag line after a tag block
    classifies the game. Nothing is reset between games except by new tags.
    """
    acc = WDLAccumulator()

    white: Optional[int] = None
    black: Optional[int] = None
    result = GameResult.UNKNOWN
    skip = False

    in_tags = False
    games_seen = 0
    games_used = 0

    line_no = 0
    try:
        for line_no, line in enumerate(stream, start=1):
            if line.startswith("["):
                in_tags = True
                parsed = _parse_tag_line(line)
                if parsed is None:
                    continue
                name, value = parsed
                if name == TAG_TIME_CONTROL:
                    skip = not time_control_qualifies(value)
                elif name == TAG_WHITE_ELO:
                    white = parse_rating(value)
                elif name == TAG_BLACK_ELO:
                    black = parse_rating(value)
                elif name == TAG_RESULT:
                    result = parse_result(value)
                continue

            if in_tags:
                in_tags = False
                games_seen += 1

            if skip or result in (GameResult.UNFINISHED, GameResult.UNKNOWN):
                continue
            if white is None or black is None or white == black:
                continue

            lo, hi = min(white, black), max(white, black)
            bucket = round_rating(hi) - round_rating(lo)
            perspective = result if white < black else invert_result(result)
            acc.record(bucket, perspective)
            skip = True

            games_used += 1
            if progress_every > 0 and games_used % progress_every == 0:
                print(
                    f"progress: source={source} games_seen={fmt_int(games_seen)} games_used={fmt_int(games_used)}",
                    file=sys.stderr,
                    flush=True,
                )
    except MalformedInput as e:
        if e.source is None:
            e.source = source
            e.line_no = line_no
        raise
    except (OSError, zstd.ZstdError) as e:
        raise SourceUnavailable(source, str(e)) from e

    print(
        f"done: source={source} games_seen={fmt_int(games_seen)} games_used={fmt_int(games_used)}",
        file=sys.stderr,
        flush=True,
    )
    return acc


@contextmanager
def open_pgn(path: str) -> Iterator[TextIO]:
    """Open a PGN file as text; `.zst` files are decompressed on the fly."""
    try:
        fh = open(path, "rb")
    except OSError as e:
        raise SourceUnavailable(path, e.strerror or str(e)) from e

    try:
        if path.endswith(".zst"):
            reader = zstd.ZstdDecompressor().stream_reader(fh)
            yield io.TextIOWrapper(reader, encoding=PGN_ENCODING, errors="replace")
        else:
            yield io.TextIOWrapper(fh, encoding=PGN_ENCODING, errors="replace")
    finally:
        fh.close()


def scan_file(path: str, progress_every: int = 0) -> WDLAccumulator:
    with open_pgn(path) as stream:
        return scan_stream(stream, source=path, progress_every=progress_every)


# ----------------------------
# Report
# ----------------------------

def format_dataset(ds: Dataset) -> List[str]:
    lines: List[str] = []
    for k in sorted(ds.keys()):
        dp = ds[k]
        lines.append(f"+{k}: {dp.rate:.6f} ({dp.successes}/{dp.total})")
    return lines


def format_report(acc: WDLAccumulator) -> str:
    lines: List[str] = []
    for title, ds in (("wins", acc.wins), ("draws", acc.draws), ("losses", acc.losses)):
        if lines:
            lines.append("")
        lines.append(f"{title}:")
        lines.extend(format_dataset(ds))
    return "\n".join(lines) + "\n"


# ----------------------------
# CLI
# ----------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Win/draw/loss rates of the lower-rated player by rating difference, for one PGN file."
    )
    ap.add_argument("--pgn", required=True, help="Input PGN file, .pgn.zst accepted (or '-' for stdin).")
    ap.add_argument(
        "--progress-every",
        type=int,
        default=0,
        help="Classified games between progress lines on stderr; 0 disables.",
    )
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        if args.pgn == "-":
            stdin = io.TextIOWrapper(sys.stdin.buffer, encoding=PGN_ENCODING, errors="replace")
            acc = scan_stream(stdin, source="<stdin>", progress_every=args.progress_every)
        else:
            acc = scan_file(args.pgn, progress_every=args.progress_every)
    except (SourceUnavailable, MalformedInput) as e:
        print(f"error: {e}", file=sys.stderr, flush=True)
        return 1

    sys.stdout.write(format_report(acc))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
