"""Result reporting: progress text, the tab-delimited results table and win statistics."""

from __future__ import annotations

import csv
import threading
from collections import Counter
from pathlib import Path
from typing import Sequence

from .encoders.base import CandidateResult, CandidateSpec
from .selection import Decision, percent_of


def byte2size(num: float) -> str:
    """Human-readable size with binary units, e.g. 100000 -> '97.7KiB'."""

    if num < 1024.0:
        return f"{num:3.1f}B"
    for unit in ("K", "M", "G"):
        num /= 1024.0
        if num < 1024.0:
            return f"{num:3.1f}{unit}iB"
    return f"{num / 1024.0:3.1f}TiB"


def csv_header(specs: Sequence[CandidateSpec]) -> list[str]:
    names = [s.name for s in specs]
    # Size columns, then percentage columns, both labelled by candidate.
    return ["", "", *names, *names]


def csv_row(image: Path, original_size: int, results: Sequence[CandidateResult]) -> list[str]:
    """One row of width 2 + 2N; failed or empty candidates leave blank cells."""

    sizes = [str(r.size_bytes) if r.usable else "" for r in results]
    percents = [str(percent_of(r.size_bytes, original_size)) if r.usable else "" for r in results]
    return [str(image), str(original_size), *sizes, *percents]


class CsvReport:
    """Appends tab-delimited rows to a results table.

    Each write opens the file in append mode and closes it again. Callers
    serialize writes (the batch funnels every row through one thread).
    """

    def __init__(self, path: Path):
        self.path = path

    def _append(self, row: Sequence[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8", newline="") as f:
            csv.writer(f, delimiter="\t", lineterminator="\n").writerow(row)

    def write_header(self, specs: Sequence[CandidateSpec]) -> None:
        self._append(csv_header(specs))

    def write_row(self, row: Sequence[str]) -> None:
        self._append(row)


def format_candidate_line(result: CandidateResult, original_size: int, pixel_count: int, better: bool) -> str:
    if result.error is not None:
        return f"{result.display}\n  error: {result.error}"
    size = result.size_bytes
    bpp = size * 8 / pixel_count if pixel_count > 0 else 0.0
    marker = "* " if better else ""
    return (
        f"{result.display}\n"
        f"{byte2size(original_size)} --> {byte2size(size)}\t{bpp:6.2f}bpp\t"
        f"{percent_of(size, original_size)}% {marker}\t{result.elapsed:>6.2f}s"
    )


def format_progress(
    image: Path,
    results: Sequence[CandidateResult],
    decision: Decision,
    pixel_count: int,
) -> str:
    lines = [str(image)]
    for i, result in enumerate(results):
        better = decision.marks[i] if i < len(decision.marks) else False
        lines.append(format_candidate_line(result, decision.original_size, pixel_count, better))
    if decision.save_all:
        saved = sum(1 for r in results if r.usable)
        lines.append(f"Save: {saved} result(s)")
    else:
        lines.append(f"Save: {decision.identifier}")
    return "\n".join(lines) + "\n"


class WinStats:
    """Thread-safe count of winning identifiers across a batch."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()

    def record_win(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def format_table(self) -> str:
        rows = sorted(self.snapshot().items(), key=lambda kv: (-kv[1], kv[0]))
        lines = ["stats:", "count\t cmd"]
        lines.extend(f"{count}\t {name}" for name, count in rows)
        return "\n".join(lines) + "\n"
