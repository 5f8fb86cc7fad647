"""Winner selection and persistence for one image.

Candidates are evaluated strictly in declared order, which doubles as their
priority. The running best starts at the original file size; a usable
candidate replaces it when

    100 * size < tolerance[i] * best

(the exact percentage, no rounding) so each later candidate has to beat the
current winner, not the original.
Ties never swap (strict comparison), so earlier candidates win them.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .encoders.base import CandidateResult
from .errors import ImageMetadataError
from .utils.files import ensure_dir

log = logging.getLogger(__name__)

COPY_INPUT = "Copy input"


@dataclass(frozen=True)
class Decision:
    winner: CandidateResult | None
    original_size: int
    copied_input: bool
    save_all: bool = False
    # marks[i] is True when candidate i became the winner at its turn.
    marks: tuple[bool, ...] = ()

    @property
    def identifier(self) -> str:
        """Name under which this image counts towards the batch statistics."""

        if self.save_all:
            return ""
        if self.copied_input or self.winner is None:
            return COPY_INPUT
        return self.winner.display


def broadcast_tolerances(values: Sequence[float], count: int) -> tuple[float, ...]:
    """Expand one global tolerance to every candidate, or validate a per-candidate list."""

    if len(values) == 1:
        return (float(values[0]),) * count
    if len(values) != count:
        raise ValueError(f"expected 1 or {count} tolerance values, got {len(values)}")
    return tuple(float(v) for v in values)


def percent_of(size: int, reference: int) -> int:
    """Integer percentage for display; selection compares exactly."""

    return 100 * size // reference if reference > 0 else 0


def select(
    results: Sequence[CandidateResult],
    original_size: int,
    tolerances: Sequence[float],
    *,
    save_all: bool = False,
) -> Decision:
    if len(tolerances) != len(results):
        raise ValueError("tolerances must be broadcast to the number of candidates")

    best_size = original_size
    winner: CandidateResult | None = None
    marks: list[bool] = []

    for result, tolerance in zip(results, tolerances):
        better = (
            result.usable
            and result.size_bytes < original_size
            and 100 * result.size_bytes < tolerance * best_size
        )
        marks.append(better)
        if better:
            winner = result
            best_size = result.size_bytes

    if save_all:
        return Decision(winner=None, original_size=original_size, copied_input=False, save_all=True, marks=tuple(marks))

    return Decision(
        winner=winner,
        original_size=original_size,
        copied_input=winner is None,
        marks=tuple(marks),
    )


def _stem(image: Path) -> str:
    if not image.stem:
        raise ImageMetadataError(f"no file stem: {image}")
    return image.stem


def persist(decision: Decision, results: Sequence[CandidateResult], image: Path, out_dir: Path) -> list[Path]:
    """Write the decision's output files and return their paths.

    - save-all: every usable result as <stem>_<index>.<ext>
    - no winner: the original copied unchanged as <name>
    - otherwise: the winner as <stem>.<ext>
    """

    ensure_dir(out_dir)
    written: list[Path] = []

    if decision.save_all:
        stem = _stem(image)
        for i, result in enumerate(results):
            if not result.usable:
                continue
            path = out_dir / f"{stem}_{i}.{result.extension}"
            path.write_bytes(result.data)
            written.append(path)
        return written

    if decision.winner is None:
        path = out_dir / image.name
        shutil.copyfile(image, path)
        return [path]

    path = out_dir / f"{_stem(image)}.{decision.winner.extension}"
    path.write_bytes(decision.winner.data)
    log.debug("%s: saved %s (%d bytes)", image, path, decision.winner.size_bytes)
    return [path]
