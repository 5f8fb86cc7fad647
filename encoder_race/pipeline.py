"""Batch pipeline (image fan-out, candidate fan-out, selection, reporting)."""

from __future__ import annotations

import logging
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from .encoders import PresetRegistry
from .encoders.base import CandidateResult, CandidateSpec
from .encoders.runner import run_candidate
from .errors import EncoderRaceError
from .report import CsvReport, WinStats, csv_row, format_progress
from .selection import Decision, persist, select
from .utils.image import read_source_info

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchJob:
    images: tuple[Path, ...]
    candidates: tuple[CandidateSpec, ...]
    out_dir: Path
    tolerances: tuple[float, ...]  # already broadcast, one per candidate
    save_all: bool = False
    csv_path: Path | None = None
    image_parallelism: int = 1
    candidate_parallelism: int | None = None  # None => one worker per candidate
    timeout_s: float | None = None
    show_progress: bool = True

    def __post_init__(self) -> None:
        if not self.candidates:
            raise ValueError("at least one candidate is required")
        if len(self.tolerances) != len(self.candidates):
            raise ValueError("tolerances must have one value per candidate")
        if self.image_parallelism < 1:
            raise ValueError("image_parallelism must be >= 1")
        if self.candidate_parallelism is not None and self.candidate_parallelism < 1:
            raise ValueError("candidate_parallelism must be >= 1")


@dataclass
class ImageOutcome:
    image: Path
    decision: Decision | None = None
    csv_row: list[str] | None = None
    progress: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    stats: WinStats
    processed: int = 0
    failed: int = 0


def run_candidates(image: Path, job: BatchJob, registry: PresetRegistry) -> list[CandidateResult]:
    """Run every candidate for one image; results come back in declared order."""

    width = job.candidate_parallelism or len(job.candidates)
    with ThreadPoolExecutor(max_workers=width) as ex:
        return list(ex.map(lambda spec: run_candidate(image, spec, registry, timeout_s=job.timeout_s), job.candidates))


def process_image(image: Path, job: BatchJob, registry: PresetRegistry) -> ImageOutcome:
    """Encode, select and persist one image. Errors stay inside the outcome."""

    outcome = ImageOutcome(image=image)
    try:
        info = read_source_info(image)
    except EncoderRaceError as e:
        outcome.error = str(e)
        return outcome

    results = run_candidates(image, job, registry)
    decision = select(results, info.file_size, job.tolerances, save_all=job.save_all)
    outcome.decision = decision
    outcome.csv_row = csv_row(image, info.file_size, results)
    if job.show_progress:
        outcome.progress = format_progress(image, results, decision, info.pixel_count)

    try:
        written = persist(decision, results, image, job.out_dir)
    except (EncoderRaceError, OSError) as e:
        outcome.error = f"cannot write output: {e}"
    else:
        log.debug("%s: wrote %d file(s) to %s", image, len(written), job.out_dir)
    return outcome


def run_batch(job: BatchJob, registry: PresetRegistry, *, stream: TextIO | None = None) -> BatchSummary:
    """Run the whole batch.

    Image outcomes are consumed on the calling thread, which is therefore the
    only writer of progress text, CSV rows and win statistics.
    """

    out = stream if stream is not None else sys.stdout
    summary = BatchSummary(stats=WinStats())
    report = CsvReport(job.csv_path) if job.csv_path is not None else None

    if report is not None:
        try:
            report.write_header(job.candidates)
        except OSError as e:
            log.error("Cannot write results table header to %s: %s", job.csv_path, e)

    log.info("Processing %d image(s) with %d candidate(s)", len(job.images), len(job.candidates))

    with ThreadPoolExecutor(max_workers=job.image_parallelism) as ex:
        futs = [ex.submit(process_image, image, job, registry) for image in job.images]

        for fut in as_completed(futs):
            outcome = fut.result()
            summary.processed += 1

            if outcome.progress:
                out.write(outcome.progress)
                out.flush()

            if report is not None and outcome.csv_row is not None:
                try:
                    report.write_row(outcome.csv_row)
                except OSError as e:
                    log.error("Cannot append results row for %s: %s", outcome.image, e)

            if not outcome.ok:
                summary.failed += 1
                log.error("Can't process image %s: %s", outcome.image, outcome.error)
                continue

            if outcome.decision is not None:
                summary.stats.record_win(outcome.decision.identifier)

    if summary.failed:
        log.warning("Completed with %d failed image(s) out of %d", summary.failed, summary.processed)
    else:
        log.info("Completed %d image(s)", summary.processed)

    return summary
