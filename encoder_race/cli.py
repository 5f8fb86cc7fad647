"""Command line interface for encoder_race."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import load_catalog
from .encoders import PresetRegistry
from .encoders.base import CandidateSpec
from .errors import EncoderRaceError
from .pipeline import BatchJob, run_batch
from .selection import broadcast_tolerances
from .utils.files import discover_images

log = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="encoder-race",
        description=(
            "Encode each image with several encoder presets and keep the smallest\n"
            "acceptable result (or the original when nothing beats it)."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    p.add_argument("images", nargs="*", type=Path, help="Input images (default: images in the current directory)")
    p.add_argument("-o", "--out-dir", type=Path, default=Path("./out"), help="Output directory")
    p.add_argument(
        "-c",
        "--cmds",
        nargs="+",
        required=True,
        metavar="CANDIDATE",
        help='Candidate presets in priority order, e.g. cjxl_tr(7) "cjxl_d(1.5)" avif_q(18)',
    )
    p.add_argument("--cmds-config", type=Path, default=None, help="Presets file (default: per-user presets.json)")
    p.add_argument(
        "-t",
        "--tolerance",
        nargs="+",
        type=float,
        default=[100.0],
        help=(
            "Percent of the current best a later candidate must stay under to replace it;\n"
            "one value for all candidates or one per candidate"
        ),
    )
    p.add_argument("--save", dest="save_all", action="store_true", help="Save every encoded result, not only the best")
    p.add_argument("--no-progress", action="store_true", help="Do not print per-candidate progress")
    p.add_argument("--csv", dest="csv_save", action="store_true", help="Append results to a tab-delimited table")
    p.add_argument("--csv-path", type=Path, default=Path("./res.csv"), help="Path for the results table")
    p.add_argument("--nproc", type=int, default=1, help="Number of images processed simultaneously")
    p.add_argument("--nproc-cmd", type=int, default=None, help="Candidates run simultaneously per image (default: all)")
    p.add_argument("--timeout", type=float, default=None, help="Per-candidate timeout in seconds")
    p.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = _build_parser()
    ns = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        registry = PresetRegistry(load_catalog(ns.cmds_config))
        candidates = tuple(CandidateSpec.parse(token) for token in ns.cmds)
        images = tuple(ns.images) if ns.images else tuple(discover_images(Path(".")))
        job = BatchJob(
            images=images,
            candidates=candidates,
            out_dir=ns.out_dir,
            tolerances=broadcast_tolerances(ns.tolerance, len(candidates)),
            save_all=bool(ns.save_all),
            csv_path=ns.csv_path if ns.csv_save else None,
            image_parallelism=ns.nproc,
            candidate_parallelism=ns.nproc_cmd,
            timeout_s=ns.timeout,
            show_progress=not ns.no_progress,
        )
    except (EncoderRaceError, ValueError, OSError) as e:
        log.error(str(e))
        return 2

    if not job.images:
        log.warning("No input images found")
        return 0

    summary = run_batch(job, registry)
    print()
    print(summary.stats.format_table(), end="")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
