from __future__ import annotations

import csv
import io
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from encoder_race import pipeline
from encoder_race.config import load_catalog
from encoder_race.encoders import PresetRegistry
from encoder_race.encoders.base import CandidateResult, CandidateSpec
from encoder_race.pipeline import BatchJob, ImageOutcome, process_image, run_batch, run_candidates

from fake_encoders import POSIX_ONLY, write_fake_encoder, write_noise_png, write_presets


def _job(images, tokens, out_dir, **kwargs) -> BatchJob:
    candidates = tuple(CandidateSpec.parse(t) for t in tokens)
    kwargs.setdefault("tolerances", (100.0,) * len(candidates))
    return BatchJob(images=tuple(images), candidates=candidates, out_dir=out_dir, **kwargs)


class BatchJobTests(unittest.TestCase):
    def test_validation(self) -> None:
        out = Path("out")
        with self.assertRaises(ValueError):
            _job([], [], out)
        with self.assertRaises(ValueError):
            _job([], ["a", "b"], out, tolerances=(1.0,))
        with self.assertRaises(ValueError):
            _job([], ["a"], out, image_parallelism=0)
        with self.assertRaises(ValueError):
            _job([], ["a"], out, candidate_parallelism=0)


class RunCandidatesTests(unittest.TestCase):
    def test_results_follow_declared_order_not_completion_order(self) -> None:
        running = []
        lock = threading.Lock()

        def fake_run(image, spec, registry, *, timeout_s=None):
            delay = {"a": 0.3, "b": 0.1, "c": 0.0}[spec.preset_key]
            with lock:
                running.append(spec.preset_key)
            time.sleep(delay)
            return CandidateResult(spec=spec, display=spec.name, data=b"x", extension="x", elapsed=delay)

        job = _job([], ["a", "b", "c"], Path("out"))
        with patch.object(pipeline, "run_candidate", side_effect=fake_run):
            results = run_candidates(Path("img.png"), job, registry=None)

        self.assertEqual(["a", "b", "c"], [r.spec.preset_key for r in results])
        self.assertEqual({"a", "b", "c"}, set(running))

    def test_candidate_parallelism_bounds_workers(self) -> None:
        active = 0
        peak = 0
        lock = threading.Lock()

        def fake_run(image, spec, registry, *, timeout_s=None):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return CandidateResult(spec=spec, display=spec.name, data=b"x", extension="x", elapsed=0.05)

        job = _job([], ["a", "b", "c", "d"], Path("out"), candidate_parallelism=2)
        with patch.object(pipeline, "run_candidate", side_effect=fake_run):
            run_candidates(Path("img.png"), job, registry=None)

        self.assertLessEqual(peak, 2)


class ImageParallelismTests(unittest.TestCase):
    def _peak_images_in_flight(self, **kwargs) -> int:
        active = 0
        peak = 0
        lock = threading.Lock()

        def fake_process(image, job, registry):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return ImageOutcome(image=image)

        images = [Path(f"img{i}.png") for i in range(6)]
        job = _job(images, ["a"], Path("out"), **kwargs)
        with patch.object(pipeline, "process_image", side_effect=fake_process):
            summary = run_batch(job, registry=None, stream=io.StringIO())

        self.assertEqual(6, summary.processed)
        self.assertEqual(0, summary.failed)
        return peak

    def test_images_run_one_at_a_time_by_default(self) -> None:
        self.assertEqual(1, self._peak_images_in_flight())

    def test_image_parallelism_bounds_workers(self) -> None:
        peak = self._peak_images_in_flight(image_parallelism=3)
        self.assertLessEqual(peak, 3)
        self.assertGreaterEqual(peak, 1)


@POSIX_ONLY
class BatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.base = Path(self._temp.name)
        encoder = write_fake_encoder(self.base)
        self.registry = PresetRegistry(load_catalog(write_presets(self.base, encoder)))
        self.out_dir = self.base / "out"

    def tearDown(self) -> None:
        self._temp.cleanup()

    def test_winner_saved_and_counted(self) -> None:
        images = [write_noise_png(self.base / "a.png"), write_noise_png(self.base / "b.png")]
        csv_path = self.base / "res.csv"
        job = _job(images, ["fake(0.9)", "fake(fail)", "fake_out(0.5)"], self.out_dir, csv_path=csv_path, image_parallelism=2)
        stream = io.StringIO()

        summary = run_batch(job, self.registry, stream=stream)

        self.assertEqual(2, summary.processed)
        self.assertEqual(0, summary.failed)
        self.assertEqual(["a.fo", "b.fo"], sorted(p.name for p in self.out_dir.iterdir()))
        half = (self.base / "a.png").stat().st_size // 2
        self.assertEqual(half, (self.out_dir / "a.fo").stat().st_size)

        counts = summary.stats.snapshot()
        self.assertEqual(1, len(counts))
        (winner, count), = counts.items()
        self.assertTrue(winner.endswith("fake_enc 0.5"))
        self.assertEqual(2, count)

        with csv_path.open(encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f, delimiter="\t"))
        self.assertEqual(3, len(rows))
        tokens = ["fake(0.9)", "fake(fail)", "fake_out(0.5)"]
        self.assertEqual(["", "", *tokens, *tokens], rows[0])
        for row in rows:
            self.assertEqual(2 + 2 * 3, len(row))
        self.assertEqual({""}, {rows[1][3], rows[1][6], rows[2][3], rows[2][6]})

        text = stream.getvalue()
        self.assertIn("encoder exploded", text)
        self.assertIn("Save: ", text)

    def test_copy_input_when_nothing_is_smaller(self) -> None:
        image = write_noise_png(self.base / "c.png")
        job = _job([image], ["fake(1.5)", "fake(empty)"], self.out_dir)

        summary = run_batch(job, self.registry, stream=io.StringIO())

        self.assertEqual({"Copy input": 1}, summary.stats.snapshot())
        self.assertEqual(image.read_bytes(), (self.out_dir / "c.png").read_bytes())

    def test_save_all(self) -> None:
        image = write_noise_png(self.base / "d.png")
        job = _job([image], ["fake(0.9)", "fake(fail)", "fake(0.4)"], self.out_dir, save_all=True)

        summary = run_batch(job, self.registry, stream=io.StringIO())

        self.assertEqual(["d_0.fk", "d_2.fk"], sorted(p.name for p in self.out_dir.iterdir()))
        self.assertEqual({"": 1}, summary.stats.snapshot())

    def test_bad_image_does_not_stop_batch(self) -> None:
        good = write_noise_png(self.base / "good.png")
        bad = self.base / "bad.png"
        bad.write_bytes(b"not an image")
        missing = self.base / "missing.png"
        job = _job([bad, good, missing], ["fake(0.5)"], self.out_dir, show_progress=False)
        stream = io.StringIO()

        with self.assertLogs("encoder_race.pipeline", level="ERROR") as logs:
            summary = run_batch(job, self.registry, stream=stream)

        self.assertEqual(3, summary.processed)
        self.assertEqual(2, summary.failed)
        self.assertEqual(["good.fk"], [p.name for p in self.out_dir.iterdir()])
        self.assertEqual("", stream.getvalue())
        joined = "\n".join(logs.output)
        self.assertIn("bad.png", joined)
        self.assertIn("missing.png", joined)

    def test_output_error_is_per_image(self) -> None:
        image = write_noise_png(self.base / "e.png")
        blocker = self.base / "blocker"
        blocker.write_text("a file where the output directory should be", encoding="utf-8")
        job = _job([image], ["fake(0.5)"], blocker / "out")

        outcome = process_image(image, job, self.registry)

        self.assertFalse(outcome.ok)
        self.assertIn("cannot write output", outcome.error)
        self.assertIsNotNone(outcome.csv_row)


if __name__ == "__main__":
    unittest.main()
