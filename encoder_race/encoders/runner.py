"""Run one candidate against one image as an external process.

Two output protocols are supported:
- stdout:   <encoder> <args...> <image>          -> bytes read from stdout
- tempfile: <encoder> <image> <args...> <tmp.ext> -> bytes read back from tmp

Per-candidate failures never raise out of run_candidate; they are recorded on
the CandidateResult so sibling candidates and the image carry on.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from pathlib import Path

from ..errors import EncoderProcessError, EncoderRaceError
from ..utils.subprocess import run
from . import PresetRegistry
from .base import CandidateResult, CandidateSpec, OutputMode, ResolvedCommand

log = logging.getLogger(__name__)


def _executable(name: str) -> str:
    exe = shutil.which(name)
    if exe is None:
        raise EncoderProcessError(f"{name} executable not found on PATH")
    return exe


def execute(image: Path, cmd: ResolvedCommand, *, timeout_s: float | None = None) -> bytes:
    """Run a resolved command against image and return the encoded bytes."""

    exe = _executable(cmd.argv[0])
    args = list(cmd.argv[1:])

    if cmd.mode is OutputMode.STDOUT:
        return run([exe, *args, str(image)], timeout_s=timeout_s).stdout

    with tempfile.NamedTemporaryFile(suffix=f".{cmd.extension}", delete=False) as f:
        out_path = Path(f.name)
    try:
        run([exe, str(image), *args, str(out_path)], timeout_s=timeout_s)
        return out_path.read_bytes()
    finally:
        out_path.unlink(missing_ok=True)


def run_candidate(
    image: Path,
    spec: CandidateSpec,
    registry: PresetRegistry,
    *,
    timeout_s: float | None = None,
) -> CandidateResult:
    """Resolve, execute and time one candidate."""

    start = time.perf_counter()
    display = spec.name
    extension = ""
    try:
        cmd = registry.resolve(spec)
        display, extension = cmd.display, cmd.extension
        data = execute(image, cmd, timeout_s=timeout_s)
    except (EncoderRaceError, OSError) as e:
        message = str(e)
        log.warning("%s: candidate %r failed: %s", image, display, message)
        return CandidateResult(
            spec=spec,
            display=display,
            data=b"",
            extension=extension,
            elapsed=time.perf_counter() - start,
            error=message,
        )

    return CandidateResult(
        spec=spec,
        display=display,
        data=data,
        extension=extension,
        elapsed=time.perf_counter() - start,
    )
