"""Subprocess helpers.

We centralize subprocess behavior for consistent error reporting and so that
every encoder invocation honors the same timeout policy.
"""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from typing import Iterable

from ..errors import EncoderProcessError, EncoderTimeoutError

_POSIX = os.name == "posix"


@dataclass(frozen=True)
class RunResult:
    cmd: list[str]
    returncode: int
    stdout: bytes
    stderr: bytes

    def combined_output(self) -> str:
        """stderr followed by stdout, decoded for display."""

        parts = [
            self.stderr.decode("utf-8", errors="replace").strip(),
            self.stdout.decode("utf-8", errors="replace").strip(),
        ]
        return "\n".join(p for p in parts if p)


def _output_tail(res: RunResult, lines: int = 20) -> str:
    return "\n".join(res.combined_output().splitlines()[-lines:])


def _kill_process_group(proc: subprocess.Popen) -> None:
    if _POSIX:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    else:  # pragma: no cover
        proc.kill()


def run(
    cmd: Iterable[str],
    *,
    timeout_s: float | None = None,
) -> RunResult:
    """Run a command, capturing stdout/stderr as bytes.

    Raises EncoderProcessError on non-zero exit and EncoderTimeoutError when
    timeout_s expires (the child's whole process group is killed first).
    """

    cmd_list = [str(c) for c in cmd]

    # Child leads its own process group; a timeout kills the whole group.
    proc = subprocess.Popen(
        cmd_list,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        start_new_session=_POSIX,
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout_s)
    except subprocess.TimeoutExpired:
        _kill_process_group(proc)
        stdout, stderr = proc.communicate()
        res = RunResult(cmd=cmd_list, returncode=proc.returncode, stdout=stdout or b"", stderr=stderr or b"")
        raise EncoderTimeoutError(
            f"Command timed out after {timeout_s}s: {' '.join(cmd_list)}\n{_output_tail(res)}",
            res,
        )

    res = RunResult(
        cmd=cmd_list,
        returncode=proc.returncode,
        stdout=stdout or b"",
        stderr=stderr or b"",
    )

    if res.returncode != 0:
        raise EncoderProcessError(
            f"Command failed with exit code {res.returncode}: {' '.join(res.cmd)}\n{_output_tail(res)}",
            res,
        )

    return res
