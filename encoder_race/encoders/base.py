"""Candidate data structures shared by the registry, runner and selection."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from ..errors import SpecParseError

_TOKEN_RE = re.compile(r"^\s*(?P<key>[^()\s]+)\s*(?:\((?P<args>[^()]*)\))?\s*$")


class OutputMode(enum.Enum):
    """How an encoder hands back its output bytes."""

    STDOUT = "stdout"
    TEMPFILE = "tempfile"


@dataclass(frozen=True)
class CandidateSpec:
    """A parsed candidate token such as ``cjxl_d(1.5)``.

    name is the token as the user wrote it and is used as the CSV column label.
    """

    name: str
    preset_key: str
    template_args: tuple[str, ...] = ()

    @classmethod
    def parse(cls, token: str) -> "CandidateSpec":
        m = _TOKEN_RE.match(token)
        if m is None:
            raise SpecParseError(f"malformed candidate token: {token!r} (expected preset or preset(arg,...))")
        raw_args = m.group("args")
        args: tuple[str, ...] = ()
        if raw_args is not None and raw_args.strip():
            args = tuple(a.strip() for a in raw_args.split(","))
        return cls(name=token.strip(), preset_key=m.group("key"), template_args=args)


@dataclass(frozen=True)
class ResolvedCommand:
    """A candidate with its template filled in, ready to execute.

    argv holds the encoder executable followed by its arguments; the input
    image (and, in tempfile mode, the output path) are added by the runner.
    """

    display: str
    argv: tuple[str, ...]
    extension: str
    mode: OutputMode


@dataclass(frozen=True)
class CandidateResult:
    spec: CandidateSpec
    display: str
    data: bytes
    extension: str
    elapsed: float  # seconds
    error: str | None = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def usable(self) -> bool:
        """True if the result may take part in selection."""

        return self.error is None and self.size_bytes > 0
