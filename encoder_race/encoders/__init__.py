"""Preset registry.

Presets are pure data (see config.EncodeTemplate); the registry maps a
candidate's preset key to its template and fills in the positional
placeholders. The registry is read-only after construction, so worker threads
may share one instance.
"""

from __future__ import annotations

import re

from ..config import EncodeTemplate
from ..errors import SpecParseError, UnknownPresetError
from .base import CandidateSpec, OutputMode, ResolvedCommand

_PLACEHOLDER_RE = re.compile(r"%(\d+)%")


def substitute(template: str, args: tuple[str, ...]) -> str:
    """Replace %1%, %2%, ... in template with args, left to right.

    Raises SpecParseError if the template references a placeholder with no
    corresponding argument.
    """

    referenced = [int(n) for n in _PLACEHOLDER_RE.findall(template)]
    if referenced and max(referenced) > len(args):
        raise SpecParseError(
            f"template {template!r} needs {max(referenced)} argument(s), got {len(args)}"
        )
    out = template
    for i, value in enumerate(args):
        out = out.replace(f"%{i + 1}%", value)
    return out


def resolve(spec: CandidateSpec, catalog: dict[str, EncodeTemplate]) -> ResolvedCommand:
    template = catalog.get(spec.preset_key)
    if template is None:
        raise UnknownPresetError(spec.preset_key)

    text = substitute(template.command_template, spec.template_args)
    argv = tuple(text.split())
    if not argv:
        raise SpecParseError(f"preset {spec.preset_key!r} resolves to an empty command")

    mode = OutputMode.STDOUT if template.output_from_stdout else OutputMode.TEMPFILE
    return ResolvedCommand(display=" ".join(argv), argv=argv, extension=template.extension, mode=mode)


class PresetRegistry:
    """Lookup of presets by name."""

    def __init__(self, catalog: dict[str, EncodeTemplate]):
        self._catalog = dict(catalog)

    def resolve(self, spec: CandidateSpec) -> ResolvedCommand:
        return resolve(spec, self._catalog)
