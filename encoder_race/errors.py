"""Error taxonomy.

Scope of each error:
- ConfigError: the preset catalog is unusable; fatal to the run.
- UnknownPresetError / SpecParseError: one candidate cannot be resolved.
- EncoderProcessError: an encoder exited non-zero, timed out or is missing.
- ImageMetadataError: a source image cannot be inspected; fatal to that image.

Output failures are left as plain OSError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .utils.subprocess import RunResult


class EncoderRaceError(Exception):
    """Base class for errors raised by encoder_race."""


class ConfigError(EncoderRaceError):
    pass


class UnknownPresetError(EncoderRaceError):
    def __init__(self, preset_key: str):
        super().__init__(f"unknown preset: {preset_key!r}")
        self.preset_key = preset_key


class SpecParseError(EncoderRaceError):
    pass


class EncoderProcessError(EncoderRaceError):
    def __init__(self, message: str, result: RunResult | None = None):
        super().__init__(message)
        self.result = result


class EncoderTimeoutError(EncoderProcessError):
    pass


class ImageMetadataError(EncoderRaceError):
    pass
