"""Image-related helpers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..errors import ImageMetadataError


@dataclass(frozen=True)
class SourceInfo:
    file_size: int
    width: int
    height: int

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


def read_source_info(path: Path) -> SourceInfo:
    """Stat path and read its pixel dimensions (header only, no full decode)."""

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ImageMetadataError(f"cannot stat {path}: {e}") from e

    try:
        with Image.open(path) as im:
            width, height = im.size
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        raise ImageMetadataError(f"cannot read dimensions of {path}: {e}") from e

    if file_size <= 0:
        raise ImageMetadataError(f"empty source file: {path}")

    return SourceInfo(file_size=file_size, width=width, height=height)
