"""Input discovery and output directory helpers."""

from __future__ import annotations

from pathlib import Path

from PIL import Image

IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".jxl", ".avif", ".webp"})


def readable_suffixes() -> frozenset[str]:
    """IMAGE_SUFFIXES that the installed Pillow (and its plugins) can open."""

    return IMAGE_SUFFIXES & frozenset(Image.registered_extensions())


def discover_images(src_dir: Path) -> list[Path]:
    """Return image files directly inside src_dir.

    Only suffixes Pillow can read are picked up, since every source is opened
    for its dimensions. The returned list is sorted by name to stabilize
    processing order.
    """

    if not src_dir.exists() or not src_dir.is_dir():
        raise FileNotFoundError(f"source directory does not exist or is not a directory: {src_dir}")

    suffixes = readable_suffixes()
    files = [p for p in src_dir.iterdir() if p.is_file() and p.suffix.lower() in suffixes]
    files.sort(key=lambda p: p.name)
    return files


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
