"""Preset catalog configuration.

This module defines:
- The EncodeTemplate record (one named encode command template).
- The built-in default presets, seeded to disk on first run.
- Loading of the preset file (JSON, or YAML when PyYAML is installed).

A preset file maps preset names to templates:

{
  "cjxl_d": {"encode": "cjxl -d %1% -j 0 --patches=0", "ext": "jxl"},
  "cjpeg_q": {"encode": "cjpeg -quality %1%", "ext": "jpg", "output_from_stdout": true}
}

Placeholders %1%, %2%, ... are filled positionally from the candidate token
(e.g. "cjxl_d(1.5)"). Adding a preset is a config edit, never a code change.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from .errors import ConfigError

log = logging.getLogger(__name__)

APP_DIR_NAME = "encoder_race"
PRESETS_FILE_NAME = "presets.json"

DEFAULT_PRESETS: dict[str, dict[str, Any]] = {
    "cjxl_d": {"encode": "cjxl -d %1% -j 0 --patches=0", "ext": "jxl"},
    "cjxl_l": {"encode": "cjxl -d 0 -j 0 -e %1% --patches=0", "ext": "jxl"},
    # Lossless JPEG recompression.
    "cjxl_tr": {"encode": "cjxl -d 0 -j 1 -e %1%", "ext": "jxl"},
    "cavif_q": {"encode": "cavif -Q %1%", "ext": "avif"},
    "avif_q": {
        "encode": (
            "avifenc --min 0 --max 63 -d 10 -s 4 -j 8 -a end-usage=q -a cq-level=%1% "
            "-a color:enable-chroma-deltaq=1 -a color:deltaq-mode=3 -a color:aq-mode=1 "
            "-a color:qm-min=0 -a tune=ssim"
        ),
        "ext": "avif",
    },
    "cwebp_q": {"encode": "cwebp -mt -m 6 -q %1% -o", "ext": "webp"},
    "cjpegli_q": {"encode": "cjpegli -q %1%", "ext": "jpg"},
    "cjpeg_q": {"encode": "cjpeg -optimize -quality %1%", "ext": "jpg", "output_from_stdout": True},
}


@dataclass(frozen=True)
class EncodeTemplate:
    """One preset: command template, output extension and output protocol."""

    command_template: str
    extension: str
    output_from_stdout: bool = False

    @classmethod
    def from_mapping(cls, name: str, raw: Any) -> "EncodeTemplate":
        if not isinstance(raw, dict):
            raise ConfigError(f"preset {name!r}: expected an object, got {type(raw).__name__}")
        encode = raw.get("encode")
        ext = raw.get("ext")
        if not isinstance(encode, str) or not encode.strip():
            raise ConfigError(f"preset {name!r}: missing string field 'encode'")
        if not isinstance(ext, str) or not ext.strip():
            raise ConfigError(f"preset {name!r}: missing string field 'ext'")
        # Presence of the key selects stdout mode; only an explicit false opts out.
        from_stdout = "output_from_stdout" in raw and raw["output_from_stdout"] is not False
        return cls(command_template=encode.strip(), extension=ext.strip().lstrip("."), output_from_stdout=from_stdout)


def config_dir() -> Path:
    """Per-user configuration directory for this tool."""

    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / APP_DIR_NAME
        return Path.home() / "AppData" / "Roaming" / APP_DIR_NAME

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config_home:
        return Path(xdg_config_home) / APP_DIR_NAME
    return Path.home() / ".config" / APP_DIR_NAME


def default_catalog_path() -> Path:
    return config_dir() / PRESETS_FILE_NAME


def write_default_catalog(path: Path) -> None:
    """Seed path with DEFAULT_PRESETS (JSON is valid YAML too)."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(DEFAULT_PRESETS, f, indent=2)
            f.write("\n")
    except OSError as e:
        raise ConfigError(f"cannot write default presets to {path}: {e}") from e


def _read_raw(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as f:
            if path.suffix.lower() in {".yml", ".yaml"}:
                try:
                    import yaml  # type: ignore
                except ImportError as e:  # pragma: no cover
                    raise ConfigError(
                        "YAML presets requested but PyYAML is not installed. Install with: pip install pyyaml"
                    ) from e
                try:
                    return yaml.safe_load(f)
                except (yaml.YAMLError, UnicodeDecodeError) as e:
                    raise ConfigError(f"cannot parse presets file {path}: {e}") from e
            try:
                return json.load(f)
            except ValueError as e:
                raise ConfigError(f"cannot parse presets file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read presets file {path}: {e}") from e


def load_catalog(path: Path | None = None, *, required: Iterable[str] = ()) -> dict[str, EncodeTemplate]:
    """Load the preset catalog, seeding the built-in defaults if the file is absent.

    Raises ConfigError if the file cannot be read or parsed, if an entry is
    malformed, or if any preset named in `required` is missing.
    """

    path = (path or default_catalog_path()).expanduser()
    if not path.exists():
        write_default_catalog(path)
        log.info("Wrote default presets to %s", path)
    if not path.is_file():
        raise ConfigError(f"presets path is not a file: {path}")

    raw = _read_raw(path)
    if not isinstance(raw, dict):
        raise ConfigError(f"presets file {path} must contain an object at top level")

    catalog = {str(name): EncodeTemplate.from_mapping(str(name), entry) for name, entry in raw.items()}

    missing = [name for name in required if name not in catalog]
    if missing:
        raise ConfigError(f"presets file {path} lacks required preset(s): {', '.join(missing)}")

    log.debug("Loaded %d presets from %s", len(catalog), path)
    return catalog
