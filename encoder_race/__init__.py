"""encoder_race

A CLI tool to batch-compress images by racing several external encoder
presets against each other and keeping the smallest acceptable result.

Primary entrypoints:
- python -m encoder_race.cli
- console script: encoder-race
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
