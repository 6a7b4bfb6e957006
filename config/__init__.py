"""Shipped configuration for the synthetic race pipeline."""

from __future__ import annotations

from pathlib import Path

CONFIG_DIR: Path = Path(__file__).resolve().parent
