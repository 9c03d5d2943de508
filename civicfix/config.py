"""
civicfix.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for **identity/infrastructure** settings only.
Secrets (``DATABASE_URL``, ``JWT_SECRET``) come from the environment,
and gameplay tuning (point deltas) lives in the ``settings`` table,
editable from the admin endpoints.

Usage::

    from civicfix.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "CivicFix"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


@dataclass(frozen=True, slots=True)
class CivicConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    app_name: str
    api_port: int
    leaderboard_size: int = 10


def load_config(path: str | Path = "config.yaml") -> CivicConfig:
    """Read *path* and return a :class:`CivicConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return CivicConfig(
        app_name=raw["app_name"],
        api_port=int(raw["api_port"]),
        leaderboard_size=int(raw.get("leaderboard_size", 10)),
    )
