"""
agora.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for **infrastructure-only** settings (community
identity, dashboard port, admin role, refresh cadence).  Gameplay tuning
values (points per action, leaderboard weights) live in the ``settings``
database table and are read through :class:`~agora.engine.cache.ConfigCache`.

Usage::

    from agora.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.community_name)    # "Acme Commons"
    print(cfg.leaderboard_refresh_minutes)  # 60
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# Gameplay tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AgoraConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str
    community_motto: str

    # Dashboard
    dashboard_port: int

    # Admin
    admin_role: str  # JWT role claim that unlocks admin endpoints

    # Background refresh of every (scope, period) leaderboard; 0 disables
    leaderboard_refresh_minutes: int = 60


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> AgoraConfig:
    """Read *path* and return an :class:`AgoraConfig` instance.

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
        raw: dict = yaml.safe_load(fh)

    return AgoraConfig(
        community_name=raw["community_name"],
        community_motto=raw["community_motto"],
        dashboard_port=int(raw["dashboard_port"]),
        admin_role=str(raw.get("admin_role", "admin")),
        leaderboard_refresh_minutes=int(raw.get("leaderboard_refresh_minutes", 60)),
    )
