"""YAML profile loader supplying per-project sync defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog
import yaml

logger = structlog.get_logger()

DEFAULT_PROFILE = ".tm2bd.yaml"


@dataclass
class SyncProfile:
    """Per-project defaults read from ``.tm2bd.yaml``; unset keys stay None."""

    tasks: str | None = None
    map_file: str | None = None
    save_partial: bool | None = None


def load_profile(config_path: str | Path) -> SyncProfile:
    """Load a sync profile, ignoring (and logging) invalid entries.

    A missing file or one that is not valid YAML yields an empty profile.

    Args:
        config_path: Path to the YAML profile.

    Returns:
        The profile with every valid key set.
    """
    profile = SyncProfile()
    config_file = Path(config_path)

    if not config_file.exists():
        logger.debug("profile_not_found", path=str(config_path))
        return profile

    try:
        with config_file.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("yaml_parse_error", path=str(config_path), error=str(e))
        return profile

    if not data:
        return profile
    if not isinstance(data, dict):
        logger.warning("profile_not_mapping", path=str(config_path))
        return profile

    for key in ("tasks", "map_file"):
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            logger.warning("invalid_profile_value", key=key, value=value)
            continue
        setattr(profile, key, value)

    save_partial = data.get("save_partial")
    if save_partial is not None:
        if isinstance(save_partial, bool):
            profile.save_partial = save_partial
        else:
            logger.warning("invalid_profile_value", key="save_partial", value=save_partial)

    unknown = sorted(set(data) - {"tasks", "map_file", "save_partial"})
    if unknown:
        logger.warning("unknown_profile_keys", keys=unknown)

    logger.info("profile_loaded", path=str(config_path))
    return profile
