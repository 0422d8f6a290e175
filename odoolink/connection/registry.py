from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import ValidationError

from odoolink.connection.models import ConnectionProfile

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Named Odoo connection profiles read from a directory of YAML files.

    Profiles are keyed by their own ``name`` field, not by file name, so two
    files claiming one name is a load error. reload() rebuilds the map and
    replaces it in one assignment; a batch holding a profile keeps it.
    """

    def __init__(self, config_dir: str = "configs/connections") -> None:
        self._config_dir = Path(config_dir)
        self._profiles: Dict[str, ConnectionProfile] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_all(self) -> None:
        """
        Read config_dir and replace the current profiles.

        Raises:
            FileNotFoundError: if config_dir does not exist.
            ValueError: if two files declare the same profile name.
        """
        if not self._config_dir.exists():
            raise FileNotFoundError(
                f"Connection config directory not found: {self._config_dir}"
            )

        new_profiles: Dict[str, ConnectionProfile] = {}
        for yaml_path in sorted(self._config_dir.glob("*.yaml")):
            try:
                raw = yaml.safe_load(yaml_path.read_text())
                profile = ConnectionProfile.model_validate(raw)
            except (ValidationError, yaml.YAMLError) as exc:
                logger.error("Failed to load connection profile %s: %s", yaml_path, exc)
                raise
            if profile.name in new_profiles:
                raise ValueError(
                    f"Duplicate connection profile {profile.name!r} in {yaml_path.name}"
                )
            new_profiles[profile.name] = profile
            logger.info("Loaded connection profile: %s (%s)", profile.name, yaml_path.name)

        with self._lock:
            self._profiles = new_profiles

        logger.info("ConnectionRegistry loaded %d profile(s).", len(new_profiles))

    def get(self, name: str) -> Optional[ConnectionProfile]:
        """Return the profile called name, or None if unknown."""
        with self._lock:
            return self._profiles.get(name)

    def reload(self) -> None:
        logger.info("Reloading connection profiles from %s", self._config_dir)
        self.load_all()

    def all_names(self) -> list[str]:
        with self._lock:
            return sorted(self._profiles.keys())

    def count(self) -> int:
        with self._lock:
            return len(self._profiles)
