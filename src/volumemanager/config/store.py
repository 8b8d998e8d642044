"""
Configuration loading and change detection for the control loop.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..errors import ConfigurationError
from ..models import GroupSpec
from .directory import DirectoryService
from .groups import GroupCatalog, group_files, load_groups
from .settings import ManagerSettings, load_settings, settings_files

logger = logging.getLogger(__name__)


@dataclass
class VolumeManagerConfiguration:
    settings: ManagerSettings
    catalog: GroupCatalog
    loaded_at: float

    @property
    def specs(self) -> List[GroupSpec]:
        return self.catalog.specs()


class ConfigStore:
    """Loads the configuration directory and reports whether it changed since a load."""

    def __init__(self, config_dir: Path, directory: Optional[DirectoryService] = None) -> None:
        self.config_dir = Path(config_dir)
        self.directory = directory if directory is not None else DirectoryService()
        self._settings: Optional[ManagerSettings] = None
        self._files: List[Path] = []

    def load(self) -> VolumeManagerConfiguration:
        """
        Loads settings and group specs.

        The set of watched files is recorded even when loading fails, so a
        broken configuration is only retried once it changes again.

        Raises:
            ConfigurationError: if the global settings are invalid.
        """
        logger.info(f"Loading configuration from {self.config_dir.resolve()} ...")
        loaded_at = time.time()
        try:
            settings = load_settings(self.config_dir)
        except ConfigurationError:
            self._files = self._watched_files(self._settings)
            raise
        except OSError as e:
            self._files = self._watched_files(self._settings)
            raise ConfigurationError(f"Could not read configuration directory {self.config_dir}: {e}")

        directory = self.directory if settings.validate_principals else None
        try:
            catalog = load_groups(settings.groups_dir, directory)
        except OSError as e:
            self._files = self._watched_files(self._settings)
            raise ConfigurationError(f"Could not read volume group directory {settings.groups_dir}: {e}")
        self._settings = settings
        self._files = self._watched_files(settings)
        return VolumeManagerConfiguration(settings=settings, catalog=catalog, loaded_at=loaded_at)

    def has_changed(self, since: float) -> bool:
        """True if a configuration file is new, removed, or modified after `since`."""
        current = self._watched_files(self._settings)
        if current != self._files:
            logger.info("Configuration file set changed")
            return True
        for path in current:
            try:
                modified = path.stat().st_mtime
            except OSError:
                logger.info(f"Configuration file disappeared: {path}")
                return True
            if modified > since:
                logger.info(f"Configuration file is new or updated: {path}")
                return True
        return False

    def _watched_files(self, settings: Optional[ManagerSettings]) -> List[Path]:
        if not self.config_dir.is_dir():
            return []
        files = settings_files(self.config_dir)
        if settings is not None:
            files += group_files(settings.groups_dir)
        return files
