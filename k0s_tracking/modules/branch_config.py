"""
Branch configuration manager

Handles loading branches_config.toml, which maps the canonical field names
used by the analysis to the branch names stored in the input trees.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import awkward as ak
import tomli

from .exceptions import BranchMissingError, ConfigurationError

TABLES = ("collisions", "v0s", "tracks")


class BranchConfig:
    """Manager for branch configuration.

    Each table section of the TOML file has a ``required`` and an
    ``optional`` sub-table mapping canonical name -> branch name.

    Attributes:
        logger: Logger instance for this class
        config: Loaded TOML configuration dictionary
    """

    def __init__(self, config_path: str | Path | None = None) -> None:
        """
        Initialize branch configuration.

        Args:
            config_path: Path to branches_config.toml (auto-detected if None)

        Raises:
            ConfigurationError: If configuration file not found or incomplete
        """
        self.logger: logging.Logger = logging.getLogger("K0sTrackingEfficiency.BranchConfig")

        if config_path is None:
            config_path = Path(__file__).resolve().parent.parent / "config" / "branches_config.toml"
        else:
            config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigurationError(f"Branch configuration file not found: {config_path}")

        with open(config_path, "rb") as f:
            self.config: dict[str, Any] = tomli.load(f)

        for table in TABLES:
            if table not in self.config:
                raise ConfigurationError(
                    f"Branch configuration {config_path} has no [{table}] section"
                )

        self.logger.debug(f"Loaded branch configuration from {config_path}")

    def required(self, table: str) -> dict[str, str]:
        """Canonical name -> branch name for the required fields of a table"""
        return dict(self._section(table).get("required", {}))

    def optional(self, table: str) -> dict[str, str]:
        """Canonical name -> branch name for the optional fields of a table"""
        return dict(self._section(table).get("optional", {}))

    def _section(self, table: str) -> dict[str, Any]:
        if table not in TABLES:
            raise ConfigurationError(f"Unknown table '{table}', expected one of {TABLES}")
        return self.config[table]

    def resolve(self, table: str, available_branches: list[str]) -> dict[str, str]:
        """
        Pick the branches to read from a tree.

        Args:
            table: Table name (collisions, v0s, tracks)
            available_branches: Branch names present in the tree

        Returns:
            Dictionary mapping branch name -> canonical name

        Raises:
            BranchMissingError: If a required branch is absent
        """
        available = set(available_branches)
        rename_map: dict[str, str] = {}

        for common_name, branch in self.required(table).items():
            if branch not in available:
                raise BranchMissingError(branch, table)
            rename_map[branch] = common_name

        for common_name, branch in self.optional(table).items():
            if branch in available:
                rename_map[branch] = common_name
            else:
                self.logger.debug(f"Optional branch {branch} not present in {table}")

        return rename_map

    def normalize(self, arrays: ak.Array, rename_map: dict[str, str]) -> ak.Array:
        """Return a record array with canonical field names"""
        return ak.zip({common: arrays[branch] for branch, common in rename_map.items()}, depth_limit=1)
