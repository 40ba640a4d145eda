"""
Configuration loading for the K0s tracking efficiency analysis

Configuration is split into logical TOML files:
- selection.toml: V0 selection thresholds and ITS status options
- physics.toml: PDG constants (masses in GeV/c²)
- data.toml: Input files, tree names and output layout
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import tomli

from .exceptions import ConfigurationError

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

# Configurable name -> dataclass field
_CUT_NAMES = {
    "v0cospa": "v0cospa",
    "rapidity": "rapidity",
    "nSigTPC": "n_sigma_tpc",
    "eventSelection": "event_selection",
}


@dataclass(frozen=True)
class V0SelectionCuts:
    """
    Immutable V0 selection thresholds, built once at startup.

    Attributes:
        v0cospa: Minimum cosine of pointing angle
        rapidity: Maximum absolute K0s rapidity
        n_sigma_tpc: Maximum TPC nσ(π) for both daughters
        event_selection: Require the sel8 event-quality flag
    """

    v0cospa: float = 0.995
    rapidity: float = 0.5
    n_sigma_tpc: float = 10.0
    event_selection: bool = True

    def __post_init__(self) -> None:
        for name in ("v0cospa", "rapidity", "n_sigma_tpc"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"Cut '{name}' must be a number, got {value!r}")
            if math.isnan(value):
                raise ConfigurationError(f"Cut '{name}' must not be NaN")
        if not -1.0 <= self.v0cospa <= 1.0:
            raise ConfigurationError(f"v0cospa must lie in [-1, 1], got {self.v0cospa}")
        if self.rapidity < 0:
            raise ConfigurationError(f"rapidity must be non-negative, got {self.rapidity}")
        if self.n_sigma_tpc < 0:
            raise ConfigurationError(f"nSigTPC must be non-negative, got {self.n_sigma_tpc}")
        if not isinstance(self.event_selection, bool):
            raise ConfigurationError(
                f"eventSelection must be a boolean, got {self.event_selection!r}"
            )

    @classmethod
    def from_config(cls, section: dict[str, Any]) -> V0SelectionCuts:
        """
        Build cuts from a [v0_selection] table using the configurable names.

        Args:
            section: Mapping with any of v0cospa, rapidity, nSigTPC, eventSelection

        Returns:
            V0SelectionCuts with defaults for absent keys

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        unknown = sorted(set(section) - set(_CUT_NAMES))
        if unknown:
            raise ConfigurationError(
                f"Unknown V0 selection option(s): {unknown}\n"
                f"Allowed options: {sorted(_CUT_NAMES)}"
            )
        return cls(**{_CUT_NAMES[key]: value for key, value in section.items()})

    def with_overrides(self, **overrides: Any) -> V0SelectionCuts:
        """Return a copy with the non-None overrides applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


class TOMLConfig:
    """
    Load and manage all TOML configuration files

    Attributes:
        config_dir: Directory holding the TOML files
        selection: Parsed selection.toml
        physics: Parsed physics.toml
        data: Parsed data.toml
    """

    def __init__(self, config_dir: str | Path | None = None) -> None:
        self.logger: logging.Logger = logging.getLogger("K0sTrackingEfficiency.TOMLConfig")
        self.config_dir: Path = Path(config_dir) if config_dir is not None else DEFAULT_CONFIG_DIR

        self.selection: dict[str, Any] = self._load_toml("selection.toml")
        self.physics: dict[str, Any] = self._load_toml("physics.toml")
        self.data: dict[str, Any] = self._load_toml("data.toml")

        self.logger.debug(f"Loaded configuration from {self.config_dir}")

    def _load_toml(self, filename: str) -> dict:
        """
        Load TOML configuration file with proper error handling

        Args:
            filename: Name of the TOML file to load

        Returns:
            dict: Parsed TOML configuration

        Raises:
            ConfigurationError: If file not found or parsing fails
        """
        config_path = self.config_dir / filename
        try:
            with open(config_path, "rb") as f:
                return tomli.load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration file not found: {config_path}\n"
                f"Please ensure all config files are present in {self.config_dir}"
            )
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Error parsing TOML file {config_path}: {e}")

    def _require(self, section: dict[str, Any], key: str, filename: str) -> Any:
        if key not in section:
            raise ConfigurationError(f"Missing required key '{key}' in {filename}")
        return section[key]

    def get_v0_cuts(self) -> V0SelectionCuts:
        """Get the V0 selection thresholds"""
        return V0SelectionCuts.from_config(self.selection.get("v0_selection", {}))

    def get_legacy_pos_its_flag(self) -> bool:
        """Whether the positive daughter ITS flag copies the negative one"""
        value = self.selection.get("its_status", {}).get("legacy_pos_its_flag", False)
        if not isinstance(value, bool):
            raise ConfigurationError(f"its_status.legacy_pos_its_flag must be a boolean, got {value!r}")
        return value

    def get_pdg_mass(self, particle: str) -> float:
        """Get PDG mass for particle (GeV/c²)"""
        masses = self._require(self.physics, "pdg_masses", "physics.toml")
        if particle not in masses:
            raise ConfigurationError(f"No PDG mass configured for '{particle}' in physics.toml")
        return float(masses[particle])

    def get_input_files(self) -> list[Path]:
        """Input ROOT files as listed in data.toml"""
        files = self._require(self._require(self.data, "input", "data.toml"), "files", "data.toml")
        return [Path(f) for f in files]

    def get_tree_names(self) -> dict[str, str]:
        """Returns {'collisions': ..., 'v0s': ..., 'tracks': ...}"""
        trees = self._require(self._require(self.data, "input", "data.toml"), "trees", "data.toml")
        for table in ("collisions", "v0s", "tracks"):
            self._require(trees, table, "data.toml [input.trees]")
        return dict(trees)

    def get_output_paths(self, base_dir: str | Path | None = None) -> dict[str, Path]:
        """
        Resolve output locations.

        Args:
            base_dir: Overrides [output].base_dir when given

        Returns:
            Dictionary with base_dir, histograms_file, tables_dir and plots_dir
        """
        output = self._require(self.data, "output", "data.toml")
        base = Path(base_dir) if base_dir is not None else Path(output.get("base_dir", "output"))
        return {
            "base_dir": base,
            "histograms_file": base / output.get("histograms_file", "AnalysisResults.root"),
            "tables_dir": base / output.get("tables_dir", "tables"),
            "plots_dir": base / output.get("plots_dir", "plots"),
        }