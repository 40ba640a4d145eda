"""
Global pytest fixtures and configuration for the test suite.

Provides reusable fixtures (records, cuts, configuration directories and
mock AO2D files) without duplicating setup code across test modules.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator

import pytest

from k0s_tracking.modules.config import V0SelectionCuts
from k0s_tracking.modules.datatypes import Collision, Track, V0Candidate

from .utils.mock_data_generator import create_config_dir, create_mock_ao2d


@pytest.fixture
def tmp_test_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test operations.

    Automatically cleaned up after test completion.

    Yields:
        Path to temporary directory
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix="k0s_tracking_test_"))
    try:
        yield tmp_dir
    finally:
        if tmp_dir.exists():
            shutil.rmtree(tmp_dir)


@pytest.fixture
def tmp_output_dir(tmp_test_dir: Path) -> Path:
    """Create a temporary output directory."""
    output_dir = tmp_test_dir / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


@pytest.fixture
def default_cuts() -> V0SelectionCuts:
    """Default V0 selection: cosPA 0.995, |y| 0.5, nσ 10, sel8 required."""
    return V0SelectionCuts()


@pytest.fixture
def collision() -> Collision:
    """Selected collision with its primary vertex at the origin."""
    return Collision(index=0, pos_x=0.0, pos_y=0.0, pos_z=0.0, sel8=True)


@pytest.fixture
def make_v0() -> Callable[..., V0Candidate]:
    """
    Factory for V0 candidates.

    The default candidate decays at R = 3 cm along its momentum
    (cosPA = 1 w.r.t. the origin), at mid-rapidity, with pT = 1 GeV/c
    and the K0s mass.
    """

    def _make(**overrides: Any) -> V0Candidate:
        fields: Dict[str, Any] = {
            "collision_id": 0,
            "pos_track_id": 0,
            "neg_track_id": 1,
            "x": 3.0,
            "y": 0.0,
            "z": 0.0,
            "px": 1.0,
            "py": 0.0,
            "pz": 0.0,
            "v0radius": 3.0,
            "pt": 1.0,
            "mass_k0s": 0.4976,
            "rapidity_k0s": 0.0,
        }
        fields.update(overrides)
        return V0Candidate(**fields)

    return _make


@pytest.fixture
def make_track() -> Callable[..., Track]:
    """Factory for daughter tracks; default is a good ITS-TPC pion with all 7 layers."""

    def _make(index: int = 0, **overrides: Any) -> Track:
        fields: Dict[str, Any] = {
            "has_tpc": True,
            "has_its": True,
            "its_cluster_map": 0b1111111,
            "tpc_nsigma_pi": 0.5,
        }
        fields.update(overrides)
        return Track(index=index, **fields)

    return _make


@pytest.fixture
def config_dicts(tmp_test_dir: Path) -> Dict[str, Dict[str, Any]]:
    """Contents of a complete configuration directory."""
    return {
        "selection.toml": {
            "v0_selection": {
                "v0cospa": 0.995,
                "rapidity": 0.5,
                "nSigTPC": 10.0,
                "eventSelection": True,
            },
            "its_status": {"legacy_pos_its_flag": False},
        },
        "physics.toml": {
            "pdg_masses": {"k0short": 0.497611, "pion": 0.13957039},
        },
        "data.toml": {
            "input": {
                "files": [str(tmp_test_dir / "AO2D.root")],
                "trees": {
                    "collisions": "O2collision",
                    "v0s": "O2v0data",
                    "tracks": "O2track",
                },
            },
            "output": {
                "base_dir": str(tmp_test_dir / "output"),
                "histograms_file": "AnalysisResults.root",
                "tables_dir": "tables",
                "plots_dir": "plots",
            },
        },
    }


@pytest.fixture
def config_dir_fixture(tmp_test_dir: Path, config_dicts: Dict[str, Dict[str, Any]]) -> Path:
    """
    Create a temporary config directory with sample TOML files.

    Input points to tmp_test_dir/AO2D.root, output to tmp_test_dir/output.

    Returns:
        Path to config directory
    """
    return create_config_dir(tmp_test_dir / "config", config_dicts)


@pytest.fixture
def mock_ao2d_file(tmp_test_dir: Path) -> Path:
    """Single time frame AO2D-like file with 50 collisions."""
    return create_mock_ao2d(tmp_test_dir / "AO2D.root", n_collisions=50, seed=7)


def pytest_configure(config: pytest.Config) -> None:
    """
    Configure pytest with custom markers.

    Args:
        config: pytest configuration object
    """
    config.addinivalue_line("markers", "unit: Fast tests of a single component")
    config.addinivalue_line("markers", "integration: Tests reading or writing ROOT files")
