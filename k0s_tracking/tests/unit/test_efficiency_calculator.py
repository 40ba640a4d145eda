"""
Unit tests for EfficiencyCalculator.

Tests efficiency tables built from hand-filled status histograms, error
handling for invalid requests, and CSV output.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from k0s_tracking.modules.config import V0SelectionCuts
from k0s_tracking.modules.efficiency_calculator import EfficiencyCalculator
from k0s_tracking.modules.exceptions import EfficiencyError
from k0s_tracking.modules.histogram_registry import HistogramRegistry
from k0s_tracking.modules.tracking_efficiency_task import K0sTrackingEfficiencyTask


@pytest.fixture
def filled_registry() -> HistogramRegistry:
    """
    ITS status histogram with candidates in two pT bins:

    pT bin 20 (1.00-1.05): (neg, pos) = (1,1) x3, (1,0) x1
    pT bin 40 (2.00-2.05): (0,0) x1, (0,1) x1
    """
    task = K0sTrackingEfficiencyTask(V0SelectionCuts())
    fill = task.registry.get("h5_RpTmassITSStatus").fill
    for _ in range(3):
        fill(1.5, 1.02, 0.497, 1, 1)
    fill(1.5, 1.02, 0.497, 1, 0)
    fill(4.5, 2.02, 0.497, 0, 0)
    fill(4.5, 2.02, 0.497, 0, 1)
    return task.registry


@pytest.mark.unit
class TestCalculateEfficiency:
    """Test efficiency tables."""

    def test_table_layout(self, filled_registry: HistogramRegistry) -> None:
        table = EfficiencyCalculator(filled_registry).calculate_efficiency("its", "pT", "both")

        assert isinstance(table, pd.DataFrame)
        assert list(table.columns) == ["bin_low", "bin_high", "n_total", "n_pass", "efficiency", "uncertainty"]
        assert len(table) == 200
        assert table["bin_low"].iloc[20] == pytest.approx(1.0)
        assert table["bin_high"].iloc[20] == pytest.approx(1.05)

    @pytest.mark.parametrize(
        "daughter, eff_bin20, eff_bin40",
        [
            ("both", 0.75, 0.0),
            ("neg", 1.0, 0.0),
            ("pos", 0.75, 0.5),
            ("either", 1.0, 0.5),
        ],
    )
    def test_daughter_selections(
        self, filled_registry: HistogramRegistry, daughter: str, eff_bin20: float, eff_bin40: float
    ) -> None:
        table = EfficiencyCalculator(filled_registry).calculate_efficiency("its", "pT", daughter)

        assert table["efficiency"].iloc[20] == pytest.approx(eff_bin20)
        assert table["efficiency"].iloc[40] == pytest.approx(eff_bin40)
        assert table["n_total"].iloc[20] == 4
        assert table["n_total"].iloc[40] == 2

    def test_empty_bins_are_nan(self, filled_registry: HistogramRegistry) -> None:
        table = EfficiencyCalculator(filled_registry).calculate_efficiency("its", "pT")

        empty = table["n_total"] == 0
        assert empty.sum() == 198
        assert table.loc[empty, "efficiency"].isna().all()
        assert table.loc[~empty, "efficiency"].notna().all()

    def test_binomial_uncertainty(self, filled_registry: HistogramRegistry) -> None:
        table = EfficiencyCalculator(filled_registry).calculate_efficiency("its", "pT", "both")

        assert table["uncertainty"].iloc[20] == pytest.approx(np.sqrt(0.75 * 0.25 / 4))
        assert table["uncertainty"].iloc[40] == 0.0

    def test_other_axes(self, filled_registry: HistogramRegistry) -> None:
        calculator = EfficiencyCalculator(filled_registry)

        by_radius = calculator.calculate_efficiency("its", "R", "both")
        by_mass = calculator.calculate_efficiency("its", "mass", "both")

        assert len(by_radius) == 100
        assert by_radius["n_total"].iloc[15] == 4
        assert by_radius["n_total"].iloc[45] == 2
        assert by_mass["n_total"].sum() == 6
        assert by_mass["n_pass"].sum() == 3

    def test_empty_histogram(self, filled_registry: HistogramRegistry) -> None:
        table = EfficiencyCalculator(filled_registry).calculate_efficiency("ib", "pT")

        assert table["n_total"].sum() == 0
        assert table["efficiency"].isna().all()


@pytest.mark.unit
class TestErrors:
    """Test invalid requests."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"status": "tof"},
            {"axis": "eta"},
            {"daughter": "none"},
        ],
    )
    def test_invalid_arguments(self, filled_registry: HistogramRegistry, kwargs: dict) -> None:
        with pytest.raises(EfficiencyError):
            EfficiencyCalculator(filled_registry).calculate_efficiency(**kwargs)

    def test_missing_status_histogram(self) -> None:
        with pytest.raises(EfficiencyError) as exc_info:
            EfficiencyCalculator(HistogramRegistry()).calculate_efficiency("its")

        assert "h5_RpTmassITSStatus" in str(exc_info.value)


@pytest.mark.unit
class TestSaveTable:
    """Test CSV output."""

    def test_save_table(self, filled_registry: HistogramRegistry, tmp_output_dir: Path) -> None:
        calculator = EfficiencyCalculator(filled_registry)
        table = calculator.calculate_efficiency("its", "pT", "both")

        path = calculator.save_table(table, tmp_output_dir / "tables" / "its_efficiency_pT.csv")

        assert path.exists()
        loaded = pd.read_csv(path)
        assert len(loaded) == 200
        assert loaded["n_pass"].sum() == 3
