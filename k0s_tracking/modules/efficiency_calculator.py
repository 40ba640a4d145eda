"""
Efficiency Calculation Module for the K0s tracking efficiency analysis

Turns the 5-D status histograms into efficiency tables:

    ε(bin) = N(candidates whose daughter(s) carry the flag) / N(candidates)

per bin of R, pT or mass. With the ITS histogram this is the ITS-TPC
matching efficiency of the selected K0s daughters; with the inner-barrel
histogram it is the fraction of daughters with at least one inner-barrel
cluster.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .exceptions import EfficiencyError, HistogramError
from .histogram_registry import HistogramRegistry, SparseHistogram

STATUS_HISTOGRAMS = {
    "its": ("h5_RpTmassITSStatus", "negITS", "posITS"),
    "ib": ("h5_RpTmassIBStatus", "negIB", "posIB"),
}
PROJECTION_AXES = ("R", "pT", "mass")
DAUGHTER_SELECTIONS = ("neg", "pos", "both", "either")


class EfficiencyCalculator:
    """
    Calculate hit-status efficiencies from a filled histogram registry

    Attributes:
        registry: Registry filled by K0sTrackingEfficiencyTask
    """

    def __init__(self, registry: HistogramRegistry) -> None:
        self.registry = registry
        self.logger = logging.getLogger("K0sTrackingEfficiency.EfficiencyCalculator")

    def _status_histogram(self, status: str) -> tuple[SparseHistogram, str, str]:
        if status not in STATUS_HISTOGRAMS:
            raise EfficiencyError(f"Unknown status '{status}', expected one of {sorted(STATUS_HISTOGRAMS)}")
        name, neg_axis, pos_axis = STATUS_HISTOGRAMS[status]
        try:
            histogram = self.registry.get(name)
        except HistogramError as e:
            raise EfficiencyError(f"Cannot compute '{status}' efficiency: {e}") from e
        if not isinstance(histogram, SparseHistogram):
            raise EfficiencyError(f"Histogram '{name}' is not a status histogram")
        return histogram, neg_axis, pos_axis

    def calculate_efficiency(self, status: str = "its", axis: str = "pT", daughter: str = "both") -> pd.DataFrame:
        """
        Efficiency versus one kinematic axis.

        Args:
            status: 'its' (ITS match) or 'ib' (inner-barrel hits)
            axis: Projection axis, one of R, pT, mass
            daughter: Which daughter(s) must carry the flag:
                'neg', 'pos', 'both' or 'either'

        Returns:
            DataFrame with bin_low, bin_high, n_total, n_pass, efficiency,
            uncertainty (binomial); empty bins have NaN efficiency

        Raises:
            EfficiencyError: On unknown status, axis or daughter selection
        """
        if axis not in PROJECTION_AXES:
            raise EfficiencyError(f"Unknown axis '{axis}', expected one of {PROJECTION_AXES}")
        if daughter not in DAUGHTER_SELECTIONS:
            raise EfficiencyError(f"Unknown daughter selection '{daughter}', expected one of {DAUGHTER_SELECTIONS}")

        histogram, neg_axis, pos_axis = self._status_histogram(status)
        projection = histogram.project(axis, neg_axis, pos_axis)
        counts = projection.values()  # [axis bin, neg flag, pos flag], no flow

        n_total = counts.sum(axis=(1, 2))
        if daughter == "neg":
            n_pass = counts[:, 1, :].sum(axis=1)
        elif daughter == "pos":
            n_pass = counts[:, :, 1].sum(axis=1)
        elif daughter == "both":
            n_pass = counts[:, 1, 1]
        else:
            n_pass = n_total - counts[:, 0, 0]

        with np.errstate(divide="ignore", invalid="ignore"):
            efficiency = np.where(n_total > 0, n_pass / n_total, np.nan)
            uncertainty = np.where(n_total > 0, np.sqrt(efficiency * (1.0 - efficiency) / n_total), np.nan)

        edges = projection.axes[0].edges
        table = pd.DataFrame(
            {
                "bin_low": edges[:-1],
                "bin_high": edges[1:],
                "n_total": n_total,
                "n_pass": n_pass,
                "efficiency": efficiency,
                "uncertainty": uncertainty,
            }
        )

        total = n_total.sum()
        if total > 0:
            self.logger.info(
                f"{status.upper()} efficiency ({daughter}) vs {axis}: "
                f"integrated {n_pass.sum() / total:.4f} from {int(total)} candidates"
            )
        else:
            self.logger.warning(f"No candidates in {histogram.name}, {status} efficiency is undefined")
        return table

    def save_table(self, table: pd.DataFrame, output_path: str | Path) -> Path:
        """Write an efficiency table as CSV"""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(output_path, index=False)
        self.logger.info(f"Saved efficiency table to {output_path}")
        return output_path
