"""
Module for creating plots for the K0s tracking efficiency analysis

Example usage:
    plotter = EfficiencyPlotter(output_dir="output/plots")

    # Candidate distributions after selection
    plotter.plot_distributions(registry)

    # Efficiency versus pT
    table = EfficiencyCalculator(registry).calculate_efficiency("its", "pT", "both")
    plotter.plot_efficiency(table, "its_efficiency_pT", xlabel=r"$p_{T}$ (GeV/$c$)")
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path

import matplotlib
import matplotlib.pyplot as plt
import mplhep as hep
import numpy as np
import pandas as pd

from .histogram_registry import HistogramRegistry

# Suppress all font-related warnings
warnings.filterwarnings("ignore", category=UserWarning, module="matplotlib")
logging.getLogger("matplotlib.font_manager").setLevel(logging.ERROR)

matplotlib.use("Agg")
plt.style.use(hep.style.ALICE)

# Override any font settings from the style
matplotlib.rcParams["font.family"] = "sans-serif"
matplotlib.rcParams["font.sans-serif"] = ["DejaVu Sans", "Arial", "Helvetica", "sans-serif"]

DISTRIBUTIONS = {
    "Test/h_R": r"$R$ (cm)",
    "Test/h_pT": r"$p_{T}$ (GeV/$c$)",
    "Test/h_mass": r"$m_{\pi^{+}\pi^{-}}$ (GeV/$c^{2}$)",
    "Test/h_negIBhits": "Inner-barrel hits (negative daughter)",
    "Test/h_posIBhits": "Inner-barrel hits (positive daughter)",
}


class EfficiencyPlotter:
    """Class for plotting candidate distributions and efficiency curves"""

    def __init__(self, output_dir: str | Path) -> None:
        """
        Initialize with output directory

        Parameters:
        - output_dir: Directory to save plots
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger("K0sTrackingEfficiency.EfficiencyPlotter")

    def plot_distributions(self, registry: HistogramRegistry) -> list[Path]:
        """Plot the 1-D candidate distributions, one PDF per histogram"""
        paths = []
        for name, xlabel in DISTRIBUTIONS.items():
            if name not in registry:
                self.logger.warning(f"Histogram {name} not found, skipping plot")
                continue
            histogram = registry.get(name)

            fig, ax = plt.subplots(figsize=(10, 7))
            hep.histplot(histogram, ax=ax, histtype="step", yerr=True, color="black")
            ax.set_xlabel(xlabel)
            ax.set_ylabel("Candidates")
            ax.set_ylim(bottom=0)

            paths.append(self._save(fig, name.split("/")[-1]))
        return paths

    def plot_efficiency(
        self,
        table: pd.DataFrame,
        filename: str,
        xlabel: str = "",
        ylabel: str = "Efficiency",
        label: str | None = None,
    ) -> Path:
        """
        Plot an efficiency table from EfficiencyCalculator

        Parameters:
        - table: DataFrame with bin_low, bin_high, efficiency, uncertainty
        - filename: Base filename (without extension)
        - xlabel, ylabel: Axis labels
        - label: Legend entry
        """
        filled = table[np.isfinite(table["efficiency"])]
        centers = 0.5 * (filled["bin_low"] + filled["bin_high"])
        half_widths = 0.5 * (filled["bin_high"] - filled["bin_low"])

        fig, ax = plt.subplots(figsize=(10, 7))
        ax.errorbar(
            centers,
            filled["efficiency"],
            xerr=half_widths,
            yerr=filled["uncertainty"],
            fmt="o",
            color="black",
            markersize=4,
            label=label,
        )
        ax.set_xlabel(xlabel)
        ax.set_ylabel(ylabel)
        ax.set_ylim(0.0, 1.1)
        if label:
            ax.legend(loc="lower right")

        return self._save(fig, filename)

    def _save(self, fig: plt.Figure, filename: str) -> Path:
        path = self.output_dir / f"{filename}.pdf"
        fig.savefig(path, bbox_inches="tight")
        plt.close(fig)
        self.logger.info(f"Saved plot to {path}")
        return path
