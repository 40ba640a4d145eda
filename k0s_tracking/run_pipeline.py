#!/usr/bin/env python3
"""
Pipeline for the K0s tracking efficiency analysis

Phases:
  1. Configuration loading and validation
  2. Per time frame: cut-flow bookkeeping and the per-event task
  3. Save histograms (AnalysisResults.root)
  4. Efficiency tables (CSV) and plots

Usage:
  k0s-tracking-efficiency --input AO2D.root [--output-dir output] [--max-events N]
  python -m k0s_tracking.run_pipeline --config-dir ./config --no-event-selection
"""

from __future__ import annotations

import argparse
import itertools
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

import awkward as ak
import numpy as np
from tqdm import tqdm

from k0s_tracking.modules.config import TOMLConfig
from k0s_tracking.modules.data_handler import DataManager
from k0s_tracking.modules.efficiency_calculator import PROJECTION_AXES, STATUS_HISTOGRAMS, EfficiencyCalculator
from k0s_tracking.modules.exceptions import AnalysisError
from k0s_tracking.modules.plotter import EfficiencyPlotter
from k0s_tracking.modules.tracking_efficiency_task import K0sTrackingEfficiencyTask
from k0s_tracking.modules.v0_selector import V0Selector
from k0s_tracking.utils.logging_config import get_tqdm_kwargs, setup_logging, suppress_warnings

AXIS_LABELS = {
    "R": r"$R$ (cm)",
    "pT": r"$p_{T}$ (GeV/$c$)",
    "mass": r"$m_{\pi^{+}\pi^{-}}$ (GeV/$c^{2}$)",
}


class PipelineManager:
    """
    Runs the K0s tracking efficiency task over all input files and writes
    histograms, efficiency tables and plots.
    """

    def __init__(
        self,
        config_dir: str | Path | None = None,
        input_files: Sequence[str | Path] | None = None,
        output_dir: str | Path | None = None,
        cut_overrides: dict[str, Any] | None = None,
        legacy_pos_its_flag: bool | None = None,
    ) -> None:
        """
        Initialize pipeline manager.

        Args:
            config_dir: Configuration directory (packaged defaults if None)
            input_files: Input ROOT files, overriding data.toml
            output_dir: Output base directory, overriding data.toml
            cut_overrides: V0SelectionCuts field overrides (None values ignored)
            legacy_pos_its_flag: Overrides selection.toml [its_status]
        """
        self.logger = logging.getLogger("K0sTrackingEfficiency.Pipeline")
        self.config = TOMLConfig(config_dir)
        self.cuts = self.config.get_v0_cuts().with_overrides(**(cut_overrides or {}))
        if legacy_pos_its_flag is None:
            legacy_pos_its_flag = self.config.get_legacy_pos_its_flag()

        self.paths = self.config.get_output_paths(output_dir)
        self.data_manager = DataManager(self.config, files=input_files)
        self.selector = V0Selector(self.cuts)
        self.task = K0sTrackingEfficiencyTask(self.cuts, legacy_pos_its_flag=legacy_pos_its_flag)

        self.logger.info(
            f"V0 selection: cosPA >= {self.cuts.v0cospa}, |y| <= {self.cuts.rapidity}, "
            f"nσ(π) <= {self.cuts.n_sigma_tpc}, event selection {'on' if self.cuts.event_selection else 'off'}"
        )
        self._setup_output_dirs()

    def _setup_output_dirs(self) -> None:
        """Create all output directories"""
        for key in ("base_dir", "tables_dir", "plots_dir"):
            self.paths[key].mkdir(parents=True, exist_ok=True)

    def run(self, max_events: int | None = None, make_plots: bool = True) -> dict[str, Any]:
        """
        Process all events and write the outputs.

        Args:
            max_events: Stop after this many collisions (all if None)
            make_plots: Produce PDF plots

        Returns:
            Summary with event counts, cut flow and written files
        """
        n_events = 0
        cut_flow: dict[str, int] = {}

        for frame in self.data_manager.iter_frames():
            n_frame = len(frame.collisions)
            if max_events is not None:
                n_frame = min(n_frame, max_events - n_events)
                if n_frame <= 0:
                    break

            joined = self.data_manager.join_daughters(frame)
            joined = joined[ak.to_numpy(joined["collision_id"]) < n_frame]
            event_mask = ak.to_numpy(joined["sel8"]).astype(bool) if self.cuts.event_selection else None
            for step, count in self.selector.cut_flow(joined, event_mask).items():
                cut_flow[step] = cut_flow.get(step, 0) + count

            events = itertools.islice(self.data_manager.events_in_frame(frame), n_frame)
            for collision, v0s, tracks in tqdm(events, total=n_frame, **get_tqdm_kwargs(frame.label)):
                self.task.process(collision, v0s, tracks)
            n_events += n_frame

        event_counts = self.task.event_counts()
        self._log_summary(event_counts, cut_flow)

        histograms_file = self.task.registry.save(self.paths["histograms_file"])
        tables = self._write_efficiency_tables(make_plots)

        return {
            "events": event_counts,
            "cut_flow": cut_flow,
            "histograms_file": histograms_file,
            "tables": tables,
            "plots_dir": self.paths["plots_dir"] if make_plots else None,
        }

    def _log_summary(self, event_counts: dict[str, int], cut_flow: dict[str, int]) -> None:
        self.logger.info(f"Events: {event_counts['Total']} total, {event_counts['Selected']} selected")
        if not cut_flow:
            self.logger.warning("No V0 candidates found in the input")
            return
        n_all = cut_flow["all"]
        for step, count in cut_flow.items():
            fraction = 100 * count / n_all if n_all else np.nan
            self.logger.info(f"  {step:<16s} {count:>10d} ({fraction:5.1f}%)")

    def _write_efficiency_tables(self, make_plots: bool) -> list[Path]:
        calculator = EfficiencyCalculator(self.task.registry)
        plotter = None
        if make_plots:
            plotter = EfficiencyPlotter(self.paths["plots_dir"])
            plotter.plot_distributions(self.task.registry)

        tables = []
        for status in STATUS_HISTOGRAMS:
            for axis in PROJECTION_AXES:
                table = calculator.calculate_efficiency(status, axis, "both")
                name = f"{status}_efficiency_{axis}"
                tables.append(calculator.save_table(table, self.paths["tables_dir"] / f"{name}.csv"))
                if plotter is not None:
                    plotter.plot_efficiency(table, name, xlabel=AXIS_LABELS[axis])
        return tables


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="K0s tracking efficiency versus ITS hit pattern",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with the packaged configuration on one file
  k0s-tracking-efficiency --input AO2D.root

  # Looser pointing-angle cut, no sel8 requirement
  k0s-tracking-efficiency --input AO2D.root --v0cospa 0.99 --no-event-selection

  # Reproduce historical histograms (positive ITS flag copied from negative)
  k0s-tracking-efficiency --input AO2D.root --legacy-pos-its-flag
        """,
    )
    parser.add_argument("--config-dir", default=None, help="Directory with the TOML configuration")
    parser.add_argument("--input", nargs="+", default=None, help="Input ROOT file(s), overrides data.toml")
    parser.add_argument("--output-dir", default=None, help="Output directory, overrides data.toml")
    parser.add_argument("--max-events", type=int, default=None, help="Process at most this many collisions")
    parser.add_argument("--v0cospa", type=float, default=None, help="Minimum V0 cosine of pointing angle")
    parser.add_argument("--rapidity", type=float, default=None, help="Maximum |y(K0s)|")
    parser.add_argument("--nsigma-tpc", type=float, default=None, help="Maximum TPC nsigma(pi) of both daughters")
    parser.add_argument("--no-event-selection", action="store_true", help="Do not require sel8")
    parser.add_argument(
        "--legacy-pos-its-flag",
        action="store_true",
        default=None,
        help="Fill the positive daughter ITS status with the negative daughter's flag",
    )
    parser.add_argument("--no-plots", action="store_true", help="Skip PDF plots")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", type=str, default=None, help="Also write the log to this file")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logger = setup_logging(args.verbose, log_file=args.log_file)
    suppress_warnings()

    try:
        pipeline = PipelineManager(
            config_dir=args.config_dir,
            input_files=args.input,
            output_dir=args.output_dir,
            cut_overrides={
                "v0cospa": args.v0cospa,
                "rapidity": args.rapidity,
                "n_sigma_tpc": args.nsigma_tpc,
                "event_selection": False if args.no_event_selection else None,
            },
            legacy_pos_its_flag=args.legacy_pos_its_flag,
        )
        summary = pipeline.run(max_events=args.max_events, make_plots=not args.no_plots)
    except AnalysisError as e:
        logger.error(f"Analysis failed: {e}")
        return 1

    logger.info(f"Histograms written to {summary['histograms_file']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
