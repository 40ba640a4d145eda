"""
K0s tracking efficiency task

For every event: count it, apply the optional sel8 gate, select K0s
candidates and fill radius / pT / mass histograms cross-tabulated with the
ITS-match and inner-barrel hit status of both daughters.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

import hist

from .config import V0SelectionCuts
from .datatypes import Collision, Track, V0Candidate
from .histogram_registry import HistogramRegistry
from .its_status import count_inner_barrel_hits, its_flags
from .v0_selector import accept_v0

R_AXIS = hist.axis.Regular(100, 0.0, 10.0, name="R", label="R (cm)")
PT_AXIS = hist.axis.Regular(200, 0.0, 10.0, name="pT", label="p_{T} (GeV/c)")
MASS_AXIS = hist.axis.Regular(200, 0.4, 0.6, name="mass", label="m (GeV/c^{2})")
NHITS_AXIS = hist.axis.Regular(4, -0.5, 3.5, name="nhits", label="")

EVENT_COUNTER_LABELS = ("Total", "Selected")


def status_axis(name: str) -> hist.axis.Regular:
    return hist.axis.Regular(2, -0.5, 1.5, name=name, label="")


class K0sTrackingEfficiencyTask:
    """
    Per-event selection and histogram filling.

    Attributes:
        cuts: V0 selection thresholds
        registry: Histograms owned by this task
        legacy_pos_its_flag: Fill the positive ITS status with the negative
            daughter's flag, reproducing the historical output
    """

    def __init__(
        self,
        cuts: V0SelectionCuts,
        registry: HistogramRegistry | None = None,
        legacy_pos_its_flag: bool = False,
    ) -> None:
        self.cuts = cuts
        self.registry = registry if registry is not None else HistogramRegistry("K0sTrackingEfficiency")
        self.legacy_pos_its_flag = legacy_pos_its_flag
        self.logger = logging.getLogger("K0sTrackingEfficiency.Task")

        if legacy_pos_its_flag:
            self.logger.warning(
                "Legacy ITS status enabled: h_posITSStatus and the posITS axis of "
                "h5_RpTmassITSStatus carry the NEGATIVE daughter's ITS flag"
            )

        self.init()

    def init(self) -> None:
        """Register the histogram set"""
        registry = self.registry
        registry.add(
            "h_EventCounter",
            "Event counter",
            [hist.axis.Regular(2, -0.5, 1.5, name="counter", label="")],
            labels=EVENT_COUNTER_LABELS,
        )

        registry.add(
            "h5_RpTmassITSStatus",
            "h5_RpTmassITSStatus",
            [R_AXIS, PT_AXIS, MASS_AXIS, status_axis("negITS"), status_axis("posITS")],
            sparse=True,
        )
        registry.add(
            "h5_RpTmassIBStatus",
            "h5_RpTmassIBStatus",
            [R_AXIS, PT_AXIS, MASS_AXIS, status_axis("negIB"), status_axis("posIB")],
            sparse=True,
        )

        registry.add("Test/h_R", "h_R", [R_AXIS])
        registry.add("Test/h_pT", "h_pT", [PT_AXIS])
        registry.add("Test/h_mass", "h_mass", [MASS_AXIS])
        registry.add("Test/h_negITSStatus", "h_negITSStatus", [status_axis("status")])
        registry.add("Test/h_posITSStatus", "h_posITSStatus", [status_axis("status")])
        registry.add("Test/h_negIBStatus", "h_negIBStatus", [status_axis("status")])
        registry.add("Test/h_posIBStatus", "h_posIBStatus", [status_axis("status")])
        registry.add("Test/h_negIBhits", "h_negIBhits", [NHITS_AXIS])
        registry.add("Test/h_posIBhits", "h_posIBhits", [NHITS_AXIS])

    def accept_v0(self, v0: V0Candidate, pos_track: Track, neg_track: Track, collision: Collision) -> bool:
        return accept_v0(v0, pos_track, neg_track, collision, self.cuts)

    def process(
        self,
        collision: Collision,
        v0s: Iterable[V0Candidate],
        tracks: Mapping[int, Track] | Sequence[Track],
    ) -> None:
        """
        Process one event.

        Args:
            collision: The event's collision
            v0s: V0 candidates of this collision
            tracks: Index-addressable daughter tracks
        """
        registry = self.registry
        registry.fill("h_EventCounter", 0.0)
        if self.cuts.event_selection and not collision.sel8:
            return
        registry.fill("h_EventCounter", 1.0)

        for v0 in v0s:
            pos_track = tracks[v0.pos_track_id]
            neg_track = tracks[v0.neg_track_id]

            if not self.accept_v0(v0, pos_track, neg_track, collision):
                continue

            registry.fill("Test/h_R", v0.v0radius)
            registry.fill("Test/h_pT", v0.pt)
            registry.fill("Test/h_mass", v0.mass_k0s)

            neg_has_its, pos_has_its = its_flags(pos_track, neg_track, self.legacy_pos_its_flag)
            registry.fill("Test/h_negITSStatus", neg_has_its)
            registry.fill("Test/h_posITSStatus", pos_has_its)

            registry.fill("h5_RpTmassITSStatus", v0.v0radius, v0.pt, v0.mass_k0s, neg_has_its, pos_has_its)

            neg_ib_hits = count_inner_barrel_hits(neg_track.its_cluster_map)
            pos_ib_hits = count_inner_barrel_hits(pos_track.its_cluster_map)
            neg_has_ib = neg_ib_hits != 0
            pos_has_ib = pos_ib_hits != 0
            registry.fill("Test/h_negIBStatus", neg_has_ib)
            registry.fill("Test/h_posIBStatus", pos_has_ib)
            registry.fill("Test/h_negIBhits", neg_ib_hits)
            registry.fill("Test/h_posIBhits", pos_ib_hits)

            registry.fill("h5_RpTmassIBStatus", v0.v0radius, v0.pt, v0.mass_k0s, neg_has_ib, pos_has_ib)

    def event_counts(self) -> dict[str, int]:
        """{'Total': n, 'Selected': m}"""
        counts = self.registry.get("h_EventCounter").values()
        labels = self.registry.bin_labels("h_EventCounter")
        return {label: int(count) for label, count in zip(labels, counts)}
