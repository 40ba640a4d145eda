from __future__ import annotations

import logging

import awkward as ak
import numpy as np

from .config import V0SelectionCuts
from .datatypes import Collision, Track, V0Candidate


def accept_v0(
    v0: V0Candidate,
    pos_track: Track,
    neg_track: Track,
    collision: Collision,
    cuts: V0SelectionCuts,
) -> bool:
    """
    Apply the K0s candidate selection, stopping at the first failed cut.

    1. cos(PA) w.r.t. the collision vertex not below v0cospa (an undefined
       angle is not below any threshold and passes)
    2. |y(K0s)| <= rapidity
    3. both daughters have a TPC measurement
    4. both daughters have TPC nσ(π) <= nSigTPC (no lower bound)
    """
    cos_pa = v0.cos_pa(collision.pos_x, collision.pos_y, collision.pos_z)
    if cos_pa < cuts.v0cospa:
        return False
    if abs(v0.rapidity_k0s) > cuts.rapidity:
        return False

    if not pos_track.has_tpc or not neg_track.has_tpc:
        return False
    if pos_track.tpc_nsigma_pi > cuts.n_sigma_tpc or neg_track.tpc_nsigma_pi > cuts.n_sigma_tpc:
        return False
    return True


def cos_pa_array(v0s: ak.Array) -> np.ndarray:
    """Column-wise cos(PA) of joined V0s (needs pv_x/pv_y/pv_z, see DataManager.join_daughters)"""
    x, y, z, pv_x, pv_y, pv_z, px, py, pz = (
        ak.to_numpy(v0s[c]).astype(np.float64) for c in ("x", "y", "z", "pv_x", "pv_y", "pv_z", "px", "py", "pz")
    )
    dx, dy, dz = x - pv_x, y - pv_y, z - pv_z
    norm = np.sqrt((dx**2 + dy**2 + dz**2) * (px**2 + py**2 + pz**2))
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(norm > 0, (dx * px + dy * py + dz * pz) / norm, np.nan)


class V0Selector:
    """
    Apply the K0s candidate selection to whole arrays of joined V0s.

    Same cuts as accept_v0, used for cut-flow bookkeeping.

    Attributes:
        cuts: V0 selection thresholds
    """

    def __init__(self, cuts: V0SelectionCuts) -> None:
        self.cuts: V0SelectionCuts = cuts
        self.logger = logging.getLogger("K0sTrackingEfficiency.V0Selector")

    def cut_masks(self, v0s: ak.Array) -> dict[str, np.ndarray]:
        """
        Per-cut boolean masks, in application order.

        Args:
            v0s: V0s joined with their collision and daughters

        Returns:
            Ordered dictionary cut name -> mask of candidates passing that cut
        """
        cos_pa = cos_pa_array(v0s)

        return {
            "cos_pa": ~(cos_pa < self.cuts.v0cospa),
            "rapidity": ~(np.abs(ak.to_numpy(v0s["rapidity_k0s"]).astype(np.float64)) > self.cuts.rapidity),
            "has_tpc": ak.to_numpy(v0s["pos_has_tpc"] & v0s["neg_has_tpc"]).astype(bool),
            "tpc_nsigma_pi": (
                ~(ak.to_numpy(v0s["pos_tpc_nsigma_pi"]).astype(np.float64) > self.cuts.n_sigma_tpc)
                & ~(ak.to_numpy(v0s["neg_tpc_nsigma_pi"]).astype(np.float64) > self.cuts.n_sigma_tpc)
            ),
        }

    def selection_mask(self, v0s: ak.Array) -> np.ndarray:
        """Candidates passing all cuts"""
        mask = np.ones(len(v0s), dtype=bool)
        for cut_mask in self.cut_masks(v0s).values():
            mask &= cut_mask
        return mask

    def apply_v0_cuts(self, v0s: ak.Array) -> ak.Array:
        """
        Apply all V0 selection cuts.

        Args:
            v0s: V0s joined with their collision and daughters

        Returns:
            Filtered awkward array containing only accepted candidates
        """
        mask = self.selection_mask(v0s)
        n_before = len(v0s)
        n_after = int(np.sum(mask))
        if n_before:
            self.logger.info(f"V0 selection: {n_before} → {n_after} ({100 * n_after / n_before:.1f}%)")
        return v0s[mask]

    def cut_flow(self, v0s: ak.Array, event_selection_mask: np.ndarray | None = None) -> dict[str, int]:
        """
        Cumulative number of candidates surviving each cut.

        Args:
            v0s: V0s joined with their collision and daughters
            event_selection_mask: Optional per-V0 event gate applied first

        Returns:
            Dictionary starting with 'all' followed by one entry per cut
        """
        mask = np.ones(len(v0s), dtype=bool)
        flow = {"all": len(v0s)}
        if event_selection_mask is not None:
            mask &= event_selection_mask
            flow["event_selection"] = int(np.sum(mask))
        for name, cut_mask in self.cut_masks(v0s).items():
            mask &= cut_mask
            flow[name] = int(np.sum(mask))
        return flow
