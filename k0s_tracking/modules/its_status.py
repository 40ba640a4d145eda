"""
ITS hit-pattern helpers for V0 daughter tracks.

The ITS cluster map stores one bit per layer; bits 0-2 are the three
inner-barrel layers closest to the interaction point.
"""

from __future__ import annotations

from .datatypes import Track

N_INNER_BARREL_LAYERS = 3


def count_inner_barrel_hits(its_cluster_map: int) -> int:
    """Number of inner-barrel layers (bits 0, 1, 2) with a cluster"""
    n_hits = 0
    for layer in range(N_INNER_BARREL_LAYERS):
        if its_cluster_map & (1 << layer):
            n_hits += 1
    return n_hits


def its_flags(pos_track: Track, neg_track: Track, legacy_pos_its_flag: bool = False) -> tuple[bool, bool]:
    """
    ITS-match flags of the daughters as (neg, pos).

    With legacy_pos_its_flag the positive slot carries the negative
    daughter's flag, as in the historical K0s tracking-efficiency output.
    """
    neg_has_its = bool(neg_track.has_its)
    pos_has_its = neg_has_its if legacy_pos_its_flag else bool(pos_track.has_its)
    return neg_has_its, pos_has_its
