"""
Histogram registry owned by an analysis task.

Dense histograms are ``hist.Hist`` objects. High-dimensional histograms
are stored sparsely (only filled bins), in the spirit of THnSparse: the
5-D status histograms have more than 10^7 bins, nearly all empty.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import Iterator, Sequence

import hist
import numpy as np
import uproot
import uproot.writing.identify as uproot_identify

from .exceptions import HistogramError

# Largest dense view (flow bins included) a projection may allocate
MAX_DENSE_BINS = 10**7


class SparseHistogram:
    """
    N-dimensional histogram storing only filled bins.

    Keys are tuples of ``axis.index`` values: -1 is the underflow bin and
    ``axis.size`` the overflow bin of each axis.
    """

    def __init__(self, name: str, title: str, axes: Sequence[hist.axis.Regular]) -> None:
        names = [axis.name for axis in axes]
        if len(set(names)) != len(names) or not all(names):
            raise HistogramError(f"Axes of sparse histogram '{name}' need unique, non-empty names: {names}")
        self.name = name
        self.title = title
        self.axes: tuple[hist.axis.Regular, ...] = tuple(axes)
        self.entries: int = 0
        self._bins: defaultdict[tuple[int, ...], float] = defaultdict(float)

    @property
    def ndim(self) -> int:
        return len(self.axes)

    @property
    def axis_names(self) -> tuple[str, ...]:
        return tuple(axis.name for axis in self.axes)

    def fill(self, *values: float, weight: float = 1.0) -> None:
        if len(values) != self.ndim:
            raise HistogramError(f"Histogram '{self.name}' expects {self.ndim} values, got {len(values)}")
        key = tuple(int(axis.index(float(value))) for axis, value in zip(self.axes, values))
        self._bins[key] += weight
        self.entries += 1

    def filled_bins(self) -> Iterator[tuple[tuple[int, ...], float]]:
        """Yield (bin index tuple, content) for every filled bin, in index order"""
        for key in sorted(self._bins):
            yield key, self._bins[key]

    @property
    def n_filled_bins(self) -> int:
        return len(self._bins)

    def sum(self, flow: bool = False) -> float:
        if flow:
            return float(sum(self._bins.values()))
        return float(
            sum(
                content
                for key, content in self._bins.items()
                if all(0 <= i < axis.size for i, axis in zip(key, self.axes))
            )
        )

    def project(self, *axis_names: str) -> hist.Hist:
        """
        Dense projection onto the named axes, flow bins included.

        Raises:
            HistogramError: If an axis name is unknown or repeated, or the
                dense result would exceed MAX_DENSE_BINS
        """
        if not axis_names:
            raise HistogramError(f"No axes given to project '{self.name}'")
        if len(set(axis_names)) != len(axis_names):
            raise HistogramError(f"Repeated axis in projection of '{self.name}': {axis_names}")
        positions = []
        for axis_name in axis_names:
            if axis_name not in self.axis_names:
                raise HistogramError(
                    f"Histogram '{self.name}' has no axis '{axis_name}' (axes: {self.axis_names})"
                )
            positions.append(self.axis_names.index(axis_name))

        n_bins = int(np.prod([self.axes[p].extent for p in positions]))
        if n_bins > MAX_DENSE_BINS:
            raise HistogramError(
                f"Projection of '{self.name}' onto {axis_names} needs {n_bins} dense bins "
                f"(limit {MAX_DENSE_BINS}); project onto fewer axes"
            )

        projection = hist.Hist(*(self.axes[p] for p in positions), storage=hist.storage.Double())
        view = projection.view(flow=True)
        for key, content in self._bins.items():
            view[tuple(key[p] + 1 for p in positions)] += content
        return projection

    def to_dense(self) -> hist.Hist:
        """All axes as a dense hist.Hist; only for histograms within MAX_DENSE_BINS"""
        return self.project(*self.axis_names)

    def to_arrays(self) -> dict[str, np.ndarray]:
        """
        Filled bins as flat columns: one bin-centre column per axis
        (±inf for underflow/overflow) and a 'weight' column.
        """
        columns: dict[str, list[float]] = {name: [] for name in self.axis_names}
        weights: list[float] = []
        for key, content in self.filled_bins():
            for index, axis in zip(key, self.axes):
                if index < 0:
                    center = -np.inf
                elif index >= axis.size:
                    center = np.inf
                else:
                    center = float(axis.centers[index])
                columns[axis.name].append(center)
            weights.append(content)

        arrays = {name: np.asarray(values, dtype=np.float64) for name, values in columns.items()}
        arrays["weight"] = np.asarray(weights, dtype=np.float64)
        return arrays


def labelled_th1(histogram: hist.Hist, labels: Sequence[str]):
    """
    Build a writable TH1D carrying bin labels on its x axis.

    uproot does not take labels from a Regular axis, so the TH1 is
    assembled from its parts. Storage is unweighted, so sumw2 = sumw.
    """
    axis = histogram.axes[0]
    contents = np.asarray(histogram.view(flow=True), dtype=np.float64)
    inner = contents[1:-1]
    centers = np.asarray(axis.centers, dtype=np.float64)

    x_axis = uproot_identify.to_TAxis(
        fName="xaxis",
        fTitle=axis.label or "",
        fNbins=axis.size,
        fXmin=float(axis.edges[0]),
        fXmax=float(axis.edges[-1]),
        fLabels=uproot_identify.to_THashList([uproot_identify.to_TObjString(label) for label in labels]),
    )
    return uproot_identify.to_TH1x(
        fName=histogram.name,
        fTitle=histogram.label or "",
        data=contents,
        fEntries=float(contents.sum()),
        fTsumw=float(inner.sum()),
        fTsumw2=float(inner.sum()),
        fTsumwx=float((inner * centers).sum()),
        fTsumwx2=float((inner * centers**2).sum()),
        fSumw2=contents.copy(),
        fXaxis=x_axis,
    )


class HistogramRegistry:
    """
    Named collection of histograms filled by an analysis task.

    Names may contain '/' to group histograms; the groups become ROOT
    directories on save.
    """

    def __init__(self, name: str = "K0sTrackingEfficiency") -> None:
        self.name = name
        self._histograms: dict[str, hist.Hist | SparseHistogram] = {}
        self._labels: dict[str, tuple[str, ...]] = {}
        self.logger = logging.getLogger("K0sTrackingEfficiency.HistogramRegistry")

    def add(
        self,
        name: str,
        title: str,
        axes: Sequence[hist.axis.Regular],
        sparse: bool = False,
        labels: Sequence[str] | None = None,
    ) -> hist.Hist | SparseHistogram:
        """
        Register a histogram.

        Args:
            name: Unique name, optionally with '/' separated groups
            title: Human-readable title
            axes: Histogram axes
            sparse: Store only filled bins
            labels: Bin labels of a dense 1-D histogram, written to the ROOT axis

        Returns:
            The new histogram

        Raises:
            HistogramError: If the name is already registered, or the labels
                do not match a dense 1-D axis
        """
        if name in self._histograms:
            raise HistogramError(f"Histogram '{name}' already registered in {self.name}")
        if not axes:
            raise HistogramError(f"Histogram '{name}' needs at least one axis")
        if labels is not None and (sparse or len(axes) != 1 or len(labels) != axes[0].size):
            raise HistogramError(f"Histogram '{name}': bin labels need a dense 1-D axis with {len(labels)} bins")

        if sparse:
            histogram = SparseHistogram(name, title, axes)
        else:
            histogram = hist.Hist(*axes, storage=hist.storage.Double(), name=name.split("/")[-1], label=title)
        self._histograms[name] = histogram
        if labels is not None:
            self._labels[name] = tuple(labels)
        return histogram

    def get(self, name: str) -> hist.Hist | SparseHistogram:
        try:
            return self._histograms[name]
        except KeyError:
            raise HistogramError(f"Histogram '{name}' not registered in {self.name}") from None

    def fill(self, name: str, *values: float, weight: float = 1.0) -> None:
        """
        Fill one entry.

        Raises:
            HistogramError: If the histogram is unknown or the number of
                values does not match its dimension
        """
        histogram = self.get(name)
        if isinstance(histogram, SparseHistogram):
            histogram.fill(*values, weight=weight)
            return
        if len(values) != histogram.ndim:
            raise HistogramError(f"Histogram '{name}' expects {histogram.ndim} values, got {len(values)}")
        histogram.fill(*(float(value) for value in values), weight=weight)

    def bin_labels(self, name: str) -> tuple[str, ...] | None:
        self.get(name)
        return self._labels.get(name)

    def names(self) -> list[str]:
        return list(self._histograms)

    def __contains__(self, name: str) -> bool:
        return name in self._histograms

    def __len__(self) -> int:
        return len(self._histograms)

    def save(self, path: str | Path) -> Path:
        """
        Write all histograms to a ROOT file.

        Dense histograms are written as TH1/TH2/TH3, with their bin labels
        when registered with some; sparse histograms as a TTree of filled
        bins (see SparseHistogram.to_arrays).
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with uproot.recreate(path) as file:
            for name, histogram in self._histograms.items():
                if isinstance(histogram, SparseHistogram):
                    arrays = histogram.to_arrays()
                    tree = file.mktree(name, {column: np.float64 for column in arrays}, title=histogram.title)
                    if histogram.n_filled_bins:
                        tree.extend(arrays)
                elif name in self._labels:
                    file[name] = labelled_th1(histogram, self._labels[name])
                else:
                    file[name] = histogram

        self.logger.info(f"Saved {len(self)} histograms to {path}")
        return path
