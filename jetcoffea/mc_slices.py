"""Stitching of pT-hat sliced simulation samples.

Each slice is generated only inside ``[low, next_low)`` of the generator
momentum (pT-hat); the last slice is open above. Weighting every event by
``xsec / nevts`` of its slice turns raw counts into a rate-equivalent
quantity, so summing all slices reproduces one inclusive sample.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import numpy as np

from jetcoffea.errors import (
    ConfigurationError,
    InconsistencyToleranceExceeded,
    InconsistentSliceError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class McSliceDescriptor:
    index: int
    low: float
    high: float
    xsec: float
    nevts: int
    sample: str | None = None

    def __post_init__(self):
        if not self.low < self.high:
            raise ConfigurationError(
                f"pT-hat slice {self.index} has empty range [{self.low:g}, {self.high:g})."
            )
        if not self.xsec > 0:
            raise ConfigurationError(f"pT-hat slice {self.index} has non-positive cross section {self.xsec}.")
        if not self.nevts > 0:
            raise ConfigurationError(f"pT-hat slice {self.index} has non-positive event count {self.nevts}.")

    @property
    def weight(self) -> float:
        return self.xsec / self.nevts


class McSliceStitcher:
    """Per-event normalization weights for pT-hat slices."""

    def __init__(self, slices: Iterable[McSliceDescriptor]):
        slices = tuple(slices)
        if not slices:
            raise ConfigurationError("At least one pT-hat slice is required.")
        for pos, s in enumerate(slices):
            if s.index != pos:
                raise ConfigurationError(
                    f"pT-hat slices must be indexed 0..{len(slices) - 1} in order; "
                    f"position {pos} holds index {s.index}."
                )
        for prev, cur in zip(slices[:-1], slices[1:]):
            if prev.high != cur.low:
                raise ConfigurationError(
                    f"pT-hat slices {prev.index} [{prev.low:g}, {prev.high:g}) and "
                    f"{cur.index} [{cur.low:g}, {cur.high:g}) are not contiguous."
                )
        self._slices = slices
        self._lows = [s.low for s in slices]
        self._lows_arr = np.asarray(self._lows, dtype=np.float64)
        # Last slice has no upper bound.
        self._highs_arr = np.asarray([s.high for s in slices[:-1]] + [np.inf], dtype=np.float64)
        self._weights_arr = np.asarray([s.weight for s in slices], dtype=np.float64)
        logger.debug("pT-hat stitching over %d slices from %g GeV", len(slices), slices[0].low)

    @classmethod
    def from_config(cls, edges: Sequence[float], xsecs: Sequence[float], nevts: Sequence[int], samples=None):
        """Build from parallel lists; ``edges`` has one more entry than the slices."""
        n = len(xsecs)
        if len(edges) != n + 1 or len(nevts) != n or (samples is not None and len(samples) != n):
            raise ConfigurationError(
                f"pT-hat slice lists disagree: {len(edges)} edges, {n} cross sections, "
                f"{len(nevts)} event counts, {len(samples) if samples is not None else '-'} samples."
            )
        return cls(
            McSliceDescriptor(
                index=i,
                low=float(edges[i]),
                high=float(edges[i + 1]),
                xsec=float(xsecs[i]),
                nevts=int(nevts[i]),
                sample=samples[i] if samples is not None else None,
            )
            for i in range(n)
        )

    @property
    def slices(self) -> tuple[McSliceDescriptor, ...]:
        return self._slices

    def __len__(self):
        return len(self._slices)

    def slice_range(self, slice_index: int) -> tuple[float, float | None]:
        """``(low, high)`` owned by the slice; ``high`` is ``None`` for the last one."""
        s = self._slices[slice_index]
        last = slice_index == len(self._slices) - 1
        return s.low, (None if last else s.high)

    def slice_for(self, pthat: float) -> int | None:
        i = bisect.bisect_right(self._lows, pthat) - 1
        return None if i < 0 else i

    def slice_for_sample(self, sample: str) -> int | None:
        """Slice whose sample name appears in ``sample`` (a file or dataset name)."""
        if not sample:
            return None
        for s in self._slices:
            if s.sample and s.sample.removesuffix(".root") in sample:
                return s.index
        return None

    def weight(self, slice_index: int, pthat: float) -> float:
        """Return ``xsec / nevts`` for the slice, checking that ``pthat`` belongs to it."""
        if not 0 <= slice_index < len(self._slices):
            raise InconsistentSliceError(slice_index, pthat)
        low, high = self.slice_range(slice_index)
        if not (pthat >= low and (high is None or pthat < high)):
            raise InconsistentSliceError(slice_index, pthat, low, high)
        return self._slices[slice_index].weight

    def weight_array(self, slice_index: int, pthats):
        """Chunk version of :meth:`weight` for events claimed by one slice.

        Returns ``(weights, consistent)``; inconsistent entries have weight
        0 and ``consistent == False`` and must be dropped by the caller.
        """
        if not 0 <= slice_index < len(self._slices):
            raise InconsistentSliceError(slice_index, None)
        pthats = np.asarray(pthats, dtype=np.float64)
        low = self._lows_arr[slice_index]
        high = self._highs_arr[slice_index]
        consistent = (pthats >= low) & (pthats < high)
        weights = np.where(consistent, self._weights_arr[slice_index], 0.0)
        return weights, consistent


class InconsistencyMonitor:
    """Escalate when inconsistent slice assignments stop being rare.

    Counts accumulate across chunks; once ``min_events`` were seen, an
    inconsistent fraction above ``tolerance`` raises.
    """

    def __init__(self, tolerance: float = 1e-3, min_events: int = 1000):
        self.tolerance = float(tolerance)
        self.min_events = int(min_events)
        self.total = 0
        self.inconsistent = 0

    @classmethod
    def from_config(cls, spec: Mapping):
        return cls(spec.get("tolerance", 1e-3), spec.get("min_events", 1000))

    @property
    def fraction(self) -> float:
        return self.inconsistent / self.total if self.total else 0.0

    def record(self, n_total: int, n_inconsistent: int, label: str = "") -> None:
        self.total += int(n_total)
        self.inconsistent += int(n_inconsistent)
        if n_inconsistent:
            logger.warning(
                "%d of %d events in %s have pT-hat outside their slice; dropped.",
                n_inconsistent, n_total, label or "chunk",
            )
        if self.total >= self.min_events and self.fraction > self.tolerance:
            raise InconsistencyToleranceExceeded(
                f"{self.inconsistent} of {self.total} events ({self.fraction:.3%}) had inconsistent "
                f"pT-hat slice assignments; tolerance is {self.tolerance:.3%}. Inputs look corrupted."
            )
