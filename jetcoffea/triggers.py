"""Trigger stitching with luminosity weighting.

Each single-jet trigger owns one momentum region ``[low, high)``; the regions
are contiguous and the last one is open-ended. A jet is counted only through
the trigger that owns its momentum, and only if that trigger fired. There is
no fallback to a lower-threshold trigger: one trigger of record per region
keeps the combined spectrum free of double counting.

Lower-threshold triggers are prescaled, so they record less luminosity than
the unprescaled reference trigger. With luminosity weighting enabled the
accepted jet gets ``lumi(reference) / lumi(owner)``.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Mapping, NamedTuple, Sequence

import numpy as np

from jetcoffea.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Trigger luminosities are stored in /ub.
UB_PER_FB = 1.0e9


@dataclass(frozen=True)
class TriggerDescriptor:
    name: str
    threshold: float
    low: float
    high: float
    lumi: float
    hlt_path: str | None = None

    def __post_init__(self):
        if not self.low < self.high:
            raise ConfigurationError(
                f"Trigger '{self.name}' has empty range [{self.low:g}, {self.high:g})."
            )
        if not self.lumi > 0:
            raise ConfigurationError(f"Trigger '{self.name}' has non-positive luminosity {self.lumi}.")


class TriggerSelection(NamedTuple):
    trigger: TriggerDescriptor
    weight: float


class TriggerStitcher:
    """Choose the trigger of record for a jet momentum."""

    def __init__(
        self,
        triggers: Iterable[TriggerDescriptor],
        reference: str | None = None,
        use_lumi_weights: bool = True,
    ):
        ordered = sorted(triggers, key=lambda t: t.threshold)
        if not ordered:
            raise ConfigurationError("At least one trigger is required.")
        names = [t.name for t in ordered]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate trigger names: {names}")
        for prev, cur in zip(ordered[:-1], ordered[1:]):
            if prev.threshold == cur.threshold:
                raise ConfigurationError(
                    f"Triggers '{prev.name}' and '{cur.name}' share threshold {cur.threshold:g}."
                )
            if prev.high != cur.low:
                kind = "gap" if prev.high < cur.low else "overlap"
                raise ConfigurationError(
                    f"Trigger ranges have a {kind} between '{prev.name}' "
                    f"[{prev.low:g}, {prev.high:g}) and '{cur.name}' [{cur.low:g}, {cur.high:g})."
                )

        top = ordered[-1]
        if reference is not None and reference != top.name:
            raise ConfigurationError(
                f"Reference trigger '{reference}' must be the highest-threshold trigger '{top.name}'."
            )

        self._triggers = tuple(ordered)
        self._lows = [t.low for t in ordered]
        self._lows_arr = np.asarray(self._lows, dtype=np.float64)
        self._by_name = {t.name: i for i, t in enumerate(ordered)}
        self.use_lumi_weights = bool(use_lumi_weights)
        if self.use_lumi_weights:
            self._weights = tuple(top.lumi / t.lumi for t in ordered)
        else:
            self._weights = tuple(1.0 for _ in ordered)
        self._weights_arr = np.asarray(self._weights, dtype=np.float64)
        logger.debug(
            "Trigger stitching over %s (reference %s, lumi weights %s)",
            ", ".join(names), top.name, "on" if self.use_lumi_weights else "off",
        )

    @classmethod
    def from_config(cls, entries: Sequence[Mapping], reference=None, use_lumi_weights=True):
        """Build from the list of trigger dicts in the YAML configuration."""
        triggers = [
            TriggerDescriptor(
                name=e["name"],
                threshold=float(e["threshold"]),
                low=float(e["range"][0]),
                high=float(e["range"][1]),
                lumi=float(e["lumi"]),
                hlt_path=e.get("hlt_path"),
            )
            for e in entries
        ]
        return cls(triggers, reference=reference, use_lumi_weights=use_lumi_weights)

    @property
    def triggers(self) -> tuple[TriggerDescriptor, ...]:
        return self._triggers

    @property
    def names(self) -> list[str]:
        return [t.name for t in self._triggers]

    @property
    def reference(self) -> TriggerDescriptor:
        return self._triggers[-1]

    @property
    def luminosity_fb(self) -> float:
        """Unprescaled luminosity of the reference trigger in /fb."""
        return self.reference.lumi / UB_PER_FB

    def domain_edges(self) -> tuple[float, ...]:
        """Lower edges of every region plus the closing sentinel."""
        return (*self._lows, self._triggers[-1].high)

    def weight_for(self, name: str) -> float:
        return self._weights[self._by_name[name]]

    def _owner_index(self, momentum) -> int:
        if math.isnan(momentum):
            return -1
        # The last region is open-ended, so anything above its low edge belongs to it.
        return bisect.bisect_right(self._lows, momentum) - 1

    def owner(self, momentum: float) -> TriggerDescriptor | None:
        """Trigger whose momentum region contains ``momentum``."""
        i = self._owner_index(momentum)
        return None if i < 0 else self._triggers[i]

    def select(self, momentum: float, fired) -> TriggerSelection | None:
        """Return the trigger of record and its weight, or ``None`` if rejected.

        ``fired`` is any container of trigger names supporting ``in``.
        """
        i = self._owner_index(momentum)
        if i < 0:
            return None
        trig = self._triggers[i]
        if trig.name not in fired:
            return None
        return TriggerSelection(trig, self._weights[i])

    def owner_index_array(self, momenta) -> np.ndarray:
        momenta = np.asarray(momenta, dtype=np.float64)
        idx = np.searchsorted(self._lows_arr, momenta, side="right") - 1
        return np.where(np.isnan(momenta), -1, idx).astype(np.int64)

    def select_array(self, momenta, fired: Mapping[str, np.ndarray]):
        """Vectorized :meth:`select`.

        ``fired`` maps trigger name to a boolean array aligned with
        ``momenta``; triggers missing from the mapping count as not fired.
        Returns ``(trigger_index, weight)`` with ``-1`` and ``0.0`` for
        rejected entries. ``trigger_index`` points into :attr:`triggers`.
        """
        momenta = np.asarray(momenta, dtype=np.float64)
        n = len(momenta)
        owner = self.owner_index_array(momenta)
        fired_matrix = np.zeros((len(self._triggers), n), dtype=bool)
        for name, i in self._by_name.items():
            if name in fired:
                fired_matrix[i] = np.asarray(fired[name], dtype=bool)
        safe = np.clip(owner, 0, len(self._triggers) - 1)
        accepted = (owner >= 0) & fired_matrix[safe, np.arange(n)]
        index = np.where(accepted, owner, -1).astype(np.int64)
        weight = np.where(accepted, self._weights_arr[safe], 0.0)
        return index, weight
