"""Calibration periods (intervals of validity) keyed by run number."""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping

import numpy as np

from jetcoffea.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationPeriod:
    name: str
    first: int
    last: int

    def __post_init__(self):
        if self.first > self.last:
            raise ConfigurationError(
                f"Calibration period '{self.name}' has first run {self.first} after last run {self.last}."
            )

    def __contains__(self, run) -> bool:
        return self.first <= run <= self.last


class CalibrationPeriodResolver:
    """Map run numbers to calibration-period names.

    Periods are sorted by their first run and must not overlap. A run in a
    gap between two periods is not covered; ``resolve`` returns ``None`` and
    the caller decides what that means (normally: drop the event).
    """

    def __init__(self, periods: Iterable[CalibrationPeriod]):
        ordered = sorted(periods, key=lambda p: p.first)
        if not ordered:
            raise ConfigurationError("At least one calibration period is required.")
        names = [p.name for p in ordered]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate calibration period names: {names}")
        for prev, cur in zip(ordered[:-1], ordered[1:]):
            if cur.first <= prev.last:
                raise ConfigurationError(
                    f"Calibration periods '{prev.name}' [{prev.first}, {prev.last}] and "
                    f"'{cur.name}' [{cur.first}, {cur.last}] overlap."
                )
        self._periods = tuple(ordered)
        self._firsts = [p.first for p in ordered]
        self._firsts_arr = np.asarray(self._firsts, dtype=np.int64)
        self._lasts_arr = np.asarray([p.last for p in ordered], dtype=np.int64)
        logger.debug("Calibration periods: %s", ", ".join(names))

    @classmethod
    def from_mapping(cls, spec: Mapping) -> "CalibrationPeriodResolver":
        """Build from ``{name: [first, last], ...}``."""
        return cls(CalibrationPeriod(name, int(rng[0]), int(rng[1])) for name, rng in spec.items())

    @property
    def periods(self) -> tuple[CalibrationPeriod, ...]:
        return self._periods

    @property
    def names(self) -> list[str]:
        return [p.name for p in self._periods]

    def period(self, name: str) -> CalibrationPeriod:
        for p in self._periods:
            if p.name == name:
                return p
        raise KeyError(name)

    def _index(self, run) -> int:
        i = bisect.bisect_right(self._firsts, run) - 1
        if i < 0 or run > self._periods[i].last:
            return -1
        return i

    def resolve(self, run_number: int) -> str | None:
        """Return the period covering ``run_number``, or ``None`` if not covered."""
        i = self._index(run_number)
        return None if i < 0 else self._periods[i].name

    def resolve_array(self, runs) -> np.ndarray:
        """Period index per run (positions in :attr:`names`), ``-1`` if not covered."""
        runs = np.asarray(runs, dtype=np.int64)
        idx = np.searchsorted(self._firsts_arr, runs, side="right") - 1
        safe = np.clip(idx, 0, len(self._periods) - 1)
        covered = (idx >= 0) & (runs <= self._lasts_arr[safe])
        return np.where(covered, idx, -1).astype(np.int64)


def correction_set_name(global_tag, version, period=None, is_mc=False):
    """Name of the jet-energy-correction payload that applies.

    ``Summer16_03Feb2017`` + ``V9`` + ``BCD`` -> ``Summer16_03Feb2017BCD_V9_DATA``.
    Simulation never carries a period: ``Summer16_03Feb2017_V9_MC``.
    """
    version = version if version.startswith("_") else f"_{version}"
    if is_mc:
        return f"{global_tag}{version}_MC"
    return f"{global_tag}{period or ''}{version}_DATA"
