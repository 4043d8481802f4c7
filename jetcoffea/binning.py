"""Bin-edge tables and bin lookup.

Every table is a strictly increasing sequence of edges defining half-open
bins ``[edge[i], edge[i+1])``. A table flagged ``open_upper`` treats its last
edge as a +infinity sentinel, so values at or above it land in the last bin.
Otherwise such values are out of range. Lookups never clamp below the first
edge.

Tables are declared with a symmetry convention (``symmetric`` for signed
pseudorapidity, ``positive`` for |eta| or momentum). The catalog records the
convention but never applies ``abs()`` on the caller's behalf.
"""

from __future__ import annotations

import bisect
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import numpy as np

from jetcoffea.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONVENTIONS = ("symmetric", "positive")


@dataclass(frozen=True)
class BinEdges:
    name: str
    edges: tuple[float, ...]
    convention: str = "positive"
    open_upper: bool = False

    def __post_init__(self):
        edges = tuple(float(e) for e in self.edges)
        object.__setattr__(self, "edges", edges)
        if len(edges) < 2:
            raise ConfigurationError(f"Binning '{self.name}' needs at least 2 edges, got {len(edges)}.")
        for i, (lo, hi) in enumerate(zip(edges[:-1], edges[1:])):
            if not lo < hi:
                raise ConfigurationError(
                    f"Binning '{self.name}' is not strictly increasing at index {i}: {lo:g} >= {hi:g}."
                )
        if self.convention not in CONVENTIONS:
            raise ConfigurationError(
                f"Binning '{self.name}' has unknown convention '{self.convention}'. "
                f"Valid: {CONVENTIONS}"
            )

    @property
    def nbins(self) -> int:
        return len(self.edges) - 1

    @property
    def low(self) -> float:
        return self.edges[0]

    @property
    def high(self) -> float:
        return self.edges[-1]

    def bin_index(self, value: float) -> int | None:
        """Return the bin holding ``value``, or ``None`` when out of range."""
        if math.isnan(value):
            return None
        i = bisect.bisect_right(self.edges, value) - 1
        if i < 0:
            return None
        if i >= self.nbins:
            return self.nbins - 1 if self.open_upper else None
        return i

    def bin_index_array(self, values) -> np.ndarray:
        """Vectorized :meth:`bin_index`; out-of-range entries are ``-1``."""
        values = np.asarray(values, dtype=np.float64)
        idx = np.searchsorted(np.asarray(self.edges), values, side="right") - 1
        if self.open_upper:
            idx = np.where(idx >= self.nbins, self.nbins - 1, idx)
        else:
            idx = np.where(idx >= self.nbins, -1, idx)
        # NaN sorts past the end; never give it a bin.
        idx = np.where(np.isnan(values), -1, idx)
        return idx.astype(np.int64)


class EtaSliceTable:
    """Momentum binning that varies per |eta| slice.

    ``slices`` holds the slice boundaries (e.g. 0.0, 0.5, ..., 4.0) and
    ``rows[k]`` the momentum edges used inside slice ``k``. Rows may have
    different lengths.
    """

    def __init__(self, name: str, slices: BinEdges, rows: Sequence[BinEdges]):
        if len(rows) != slices.nbins:
            raise ConfigurationError(
                f"Eta-slice table '{name}' has {len(rows)} rows for {slices.nbins} eta slices."
            )
        self.name = name
        self.slices = slices
        self.rows = tuple(rows)

    @classmethod
    def from_rows(cls, name, slice_edges, rows, *, open_upper=False):
        slices = BinEdges(f"{name}:eta", slice_edges, convention="positive")
        row_edges = [
            BinEdges(f"{name}[{k}]", row, convention="positive", open_upper=open_upper)
            for k, row in enumerate(rows)
        ]
        return cls(name, slices, row_edges)

    @classmethod
    def from_padded(cls, name, slice_edges, padded_rows, *, lengths=None, open_upper=False):
        """Build from fixed-width rows padded with trailing zeros.

        A row's length is ``lengths[k]`` when given, otherwise the position of
        the first zero after index 0, or the full width when none is present.
        """
        rows = []
        for k, row in enumerate(padded_rows):
            if lengths is not None:
                n = int(lengths[k])
            else:
                n = len(row)
                for j in range(1, len(row)):
                    if row[j] == 0:
                        n = j
                        break
            rows.append(tuple(row[:n]))
        return cls.from_rows(name, slice_edges, rows, open_upper=open_upper)

    def row(self, eta_index: int) -> BinEdges:
        if not 0 <= eta_index < len(self.rows):
            raise IndexError(f"Eta-slice index {eta_index} out of range for table '{self.name}'.")
        return self.rows[eta_index]

    def eta_slice_index(self, abs_eta: float) -> int | None:
        return self.slices.bin_index(abs_eta)

    def bin_index(self, eta_index: int, value: float) -> int | None:
        return self.row(eta_index).bin_index(value)


class BinningCatalog:
    """Named, read-only collection of bin-edge tables."""

    def __init__(self, tables: Iterable[BinEdges] = (), eta_slice_tables: Iterable[EtaSliceTable] = ()):
        self._tables: dict[str, BinEdges] = {}
        self._eta_tables: dict[str, EtaSliceTable] = {}
        for t in tables:
            self._add(self._tables, t.name, t)
        for t in eta_slice_tables:
            self._add(self._eta_tables, t.name, t)
        logger.debug(
            "Binning catalog with %d tables and %d eta-slice tables",
            len(self._tables), len(self._eta_tables),
        )

    def _add(self, bucket, name, table):
        if name in self._tables or name in self._eta_tables:
            raise ConfigurationError(f"Duplicate binning table name '{name}'.")
        bucket[name] = table

    @classmethod
    def from_mapping(cls, spec: Mapping) -> "BinningCatalog":
        """Build from the ``binning`` section of the YAML configuration.

        Each entry has ``edges`` (plain table) or ``eta_slices`` + ``rows``
        (per-eta-slice table, optionally ``padded: true``).
        """
        tables, eta_tables = [], []
        for name, entry in spec.items():
            open_upper = bool(entry.get("open_upper", False))
            if "rows" in entry:
                if entry.get("padded", False):
                    eta_tables.append(EtaSliceTable.from_padded(
                        name, entry["eta_slices"], entry["rows"],
                        lengths=entry.get("lengths"), open_upper=open_upper,
                    ))
                else:
                    eta_tables.append(EtaSliceTable.from_rows(
                        name, entry["eta_slices"], entry["rows"], open_upper=open_upper,
                    ))
            else:
                tables.append(BinEdges(
                    name, entry["edges"],
                    convention=entry.get("convention", "positive"),
                    open_upper=open_upper,
                ))
        return cls(tables, eta_tables)

    def with_table(self, table: BinEdges) -> "BinningCatalog":
        """Return a new catalog with ``table`` added."""
        return BinningCatalog([*self._tables.values(), table], self._eta_tables.values())

    def names(self) -> list[str]:
        return [*self._tables, *self._eta_tables]

    def __contains__(self, name) -> bool:
        return name in self._tables or name in self._eta_tables

    def table(self, name: str) -> BinEdges:
        try:
            return self._tables[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown binning table '{name}'. Available: {sorted(self._tables)}"
            ) from None

    def eta_slice_table(self, name: str) -> EtaSliceTable:
        try:
            return self._eta_tables[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown eta-slice table '{name}'. Available: {sorted(self._eta_tables)}"
            ) from None

    def edges(self, name: str) -> tuple[float, ...]:
        return self.table(name).edges

    def bin_index(self, table_name: str, value: float) -> int | None:
        return self.table(table_name).bin_index(value)

    def bin_index_array(self, table_name: str, values) -> np.ndarray:
        return self.table(table_name).bin_index_array(values)

    def eta_slice_bin_index(self, table_name: str, eta_index: int, value: float) -> int | None:
        return self.eta_slice_table(table_name).bin_index(eta_index, value)

    def all_edges(self) -> dict[str, tuple[float, ...]]:
        """Every edge sequence in the catalog, eta-slice rows included."""
        out = {name: t.edges for name, t in self._tables.items()}
        for name, t in self._eta_tables.items():
            out[t.slices.name] = t.slices.edges
            for row in t.rows:
                out[row.name] = row.edges
        return out
