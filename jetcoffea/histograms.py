"""Histogram specification, creation, and filling for the jet spectra.

Each spec is: (name, table, label, eta_binned)
  - ``table`` names the BinningCatalog table providing the value axis edges.
  - ``eta_binned`` adds an |eta| axis from the ``eta_positive`` table.

On top of these, one pT spectrum per |eta| slice (``pt_eta<k>``) is booked
with the slice's own edges from the ``pt_vs_eta`` table.

All histograms carry categorical axes (trigger, period) so stitched
contributions stay separable after accumulation.
"""

import logging

import hist
import numpy as np

logger = logging.getLogger(__name__)

ETA_TABLE = "eta_positive"
ETA_SLICE_TABLE = "pt_vs_eta"

JET_HIST_SPECS: list[tuple[str, str, str, bool]] = [
    ("pt",            "pt",            r"Jet $p_{T}$ [GeV]",  True),
    ("pt_wide",       "pt_wide",       r"Jet $p_{T}$ [GeV]",  True),
    ("pt_extra_wide", "pt_extra_wide", r"Jet $p_{T}$ [GeV]",  True),
    ("eta",           "eta",           r"Jet $\eta$",         False),
]

# Value getters keyed by spec name; each takes the per-jet arrays.
_VALUE_GETTERS = {
    "pt": lambda pt, eta: pt,
    "pt_wide": lambda pt, eta: pt,
    "pt_extra_wide": lambda pt, eta: pt,
    "eta": lambda pt, eta: eta,
}


def eta_slice_hist_name(eta_index):
    return f"pt_eta{eta_index}"


def _booking_specs(catalog) -> dict[str, tuple[tuple[float, ...], str, tuple[float, ...] | None]]:
    """Return histogram booking metadata keyed by canonical histogram name."""
    eta_edges = catalog.edges(ETA_TABLE)
    specs = {}
    for name, table, label, eta_binned in JET_HIST_SPECS:
        specs[name] = (catalog.edges(table), label, eta_edges if eta_binned else None)

    table = catalog.eta_slice_table(ETA_SLICE_TABLE)
    slice_edges = table.slices.edges
    for k, row in enumerate(table.rows):
        label = rf"Jet $p_{{T}}$ [GeV], ${slice_edges[k]:g} \leq |\eta| < {slice_edges[k + 1]:g}$"
        specs[eta_slice_hist_name(k)] = (row.edges, label, None)
    return specs


def create_hist(name, edges, label, eta_edges=None):
    """Create a single spectrum histogram with standard categorical axes."""
    builder = (
        hist.Hist.new
        .StrCat([], name="trigger", label="Trigger", growth=True)
        .StrCat([], name="period",  label="Calibration period", growth=True)
    )
    if eta_edges is not None:
        builder = builder.Var(list(eta_edges), name="abs_eta", label=r"$|\eta|$")
    return builder.Var(list(edges), name=name, label=label).Weight()


def fill_jet_histograms(output, *, trigger, period, pt, eta, weight, eta_slices=None):
    """Fill every spectrum histogram from flat per-jet arrays.

    ``trigger`` and ``period`` are per-jet label arrays; jets sharing a label
    pair are filled together. With ``eta_slices`` (an ``EtaSliceTable``) the
    per-slice pT spectra are filled as well; jets beyond the last slice are
    skipped there.
    """
    trigger = np.asarray(trigger)
    period = np.asarray(period)
    pt = np.asarray(pt, dtype=np.float64)
    eta = np.asarray(eta, dtype=np.float64)
    weight = np.asarray(weight, dtype=np.float64)
    if len(pt) == 0:
        return

    abs_eta = np.abs(eta)
    slice_index = eta_slices.slices.bin_index_array(abs_eta) if eta_slices is not None else None
    for trig_label in np.unique(trigger):
        for period_label in np.unique(period[trigger == trig_label]):
            sel = (trigger == trig_label) & (period == period_label)
            for name, _table, _label, eta_binned in JET_HIST_SPECS:
                vals = _VALUE_GETTERS[name](pt[sel], eta[sel])
                fields = {name: vals}
                if eta_binned:
                    fields["abs_eta"] = abs_eta[sel]
                output[name].fill(
                    trigger=str(trig_label),
                    period=str(period_label),
                    **fields,
                    weight=weight[sel],
                )
            if slice_index is None:
                continue
            for k in range(len(eta_slices.rows)):
                in_slice = sel & (slice_index == k)
                if not in_slice.any():
                    continue
                name = eta_slice_hist_name(k)
                output[name].fill(
                    trigger=str(trig_label),
                    period=str(period_label),
                    **{name: pt[in_slice]},
                    weight=weight[in_slice],
                )


def fill_cutflow(output, step, count):
    """Accumulate an unweighted count for one cutflow step."""
    cutflow = output.setdefault("cutflow", {})
    cutflow[step] = cutflow.get(step, 0) + int(count)
