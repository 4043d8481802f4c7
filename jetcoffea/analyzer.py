"""Coffea processor for the inclusive-jet cross-section spectra.

High-level flow per chunk:
    1) Apply lumi mask for data (golden JSON).
    2) Resolve the calibration period of every data event; drop runs that no
       period covers.
    3) Build event weights: pT-hat slice normalization for MC (events whose
       pT-hat contradicts their slice are dropped and counted), unit weights
       for data.
    4) Select jets and stitch triggers per jet (one trigger of record per
       momentum region; luminosity weighted for data, unit weight for MC).
    5) Fill histograms (including per-|eta|-slice pT spectra) and the cutflow.

Output conventions:
    - ``{dataset: {hist_name: Hist, ..., "cutflow": {step: count}}}``
    - Histograms carry (trigger, period) categorical axes.

Notes for distributed execution (Dask/Condor):
    - The AnalysisConfig is immutable and shipped to workers by value.
    - Missing HLT branches are logged once per worker process via
      ``_WARN_ONCE``.
    - Inconsistent pT-hat slice counts accumulate per worker process.
"""

import logging
import os

import awkward as ak
import numpy as np
from coffea import processor
from coffea.analysis_tools import Weights
from coffea.lumi_tools import LumiMask

from jetcoffea.analysis_config import MC_TRIGGER, AnalysisConfig
from jetcoffea.errors import ConfigurationError
from jetcoffea.histograms import (
    ETA_SLICE_TABLE,
    ETA_TABLE,
    _booking_specs,
    create_hist,
    fill_cutflow,
    fill_jet_histograms,
)

logger = logging.getLogger(__name__)

# Warn-once cache (per worker process) to avoid log spam.
_WARN_ONCE: set[str] = set()

MC_PERIOD = "MC"


class JetSpectrumAnalysis(processor.ProcessorABC):
    """Processor filling stitched inclusive-jet spectra.

    Expected ``events.metadata`` keys (typical):
      - ``datatype``: "mc" or "data"
      - ``sample``: dataset identifier string (also used to find the pT-hat slice)
      - ``pthat_slice`` (MC, optional): explicit slice index

    Parameters
    - ``config``: the era's :class:`AnalysisConfig`.
    """

    def __init__(self, config: AnalysisConfig):
        self._config = config
        self._monitor = config.new_inconsistency_monitor()
        booking = _booking_specs(config.binning)
        self.make_output = lambda: {
            name: create_hist(name, edges, label, eta_edges)
            for name, (edges, label, eta_edges) in booking.items()
        }

    @property
    def config(self):
        return self._config

    def apply_lumi_mask(self, events, is_data):
        """Golden-JSON mask for data; all-true for MC or when no JSON is usable."""
        n = len(events)
        if not is_data:
            return np.ones(n, dtype=bool)

        json_path = os.environ.get("LUMI_JSON") or self._config.lumi_json
        if json_path:
            try:
                mask = LumiMask(json_path)
                return np.asarray(mask(events.run, events.luminosityBlock), dtype=bool)
            except OSError as e:
                logger.warning("Failed to load lumi JSON '%s': %s", json_path, e)
        else:
            logger.warning("No lumi JSON configured for era '%s'. Data left unmasked.", self._config.era)
        return np.ones(n, dtype=bool)

    def resolve_periods(self, events, is_mc):
        """Return (period label per event, covered mask)."""
        n = len(events)
        if is_mc:
            return np.full(n, MC_PERIOD, dtype=object), np.ones(n, dtype=bool)

        resolver = self._config.periods
        idx = resolver.resolve_array(np.asarray(events.run))
        # Index -1 picks the trailing empty label.
        labels = np.asarray(resolver.names + [""], dtype=object)[idx]
        return labels, idx >= 0

    def build_trigger_masks(self, events):
        """Per-event fired flags keyed by trigger name.

        Missing HLT paths default to False (logged once per worker).
        """
        n = len(events)
        HLT = getattr(events, "HLT", None)
        masks = {}
        for trig in self._config.triggers.triggers:
            path = trig.hlt_path or trig.name
            if HLT is not None and hasattr(HLT, path):
                masks[trig.name] = np.asarray(getattr(HLT, path), dtype=bool)
            else:
                key = f"missing_hlt::{path}"
                if key not in _WARN_ONCE:
                    _WARN_ONCE.add(key)
                    logger.warning("HLT path '%s' missing; treating trigger '%s' as never fired.", path, trig.name)
                masks[trig.name] = np.zeros(n, dtype=bool)
        return masks

    def select_jets(self, events):
        """Jets inside [min reco pT, sqrt(s)/2) and the |eta| binning acceptance."""
        max_abs_eta = self._config.binning.table(ETA_TABLE).high
        jet_mask = (
            (events.Jet.pt > self._config.min_reco_pt)
            & (events.Jet.pt < self._config.max_jet_pt)
            & (np.abs(events.Jet.eta) < max_abs_eta)
        )
        return events.Jet[jet_mask]

    def pthat_slice_index(self, metadata):
        """Slice index from metadata, falling back to matching the sample name."""
        slice_index = metadata.get("pthat_slice")
        if slice_index is not None:
            return int(slice_index)
        sample = metadata.get("sample") or ""
        slice_index = self._config.mc_slices.slice_for_sample(sample)
        if slice_index is None:
            raise ConfigurationError(
                f"Cannot determine the pT-hat slice for sample '{sample}'. "
                "Set metadata['pthat_slice'] or add the sample to config.yaml."
            )
        return slice_index

    def build_event_weights(self, events, metadata, is_mc):
        """
        Returns (Weights, keep_mask):
          - MC: xsec/nevts of the event's pT-hat slice; events with pT-hat
                outside their slice are dropped (keep_mask False) and counted
          - Data: unit weights
        """
        n = len(events)
        weights = Weights(n)

        if not is_mc:
            weights.add("unit", np.ones(n, dtype=np.float64))
            return weights, np.ones(n, dtype=bool)

        slice_index = self.pthat_slice_index(metadata)
        pthat = np.asarray(events.Generator.binvar, dtype=np.float64)
        slice_weight, consistent = self._config.mc_slices.weight_array(slice_index, pthat)
        self._monitor.record(n, int(np.count_nonzero(~consistent)), label=metadata.get("sample", ""))
        weights.add("pthat_slice", slice_weight)
        return weights, consistent

    def stitch_jets(self, pt, fired, is_mc):
        """Per-jet (trigger label, trigger weight, accepted) from flat arrays.

        ``fired`` maps trigger name to per-jet fired flags. Simulated jets
        either all go to the single ``mc`` trigger (MC trigger mode) or are
        accepted on the bit of the trigger owning their momentum; both get
        weight 1 since the pT-hat slice weight is their only normalization.
        """
        pt = np.asarray(pt, dtype=np.float64)
        if is_mc and self._config.use_mc_trigger:
            n = len(pt)
            return np.full(n, MC_TRIGGER, dtype=object), np.ones(n, dtype=np.float64), np.ones(n, dtype=bool)

        stitcher = self._config.triggers
        index, weight = stitcher.select_array(pt, fired)
        accepted = index >= 0
        if is_mc:
            # Luminosity weights correct data prescales only.
            weight = accepted.astype(np.float64)
        labels = np.asarray(stitcher.names + [""], dtype=object)[index]
        return labels, weight, accepted

    def process(self, events):
        """Run the analysis for one chunk and return a dataset-nested output dict."""
        output = self.make_output()
        metadata = events.metadata
        dataset = metadata.get("sample")

        datatype = (metadata.get("datatype") or "").strip().lower()
        is_mc = datatype == "mc"

        fill_cutflow(output, "all_events", len(events))

        keep = self.apply_lumi_mask(events, is_data=not is_mc)
        fill_cutflow(output, "lumi_mask", np.count_nonzero(keep))

        periods, covered = self.resolve_periods(events, is_mc)
        keep &= covered
        fill_cutflow(output, "calibration_period", np.count_nonzero(keep))

        weights, consistent = self.build_event_weights(events, metadata, is_mc)
        keep &= consistent
        fill_cutflow(output, "pthat_slice", np.count_nonzero(keep))

        fired_events = self.build_trigger_masks(events)
        event_weight = np.asarray(weights.weight(), dtype=np.float64)

        jets = self.select_jets(events)[keep]
        counts = np.asarray(ak.num(jets, axis=1))
        pt = np.asarray(ak.flatten(jets.pt), dtype=np.float64)
        eta = np.asarray(ak.flatten(jets.eta), dtype=np.float64)
        fill_cutflow(output, "selected_jets", len(pt))

        fired = {name: np.repeat(mask[keep], counts) for name, mask in fired_events.items()}
        trig_labels, trig_weight, accepted = self.stitch_jets(pt, fired, is_mc)
        fill_cutflow(output, "stitched_jets", np.count_nonzero(accepted))

        jet_weight = np.repeat(event_weight[keep], counts) * trig_weight
        jet_period = np.repeat(periods[keep], counts)

        fill_jet_histograms(
            output,
            trigger=trig_labels[accepted],
            period=jet_period[accepted],
            pt=pt[accepted],
            eta=eta[accepted],
            weight=jet_weight[accepted],
            eta_slices=self._config.binning.eta_slice_table(ETA_SLICE_TABLE),
        )

        return {dataset: output}

    def postprocess(self, accumulator):
        return accumulator
