"""Configuration for the inclusive-jet cross-section analysis.

Static tables (eras, calibration periods, triggers, pT-hat slices, binnings)
live in ``config.yaml`` next to this module. ``build_config`` turns one era
into an immutable :class:`AnalysisConfig` holding validated lookup objects;
invariant violations raise :class:`ConfigurationError` at construction so
that a broken configuration never reaches the event loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from jetcoffea.binning import BinEdges, BinningCatalog
from jetcoffea.era_utils import load_yaml
from jetcoffea.errors import ConfigurationError
from jetcoffea.iov import CalibrationPeriodResolver, correction_set_name
from jetcoffea.mc_slices import InconsistencyMonitor, McSliceStitcher
from jetcoffea.triggers import TriggerStitcher

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

# Parsed YAML per path (read once per worker process).
_RAW_CACHE: dict[str, dict] = {}

# Name of the catalog table derived from the trigger regions.
TRIGGER_DOMAIN_TABLE = "trigger_domain"

# Trigger label used for simulation when trigger stitching is switched off.
MC_TRIGGER = "mc"


def load_raw_config(path=None) -> dict:
    """Return the parsed YAML configuration (cached by resolved path)."""
    path = Path(path) if path is not None else _CONFIG_PATH
    key = str(path.resolve())
    raw = _RAW_CACHE.get(key)
    if raw is None:
        raw = load_yaml(path)
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping.")
        for section in ("constants", "eras", "trigger_sets", "mc_samples", "binning"):
            if section not in raw:
                raise ConfigurationError(f"Configuration file {path} is missing section '{section}'.")
        _RAW_CACHE[key] = raw
    return raw


_RAW = load_raw_config()
CONSTANTS = _RAW["constants"]
ERAS = _RAW["eras"]
TRIGGER_SETS = _RAW["trigger_sets"]
MC_SAMPLES = _RAW["mc_samples"]
BINNINGS = _RAW["binning"]


@dataclass(frozen=True)
class AnalysisConfig:
    """Everything the event loop needs for one era, validated and read-only."""

    era: str
    jet_algorithm: str
    jec_global_tag: str
    jec_version: str
    use_iov: bool
    binning: BinningCatalog
    periods: CalibrationPeriodResolver
    triggers: TriggerStitcher
    mc_slices: McSliceStitcher
    use_mc_trigger: bool = False
    lumi_json: str | None = None
    sqrt_s: float = 13000.0
    min_reco_pt: float = 15.0
    inconsistency_tolerance: float = 1e-3
    inconsistency_min_events: int = 1000

    @property
    def max_jet_pt(self) -> float:
        """Kinematic limit on jet pT (half the centre-of-mass energy)."""
        return self.sqrt_s / 2.0

    @property
    def luminosity_fb(self) -> float:
        return self.triggers.luminosity_fb

    def correction_set(self, period=None, is_mc=False) -> str:
        if not self.use_iov:
            period = None
        return correction_set_name(self.jec_global_tag, self.jec_version, period=period, is_mc=is_mc)

    def correction_set_for_run(self, run) -> str | None:
        """JEC payload name for a data run, ``None`` if the run is in a gap."""
        if not self.use_iov:
            return self.correction_set()
        period = self.periods.resolve(run)
        if period is None:
            return None
        return self.correction_set(period)

    def new_inconsistency_monitor(self) -> InconsistencyMonitor:
        return InconsistencyMonitor(self.inconsistency_tolerance, self.inconsistency_min_events)


def _require(mapping, key, where):
    try:
        return mapping[key]
    except KeyError:
        raise ConfigurationError(f"Missing '{key}' in {where}.") from None


def build_config(era, *, path=None, use_trigger_lumi=None, use_mc_trigger=None) -> AnalysisConfig:
    """Build and validate the :class:`AnalysisConfig` for ``era``.

    ``use_trigger_lumi`` and ``use_mc_trigger`` override the YAML switches.
    """
    raw = load_raw_config(path)
    eras = raw["eras"]
    if era not in eras:
        raise ConfigurationError(f"Unsupported era: {era}. Valid eras: {sorted(eras)}")
    era_cfg = eras[era]
    where = f"era '{era}'"

    trigger_set = _require(era_cfg, "trigger_set", where)
    trig_cfg = _require(raw["trigger_sets"], trigger_set, "trigger_sets")
    if use_trigger_lumi is None:
        use_trigger_lumi = bool(trig_cfg.get("use_trigger_lumi", True))
    triggers = TriggerStitcher.from_config(
        _require(trig_cfg, "triggers", f"trigger set '{trigger_set}'"),
        reference=trig_cfg.get("reference"),
        use_lumi_weights=use_trigger_lumi,
    )

    mc_name = _require(era_cfg, "mc_sample", where)
    mc_cfg = _require(raw["mc_samples"], mc_name, "mc_samples")
    mc_where = f"MC sample '{mc_name}'"
    mc_slices = McSliceStitcher.from_config(
        _require(mc_cfg, "pthat_edges", mc_where),
        _require(mc_cfg, "xsecs", mc_where),
        _require(mc_cfg, "nevts", mc_where),
        samples=mc_cfg.get("samples"),
    )
    monitor = InconsistencyMonitor.from_config(mc_cfg.get("inconsistency") or {})

    periods = CalibrationPeriodResolver.from_mapping(_require(era_cfg, "periods", where))

    binning = BinningCatalog.from_mapping(raw["binning"]).with_table(
        BinEdges(TRIGGER_DOMAIN_TABLE, triggers.domain_edges(), convention="positive", open_upper=True)
    )

    constants = raw["constants"]
    if use_mc_trigger is None:
        use_mc_trigger = bool(era_cfg.get("use_mc_trigger", False))

    config = AnalysisConfig(
        era=era,
        jet_algorithm=constants.get("jet_algorithm", "AK4PFchs"),
        jec_global_tag=_require(era_cfg, "jec_global_tag", where),
        jec_version=str(_require(era_cfg, "jec_version", where)),
        use_iov=bool(era_cfg.get("use_iov", True)),
        binning=binning,
        periods=periods,
        triggers=triggers,
        mc_slices=mc_slices,
        use_mc_trigger=use_mc_trigger,
        lumi_json=era_cfg.get("lumi_json"),
        sqrt_s=float(constants.get("sqrt_s", 13000.0)),
        min_reco_pt=float(constants.get("min_reco_pt", 15.0)),
        inconsistency_tolerance=monitor.tolerance,
        inconsistency_min_events=monitor.min_events,
    )
    logger.info(
        "Built configuration for era %s: %d triggers (%.3f /fb), %d calibration periods, %d pT-hat slices",
        era, len(triggers.triggers), triggers.luminosity_fb, len(periods.periods), len(mc_slices),
    )
    return config
