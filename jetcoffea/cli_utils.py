from __future__ import annotations

import logging

from jetcoffea.analysis_config import ERAS, AnalysisConfig

logger = logging.getLogger(__name__)


def list_eras() -> list[str]:
    """Return supported era strings in the configuration's order."""

    # Dict insertion order is intentional here (curated in config.yaml).
    return list(ERAS.keys())


def _fmt_upper(value: float, is_last: bool) -> str:
    return "inf" if is_last else f"{value:g}"


def describe_triggers(config: AnalysisConfig) -> list[str]:
    stitcher = config.triggers
    lines = [
        f"Triggers (reference {stitcher.reference.name}, "
        f"{stitcher.luminosity_fb:.3f} /fb, lumi weights {'on' if stitcher.use_lumi_weights else 'off'}):"
    ]
    n = len(stitcher.triggers)
    for i, t in enumerate(stitcher.triggers):
        lines.append(
            f"  {t.name:<6} thr={t.threshold:<5g} [{t.low:g}, {_fmt_upper(t.high, i == n - 1)})"
            f"  lumi={t.lumi:.6g} /ub  weight={stitcher.weight_for(t.name):.6g}"
        )
    return lines


def describe_periods(config: AnalysisConfig) -> list[str]:
    lines = [f"Calibration periods ({'IOV' if config.use_iov else 'single tag'}):"]
    for p in config.periods.periods:
        lines.append(f"  {p.name:<4} runs [{p.first}, {p.last}]  -> {config.correction_set(p.name)}")
    lines.append(f"  MC   -> {config.correction_set(is_mc=True)}")
    return lines


def describe_slices(config: AnalysisConfig) -> list[str]:
    lines = ["pT-hat slices:"]
    stitcher = config.mc_slices
    for s in stitcher.slices:
        low, high = stitcher.slice_range(s.index)
        upper = "inf" if high is None else f"{high:g}"
        lines.append(
            f"  {s.index:>2} [{low:g}, {upper})  xsec={s.xsec:.6g}  nevts={s.nevts}  weight={s.weight:.6g}"
        )
    return lines


def describe_binning(config: AnalysisConfig) -> list[str]:
    lines = ["Binning tables:"]
    for name, edges in config.binning.all_edges().items():
        lines.append(f"  {name:<16} {len(edges) - 1:>3} bins  [{edges[0]:g}, {edges[-1]:g}]")
    return lines


def describe_config(config: AnalysisConfig) -> list[str]:
    """Human-readable summary of an era's configuration."""
    lines = [f"Era {config.era} ({config.jet_algorithm})"]
    for part in (describe_triggers, describe_periods, describe_slices, describe_binning):
        lines.extend(part(config))
    return lines
