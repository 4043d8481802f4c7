"""Tests for jetcoffea.analysis_config: YAML loading and AnalysisConfig."""

import copy
import dataclasses
from pathlib import Path

import pytest
import yaml

from jetcoffea.analysis_config import (
    BINNINGS, ERAS, MC_SAMPLES, TRIGGER_SETS, TRIGGER_DOMAIN_TABLE, _CONFIG_PATH,
    build_config, load_raw_config,
)
from jetcoffea.errors import ConfigurationError


def _write_variant(tmp_path, mutate):
    raw = copy.deepcopy(load_raw_config())
    mutate(raw)
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return path


class TestYamlLoading:
    def test_config_yaml_exists(self):
        assert _CONFIG_PATH.exists(), f"config.yaml not found at {_CONFIG_PATH}"

    def test_config_lives_in_package_dir(self):
        assert _CONFIG_PATH.parent == Path(__file__).resolve().parent.parent / "jetcoffea"

    def test_sections_loaded(self):
        assert "Summer16_03Feb2017" in ERAS
        assert "Run2016" in TRIGGER_SETS
        assert "QCD_Pt_pythia8_CUETP8M1" in MC_SAMPLES
        assert "pt" in BINNINGS

    def test_missing_section_rejected(self, tmp_path):
        path = _write_variant(tmp_path, lambda raw: raw.pop("binning"))
        with pytest.raises(ConfigurationError, match="binning"):
            load_raw_config(path)

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(RuntimeError, match="Failed to read YAML"):
            load_raw_config(tmp_path / "missing.yaml")


class TestConfigConsistency:
    def test_eras_reference_known_tables(self):
        for era, cfg in ERAS.items():
            assert cfg["trigger_set"] in TRIGGER_SETS, era
            assert cfg["mc_sample"] in MC_SAMPLES, era

    def test_every_era_builds(self):
        for era in ERAS:
            config = build_config(era)
            assert config.era == era

    def test_mc_lists_parallel(self):
        for name, cfg in MC_SAMPLES.items():
            n = len(cfg["xsecs"])
            assert len(cfg["pthat_edges"]) == n + 1, name
            assert len(cfg["nevts"]) == n, name
            assert len(cfg["samples"]) == n, name


class TestBuildConfig:
    @pytest.fixture(scope="class")
    def config(self):
        return build_config("Summer16_03Feb2017")

    def test_unknown_era(self):
        with pytest.raises(ConfigurationError, match="Unsupported era"):
            build_config("Winter30")

    def test_unknown_era_is_value_error(self):
        with pytest.raises(ValueError):
            build_config("Winter30")

    def test_frozen(self, config):
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.era = "other"

    def test_components(self, config):
        assert config.triggers.reference.name == "jt450"
        assert config.triggers.use_lumi_weights is True
        assert config.periods.names == ["BCD", "EF", "G", "H"]
        assert len(config.mc_slices) == 14
        assert config.jet_algorithm == "AK4PFchs"
        assert config.max_jet_pt == 6500.0

    def test_trigger_domain_table(self, config):
        table = config.binning.table(TRIGGER_DOMAIN_TABLE)
        assert table.open_upper
        assert table.edges == config.triggers.domain_edges()

    def test_correction_set_for_run(self, config):
        assert config.correction_set_for_run(279000) == "Summer16_03Feb2017G_V9_DATA"
        assert config.correction_set_for_run(280600) is None
        assert config.correction_set(is_mc=True) == "Summer16_03Feb2017_V9_MC"

    def test_configs_coexist(self, config):
        other = build_config("Summer16_23Sep2016")
        assert other.correction_set_for_run(280600) == "Summer16_23Sep2016GH_V6_DATA"
        assert config.correction_set_for_run(280600) is None

    def test_trigger_lumi_override(self):
        config = build_config("Summer16_03Feb2017", use_trigger_lumi=False)
        assert config.triggers.use_lumi_weights is False
        assert config.triggers.weight_for("jt40") == 1.0

    def test_mc_trigger_override(self):
        assert build_config("Summer16_03Feb2017", use_mc_trigger=True).use_mc_trigger is True

    def test_inconsistency_settings(self, config):
        monitor = config.new_inconsistency_monitor()
        assert monitor.tolerance == 0.001
        assert monitor.min_events == 1000


class TestInvalidConfig:
    def test_overlapping_periods_refuse_to_start(self, tmp_path):
        def mutate(raw):
            raw["eras"]["Summer16_03Feb2017"]["periods"]["H"] = [280000, 400000]
        path = _write_variant(tmp_path, mutate)
        with pytest.raises(ConfigurationError, match="overlap"):
            build_config("Summer16_03Feb2017", path=path)

    def test_trigger_gap_refuses_to_start(self, tmp_path):
        def mutate(raw):
            raw["trigger_sets"]["Run2016"]["triggers"][1]["range"] = [90, 114]
        path = _write_variant(tmp_path, mutate)
        with pytest.raises(ConfigurationError, match="gap"):
            build_config("Summer16_03Feb2017", path=path)

    def test_non_monotonic_edges_refuse_to_start(self, tmp_path):
        def mutate(raw):
            raw["binning"]["pt_wide"]["edges"][3] = 10
        path = _write_variant(tmp_path, mutate)
        with pytest.raises(ConfigurationError, match="pt_wide"):
            build_config("Summer16_03Feb2017", path=path)

    def test_non_contiguous_slices_refuse_to_start(self, tmp_path):
        def mutate(raw):
            raw["mc_samples"]["QCD_Pt_pythia8_CUETP8M1"]["pthat_edges"][3] = 80
        path = _write_variant(tmp_path, mutate)
        with pytest.raises(ConfigurationError):
            build_config("Summer16_03Feb2017", path=path)

    def test_missing_field(self, tmp_path):
        def mutate(raw):
            del raw["eras"]["Summer16_03Feb2017"]["jec_version"]
        path = _write_variant(tmp_path, mutate)
        with pytest.raises(ConfigurationError, match="jec_version"):
            build_config("Summer16_03Feb2017", path=path)

    def test_iov_switch_off(self, tmp_path):
        def mutate(raw):
            raw["eras"]["Summer16_03Feb2017"]["use_iov"] = False
        path = _write_variant(tmp_path, mutate)
        config = build_config("Summer16_03Feb2017", path=path)
        assert config.correction_set_for_run(280600) == "Summer16_03Feb2017_V9_DATA"
        assert config.correction_set("G") == "Summer16_03Feb2017_V9_DATA"

    def test_inconsistency_section_read(self, tmp_path):
        def mutate(raw):
            raw["mc_samples"]["QCD_Pt_pythia8_CUETP8M1"]["inconsistency"] = {"tolerance": 0.05}
        path = _write_variant(tmp_path, mutate)
        config = build_config("Summer16_03Feb2017", path=path)
        assert config.inconsistency_tolerance == 0.05
        assert config.inconsistency_min_events == 1000
