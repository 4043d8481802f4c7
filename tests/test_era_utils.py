"""Tests for jetcoffea.era_utils: era mapping and YAML loading."""

import pytest

from jetcoffea.analysis_config import ERAS
from jetcoffea.era_utils import get_era_details, load_yaml


class TestGetEraDetails:
    def test_feb2017(self):
        run, year, era = get_era_details("Summer16_03Feb2017")
        assert run == "Run2"
        assert year == "2016"
        assert era == "Summer16_03Feb2017"

    def test_unsupported_era_raises(self):
        with pytest.raises(ValueError, match="Unsupported era"):
            get_era_details("RunIV2030")

    def test_all_mapped_eras_resolve(self):
        for era_key in ERAS:
            run, year, era = get_era_details(era_key)
            assert run
            assert year
            assert era == era_key


class TestLoadYaml:
    def test_loads_mapping(self, tmp_path):
        path = tmp_path / "small.yaml"
        path.write_text("a: 1\nb: [1, 2]\n", encoding="utf-8")
        assert load_yaml(path) == {"a": 1, "b": [1, 2]}

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuntimeError, match="Failed to read YAML file"):
            load_yaml(tmp_path / "nope.yaml")

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("a: [1, 2\n", encoding="utf-8")
        with pytest.raises(RuntimeError):
            load_yaml(path)
