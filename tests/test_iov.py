"""Tests for jetcoffea.iov: calibration-period resolution and JEC tags."""

import numpy as np
import pytest

from jetcoffea.analysis_config import ERAS
from jetcoffea.errors import ConfigurationError
from jetcoffea.iov import CalibrationPeriod, CalibrationPeriodResolver, correction_set_name


@pytest.fixture
def resolver():
    return CalibrationPeriodResolver.from_mapping(ERAS["Summer16_03Feb2017"]["periods"])


class TestResolve:
    @pytest.mark.parametrize("run, expected", [
        (1, "BCD"),
        (276811, "BCD"),
        (276831, "EF"),
        (278801, "EF"),
        (278802, "G"),
        (280385, "G"),
        (280919, "H"),
        (400000, "H"),
    ])
    def test_covered_runs(self, resolver, run, expected):
        assert resolver.resolve(run) == expected

    @pytest.mark.parametrize("run", [0, 276812, 276830, 280386, 280600, 280918, 400001])
    def test_gaps_not_covered(self, resolver, run):
        assert resolver.resolve(run) is None

    def test_periods_sorted_by_first_run(self):
        r = CalibrationPeriodResolver([
            CalibrationPeriod("late", 200, 300),
            CalibrationPeriod("early", 1, 100),
        ])
        assert r.names == ["early", "late"]
        assert r.resolve(150) is None
        assert r.resolve(250) == "late"

    def test_array_matches_scalar(self, resolver):
        runs = np.array([0, 1, 276820, 277000, 279000, 280600, 300000, 500000])
        idx = resolver.resolve_array(runs)
        names = resolver.names
        expected = [resolver.resolve(r) for r in runs]
        got = [None if i < 0 else names[i] for i in idx]
        assert got == expected

    def test_injective_on_covered_runs(self, resolver):
        rng = np.random.default_rng(3)
        for run in rng.integers(0, 420000, 2000):
            matches = [p.name for p in resolver.periods if run in p]
            assert len(matches) <= 1
            assert resolver.resolve(run) == (matches[0] if matches else None)

    def test_period_lookup(self, resolver):
        assert resolver.period("G").first == 278802
        with pytest.raises(KeyError):
            resolver.period("Z")


class TestValidation:
    def test_overlap_rejected(self):
        with pytest.raises(ConfigurationError, match="overlap"):
            CalibrationPeriodResolver.from_mapping({"A": [1, 100], "B": [100, 200]})

    def test_reversed_range_rejected(self):
        with pytest.raises(ConfigurationError, match="first run"):
            CalibrationPeriod("bad", 10, 5)

    def test_duplicate_names_rejected(self):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            CalibrationPeriodResolver([CalibrationPeriod("A", 1, 2), CalibrationPeriod("A", 5, 6)])

    def test_empty_rejected(self):
        with pytest.raises(ConfigurationError):
            CalibrationPeriodResolver([])


class TestCorrectionSetName:
    def test_data_with_period(self):
        assert correction_set_name("Summer16_03Feb2017", "V9", "BCD") == "Summer16_03Feb2017BCD_V9_DATA"

    def test_data_without_period(self):
        assert correction_set_name("Summer16_03Feb2017", "_V9") == "Summer16_03Feb2017_V9_DATA"

    def test_mc_ignores_period(self):
        assert correction_set_name("Summer16_03Feb2017", "V9", "G", is_mc=True) == "Summer16_03Feb2017_V9_MC"
