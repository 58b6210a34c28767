"""
Tests for the drinking age RDD walkthrough.

Uses a synthetic age-cell frame shaped like the MLDA extract.
"""

from pathlib import Path

import numpy as np
import pytest

from config.settings import Settings
from shared.rdd.design import Observations
from studies.drinking_age.src.analysis import (
    DEFAULT_LADDER,
    LadderEntry,
    RDDAnalysis,
    binned_means,
    compare_specifications,
    load_ladder,
    run_mlda_analysis,
)
from tests.fixtures.synthetic_dgp import make_age_cell_frame

REPO_ROOT = Path(__file__).resolve().parents[3]


@pytest.fixture
def cells():
    return make_age_cell_frame()


@pytest.fixture
def settings():
    return Settings(
        cutpoint=21.0,
        polynomial_order=1,
        slope_mode="separate",
        restriction_bandwidth=(20.0, 22.0),
        placebo_trim=1,
        outcomes=["all", "mva", "suicide"],
    )


@pytest.fixture
def analysis(settings):
    return RDDAnalysis(settings=settings, ladder=DEFAULT_LADDER)


@pytest.fixture
def all_obs(cells):
    return Observations.from_frame(cells, "agecell", "all")


class TestModelLadder:
    """Test ladder loading."""

    def test_default_ladder(self):
        assert len(DEFAULT_LADDER) == 4
        assert [e.polynomial_order for e in DEFAULT_LADDER] == [1, 1, 2, 2]

    def test_repository_ladder(self):
        ladder = load_ladder(REPO_ROOT / "config" / "model_ladder.yaml")
        assert [e.label for e in ladder] == [e.label for e in DEFAULT_LADDER]

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "ladder.yaml"
        path.write_text(
            "models:\n"
            "  - label: cubic\n"
            "    polynomial_order: 3\n"
            "    slope_mode: separate\n"
            "  - polynomial_order: 0\n"
            "    slope_mode: shared\n"
        )
        ladder = load_ladder(path)
        assert ladder[0] == LadderEntry("cubic", 3, "separate")
        assert ladder[1].label.startswith("model_2")

    def test_empty_ladder(self, tmp_path):
        path = tmp_path / "ladder.yaml"
        path.write_text("models: []\n")
        with pytest.raises(ValueError):
            load_ladder(path)

    def test_missing_ladder(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_ladder(tmp_path / "nope.yaml")


class TestCompareSpecifications:
    """Test model comparison over the ladder."""

    def test_all_entries_ranked(self, all_obs):
        ranking, failures = compare_specifications(all_obs, 21.0, DEFAULT_LADDER)
        assert len(ranking) == 4
        assert failures == []
        aics = [entry.fit.aic for entry in ranking]
        assert aics == sorted(aics)

    def test_failures_reported_not_raised(self, all_obs):
        ladder = DEFAULT_LADDER + [
            LadderEntry("broken", -1, "shared"),
            LadderEntry("too flexible", 30, "separate"),
        ]
        ranking, failures = compare_specifications(all_obs, 21.0, ladder)
        assert len(ranking) == 4
        assert {f.label: f.reason for f in failures} == {
            "broken": "InvalidSpecError",
            "too flexible": "InsufficientDataError",
        }


class TestRDDAnalysis:
    """Test the full per-outcome walkthrough."""

    def test_configured_spec(self, analysis):
        assert analysis.cutpoint == 21.0
        assert analysis.order == 1
        assert analysis.slope_mode.value == "separate"

    def test_invalid_configured_spec(self, settings):
        bad = settings.model_copy(update={"polynomial_order": -1})
        with pytest.raises(ValueError):
            RDDAnalysis(settings=bad, ladder=DEFAULT_LADDER)

    def test_estimate(self, analysis, all_obs):
        fit = analysis.estimate(all_obs)
        assert abs(fit.discontinuity_estimate - 7.5) < 3.0
        assert fit.ci_low > 0

    def test_run_outcome(self, analysis, all_obs):
        result = analysis.run_outcome(all_obs, "all")

        assert result.n_observations == 48
        assert len(result.ranking) == 4
        assert result.selected is result.ranking[0]
        assert set(result.fits()) == {e.label for e in DEFAULT_LADDER}

        assert result.placebo is not None
        assert len(result.placebo) + len(result.placebo.omitted) == 46
        # No age cell sits exactly at 21
        assert result.placebo.true_row is None

        assert result.restriction_window == (20.0, 22.0)
        assert result.restricted_fit is not None
        assert result.restricted_fit.n_observations == 24
        assert result.restriction_error is None

    def test_restriction_failure_is_recorded(self, settings, all_obs):
        narrow = settings.model_copy(update={"restriction_bandwidth": (21.0, 21.0)})
        analysis = RDDAnalysis(settings=narrow, ladder=DEFAULT_LADDER)
        result = analysis.run_outcome(all_obs, "all", run_placebo=False)
        assert result.restricted_fit is None
        assert "observations" in result.restriction_error
        assert "Not estimated" in result.summary()

    def test_threaded_placebo(self, settings, all_obs):
        threaded = settings.model_copy(update={"placebo_workers": 4})
        sequential = RDDAnalysis(settings=settings, ladder=DEFAULT_LADDER)
        parallel = RDDAnalysis(settings=threaded, ladder=DEFAULT_LADDER)
        a = sequential.run_outcome(all_obs, "all", run_restriction=False).placebo
        b = parallel.run_outcome(all_obs, "all", run_restriction=False).placebo
        assert [r.cutpoint for r in a] == [r.cutpoint for r in b]
        np.testing.assert_allclose(
            [r.local_average_treatment_effect for r in a],
            [r.local_average_treatment_effect for r in b],
        )

    def test_run_study_skips_missing_outcomes(self, analysis, cells):
        results = analysis.run_study(
            cells, ["all", "alcohol", "drugs"], run_placebo=False, run_restriction=False,
        )
        assert list(results) == ["all", "drugs"]
        assert results["drugs"].n_observations == 47

    def test_run_study_default_outcomes(self, analysis, cells):
        results = analysis.run_study(cells, run_placebo=False, run_restriction=False)
        assert list(results) == ["all", "mva", "suicide"]

    def test_run_mlda_analysis(self, settings, cells, tmp_path):
        path = tmp_path / "mlda.csv"
        cells.to_csv(path, index=False)
        result = run_mlda_analysis("mva", path=path, settings=settings)
        assert result.outcome == "mva"
        assert len(result.ranking) == 4
        assert result.restricted_fit is not None

    def test_summary(self, analysis, all_obs):
        text = analysis.run_outcome(all_obs, "all").summary()
        assert "SHARP RDD RESULTS: all" in text
        assert "Model Comparison (ascending AIC):" in text
        assert "Selected:" in text
        assert "Placebo Cutpoints" in text
        assert "Restricted Sample [20, 22]" in text


class TestBinnedMeans:
    """Test binned scatter data."""

    def test_bins_anchored_at_cutpoint(self):
        obs = Observations([19.2, 19.8, 20.5, 21.0, 21.4], [1.0, 3.0, 5.0, 7.0, 9.0])
        bins = binned_means(obs, bin_width=1.0, cutpoint=21.0)

        assert list(bins["bin_center"]) == [19.5, 20.5, 21.5]
        assert list(bins["mean"]) == [2.0, 5.0, 8.0]
        assert list(bins["count"]) == [2, 1, 2]
        assert list(bins["side"]) == ["control", "control", "treatment"]

    def test_invalid_width(self, all_obs):
        with pytest.raises(ValueError):
            binned_means(all_obs, bin_width=0.0, cutpoint=21.0)

    def test_empty(self):
        bins = binned_means(Observations([], []), bin_width=1.0, cutpoint=21.0)
        assert bins.empty


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
