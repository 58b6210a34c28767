"""
Tests for observations, model specifications and piecewise designs.
"""

import numpy as np
import pandas as pd
import pytest

from shared.rdd.design import (
    ModelSpec,
    Observations,
    PiecewiseDesignBuilder,
    SlopeMode,
)
from shared.rdd.errors import InsufficientDataError, InvalidSpecError


@pytest.fixture
def builder():
    return PiecewiseDesignBuilder()


@pytest.fixture
def grid_obs():
    """Ten evenly spaced points on [19, 23.5] with the cutpoint 21 on the grid."""
    x = np.arange(19.0, 24.0, 0.5)
    return Observations(x, 2 * x)


class TestModelSpec:
    """Test specification validation."""

    def test_defaults(self):
        spec = ModelSpec()
        assert spec.polynomial_order == 1
        assert spec.slope_mode is SlopeMode.SEPARATE

    def test_string_slope_mode_is_coerced(self):
        assert ModelSpec(2, "SHARED").slope_mode is SlopeMode.SHARED
        assert ModelSpec(2, "separate").slope_mode is SlopeMode.SEPARATE

    def test_negative_order_rejected(self):
        with pytest.raises(InvalidSpecError):
            ModelSpec(-1, "shared")

    def test_unknown_slope_mode_rejected(self):
        with pytest.raises(InvalidSpecError, match="slope mode"):
            ModelSpec(1, "curved")

    def test_non_integer_order_rejected(self):
        with pytest.raises(InvalidSpecError):
            ModelSpec(1.5, "shared")
        with pytest.raises(InvalidSpecError):
            ModelSpec(True, "shared")

    @pytest.mark.parametrize("order", [0, 1, 2, 3])
    def test_parameter_counts(self, order):
        assert ModelSpec(order, "shared").n_parameters == order + 2
        assert ModelSpec(order, "separate").n_parameters == 2 * (order + 1)

    def test_label(self):
        assert ModelSpec(1, "shared").label == "linear, same slope"
        assert ModelSpec(2, "separate").label == "quadratic, different slopes"
        assert ModelSpec(7, "shared").label.startswith("order-7")


class TestObservations:
    """Test observation containers."""

    def test_from_pairs(self):
        obs = Observations.from_pairs([(1.0, 2.0), (3.0, 4.0)])
        assert len(obs) == 2
        np.testing.assert_array_equal(obs.assignment, [1.0, 3.0])
        np.testing.assert_array_equal(obs.outcome, [2.0, 4.0])

    def test_from_empty_pairs(self):
        assert len(Observations.from_pairs([])) == 0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            Observations([1.0, 2.0], [1.0])

    def test_arrays_are_read_only(self):
        obs = Observations([1.0, 2.0], [3.0, 4.0])
        with pytest.raises(ValueError):
            obs.assignment[0] = 10.0

    def test_input_not_aliased(self):
        x = np.array([1.0, 2.0])
        obs = Observations(x, [3.0, 4.0])
        x[0] = 99.0
        assert obs.assignment[0] == 1.0

    def test_from_frame_drops_missing(self):
        df = pd.DataFrame({
            "agecell": [19.5, 20.5, 21.5, 22.5],
            "mva": [30.0, np.nan, 35.0, 34.0],
        })
        obs = Observations.from_frame(df, "agecell", "mva")
        assert len(obs) == 3
        np.testing.assert_array_equal(obs.cell, [0, 2, 3])

    def test_from_frame_missing_column(self):
        df = pd.DataFrame({"agecell": [19.5]})
        with pytest.raises(KeyError):
            Observations.from_frame(df, "agecell", "mva")

    def test_side_counts_cutpoint_is_treated(self, grid_obs):
        n_below, n_above = grid_obs.side_counts(21.0)
        assert n_below == 4
        assert n_above == 6

    def test_subset_preserves_order(self, grid_obs):
        subset = grid_obs.subset(grid_obs.assignment > 21.0)
        assert list(subset.assignment) == sorted(subset.assignment)
        assert subset.assignment[0] == 21.5


class TestPiecewiseDesignBuilder:
    """Test design matrix construction."""

    def test_shared_columns(self, builder, grid_obs):
        design = builder.build(grid_obs, 21.0, order=2, slope_mode="shared")
        assert design.columns == ["const", "x", "x^2", "treated"]
        assert design.n_parameters == 4

    def test_separate_columns(self, builder, grid_obs):
        design = builder.build(grid_obs, 21.0, order=2, slope_mode="separate")
        assert design.columns == [
            "const", "treated", "x_c", "x_c^2", "treated:x_c", "treated:x_c^2",
        ]
        assert design.n_parameters == 6

    @pytest.mark.parametrize("order", [0, 1, 2])
    def test_column_counts(self, builder, grid_obs, order):
        shared = builder.build(grid_obs, 21.0, order, SlopeMode.SHARED)
        separate = builder.build(grid_obs, 21.0, order, SlopeMode.SEPARATE)
        assert shared.n_parameters == order + 2
        assert separate.n_parameters == 2 * (order + 1)

    def test_treatment_indicator(self, builder, grid_obs):
        design = builder.build(grid_obs, 21.0, 1, "shared")
        treated = design.matrix["treated"].to_numpy()
        expected = (grid_obs.assignment >= 21.0).astype(float)
        np.testing.assert_array_equal(treated, expected)
        # The cutpoint itself belongs to the treatment group
        assert treated[grid_obs.assignment == 21.0][0] == 1.0

    def test_shared_uses_raw_powers(self, builder, grid_obs):
        design = builder.build(grid_obs, 21.0, 2, "shared")
        np.testing.assert_allclose(design.matrix["x^2"], grid_obs.assignment ** 2)

    def test_separate_centers_and_interacts(self, builder, grid_obs):
        design = builder.build(grid_obs, 21.0, 1, "separate")
        x_c = grid_obs.assignment - 21.0
        np.testing.assert_allclose(design.matrix["x_c"], x_c)
        np.testing.assert_allclose(
            design.matrix["treated:x_c"], np.where(x_c >= 0, x_c, 0.0)
        )

    def test_outcome_carried(self, builder, grid_obs):
        design = builder.build(grid_obs, 21.0)
        np.testing.assert_array_equal(design.outcome.to_numpy(), grid_obs.outcome)

    def test_negative_order(self, builder, grid_obs):
        with pytest.raises(InvalidSpecError):
            builder.build(grid_obs, 21.0, order=-1)

    def test_empty_observations(self, builder):
        with pytest.raises(InsufficientDataError):
            builder.build(Observations([], []), 21.0)

    def test_too_few_below_for_separate_slopes(self, builder):
        obs = Observations([20.0, 21.0, 22.0, 23.0, 24.0], [1.0, 2.0, 3.0, 4.0, 5.0])
        with pytest.raises(InsufficientDataError) as exc_info:
            builder.build(obs, 21.0, order=1, slope_mode="separate")
        assert exc_info.value.n_below == 1
        assert exc_info.value.n_above == 4

    def test_shared_needs_one_per_side(self, builder):
        obs = Observations([20.0, 21.0, 22.0, 23.0, 24.0], [1.0, 2.0, 3.0, 4.0, 5.0])
        design = builder.build(obs, 21.0, order=1, slope_mode="shared")
        assert design.n_below == 1
        with pytest.raises(InsufficientDataError):
            builder.build(obs, 19.0, order=1, slope_mode="shared")

    def test_rank_full(self, builder, grid_obs):
        design = builder.build(grid_obs, 21.0, 2, "separate")
        assert design.rank() == design.n_parameters

    def test_rank_deficient_when_one_side_constant(self, builder):
        x = [19.0, 19.0, 19.0, 21.0, 22.0, 23.0]
        obs = Observations(x, np.arange(6.0))
        design = builder.build(obs, 21.0, 1, "separate")
        assert design.rank() == design.n_parameters - 1

    def test_regressors_on_grid(self):
        spec = ModelSpec(1, "separate")
        grid = np.array([20.0, 21.0, 22.0])
        X = PiecewiseDesignBuilder.regressors(grid, 21.0, spec)
        assert list(X.columns) == PiecewiseDesignBuilder.column_names(spec)
        assert X.shape == (3, 4)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
