"""
Tests de las estadísticas del optimizador.
Funciones puras sobre arrays: sin red ni base de datos.
"""

import numpy as np
import pytest

from services.statistics_service import (
    annualized_mean_return,
    annualized_volatility,
    beta,
    cagr,
    correlation,
    correlation_matrix,
    covariance,
    covariance_matrix,
    cumulative_returns,
    efficient_frontier,
    normalize_weights,
    portfolio_returns,
    select_max_sharpe,
    select_min_volatility,
    select_target_return,
    sharpe_ratio,
    simple_returns,
    simulate_portfolios,
    stress_test,
    trailing_return,
    value_at_risk,
    variance,
)

SERIES_A = [0.01, -0.02, 0.015, 0.003, -0.007, 0.012]
SERIES_B = [0.02, -0.01, 0.005, -0.004, 0.001, 0.006]


class TestMoments:
    def test_simple_returns_from_prices(self):
        np.testing.assert_allclose(simple_returns([100, 110, 99]), [0.1, -0.1])

    def test_simple_returns_needs_two_prices(self):
        assert simple_returns([100]).size == 0

    def test_variance_is_population(self):
        assert variance([1.0, 3.0]) == pytest.approx(1.0)

    def test_covariance_of_series_with_itself_equals_variance(self):
        assert covariance(SERIES_A, SERIES_A) == pytest.approx(variance(SERIES_A))

    def test_identical_series_correlate_to_one(self):
        assert correlation(SERIES_A, SERIES_A) == pytest.approx(1.0)

    def test_inverse_series_correlate_to_minus_one(self):
        assert correlation(SERIES_A, [-r for r in SERIES_A]) == pytest.approx(-1.0)

    def test_constant_series_has_zero_correlation(self):
        assert correlation(SERIES_A, [0.01] * len(SERIES_A)) == 0.0

    def test_covariance_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            covariance([0.1, 0.2], [0.1])

    def test_covariance_matrix_diagonal_holds_variances(self):
        cov = covariance_matrix([SERIES_A, SERIES_B])
        assert cov[0, 0] == pytest.approx(variance(SERIES_A))
        assert cov[1, 1] == pytest.approx(variance(SERIES_B))
        assert cov[0, 1] == pytest.approx(covariance(SERIES_A, SERIES_B))


class TestPortfolioMetrics:
    def test_portfolio_returns_weighted_sum(self):
        result = portfolio_returns([[0.1, 0.2], [0.3, -0.1]], [0.5, 0.5])
        np.testing.assert_allclose(result, [0.2, 0.05])

    def test_portfolio_returns_weight_mismatch_raises(self):
        with pytest.raises(ValueError):
            portfolio_returns([[0.1, 0.2]], [0.5, 0.5])

    def test_beta_of_benchmark_against_itself_is_one(self):
        assert beta(SERIES_B, SERIES_B) == pytest.approx(1.0)

    def test_beta_scales_with_leverage(self):
        assert beta([2 * r for r in SERIES_B], SERIES_B) == pytest.approx(2.0)

    def test_annualized_volatility(self):
        assert annualized_volatility(SERIES_A) == pytest.approx(np.std(SERIES_A) * np.sqrt(252))

    def test_cumulative_returns(self):
        np.testing.assert_allclose(cumulative_returns([0.1, -0.5]), [1.1, 0.55])

    def test_cagr_over_one_year_equals_total_return(self):
        daily = [0.001] * 252
        assert cagr(daily) == pytest.approx(1.001**252 - 1)

    def test_cagr_empty_is_zero(self):
        assert cagr([]) == 0.0

    def test_trailing_return_uses_last_window(self):
        returns = [0.5] + [0.0] * 252
        assert trailing_return(returns) == pytest.approx(0.0)
        assert trailing_return([0.1, 0.1]) == pytest.approx(0.21)

    def test_sharpe_without_risk_free(self):
        expected = annualized_mean_return(SERIES_A) / annualized_volatility(SERIES_A)
        assert sharpe_ratio(SERIES_A) == pytest.approx(expected)

    def test_sharpe_subtracts_risk_free_when_given(self):
        expected = (annualized_mean_return(SERIES_A) - 0.05) / annualized_volatility(SERIES_A)
        assert sharpe_ratio(SERIES_A, risk_free_rate=0.05) == pytest.approx(expected)

    def test_sharpe_of_constant_series_is_zero(self):
        assert sharpe_ratio([0.01, 0.01, 0.01]) == 0.0


class TestCorrelationMatrix:
    def test_matrix_and_high_correlation_pairs(self):
        twin = [r * 1.01 for r in SERIES_A]
        data = correlation_matrix(["AAPL", "MSFT", "KO"], [SERIES_A, twin, SERIES_B])

        assert data.tickers == ["AAPL", "MSFT", "KO"]
        assert data.matrix[0][0] == pytest.approx(1.0)
        assert data.matrix[0][1] == pytest.approx(1.0)
        assert data.matrix[1][2] == pytest.approx(data.matrix[2][1])
        assert [(p.ticker1, p.ticker2) for p in data.high_correlation_pairs] == [("AAPL", "MSFT")]


class TestMonteCarlo:
    def _sim(self, min_weight=0.0, seed=7):
        mu = np.array([0.10, 0.15, 0.05])
        cov = np.array(
            [
                [0.04, 0.01, 0.00],
                [0.01, 0.09, 0.01],
                [0.00, 0.01, 0.01],
            ]
        )
        return simulate_portfolios(mu, cov, num_portfolios=3000, min_weight=min_weight, seed=seed)

    def test_normalize_weights(self):
        np.testing.assert_allclose(normalize_weights([1, 1, 2]), [0.25, 0.25, 0.5])

    def test_normalize_weights_rejects_zero_sum(self):
        with pytest.raises(ValueError):
            normalize_weights([0, 0])

    def test_weights_sum_to_one_and_honor_min_weight(self):
        sim = self._sim(min_weight=0.2)
        np.testing.assert_allclose(sim.weights.sum(axis=1), 1.0)
        assert sim.weights.min() >= 0.2 - 1e-12

    def test_infeasible_min_weight_raises(self):
        with pytest.raises(ValueError):
            simulate_portfolios([0.1, 0.2], np.eye(2), num_portfolios=10, min_weight=0.6)

    def test_seed_makes_simulation_reproducible(self):
        np.testing.assert_array_equal(self._sim(seed=3).weights, self._sim(seed=3).weights)

    def test_selections(self):
        sim = self._sim()
        max_idx = select_max_sharpe(sim)
        min_idx = select_min_volatility(sim)

        assert sim.sharpe[max_idx] == pytest.approx(sim.sharpe.max())
        assert sim.volatility[min_idx] == pytest.approx(sim.volatility.min())

    def test_target_return_picks_lowest_volatility_above_target(self):
        sim = self._sim()
        idx = select_target_return(sim, 0.12)

        assert sim.returns[idx] >= 0.12
        eligible = sim.volatility[sim.returns >= 0.12]
        assert sim.volatility[idx] == pytest.approx(eligible.min())

    def test_unreachable_target_returns_none(self):
        assert select_target_return(self._sim(), 0.5) is None

    def test_efficient_frontier_points(self):
        frontier = efficient_frontier(self._sim(), num_points=50)

        assert 0 < len(frontier.returns) <= 51
        assert len(frontier.returns) == len(frontier.volatility)
        assert frontier.returns == sorted(frontier.returns)


class TestRisk:
    def test_parametric_var(self):
        result = value_at_risk(SERIES_A)
        expected = -(np.mean(SERIES_A) - 1.645 * np.std(SERIES_A)) * 100
        assert result.var_1d == pytest.approx(expected)
        assert result.var_10d == pytest.approx(expected * np.sqrt(10))

    def test_stress_test_scales_by_beta(self):
        result = stress_test(portfolio_beta=1.5, benchmark="QQQ", benchmark_beta=1.2)

        assert [s.portfolio for s in result.hypothetical] == ["Cartera", "QQQ", "SPY"]
        cartera = result.hypothetical[0].scenarios
        assert cartera["SPY -10%"] == pytest.approx(-15.0)
        assert result.hypothetical[2].scenarios["SPY -30%"] == pytest.approx(-30.0)
        assert result.historical[1].scenarios["COVID-19 Crash (Mar 2020)"] == pytest.approx(-14.4)
