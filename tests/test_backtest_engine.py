"""Tests for the allocation simulator and the backtest orchestrator."""

import dataclasses
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta

import pytest

from regime_allocator.backtest_engine import (
    BacktestEngine,
    BacktestRequest,
    StrategySimulator,
    format_backtest_report,
    run_backtest,
    simulate_strategy,
)
from regime_allocator.config import ClassifierParameters, SimulationParameters
from regime_allocator.exceptions import InsufficientDataError, InvalidInputError
from regime_allocator.regime_detector import Regime, compute_simple_returns


# -----------------------------------------------------------------------------
# Simulator
# -----------------------------------------------------------------------------

class TestStrategySimulator:
    def test_all_bull_tracks_buy_and_hold(self):
        prices = [100.0, 101.0, 99.0, 102.0]
        returns = compute_simple_returns(prices)
        sim = simulate_strategy(prices, returns, [Regime.BULL] * 3)

        assert sim.strategy_equity == sim.buy_and_hold_equity
        assert sim.buy_and_hold_equity[-1] == pytest.approx(102.0)
        assert sim.trade_count == 0
        assert sim.total_turnover == 0.0

    def test_all_bear_stays_in_cash(self):
        prices = [100.0, 90.0, 80.0, 120.0]
        returns = compute_simple_returns(prices)
        sim = simulate_strategy(prices, returns, [Regime.BEAR] * 3)

        assert sim.strategy_equity == (100.0, 100.0, 100.0, 100.0)
        assert sim.allocations == (1.0, 0.0, 0.0, 0.0)
        assert sim.trade_count == 1
        assert sim.total_turnover == 1.0

    def test_curves_start_at_initial_equity(self):
        prices = [50.0, 55.0]
        sim = simulate_strategy(prices, compute_simple_returns(prices), [Regime.BEAR])

        assert sim.strategy_equity[0] == 100.0
        assert sim.buy_and_hold_equity[0] == 100.0
        assert sim.allocations[0] == 1.0

    def test_same_day_gating(self):
        # Bear on return 1 skips exactly that day's -10%
        prices = [100.0, 110.0, 99.0, 108.9]
        returns = compute_simple_returns(prices)
        sim = simulate_strategy(prices, returns, [Regime.BULL, Regime.BEAR, Regime.BULL])

        assert sim.strategy_equity[1] == pytest.approx(110.0)
        assert sim.strategy_equity[2] == pytest.approx(110.0)
        assert sim.strategy_equity[3] == pytest.approx(121.0)
        assert sim.trade_count == 2
        assert sim.total_turnover == pytest.approx(2.0)

    def test_small_allocation_change_is_not_a_trade(self):
        params = SimulationParameters(bear_allocation=0.995)
        prices = [100.0, 101.0, 102.0]
        sim = StrategySimulator(params).simulate(
            prices, compute_simple_returns(prices), [Regime.BEAR, Regime.BULL]
        )

        assert sim.trade_count == 0
        assert sim.total_turnover == 0.0

    def test_length_mismatch(self):
        prices = [100.0, 101.0, 102.0]
        returns = compute_simple_returns(prices)

        with pytest.raises(InvalidInputError):
            simulate_strategy(prices, returns, [Regime.BULL])
        with pytest.raises(InvalidInputError):
            simulate_strategy(prices[:2], returns, [Regime.BULL, Regime.BULL])


# -----------------------------------------------------------------------------
# Orchestrator: scenarios
# -----------------------------------------------------------------------------

class TestRunBacktest:
    def test_rising_prices_match_buy_and_hold(self, rising_prices, make_dates):
        result = run_backtest(rising_prices, make_dates(60), sensitivity=1, symbol="test")

        assert result.symbol == "TEST"
        assert all(row.regime is Regime.BULL for row in result.chart_data)
        assert result.strategy.trade_count == 0
        assert result.strategy.turnover == 0.0
        for name in ('cumulative_return', 'annualized_return', 'volatility',
                     'sharpe_ratio', 'max_drawdown'):
            assert getattr(result.strategy, name) == getattr(result.buy_and_hold, name)

    def test_drop_scenario(self, drop_scenario_prices, make_dates):
        dates = make_dates(60)
        result = run_backtest(drop_scenario_prices, dates, sensitivity=3, symbol="SPY")

        bear_rows = [i for i, row in enumerate(result.chart_data) if row.regime is Regime.BEAR]
        assert bear_rows == list(range(5, 29))

        assert result.strategy.trade_count == 2
        assert result.strategy.turnover == pytest.approx(2.0 / (59 / 252))

        final = result.chart_data[-1]
        assert final.strategy_equity == pytest.approx(104.0 * 1.001 ** 31, rel=1e-9)
        assert final.buy_and_hold_equity == pytest.approx(100.0 * 1.001 ** 50, rel=1e-9)
        assert result.buy_and_hold.cumulative_return == pytest.approx(1.001 ** 50 - 1, rel=1e-9)

        # Cash through the 110 -> 85 slide: strategy drawdown is only what
        # happened before the switch
        assert result.strategy.max_drawdown < result.buy_and_hold.max_drawdown
        assert result.buy_and_hold.max_drawdown == pytest.approx(25.0 / 110.0)

    def test_chart_rows(self, drop_scenario_prices, make_dates):
        dates = make_dates(60)
        result = run_backtest(drop_scenario_prices, dates, sensitivity=3)

        assert len(result.chart_data) == 60
        first = result.chart_data[0]
        assert first.date == dates[0]
        assert first.price == 100.0
        assert first.regime is Regime.BULL
        assert first.allocation == 1.0
        assert first.strategy_equity == 100.0
        assert first.buy_and_hold_equity == 100.0

        assert [row.date for row in result.chart_data] == dates
        assert [row.price for row in result.chart_data] == drop_scenario_prices
        for row in result.chart_data:
            assert row.allocation == (1.0 if row.regime is Regime.BULL else 0.0)

        assert result.start_price == 100.0
        assert result.end_price == pytest.approx(100.0 * 1.001 ** 50)
        assert result.start_date == dates[0]
        assert result.end_date == dates[-1]

    def test_all_bear_after_first_observation(self, make_dates):
        # A one-observation minimum lets the very first -3% day register as Bear
        prices = [100.0 * 0.97 ** i for i in range(60)]
        engine = BacktestEngine(classifier_params=ClassifierParameters(min_observations=1))
        result = engine.run(BacktestRequest.create(prices, make_dates(60), 3, symbol="DOWN"))

        assert all(r is Regime.BEAR for r in result.regimes)
        assert result.chart_data[0].strategy_equity == 100.0
        assert all(row.strategy_equity == 100.0 for row in result.chart_data[1:])
        for row in result.chart_data:
            assert row.buy_and_hold_equity == pytest.approx(row.price)
        assert result.strategy.cumulative_return == 0.0
        assert result.strategy.trade_count == 1

    def test_falling_prices_go_to_cash(self, make_dates):
        prices = [100.0 * 0.97 ** i for i in range(60)]
        result = run_backtest(prices, make_dates(60), sensitivity=3)

        # The first four returns fall back to Bull; cash from row 5 on
        assert result.regimes[:4] == [Regime.BULL] * 4
        assert all(r is Regime.BEAR for r in result.regimes[4:])
        flat = result.chart_data[4].strategy_equity
        assert all(row.strategy_equity == flat for row in result.chart_data[5:])
        assert flat == pytest.approx(100.0 * 0.97 ** 4)

    def test_exactly_minimum_observations(self, make_dates):
        prices = [100.0 * 1.002 ** i for i in range(50)]
        result = run_backtest(prices, make_dates(50), sensitivity=2)

        assert result.trading_days == 50

    def test_rolling_method_matches_window(self, drop_scenario_prices, make_dates):
        dates = make_dates(60)
        window = run_backtest(drop_scenario_prices, dates, 3, method="window")
        rolling = run_backtest(drop_scenario_prices, dates, 3, method="rolling")

        assert rolling.regimes == window.regimes
        assert rolling.strategy == window.strategy
        assert rolling.method == "rolling"

    def test_accepts_strings_and_datetimes(self, rising_prices):
        iso = [(date(2023, 1, 1) + timedelta(days=i)).isoformat() for i in range(60)]
        result = run_backtest(rising_prices, iso, sensitivity=1)
        assert result.start_date == date(2023, 1, 1)

        stamps = [datetime(2023, 1, 1, 16, 0) + timedelta(days=i) for i in range(60)]
        result = run_backtest(rising_prices, stamps, sensitivity=1)
        assert isinstance(result.start_date, date)
        assert result.end_date == date(2023, 3, 1)

    def test_inputs_not_mutated(self, drop_scenario_prices, make_dates):
        prices = list(drop_scenario_prices)
        dates = make_dates(60)
        dates_before = list(dates)

        run_backtest(prices, dates, sensitivity=3)

        assert prices == drop_scenario_prices
        assert dates == dates_before

    def test_result_is_immutable(self, rising_prices, make_dates):
        result = run_backtest(rising_prices, make_dates(60), sensitivity=1)

        with pytest.raises(dataclasses.FrozenInstanceError):
            result.strategy.sharpe_ratio = 10.0
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.chart_data[0].price = 1.0

    def test_repeated_runs_are_identical(self, drop_scenario_prices, make_dates):
        dates = make_dates(60)
        assert run_backtest(drop_scenario_prices, dates, 3) == run_backtest(drop_scenario_prices, dates, 3)

    def test_concurrent_runs(self, drop_scenario_prices, make_dates):
        dates = make_dates(60)
        engine = BacktestEngine()
        request = BacktestRequest.create(drop_scenario_prices, dates, 3, symbol="SPY")
        expected = engine.run(request)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: engine.run(request), range(8)))

        assert all(r == expected for r in results)

    def test_regime_analysis_lines_up_with_chart(self, drop_scenario_prices, make_dates):
        result = run_backtest(drop_scenario_prices, make_dates(60), 3)
        analysis = result.regime_analysis()

        assert analysis.by_regime['Bear'].days == 24
        assert analysis.by_regime['Bull'].days == 35

    def test_to_frame_and_to_dict(self, drop_scenario_prices, make_dates):
        result = run_backtest(drop_scenario_prices, make_dates(60), 3, symbol="spy")

        frame = result.to_frame()
        assert list(frame.columns) == [
            'price', 'regime', 'allocation', 'strategy_equity', 'buy_and_hold_equity'
        ]
        assert len(frame) == 60
        assert frame['regime'].iloc[5] == 'Bear'

        payload = result.to_dict()
        assert payload['symbol'] == 'SPY'
        assert payload['metrics']['strategy']['trade_count'] == 2
        assert payload['chart_data'][0]['date'] == result.start_date.isoformat()

    def test_format_report(self, drop_scenario_prices, make_dates):
        result = run_backtest(drop_scenario_prices, make_dates(60), 3, symbol="SPY")
        text = format_backtest_report(result)

        assert "REGIME ALLOCATION BACKTEST REPORT" in text
        assert "Symbol: SPY" in text
        assert "Trade Count:     2" in text
        assert "Bear Days: 24 of 59" in text


# -----------------------------------------------------------------------------
# Orchestrator: validation
# -----------------------------------------------------------------------------

class TestValidation:
    def test_too_few_prices(self, make_dates):
        prices = [100.0 + i for i in range(49)]

        with pytest.raises(InsufficientDataError) as exc:
            run_backtest(prices, make_dates(49), sensitivity=3)

        assert exc.value.available == 49
        assert exc.value.required == 50
        assert exc.value.reason == "insufficient_data"
        assert "at least 50" in str(exc.value)

    @pytest.mark.parametrize("symbol", ["", "   "])
    def test_empty_symbol(self, symbol, rising_prices, make_dates):
        with pytest.raises(InvalidInputError):
            run_backtest(rising_prices, make_dates(60), 3, symbol=symbol)

    @pytest.mark.parametrize("sensitivity", [0, -2, 1.5, True])
    def test_bad_sensitivity(self, sensitivity, rising_prices, make_dates):
        with pytest.raises(InvalidInputError):
            run_backtest(rising_prices, make_dates(60), sensitivity)

    def test_length_mismatch(self, rising_prices, make_dates):
        with pytest.raises(InvalidInputError):
            run_backtest(rising_prices, make_dates(59), 3)

    def test_symbol_checked_before_length(self, make_dates):
        # An empty symbol is reported even when data is also too short
        with pytest.raises(InvalidInputError):
            run_backtest([100.0] * 10, make_dates(10), 3, symbol="")

    def test_mismatch_checked_before_minimum(self, make_dates):
        with pytest.raises(InvalidInputError):
            run_backtest([100.0] * 10, make_dates(11), 3)

    @pytest.mark.parametrize("bad", [float('nan'), float('inf'), 0.0, -5.0, "abc", None])
    def test_bad_price(self, bad, rising_prices, make_dates):
        prices = list(rising_prices)
        prices[30] = bad

        with pytest.raises(InvalidInputError):
            run_backtest(prices, make_dates(60), 3)

    def test_unsorted_dates(self, rising_prices, make_dates):
        dates = make_dates(60)
        dates[10], dates[11] = dates[11], dates[10]

        with pytest.raises(InvalidInputError):
            run_backtest(rising_prices, dates, 3)

    def test_duplicate_dates(self, rising_prices, make_dates):
        dates = make_dates(60)
        dates[11] = dates[10]

        with pytest.raises(InvalidInputError):
            run_backtest(rising_prices, dates, 3)

    def test_unparseable_dates(self, rising_prices, make_dates):
        dates = make_dates(60)
        dates[3] = "not-a-date"

        with pytest.raises(InvalidInputError):
            run_backtest(rising_prices, dates, 3)

    def test_unknown_method(self):
        with pytest.raises(InvalidInputError):
            BacktestEngine(method="hmm")

    def test_errors_are_value_errors(self, make_dates):
        with pytest.raises(ValueError):
            run_backtest([100.0] * 60, make_dates(60), 0)
