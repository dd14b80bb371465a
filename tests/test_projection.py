import logging

import numpy as np
import pytest

from fire_core import MONTE_CARLO_SIMULATIONS, SimulationParameters, simulate


def _make_params(**overrides) -> SimulationParameters:
    values = dict(
        starting_capital=0.0,
        monthly_savings=0.0,
        current_age=30,
        retirement_age=65,
        life_expectancy=90,
        annual_growth_rate=0.0,
        annual_inflation_rate=0.0,
        desired_monthly_allowance=0.0,
    )
    values.update(overrides)
    return SimulationParameters(**values)


def _balances(result):
    return [r.median_balance for r in result.yearly_records]


def test_linear_decumulation_without_growth_or_inflation():
    params = _make_params(
        starting_capital=2_000_000.0,
        current_age=40,
        retirement_age=50,
        life_expectancy=90,
        desired_monthly_allowance=3_000.0,
    )
    result = simulate(params)

    for record in result.yearly_records:
        # the retirement year itself already carries a withdrawal
        years_retired = max(0, record.age - params.retirement_age + 1)
        assert record.median_balance == pytest.approx(
            2_000_000.0 - 3_000.0 * 12 * years_retired
        )


def test_contributions_stop_at_coast_fire_age():
    params = _make_params(
        starting_capital=10_000.0,
        monthly_savings=1_000.0,
        coast_fire_age=40,
        annual_growth_rate=5.0,
    )
    balances = _balances(simulate(params))

    for y in range(1, len(balances)):
        age = params.current_age + y
        if age < 40:
            assert balances[y] == pytest.approx(balances[y - 1] * 1.05 + 12_000.0)
        elif age < 65:
            assert balances[y] == pytest.approx(balances[y - 1] * 1.05)


def test_coast_sub_period_is_still_accumulation():
    result = simulate(_make_params(monthly_savings=500.0, coast_fire_age=40))
    for record in result.yearly_records:
        expected = "retirement" if record.age >= 65 else "accumulation"
        assert record.phase == expected
    assert result.record_for_age(50).median_balance == pytest.approx(9 * 6_000.0)


def test_deterministic_percentiles_collapse():
    params = _make_params(
        starting_capital=100_000.0,
        monthly_savings=1_500.0,
        annual_growth_rate=7.0,
        annual_inflation_rate=2.3,
        desired_monthly_allowance=3_000.0,
    )
    result = simulate(params)

    assert result.success_rate is None
    for record in result.yearly_records:
        assert record.percentile10_balance == record.median_balance
        assert record.percentile90_balance == record.median_balance


def test_zero_volatility_monte_carlo_matches_deterministic():
    common = dict(
        starting_capital=50_000.0,
        monthly_savings=1_500.0,
        current_age=25,
        retirement_age=55,
        life_expectancy=84,
        annual_growth_rate=7.0,
        annual_inflation_rate=2.3,
        desired_monthly_allowance=3_000.0,
        barista_monthly_income=500.0,
        coast_fire_age=45,
    )
    deterministic = simulate(_make_params(**common))
    monte_carlo = simulate(
        _make_params(simulation_mode="monte-carlo", annual_volatility=0.0, **common),
        rng=np.random.default_rng(3),
    )

    assert monte_carlo.fire_number == deterministic.fire_number
    for mc, det in zip(monte_carlo.yearly_records, deterministic.yearly_records):
        assert mc.median_balance == det.median_balance
        assert mc.percentile10_balance == det.median_balance
        assert mc.percentile90_balance == det.median_balance


def test_success_rate_bounds_and_granularity():
    params = _make_params(
        starting_capital=500_000.0,
        monthly_savings=2_000.0,
        current_age=35,
        retirement_age=55,
        life_expectancy=90,
        annual_growth_rate=6.0,
        annual_inflation_rate=2.0,
        desired_monthly_allowance=5_000.0,
        simulation_mode="monte-carlo",
        annual_volatility=18.0,
    )
    result = simulate(params, rng=np.random.default_rng(11))

    assert 0.0 <= result.success_rate <= 100.0
    successes = result.success_rate / 100 * MONTE_CARLO_SIMULATIONS
    assert successes == pytest.approx(round(successes))


@pytest.mark.parametrize(
    "allowance, expected",
    [
        (0.0, 100.0),
        (1_000_000.0, 0.0),
    ],
)
def test_success_rate_extremes(allowance, expected):
    params = _make_params(
        starting_capital=1_000_000.0,
        annual_growth_rate=5.0,
        desired_monthly_allowance=allowance,
        simulation_mode="monte-carlo",
        annual_volatility=1.0,
    )
    assert simulate(params, rng=np.random.default_rng(5)).success_rate == expected


def test_monte_carlo_bands_are_ordered():
    params = _make_params(
        starting_capital=100_000.0,
        monthly_savings=1_000.0,
        annual_growth_rate=7.0,
        simulation_mode="monte-carlo",
        annual_volatility=15.0,
    )
    result = simulate(params, rng=np.random.default_rng(21))

    for record in result.yearly_records:
        assert record.percentile10_balance <= record.median_balance
        assert record.median_balance <= record.percentile90_balance
        assert record.untouched_balance is None
    assert result.yearly_records[-1].percentile10_balance < result.yearly_records[-1].percentile90_balance


def test_seeded_generator_reproduces_monte_carlo_run():
    params = _make_params(
        starting_capital=250_000.0,
        annual_growth_rate=6.0,
        desired_monthly_allowance=2_000.0,
        simulation_mode="monte-carlo",
    )
    first = simulate(params, rng=np.random.default_rng(99))
    second = simulate(params, rng=np.random.default_rng(99))

    assert _balances(first) == _balances(second)
    assert first.success_rate == second.success_rate


def test_accumulation_matches_ordinary_annuity():
    params = _make_params(
        monthly_savings=2_000.0,
        annual_growth_rate=7.0,
    )
    result = simulate(params)

    # Contributions at ages 31-64, then one year of growth only at 65
    saved = 24_000.0 * (1.07 ** 34 - 1) / 0.07
    assert result.fire_number == pytest.approx(saved * 1.07, rel=1e-9)
    assert result.fire_number == pytest.approx(3_293_700, rel=0.001)


def test_fixed_allowance_drawdown_crosses_zero_after_twenty_years():
    params = _make_params(
        starting_capital=1_000_000.0,
        current_age=65,
        retirement_age=65,
        life_expectancy=95,
        desired_monthly_allowance=4_000.0,
    )
    result = simulate(params)
    balances = _balances(result)

    assert result.fire_number == 1_000_000.0
    for y in range(1, len(balances)):
        assert balances[y - 1] - balances[y] == pytest.approx(48_000.0)
    assert balances[20] > 0
    assert balances[21] < 0


def test_negative_balance_keeps_compounding():
    params = _make_params(
        starting_capital=100_000.0,
        current_age=60,
        retirement_age=61,
        life_expectancy=70,
        annual_growth_rate=10.0,
        desired_monthly_allowance=10_000.0,
    )
    balances = _balances(simulate(params))

    assert balances[1] == pytest.approx(100_000.0 * 1.1 - 120_000.0)
    assert balances[2] == pytest.approx(balances[1] * 1.1 - 120_000.0)
    assert balances[-1] < balances[1] < 0


@pytest.mark.parametrize(
    "current_age, life_expectancy",
    [
        (70, 65),
        (65, 65),
    ],
)
def test_no_simulated_years_reports_error(current_age, life_expectancy):
    params = _make_params(
        current_age=current_age,
        retirement_age=67,
        life_expectancy=life_expectancy,
    )
    result = simulate(params)

    assert result.fire_number is None
    assert result.error_message
    assert result.yearly_records == []
    assert not result.ok


def test_retirement_age_outside_projection_reports_error():
    params = _make_params(retirement_age=95, life_expectancy=85)
    result = simulate(params)

    assert result.fire_number is None
    assert "95" in result.error_message
    assert len(result.yearly_records) == 56


def test_inconsistent_retirement_age_is_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="fire_core"):
        result = simulate(_make_params(retirement_age=95, life_expectancy=85))
    assert caplog.messages == [result.error_message]


def test_barista_income_offsets_withdrawals():
    params = _make_params(
        starting_capital=1_000_000.0,
        current_age=60,
        retirement_age=60,
        life_expectancy=70,
        desired_monthly_allowance=4_000.0,
        barista_monthly_income=1_500.0,
    )
    balances = _balances(simulate(params))
    assert balances[1] == pytest.approx(1_000_000.0 - 2_500.0 * 12)


def test_allowance_inflates_from_year_zero():
    params = _make_params(
        starting_capital=2_000_000.0,
        current_age=60,
        retirement_age=62,
        life_expectancy=70,
        annual_inflation_rate=3.0,
        desired_monthly_allowance=2_000.0,
    )
    result = simulate(params)
    records = result.yearly_records

    assert records[0].inflated_monthly_allowance == pytest.approx(2_000.0)
    assert records[5].inflated_monthly_allowance == pytest.approx(2_000.0 * 1.03 ** 5)
    assert records[1].spending_allowance == 0.0
    assert records[2].spending_allowance == records[2].inflated_monthly_allowance
    assert records[2].median_balance == pytest.approx(
        2_000_000.0 - 2_000.0 * 1.03 ** 2 * 12
    )


def test_untouched_track_ignores_phase():
    params = _make_params(
        starting_capital=10_000.0,
        monthly_savings=100.0,
        current_age=60,
        retirement_age=62,
        life_expectancy=65,
        annual_growth_rate=10.0,
        desired_monthly_allowance=1_000.0,
        coast_fire_age=61,
    )
    records = simulate(params).yearly_records

    expected = 10_000.0
    assert records[0].untouched_balance == expected
    for record in records[1:]:
        expected = expected * 1.1 + 1_200.0
        assert record.untouched_balance == pytest.approx(expected)


def test_percentage_strategy_still_withdraws_fixed_allowance():
    common = dict(
        starting_capital=1_000_000.0,
        current_age=60,
        retirement_age=61,
        life_expectancy=80,
        annual_growth_rate=5.0,
        annual_inflation_rate=2.0,
        desired_monthly_allowance=3_000.0,
    )
    fixed = simulate(_make_params(**common))
    percentage = simulate(
        _make_params(withdrawal_strategy="percentage", withdrawal_percentage=10.0, **common)
    )
    assert _balances(fixed) == _balances(percentage)


def test_coast_fire_age_defaults_to_retirement_age():
    params = _make_params(retirement_age=58)
    assert params.coast_fire_age is None
    assert params.effective_coast_fire_age == 58


def test_unset_coast_age_follows_later_retirement_age():
    params = _make_params(monthly_savings=1_000.0, retirement_age=50)
    params.retirement_age = 60
    balances = _balances(simulate(params))
    # contributions continue through age 59
    assert balances[59 - params.current_age] == pytest.approx(12_000.0 * 29)


@pytest.mark.parametrize(
    "field, value",
    [
        ("simulation_mode", "monteCarlo"),
        ("withdrawal_strategy", "variable"),
    ],
)
def test_unknown_choices_rejected(field, value):
    with pytest.raises(ValueError):
        _make_params(**{field: value})
