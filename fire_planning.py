"""Closed-form FIRE rules of thumb: nest egg, 4% rule, Coast FIRE and FIRE by age."""

from __future__ import annotations

import math
from dataclasses import dataclass

from fire_inputs import round_half_up


@dataclass
class SpendScenario:
    key: str
    label: str
    monthly_spend: int
    annual_spend: int
    nest_egg: float
    withdrawal_rate: float


SPEND_LEVELS = [
    ("lean", "Lean FIRE", 0.8),
    ("baseline", "Classic FIRE", 1.0),
    ("comfortable", "Fat FIRE", 1.25),
]


def calculate_nest_egg_from_spend(
    monthly_spend: float, withdrawal_rate: float = 0.04
) -> float:
    """Portfolio that funds ``monthly_spend`` at ``withdrawal_rate`` (rule of 25 at 4%)."""
    safe_rate = withdrawal_rate if withdrawal_rate > 0 else 0.0001
    return max(0.0, monthly_spend) * 12 / safe_rate


def build_spend_scenarios(
    base_monthly_spend: float, withdrawal_rate: float = 0.04
) -> list[SpendScenario]:
    normalized = max(500, base_monthly_spend)
    scenarios = []
    for key, label, multiplier in SPEND_LEVELS:
        monthly = round_half_up(normalized * multiplier)
        scenarios.append(
            SpendScenario(
                key=key,
                label=label,
                monthly_spend=monthly,
                annual_spend=monthly * 12,
                nest_egg=calculate_nest_egg_from_spend(monthly, withdrawal_rate),
                withdrawal_rate=withdrawal_rate,
            )
        )
    return scenarios


def fire_number_for_expenses(
    annual_expenses: float, withdrawal_rate_percent: float = 4.0
) -> int:
    safe_rate = withdrawal_rate_percent if withdrawal_rate_percent > 0 else 0.01
    return round_half_up(annual_expenses / (safe_rate / 100))


def safe_withdrawal(portfolio: float, withdrawal_rate_percent: float = 4.0) -> int:
    return round_half_up(portfolio * (withdrawal_rate_percent / 100))


def years_to_fire(
    portfolio: float,
    fire_number: float,
    monthly_savings: float = 2_000,
    growth_rate: float = 0.07,
) -> float:
    """
    Years of annual saving and compounding until ``portfolio`` reaches
    ``fire_number``; zero when already there, infinite when never.
    """
    if portfolio >= fire_number:
        return 0.0
    yearly = monthly_savings * 12
    if growth_rate == 0:
        return (fire_number - portfolio) / yearly if yearly > 0 else math.inf
    annual = yearly / growth_rate
    start = portfolio + annual
    target = fire_number + annual
    if growth_rate <= -1 or start <= 0 or target / start <= 0:
        return math.inf
    years = math.log(target / start) / math.log(1 + growth_rate)
    return years if years >= 0 else math.inf


def monthly_savings_for_gap(gap: float, expected_return: float, years: int) -> float:
    """Level monthly saving that closes ``gap`` in ``years`` at ``expected_return`` percent."""
    if years <= 0 or gap <= 0:
        return 0.0
    monthly_return = expected_return / 100 / 12
    months = years * 12
    if monthly_return == 0:
        return gap / months
    return gap * monthly_return / ((1 + monthly_return) ** months - 1)


@dataclass
class CoastFireSummary:
    years_until_retirement: int
    target_fire_number: float
    coast_fire_number: float
    projected_portfolio: float
    gap_to_coast_fire: float
    growth_multiple: float
    is_coast_fire: bool

    def savings_to_coast(self, years: int, expected_return: float) -> float:
        if self.is_coast_fire:
            return 0.0
        return monthly_savings_for_gap(self.gap_to_coast_fire, expected_return, years)


def coast_fire_summary(
    current_age: int,
    retirement_age: int,
    portfolio: float,
    annual_expenses: float,
    expected_return: float,
) -> CoastFireSummary:
    years = retirement_age - current_age
    target = annual_expenses * 25
    growth = 1 + expected_return / 100
    coast = target / growth ** years if years > 0 else target
    return CoastFireSummary(
        years_until_retirement=years,
        target_fire_number=target,
        coast_fire_number=coast,
        projected_portfolio=portfolio * growth ** years,
        gap_to_coast_fire=max(coast - portfolio, 0.0),
        growth_multiple=growth ** years,
        is_coast_fire=portfolio >= coast,
    )


def withdrawal_rate_for_age(age: int) -> float:
    """Safe withdrawal rate in percent; earlier retirements need lower rates."""
    if age <= 35:
        return 3.0
    if age <= 40:
        return 3.5
    if age <= 45:
        return 3.75
    if age <= 50:
        return 4.0
    return 4.25


@dataclass
class FireByAgeSummary:
    withdrawal_rate: float
    fire_number: float
    future_value_of_savings: float
    gap: float
    required_monthly_savings: float
    savings_rate: float


def fire_by_age_summary(
    current_age: int,
    target_retirement_age: int,
    current_savings: float,
    annual_expenses: float,
    expected_return: float,
    current_income: float,
) -> FireByAgeSummary:
    years = target_retirement_age - current_age
    rate = withdrawal_rate_for_age(target_retirement_age)
    fire_number = annual_expenses * (100 / rate)
    future_value = current_savings * (1 + expected_return / 100) ** years
    gap = fire_number - future_value
    monthly = monthly_savings_for_gap(gap, expected_return, years)
    savings_rate = monthly * 12 / current_income * 100 if current_income > 0 else 0.0
    return FireByAgeSummary(
        withdrawal_rate=rate,
        fire_number=fire_number,
        future_value_of_savings=future_value,
        gap=gap,
        required_monthly_savings=monthly,
        savings_rate=savings_rate,
    )


def _years_text(years: float) -> str:
    return "never at these savings" if math.isinf(years) else f"{years:.1f}"


def planning_summary_lines(params) -> list[str]:
    """
    Rule-of-thumb figures for a set of calculator inputs.

    ``params`` is a ``fire_core.SimulationParameters``; the withdrawal
    percentage drives the 4% rule figures and the spend scenarios.
    """
    annual_expenses = params.desired_monthly_allowance * 12
    rate = params.withdrawal_percentage
    target = fire_number_for_expenses(annual_expenses, rate)
    years = years_to_fire(
        params.starting_capital,
        target,
        params.monthly_savings,
        params.annual_growth_rate / 100,
    )
    coast = coast_fire_summary(
        params.current_age,
        params.retirement_age,
        params.starting_capital,
        annual_expenses,
        params.annual_growth_rate,
    )
    by_age = fire_by_age_summary(
        params.current_age,
        params.retirement_age,
        params.starting_capital,
        annual_expenses,
        params.annual_growth_rate,
        0.0,
    )

    lines = [
        f"  FIRE number at {rate:.2f}% withdrawal: ${target:,.0f}",
        f"  Safe yearly withdrawal from today's capital: "
        f"${safe_withdrawal(params.starting_capital, rate):,.0f}",
        f"  Years to reach it with current savings: {_years_text(years)}",
        f"  Coast FIRE number today: ${coast.coast_fire_number:,.0f}"
        + (" (reached)" if coast.is_coast_fire else
           f" (gap ${coast.gap_to_coast_fire:,.0f})"),
        f"  Suggested withdrawal rate for retiring at {params.retirement_age}: "
        f"{by_age.withdrawal_rate:.2f}%, needing "
        f"${by_age.required_monthly_savings:,.0f}/month",
    ]
    for scenario in build_spend_scenarios(
        params.desired_monthly_allowance, max(rate, 0.0) / 100
    ):
        lines.append(
            f"  {scenario.label}: ${scenario.monthly_spend:,}/month "
            f"needs ${scenario.nest_egg:,.0f}"
        )
    return lines
