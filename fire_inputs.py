"""Form validation and URL query hydration for the FIRE calculator."""

from __future__ import annotations

import math
from typing import Optional, Union
from urllib.parse import parse_qs

from fire_core import (
    DEFAULT_VOLATILITY,
    DEFAULT_WITHDRAWAL_PERCENTAGE,
    SIMULATION_MODES,
    WITHDRAWAL_STRATEGIES,
    SimulationParameters,
)


# Default parameter values
FORM_DEFAULTS = {
    "starting_capital": 50_000,
    "monthly_savings": 1_500,
    "current_age": 25,
    "cagr": 7,
    "desired_monthly_allowance": 3_000,
    "inflation_rate": 2.3,
    "life_expectancy": 84,
    "retirement_age": 65,
    "coast_fire_age": None,
    "barista_income": 0,
    "simulation_mode": "deterministic",
    "volatility": DEFAULT_VOLATILITY,
    "withdrawal_strategy": "fixed",
    "withdrawal_percentage": DEFAULT_WITHDRAWAL_PERCENTAGE,
}

# (field, minimum, maximum, message when below, message when above)
FORM_BOUNDS = [
    ("starting_capital", 0, None, "Starting capital must be a non-negative number", None),
    ("monthly_savings", 0, None, "Monthly savings must be a non-negative number", None),
    ("current_age", 1, 100, "Age must be at least 1", "No point in starting this late"),
    ("cagr", 0, None, "Growth rate must be a non-negative number", None),
    (
        "desired_monthly_allowance", 0, None,
        "Monthly allowance must be a non-negative number", None,
    ),
    ("inflation_rate", 0, None, "Inflation rate must be a non-negative number", None),
    (
        "life_expectancy", 40, 100,
        "Be a bit more optimistic buddy :(", "You should be more realistic...",
    ),
    (
        "retirement_age", 20, 100,
        "Retirement age must be at least 20", "Retirement age must be at most 100",
    ),
    (
        "coast_fire_age", 20, 100,
        "Coast FIRE age must be at least 20", "Coast FIRE age must be at most 100",
    ),
    ("barista_income", 0, None, "Barista income must be a non-negative number", None),
    ("volatility", 0, None, "Volatility must be a non-negative number", None),
    (
        "withdrawal_percentage", 0, 100,
        "Withdrawal percentage must be between 0 and 100",
        "Withdrawal percentage must be between 0 and 100",
    ),
]

OPTIONAL_FIELDS = {"coast_fire_age", "barista_income"}

RETIRE_AT_AGE_PRESETS = (35, 40, 45, 50, 55, 60, 65, 70)

NumericParam = Union[str, int, float, None]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def _coerce_number(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name.replace('_', ' ').capitalize()} must be a number") from exc
    if not math.isfinite(number):
        raise ValueError(f"{name.replace('_', ' ').capitalize()} must be a number")
    return number


def validate_form_values(values: dict) -> dict:
    """
    Coerce raw form input and check it against the calculator bounds.

    Missing fields fall back to ``FORM_DEFAULTS``; blank optional fields stay
    unset. Raises ``ValueError`` with a message suitable for display.
    """
    cleaned = {}
    for key, default in FORM_DEFAULTS.items():
        raw = values.get(key)
        if isinstance(raw, str):
            raw = raw.strip()
        if raw is None or raw == "":
            cleaned[key] = default
            continue
        if key == "simulation_mode":
            if raw not in SIMULATION_MODES:
                raise ValueError(f"Unknown simulation mode: {raw}")
            cleaned[key] = raw
        elif key == "withdrawal_strategy":
            if raw not in WITHDRAWAL_STRATEGIES:
                raise ValueError(f"Unknown withdrawal strategy: {raw}")
            cleaned[key] = raw
        else:
            cleaned[key] = _coerce_number(key, raw)

    for key, low, high, low_msg, high_msg in FORM_BOUNDS:
        val = cleaned[key]
        if val is None and key in OPTIONAL_FIELDS:
            continue
        if low is not None and val < low:
            raise ValueError(low_msg)
        if high is not None and val > high:
            raise ValueError(high_msg)
    return cleaned


def params_from_form(values: dict) -> SimulationParameters:
    """Validate form input and build the engine parameters from it."""
    v = validate_form_values(values)
    coast = v["coast_fire_age"]
    return SimulationParameters(
        starting_capital=v["starting_capital"],
        monthly_savings=v["monthly_savings"],
        current_age=int(v["current_age"]),
        retirement_age=int(v["retirement_age"]),
        life_expectancy=int(v["life_expectancy"]),
        annual_growth_rate=v["cagr"],
        annual_inflation_rate=v["inflation_rate"],
        desired_monthly_allowance=v["desired_monthly_allowance"],
        coast_fire_age=None if coast is None else int(coast),
        barista_monthly_income=v["barista_income"] or 0.0,
        simulation_mode=v["simulation_mode"],
        annual_volatility=v["volatility"],
        withdrawal_strategy=v["withdrawal_strategy"],
        withdrawal_percentage=v["withdrawal_percentage"],
    )


def numeric_from_param(value: NumericParam) -> Optional[float]:
    """Parse a query value into a finite number, or ``None``."""
    if value is None:
        return None
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            parsed = float(value)
        except ValueError:
            return None
    else:
        parsed = float(value)
    if not math.isfinite(parsed):
        return None
    return parsed


def parse_age_param(age_param: NumericParam, fallback: int = 50) -> int:
    parsed = numeric_from_param(age_param)
    if parsed is None:
        return fallback
    return int(clamp(round_half_up(parsed), 30, 80))


def derive_default_inputs(
    target_age: float,
    current_age: Optional[float] = None,
    desired_monthly_allowance: Optional[float] = None,
    monthly_savings: Optional[float] = None,
    starting_capital: Optional[float] = None,
) -> dict:
    """
    Ballpark calculator inputs for someone aiming to retire at ``target_age``.

    Explicit values win over the age-based assumptions but are still clamped.
    """
    retirement_age = int(clamp(round_half_up(target_age), 30, 80))

    default_current_age = retirement_age - 15
    if retirement_age < 40:
        default_current_age = 22
    if default_current_age < 20:
        default_current_age = 20

    age = default_current_age if current_age is None else current_age
    current = int(clamp(round_half_up(age), 18, max(18, retirement_age - 1)))

    default_monthly_savings = 1_000
    default_starting_capital = 20_000
    if current >= 30:
        default_monthly_savings = 1_500
        default_starting_capital = 50_000
    if current >= 40:
        default_monthly_savings = 2_000
        default_starting_capital = 100_000
    if current >= 50:
        default_monthly_savings = 2_500
        default_starting_capital = 250_000

    savings = default_monthly_savings if monthly_savings is None else monthly_savings
    capital = default_starting_capital if starting_capital is None else starting_capital
    if desired_monthly_allowance is None:
        allowance = 4_000 if retirement_age < 50 else 5_000
    else:
        allowance = desired_monthly_allowance

    return {
        "current_age": current,
        "retirement_age": retirement_age,
        "desired_monthly_allowance": max(500, round_half_up(allowance)),
        "monthly_savings": int(clamp(round_half_up(savings), 0, 50_000)),
        "starting_capital": int(clamp(round_half_up(capital), 0, 100_000_000)),
        "life_expectancy": int(
            clamp(retirement_age + 30, retirement_age + 10, 110)
        ),
    }


def extract_numeric_search_param(
    value: Union[str, list, None],
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> Optional[float]:
    """Parse one query value (first element for repeated keys) and clamp it."""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    parsed = numeric_from_param(value)
    if parsed is None:
        return None
    if minimum is not None:
        parsed = max(parsed, minimum)
    if maximum is not None:
        parsed = min(parsed, maximum)
    return parsed


def _choice(value, choices) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return value if value in choices else None


def _first_present(search_params: dict, *names):
    for name in names:
        if search_params.get(name) is not None:
            return search_params[name]
    return None


def extract_calculator_values_from_search(
    search_params: dict, target_age: float
) -> dict:
    """
    Map URL query parameters onto calculator form values.

    Keys that are missing or unparseable come back as ``None`` unless the
    age-based defaults supply them. ``monthlySpend`` is deliberately not
    capped from above.
    """
    allowance = extract_numeric_search_param(
        _first_present(search_params, "monthlySpend", "monthlyAllowance"),
        minimum=0,
    )
    base = derive_default_inputs(
        target_age,
        current_age=extract_numeric_search_param(
            search_params.get("currentAge"), 1, 100
        ),
        desired_monthly_allowance=allowance,
        monthly_savings=extract_numeric_search_param(
            search_params.get("monthlySavings"), 0, 50_000
        ),
        starting_capital=extract_numeric_search_param(
            search_params.get("startingCapital"), minimum=0
        ),
    )

    retirement_age = extract_numeric_search_param(
        search_params.get("retirementAge"), 18, 100
    )
    life_expectancy = extract_numeric_search_param(
        search_params.get("lifeExpectancy"), 40, 110
    )
    values = dict(base)
    values.update(
        {
            "retirement_age": base["retirement_age"] if retirement_age is None else retirement_age,
            "cagr": extract_numeric_search_param(
                _first_present(search_params, "cagr", "growthRate"), 0, 30
            ),
            "inflation_rate": extract_numeric_search_param(
                search_params.get("inflationRate"), 0, 20
            ),
            "life_expectancy": base["life_expectancy"] if life_expectancy is None else life_expectancy,
            "simulation_mode": _choice(
                search_params.get("simulationMode"), SIMULATION_MODES
            ),
            "withdrawal_strategy": _choice(
                search_params.get("withdrawalStrategy"), WITHDRAWAL_STRATEGIES
            ),
            "withdrawal_percentage": extract_numeric_search_param(
                search_params.get("withdrawalPercentage"), 0, 100
            ),
            "volatility": extract_numeric_search_param(
                search_params.get("volatility"), minimum=0
            ),
            "coast_fire_age": extract_numeric_search_param(
                search_params.get("coastFireAge"), 18, 100
            ),
            "barista_income": extract_numeric_search_param(
                search_params.get("baristaIncome"), minimum=0
            ),
        }
    )
    return values


def values_from_query_string(query: str, target_age: float) -> dict:
    """Same as ``extract_calculator_values_from_search`` for a raw query string."""
    return extract_calculator_values_from_search(
        parse_qs(query.lstrip("?")), target_age
    )


# Form fields whose SimulationParameters / saved config name differs
FORM_TO_PARAM = {
    "cagr": "annual_growth_rate",
    "inflation_rate": "annual_inflation_rate",
    "barista_income": "barista_monthly_income",
    "volatility": "annual_volatility",
}


def form_values_from_config(config: dict) -> dict:
    """Flatten a saved configuration back into form values."""
    saved = {}
    for section in ("general", "user"):
        saved.update(config.get(section, {}))
    values = {}
    for key in FORM_DEFAULTS:
        name = FORM_TO_PARAM.get(key, key)
        if saved.get(name) is not None:
            values[key] = saved[name]
    return values


def merge_with_defaults(values: dict) -> dict:
    """Fill every unset form value from ``FORM_DEFAULTS``."""
    merged = dict(FORM_DEFAULTS)
    merged.update({k: v for k, v in values.items() if v is not None})
    return merged
