"""Core functionality for FIRE projections."""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from numba import njit, prange


logger = logging.getLogger(__name__)


# Monte Carlo ensemble size (fixed)
MONTE_CARLO_SIMULATIONS = 500

SIMULATION_MODES = ("deterministic", "monte-carlo")
WITHDRAWAL_STRATEGIES = ("fixed", "percentage")

# Percentile ranks reported for every year of the projection
PERCENTILE_LOW = 0.10
PERCENTILE_MID = 0.50
PERCENTILE_HIGH = 0.90

DEFAULT_VOLATILITY = 15.0
DEFAULT_WITHDRAWAL_PERCENTAGE = 4.0

CONFIG_FILE = "fire_config.json"


def parse_percent(val: str, maximum: Optional[float] = 100.0) -> float:
    """
    Convert a percentage string like '7%' to the float 7.0.

    ``maximum=None`` accepts any non-negative value (volatility).
    """

    try:
        pct = float(val.strip().rstrip("%"))
    except ValueError as exc:  # pragma: no cover - error path simple
        raise ValueError(f"Invalid percentage: {val!r}") from exc
    if maximum is None:
        if not pct >= 0:
            raise ValueError("Percentage cannot be negative")
    elif not 0 <= pct <= maximum:
        raise ValueError(f"Percentage must be between 0% and {maximum:g}%")
    return pct


def parse_dollars(val: str) -> float:
    """Convert a currency string like '$1,234' to a float 1234.0."""

    try:
        amt = float(val.replace("$", "").replace(",", "").strip())
    except ValueError as exc:  # pragma: no cover - error path simple
        raise ValueError(f"Invalid dollar amount: {val!r}") from exc
    if amt < 0:
        raise ValueError("Dollar amount cannot be negative")
    return amt


@dataclass
class SimulationParameters:
    starting_capital: float
    monthly_savings: float
    current_age: int
    retirement_age: int
    life_expectancy: int
    annual_growth_rate: float
    annual_inflation_rate: float
    desired_monthly_allowance: float
    coast_fire_age: Optional[int] = None
    barista_monthly_income: float = 0.0
    simulation_mode: str = "deterministic"
    annual_volatility: float = DEFAULT_VOLATILITY
    withdrawal_strategy: str = "fixed"
    # Carried for the form and URL layers; withdrawals always use the
    # inflation-adjusted allowance.
    withdrawal_percentage: float = DEFAULT_WITHDRAWAL_PERCENTAGE

    def __post_init__(self) -> None:
        if self.simulation_mode not in SIMULATION_MODES:
            raise ValueError(f"Unknown simulation mode: {self.simulation_mode}")
        if self.withdrawal_strategy not in WITHDRAWAL_STRATEGIES:
            raise ValueError(
                f"Unknown withdrawal strategy: {self.withdrawal_strategy}"
            )
    @property
    def effective_coast_fire_age(self) -> int:
        """Age at which contributions stop; the retirement age when unset."""
        if self.coast_fire_age is None:
            return self.retirement_age
        return self.coast_fire_age

    @property
    def is_monte_carlo(self) -> bool:
        return self.simulation_mode == "monte-carlo"

    @property
    def total_years(self) -> int:
        return self.life_expectancy - self.current_age

    @property
    def simulation_count(self) -> int:
        return MONTE_CARLO_SIMULATIONS if self.is_monte_carlo else 1


@dataclass
class YearlyRecord:
    age: int
    year_offset: int
    phase: str
    median_balance: float
    percentile10_balance: float
    percentile90_balance: float
    inflated_monthly_allowance: float
    untouched_balance: Optional[float] = None

    @property
    def spending_allowance(self) -> float:
        """Monthly allowance actually drawn this year (zero before retirement)."""
        if self.phase == "retirement":
            return self.inflated_monthly_allowance
        return 0.0


@dataclass
class SimulationResult:
    fire_number: Optional[float]
    yearly_records: list[YearlyRecord] = field(default_factory=list)
    success_rate: Optional[float] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_message is None and self.fire_number is not None

    def record_for_age(self, age: int) -> Optional[YearlyRecord]:
        for record in self.yearly_records:
            if record.age == age:
                return record
        return None


@njit(cache=True)
def _box_muller(u: float, v: float, mean: float, std_dev: float) -> float:
    """Map two uniforms (u in (0, 1]) onto one normal sample."""
    z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
    return z * std_dev + mean


@njit(cache=True)
def _sample_return_matrix(
    uniforms: np.ndarray, mean: float, std_dev: float
) -> np.ndarray:
    """
    Turn pre-drawn uniform pairs of shape (n_sims, n_years, 2) into annual
    percent returns of shape (n_sims, n_years).
    """
    n_sims, n_years = uniforms.shape[0], uniforms.shape[1]
    returns = np.empty((n_sims, n_years))
    for s in range(n_sims):
        for y in range(n_years):
            returns[s, y] = _box_muller(
                uniforms[s, y, 0], uniforms[s, y, 1], mean, std_dev
            )
    return returns


def sample_normal(
    mean: float, std_dev: float, rng: Optional[np.random.Generator] = None
) -> float:
    """
    Draw one normally distributed sample using the Box-Muller transform.

    ``u`` is taken as ``1 - uniform()`` so it lies in (0, 1] and the log is
    always defined. Without ``rng`` a freshly seeded generator is used, so
    repeated calls are not reproducible.
    """
    if rng is None:
        rng = np.random.default_rng()
    u = 1.0 - rng.random()
    v = rng.random()
    return _box_muller(u, v, mean, std_dev)


def draw_annual_returns(
    params: SimulationParameters,
    n_sims: int,
    n_years: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Annual percent returns for every path and year, shape (n_sims, n_years)."""
    if not params.is_monte_carlo:
        return np.full((n_sims, n_years), float(params.annual_growth_rate))
    if rng is None:
        rng = np.random.default_rng()
    uniforms = rng.random((n_sims, n_years, 2))
    uniforms[:, :, 0] = 1.0 - uniforms[:, :, 0]
    return _sample_return_matrix(
        uniforms,
        float(params.annual_growth_rate),
        float(params.annual_volatility),
    )


@njit(cache=True, parallel=True)
def _project_paths(
    starting_capital: float,
    annual_contribution: float,
    current_age: int,
    retirement_age: int,
    coast_fire_age: int,
    annual_inflation_rate: float,
    monthly_allowance: float,
    barista_monthly_income: float,
    returns: np.ndarray,
) -> np.ndarray:
    """
    Year-by-year balances for every path. Column 0 is the starting snapshot.

    Balances are never floored, so a depleted path keeps compounding its
    negative balance.
    """
    n_sims, total_years = returns.shape
    paths = np.empty((n_sims, total_years + 1))
    inflation = 1.0 + annual_inflation_rate / 100.0
    for s in prange(n_sims):
        balance = starting_capital
        paths[s, 0] = balance
        for y in range(1, total_years + 1):
            age = current_age + y
            growth = 1.0 + returns[s, y - 1] / 100.0
            inflation_multiplier = inflation ** y
            if age >= retirement_age:
                allowance = monthly_allowance * inflation_multiplier
                barista = barista_monthly_income * inflation_multiplier
                balance = balance * growth - (allowance - barista) * 12.0
            elif age < coast_fire_age:
                balance = balance * growth + annual_contribution
            else:
                balance = balance * growth
            paths[s, y] = balance
    return paths


@njit(cache=True)
def _project_untouched(
    starting_capital: float,
    annual_contribution: float,
    annual_growth_rate: float,
    total_years: int,
) -> np.ndarray:
    """Balance if withdrawals never start and contributions never stop."""
    track = np.empty(total_years + 1)
    growth = 1.0 + annual_growth_rate / 100.0
    track[0] = starting_capital
    for y in range(1, total_years + 1):
        track[y] = track[y - 1] * growth + annual_contribution
    return track


def percentile_rank(n: int, fraction: float) -> int:
    """Zero-based nearest-rank index for ``fraction`` of ``n`` sorted values."""
    return min(int(math.floor(n * fraction)), n - 1)


def aggregate_percentiles(
    paths: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Return the 10th, 50th and 90th percentile balance for every year.

    ``paths`` has one row per simulation and one column per year. Ranks are
    picked from the ascending sort without interpolation; a single path
    collapses all three series onto itself.
    """
    paths = np.atleast_2d(np.asarray(paths, dtype=np.float64))
    n = paths.shape[0]
    ordered = np.sort(paths, axis=0)
    return (
        ordered[percentile_rank(n, PERCENTILE_LOW)],
        ordered[percentile_rank(n, PERCENTILE_MID)],
        ordered[percentile_rank(n, PERCENTILE_HIGH)],
    )


def success_rate(paths: np.ndarray) -> float:
    """Percentage of paths whose final balance is strictly positive."""
    paths = np.atleast_2d(np.asarray(paths, dtype=np.float64))
    return float(np.sum(paths[:, -1] > 0)) / paths.shape[0] * 100.0


def simulate(
    params: SimulationParameters, rng: Optional[np.random.Generator] = None
) -> SimulationResult:
    """
    Project the portfolio from ``current_age`` to ``life_expectancy``.

    Parameter inconsistencies are reported through ``error_message`` and a
    ``None`` FIRE number; nothing is raised for them.
    """
    total_years = params.total_years
    if total_years <= 0:
        msg = "Life expectancy must be greater than current age."
        logger.warning("%s (current age %s, life expectancy %s)",
                       msg, params.current_age, params.life_expectancy)
        return SimulationResult(fire_number=None, error_message=msg)

    n_sims = params.simulation_count
    logger.debug(
        "Running %d %s simulation(s) over %d years",
        n_sims, params.simulation_mode, total_years,
    )

    annual_contribution = float(params.monthly_savings) * 12
    returns = draw_annual_returns(params, n_sims, total_years, rng)
    paths = _project_paths(
        float(params.starting_capital),
        annual_contribution,
        int(params.current_age),
        int(params.retirement_age),
        int(params.effective_coast_fire_age),
        float(params.annual_inflation_rate),
        float(params.desired_monthly_allowance),
        float(params.barista_monthly_income),
        returns,
    )
    p10, p50, p90 = aggregate_percentiles(paths)

    untouched = None
    if not params.is_monte_carlo:
        untouched = _project_untouched(
            float(params.starting_capital),
            annual_contribution,
            float(params.annual_growth_rate),
            total_years,
        )

    inflation = 1 + params.annual_inflation_rate / 100
    records = []
    for y in range(total_years + 1):
        age = params.current_age + y
        records.append(
            YearlyRecord(
                age=age,
                year_offset=y,
                phase="retirement" if age >= params.retirement_age else "accumulation",
                median_balance=float(p50[y]),
                percentile10_balance=float(p10[y]),
                percentile90_balance=float(p90[y]),
                inflated_monthly_allowance=params.desired_monthly_allowance * inflation ** y,
                untouched_balance=None if untouched is None else float(untouched[y]),
            )
        )

    result = SimulationResult(fire_number=None, yearly_records=records)
    if params.is_monte_carlo:
        result.success_rate = success_rate(paths)

    retirement_record = result.record_for_age(params.retirement_age)
    if retirement_record is None:
        result.error_message = (
            f"Retirement age {params.retirement_age} is outside the projected "
            f"ages {params.current_age}-{params.life_expectancy}."
        )
        logger.warning("%s", result.error_message)
    else:
        result.fire_number = retirement_record.median_balance
    return result


def load_config() -> dict:
    """Load saved inputs if available."""

    if os.path.exists(CONFIG_FILE):
        with open(CONFIG_FILE) as f:
            return json.load(f)
    return {}


def save_config(params: SimulationParameters) -> None:
    """Persist the provided inputs to disk."""

    data = {
        "general": {
            "simulation_mode": params.simulation_mode,
            "annual_volatility": params.annual_volatility,
            "annual_growth_rate": params.annual_growth_rate,
            "annual_inflation_rate": params.annual_inflation_rate,
        },
        "user": {
            "starting_capital": params.starting_capital,
            "monthly_savings": params.monthly_savings,
            "current_age": params.current_age,
            "retirement_age": params.retirement_age,
            "life_expectancy": params.life_expectancy,
            "coast_fire_age": params.coast_fire_age,
            "desired_monthly_allowance": params.desired_monthly_allowance,
            "barista_monthly_income": params.barista_monthly_income,
            "withdrawal_strategy": params.withdrawal_strategy,
            "withdrawal_percentage": params.withdrawal_percentage,
        },
    }
    with open(CONFIG_FILE, "w") as f:
        json.dump(data, f, indent=2)
