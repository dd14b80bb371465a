"""Matplotlib rendering of a FIRE projection."""

from __future__ import annotations

from matplotlib.ticker import FuncFormatter

from fire_core import SimulationParameters, SimulationResult


def _currency(value, _pos=None) -> str:
    return f"${value:,.0f}"


def draw_projection(ax, result: SimulationResult, params: SimulationParameters):
    """
    Draw balances on ``ax`` and the monthly allowance on a twin axis.

    Returns the twin axis.
    """
    records = result.yearly_records
    ages = [r.age for r in records]
    median = [r.median_balance for r in records]

    if params.is_monte_carlo:
        ax.fill_between(
            ages,
            [r.percentile10_balance for r in records],
            [r.percentile90_balance for r in records],
            color="tab:blue",
            alpha=0.2,
            label="10th-90th percentile",
        )
        ax.plot(ages, median, color="tab:blue", linewidth=1.5, label="Median balance")
    else:
        ax.plot(ages, median, color="tab:blue", linewidth=1.5, label="Balance")
        untouched = [r.untouched_balance for r in records]
        if untouched and untouched[0] is not None:
            ax.plot(
                ages,
                untouched,
                color="gray",
                linestyle="--",
                linewidth=1,
                label="Balance without withdrawals",
            )

    ax.axvline(params.retirement_age, color="red", linestyle=":", linewidth=1,
               label="Retirement")
    if result.fire_number is not None:
        ax.axhline(result.fire_number, color="red", linewidth=1,
                   label=f"FIRE number {_currency(result.fire_number)}")
    ax.set_xlabel("Age")
    ax.set_ylabel("Portfolio balance ($)")
    ax.yaxis.set_major_formatter(FuncFormatter(_currency))

    allowance_ax = ax.twinx()
    allowance_ax.plot(
        ages,
        [r.spending_allowance for r in records],
        color="orange",
        linewidth=1,
        label="Monthly allowance",
    )
    allowance_ax.set_ylabel("Monthly allowance ($)")
    allowance_ax.yaxis.set_major_formatter(FuncFormatter(_currency))

    handles, labels = ax.get_legend_handles_labels()
    twin_handles, twin_labels = allowance_ax.get_legend_handles_labels()
    ax.legend(handles + twin_handles, labels + twin_labels, loc="upper left",
              fontsize="small")
    title = "Monte Carlo projection" if params.is_monte_carlo else "Projection"
    if result.success_rate is not None:
        title += f" (success rate {result.success_rate:.1f}%)"
    ax.set_title(title)
    return allowance_ax
