import logging
import sys
import tkinter as tk
from tkinter import ttk, messagebox

from fire_core import (
    SimulationParameters,
    parse_percent,
    parse_dollars,
    simulate,
    load_config,
    save_config,
)
from fire_inputs import (
    FORM_DEFAULTS,
    form_values_from_config,
    merge_with_defaults,
    params_from_form,
    values_from_query_string,
)
from fire_planning import calculate_nest_egg_from_spend, planning_summary_lines


logger = logging.getLogger(__name__)


class ToolTip:
    """Hover tooltip for a form widget."""

    def __init__(self, widget, text: str, wraplength: int = 280):
        self.widget = widget
        self.text = text
        self.wraplength = wraplength
        self.tipwindow = None
        widget.bind("<Enter>", self._show)
        widget.bind("<Leave>", self._hide)

    def _show(self, _event=None):
        if self.tipwindow or not self.text:
            return
        x = self.widget.winfo_rootx() + 20
        y = self.widget.winfo_rooty() + self.widget.winfo_height() + 10
        self.tipwindow = tw = tk.Toplevel(self.widget)
        tw.wm_overrideredirect(True)
        tw.wm_geometry(f"+{x}+{y}")
        tk.Label(
            tw,
            text=self.text,
            justify=tk.LEFT,
            wraplength=self.wraplength,
            background="#ffffe0",
            relief=tk.SOLID,
            borderwidth=1,
        ).pack(ipadx=1)

    def _hide(self, _event=None):
        if self.tipwindow is not None:
            self.tipwindow.destroy()
        self.tipwindow = None


def plot_projection(result, params: SimulationParameters):
    """Show the projection chart in its own window."""
    import matplotlib
    matplotlib.use("TkAgg")
    import matplotlib.pyplot as plt

    from fire_chart import draw_projection

    fig, ax = plt.subplots(figsize=(9, 4.5))
    draw_projection(ax, result, params)
    fig.tight_layout()
    plt.show()


GENERAL_FIELDS = ["simulation_mode", "volatility", "cagr", "inflation_rate"]

USER_FIELDS = [
    "starting_capital",
    "monthly_savings",
    "current_age",
    "retirement_age",
    "coast_fire_age",
    "life_expectancy",
    "desired_monthly_allowance",
    "barista_income",
    "withdrawal_strategy",
    "withdrawal_percentage",
]

PERCENT_FIELDS = {"volatility", "cagr", "inflation_rate", "withdrawal_percentage"}

# Percent fields without an upper bound
UNCAPPED_PERCENT_FIELDS = {"volatility"}

DOLLAR_FIELDS = {
    "starting_capital",
    "monthly_savings",
    "desired_monthly_allowance",
    "barista_income",
}

AGE_FIELDS = {"current_age", "retirement_age", "coast_fire_age", "life_expectancy"}

CHOICE_FIELDS = {
    "simulation_mode": ["deterministic", "monte-carlo"],
    "withdrawal_strategy": ["fixed", "percentage"],
}

LABEL_OVERRIDES = {
    "cagr": "Expected Annual Growth Rate",
    "volatility": "Annual Volatility",
    "coast_fire_age": "Coast FIRE Age",
    "desired_monthly_allowance": "Monthly Allowance (Today's Value)",
    "barista_income": "Barista Income (Monthly)",
}

ENTRY_HELP = {
    "simulation_mode": "Deterministic uses the growth rate every year; Monte Carlo samples 500 return paths.",
    "volatility": "Standard deviation of annual returns (Monte Carlo only).",
    "cagr": "Average yearly portfolio return before inflation (percentage).",
    "inflation_rate": "Expected average annual inflation rate (percentage).",
    "starting_capital": "Invested assets today.",
    "monthly_savings": "Amount invested every month until the Coast FIRE age.",
    "current_age": "Your age today.",
    "retirement_age": "Age at which withdrawals begin.",
    "coast_fire_age": "Age at which contributions stop while the portfolio keeps growing. Leave blank to save until retirement.",
    "life_expectancy": "Age the projection runs to.",
    "desired_monthly_allowance": "Monthly spending in retirement, in today's money.",
    "barista_income": "Part-time monthly income in retirement, in today's money.",
    "withdrawal_strategy": "Withdrawal approach shown for reference; the projection withdraws the inflation-adjusted allowance.",
    "withdrawal_percentage": "Withdrawal rate used by the percentage strategy.",
}


def _label(key: str) -> str:
    return LABEL_OVERRIDES.get(key, key.replace("_", " ").title())


def _format_value(key: str, val) -> str:
    if val is None:
        return ""
    if key in PERCENT_FIELDS:
        return f"{float(val):.2f}%"
    if key in DOLLAR_FIELDS:
        return f"${float(val):,.0f}"
    if key in AGE_FIELDS:
        return str(int(val))
    return str(val)


def _read_entry(key: str):
    text = entries[key].get().strip()
    if not text:
        return None
    if key in CHOICE_FIELDS:
        return text
    if key in PERCENT_FIELDS:
        maximum = None if key in UNCAPPED_PERCENT_FIELDS else 100.0
        return parse_percent(text, maximum)
    if key in DOLLAR_FIELDS:
        return parse_dollars(text)
    if key in AGE_FIELDS:
        try:
            return int(text)
        except ValueError as exc:
            raise ValueError(f"{_label(key)} must be a whole number") from exc
    return text


def _load_inputs() -> SimulationParameters:
    """Parse GUI inputs and return SimulationParameters."""
    values = {key: _read_entry(key) for key in GENERAL_FIELDS + USER_FIELDS}
    params = params_from_form(values)
    if params.retirement_age <= params.current_age:
        raise ValueError("Retirement age must be greater than current age")
    if params.life_expectancy <= params.retirement_age:
        raise ValueError("Life expectancy must be greater than retirement age")
    if not params.current_age <= params.effective_coast_fire_age <= params.retirement_age:
        raise ValueError("Coast FIRE age must be between current age and retirement age")
    return params


def _build_explanation(params: SimulationParameters) -> str:
    """Return a detailed explanation of inputs and calculations."""
    years_to_retirement = params.retirement_age - params.current_age
    years_of_saving = max(0, params.effective_coast_fire_age - params.current_age)
    inflation = 1 + params.annual_inflation_rate / 100
    allowance_at_retirement = params.desired_monthly_allowance * inflation ** years_to_retirement
    explanation = [
        "Input values:",
        f"  Simulation mode: {params.simulation_mode}",
        (
            "  Growth rate: "
            f"{params.annual_growth_rate:.2f}%"
            + (f" (σ {params.annual_volatility:.2f}%)" if params.is_monte_carlo else "")
        ),
        f"  Inflation: {params.annual_inflation_rate:.2f}%",
        (
            "  Current age: "
            f"{params.current_age}, Retirement age: {params.retirement_age}, "
            f"Life expectancy: {params.life_expectancy}"
        ),
        (
            f"  Coast FIRE age: {params.coast_fire_age}"
            if params.coast_fire_age is not None
            else "  Coast FIRE age: not set (saving until retirement)"
        ),
        f"  Starting capital: ${params.starting_capital:,.0f}",
        f"  Monthly savings: ${params.monthly_savings:,.0f}",
        f"  Monthly allowance (today): ${params.desired_monthly_allowance:,.0f}",
        f"  Barista income (today): ${params.barista_monthly_income:,.0f}",
        "",
        "Derived values:",
        f"  Years until retirement: {years_to_retirement}",
        f"  Years of contributions: {years_of_saving}",
        f"  Years simulated: {params.total_years}",
        f"  Monthly allowance at retirement: ${allowance_at_retirement:,.0f}",
        (
            "  Rule-of-25 nest egg for today's allowance: "
            f"${calculate_nest_egg_from_spend(params.desired_monthly_allowance):,.0f}"
        ),
        "",
        "Rules of thumb:",
        *planning_summary_lines(params),
        "",
        "Process:",
        (
            "  Each year the balance grows by the annual return. Before the "
            "Coast FIRE age the yearly savings are added."
        ),
        (
            "  From the retirement age on, twelve months of the "
            "inflation-adjusted allowance minus barista income are withdrawn."
        ),
        (
            "  500 paths are simulated with normally distributed returns; "
            "the chart shows the 10th, 50th and 90th percentile and the "
            "success rate is the share of paths with money left at the end."
            if params.is_monte_carlo
            else "  A single path is projected with a constant growth rate."
        ),
    ]
    return "\n".join(explanation)


def run_sim():
    """Run a projection using the current GUI inputs."""
    try:
        params = _load_inputs()
    except ValueError as exc:
        messagebox.showerror("Input error", str(exc))
        return

    result = simulate(params)
    if result.error_message:
        results_var.set(result.error_message)
        return

    results = [f"FIRE number at {params.retirement_age}: ${result.fire_number:,.0f}"]
    retirement = result.record_for_age(params.retirement_age)
    results.append(
        f"Monthly allowance at retirement: ${retirement.inflated_monthly_allowance:,.0f}"
    )
    if result.success_rate is not None:
        results.append(f"Success rate: {result.success_rate:.1f}%")
    final = result.yearly_records[-1]
    results.append(
        f"Balance at {final.age}: ${final.median_balance:,.0f}"
        + (" (median)" if params.is_monte_carlo else "")
    )
    if final.median_balance <= 0:
        results.append("Warning: the money runs out before life expectancy.")
    results_var.set("\n".join(results))
    save_config(params)
    plot_projection(result, params)


def explain_calculations():
    """Show a detailed explanation of the current inputs."""
    try:
        params = _load_inputs()
    except ValueError as exc:
        messagebox.showerror("Input error", str(exc))
        return
    messagebox.showinfo("Projection Details", _build_explanation(params))


def fill_entries(values: dict) -> None:
    for key, val in merge_with_defaults(values).items():
        widget = entries[key]
        if key in CHOICE_FIELDS:
            widget.set(val)
        else:
            widget.delete(0, tk.END)
            widget.insert(0, _format_value(key, val))


def load_defaults():
    fill_entries({})


def _add_row(frame, key, label_width):
    row = ttk.Frame(frame)
    row.pack(fill="x", pady=2)
    ttk.Label(row, text=_label(key), width=label_width, anchor="w").pack(side="left")
    if key in CHOICE_FIELDS:
        var = tk.StringVar()
        widget = ttk.Combobox(
            row, textvariable=var, values=CHOICE_FIELDS[key], state="readonly"
        )
        widget.pack(side="left", fill="x", expand=True)
        entries[key] = var
    else:
        widget = ttk.Entry(row)
        widget.pack(side="left", fill="x", expand=True)
        entries[key] = widget
    ToolTip(widget, ENTRY_HELP.get(key, ""))


entries = {}
results_var = None


def main(argv=None):
    global results_var

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    argv = sys.argv[1:] if argv is None else argv

    root = tk.Tk()
    root.title("FIRE Calculator")
    root.geometry("480x720")

    label_width = max(len(_label(k)) for k in GENERAL_FIELDS + USER_FIELDS)

    general_frame = ttk.LabelFrame(root, text="Market Assumptions")
    general_frame.pack(fill="x", padx=10, pady=5)
    for key in GENERAL_FIELDS:
        _add_row(general_frame, key, label_width)

    user_frame = ttk.LabelFrame(root, text="Your Situation")
    user_frame.pack(fill="x", padx=10, pady=5)
    for key in USER_FIELDS:
        _add_row(user_frame, key, label_width)

    # A query string such as "?currentAge=30&monthlySpend=4000" pre-fills the form
    if argv:
        values = values_from_query_string(argv[0], FORM_DEFAULTS["retirement_age"])
        logger.info("Hydrating form from query string %s", argv[0])
    else:
        values = form_values_from_config(load_config())
    fill_entries(values)

    run_frame = ttk.Frame(root)
    run_frame.pack(fill="x", padx=10, pady=5)
    ttk.Button(run_frame, text="Run Projection", command=run_sim).pack()
    ttk.Button(run_frame, text="Explain Calculations", command=explain_calculations).pack()
    ttk.Button(run_frame, text="Load Defaults", command=load_defaults).pack()

    results_frame = ttk.LabelFrame(root, text="Results")
    results_frame.pack(fill="both", expand=True, padx=10, pady=5)
    results_var = tk.StringVar()
    ttk.Label(results_frame, textvariable=results_var, wraplength=400).pack(anchor="w")

    root.mainloop()


if __name__ == "__main__":
    main()
