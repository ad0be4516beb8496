# charts.py
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.express as px

SCOPE_COLORS = {
    "Scope 1": "#1f77b4",
    "Scope 2": "#ff7f0e",
    "Scope 3": "#2ca02c",
}
TIMEFRAMES = {"monthly": "M", "quarterly": "Q", "yearly": "Y"}


def gauge_scale(current_value, budget):
    """Upper end of a gauge: whichever of budget and current is larger, plus 20%."""
    return max(budget, current_value) * 1.2


def _short(value):
    return f"{value / 1000:.1f}k" if value >= 1000 else f"{value:.0f}"


def plot_gauge(current_value, label, budget):
    """Half-circle gauge of ``current_value`` against ``budget`` (tCO2e).

    The track fills green up to the budget and red beyond it.
    """
    top = gauge_scale(current_value, budget)

    def angle(value):
        # 0 sits on the left, ``top`` on the right
        return np.pi * (1 - min(value, top) / top)

    fig, ax = plt.subplots(figsize=(4, 2.8), subplot_kw={"projection": "polar"})
    ax.set_thetamin(0)
    ax.set_thetamax(180)

    track = np.linspace(0, np.pi, 100)
    ax.fill_between(track, 0.65, 1.0, color="#ecf0f1")
    within = min(current_value, budget)
    if within > 0:
        ax.fill_between(np.linspace(angle(within), np.pi, 50), 0.65, 1.0, color="#27ae60")
    if current_value > budget:
        ax.fill_between(np.linspace(angle(current_value), angle(budget), 50), 0.65, 1.0,
                        color="#c0392b")
    ax.plot([angle(budget)] * 2, [0.6, 1.05], color="#7f8c8d", lw=1.5, ls="--")

    ticks = [0, budget, top]
    ax.set_xticks([angle(v) for v in ticks])
    ax.set_xticklabels([_short(v) for v in ticks], fontsize=9, color="#555")
    ax.set_yticks([])
    ax.set_ylim(0, 1.05)
    ax.grid(False)
    ax.spines["polar"].set_visible(False)
    ax.text(np.pi / 2, 0.15, f"{current_value:,.1f}\ntCO₂e", ha="center", va="center",
            fontsize=13, fontweight="bold", color="#2c3e50")
    ax.set_title(label, fontsize=13, fontweight="bold", color="#2c3e50")
    fig.tight_layout()
    return fig


def category_frame(summary):
    """One row per category from an ``EmissionsSummary``."""
    return pd.DataFrame(
        [{"Category": entry.name, "Scope": entry.scope.value,
          "Emissions (tCO₂e)": float(entry.amount),
          "Percentage": float(entry.percentage)} for entry in summary.by_category],
        columns=["Category", "Scope", "Emissions (tCO₂e)", "Percentage"],
    )


def category_bar(summary):
    frame = category_frame(summary)
    fig = px.bar(
        frame,
        x="Category",
        y="Emissions (tCO₂e)",
        color="Scope",
        color_discrete_map=SCOPE_COLORS,
        title="<b>Emissions by Category</b>",
        template="plotly_white"
    )
    fig.update_layout(xaxis=dict(tickmode="linear"), plot_bgcolor="rgba(0,0,0,0)", yaxis=dict(showgrid=False))
    return fig


def category_pie(summary):
    return px.pie(
        category_frame(summary),
        values="Emissions (tCO₂e)",
        names="Category",
        title="Emission Contribution by Category",
        color_discrete_sequence=px.colors.qualitative.Set3,
        hole=0.4
    )


def trend_frame(frame, timeframe="monthly"):
    """Per-period, per-scope totals from an ``emissions_frame`` result.

    ``timeframe`` is one of ``monthly``, ``quarterly`` or ``yearly``; periods
    come out in chronological order labelled like ``2024-03``, ``2024Q1`` or
    ``2024``.
    """
    try:
        freq = TIMEFRAMES[timeframe]
    except KeyError:
        raise ValueError(f"Unknown timeframe: {timeframe!r}") from None
    periods = frame["Date"].dt.to_period(freq).rename("Period")
    trend = frame.groupby([periods, "Scope"])["Amount"].sum().reset_index()
    trend["Period"] = trend["Period"].astype(str)
    return trend


def emissions_trend(frame, timeframe="monthly"):
    """Stacked area chart of emissions over time, one band per scope."""
    fig = px.area(trend_frame(frame, timeframe), x="Period", y="Amount", color="Scope",
                  color_discrete_map=SCOPE_COLORS,
                  title="<b>Emissions Over Time</b>", template="plotly_white")
    fig.update_xaxes(type="category", title=None)
    fig.update_yaxes(title="tCO₂e")
    return fig
