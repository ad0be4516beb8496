# reports.py
"""Report snapshots and CSV/ZIP exports of a company's emissions."""

import io
import logging
import zipfile

import pandas as pd
import plotly.io as pio

import charts
from aggregation import summarize_emissions

logger = logging.getLogger("carbon.reports")

REPORT_TYPES = ["Monthly", "Quarterly", "Annual", "Custom"]
EXPORT_COLUMNS = ["Date", "Category", "Scope", "Description", "Amount", "Unit", "Verified"]


def build_report_data(summary, start_date, end_date):
    """JSON snapshot of a summary, stored in ``Report.data``."""
    data = summary.to_dict()
    data["period"] = {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()}
    return data


def emissions_frame(records):
    rows = [{
        "Date": rec.date,
        "Category": rec.category.name,
        "Scope": rec.category.scope.value,
        "Description": rec.description or "",
        "Amount": float(rec.amount),
        "Unit": rec.unit,
        "Verified": bool(rec.verified),
    } for rec in records]
    frame = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    frame["Date"] = pd.to_datetime(frame["Date"])
    return frame.sort_values("Date").reset_index(drop=True)


def export_csv(records):
    return emissions_frame(records).to_csv(index=False, date_format="%Y-%m-%d").encode("utf-8")


def export_zip(records):
    """ZIP archive with the CSV export and the summary charts as PNG."""
    csv = export_csv(records)
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as z:
        z.writestr("emissions.csv", csv.decode("utf-8"))
        if records:
            summary = summarize_emissions(records)
            figures = {
                "bar_chart.png": charts.category_bar(summary),
                "pie_chart.png": charts.category_pie(summary),
                "emissions_trend.png": charts.emissions_trend(emissions_frame(records)),
            }
            for name, fig in figures.items():
                z.writestr(name, pio.to_image(fig, format="png"))
    logger.info("Exported %d emissions to ZIP", len(records))
    return buf.getvalue()
