from __future__ import annotations

from typing import Any, Dict

import altair as alt
import pandas as pd

from calldash.metrics import SIMPLIFIED_LABELS, STATUS_LABELS, TIME_OF_DAY_LABELS

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _distribution_frame(distribution: Dict[str, int], label: str) -> pd.DataFrame:
    return pd.DataFrame({label: list(distribution.keys()), "count": list(distribution.values())})


def bar_chart(distribution: Dict[str, int], *, label: str, title: str, sort=None) -> alt.Chart:
    return (
        alt.Chart(_distribution_frame(distribution, label))
        .mark_bar()
        .encode(
            x=alt.X(f"{label}:N", title=title, sort=sort or list(distribution.keys())),
            y=alt.Y("count:Q", title="Calls", axis=alt.Axis(format="d", gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[f"{label}:N", alt.Tooltip("count:Q", format=",")],
        )
        .properties(height=260)
    )


def status_pie(distribution: Dict[str, int]) -> alt.Chart:
    return (
        alt.Chart(_distribution_frame(distribution, "status"))
        .mark_arc(innerRadius=50)
        .encode(
            theta=alt.Theta("count:Q"),
            color=alt.Color("status:N", title="Status", scale=alt.Scale(domain=STATUS_LABELS, range=["#4bc0c0", "#ff6384"])),
            tooltip=["status:N", alt.Tooltip("count:Q", format=",")],
        )
    )


def zone_status_chart(zone_status: Dict[str, Dict[str, int]]) -> alt.Chart:
    rows = [
        {"zone": zone, "status": status, "count": counts[key]}
        for zone, counts in zone_status.items()
        for status, key in (("Closed", "closed"), ("Referred", "referred"))
    ]
    df = pd.DataFrame(rows, columns=["zone", "status", "count"])
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            y=alt.Y("zone:N", title="Zone", sort="-x"),
            x=alt.X("count:Q", title="Calls", stack="zero"),
            color=alt.Color("status:N", title="Status", scale=alt.Scale(domain=STATUS_LABELS, range=["#4bc0c0", "#ff6384"])),
            tooltip=["zone:N", "status:N", alt.Tooltip("count:Q", format=",")],
        )
    )


def complaint_by_time_chart(matrix: Dict[str, Dict[str, int]]) -> alt.Chart:
    rows = [{"complaint_type": c, "slot": slot, "count": n} for c, slots in matrix.items() for slot, n in slots.items()]
    df = pd.DataFrame(rows, columns=["complaint_type", "slot", "count"])
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("complaint_type:N", title="Query Type"),
            xOffset=alt.XOffset("slot:N", sort=SIMPLIFIED_LABELS),
            y=alt.Y("count:Q", title="Calls"),
            color=alt.Color("slot:N", title="Time of Day", sort=SIMPLIFIED_LABELS),
            tooltip=["complaint_type:N", "slot:N", alt.Tooltip("count:Q", format=",")],
        )
    )


def trend_chart(trend: Dict[str, int]) -> alt.Chart:
    df = pd.DataFrame({"date": list(trend.keys()), "count": list(trend.values())})
    return (
        alt.Chart(df)
        .mark_line(point={"filled": True, "size": 60})
        .encode(
            x=alt.X("date:T", title="Date", axis=alt.Axis(grid=False)),
            y=alt.Y("count:Q", title="Number of Calls", axis=alt.Axis(format="d", gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[alt.Tooltip("date:T", title="Date"), alt.Tooltip("count:Q", format=",")],
        )
        .properties(height=260)
    )


def build_chart_specs(view) -> Dict[str, Any]:
    """Vega-Lite specs for every distribution in an AggregateView."""
    return {
        "complaint_types": to_vega_spec(bar_chart(view.complaint_types, label="complaint_type", title="Query Type")),
        "time_of_day": to_vega_spec(bar_chart(view.time_of_day, label="slot", title="Time of Day", sort=TIME_OF_DAY_LABELS)),
        "simplified_time": to_vega_spec(bar_chart(view.simplified_time, label="slot", title="Time of Day", sort=SIMPLIFIED_LABELS)),
        "status": to_vega_spec(status_pie(view.status)),
        "zone_status": to_vega_spec(zone_status_chart(view.zone_status)),
        "complaint_by_time": to_vega_spec(complaint_by_time_chart(view.complaint_by_time)),
        "daily_trend": to_vega_spec(trend_chart(view.daily_trend)),
    }
