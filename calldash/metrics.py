from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd

from calldash.records import CLOSED, REFERRED, UNKNOWN_ZONE, normalize_status


TIME_OF_DAY_LABELS = ["Morning", "Afternoon", "Evening", "Night"]
SIMPLIFIED_LABELS = ["Morning", "Evening"]
STATUS_LABELS = [CLOSED, REFERRED]


def _local_hours(df: pd.DataFrame) -> pd.Series:
    """Local hour per dated row; undated rows are left out."""
    if df.empty:
        return pd.Series(dtype="int64")
    return df["timestamp"].dropna().dt.hour


def _simplified_slots(hours: pd.Series) -> pd.Series:
    slots = pd.Series(None, index=hours.index, dtype="object")
    slots[(hours >= 8) & (hours < 16)] = "Morning"
    slots[hours >= 16] = "Evening"
    return slots


def time_of_day_distribution(df: pd.DataFrame) -> Dict[str, int]:
    """Morning 05-12, Afternoon 12-17, Evening 17-21, Night 21-05."""
    hours = _local_hours(df)
    morning = int(((hours >= 5) & (hours < 12)).sum())
    afternoon = int(((hours >= 12) & (hours < 17)).sum())
    evening = int(((hours >= 17) & (hours < 21)).sum())
    return {
        "Morning": morning,
        "Afternoon": afternoon,
        "Evening": evening,
        "Night": int(len(hours)) - morning - afternoon - evening,
    }


def simplified_time_distribution(df: pd.DataFrame) -> Dict[str, int]:
    """Morning 08:00-15:59, Evening 16:00-23:59. Calls before 08:00 are not counted."""
    slots = _simplified_slots(_local_hours(df))
    return {label: int((slots == label).sum()) for label in SIMPLIFIED_LABELS}


def zone_status_distribution(df: pd.DataFrame) -> Dict[str, Dict[str, int]]:
    if df.empty:
        return {}
    zones = df["zone"].fillna("").astype(str).str.strip().replace("", UNKNOWN_ZONE)
    status = df["status"].map(normalize_status)
    frame = pd.DataFrame({"zone": zones, "closed": status == CLOSED, "referred": status == REFERRED})
    grouped = frame.groupby("zone", sort=False).agg(
        total=("closed", "size"),
        closed=("closed", "sum"),
        referred=("referred", "sum"),
    )
    return {
        str(zone): {"total": int(row.total), "closed": int(row.closed), "referred": int(row.referred)}
        for zone, row in grouped.iterrows()
    }


def status_distribution(df: pd.DataFrame) -> Dict[str, int]:
    """Always both labels; unrecognized statuses fall in neither."""
    if df.empty:
        return {label: 0 for label in STATUS_LABELS}
    status = df["status"].map(normalize_status)
    return {label: int((status == label).sum()) for label in STATUS_LABELS}


def complaint_type_distribution(df: pd.DataFrame) -> Dict[str, int]:
    """Counts per complaint type, in order of first appearance."""
    if df.empty:
        return {}
    counts = df.groupby("complaint_type", sort=False).size()
    return {str(k): int(v) for k, v in counts.items()}


def complaint_by_time_distribution(df: pd.DataFrame) -> Dict[str, Dict[str, int]]:
    """Complaint type x simplified time slot (same boundaries as the simplified view)."""
    if df.empty:
        return {}
    out = {str(c): {label: 0 for label in SIMPLIFIED_LABELS} for c in df["complaint_type"].drop_duplicates()}
    slots = _simplified_slots(_local_hours(df))
    dated = df.loc[slots.index].assign(slot=slots).dropna(subset=["slot"])
    for (complaint, slot), n in dated.groupby(["complaint_type", "slot"], sort=False).size().items():
        out[str(complaint)][slot] = int(n)
    return out


def daily_call_trend(df: pd.DataFrame) -> Dict[str, int]:
    """Calls per local calendar date, oldest first."""
    ts = df["timestamp"].dropna() if not df.empty else pd.Series(dtype="object")
    if ts.empty:
        return {}
    counts = ts.dt.date.value_counts().sort_index()
    return {d.isoformat(): int(n) for d, n in counts.items()}


def data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    total = int(len(df))
    summary: Dict[str, Any] = {
        "total_calls": total,
        "unique_callers": int(df["phone_number"].nunique()) if total else 0,
        "most_common_complaint": None,
        "most_common_share": None,
    }
    complaints = complaint_type_distribution(df)
    if complaints:
        # ties resolve to the first-seen complaint type
        top: Optional[str] = max(complaints, key=complaints.get)
        summary["most_common_complaint"] = top
        summary["most_common_share"] = round(complaints[top] / total * 100, 1)
    return summary


def as_labels_data(distribution: Dict[str, int]) -> Dict[str, List[Any]]:
    return {"labels": list(distribution.keys()), "data": list(distribution.values())}
