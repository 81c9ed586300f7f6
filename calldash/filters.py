from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

import pandas as pd


PAST_DAYS_DEFAULT = 30


class DateMode(str, Enum):
    TODAY = "today"
    PAST_N_DAYS = "past_n_days"
    ALL = "all"


_DATE_MODE_ALIASES = {
    "today": DateMode.TODAY,
    "past_n_days": DateMode.PAST_N_DAYS,
    "past30days": DateMode.PAST_N_DAYS,
    "past_30_days": DateMode.PAST_N_DAYS,
    "all": DateMode.ALL,
    "all_time": DateMode.ALL,
}

# Region -> zones, as offered by the region/city picker.
REGIONS: Dict[str, List[str]] = {
    "SOUTHERN REGION": ["Karachi (South)", "Karachi (Central)", "Karachi (Eastern)", "Quetta"],
    "HYDERABAD REGION": ["Hyderabad", "Mirpurkhas (Sindh)", "Shaheed Benazirabad", "Sukkur", "Larkana"],
    "MULTAN REGION": ["Multan", "Bahawalpur", "Rahim Yar Khan", "Sahiwal", "D.G. Khan", "Vehari"],
    "FAISALABAD REGION": ["Faisalabad (Eastern)", "Faisalabad (Western)", "Sargodha", "Jhang"],
    "CENTRAL REGION": ["Lahore (Central)", "Lahore (Western)", "Gujranwala", "Sialkot", "Narowal", "Sheikhupura"],
    "NORTHERN REGION": ["Rawalpindi", "Islamabad", "Mirpur (AK)", "Gujrat", "Jhelum", "Gilgit"],
    "KPK REGION": ["Peshawar", "Abbottabad", "Swat", "Kohat"],
    "TAKAFUL": ["Takaful"],
    "GROUP AND PENSION": ["Group and Pension"],
    "BANCA": ["Banca"],
}


@dataclass(frozen=True)
class FilterState:
    selected_zones: FrozenSet[str] = field(default_factory=frozenset)
    date_mode: DateMode = DateMode.ALL
    past_days: int = PAST_DAYS_DEFAULT


def parse_date_mode(value: object) -> DateMode:
    if isinstance(value, DateMode):
        return value
    key = str(value or "").strip().lower().replace("-", "_")
    try:
        return _DATE_MODE_ALIASES[key]
    except KeyError:
        raise ValueError(f"Unknown date mode: {value!r}") from None


def _as_zone_set(values: Optional[Iterable[object]]) -> FrozenSet[str]:
    if not values:
        return frozenset()
    return frozenset(str(v).strip() for v in values if v is not None and str(v).strip())


def normalize_filters(raw: dict) -> FilterState:
    selected_zones = _as_zone_set(raw.get("selected_zones"))
    try:
        date_mode = parse_date_mode(raw.get("date_mode") or DateMode.ALL)
    except ValueError:
        date_mode = DateMode.ALL
    past_days = raw.get("past_days", PAST_DAYS_DEFAULT)
    try:
        past_days = int(past_days)
    except Exception:
        past_days = PAST_DAYS_DEFAULT
    return FilterState(selected_zones=selected_zones, date_mode=date_mode, past_days=max(1, past_days))


def zones_for_regions(regions: Iterable[str]) -> FrozenSet[str]:
    zones = set()
    for name in regions:
        zones.update(REGIONS.get(str(name).strip().upper(), []))
    return frozenset(zones)


def apply_zone_filter(df: pd.DataFrame, zones: Iterable[str]) -> pd.DataFrame:
    """Keep rows whose zone is selected. No selection means no restriction (same frame)."""
    zones = frozenset(zones)
    if not zones or df.empty:
        return df
    return df[df["zone"].isin(zones)]


def _local_now(df: pd.DataFrame, now: datetime) -> pd.Timestamp:
    ts = pd.Timestamp(now)
    tz = getattr(df["timestamp"].dt, "tz", None)
    if tz is not None:
        ts = ts.tz_localize(tz) if ts.tzinfo is None else ts.tz_convert(tz)
    elif ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts


def apply_date_filter(df: pd.DataFrame, mode: DateMode, now: datetime, past_days: int = PAST_DAYS_DEFAULT) -> pd.DataFrame:
    """Restrict to today / the past N days (through end of today) in the records' local time."""
    mode = parse_date_mode(mode)
    if mode is DateMode.ALL or df.empty:
        return df
    local_now = _local_now(df, now)
    ts = df["timestamp"]
    if mode is DateMode.TODAY:
        mask = ts.dt.date == local_now.date()
    else:
        end_of_today = local_now.normalize() + pd.Timedelta(days=1)
        mask = (ts >= local_now - pd.Timedelta(days=past_days)) & (ts < end_of_today)
    return df[mask.fillna(False).astype(bool)]


def derive_visible(raw: pd.DataFrame, state: FilterState, now: datetime) -> pd.DataFrame:
    """Zone filter first, then the date filter on the zone-filtered rows."""
    region_filtered = apply_zone_filter(raw, state.selected_zones)
    return apply_date_filter(region_filtered, state.date_mode, now, state.past_days)


def date_range_text(mode: DateMode, now: datetime, past_days: int = PAST_DAYS_DEFAULT) -> str:
    mode = parse_date_mode(mode)
    fmt = "%b %d, %Y"
    if mode is DateMode.TODAY:
        return f"Today ({now.strftime(fmt)})"
    if mode is DateMode.PAST_N_DAYS:
        start = now - timedelta(days=past_days)
        return f"Past {past_days} Days ({start.strftime(fmt)} - {now.strftime(fmt)})"
    return "All Time"
