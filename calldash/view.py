from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

import pandas as pd

from calldash.filters import PAST_DAYS_DEFAULT, DateMode, FilterState, date_range_text, derive_visible, parse_date_mode
from calldash.metrics import (
    as_labels_data,
    complaint_by_time_distribution,
    complaint_type_distribution,
    daily_call_trend,
    data_summary,
    simplified_time_distribution,
    status_distribution,
    time_of_day_distribution,
    zone_status_distribution,
)
from calldash.records import empty_frame

# Flat label -> count distributions; zone_status and complaint_by_time stay nested.
LABELED_FIELDS = ("time_of_day", "simplified_time", "status", "complaint_types", "daily_trend")


@dataclass(frozen=True)
class AggregateView:
    time_of_day: Dict[str, int]
    simplified_time: Dict[str, int]
    zone_status: Dict[str, Dict[str, int]]
    status: Dict[str, int]
    complaint_types: Dict[str, int]
    complaint_by_time: Dict[str, Dict[str, int]] = field(default_factory=dict)
    daily_trend: Dict[str, int] = field(default_factory=dict)
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, *, labeled: bool = False) -> Dict[str, Any]:
        """Plain mappings, or with ``labeled`` the flat distributions as ``{"labels": [...], "data": [...]}``."""
        out = asdict(self)
        if labeled:
            for key in LABELED_FIELDS:
                out[key] = as_labels_data(out[key])
        return out


def build_aggregate_view(df: pd.DataFrame) -> AggregateView:
    return AggregateView(
        time_of_day=time_of_day_distribution(df),
        simplified_time=simplified_time_distribution(df),
        zone_status=zone_status_distribution(df),
        status=status_distribution(df),
        complaint_types=complaint_type_distribution(df),
        complaint_by_time=complaint_by_time_distribution(df),
        daily_trend=daily_call_trend(df),
        summary=data_summary(df),
    )


class DashboardState:
    """Raw records + filter selection -> visible records -> aggregate view.

    The visible set is re-derived on every input change; the aggregate view is
    rebuilt only when the visible frame object changes.
    """

    def __init__(
        self,
        raw: Optional[pd.DataFrame] = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        past_days: int = PAST_DAYS_DEFAULT,
    ):
        self.clock = clock
        self.filters = FilterState(past_days=past_days)
        self.raw = raw if raw is not None else empty_frame()
        self.visible = self.raw
        self._view_source: Optional[pd.DataFrame] = None
        self._view: Optional[AggregateView] = None
        self._rederive()

    def _local_now(self) -> datetime:
        """The clock reading in the records' timezone, so labels match the date filter."""
        now = self.clock()
        tz = getattr(self.raw["timestamp"].dt, "tz", None)
        if tz is not None and now.tzinfo is not None:
            now = now.astimezone(tz)
        return now

    def _rederive(self) -> None:
        self.visible = derive_visible(self.raw, self.filters, self.clock())

    @property
    def view(self) -> AggregateView:
        if self._view is None or self._view_source is not self.visible:
            self._view = build_aggregate_view(self.visible)
            self._view_source = self.visible
        return self._view

    def replace_records(self, raw: pd.DataFrame) -> None:
        """New raw set from a refresh; the zone selection is kept and reapplied."""
        self.raw = raw
        self._rederive()

    def set_zones(self, zones: Iterable[str]) -> None:
        self.filters = replace(self.filters, selected_zones=frozenset(str(z).strip() for z in zones if str(z).strip()))
        self._rederive()

    def set_date_mode(self, mode: DateMode | str) -> None:
        self.filters = replace(self.filters, date_mode=parse_date_mode(mode))
        self._rederive()

    def set_filters(self, filters: FilterState) -> None:
        self.filters = filters
        self._rederive()

    def reset_filters(self) -> None:
        self.filters = FilterState(past_days=self.filters.past_days)
        self._rederive()

    def refresh_clock(self) -> bool:
        """Re-apply the date filter against the current time. Returns True if the visible rows changed.

        The visible frame (and so the cached view) is only replaced when the row set
        actually moved, e.g. after midnight in ``today`` mode.
        """
        if self.filters.date_mode is DateMode.ALL:
            return False
        candidate = derive_visible(self.raw, self.filters, self.clock())
        if candidate.index.equals(self.visible.index):
            return False
        self.visible = candidate
        return True

    def date_range_text(self) -> str:
        return date_range_text(self.filters.date_mode, self._local_now(), self.filters.past_days)

    def available_zones(self) -> list[str]:
        if self.raw.empty:
            return []
        return sorted(self.raw["zone"].dropna().astype(str).unique().tolist())
