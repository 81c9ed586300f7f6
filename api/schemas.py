from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class FilterStateModel(BaseModel):
    selected_zones: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    date_mode: str = "all"


class AutoRefreshModel(BaseModel):
    # None toggles the current setting
    enabled: Optional[bool] = None


class RefreshIntervalModel(BaseModel):
    minutes: int = Field(ge=1, le=24 * 60)


class StatusResponse(BaseModel):
    state: str
    source: Optional[str] = None
    loading: bool
    error: Optional[str] = None
    last_refreshed: Optional[str] = None
    record_count: int
    auto_refresh_enabled: bool
    refresh_interval_minutes: int
    next_refresh_in: str
    selected_zones: List[str] = Field(default_factory=list)
    date_mode: str
    date_range: str
    visible_count: int


class MetaZonesResponse(BaseModel):
    zones: List[str]


class MetaRegionsResponse(BaseModel):
    regions: Dict[str, List[str]]
