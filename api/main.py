from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Literal, Optional

import pandas as pd
from fastapi import FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import (
    AutoRefreshModel,
    FilterStateModel,
    MetaRegionsResponse,
    MetaZonesResponse,
    RefreshIntervalModel,
    StatusResponse,
)
from calldash.cache import CacheStore, PreferenceStore
from calldash.charts import build_chart_specs
from calldash.config import Settings
from calldash.feed import CallFeedClient
from calldash.filters import REGIONS, FilterState, normalize_filters, parse_date_mode, zones_for_regions
from calldash.records import frame_to_records
from calldash.refresh import Fetcher, RefreshController
from calldash.seed import load_seed_records
from calldash.view import DashboardState


logger = logging.getLogger(__name__)


def build_controller(settings: Settings, fetcher: Optional[Fetcher] = None) -> RefreshController:
    if fetcher is None:
        client = CallFeedClient(settings)
        fetcher = lambda bypass_cache: client.fetch(bypass_cache=bypass_cache).records  # noqa: E731
    tz = settings.tzinfo
    return RefreshController(
        fetcher,
        CacheStore(settings.cache_path, tz, freshness_window=settings.freshness_window),
        PreferenceStore(settings.preferences_path, default_interval_minutes=settings.default_refresh_minutes),
        settings=settings,
        seed_loader=lambda: load_seed_records(tz),
    )


def create_app(settings: Optional[Settings] = None, *, fetcher: Optional[Fetcher] = None, start_timers: bool = True) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        controller = build_controller(settings, fetcher)
        dashboard = DashboardState(past_days=settings.past_days)
        controller.subscribe(dashboard.replace_records)
        app.state.controller = controller
        app.state.dashboard = dashboard
        await controller.refresh()
        if start_timers:
            controller.start()
        try:
            yield
        finally:
            await controller.close()

    app = FastAPI(title="Call Feed Dashboard API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_routes(app)
    return app


def _json(data: object) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(data))


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _dashboard(app: FastAPI) -> DashboardState:
    """Dashboard state with the date filter re-applied against the current time."""
    dashboard: DashboardState = app.state.dashboard
    dashboard.refresh_clock()
    return dashboard


def _status(app: FastAPI) -> Dict[str, Any]:
    controller: RefreshController = app.state.controller
    dashboard = _dashboard(app)
    payload = controller.snapshot()
    payload.update(
        {
            "selected_zones": sorted(dashboard.filters.selected_zones),
            "date_mode": dashboard.filters.date_mode.value,
            "date_range": dashboard.date_range_text(),
            "visible_count": int(len(dashboard.visible)),
        }
    )
    return payload


def _register_routes(app: FastAPI) -> None:
    @app.get("/status", response_model=StatusResponse)
    def status():
        return _status(app)

    @app.post("/refresh", response_model=StatusResponse)
    async def refresh():
        await app.state.controller.manual_refresh()
        return _status(app)

    @app.post("/auto-refresh", response_model=StatusResponse)
    async def auto_refresh(body: AutoRefreshModel):
        controller: RefreshController = app.state.controller
        if body.enabled is None:
            controller.toggle_auto_refresh()
        else:
            controller.set_auto_refresh(body.enabled)
        return _status(app)

    @app.put("/refresh-interval", response_model=StatusResponse)
    async def refresh_interval(body: RefreshIntervalModel):
        app.state.controller.set_refresh_interval(body.minutes)
        return _status(app)

    @app.get("/meta/zones", response_model=MetaZonesResponse)
    def meta_zones():
        return {"zones": app.state.dashboard.available_zones()}

    @app.get("/meta/regions", response_model=MetaRegionsResponse)
    def meta_regions():
        return {"regions": REGIONS}

    @app.put("/filters", response_model=StatusResponse)
    def set_filters(body: FilterStateModel):
        raw = body.model_dump()
        raw["selected_zones"] = list(raw.get("selected_zones") or []) + sorted(zones_for_regions(raw.get("regions") or []))
        raw["past_days"] = app.state.dashboard.filters.past_days
        try:
            app.state.dashboard.set_filters(_checked_filters(raw))
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return _status(app)

    @app.post("/filters/reset", response_model=StatusResponse)
    def reset_filters():
        app.state.dashboard.reset_filters()
        return _status(app)

    @app.get("/records")
    def records():
        try:
            rows = [r.to_dict() for r in frame_to_records(_dashboard(app).visible)]
            return _json({"count": len(rows), "records": rows})
        except Exception as exc:
            logger.exception("records failed")
            return _error(exc)

    @app.get("/view")
    def view(shape: Literal["mapping", "labels"] = Query("mapping")):
        try:
            dashboard = _dashboard(app)
            return _json({"date_range": dashboard.date_range_text(), "view": dashboard.view.to_dict(labeled=shape == "labels")})
        except Exception as exc:
            logger.exception("view failed")
            return _error(exc)

    @app.get("/charts")
    def charts():
        try:
            return _json(build_chart_specs(_dashboard(app).view))
        except Exception as exc:
            logger.exception("charts failed")
            return _error(exc)

    @app.get("/export.csv")
    def export_csv():
        try:
            df = _dashboard(app).visible.copy()
            df["timestamp"] = df["timestamp"].map(lambda ts: "" if pd.isna(ts) else ts.isoformat())
            csv_bytes = df.to_csv(index=False).encode("utf-8")
        except Exception as exc:
            logger.exception("export failed")
            return _error(exc)
        return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": "attachment; filename=calls.csv"})


def _checked_filters(raw: dict) -> FilterState:
    parse_date_mode(raw.get("date_mode") or "all")
    return normalize_filters(raw)


logging.basicConfig(level=os.getenv("CALLDASH_LOG_LEVEL", "INFO").upper())
app = create_app()
