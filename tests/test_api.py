from datetime import datetime, timezone

import pandas as pd
import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from calldash.config import Settings
from calldash.errors import FetchError
from calldash.parser import parse_feed

from conftest import FEED_TEXT, TZ


@pytest.fixture
def settings(tmp_path):
    return Settings(cache_dir=tmp_path)


@pytest.fixture
def fetch_calls():
    return []


@pytest.fixture
def client(settings, fetch_calls):
    def fetcher(bypass_cache):
        fetch_calls.append(bypass_cache)
        return parse_feed(FEED_TEXT, TZ).records

    with TestClient(create_app(settings, fetcher=fetcher, start_timers=False)) as c:
        yield c


def test_startup_loads_records(client, fetch_calls):
    body = client.get("/status").json()
    assert body["state"] == "success"
    assert body["source"] == "network"
    assert body["record_count"] == 3
    assert body["visible_count"] == 3
    assert body["error"] is None
    assert body["date_mode"] == "all"
    assert body["date_range"] == "All Time"
    assert fetch_calls == [False]


def test_manual_refresh_bypasses_cache(client, fetch_calls):
    body = client.post("/refresh").json()
    assert body["source"] == "network"
    assert fetch_calls == [False, True]


def test_failed_startup_falls_back_to_seed(settings):
    def failing(bypass_cache):
        raise FetchError("offline")

    with TestClient(create_app(settings, fetcher=failing, start_timers=False)) as c:
        body = c.get("/status").json()
    assert body["state"] == "failure"
    assert body["source"] == "seed"
    assert body["record_count"] > 0
    assert body["error"].startswith("Failed to load data")


def test_zone_and_region_filters(client):
    body = client.put("/filters", json={"selected_zones": ["Islamabad"], "regions": ["southern region"]}).json()
    assert body["visible_count"] == 2
    assert "Islamabad" in body["selected_zones"]
    assert "Karachi (South)" in body["selected_zones"]

    rows = client.get("/records").json()
    assert rows["count"] == 2
    assert {r["zone"] for r in rows["records"]} == {"Karachi (South)", "Islamabad"}

    reset = client.post("/filters/reset").json()
    assert reset["selected_zones"] == []
    assert reset["visible_count"] == 3


def test_bad_date_mode_rejected(client):
    response = client.put("/filters", json={"date_mode": "someday"})
    assert response.status_code == 422
    assert client.get("/status").json()["date_mode"] == "all"


def test_today_filter_relative_to_clock(client):
    # feed rows are from December 2024, long before the test run
    body = client.put("/filters", json={"date_mode": "today"}).json()
    assert body["date_mode"] == "today"
    assert body["visible_count"] == 0
    assert body["date_range"].startswith("Today (")


def test_view_and_charts(client):
    view = client.get("/view").json()["view"]
    assert view["status"] == {"Closed": 2, "Referred": 1}
    assert view["summary"]["total_calls"] == 3
    assert list(view["zone_status"]) == ["Lahore (Central)", "Karachi (South)", "Islamabad"]

    charts = client.get("/charts").json()
    assert set(charts) == {
        "time_of_day",
        "simplified_time",
        "zone_status",
        "status",
        "complaint_types",
        "complaint_by_time",
        "daily_trend",
    }
    assert "$schema" in charts["status"]


def test_meta_endpoints(client):
    assert client.get("/meta/zones").json()["zones"] == ["Islamabad", "Karachi (South)", "Lahore (Central)"]
    regions = client.get("/meta/regions").json()["regions"]
    assert "Karachi (South)" in regions["SOUTHERN REGION"]


def test_auto_refresh_toggle_and_interval(client, settings):
    assert client.post("/auto-refresh", json={}).json()["auto_refresh_enabled"] is False
    assert client.get("/status").json()["next_refresh_in"] == "Paused"
    assert client.post("/auto-refresh", json={"enabled": True}).json()["auto_refresh_enabled"] is True

    body = client.put("/refresh-interval", json={"minutes": 3}).json()
    assert body["refresh_interval_minutes"] == 3
    assert body["next_refresh_in"] == "3:00"
    assert settings.preferences_path.exists()


@pytest.mark.parametrize("minutes", [0, -5, 2.5])
def test_invalid_interval_rejected(client, minutes):
    assert client.put("/refresh-interval", json={"minutes": minutes}).status_code == 422


def test_export_csv(client):
    response = client.get("/export.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("timestamp,raw_datetime,phone_number")
    assert len(lines) == 4
    assert "2024-12-13T09:05:00+05:00" in lines[1]


def test_last_refreshed_is_reported(client):
    last = client.get("/status").json()["last_refreshed"]
    assert datetime.fromisoformat(last) <= datetime.now(timezone.utc)


def test_view_in_labels_shape(client):
    view = client.get("/view", params={"shape": "labels"}).json()["view"]
    assert view["status"] == {"labels": ["Closed", "Referred"], "data": [2, 1]}
    assert client.get("/view", params={"shape": "bogus"}).status_code == 422


def test_today_window_follows_the_clock(client):
    dashboard = client.app.state.dashboard
    dashboard.clock = lambda: datetime(2024, 12, 13, 12, 0, tzinfo=TZ)
    assert client.put("/filters", json={"date_mode": "today"}).json()["visible_count"] == 2

    # past midnight, without any filter change or refresh
    dashboard.clock = lambda: datetime(2024, 12, 14, 12, 0, tzinfo=TZ)
    body = client.get("/status").json()
    assert body["visible_count"] == 1
    assert body["date_range"] == "Today (Dec 14, 2024)"
    assert client.get("/view").json()["view"]["summary"]["total_calls"] == 1


def test_export_failure_returns_json_error(client, monkeypatch):
    monkeypatch.setattr(client.app.state.dashboard, "visible", pd.DataFrame({"zone": ["Multan"]}))
    response = client.get("/export.csv")
    assert response.status_code == 500
    assert response.json()["type"] == "KeyError"
