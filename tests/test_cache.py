from datetime import datetime, timedelta

from calldash.cache import Preferences, PreferenceStore
from calldash.records import frame_to_records

from conftest import TZ


def test_read_returns_none_when_nothing_stored(cache):
    assert cache.read() is None
    assert cache.read_any() is None


def test_write_then_read_round_trips_records(cache, clock, make_frame):
    df = make_frame(
        (datetime(2024, 12, 14, 9, 0, tzinfo=TZ), "0300", "Claim Status", "Multan", "Closed"),
        (None, "0301", "Premium Payment", "Quetta", "Referred"),
    )
    cache.write(df)

    entry = cache.read()
    assert entry is not None
    assert entry.fetched_at == clock.now
    assert frame_to_records(entry.records) == frame_to_records(df)


def test_entry_past_freshness_window_reads_as_absent(cache, clock, make_frame):
    cache.write(make_frame((datetime(2024, 12, 14, 9, 0, tzinfo=TZ), "0300", "Claim", "Multan", "Closed")))
    clock.advance(minutes=5)
    assert cache.read() is not None

    clock.advance(seconds=1)
    assert cache.read() is None
    # still physically present for stale recovery
    stale = cache.read_any()
    assert stale is not None
    assert len(stale.records) == 1


def test_write_replaces_previous_entry(cache, clock, make_frame):
    cache.write(make_frame((datetime(2024, 12, 14, 9, 0, tzinfo=TZ), "0300", "Claim", "Multan", "Closed")))
    clock.advance(minutes=1)
    cache.write(make_frame(
        (datetime(2024, 12, 14, 10, 0, tzinfo=TZ), "0301", "Claim", "Quetta", "Closed"),
        (datetime(2024, 12, 14, 11, 0, tzinfo=TZ), "0302", "Claim", "Quetta", "Referred"),
    ))
    entry = cache.read()
    assert len(entry.records) == 2
    assert entry.fetched_at == clock.now
    assert not list(cache.path.parent.glob("*.tmp"))


def test_corrupt_cache_is_a_miss(cache):
    cache.path.write_text("{not json", encoding="utf-8")
    assert cache.read() is None
    assert cache.read_any() is None


def test_unwritable_location_is_swallowed(tmp_path, clock, make_frame):
    from calldash.cache import CacheStore

    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    store = CacheStore(blocker / "cache.json", TZ, clock=clock)
    df = make_frame((datetime(2024, 12, 14, 9, 0, tzinfo=TZ), "0300", "Claim", "Multan", "Closed"))
    assert store.write(df) is None
    assert store.read() is None


def test_clear_removes_entry(cache, make_frame):
    cache.write(make_frame((datetime(2024, 12, 14, 9, 0, tzinfo=TZ), "0300", "Claim", "Multan", "Closed")))
    cache.clear()
    assert cache.read_any() is None
    cache.clear()


def test_preferences_default_and_persist(tmp_path):
    store = PreferenceStore(tmp_path / "prefs.json", default_interval_minutes=2)
    assert store.load() == Preferences(auto_refresh_enabled=True, refresh_interval_minutes=2)

    store.save(Preferences(auto_refresh_enabled=False, refresh_interval_minutes=10))
    reloaded = PreferenceStore(tmp_path / "prefs.json").load()
    assert reloaded.auto_refresh_enabled is False
    assert reloaded.refresh_interval_minutes == 10


def test_bad_preferences_fall_back_to_defaults(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text('{"auto_refresh_enabled": false, "refresh_interval_minutes": "soon"}', encoding="utf-8")
    prefs = PreferenceStore(path).load()
    assert prefs.auto_refresh_enabled is False
    assert prefs.refresh_interval_minutes == 1

    path.write_text("[]", encoding="utf-8")
    assert PreferenceStore(path).load() == Preferences()


def test_freshness_window_is_configurable(tmp_path, clock, make_frame):
    from calldash.cache import CacheStore

    store = CacheStore(tmp_path / "c.json", TZ, freshness_window=timedelta(seconds=30), clock=clock)
    store.write(make_frame((datetime(2024, 12, 14, 9, 0, tzinfo=TZ), "0300", "Claim", "Multan", "Closed")))
    clock.advance(seconds=31)
    assert store.read() is None
