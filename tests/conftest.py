from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from calldash.cache import CacheStore, PreferenceStore
from calldash.records import Record, records_to_frame


TZ = ZoneInfo("Asia/Karachi")

FEED_TEXT = """DateTime,PhoneNumber,NatureOfCall,PolicyNo,Zone,Status
13-Dec-24 09:05,03001112222,Claim Status,P-1,Lahore (Central),QUERY_CLOSED
13-Dec-24 20:40,03003334444,"Loan, Inquiry",P-2,Karachi (South),query_referred
14-Dec-24 02:15,03005556666,Premium Payment,P-3,Islamabad,Query_Closed
"""


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def tz():
    return TZ


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 12, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_frame():
    def _make(*rows):
        records = [
            Record(
                timestamp=ts,
                raw_datetime=ts.strftime("%d-%b-%y %H:%M") if ts is not None else "n/a",
                phone_number=phone,
                complaint_type=complaint,
                policy_number=f"P-{i}",
                zone=zone,
                status=status,
            )
            for i, (ts, phone, complaint, zone, status) in enumerate(rows)
        ]
        return records_to_frame(records, TZ)

    return _make


@pytest.fixture
def cache(tmp_path, clock):
    return CacheStore(tmp_path / "cache.json", TZ, freshness_window=timedelta(minutes=5), clock=clock)


@pytest.fixture
def prefs(tmp_path):
    return PreferenceStore(tmp_path / "prefs.json")
