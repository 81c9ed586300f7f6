from datetime import datetime

import pytest

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
from calldash.parser import parse_feed

from conftest import TZ


def at(hour, day=14):
    return datetime(2024, 12, day, hour, 30, tzinfo=TZ)


@pytest.fixture
def frame(make_frame):
    return make_frame(
        (at(6), "0300", "Claim Status", "Multan", "Closed"),
        (at(9), "0301", "Premium Payment", "Multan", "Referred"),
        (at(13), "0300", "Claim Status", "Quetta", "QUERY_CLOSED"),
        (at(18), "0302", "Address Change", "Quetta", "pending"),
        (at(22), "0303", "Claim Status", "", "query_referred"),
        (at(2, day=15), "0304", "Premium Payment", "Multan", "Closed"),
    )


def test_time_of_day_buckets(frame):
    assert time_of_day_distribution(frame) == {"Morning": 2, "Afternoon": 1, "Evening": 1, "Night": 2}


def test_simplified_time_skips_early_hours(frame):
    dist = simplified_time_distribution(frame)
    assert dist == {"Morning": 2, "Evening": 2}
    assert sum(dist.values()) <= len(frame)


def test_simplified_time_scenario_with_bad_date():
    text = (
        "DateTime,PhoneNumber,NatureOfCall,PolicyNo,Zone,Status\n"
        "14-Dec-24 09:00,0300,Claim,P-1,Multan,QUERY_CLOSED\n"
        "14-Dec-24 20:00,0301,Claim,P-2,Multan,QUERY_CLOSED\n"
        "sometime yesterday,0302,Claim,P-3,Multan,QUERY_CLOSED\n"
    )
    records = parse_feed(text, TZ).records
    assert len(records) == 3
    assert simplified_time_distribution(records) == {"Morning": 1, "Evening": 1}
    assert records["raw_datetime"].iloc[2] == "sometime yesterday"


def test_zone_status_counts(frame):
    dist = zone_status_distribution(frame)
    assert list(dist) == ["Multan", "Quetta", "Unknown"]
    assert dist["Multan"] == {"total": 3, "closed": 2, "referred": 1}
    assert dist["Quetta"] == {"total": 2, "closed": 1, "referred": 0}
    assert dist["Unknown"] == {"total": 1, "closed": 0, "referred": 1}


def test_status_distribution_excludes_unrecognized(frame):
    dist = status_distribution(frame)
    assert dist == {"Closed": 3, "Referred": 2}
    assert sum(dist.values()) <= len(frame)


def test_status_labels_never_dropped(make_frame):
    df = make_frame((at(9), "0300", "Claim", "Multan", "Closed"))
    assert status_distribution(df) == {"Closed": 1, "Referred": 0}


def test_complaint_types_in_first_seen_order(frame):
    assert complaint_type_distribution(frame) == {"Claim Status": 3, "Premium Payment": 2, "Address Change": 1}
    assert list(complaint_type_distribution(frame)) == ["Claim Status", "Premium Payment", "Address Change"]


def test_complaint_by_time(frame):
    matrix = complaint_by_time_distribution(frame)
    assert matrix == {
        "Claim Status": {"Morning": 1, "Evening": 1},
        "Premium Payment": {"Morning": 1, "Evening": 0},
        "Address Change": {"Morning": 0, "Evening": 1},
    }


def test_daily_trend(frame):
    assert daily_call_trend(frame) == {"2024-12-14": 5, "2024-12-15": 1}


def test_data_summary(frame):
    summary = data_summary(frame)
    assert summary["total_calls"] == 6
    assert summary["unique_callers"] == 5
    assert summary["most_common_complaint"] == "Claim Status"
    assert summary["most_common_share"] == 50.0


def test_empty_input_is_defined(make_frame):
    empty = make_frame()
    assert time_of_day_distribution(empty) == {"Morning": 0, "Afternoon": 0, "Evening": 0, "Night": 0}
    assert simplified_time_distribution(empty) == {"Morning": 0, "Evening": 0}
    assert zone_status_distribution(empty) == {}
    assert status_distribution(empty) == {"Closed": 0, "Referred": 0}
    assert complaint_type_distribution(empty) == {}
    assert complaint_by_time_distribution(empty) == {}
    assert daily_call_trend(empty) == {}
    assert data_summary(empty)["total_calls"] == 0


def test_undated_rows_skip_time_buckets(make_frame):
    df = make_frame((None, "0300", "Claim", "Multan", "Closed"), (at(10), "0301", "Claim", "Multan", "Closed"))
    assert time_of_day_distribution(df) == {"Morning": 1, "Afternoon": 0, "Evening": 0, "Night": 0}
    assert status_distribution(df) == {"Closed": 2, "Referred": 0}


def test_as_labels_data():
    assert as_labels_data({"Closed": 3, "Referred": 1}) == {"labels": ["Closed", "Referred"], "data": [3, 1]}
