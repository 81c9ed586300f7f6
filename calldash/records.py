from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd


CLOSED = "Closed"
REFERRED = "Referred"
UNKNOWN_ZONE = "Unknown"

RECORD_COLUMNS = [
    "timestamp",
    "raw_datetime",
    "phone_number",
    "complaint_type",
    "policy_number",
    "zone",
    "status",
]

_STATUS_ALIASES = {
    "query_closed": CLOSED,
    "query closed": CLOSED,
    "closed": CLOSED,
    "query_referred": REFERRED,
    "query referred": REFERRED,
    "referred": REFERRED,
}


def normalize_status(value: object) -> str:
    """Map any case/format variant of the status field onto the canonical tokens."""
    if value is None or pd.isna(value):
        return ""
    s = str(value).strip()
    return _STATUS_ALIASES.get(s.lower(), s)


def normalize_zone(value: object) -> str:
    if value is None or pd.isna(value):
        return UNKNOWN_ZONE
    s = str(value).strip()
    return s or UNKNOWN_ZONE


@dataclass(frozen=True)
class Record:
    """One call event from the feed."""

    timestamp: Optional[datetime]
    raw_datetime: str
    phone_number: str
    complaint_type: str
    policy_number: str
    zone: str
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat() if self.timestamp is not None else None,
            "raw_datetime": self.raw_datetime,
            "phone_number": self.phone_number,
            "complaint_type": self.complaint_type,
            "policy_number": self.policy_number,
            "zone": self.zone,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Record":
        ts = raw.get("timestamp")
        return cls(
            timestamp=datetime.fromisoformat(ts) if ts else None,
            raw_datetime=str(raw.get("raw_datetime") or ""),
            phone_number=str(raw.get("phone_number") or ""),
            complaint_type=str(raw.get("complaint_type") or ""),
            policy_number=str(raw.get("policy_number") or ""),
            zone=normalize_zone(raw.get("zone")),
            status=normalize_status(raw.get("status")),
        )


def empty_frame(tz: Optional[tzinfo] = None) -> pd.DataFrame:
    df = pd.DataFrame({c: pd.Series(dtype="object") for c in RECORD_COLUMNS})
    df["timestamp"] = pd.Series(dtype="datetime64[ns, UTC]")
    if tz is not None:
        df["timestamp"] = df["timestamp"].dt.tz_convert(tz)
    return df


def records_to_frame(records: Iterable[Record], tz: Optional[tzinfo] = None) -> pd.DataFrame:
    """Build a record frame in source order. Timestamps are shown in ``tz`` (or the first record's zone)."""
    rows = list(records)
    if not rows:
        return empty_frame(tz)
    df = pd.DataFrame([{c: getattr(r, c) for c in RECORD_COLUMNS} for r in rows], columns=RECORD_COLUMNS)
    if tz is None:
        tz = next((r.timestamp.tzinfo for r in rows if r.timestamp is not None), None)
    ts = pd.to_datetime(df["timestamp"], utc=True)
    df["timestamp"] = ts.dt.tz_convert(tz) if tz is not None else ts
    return df


def frame_to_records(df: pd.DataFrame) -> List[Record]:
    out: List[Record] = []
    for row in df[RECORD_COLUMNS].itertuples(index=False):
        ts = row.timestamp
        out.append(
            Record(
                timestamp=None if pd.isna(ts) else ts.to_pydatetime(),
                raw_datetime=row.raw_datetime,
                phone_number=row.phone_number,
                complaint_type=row.complaint_type,
                policy_number=row.policy_number,
                zone=row.zone,
                status=row.status,
            )
        )
    return out
