from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Dict, List, Optional

import pandas as pd

from calldash.errors import MalformedFeedError, RowParseError, SchemaError
from calldash.records import Record, empty_frame, normalize_status, normalize_zone, records_to_frame


logger = logging.getLogger(__name__)

# Source header -> record field. Matched case-insensitively after trimming.
FEED_COLUMNS = {
    "DateTime": "raw_datetime",
    "PhoneNumber": "phone_number",
    "NatureOfCall": "complaint_type",
    "PolicyNo": "policy_number",
    "Zone": "zone",
    "Status": "status",
}
MIN_FIELDS = 6

_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
_COMPACT_DATE = re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{2})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$")


@dataclass(frozen=True)
class ParseResult:
    records: pd.DataFrame
    dropped_rows: int = 0
    undated_rows: int = 0


def parse_datetime(value: object, tz: tzinfo) -> Optional[datetime]:
    """Parse ``13-Dec-26 13:56`` (year = 2000 + YY) or ISO 8601 into an aware datetime.

    Naive values are taken as wall-clock time in ``tz``. Returns None when unparseable.
    """
    if value is None or pd.isna(value):
        return None
    s = str(value).strip()
    if not s:
        return None
    match = _COMPACT_DATE.match(s)
    if match:
        day, mon, yy, hh, mm, ss = match.groups()
        mon = mon.lower()
        if mon not in _MONTHS:
            return None
        try:
            return datetime(2000 + int(yy), _MONTHS.index(mon) + 1, int(day), int(hh), int(mm), int(ss or 0), tzinfo=tz)
        except ValueError:
            return None
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


def map_columns(header: List[str]) -> Dict[str, str]:
    """Locate required columns by case-insensitive name; raise SchemaError if any is absent."""
    lookup = {str(col).strip().lower(): col for col in header}
    mapping: Dict[str, str] = {}
    missing = []
    for source_name, field_name in FEED_COLUMNS.items():
        col = lookup.get(source_name.lower())
        if col is None:
            missing.append(source_name)
        else:
            mapping[field_name] = col
    if missing:
        raise SchemaError(missing)
    return mapping


def _read_table(raw_text: str, delimiter: str) -> pd.DataFrame:
    # Short rows come back padded with NaN; index_col=False keeps trailing extra fields
    # from shifting the columns.
    try:
        return pd.read_csv(
            io.StringIO(raw_text),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
            index_col=False,
            engine="python",
        )
    except pd.errors.EmptyDataError as exc:
        raise SchemaError(FEED_COLUMNS.keys()) from exc
    except (pd.errors.ParserError, csv.Error) as exc:
        raise MalformedFeedError(f"Could not tokenize feed: {exc}") from exc


def _build_record(row: pd.Series, row_number: int, mapping: Dict[str, str], tz: tzinfo) -> Record:
    if int(row.notna().sum()) < MIN_FIELDS:
        raise RowParseError(row_number, f"fewer than {MIN_FIELDS} fields")
    values = {}
    for field_name, col in mapping.items():
        value = row[col]
        if pd.isna(value):
            raise RowParseError(row_number, f"missing {col!r}")
        values[field_name] = str(value).strip()
    return Record(
        timestamp=parse_datetime(values["raw_datetime"], tz),
        raw_datetime=values["raw_datetime"],
        phone_number=values["phone_number"],
        complaint_type=values["complaint_type"],
        policy_number=values["policy_number"],
        zone=normalize_zone(values["zone"]),
        status=normalize_status(values["status"]),
    )


def parse_feed(raw_text: str, tz: tzinfo, *, delimiter: str = ",", drop_undated: bool = False) -> ParseResult:
    """Turn delimited feed text into a record frame.

    Bad rows are dropped and counted; a missing required column fails the whole feed
    with SchemaError. Rows whose date cannot be parsed are kept with ``timestamp``
    unset (their ``raw_datetime`` is preserved) unless ``drop_undated`` is set.
    """
    table = _read_table(raw_text, delimiter)
    mapping = map_columns(list(table.columns))
    if table.empty:
        return ParseResult(records=empty_frame(tz))

    records: List[Record] = []
    dropped = 0
    undated = 0
    for idx, row in table.iterrows():
        row_number = int(idx) + 2
        try:
            record = _build_record(row, row_number, mapping, tz)
        except RowParseError as exc:
            logger.debug("Dropping feed %s", exc)
            dropped += 1
            continue
        if record.timestamp is None:
            logger.debug("Unparseable date %r at row %d", record.raw_datetime, row_number)
            undated += 1
            if drop_undated:
                dropped += 1
                continue
        records.append(record)

    if dropped or undated:
        logger.info("Parsed %d records (%d rows dropped, %d undated)", len(records), dropped, undated)
    return ParseResult(records=records_to_frame(records, tz), dropped_rows=dropped, undated_rows=undated)
