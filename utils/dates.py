"""Date window helpers shared by the transaction list and analytics queries"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from models.transaction import to_naive_utc
from utils.errors import InputError


def parse_query_date(value: Optional[str], param: str) -> Tuple[Optional[datetime], bool]:
    """
    Parses an ISO date or datetime query parameter.

    Returns the naive UTC datetime and whether the input was a bare date.
    Raises InputError for unparseable values.
    """
    if value is None or not value.strip():
        return None, False
    text = value.strip()
    try:
        parsed = to_naive_utc(text)
    except ValueError:
        raise InputError(f"Invalid {param}: expected an ISO date (YYYY-MM-DD)")
    return parsed, len(text) == 10


def build_date_filter(start_date: Optional[str], end_date: Optional[str]) -> Dict[str, Any]:
    """
    Builds the ``date`` clause for a Mongo filter. Both bounds are inclusive;
    a date-only end bound covers the whole day.
    """
    start, _ = parse_query_date(start_date, "startDate")
    end, end_is_date = parse_query_date(end_date, "endDate")
    if start is None and end is None:
        return {}
    clause: Dict[str, Any] = {}
    if start is not None:
        clause["$gte"] = start
    if end is not None:
        if end_is_date:
            clause["$lt"] = end + timedelta(days=1)
        else:
            clause["$lte"] = end
    return {"date": clause}


def year_window(year: int) -> Dict[str, Any]:
    """Full calendar year, Jan 1 00:00 through the last instant of Dec 31."""
    start = datetime(year, 1, 1)
    end = datetime(year, 12, 31, 23, 59, 59, 999000)
    return {"date": {"$gte": start, "$lte": end}}
