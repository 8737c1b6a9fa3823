# analytics/app/queries.py
import os
from typing import Any, Dict, List, Tuple

CLICKHOUSE_DATABASE = os.getenv("CLICKHOUSE_DATABASE", "lugx_analytics")
EVENTS_TABLE = f"{CLICKHOUSE_DATABASE}.events"

EVENT_COLUMNS = ("session_id", "user_id", "event_type", "page_path", "page_url", "timestamp", "event_data")

CREATE_DATABASE = f"CREATE DATABASE IF NOT EXISTS {CLICKHOUSE_DATABASE}"

CREATE_EVENTS = f"""
CREATE TABLE IF NOT EXISTS {EVENTS_TABLE} (
    session_id String,
    user_id String,
    event_type String,
    page_path String,
    page_url String,
    timestamp DateTime('UTC'),
    event_data String
) ENGINE = MergeTree()
ORDER BY timestamp
"""

# INSERT ... SELECT so every value is a typed server-side parameter.
INSERT_EVENT = (
    f"INSERT INTO {EVENTS_TABLE} ({', '.join(EVENT_COLUMNS)}) SELECT "
    "{session_id:String}, {user_id:String}, {event_type:String}, {page_path:String}, "
    "{page_url:String}, {timestamp:DateTime('UTC')}, {event_data:String}"
)

DASHBOARD = (
    "SELECT count() AS total_events, uniq(user_id) AS unique_users, "
    "uniq(session_id) AS unique_sessions, "
    "countIf(event_type = 'page_view') AS page_views, "
    "countIf(event_type = 'click_event') AS clicks "
    f"FROM {EVENTS_TABLE} WHERE timestamp >= toStartOfDay(now('UTC'), 'UTC')"
)

_STRING_COLUMNS = ("session_id", "user_id", "event_type", "page_path", "page_url")


class EventFilter:
    """
    Conjunctive WHERE clause over the events table. Conditions reference
    known columns only; every value becomes a `{pN:Type}` parameter.
    """

    def __init__(self):
        self._conditions: List[str] = []
        self._params: Dict[str, Any] = {}

    def _bind(self, value: Any) -> str:
        name = f"p{len(self._params)}"
        self._params[name] = value
        return name

    def equals(self, column: str, value: Any) -> "EventFilter":
        if value is None or value == "":
            return self
        if column not in _STRING_COLUMNS:
            raise KeyError(column)
        self._conditions.append(f"{column} = {{{self._bind(value)}:String}}")
        return self

    def contains(self, column: str, value: Any) -> "EventFilter":
        if value is None or value == "":
            return self
        if column not in _STRING_COLUMNS:
            raise KeyError(column)
        self._conditions.append(f"position({column}, {{{self._bind(value)}:String}}) > 0")
        return self

    def timestamp(self, op: str, value: Any) -> "EventFilter":
        if value is None:
            return self
        if op not in (">=", "<=", "<"):
            raise ValueError(op)
        self._conditions.append(f"timestamp {op} {{{self._bind(value)}:DateTime('UTC')}}")
        return self

    def __len__(self) -> int:
        return len(self._conditions)

    def render(self) -> Tuple[str, Dict[str, Any]]:
        where = " AND ".join(self._conditions) if self._conditions else "1 = 1"
        return f"WHERE {where}", dict(self._params)


def select_events(flt: EventFilter, limit: int) -> Tuple[str, Dict[str, Any]]:
    where, params = flt.render()
    # limit is an int by the time it gets here, never request text
    return f"SELECT * FROM {EVENTS_TABLE} {where} ORDER BY timestamp DESC LIMIT {int(limit)}", params


def count_events(flt: EventFilter) -> Tuple[str, Dict[str, Any]]:
    where, params = flt.render()
    return f"SELECT count() AS total FROM {EVENTS_TABLE} {where}", params


def delete_events(flt: EventFilter) -> Tuple[str, Dict[str, Any]]:
    where, params = flt.render()
    return f"ALTER TABLE {EVENTS_TABLE} DELETE {where}", params
