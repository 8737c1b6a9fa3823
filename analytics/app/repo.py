import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from lugx_common.errors import ValidationError
from lugx_common.logging import get_logger

from . import queries
from .clickhouse import ClickHouseClient
from .schemas import EventErase, EventIn, EventQuery

logger = get_logger(__name__)

# Column limits carried over from the beacon contract.
MAX_ID = 100
MAX_PATH = 200
MAX_URL = 500


def server_timestamp(now: Optional[datetime] = None) -> datetime:
    """Second precision, UTC."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(microsecond=0, tzinfo=None)


class EventStore:
    """Append-only analytics events in ClickHouse."""

    def __init__(self, client: ClickHouseClient):
        self.client = client

    def init_schema(self) -> None:
        self.client.execute(queries.CREATE_DATABASE)
        self.client.execute(queries.CREATE_EVENTS)

    def insert_event(self, event: EventIn, now: Optional[datetime] = None) -> Dict[str, Any]:
        row = {
            "session_id": event.session_id[:MAX_ID],
            "user_id": event.user_id[:MAX_ID],
            "event_type": event.event_type[:MAX_ID],
            "page_path": event.page_path[:MAX_PATH],
            "page_url": (event.page_url or event.page_path)[:MAX_URL],
            "timestamp": server_timestamp(now),
            "event_data": json.dumps(event.data if event.data is not None else {}),
        }
        self.client.execute(queries.INSERT_EVENT, row)
        return row

    def find_events(self, q: EventQuery) -> List[Dict[str, Any]]:
        flt = (
            queries.EventFilter()
            .equals("user_id", q.user_id)
            .equals("session_id", q.session_id)
            .equals("event_type", q.event_type)
            .contains("page_path", q.page_path)
            .timestamp(">=", q.start_date)
            .timestamp("<=", q.end_date)
        )
        sql, params = queries.select_events(flt, q.limit)
        return self.client.select(sql, params)

    def erase(self, req: EventErase) -> int:
        """
        Count the matching rows, then delete them. The two steps are not
        isolated from each other; concurrent inserts can skew the count.
        """
        if not (req.user_id or req.session_id or req.before_date):
            raise ValidationError("At least one filter required: user_id, session_id, or before_date")

        flt = (
            queries.EventFilter()
            .equals("user_id", req.user_id)
            .equals("session_id", req.session_id)
            .timestamp("<", req.before_date)
        )

        sql, params = queries.count_events(flt)
        rows = self.client.select(sql, params)
        matched = int(rows[0]["total"]) if rows else 0
        if matched == 0:
            return 0

        sql, params = queries.delete_events(flt)
        # Wait for the mutation so a follow-up read no longer sees the rows.
        self.client.execute(sql, params, settings={"mutations_sync": 1})
        logger.info(f"Analytics data deleted: {matched} records")
        return matched

    def dashboard(self) -> Dict[str, int]:
        rows = self.client.select(queries.DASHBOARD)
        overview = rows[0] if rows else {}
        return {key: int(value) for key, value in overview.items()}
