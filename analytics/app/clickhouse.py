# analytics/app/clickhouse.py
import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from requests import RequestException

from lugx_common.errors import StorageError
from lugx_common.logging import get_logger

logger = get_logger(__name__)

CLICKHOUSE_HOST = os.getenv("CLICKHOUSE_HOST", "http://clickhouse:8123")
CLICKHOUSE_USER = os.getenv("CLICKHOUSE_USER", "default")
CLICKHOUSE_PASSWORD = os.getenv("CLICKHOUSE_PASSWORD", "")
CLICKHOUSE_TIMEOUT = float(os.getenv("CLICKHOUSE_TIMEOUT", "10"))

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_param(value: Any) -> str:
    """Render a value the way ClickHouse parses query parameters."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(DATETIME_FORMAT)
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class ClickHouseClient:
    """
    Thin client for the ClickHouse HTTP interface. Query text is sent as the
    POST body; values are bound server-side through `param_<name>` URL
    parameters matching `{name:Type}` placeholders in the query.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or CLICKHOUSE_HOST).rstrip("/")
        self.timeout = CLICKHOUSE_TIMEOUT if timeout is None else timeout
        self.session = requests.Session()
        self.session.headers.update({
            "X-ClickHouse-User": user or CLICKHOUSE_USER,
            "X-ClickHouse-Key": CLICKHOUSE_PASSWORD if password is None else password,
        })

    def execute(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> str:
        url_params = {f"param_{name}": format_param(value) for name, value in (params or {}).items()}
        url_params.update({name: format_param(value) for name, value in (settings or {}).items()})

        try:
            resp = self.session.post(
                self.base_url,
                params=url_params,
                data=query.encode("utf-8"),
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error(f"ClickHouse unreachable: {e}")
            raise StorageError() from e

        if resp.status_code != 200:
            logger.error(f"ClickHouse query failed ({resp.status_code}): {resp.text.strip()[:500]}")
            raise StorageError()
        return resp.text

    def select(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        body = self.execute(f"{query} FORMAT JSON", params)
        try:
            return json.loads(body).get("data", [])
        except ValueError as e:
            logger.error(f"ClickHouse returned malformed JSON: {e}")
            raise StorageError() from e

    def ping(self) -> None:
        self.execute("SELECT 1")
