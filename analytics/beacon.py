# analytics/beacon.py
import queue
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from requests import RequestException
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt

from lugx_common.logging import get_logger

logger = get_logger(__name__)

SCROLL_MILESTONES = (25, 50, 75, 100)
_STOP = object()


def _new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def beacon_retry():
    # One retry, then the event is dropped.
    return retry(
        stop=stop_after_attempt(2),
        retry=retry_if_exception_type(RequestException),
    )


class AnalyticsBeacon:
    """
    Best-effort analytics emitter for client pages.

    Events are captured into a bounded in-memory queue and posted to the
    ingestion endpoint by a background worker. A full queue drops the new
    event. Delivery order across event types is not guaranteed.
    """

    def __init__(
        self,
        endpoint: str,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        maxsize: int = 100,
        timeout: float = 2.0,
        http: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint
        self.session_id = session_id or _new_id("session")
        self.user_id = user_id or _new_id("user")
        self.timeout = timeout
        self.http = http or requests.Session()
        self.queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self.sent = 0
        self.dropped = 0
        self._milestones_seen: Dict[str, set] = {}
        self._counts_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None

    # ---- capture ----
    def track(self, event_type: str, page_path: str, page_url: Optional[str] = None, data: Optional[dict] = None) -> bool:
        event = {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "event_type": event_type,
            "page_path": page_path,
            "page_url": page_url or page_path,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data or {},
        }
        try:
            self.queue.put_nowait(event)
        except queue.Full:
            with self._counts_lock:
                self.dropped += 1
            logger.warning(f"Analytics queue full, dropping {event_type}")
            return False
        return True

    def page_view(self, page_path: str, page_url: Optional[str] = None, title: str = "", referrer: Optional[str] = None) -> bool:
        return self.track("page_view", page_path, page_url, {
            "page_url": page_url or page_path,
            "page_path": page_path,
            "page_title": title,
            "referrer": referrer or "direct",
        })

    def click(self, page_path: str, tag: str, text: str = "", x: int = 0, y: int = 0) -> bool:
        return self.track("click_event", page_path, data={
            "element_tag": tag.lower(),
            "element_text": text.strip()[:100],
            "coordinates": {"x": x, "y": y},
        })

    def scroll(self, page_path: str, scroll_top: float, doc_height: float) -> bool:
        """Emits scroll_milestone the first time a page hits 25/50/75/100 percent."""
        if doc_height <= 0:
            return False
        percent = round(scroll_top / doc_height * 100)
        seen = self._milestones_seen.setdefault(page_path, set())
        if percent not in SCROLL_MILESTONES or percent in seen:
            return False
        seen.add(percent)
        return self.track("scroll_milestone", page_path, data={"milestone": percent})

    # ---- delivery ----
    @beacon_retry()
    def _post(self, event: dict) -> None:
        resp = self.http.post(self.endpoint, json=event, timeout=self.timeout)
        resp.raise_for_status()

    def _deliver(self, event: dict) -> bool:
        try:
            self._post(event)
        except RetryError as e:
            with self._counts_lock:
                self.dropped += 1
            logger.warning(f"Analytics error, dropping {event['event_type']}: {e.last_attempt.exception()}")
            return False
        with self._counts_lock:
            self.sent += 1
        return True

    def flush(self) -> int:
        """Send everything queued right now; returns how many were delivered."""
        delivered = 0
        while True:
            try:
                event = self.queue.get_nowait()
            except queue.Empty:
                return delivered
            if event is _STOP:
                self.queue.put(_STOP)
                return delivered
            if self._deliver(event):
                delivered += 1

    def _run(self) -> None:
        while True:
            event = self.queue.get()
            if event is _STOP:
                return
            self._deliver(event)

    def start(self) -> "AnalyticsBeacon":
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._run, name="analytics-beacon", daemon=True)
            self._worker.start()
        return self

    def close(self, timeout: float = 5.0) -> None:
        """Let the worker drain what is queued, then stop it."""
        if self._worker is None:
            return
        self.queue.put(_STOP)
        self._worker.join(timeout)
        self._worker = None
