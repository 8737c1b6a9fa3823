import threading

import pytest
from requests import HTTPError
from requests import ConnectionError as RequestsConnectionError

from analytics.beacon import AnalyticsBeacon


class _Resp:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise HTTPError(f"{self.status_code}")


class _Http:
    """Plays back a script of outcomes, one per POST."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append(json)
        outcome = self.outcomes.pop(0) if self.outcomes else 200
        if isinstance(outcome, Exception):
            raise outcome
        return _Resp(outcome)


@pytest.fixture
def http():
    return _Http()


def test_generates_session_and_user_ids(http):
    beacon = AnalyticsBeacon("http://x/api/analytics", http=http)
    assert beacon.session_id.startswith("session_")
    assert beacon.user_id.startswith("user_")
    assert AnalyticsBeacon("e", session_id="s", user_id="u", http=http).user_id == "u"


def test_page_view_and_click_payloads(http):
    beacon = AnalyticsBeacon("http://x/api/analytics", session_id="s", user_id="u", http=http)
    beacon.page_view("/games", "http://x/games", title="Games")
    beacon.click("/games", "BUTTON", text="  " + "b" * 150, x=3, y=4)

    assert beacon.flush() == 2
    view, click = http.posts
    assert view["event_type"] == "page_view"
    assert view["data"]["referrer"] == "direct"
    assert view["page_url"] == "http://x/games"
    assert click["event_type"] == "click_event"
    assert click["data"]["element_tag"] == "button"
    assert len(click["data"]["element_text"]) == 100
    assert click["data"]["coordinates"] == {"x": 3, "y": 4}
    assert {e["session_id"] for e in http.posts} == {"s"}


def test_scroll_milestones_fire_once_per_page(http):
    beacon = AnalyticsBeacon("e", http=http)
    assert beacon.scroll("/a", 250, 1000) is True
    assert beacon.scroll("/a", 250, 1000) is False
    assert beacon.scroll("/a", 300, 1000) is False
    assert beacon.scroll("/b", 250, 1000) is True
    assert beacon.scroll("/a", 0, 0) is False

    beacon.flush()
    assert [e["data"]["milestone"] for e in http.posts] == [25, 25]


def test_full_queue_drops_new_events(http):
    beacon = AnalyticsBeacon("e", maxsize=2, http=http)
    assert beacon.track("a", "/") is True
    assert beacon.track("b", "/") is True
    assert beacon.track("c", "/") is False
    assert beacon.dropped == 1
    beacon.flush()
    assert [e["event_type"] for e in http.posts] == ["a", "b"]


def test_send_is_retried_once_then_dropped():
    http = _Http(RequestsConnectionError("down"), 200, 503, 503)
    beacon = AnalyticsBeacon("e", http=http)
    beacon.track("first", "/")
    beacon.track("second", "/")

    assert beacon.flush() == 1
    assert [e["event_type"] for e in http.posts] == ["first", "first", "second", "second"]
    assert beacon.sent == 1
    assert beacon.dropped == 1


def test_background_worker_drains_queue_on_close(http):
    beacon = AnalyticsBeacon("e", http=http).start()
    for i in range(5):
        beacon.track(f"e{i}", "/")
    beacon.close()
    assert sorted(e["event_type"] for e in http.posts) == [f"e{i}" for i in range(5)]
    assert beacon.sent == 5


def test_counters_stay_exact_across_threads():
    http = _Http(*([503] * 400))
    beacon = AnalyticsBeacon("e", maxsize=1, http=http)
    beacon.track("seed", "/")

    def spam():
        for _ in range(200):
            beacon.track("overflow", "/")

    callers = [threading.Thread(target=spam) for _ in range(4)]
    for t in callers:
        t.start()
    beacon.flush()
    for t in callers:
        t.join()
    beacon.flush()

    attempted = 1 + 4 * 200
    assert beacon.sent + beacon.dropped == attempted
