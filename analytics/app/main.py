import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from lugx_common.errors import install_error_handlers
from lugx_common.logging import get_logger
from lugx_common.metrics import ServiceMetrics, get_metrics, install_metrics
from lugx_common.retry import run_with_startup_retry
from lugx_common.settings import api_prefix

from .clickhouse import ClickHouseClient
from .repo import EventStore
from .schemas import EventErase, EventIn, EventQuery

APP_NAME = "analytics-service"

logger = get_logger(__name__)


class AnalyticsMetrics(ServiceMetrics):
    def __init__(self):
        super().__init__(APP_NAME)
        self.events = self.counter("analytics_events_total", "Total analytics events", ["event_type"])


app = FastAPI(title=APP_NAME)
router = APIRouter(prefix=api_prefix())

install_error_handlers(app)
install_metrics(app, AnalyticsMetrics())
app.state.clickhouse = ClickHouseClient()

def get_store(request: Request) -> EventStore:
    return EventStore(request.app.state.clickhouse)

@app.on_event("startup")
def on_startup():
    store = EventStore(app.state.clickhouse)
    run_with_startup_retry(store.init_schema, "ClickHouse Analytics")

@app.get("/health")
def health(store: EventStore = Depends(get_store)):
    try:
        store.client.ping()
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "service": APP_NAME})
    return {"status": "healthy", "service": APP_NAME, "timestamp": datetime.now(timezone.utc).isoformat()}

@router.post("/analytics")
def ingest_event(
    payload: EventIn,
    store: EventStore = Depends(get_store),
    metrics: AnalyticsMetrics = Depends(get_metrics),
):
    logger.info(f"Inserting analytics event: {payload.event_type} for user {payload.user_id}")
    row = store.insert_event(payload)
    metrics.events.labels(row["event_type"]).inc()
    return {"success": True, "message": "Event stored"}

@router.get("/analytics")
def list_events(
    request: Request,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    event_type: Optional[str] = None,
    page_path: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=10000),
    store: EventStore = Depends(get_store),
):
    q = EventQuery(
        user_id=user_id, session_id=session_id, event_type=event_type, page_path=page_path,
        start_date=start_date, end_date=end_date, limit=limit,
    )
    events = store.find_events(q)
    return {"events": events, "total": len(events), "filters": dict(request.query_params)}

@router.delete("/analytics")
def erase_events(payload: Optional[EventErase] = None, store: EventStore = Depends(get_store)):
    payload = payload or EventErase()
    deleted = store.erase(payload)
    filters = payload.model_dump(mode="json", exclude_none=True)
    if deleted == 0:
        return {"message": "No records found matching the criteria", "deleted_count": 0, "filters": filters}
    return {"message": "Analytics data deleted successfully", "deleted_count": deleted, "filters": filters}

@router.get("/analytics/dashboard")
def dashboard(store: EventStore = Depends(get_store)):
    now = datetime.now(timezone.utc)
    return {"overview": store.dashboard(), "date": now.date().isoformat(), "timestamp": now.isoformat()}

app.include_router(router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3003")))
