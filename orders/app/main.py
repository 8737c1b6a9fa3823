import os
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query
from fastapi.responses import JSONResponse

from lugx_common.errors import install_error_handlers
from lugx_common.logging import get_logger
from lugx_common.metrics import ServiceMetrics, get_metrics, install_metrics
from lugx_common.retry import run_with_startup_retry
from lugx_common.settings import api_prefix

from . import db
from .schemas import OrderCreate, OrderUpdate
from .service import OrderService

APP_NAME = "order-service"

logger = get_logger(__name__)


class OrderMetrics(ServiceMetrics):
    def __init__(self):
        super().__init__(APP_NAME)
        self.orders_created = self.counter("orders_total", "Total orders created")


app = FastAPI(title=APP_NAME)
router = APIRouter(prefix=api_prefix())

install_error_handlers(app)
install_metrics(app, OrderMetrics())

# Create tables at startup (idempotent)
@app.on_event("startup")
def on_startup():
    run_with_startup_retry(db.init_db, "Order Service")

def get_service() -> OrderService:
    return OrderService()

@app.get("/health")
def health():
    try:
        db.ping()
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "service": APP_NAME})
    return {"status": "healthy", "service": APP_NAME, "timestamp": datetime.now(timezone.utc).isoformat()}

# ---------- Endpoints ----------
@router.get("/orders")
def list_orders(
    user_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=1000),
    svc: OrderService = Depends(get_service),
):
    orders = svc.list_orders(user_id=user_id, limit=limit)
    return {"orders": orders, "total": len(orders)}

@router.get("/orders/{order_id}")
def get_order(order_id: uuid.UUID, svc: OrderService = Depends(get_service)):
    return {"order": svc.get_order(order_id)}

@router.post("/orders", status_code=201)
def create_order(
    payload: OrderCreate,
    svc: OrderService = Depends(get_service),
    metrics: OrderMetrics = Depends(get_metrics),
):
    order = svc.create_order(payload)
    # Only reached once the transaction has committed
    metrics.orders_created.inc()
    return order

@router.put("/orders/{order_id}")
def update_order(order_id: uuid.UUID, payload: OrderUpdate, svc: OrderService = Depends(get_service)):
    return {"order": svc.update_order(order_id, payload.model_dump(exclude_unset=True))}

@router.delete("/orders/{order_id}")
def delete_order(order_id: uuid.UUID, svc: OrderService = Depends(get_service)):
    order = svc.delete_order(order_id)
    return {"message": "Order deleted successfully", "order": order}

app.include_router(router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3002")))
