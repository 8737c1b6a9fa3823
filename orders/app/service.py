import secrets
import time
import uuid
from decimal import Decimal
from typing import Callable, ContextManager, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from lugx_common.errors import NotFoundError, ValidationError
from lugx_common.logging import get_logger
from lugx_common.sql import UpdateBuilder

from .db import transaction
from .models import ORDER_STATUSES, Order, OrderItem
from .schemas import OrderCreate, OrderDetail, OrderItemIn, OrderOut

logger = get_logger(__name__)

ORDER_PREFIX = "LUGX-"
UPDATABLE = ("status", "customer_email")
CENT = Decimal("0.01")


def new_order_number() -> str:
    """LUGX-<epoch millis><3 random digits>: time ordered, unique per order."""
    return f"{ORDER_PREFIX}{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


def snapshot_price(item: OrderItemIn) -> Decimal:
    if item.product_price is None:
        return Decimal("0.00")
    return item.product_price.quantize(CENT)


def order_total(items: Sequence[OrderItemIn]) -> Decimal:
    return sum((snapshot_price(i) * (i.quantity or 1) for i in items), Decimal("0.00"))


class OrderService:
    """
    Order lifecycle over the order store. Every operation runs in its own
    unit of work: all-or-nothing, rolled back and reported as StorageError on
    any storage failure.
    """

    def __init__(
        self,
        unit_of_work: Callable[[], ContextManager[Session]] = transaction,
        numbers: Callable[[], str] = new_order_number,
    ):
        self.unit_of_work = unit_of_work
        self.numbers = numbers

    def create_order(self, payload: OrderCreate) -> dict:
        """
        Header first, then one row per line item, in a single transaction.
        Returns the header; items are available through get_order.
        """
        if not payload.user_id or not payload.items:
            raise ValidationError("user_id and items required")

        total = order_total(payload.items)
        number = self.numbers()

        with self.unit_of_work() as s:
            order = Order(
                order_number=number,
                user_id=payload.user_id,
                status="pending",
                total_amount=total,
                customer_email=payload.customer_email,
            )
            s.add(order)
            s.flush()  # header row first, get order.id

            for item in payload.items:
                s.add(OrderItem(
                    order_id=order.id,
                    game_id=item.game_id,
                    product_title=item.product_title,
                    product_price=snapshot_price(item),
                    quantity=item.quantity or 1,
                ))
                s.flush()

            header = OrderOut.model_validate(order).model_dump(mode="json")

        logger.info(f"Order created: {number}")
        return header

    def get_order(self, order_id: uuid.UUID) -> dict:
        with self.unit_of_work() as s:
            order = s.execute(
                select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
            ).scalar_one_or_none()
            if order is None:
                raise NotFoundError("Order not found")
            return OrderDetail.model_validate(order).model_dump(mode="json")

    def list_orders(self, user_id: Optional[str] = None, limit: int = 50) -> List[dict]:
        stmt = select(Order)
        if user_id:
            stmt = stmt.where(Order.user_id == user_id)
        stmt = stmt.order_by(Order.created_at.desc()).limit(limit)
        with self.unit_of_work() as s:
            return [OrderOut.model_validate(o).model_dump(mode="json") for o in s.execute(stmt).scalars()]

    def update_order(self, order_id: uuid.UUID, fields: dict) -> dict:
        """
        Partial update of status and/or customer_email. Status must be one of
        ORDER_STATUSES; the current status does not restrict the next one.
        """
        builder = UpdateBuilder(Order.__table__, UPDATABLE).update_from(fields)

        with self.unit_of_work() as s:
            order = s.get(Order, order_id)
            if order is None:
                raise NotFoundError("Order not found")

            if "status" in fields and fields["status"] not in ORDER_STATUSES:
                raise ValidationError("Invalid status", valid_statuses=list(ORDER_STATUSES))
            if not len(builder):
                raise ValidationError("No fields to update")

            s.execute(builder.build(Order.id == order_id))
            s.refresh(order)
            updated = OrderOut.model_validate(order).model_dump(mode="json")

        logger.info(f"Order updated: {order_id} - Status: {updated['status']}")
        return updated

    def delete_order(self, order_id: uuid.UUID) -> dict:
        """Removes the header and, through the cascade, every item of the order."""
        with self.unit_of_work() as s:
            order = s.execute(
                select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
            ).scalar_one_or_none()
            if order is None:
                raise NotFoundError("Order not found")
            header = OrderOut.model_validate(order).model_dump(mode="json")
            s.delete(order)

        logger.info(f"Order deleted: {order_id}")
        return header
