import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

class OrderItemIn(BaseModel):
    game_id: Optional[uuid.UUID] = None
    product_title: Optional[str] = Field(default=None, max_length=255)
    # A missing price counts as zero; anything present must be a non-negative number.
    product_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    quantity: Optional[int] = Field(default=None, ge=1)

class OrderCreate(BaseModel):
    user_id: str = Field(min_length=1, max_length=255)
    items: List[OrderItemIn] = Field(min_length=1)
    customer_email: Optional[str] = Field(default=None, max_length=255)

class OrderUpdate(BaseModel):
    status: Optional[str] = None
    customer_email: Optional[str] = Field(default=None, max_length=255)

class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    game_id: Optional[uuid.UUID] = None
    product_title: str
    product_price: Decimal
    quantity: int
    created_at: datetime

class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    user_id: str
    status: str
    total_amount: Decimal
    customer_email: Optional[str] = None
    created_at: datetime

class OrderDetail(OrderOut):
    items: List[OrderItemOut]
