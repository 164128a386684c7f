from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import MAX_ORDER_TOTAL


class OrderStatus(str, Enum):
    PREPARING = "Preparing"
    PAID = "Paid"
    OUT_FOR_DELIVERY = "Out for delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# --- DTOs ---
class BasketItem(BaseModel):
    food_id: str
    quantity: int = Field(gt=0)
    price: float = Field(ge=0, allow_inf_nan=False)


class OrderCreate(BaseModel):
    user_id: str
    total_price: float = Field(ge=0, le=MAX_ORDER_TOTAL, allow_inf_nan=False)
    items: List[BasketItem] = []


class OrderPlaced(BaseModel):
    order_id: str


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    food_id: str
    quantity: int
    price: float


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: str
    user_id: str
    total_price: float
    status: str
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str


class RedeemRequest(BaseModel):
    points: int = Field(ge=0)


class PointsResponse(BaseModel):
    user_id: str
    loyalty_points: int


class CartItemCreate(BaseModel):
    user_id: str
    food_id: str
    quantity: int = Field(default=1, gt=0)
    price: float = Field(ge=0, allow_inf_nan=False)


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cart_id: str
    user_id: str
    food_id: str
    quantity: int
    price: float
