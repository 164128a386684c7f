import asyncio
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
import structlog
from fastapi import BackgroundTasks, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import config
from .database import create_tables, get_db
from .errors import OrderServiceError
from .events import consume_payment_events
from .logging_config import configure_logging
from .schemas import (
    CartItemCreate,
    CartItemResponse,
    OrderCreate,
    OrderPlaced,
    OrderResponse,
    OrderStatusResponse,
    OrderStatusUpdate,
    PointsResponse,
    RedeemRequest,
)
from .service import OrderService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    create_tables()

    task = None
    if config.KAFKA_BOOTSTRAP_SERVERS:
        task = asyncio.create_task(consume_payment_events())
    else:
        logger.info("Kafka consumer disabled, KAFKA_BOOTSTRAP_SERVERS is not set")

    yield

    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Kafka consumer failed")


app = FastAPI(title="Food Order Service", lifespan=lifespan)


@app.exception_handler(OrderServiceError)
async def order_service_error_handler(request: Request, exc: OrderServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


async def notify_order_placed(order_id: str, payload: OrderCreate):
    """Best-effort notification; the order is already committed."""
    if not config.NOTIFICATION_URL:
        return
    message = f"New order #{order_id}: {len(payload.items)} items - {payload.total_price:,.2f}"
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            await client.post(config.NOTIFICATION_URL, json={"user_id": payload.user_id, "message": message})
    except Exception as exc:
        logger.warning("Order notification failed", order_id=order_id, error=str(exc))


# --- API ---

@app.get("/")
def root():
    """Health check endpoint."""
    return {"message": "Order service is running"}


@app.post("/orders", status_code=201, response_model=OrderPlaced)
def place_order(
    payload: OrderCreate,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
):
    order_id = service.place_order(payload.user_id, payload.total_price, payload.items)
    background_tasks.add_task(notify_order_placed, order_id, payload)
    return OrderPlaced(order_id=order_id)


@app.get("/orders", response_model=List[OrderResponse])
def list_orders(user_id: Optional[str] = None, service: OrderService = Depends(get_order_service)):
    return service.list_orders(user_id)


@app.get("/orders/{order_id}", response_model=OrderResponse)
def get_order_detail(order_id: str, service: OrderService = Depends(get_order_service)):
    return service.get_order(order_id)


@app.get("/orders/{order_id}/status", response_model=OrderStatusResponse)
def get_order_status(order_id: str, service: OrderService = Depends(get_order_service)):
    return OrderStatusResponse(order_id=order_id, status=service.get_order_status(order_id))


@app.put("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service),
):
    return service.set_order_status(order_id, body.status)


# ==========================================
# LOYALTY POINTS
# ==========================================
@app.get("/users/{user_id}/points", response_model=PointsResponse)
def get_points(user_id: str, service: OrderService = Depends(get_order_service)):
    return PointsResponse(user_id=user_id, loyalty_points=service.get_points(user_id))


@app.post("/users/{user_id}/points/redeem", response_model=PointsResponse)
def redeem_points(user_id: str, body: RedeemRequest, service: OrderService = Depends(get_order_service)):
    balance = service.redeem_points(user_id, body.points)
    return PointsResponse(user_id=user_id, loyalty_points=balance)


# ==========================================
# CART
# ==========================================
@app.get("/cart/{user_id}", response_model=List[CartItemResponse])
def get_cart(user_id: str, service: OrderService = Depends(get_order_service)):
    return service.get_cart(user_id)


@app.post("/cart", status_code=201, response_model=CartItemResponse)
def add_to_cart(item: CartItemCreate, service: OrderService = Depends(get_order_service)):
    return service.add_to_cart(item.user_id, item.food_id, item.quantity, item.price)
