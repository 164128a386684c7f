"""Order placement and loyalty point bookkeeping.

``OrderService.place_order`` is the one multi-step write in the service: the
order header, its line items, the loyalty accrual and the cart clear are
committed together or not at all. Loyalty balances are only ever changed with
relative ``UPDATE`` statements so concurrent orders and redemptions for the
same account cannot lose an increment.
"""

import math
from contextlib import contextmanager
from typing import List, Optional, Sequence

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .config import MAX_ORDER_TOTAL, REQUIRE_NONEMPTY_BASKET
from .errors import EmptyBasket, InsufficientBalance, InvalidRequest, NotFound, translate_db_error
from .models import CartItem, Order, OrderItem, User, new_id
from .schemas import BasketItem, OrderStatus

logger = structlog.get_logger(__name__)


def points_for(total_price) -> int:
    """One loyalty point per whole currency unit."""
    return math.floor(total_price)


class OrderService:
    def __init__(self, db: Session, require_nonempty_basket: bool = REQUIRE_NONEMPTY_BASKET):
        self.db = db
        self.require_nonempty_basket = require_nonempty_basket

    @contextmanager
    def _transaction(self):
        """Commit on success, roll back on any exception."""
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            error = translate_db_error(exc)
            logger.warning("Transaction rolled back", error=error.code, detail=str(exc))
            raise error from exc
        except BaseException:
            self.db.rollback()
            raise

    @contextmanager
    def _reading(self):
        try:
            yield
        except SQLAlchemyError as exc:
            error = translate_db_error(exc)
            logger.warning("Read failed", error=error.code, detail=str(exc))
            raise error from exc

    # ==========================================
    # ORDERS
    # ==========================================
    def place_order(self, user_id: str, total_price: float, items: Sequence[BasketItem]) -> str:
        if self.require_nonempty_basket and not items:
            raise EmptyBasket("Cart is empty")
        if not (math.isfinite(total_price) and 0 <= total_price <= MAX_ORDER_TOTAL):
            raise InvalidRequest(f"total_price must be between 0 and {MAX_ORDER_TOTAL:g}")

        order_id = new_id()
        points = points_for(total_price)

        with self._transaction():
            # 1. Khóa dòng tài khoản cho đến khi commit
            account = self.db.execute(
                select(User.user_id).where(User.user_id == user_id).with_for_update()
            ).first()
            if account is None:
                raise NotFound(f"User {user_id} not found")

            # 2. Order header
            self.db.add(
                Order(
                    order_id=order_id,
                    user_id=user_id,
                    total_price=total_price,
                    status=OrderStatus.PREPARING.value,
                )
            )
            self.db.flush()

            # 3. Line items, in basket order
            for position, item in enumerate(items):
                self.db.add(
                    OrderItem(
                        order_id=order_id,
                        position=position,
                        food_id=item.food_id,
                        quantity=item.quantity,
                        price=item.price,
                    )
                )
            self.db.flush()

            # 4. Loyalty accrual
            self.db.execute(
                update(User)
                .where(User.user_id == user_id)
                .values(loyalty_points=User.loyalty_points + points)
                .execution_options(synchronize_session=False)
            )

            # 5. Clear the whole cart
            self.db.execute(
                delete(CartItem)
                .where(CartItem.user_id == user_id)
                .execution_options(synchronize_session=False)
            )

        logger.info(
            "Order placed",
            order_id=order_id,
            user_id=user_id,
            total_price=total_price,
            item_count=len(items),
            points_added=points,
        )
        return order_id

    def get_order(self, order_id: str) -> Order:
        with self._reading():
            order = self.db.execute(
                select(Order).options(selectinload(Order.items)).where(Order.order_id == order_id)
            ).scalar_one_or_none()
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def list_orders(self, user_id: Optional[str] = None) -> List[Order]:
        query = select(Order).options(selectinload(Order.items))
        if user_id:
            query = query.where(Order.user_id == user_id)
        with self._reading():
            return list(self.db.execute(query.order_by(Order.created_at.desc())).scalars())

    def get_order_status(self, order_id: str) -> str:
        with self._reading():
            status = self.db.execute(
                select(Order.status).where(Order.order_id == order_id)
            ).scalar_one_or_none()
        if status is None:
            raise NotFound(f"Order {order_id} not found")
        return status

    def set_order_status(self, order_id: str, status) -> Order:
        # Any status may follow any other
        try:
            new_status = OrderStatus(status).value
        except ValueError:
            raise InvalidRequest(f"Unknown order status: {status}") from None
        with self._transaction():
            result = self.db.execute(
                update(Order)
                .where(Order.order_id == order_id)
                .values(status=new_status)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFound(f"Order {order_id} not found")

        logger.info("Order status updated", order_id=order_id, status=new_status)
        # The bulk UPDATE bypassed the identity map
        self.db.expire_all()
        return self.get_order(order_id)

    # ==========================================
    # LOYALTY POINTS
    # ==========================================
    def get_points(self, user_id: str) -> int:
        with self._reading():
            balance = self.db.execute(
                select(User.loyalty_points).where(User.user_id == user_id)
            ).scalar_one_or_none()
        if balance is None:
            raise NotFound(f"User {user_id} not found")
        return balance

    def redeem_points(self, user_id: str, points: int) -> int:
        if points < 0:
            raise InvalidRequest("points must not be negative")

        with self._transaction():
            result = self.db.execute(
                update(User)
                .where(User.user_id == user_id, User.loyalty_points >= points)
                .values(loyalty_points=User.loyalty_points - points)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                exists = self.db.execute(
                    select(User.user_id).where(User.user_id == user_id)
                ).first()
                if exists is None:
                    raise NotFound(f"User {user_id} not found")
                raise InsufficientBalance(f"Balance is lower than {points} points")
            balance = self.db.execute(
                select(User.loyalty_points).where(User.user_id == user_id)
            ).scalar_one()

        logger.info("Points redeemed", user_id=user_id, points=points, balance=balance)
        return balance

    # ==========================================
    # CART
    # ==========================================
    def get_cart(self, user_id: str) -> List[CartItem]:
        with self._reading():
            return list(
                self.db.execute(select(CartItem).where(CartItem.user_id == user_id)).scalars()
            )

    def add_to_cart(self, user_id: str, food_id: str, quantity: int, price: float) -> CartItem:
        item = CartItem(user_id=user_id, food_id=food_id, quantity=quantity, price=price)
        with self._transaction():
            if self.db.get(User, user_id) is None:
                raise NotFound(f"User {user_id} not found")
            self.db.add(item)
            self.db.flush()
        with self._reading():
            self.db.refresh(item)
        return item
