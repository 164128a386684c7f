import datetime
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .database import Base


def new_id():
    return str(uuid.uuid4())


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint("loyalty_points >= 0", name="ck_users_loyalty_points"),)

    user_id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(150), unique=True, nullable=False)

    # Chỉ thay đổi bằng UPDATE tương đối (+N / -N)
    loyalty_points = Column(Integer, nullable=False, default=0)


class Category(Base):
    __tablename__ = "categories"

    category_id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), unique=True, nullable=False)
    image_url = Column(String(255))

    items = relationship("MenuItem", back_populates="category")


class MenuItem(Base):
    __tablename__ = "menu_item"

    food_id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), unique=True, nullable=False)
    price = Column(Integer, nullable=False)
    image_url = Column(String(255))
    category_id = Column(String(36), ForeignKey("categories.category_id"))
    customizations = Column(String(255))
    nutrition = Column(String(255))

    category = relationship("Category", back_populates="items")


class CartItem(Base):
    __tablename__ = "cart"

    cart_id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.user_id"), index=True, nullable=False)
    food_id = Column(String(36), ForeignKey("menu_item.food_id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.user_id"), index=True, nullable=False)

    total_price = Column(Float, nullable=False)
    status = Column(String(50), nullable=False, default="Preparing")

    created_at = Column(DateTime, default=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_items_quantity"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.order_id"), index=True, nullable=False)

    # Thứ tự trong giỏ hàng khi đặt
    position = Column(Integer, nullable=False)

    food_id = Column(String(36), ForeignKey("menu_item.food_id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
