from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text
from sqlalchemy.orm import relationship
from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)

    # No cascade: deleting a category with products is refused in crud
    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    rich_description = Column(Text, nullable=False, default="")
    image = Column(String, nullable=False, default="")
    images = Column(JSON, nullable=False, default=list)
    brand = Column(String, nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False, default=0)
    # Nullable for products created from an uncategorized search
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    count_in_stock = Column(Integer, nullable=False, default=0)
    rating = Column(Numeric(4, 2), nullable=False, default=0)
    num_reviews = Column(Integer, nullable=False, default=0)
    is_featured = Column(Boolean, nullable=False, default=False, index=True)
    date_created = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    category = relationship("Category", back_populates="products")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    quantity = Column(Integer, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True, index=True)

    product = relationship("Product")
    order = relationship("Order", back_populates="order_items")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    shipping_address1 = Column(String, nullable=False)
    shipping_address2 = Column(String, nullable=True)
    city = Column(String, nullable=False)
    zip = Column(String, nullable=False)
    country = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    status = Column(String, nullable=False, default="Pending", index=True)
    # Snapshot taken at creation; never recomputed from live product prices
    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date_ordered = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    order_items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )
    user = relationship("User", back_populates="orders")

    @property
    def order_item_ids(self) -> list[int]:
        return [item.id for item in self.order_items]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    street = Column(String, nullable=True)
    apartment = Column(String, nullable=True)
    zip = Column(String, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)

    orders = relationship("Order", back_populates="user")
