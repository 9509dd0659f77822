from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, ForeignKey, Numeric, DateTime, Text, Boolean, JSON, CheckConstraint
from datetime import datetime
from typing import Optional
from .lifecycle import OrderStatus

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in OrderStatus)


class Base(DeclarativeBase):
    pass


class Category(Base):
    __tablename__ = "categories"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    products: Mapped[list["Product"]] = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    original_price: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
    unit: Mapped[str] = mapped_column(String(50), default="1 pc")
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    stock: Mapped[int] = mapped_column(default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    category: Mapped[Optional[Category]] = relationship("Category", back_populates="products")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_orders_status"),
        CheckConstraint(
            "(status = 'REJECTED_BY_ADMIN' AND rejection_reason IS NOT NULL) "
            "OR (status != 'REJECTED_BY_ADMIN' AND rejection_reason IS NULL)",
            name="ck_orders_rejection_reason",
        ),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    # Filled in from the id inside the creating transaction
    order_number: Mapped[Optional[str]] = mapped_column(String(50), unique=True, index=True, nullable=True)
    # No FK: users live outside this service
    user_id: Mapped[int] = mapped_column(index=True)
    status: Mapped[str] = mapped_column(String(30), default=OrderStatus.PENDING_ADMIN_DECISION.value, index=True)
    total_amount: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    delivery_address: Mapped[dict] = mapped_column(JSON)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity"),
        CheckConstraint("price >= 0", name="ck_order_items_price"),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"))
    # Product ids are kept as given by the client; catalog rows may be deleted later
    product_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    quantity: Mapped[int]
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    total: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False))
    order: Mapped[Order] = relationship("Order", back_populates="items")


class Rider(Base):
    __tablename__ = "riders"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True)
    phone: Mapped[str] = mapped_column(String(20), unique=True)
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    vehicle_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    current_lat: Mapped[Optional[float]] = mapped_column(Numeric(10, 8, asdecimal=False), nullable=True)
    current_lng: Mapped[Optional[float]] = mapped_column(Numeric(11, 8, asdecimal=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
