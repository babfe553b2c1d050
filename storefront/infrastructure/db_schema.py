from sqlalchemy import (
    Table, Column, String, Integer, Float, Boolean, DateTime, JSON, MetaData, CheckConstraint, ForeignKey
)
from sqlalchemy.sql import func

metadata = MetaData()


users_tbl = Table(
    "users",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("email", String, nullable=False, unique=True),
    Column("role", String, nullable=False, default="user"),
    Column("created_at", DateTime(timezone=True), server_default=func.now())
)


products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("category", String, nullable=False, default=""),
    Column("price", Float, nullable=False),
    Column("stock", Integer, nullable=False, default=0),
    Column("image", String, nullable=False, default=""),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    CheckConstraint("price >= 0", name="ck_products_price_non_negative")
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_number", String, nullable=False, unique=True, index=True),
    Column("user_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("order_items", JSON, nullable=False),
    Column("shipping_address", JSON, nullable=False),
    Column("payment_method", String, nullable=False, default="card"),
    Column("payment_method_id", String, nullable=True),
    Column("address_id", String, nullable=True),
    Column("items_price", Float, nullable=False, default=0.0),
    Column("tax_price", Float, nullable=False, default=0.0),
    Column("shipping_price", Float, nullable=False, default=0.0),
    Column("total_price", Float, nullable=False, default=0.0),
    Column("status", String, nullable=False, default="pending", index=True),
    Column("status_history", JSON, nullable=False),
    Column("tracking_number", String, nullable=True),
    Column("order_notes", String, nullable=False, default=""),
    Column("version", Integer, nullable=False, default=1),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False)
)


payment_methods_tbl = Table(
    "payment_methods",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("last_four", String(4), nullable=False),
    Column("card_holder", String(50), nullable=False),
    Column("expiry_month", String(2), nullable=False),
    Column("expiry_year", String(4), nullable=False),
    Column("card_type", String, nullable=False),
    Column("is_default", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False)
)


addresses_tbl = Table(
    "addresses",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, ForeignKey("users.id"), nullable=False, index=True),
    Column("full_name", String, nullable=False),
    Column("phone", String, nullable=False, default=""),
    Column("street", String, nullable=False),
    Column("city", String, nullable=False),
    Column("state", String, nullable=False),
    Column("zip_code", String, nullable=False),
    Column("country", String, nullable=False, default="United States"),
    Column("is_default", Boolean, nullable=False, default=False),
    Column("address_type", String, nullable=False, default="home"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False)
)
