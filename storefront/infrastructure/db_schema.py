from sqlalchemy import (
    Table, Column, String, Integer, Float, Numeric, Boolean, Enum, DateTime, MetaData,
    ForeignKey, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.sql import func

from storefront.domain.models import OrderStatus, PaymentStatus, DiscountType

metadata = MetaData()

Money = Numeric(12, 2, asdecimal=True)


products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False, default=""),
    Column("price", Money, nullable=False),
    Column("stock", Integer, nullable=False, default=0),
    Column("weight", Float, nullable=True),
    Column("free_shipping_threshold", Money, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
)


addresses_tbl = Table(
    "addresses",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("street", String, nullable=True),
    Column("city", String, nullable=True),
    Column("state", String, nullable=True),
    Column("postal_code", String, nullable=True),
    Column("country", String, nullable=False),
)


shipping_methods_tbl = Table(
    "shipping_methods",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("description", String, nullable=True),
    Column("estimated_days", String, nullable=True),
    Column("default_cost", Money, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
)


shipping_rates_tbl = Table(
    "shipping_rates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("shipping_method_id", String, ForeignKey("shipping_methods.id", ondelete="CASCADE"), nullable=False),
    Column("country", String, nullable=False, default=""),
    Column("state", String, nullable=True),
    Column("postal_code_prefix", String, nullable=True),
    Column("min_order_amount", Money, nullable=True),
    Column("max_order_amount", Money, nullable=True),
    Column("min_weight", Float, nullable=True),
    Column("max_weight", Float, nullable=True),
    Column("cost", Money, nullable=False),
)


tax_rates_tbl = Table(
    "tax_rates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("country", String, nullable=False),
    Column("state", String, nullable=True),
    Column("postal_code_prefix", String, nullable=True),
    Column("rate", Numeric(6, 4, asdecimal=True), nullable=False),
    Column("description", String, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
)


coupons_tbl = Table(
    "coupons",
    metadata,
    Column("id", String, primary_key=True),
    Column("code", String, unique=True, nullable=False, index=True),
    Column("description", String, nullable=True),
    Column("discount_type", Enum(DiscountType), nullable=False),
    Column("discount_value", Money, nullable=False),
    Column("valid_from", DateTime(timezone=True), nullable=False),
    Column("valid_until", DateTime(timezone=True), nullable=False),
    Column("usage_limit", Integer, nullable=True),
    Column("used_count", Integer, nullable=False, default=0),
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("user_id", String, nullable=False, index=True),
    Column("order_status", Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING),
    Column("payment_status", Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING),
    Column("shipping_address_id", String, ForeignKey("addresses.id"), nullable=False),
    Column("billing_address_id", String, ForeignKey("addresses.id"), nullable=False),
    Column("shipping_method_id", String, ForeignKey("shipping_methods.id"), nullable=True),
    Column("payment_method", String, nullable=False),
    Column("subtotal", Money, nullable=False),
    Column("discount_amount", Money, nullable=False),
    Column("shipping_cost", Money, nullable=False),
    Column("tax_amount", Money, nullable=False),
    Column("total_amount", Money, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
)


order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Money, nullable=False),
    Column("total_price", Money, nullable=False),
)


order_coupons_tbl = Table(
    "order_coupons",
    metadata,
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True),
    Column("coupon_id", String, ForeignKey("coupons.id"), primary_key=True),
)


cart_items_tbl = Table(
    "cart_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String, nullable=False, index=True),
    Column("product_id", String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
)
