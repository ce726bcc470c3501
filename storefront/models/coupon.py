# storefront/models/coupon.py
import enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, true
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from storefront.db.session import Base


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)

    discount_type = Column(String(16), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    minimum_amount = Column(Numeric(10, 2), nullable=True)
    maximum_discount = Column(Numeric(10, 2), nullable=True)

    # NULL - unlimited
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0, server_default='0')
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    usages = relationship("CouponUsage", back_populates="coupon", lazy="dynamic")


class CouponUsage(Base):
    __tablename__ = "coupon_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "coupon_id", name="uq_coupon_usage_user_coupon"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    order_ref = Column(String, nullable=True)
    used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    coupon = relationship("Coupon", back_populates="usages")
