# storefront/schemas/coupon.py

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class CouponValidateRequest(BaseModel):
    """Request body for checking a code against the current cart."""
    code: str = Field(..., min_length=1)
    cart_total: Decimal = Field(..., ge=0)


class CouponValidation(BaseModel):
    """Coupon data plus the discount it would give on the submitted cart."""
    code: str
    discount_amount: Decimal
    discount_type: Literal["PERCENTAGE", "FIXED_AMOUNT"]
    discount_value: Decimal
    description: Optional[str] = None


class CouponDetails(BaseModel):
    code: str
    description: Optional[str] = None
    discount_type: Literal["PERCENTAGE", "FIXED_AMOUNT"]
    discount_value: Decimal
    minimum_amount: Optional[Decimal] = None
    maximum_discount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    used_count: int
    is_active: bool
    valid_from: datetime
    valid_until: datetime
    state: str

    class Config:
        from_attributes = True


class CouponConsumeRequest(BaseModel):
    code: str = Field(..., min_length=1)
    order_ref: Optional[str] = None


class TopCoupon(BaseModel):
    code: str
    usage: int
    discount_value: Decimal
    discount_type: str


class CouponActivity(BaseModel):
    code: str
    action: Literal["Used", "Created"]
    timestamp: datetime


class CouponStats(BaseModel):
    total_coupons: int
    active_coupons: int
    scheduled_coupons: int
    expired_coupons: int
    exhausted_coupons: int
    total_usage: int
    weekly_usage: int
    previous_week_usage: int
    usage_change: float   # percent, week over week
    top_coupon: Optional[TopCoupon] = None
    recent_activity: List[CouponActivity]
