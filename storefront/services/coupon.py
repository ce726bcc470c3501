# storefront/services/coupon.py

import enum
import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.exceptions import CouponNotFound, CouponNotUsable
from storefront.crud import coupon as crud_coupon
from storefront.models.coupon import Coupon, DiscountType
from storefront.schemas.coupon import CouponActivity, CouponDetails, CouponStats, CouponValidation, TopCoupon
from storefront.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

PENNY = Decimal("0.01")
RECENT_ACTIVITY_LIMIT = 5


class CouponState(str, enum.Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INACTIVE = "inactive"


STATE_MESSAGES = {
    CouponState.SCHEDULED: "This coupon has expired or is not yet valid",
    CouponState.EXPIRED: "This coupon has expired or is not yet valid",
    CouponState.EXHAUSTED: "This coupon has reached its usage limit",
    CouponState.INACTIVE: "This coupon is no longer active",
}


def normalize_code(code: str) -> str:
    return code.strip().upper()


def get_coupon_state(coupon: Coupon, now: datetime | None = None) -> CouponState:
    """
    Derived from the stored fields, never stored itself.
    Precedence: expired > exhausted > scheduled > inactive > active.
    """
    now = now or utcnow()
    if now > as_utc(coupon.valid_until):
        return CouponState.EXPIRED
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return CouponState.EXHAUSTED
    if now < as_utc(coupon.valid_from):
        return CouponState.SCHEDULED
    if not coupon.is_active:
        return CouponState.INACTIVE
    return CouponState.ACTIVE


def is_coupon_usable(coupon: Coupon, now: datetime | None = None) -> bool:
    return get_coupon_state(coupon, now) == CouponState.ACTIVE


def calculate_discount(coupon: Coupon, cart_total: Decimal) -> Decimal:
    """Discount in pounds, capped by maximum_discount and never above the cart total."""
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = cart_total * value / 100
        if coupon.maximum_discount is not None and discount > coupon.maximum_discount:
            discount = Decimal(coupon.maximum_discount)
    else:
        discount = value

    discount = min(discount, cart_total)
    return discount.quantize(PENNY, rounding=ROUND_HALF_UP)


def to_details(coupon: Coupon, now: datetime | None = None) -> CouponDetails:
    return CouponDetails(
        code=coupon.code,
        description=coupon.description,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        minimum_amount=coupon.minimum_amount,
        maximum_discount=coupon.maximum_discount,
        usage_limit=coupon.usage_limit,
        used_count=coupon.used_count,
        is_active=coupon.is_active,
        valid_from=as_utc(coupon.valid_from),
        valid_until=as_utc(coupon.valid_until),
        state=get_coupon_state(coupon, now).value,
    )


def _get_usable_coupon(db: Session, code: str, now: datetime) -> Coupon:
    coupon = crud_coupon.get_coupon_by_code(db, normalize_code(code))
    if not coupon:
        raise CouponNotFound()

    state = get_coupon_state(coupon, now)
    if state != CouponState.ACTIVE:
        raise CouponNotUsable(STATE_MESSAGES[state])
    return coupon


def validate_coupon(db: Session, code: str, cart_total: Decimal, now: datetime | None = None) -> CouponValidation:
    """Checks a code against the cart and returns the discount it would give. Changes nothing."""
    now = now or utcnow()
    coupon = _get_usable_coupon(db, code, now)

    if coupon.minimum_amount is not None and cart_total < coupon.minimum_amount:
        raise CouponNotUsable(f"Minimum order amount of £{coupon.minimum_amount} required for this coupon")

    discount = calculate_discount(coupon, cart_total)
    logger.info(f"Coupon '{coupon.code}' validated for cart total £{cart_total}: discount £{discount}")

    return CouponValidation(
        code=coupon.code,
        discount_amount=discount,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        description=coupon.description,
    )


def consume_coupon(
    db: Session,
    user_id: int,
    code: str,
    order_ref: str | None = None,
    now: datetime | None = None,
) -> CouponDetails:
    """
    Takes one use of the coupon for a placed order and records who used it.
    The usage counter only moves while the coupon is usable, checked in the UPDATE itself.
    """
    now = now or utcnow()
    try:
        coupon = _get_usable_coupon(db, code, now)

        if crud_coupon.get_user_usage(db, user_id, coupon.id):
            raise CouponNotUsable("You have already used this coupon")

        if not crud_coupon.increment_usage_if_available(db, coupon.id, now):
            raise CouponNotUsable(STATE_MESSAGES[CouponState.EXHAUSTED])

        crud_coupon.create_usage(db, user_id=user_id, coupon_id=coupon.id, order_ref=order_ref)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise CouponNotUsable("You have already used this coupon")
    except Exception:
        db.rollback()
        raise

    db.refresh(coupon)
    logger.info(f"User {user_id} used coupon '{coupon.code}' (order {order_ref}). Uses: {coupon.used_count}/{coupon.usage_limit}")
    return to_details(coupon, now)


def get_coupon_details(db: Session, code: str, now: datetime | None = None) -> CouponDetails:
    coupon = crud_coupon.get_coupon_by_code(db, normalize_code(code))
    if not coupon:
        raise CouponNotFound()
    return to_details(coupon, now)


def get_coupon_stats(db: Session, now: datetime | None = None) -> CouponStats:
    """Coupon counts per state plus week-over-week usage for the admin dashboard."""
    now = now or utcnow()
    one_week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)

    weekly_usage = crud_coupon.count_usages(db, since=one_week_ago)
    previous_week_usage = crud_coupon.count_usages(db, since=two_weeks_ago, until=one_week_ago)

    if previous_week_usage > 0:
        usage_change = (weekly_usage - previous_week_usage) / previous_week_usage * 100
    else:
        usage_change = 100.0 if weekly_usage > 0 else 0.0

    top_coupon = None
    top = crud_coupon.get_top_coupon_by_usage(db)
    if top:
        coupon, uses = top
        top_coupon = TopCoupon(
            code=coupon.code,
            usage=uses,
            discount_value=coupon.discount_value,
            discount_type=coupon.discount_type,
        )

    activity = [
        CouponActivity(code=usage.coupon.code, action="Used", timestamp=as_utc(usage.used_at))
        for usage in crud_coupon.get_recent_usages(db, limit=10)
    ]
    activity.extend(
        CouponActivity(code=coupon.code, action="Created", timestamp=as_utc(coupon.created_at))
        for coupon in db.query(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()).limit(5)
    )
    activity.sort(key=lambda item: item.timestamp, reverse=True)

    return CouponStats(
        total_coupons=crud_coupon.count_coupons(db),
        active_coupons=crud_coupon.count_active_coupons(db, now),
        scheduled_coupons=crud_coupon.count_scheduled_coupons(db, now),
        expired_coupons=crud_coupon.count_expired_coupons(db, now),
        exhausted_coupons=crud_coupon.count_exhausted_coupons(db),
        total_usage=crud_coupon.count_usages(db),
        weekly_usage=weekly_usage,
        previous_week_usage=previous_week_usage,
        usage_change=round(usage_change, 1),
        top_coupon=top_coupon,
        recent_activity=activity[:RECENT_ACTIVITY_LIMIT],
    )
