# storefront/crud/coupon.py

from datetime import datetime
from decimal import Decimal
from typing import List
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from storefront.models.coupon import Coupon, CouponUsage


def get_coupon_by_code(db: Session, code: str) -> Coupon | None:
    return db.query(Coupon).filter(Coupon.code == code).first()

def coupon_code_exists(db: Session, code: str) -> bool:
    return db.query(Coupon.id).filter(Coupon.code == code).first() is not None

def create_coupon(
    db: Session,
    code: str,
    description: str,
    discount_type: str,
    discount_value: Decimal,
    valid_from: datetime,
    valid_until: datetime,
    minimum_amount: Decimal | None = None,
    maximum_discount: Decimal | None = None,
    usage_limit: int | None = 1,
) -> Coupon:
    """
    Adds the coupon and flushes it immediately: a code collision raises
    IntegrityError here, inside the caller's savepoint.
    """
    coupon = Coupon(
        code=code,
        description=description,
        discount_type=discount_type,
        discount_value=discount_value,
        minimum_amount=minimum_amount,
        maximum_discount=maximum_discount,
        usage_limit=usage_limit,
        used_count=0,
        is_active=True,
        valid_from=valid_from,
        valid_until=valid_until,
    )
    db.add(coupon)
    db.flush()
    return coupon

def increment_usage_if_available(db: Session, coupon_id: int, now: datetime) -> bool:
    """
    Atomically takes one use of the coupon. The WHERE clause re-checks every
    usability rule, so two concurrent checkouts cannot both take the last use.
    """
    updated = db.query(Coupon).filter(
        Coupon.id == coupon_id,
        Coupon.is_active.is_(True),
        Coupon.valid_from <= now,
        Coupon.valid_until >= now,
        or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
    ).update({Coupon.used_count: Coupon.used_count + 1}, synchronize_session=False)
    return updated == 1

def create_usage(db: Session, user_id: int, coupon_id: int, order_ref: str | None = None) -> CouponUsage:
    usage = CouponUsage(user_id=user_id, coupon_id=coupon_id, order_ref=order_ref)
    db.add(usage)
    db.flush()
    return usage

def get_user_usage(db: Session, user_id: int, coupon_id: int) -> CouponUsage | None:
    return db.query(CouponUsage).filter_by(user_id=user_id, coupon_id=coupon_id).first()

# --- Statistics ---

def count_coupons(db: Session) -> int:
    return db.query(func.count(Coupon.id)).scalar()

def count_active_coupons(db: Session, now: datetime) -> int:
    return db.query(func.count(Coupon.id)).filter(
        Coupon.is_active.is_(True),
        Coupon.valid_from <= now,
        Coupon.valid_until >= now,
        or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
    ).scalar()

def count_scheduled_coupons(db: Session, now: datetime) -> int:
    return db.query(func.count(Coupon.id)).filter(
        Coupon.is_active.is_(True),
        Coupon.valid_from > now,
    ).scalar()

def count_expired_coupons(db: Session, now: datetime) -> int:
    return db.query(func.count(Coupon.id)).filter(Coupon.valid_until < now).scalar()

def count_exhausted_coupons(db: Session) -> int:
    return db.query(func.count(Coupon.id)).filter(
        Coupon.usage_limit.isnot(None),
        Coupon.used_count >= Coupon.usage_limit,
    ).scalar()

def count_usages(db: Session, since: datetime | None = None, until: datetime | None = None) -> int:
    query = db.query(func.count(CouponUsage.id))
    if since is not None:
        query = query.filter(CouponUsage.used_at >= since)
    if until is not None:
        query = query.filter(CouponUsage.used_at < until)
    return query.scalar()

def get_top_coupon_by_usage(db: Session) -> tuple[Coupon, int] | None:
    """Returns the most used coupon and its usage count."""
    row = db.query(CouponUsage.coupon_id, func.count(CouponUsage.id).label("uses")).group_by(
        CouponUsage.coupon_id
    ).order_by(func.count(CouponUsage.id).desc()).first()
    if not row:
        return None
    return db.get(Coupon, row.coupon_id), row.uses

def get_recent_usages(db: Session, limit: int = 10) -> List[CouponUsage]:
    return db.query(CouponUsage).order_by(CouponUsage.used_at.desc(), CouponUsage.id.desc()).limit(limit).all()
