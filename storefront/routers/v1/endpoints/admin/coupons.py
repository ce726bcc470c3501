# storefront/routers/v1/endpoints/admin/coupons.py

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.dependencies import get_db
from storefront.schemas.coupon import CouponDetails, CouponStats
from storefront.services import coupon as coupon_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/stats", response_model=CouponStats)
async def get_coupon_stats(db: Session = Depends(get_db)):
    """
    [ADMIN] Coupon counts by state, week-over-week usage, the most used code
    and the latest activity.
    """
    return coupon_service.get_coupon_stats(db)


@router.get("/{code}", response_model=CouponDetails)
async def get_coupon(code: str, db: Session = Depends(get_db)):
    """[ADMIN] A single coupon with its current state."""
    return coupon_service.get_coupon_details(db, code)
