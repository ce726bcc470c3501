# storefront/routers/v1/endpoints/coupon.py

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.dependencies import get_current_user, get_db
from storefront.models.user import User
from storefront.schemas.coupon import CouponConsumeRequest, CouponDetails, CouponValidateRequest, CouponValidation
from storefront.services import coupon as coupon_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/coupons")


@router.post("/validate", response_model=CouponValidation)
async def validate_coupon_endpoint(
    request_data: CouponValidateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Checks a code against the cart total and returns the discount it would give.
    Nothing is reserved; the code is only taken at checkout.
    """
    return coupon_service.validate_coupon(db, request_data.code, request_data.cart_total)


@router.post("/consume", response_model=CouponDetails)
async def consume_coupon_endpoint(
    request_data: CouponConsumeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Takes one use of the code for the current user's order."""
    return coupon_service.consume_coupon(db, current_user.id, request_data.code, order_ref=request_data.order_ref)
