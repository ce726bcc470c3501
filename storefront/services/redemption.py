# storefront/services/redemption.py

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import InsufficientPoints, InvalidRedemptionAmount, UserNotFound
from storefront.crud import user as crud_user
from storefront.models.loyalty import LoyaltyTransactionType
from storefront.schemas.loyalty import RedemptionResult
from storefront.services import loyalty as loyalty_service
from storefront.services import voucher as voucher_service
from storefront.utils.dates import utcnow

logger = logging.getLogger(__name__)

PENNY = Decimal("0.01")


def validate_redemption_amount(points_to_redeem) -> None:
    unit = settings.REDEMPTION_UNIT_POINTS
    # bool is an int subclass; True is not "1 point"
    if isinstance(points_to_redeem, bool) or not isinstance(points_to_redeem, int):
        raise InvalidRedemptionAmount()
    if points_to_redeem <= 0 or points_to_redeem < unit or points_to_redeem % unit != 0:
        raise InvalidRedemptionAmount(f"Invalid points amount. Must be in multiples of {unit} points.")


def voucher_value_for(points_to_redeem: int) -> Decimal:
    """500 points = £5 with the default settings."""
    value = Decimal(points_to_redeem) / settings.REDEMPTION_UNIT_POINTS * settings.REDEMPTION_UNIT_VALUE
    return value.quantize(PENNY)


def redeem_points(
    db: Session,
    user_id: int,
    points_to_redeem: int,
    now: datetime | None = None,
) -> RedemptionResult:
    """
    Converts points into a single-use voucher. The balance debit, the REDEEMED
    ledger entry and the coupon are committed together or not at all.
    Not idempotent: a resubmitted request spends points again if the balance allows it.
    """
    validate_redemption_amount(points_to_redeem)
    now = now or utcnow()
    valid_until = now + timedelta(days=settings.REDEMPTION_VOUCHER_VALIDITY_DAYS)

    try:
        # Fresh read under lock, so two requests cannot both spend the same points
        user = crud_user.get_user_for_update(db, user_id)
        if user is None:
            raise UserNotFound()

        if points_to_redeem > user.loyalty_points:
            logger.warning(f"User {user_id} tried to redeem {points_to_redeem} points with a balance of {user.loyalty_points}.")
            raise InsufficientPoints()

        voucher_value = voucher_value_for(points_to_redeem)

        coupon = voucher_service.issue_voucher(
            db,
            prefix="SD",
            discount_value=voucher_value,
            description=f"£{voucher_value} Loyalty Voucher - Redeemed {points_to_redeem} points",
            valid_from=now,
            valid_until=valid_until,
        )
        voucher_code = coupon.code

        transaction = loyalty_service.record_event(
            db,
            user_id=user_id,
            type=LoyaltyTransactionType.REDEEMED,
            points_delta=-points_to_redeem,
            description=f"Redeemed {points_to_redeem} points for £{voucher_value} voucher ({voucher_code})",
            coupon_id=coupon.id,
        )
        transaction_id, new_balance = transaction.id, transaction.balance_after

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"User {user_id} redeemed {points_to_redeem} points for voucher {voucher_code} (£{voucher_value}). New balance: {new_balance}")

    return RedemptionResult(
        voucher_code=voucher_code,
        voucher_value=voucher_value,
        valid_until=valid_until,
        new_balance=new_balance,
        transaction_id=transaction_id,
    )
