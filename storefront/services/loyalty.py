# storefront/services/loyalty.py

import logging
from decimal import Decimal, ROUND_FLOOR
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import InsufficientBalance, InsufficientPoints, UserNotFound
from storefront.core.milestones import MilestoneTable
from storefront.crud import loyalty as crud_loyalty
from storefront.crud import user as crud_user
from storefront.db.errors import is_unique_violation
from storefront.models.loyalty import LoyaltyTransaction, LoyaltyTransactionType
from storefront.models.user import User
from storefront.schemas.loyalty import LedgerUpdate, LoyaltyBalance, LoyaltyHistory, OrderCompletedPayload

logger = logging.getLogger(__name__)

EARNED_ORDER_INDEX = "uq_loyalty_transactions_earned_order"
EARNED_ORDER_COLUMNS = ("loyalty_transactions.user_id", "loyalty_transactions.order_ref")


def record_event(
    db: Session,
    user_id: int,
    type: LoyaltyTransactionType,
    points_delta: int,
    description: str,
    order_ref: str | None = None,
    coupon_id: int | None = None,
) -> LoyaltyTransaction:
    """
    The only way to change a balance. Locks the user row, applies the delta and
    appends the matching ledger entry in the caller's transaction (no commit here).
    A delta that would leave the balance negative fails the whole unit.
    """
    user = crud_user.get_user_for_update(db, user_id)
    if user is None:
        raise UserNotFound()

    balance_before = user.loyalty_points
    balance_after = balance_before + points_delta

    if balance_after < 0:
        logger.error(
            f"Refusing {type.value} of {points_delta} points for user {user_id}: "
            f"balance {balance_before} would become {balance_after}."
        )
        raise InsufficientBalance()

    user.loyalty_points = balance_after
    transaction = crud_loyalty.create_transaction(
        db,
        user_id=user_id,
        points=points_delta,
        type=type,
        description=description,
        balance_after=balance_after,
        order_ref=order_ref,
        coupon_id=coupon_id,
    )
    db.flush()

    logger.info(
        f"Ledger entry for user {user_id}: {type.value} {points_delta:+d} points. "
        f"Balance before: {balance_before}, after (uncommitted): {balance_after}"
    )
    return transaction


def get_user_balance(db: Session, user: User) -> int:
    db.refresh(user)
    return user.loyalty_points


def get_balance_summary(db: Session, user: User) -> LoyaltyBalance:
    """Balance plus what it is worth in vouchers right now."""
    balance = get_user_balance(db, user)
    unit = settings.REDEMPTION_UNIT_POINTS
    redeemable_units = balance // unit

    return LoyaltyBalance(
        loyalty_points=balance,
        points_value=redeemable_units * settings.REDEMPTION_UNIT_VALUE,
        can_redeem=balance >= unit,
        next_reward_at=unit - (balance % unit),
        redemption_unit=unit,
    )


def get_user_loyalty_history(db: Session, user: User, limit: int = 50, offset: int = 0) -> LoyaltyHistory:
    """Ledger page for the user, newest first."""
    balance = get_user_balance(db, user)
    transactions = crud_loyalty.get_user_transactions(db, user_id=user.id, skip=offset, limit=limit)
    total = crud_loyalty.count_user_transactions(db, user_id=user.id)

    return LoyaltyHistory(
        balance=balance,
        transactions=transactions,
        total=total,
        limit=limit,
        offset=offset,
        has_more=(offset + limit) < total,
    )


def points_for_order_total(order_total: Decimal) -> int:
    """100 points per £1 by default; pennies below a whole point are dropped."""
    points = (Decimal(order_total) * settings.POINTS_PER_POUND).to_integral_value(rounding=ROUND_FLOOR)
    return int(points)


def _repeat_delivery(db: Session, milestones: MilestoneTable, existing: LoyaltyTransaction) -> LedgerUpdate:
    from storefront.services import milestone as milestone_service

    logger.info(f"Order {existing.order_ref} already credited to user {existing.user_id} (entry {existing.id}). Skipping.")
    return LedgerUpdate(
        points=0,
        new_balance=existing.user.loyalty_points,
        transaction_id=existing.id,
        milestones=milestone_service.check_milestones(db, existing.user_id, milestones),
    )


def earn_points_for_order(db: Session, milestones: MilestoneTable, payload: OrderCompletedPayload) -> LedgerUpdate:
    """
    Credits points for a completed order, then runs the milestone check.
    Delivering the same order twice earns nothing the second time.
    """
    # milestone imports this module
    from storefront.services import milestone as milestone_service

    points = points_for_order_total(payload.order_total)
    try:
        # Concurrent deliveries of one order queue on the user row before the lookup
        if crud_user.get_user_for_update(db, payload.user_id) is None:
            raise UserNotFound()

        existing = crud_loyalty.get_earn_transaction_by_order_ref(db, payload.user_id, payload.order_ref)
        if existing is None:
            transaction = record_event(
                db,
                user_id=payload.user_id,
                type=LoyaltyTransactionType.EARNED,
                points_delta=points,
                description=f"Points earned from order {payload.order_ref}",
                order_ref=payload.order_ref,
            )
            transaction_id, new_balance = transaction.id, transaction.balance_after
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if not is_unique_violation(e, EARNED_ORDER_INDEX, EARNED_ORDER_COLUMNS):
            raise
        existing = crud_loyalty.get_earn_transaction_by_order_ref(db, payload.user_id, payload.order_ref)
        if existing is None:
            raise
    except Exception:
        db.rollback()
        raise

    if existing:
        return _repeat_delivery(db, milestones, existing)

    logger.info(f"User {payload.user_id} earned {points} points for order {payload.order_ref}")
    return LedgerUpdate(
        points=points,
        new_balance=new_balance,
        transaction_id=transaction_id,
        milestones=milestone_service.check_milestones(db, payload.user_id, milestones),
    )


def adjust_points(
    db: Session,
    milestones: MilestoneTable,
    user_id: int,
    points: int,
    description: str,
) -> LedgerUpdate:
    """Manual correction by an admin. Positive adjustments may unlock milestones."""
    from storefront.services import milestone as milestone_service

    try:
        transaction = record_event(
            db,
            user_id=user_id,
            type=LoyaltyTransactionType.ADJUSTED,
            points_delta=points,
            description=description,
        )
        transaction_id, new_balance = transaction.id, transaction.balance_after
        db.commit()
    except InsufficientBalance:
        db.rollback()
        raise InsufficientPoints("Adjustment would make the balance negative.")
    except Exception:
        db.rollback()
        raise

    logger.info(f"Adjusted user {user_id} balance by {points:+d} points: {description}")

    if points > 0:
        milestone_result = milestone_service.check_milestones(db, user_id, milestones)
    else:
        milestone_result = milestone_service.empty_result()

    return LedgerUpdate(
        points=points,
        new_balance=new_balance,
        transaction_id=transaction_id,
        milestones=milestone_result,
    )
