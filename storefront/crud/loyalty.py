# storefront/crud/loyalty.py

from typing import List
from sqlalchemy.orm import Session
from sqlalchemy import func

from storefront.models.loyalty import LoyaltyTransaction, LoyaltyTransactionType, MilestoneReward

# --- Ledger entries ---

def create_transaction(
    db: Session,
    user_id: int,
    points: int,
    type: LoyaltyTransactionType,
    description: str,
    balance_after: int,
    order_ref: str | None = None,
    coupon_id: int | None = None,
) -> LoyaltyTransaction:
    """
    Adds a ledger entry to the session.
    Requires an outer db.commit(); never call this without updating the balance in the same unit.
    """
    transaction = LoyaltyTransaction(
        user_id=user_id,
        points=points,
        type=LoyaltyTransactionType(type).value,
        description=description,
        balance_after=balance_after,
        order_ref=order_ref,
        coupon_id=coupon_id,
    )
    db.add(transaction)
    return transaction

def get_user_transactions(
    db: Session,
    user_id: int,
    skip: int = 0,
    limit: int = 50
) -> List[LoyaltyTransaction]:
    """Paginated ledger for a user, newest first."""
    return db.query(LoyaltyTransaction).filter(
        LoyaltyTransaction.user_id == user_id
    ).order_by(
        LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc()
    ).offset(skip).limit(limit).all()

def count_user_transactions(db: Session, user_id: int) -> int:
    return db.query(LoyaltyTransaction).filter(LoyaltyTransaction.user_id == user_id).count()

def get_ledger_balance(db: Session, user_id: int) -> int:
    """Sum of all ledger deltas for the user. Must always equal users.loyalty_points."""
    balance = db.query(func.sum(LoyaltyTransaction.points)).filter(
        LoyaltyTransaction.user_id == user_id
    ).scalar()
    return balance or 0

def get_earn_transaction_by_order_ref(db: Session, user_id: int, order_ref: str) -> LoyaltyTransaction | None:
    """Finds the EARNED entry for an order, used to make order webhooks idempotent."""
    return db.query(LoyaltyTransaction).filter_by(
        user_id=user_id, order_ref=order_ref, type=LoyaltyTransactionType.EARNED.value
    ).first()

# --- Milestone rewards ---

def get_milestone_reward(db: Session, user_id: int, milestone_points: int) -> MilestoneReward | None:
    return db.query(MilestoneReward).filter_by(
        user_id=user_id, milestone_points=milestone_points
    ).first()

def get_user_milestone_rewards(db: Session, user_id: int) -> List[MilestoneReward]:
    return db.query(MilestoneReward).filter(
        MilestoneReward.user_id == user_id
    ).order_by(MilestoneReward.milestone_points.asc()).all()

def create_milestone_reward(
    db: Session,
    user_id: int,
    milestone_points: int,
    reward_value,
    voucher_code: str,
) -> MilestoneReward:
    """Adds the reward row and flushes, so a duplicate surfaces as IntegrityError right here."""
    reward = MilestoneReward(
        user_id=user_id,
        milestone_points=milestone_points,
        reward_type="VOUCHER",
        reward_value=reward_value,
        voucher_code=voucher_code,
    )
    db.add(reward)
    db.flush()
    return reward
