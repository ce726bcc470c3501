# storefront/services/milestone.py

import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import LoyaltyError, MilestoneAlreadyRewarded, UserNotFound
from storefront.core.milestones import Milestone, MilestoneTable
from storefront.crud import loyalty as crud_loyalty
from storefront.crud import user as crud_user
from storefront.db.errors import is_unique_violation
from storefront.models.loyalty import LoyaltyTransactionType
from storefront.schemas.loyalty import (
    MilestoneAward,
    MilestoneCheckResponse,
    MilestoneCheckResult,
    MilestoneFailure,
    MilestoneInfo,
    MilestoneOverview,
    MilestoneProgress,
)
from storefront.services import loyalty as loyalty_service
from storefront.services import voucher as voucher_service
from storefront.utils.dates import utcnow

logger = logging.getLogger(__name__)

MILESTONE_REWARD_CONSTRAINT = "uq_milestone_rewards_user_points"
MILESTONE_REWARD_COLUMNS = ("milestone_rewards.user_id", "milestone_rewards.milestone_points")


def empty_result() -> MilestoneCheckResult:
    return MilestoneCheckResult(new_milestones=[], total_rewards_generated=0, failures=[])


def _award_milestone(db: Session, user_id: int, milestone: Milestone, now: datetime) -> MilestoneAward:
    """
    One threshold = one atomic unit: voucher, reward row and a zero-point
    MILESTONE_AWARD ledger entry. Does not commit.
    """
    # Lock order is user row, then coupons and rewards. The previous unit's commit released it
    if crud_user.get_user_for_update(db, user_id) is None:
        raise UserNotFound()
    if crud_loyalty.get_milestone_reward(db, user_id, milestone.points):
        raise MilestoneAlreadyRewarded()

    coupon = voucher_service.issue_voucher(
        db,
        prefix=f"MILESTONE{milestone.points}-",
        discount_value=milestone.reward_value,
        description=f"£{milestone.reward_value} Milestone Reward - {milestone.points} points achieved",
        valid_from=now,
        valid_until=now + timedelta(days=settings.MILESTONE_VOUCHER_VALIDITY_DAYS),
    )
    voucher_code = coupon.code

    # The unique (user_id, milestone_points) index has the final word when two checks race
    try:
        with db.begin_nested():
            crud_loyalty.create_milestone_reward(
                db,
                user_id=user_id,
                milestone_points=milestone.points,
                reward_value=milestone.reward_value,
                voucher_code=voucher_code,
            )
    except IntegrityError as e:
        if is_unique_violation(e, MILESTONE_REWARD_CONSTRAINT, MILESTONE_REWARD_COLUMNS):
            raise MilestoneAlreadyRewarded() from e
        raise

    loyalty_service.record_event(
        db,
        user_id=user_id,
        type=LoyaltyTransactionType.MILESTONE_AWARD,
        points_delta=0,
        description=f"Milestone {milestone.points} reached: £{milestone.reward_value} voucher ({voucher_code})",
        coupon_id=coupon.id,
    )

    return MilestoneAward(points=milestone.points, voucher_code=voucher_code, reward_value=milestone.reward_value)


def check_milestones(
    db: Session,
    user_id: int,
    milestones: MilestoneTable,
    now: datetime | None = None,
) -> MilestoneCheckResult:
    """
    Issues a voucher for every reached threshold the user has not been rewarded for yet.
    Thresholds are handled in ascending order, each in its own transaction, so one
    failure is logged and reported without touching the others.
    """
    now = now or utcnow()

    user = crud_user.get_user_for_update(db, user_id)
    if user is None:
        raise UserNotFound()
    current_points = user.loyalty_points

    result = empty_result()

    for milestone in milestones.reached(current_points):
        if crud_loyalty.get_milestone_reward(db, user_id, milestone.points):
            continue

        try:
            award = _award_milestone(db, user_id, milestone, now)
            db.commit()
        except MilestoneAlreadyRewarded:
            db.rollback()
            logger.info(f"Milestone {milestone.points} for user {user_id} was rewarded by a concurrent request. Skipping.")
            continue
        except (LoyaltyError, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"Error creating milestone reward for user {user_id}, milestone {milestone.points}", exc_info=True)
            result.failures.append(MilestoneFailure(points=milestone.points, reason=type(e).__name__))
            continue

        logger.info(f"User {user_id} reached milestone {milestone.points}: voucher {award.voucher_code} (£{award.reward_value})")
        result.new_milestones.append(award)

    # Releases the row lock when nothing was issued
    db.commit()

    result.total_rewards_generated = len(result.new_milestones)
    return result


def get_milestone_progress(milestones: MilestoneTable, current_points: int) -> MilestoneProgress:
    """Where the balance sits between the last reached threshold and the next one."""
    current = milestones.current(current_points)
    upcoming = milestones.next_after(current_points)
    current_info = MilestoneInfo.model_validate(current) if current else None

    if upcoming is None:
        return MilestoneProgress(
            current_milestone=current_info,
            next_milestone=None,
            points_to_next=0,
            progress_percentage=100,
        )

    previous_points = current.points if current else 0
    milestone_range = upcoming.points - previous_points
    points_in_range = current_points - previous_points
    # Integer round-half-up of points_in_range / milestone_range * 100
    percentage = (200 * points_in_range + milestone_range) // (2 * milestone_range)

    return MilestoneProgress(
        current_milestone=current_info,
        next_milestone=MilestoneInfo.model_validate(upcoming),
        points_to_next=upcoming.points - current_points,
        progress_percentage=max(0, min(100, percentage)),
    )


def get_milestone_overview(db: Session, user_id: int, milestones: MilestoneTable) -> MilestoneOverview:
    user = crud_user.get_user_by_id(db, user_id)
    if user is None:
        raise UserNotFound()

    return MilestoneOverview(
        current_points=user.loyalty_points,
        milestone_history=crud_loyalty.get_user_milestone_rewards(db, user_id),
        progress=get_milestone_progress(milestones, user.loyalty_points),
    )


def run_milestone_check(db: Session, user_id: int, milestones: MilestoneTable) -> MilestoneCheckResponse:
    """Milestone check plus the progress block the storefront shows after it."""
    result = check_milestones(db, user_id, milestones)
    current_points = crud_user.get_user_by_id(db, user_id).loyalty_points

    if result.total_rewards_generated > 0:
        message = f"Congratulations! You've earned {result.total_rewards_generated} milestone reward(s)!"
    else:
        message = "No new milestone rewards at this time."

    return MilestoneCheckResponse(
        **result.model_dump(),
        current_points=current_points,
        progress=get_milestone_progress(milestones, current_points),
        message=message,
    )
