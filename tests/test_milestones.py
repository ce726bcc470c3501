# tests/test_milestones.py

import pytest
import logging
from datetime import timedelta
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from storefront.core.exceptions import VoucherCodeExhausted
from storefront.core.milestones import Milestone, MilestoneTable, load_milestone_table
from storefront.crud import coupon as crud_coupon
from storefront.crud import loyalty as crud_loyalty
from storefront.crud import user as crud_user
from storefront.models.coupon import Coupon
from storefront.models.loyalty import LoyaltyTransaction, LoyaltyTransactionType, MilestoneReward
from storefront.services import milestone as milestone_service
from storefront.services import voucher as voucher_service
from storefront.utils.dates import as_utc

logger = logging.getLogger(__name__)


# --- Milestone table ---

def test_default_table_is_ascending(milestones):
    assert [m.points for m in milestones] == [500, 1000, 1500, 2000, 2500, 3000, 4000, 5000]
    assert [m.reward_value for m in milestones][:3] == [Decimal("5.00"), Decimal("10.00"), Decimal("7.50")]


@pytest.mark.parametrize("raw", [
    [],
    [{"points": 0, "reward_value": "5"}],
    [{"points": 500, "reward_value": "0"}],
    [{"points": 500, "reward_value": "5"}, {"points": 500, "reward_value": "6"}],
])
def test_invalid_tables_are_rejected(raw):
    with pytest.raises(ValueError):
        load_milestone_table(raw)


def test_reached_and_next(milestones):
    assert [m.points for m in milestones.reached(1500)] == [500, 1000, 1500]
    assert milestones.next_after(1500).points == 2000
    assert milestones.current(499) is None
    assert milestones.next_after(5000) is None


# --- Checking and issuing ---

def test_check_issues_every_reached_milestone_once(db_session, test_user, give_points, milestones):
    give_points(test_user, 1500)

    result = milestone_service.check_milestones(db_session, test_user.id, milestones)

    assert result.total_rewards_generated == 3
    assert [m.points for m in result.new_milestones] == [500, 1000, 1500]
    assert [m.reward_value for m in result.new_milestones] == [Decimal("5.00"), Decimal("10.00"), Decimal("7.50")]
    assert result.failures == []

    for award in result.new_milestones:
        assert award.voucher_code.startswith(f"MILESTONE{award.points}-")
        coupon = crud_coupon.get_coupon_by_code(db_session, award.voucher_code)
        assert coupon.usage_limit == 1
        assert coupon.discount_type == "FIXED_AMOUNT"
        assert coupon.discount_value == award.reward_value
        assert as_utc(coupon.valid_until) - as_utc(coupon.valid_from) == timedelta(days=365)

    # A second check finds nothing new
    again = milestone_service.check_milestones(db_session, test_user.id, milestones)
    assert again.new_milestones == []
    assert again.total_rewards_generated == 0


def test_check_does_not_change_the_balance(db_session, test_user, give_points, milestones):
    give_points(test_user, 1000)

    milestone_service.check_milestones(db_session, test_user.id, milestones)

    db_session.refresh(test_user)
    assert test_user.loyalty_points == 1000
    assert crud_loyalty.get_ledger_balance(db_session, test_user.id) == 1000

    awards = db_session.query(LoyaltyTransaction).filter_by(
        user_id=test_user.id, type=LoyaltyTransactionType.MILESTONE_AWARD.value
    ).all()
    assert len(awards) == 2
    assert all(entry.points == 0 and entry.coupon_id for entry in awards)


def test_below_first_threshold_issues_nothing(db_session, test_user, give_points, milestones):
    give_points(test_user, 499)

    result = milestone_service.check_milestones(db_session, test_user.id, milestones)

    assert result.total_rewards_generated == 0
    assert db_session.query(Coupon).count() == 0


def test_history_is_kept_after_spending(db_session, test_user, give_points, milestones):
    give_points(test_user, 1000)
    milestone_service.check_milestones(db_session, test_user.id, milestones)
    give_points(test_user, -900)

    result = milestone_service.check_milestones(db_session, test_user.id, milestones)
    overview = milestone_service.get_milestone_overview(db_session, test_user.id, milestones)

    assert result.new_milestones == []
    assert [r.milestone_points for r in overview.milestone_history] == [500, 1000]
    assert overview.current_points == 100


def test_duplicate_reward_is_rejected_by_the_database(db_session, test_user):
    crud_loyalty.create_milestone_reward(db_session, test_user.id, 500, Decimal("5.00"), "CODE-A")
    db_session.commit()

    with pytest.raises(IntegrityError):
        crud_loyalty.create_milestone_reward(db_session, test_user.id, 500, Decimal("5.00"), "CODE-B")
    db_session.rollback()


def test_concurrent_check_does_not_issue_twice(db_session, test_user, give_points, milestones, mocker):
    give_points(test_user, 1000)
    milestone_service.check_milestones(db_session, test_user.id, milestones)

    # A racing checker that read "not rewarded yet" before our rows were committed
    mocker.patch.object(crud_loyalty, "get_milestone_reward", return_value=None)

    result = milestone_service.check_milestones(db_session, test_user.id, milestones)

    assert result.new_milestones == []
    assert result.failures == []
    assert db_session.query(MilestoneReward).filter_by(user_id=test_user.id).count() == 2
    # The losing attempt's vouchers were rolled back with it
    assert db_session.query(Coupon).count() == 2


def test_each_threshold_locks_the_user_before_issuing(db_session, test_user, give_points, milestones, mocker):
    give_points(test_user, 1000)

    calls = []
    real_lock = crud_user.get_user_for_update
    real_issue = voucher_service.issue_voucher

    def locking(db, user_id):
        calls.append("lock")
        return real_lock(db, user_id)

    def issuing(db, prefix, **kwargs):
        calls.append(prefix)
        return real_issue(db, prefix, **kwargs)

    mocker.patch.object(crud_user, "get_user_for_update", side_effect=locking)
    mocker.patch.object(voucher_service, "issue_voucher", side_effect=issuing)

    result = milestone_service.check_milestones(db_session, test_user.id, milestones)

    assert [m.points for m in result.new_milestones] == [500, 1000]
    issued_at = [i for i, call in enumerate(calls) if call.startswith("MILESTONE")]
    assert [calls[i] for i in issued_at] == ["MILESTONE500-", "MILESTONE1000-"]
    # Every unit runs after a commit, so each one takes the lock again before its voucher
    assert all(calls[i - 1] == "lock" for i in issued_at)


def test_other_integrity_errors_are_reported_as_failures(db_session, test_user, give_points, milestones, mocker):
    give_points(test_user, 500)

    broken_fk = IntegrityError("INSERT INTO milestone_rewards", {}, Exception("FOREIGN KEY constraint failed"))
    mocker.patch.object(crud_loyalty, "create_milestone_reward", side_effect=broken_fk)

    result = milestone_service.check_milestones(db_session, test_user.id, milestones)

    assert result.new_milestones == []
    assert [(f.points, f.reason) for f in result.failures] == [(500, "IntegrityError")]
    assert db_session.query(Coupon).count() == 0
    assert db_session.query(MilestoneReward).count() == 0


def test_one_failing_threshold_does_not_block_the_others(db_session, test_user, give_points, milestones, mocker):
    give_points(test_user, 1500)

    real_issue = voucher_service.issue_voucher

    def flaky_issue(db, prefix, **kwargs):
        if prefix == "MILESTONE1000-":
            raise VoucherCodeExhausted()
        return real_issue(db, prefix, **kwargs)

    mocker.patch.object(voucher_service, "issue_voucher", side_effect=flaky_issue)

    result = milestone_service.check_milestones(db_session, test_user.id, milestones)

    assert [m.points for m in result.new_milestones] == [500, 1500]
    assert [(f.points, f.reason) for f in result.failures] == [(1000, "VoucherCodeExhausted")]
    assert crud_loyalty.get_milestone_reward(db_session, test_user.id, 1000) is None

    # Retrying later picks up only the missing threshold
    mocker.stopall()
    retry = milestone_service.check_milestones(db_session, test_user.id, milestones)
    assert [m.points for m in retry.new_milestones] == [1000]


def test_custom_table_values_are_used(db_session, test_user, give_points):
    table = MilestoneTable([Milestone(points=100, reward_value=Decimal("1.25"))])
    give_points(test_user, 100)

    result = milestone_service.check_milestones(db_session, test_user.id, table)

    assert result.new_milestones[0].reward_value == Decimal("1.25")


# --- Progress ---

@pytest.mark.parametrize("points, current, upcoming, to_next, percentage", [
    (0, None, 500, 500, 0),
    (250, None, 500, 250, 50),
    (500, 500, 1000, 500, 0),
    (2200, 2000, 2500, 300, 40),
    (4999, 4000, 5000, 1, 100),
    (5000, 5000, None, 0, 100),
    (12000, 5000, None, 0, 100),
])
def test_progress(milestones, points, current, upcoming, to_next, percentage):
    progress = milestone_service.get_milestone_progress(milestones, points)

    assert (progress.current_milestone.points if progress.current_milestone else None) == current
    assert (progress.next_milestone.points if progress.next_milestone else None) == upcoming
    assert progress.points_to_next == to_next
    assert progress.progress_percentage == percentage


def test_run_milestone_check_message(db_session, test_user, give_points, milestones):
    give_points(test_user, 600)

    response = milestone_service.run_milestone_check(db_session, test_user.id, milestones)
    assert response.message == "Congratulations! You've earned 1 milestone reward(s)!"
    assert response.current_points == 600
    assert response.progress.next_milestone.points == 1000

    response = milestone_service.run_milestone_check(db_session, test_user.id, milestones)
    assert response.message == "No new milestone rewards at this time."
