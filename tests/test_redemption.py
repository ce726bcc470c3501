# tests/test_redemption.py

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from storefront.core.exceptions import InsufficientPoints, InvalidRedemptionAmount, UserNotFound, VoucherCodeExhausted
from storefront.crud import coupon as crud_coupon
from storefront.crud import loyalty as crud_loyalty
from storefront.models.coupon import Coupon
from storefront.models.loyalty import LoyaltyTransaction, LoyaltyTransactionType
from storefront.services import redemption as redemption_service
from storefront.services import voucher as voucher_service
from storefront.utils.dates import as_utc

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("amount", [0, -500, 250, 600, 1250, 500.0, "500", True, None])
def test_invalid_amounts_are_rejected(amount):
    with pytest.raises(InvalidRedemptionAmount):
        redemption_service.validate_redemption_amount(amount)


@pytest.mark.parametrize("amount", [500, 1000, 5000])
def test_valid_amounts(amount):
    redemption_service.validate_redemption_amount(amount)


def test_voucher_value():
    assert redemption_service.voucher_value_for(500) == Decimal("5.00")
    assert redemption_service.voucher_value_for(1500) == Decimal("15.00")


def test_redeem_issues_voucher_and_debits_points(db_session, test_user, give_points):
    give_points(test_user, 1000)

    result = redemption_service.redeem_points(db_session, test_user.id, 1000, now=NOW)

    assert result.voucher_value == Decimal("10.00")
    assert result.new_balance == 0
    assert result.voucher_code.startswith("SD")
    assert result.valid_until == NOW + timedelta(days=90)

    coupon = crud_coupon.get_coupon_by_code(db_session, result.voucher_code)
    assert coupon.usage_limit == 1
    assert coupon.used_count == 0
    assert coupon.discount_type == "FIXED_AMOUNT"
    assert coupon.discount_value == Decimal("10.00")
    assert coupon.maximum_discount == Decimal("10.00")
    assert as_utc(coupon.valid_from) == NOW
    assert as_utc(coupon.valid_until) == NOW + timedelta(days=90)

    entry = db_session.get(LoyaltyTransaction, result.transaction_id)
    assert entry.type == LoyaltyTransactionType.REDEEMED.value
    assert entry.points == -1000
    assert entry.balance_after == 0
    assert entry.coupon_id == coupon.id

    db_session.refresh(test_user)
    assert test_user.loyalty_points == 0
    assert crud_loyalty.get_ledger_balance(db_session, test_user.id) == 0


def test_redeem_more_than_balance(db_session, test_user, give_points):
    give_points(test_user, 400)

    with pytest.raises(InsufficientPoints):
        redemption_service.redeem_points(db_session, test_user.id, 500)

    db_session.refresh(test_user)
    assert test_user.loyalty_points == 400
    assert db_session.query(Coupon).count() == 0


def test_redeem_invalid_amount_changes_nothing(db_session, test_user, give_points):
    give_points(test_user, 1000)

    with pytest.raises(InvalidRedemptionAmount):
        redemption_service.redeem_points(db_session, test_user.id, 600)

    db_session.refresh(test_user)
    assert test_user.loyalty_points == 1000
    assert crud_loyalty.count_user_transactions(db_session, test_user.id) == 1


def test_redeem_unknown_user(db_session):
    with pytest.raises(UserNotFound):
        redemption_service.redeem_points(db_session, 12345, 500)


def test_redeem_twice_spends_twice(db_session, test_user, give_points):
    give_points(test_user, 1000)

    first = redemption_service.redeem_points(db_session, test_user.id, 500)
    second = redemption_service.redeem_points(db_session, test_user.id, 500)

    assert first.voucher_code != second.voucher_code
    assert second.new_balance == 0

    with pytest.raises(InsufficientPoints):
        redemption_service.redeem_points(db_session, test_user.id, 500)


def test_failed_voucher_issue_leaves_no_trace(db_session, test_user, give_points, mocker):
    give_points(test_user, 500)
    mocker.patch.object(voucher_service, "generate_voucher_code", return_value="SDTAKEN")
    # Occupy the only code the generator will ever produce
    crud_coupon.create_coupon(
        db_session, code="SDTAKEN", description="existing", discount_type="FIXED_AMOUNT",
        discount_value=Decimal("5.00"), valid_from=NOW, valid_until=NOW + timedelta(days=1),
    )
    db_session.commit()

    with pytest.raises(VoucherCodeExhausted):
        redemption_service.redeem_points(db_session, test_user.id, 500)

    db_session.refresh(test_user)
    assert test_user.loyalty_points == 500
    assert crud_loyalty.get_ledger_balance(db_session, test_user.id) == 500
    assert db_session.query(Coupon).count() == 1
    assert db_session.query(LoyaltyTransaction).filter_by(type=LoyaltyTransactionType.REDEEMED.value).count() == 0
