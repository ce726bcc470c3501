# tests/test_voucher.py

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from storefront.core.exceptions import VoucherCodeExhausted
from storefront.crud import coupon as crud_coupon
from storefront.models.coupon import Coupon
from storefront.services import voucher as voucher_service

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _issue(db, **kwargs):
    return voucher_service.issue_voucher(
        db,
        prefix=kwargs.pop("prefix", "SD"),
        discount_value=Decimal("5.00"),
        description="£5.00 Loyalty Voucher",
        valid_from=NOW,
        valid_until=NOW + timedelta(days=90),
        **kwargs,
    )


def _occupy(db, code):
    crud_coupon.create_coupon(
        db, code=code, description="existing", discount_type="FIXED_AMOUNT",
        discount_value=Decimal("1.00"), valid_from=NOW, valid_until=NOW + timedelta(days=1),
    )
    db.commit()


def test_generated_codes_are_unique():
    codes = {voucher_service.generate_voucher_code("SD") for _ in range(10_000)}
    assert len(codes) == 10_000


def test_generated_code_shape():
    code = voucher_service.generate_voucher_code("MILESTONE500-")

    assert code.startswith("MILESTONE500-")
    random_part = code[-voucher_service.RANDOM_PART_LENGTH:]
    assert all(char in voucher_service.CODE_ALPHABET for char in random_part)
    assert code == code.upper()


def test_base36():
    assert voucher_service._to_base36(0) == "0"
    assert voucher_service._to_base36(35) == "Z"
    assert voucher_service._to_base36(36) == "10"


def test_issue_voucher_defaults(db_session):
    coupon = _issue(db_session)
    db_session.commit()

    assert coupon.code.startswith("SD")
    assert coupon.usage_limit == 1
    assert coupon.used_count == 0
    assert coupon.is_active is True
    assert coupon.minimum_amount == Decimal("0")
    assert coupon.maximum_discount == Decimal("5.00")


def test_collision_is_retried(db_session):
    _occupy(db_session, "SDDUP")
    codes = iter(["SDDUP", "SDDUP", "SDFRESH"])

    coupon = _issue(db_session, code_factory=lambda prefix: next(codes))
    db_session.commit()

    assert coupon.code == "SDFRESH"
    assert db_session.query(Coupon).count() == 2


def test_collisions_exhaust_attempts(db_session, caplog):
    _occupy(db_session, "SDDUP")
    calls = []

    def always_taken(prefix):
        calls.append(prefix)
        return "SDDUP"

    with pytest.raises(VoucherCodeExhausted):
        _issue(db_session, code_factory=always_taken)
    db_session.rollback()

    assert len(calls) == 3
    assert db_session.query(Coupon).count() == 1
    assert "collision" in caplog.text


def test_max_attempts_override(db_session):
    _occupy(db_session, "SDDUP")
    calls = []

    def always_taken(prefix):
        calls.append(prefix)
        return "SDDUP"

    with pytest.raises(VoucherCodeExhausted):
        _issue(db_session, code_factory=always_taken, max_attempts=5)

    assert len(calls) == 5
