# storefront/services/voucher.py

import logging
import secrets
import time
from datetime import datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.exceptions import DuplicateCode, VoucherCodeExhausted
from storefront.crud import coupon as crud_coupon
from storefront.models.coupon import Coupon, DiscountType

logger = logging.getLogger(__name__)

# No 0/O or 1/I so codes survive being read out over the phone
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
RANDOM_PART_LENGTH = 8
BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def generate_voucher_code(prefix: str) -> str:
    """
    prefix + base-36 millisecond timestamp + random suffix from `secrets`.
    The timestamp keeps codes from different moments apart, the random part
    makes them impossible to guess. Uniqueness itself is enforced by the DB.
    """
    timestamp = _to_base36(time.time_ns() // 1_000_000)
    random_part = "".join(secrets.choice(CODE_ALPHABET) for _ in range(RANDOM_PART_LENGTH))
    return f"{prefix}{timestamp}{random_part}"


def _insert_voucher(db: Session, code: str, **coupon_fields) -> Coupon:
    """Inserts inside a savepoint so a collision only undoes this one insert."""
    try:
        with db.begin_nested():
            return crud_coupon.create_coupon(db, code=code, **coupon_fields)
    except IntegrityError as e:
        raise DuplicateCode(f"Voucher code '{code}' already exists.") from e


def issue_voucher(
    db: Session,
    prefix: str,
    discount_value: Decimal,
    description: str,
    valid_from: datetime,
    valid_until: datetime,
    usage_limit: int = 1,
    max_attempts: int | None = None,
    code_factory: Callable[[str], str] | None = None,
) -> Coupon:
    """
    Mints a single-use fixed-amount voucher as part of the caller's transaction.
    Does not commit. Retries with a fresh code on collision, then gives up with
    VoucherCodeExhausted.
    """
    attempts = max_attempts or settings.VOUCHER_CODE_MAX_ATTEMPTS
    code_factory = code_factory or generate_voucher_code

    for attempt in range(1, attempts + 1):
        code = code_factory(prefix)
        try:
            coupon = _insert_voucher(
                db,
                code,
                description=description,
                discount_type=DiscountType.FIXED_AMOUNT.value,
                discount_value=discount_value,
                minimum_amount=Decimal("0"),
                maximum_discount=discount_value,
                usage_limit=usage_limit,
                valid_from=valid_from,
                valid_until=valid_until,
            )
        except DuplicateCode:
            logger.warning(f"Voucher code collision on attempt {attempt}/{attempts} for prefix '{prefix}'. Regenerating.")
            continue

        logger.info(f"Issued voucher {coupon.code} worth £{discount_value} valid until {valid_until.isoformat()}")
        return coupon

    logger.error(f"Gave up issuing a voucher with prefix '{prefix}' after {attempts} colliding codes.")
    raise VoucherCodeExhausted()
