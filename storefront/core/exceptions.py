# storefront/core/exceptions.py

from fastapi import status


class LoyaltyError(Exception):
    """Base class for errors that are reported to the client as-is."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "loyalty_error"
    detail = "Loyalty operation failed."

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class UserNotFound(LoyaltyError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "user_not_found"
    detail = "User not found."


class InvalidRedemptionAmount(LoyaltyError):
    code = "invalid_redemption_amount"
    detail = "Invalid points amount. Must be in multiples of 500 points."


class InsufficientPoints(LoyaltyError):
    status_code = status.HTTP_409_CONFLICT
    code = "insufficient_points"
    detail = "Insufficient loyalty points."


class InsufficientBalance(LoyaltyError):
    """Ledger guard: a mutation would take the balance below zero."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "insufficient_balance"
    detail = "Internal error while updating the loyalty balance."


class DuplicateCode(LoyaltyError):
    """A freshly generated voucher code already exists. Retried by the issuer."""
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_code"
    detail = "Voucher code already exists."


class VoucherCodeExhausted(LoyaltyError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "voucher_code_exhausted"
    detail = "Could not issue a voucher right now. Please try again."


class MilestoneAlreadyRewarded(LoyaltyError):
    """Not an error for the caller: the milestone is skipped."""
    status_code = status.HTTP_409_CONFLICT
    code = "milestone_already_rewarded"
    detail = "Milestone already rewarded."


class CouponNotFound(LoyaltyError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "coupon_not_found"
    detail = "Invalid coupon code."


class CouponNotUsable(LoyaltyError):
    code = "coupon_not_usable"
    detail = "This coupon cannot be used."
