# storefront/schemas/loyalty.py
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Any, List

class LoyaltyTransaction(BaseModel):
    id: int
    type: str
    points: int
    balance_after: int
    description: str
    order_ref: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class LoyaltyHistory(BaseModel):
    balance: int
    transactions: List[LoyaltyTransaction]
    total: int
    limit: int
    offset: int
    has_more: bool

class LoyaltyBalance(BaseModel):
    loyalty_points: int
    points_value: Decimal         # voucher value the balance can be redeemed for right now
    can_redeem: bool
    next_reward_at: int           # points missing to the next redemption unit
    redemption_unit: int

# --- Milestones ---

class MilestoneInfo(BaseModel):
    points: int
    reward_value: Decimal
    reward_type: str = "VOUCHER"

    class Config:
        from_attributes = True

class MilestoneAward(BaseModel):
    points: int
    voucher_code: str
    reward_value: Decimal

class MilestoneFailure(BaseModel):
    points: int
    reason: str

class MilestoneCheckResult(BaseModel):
    new_milestones: List[MilestoneAward] = []
    total_rewards_generated: int = 0
    failures: List[MilestoneFailure] = []

class MilestoneProgress(BaseModel):
    current_milestone: MilestoneInfo | None   # null until the first threshold is reached
    next_milestone: MilestoneInfo | None      # null beyond the top threshold
    points_to_next: int
    progress_percentage: int

class MilestoneReward(BaseModel):
    milestone_points: int
    reward_type: str
    reward_value: Decimal
    voucher_code: str
    created_at: datetime

    class Config:
        from_attributes = True

class MilestoneCheckResponse(MilestoneCheckResult):
    current_points: int
    progress: MilestoneProgress
    message: str

class MilestoneOverview(BaseModel):
    current_points: int
    milestone_history: List[MilestoneReward]
    progress: MilestoneProgress

# --- Redemption ---

class RedeemRequest(BaseModel):
    # Taken as sent; the redemption service rejects floats, strings and booleans with one error
    points_to_redeem: Any

class RedemptionResult(BaseModel):
    voucher_code: str
    voucher_value: Decimal
    valid_until: datetime
    new_balance: int
    transaction_id: int

# --- Earning / adjustments ---

class PointsAdjustment(BaseModel):
    points: int = Field(..., description="Signed delta, e.g. -200 to take back points")
    description: str = Field(..., min_length=3, max_length=255)

class OrderCompletedPayload(BaseModel):
    order_ref: str
    user_id: int
    order_total: Decimal = Field(..., ge=0)

class LedgerUpdate(BaseModel):
    points: int                   # delta applied by this call, 0 for a repeated order
    new_balance: int
    transaction_id: int
    milestones: MilestoneCheckResult
