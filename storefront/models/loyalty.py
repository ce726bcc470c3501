# storefront/models/loyalty.py
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, Numeric, UniqueConstraint, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from storefront.db.session import Base


class LoyaltyTransactionType(str, enum.Enum):
    EARNED = "EARNED"
    REDEEMED = "REDEEMED"
    MILESTONE_AWARD = "MILESTONE_AWARD"
    ADJUSTED = "ADJUSTED"


class LoyaltyTransaction(Base):
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        Index("ix_loyalty_transactions_user_created", "user_id", "created_at"),
        # One EARNED entry per order, enforced by the database
        Index(
            "uq_loyalty_transactions_earned_order",
            "user_id",
            "order_ref",
            unique=True,
            postgresql_where=text("type = 'EARNED'"),
            sqlite_where=text("type = 'EARNED'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Positive - credit, negative - debit, zero - award without a debit
    points = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)

    type = Column(String, nullable=False, index=True)
    description = Column(String, nullable=False)

    # External order reference for EARNED entries
    order_ref = Column(String, nullable=True, index=True)
    # Voucher minted by this event, if any
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="transactions")
    coupon = relationship("Coupon")


class MilestoneReward(Base):
    __tablename__ = "milestone_rewards"
    __table_args__ = (
        # Idempotency key for milestone issuance, enforced by the database
        UniqueConstraint("user_id", "milestone_points", name="uq_milestone_rewards_user_points"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    milestone_points = Column(Integer, nullable=False, index=True)

    reward_type = Column(String, nullable=False, default="VOUCHER", server_default="VOUCHER")
    reward_value = Column(Numeric(10, 2), nullable=False)
    voucher_code = Column(String, ForeignKey("coupons.code"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="milestone_rewards")
