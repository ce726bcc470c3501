# storefront/models/user.py

from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime, func
from sqlalchemy.orm import relationship
from storefront.db.session import Base

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("loyalty_points >= 0", name="ck_users_loyalty_points_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)

    # Changed only through storefront.services.loyalty.record_event
    loyalty_points = Column(Integer, default=0, nullable=False, server_default='0')

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    transactions = relationship("LoyaltyTransaction", back_populates="user", lazy="dynamic")
    milestone_rewards = relationship("MilestoneReward", back_populates="user", order_by="MilestoneReward.milestone_points")
