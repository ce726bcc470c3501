# storefront/routers/v1/endpoints/admin/loyalty.py

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.core.exceptions import UserNotFound
from storefront.core.milestones import MilestoneTable
from storefront.crud import user as crud_user
from storefront.dependencies import get_admin_user, get_db, get_milestone_table
from storefront.models.user import User
from storefront.schemas.loyalty import LedgerUpdate, LoyaltyHistory, PointsAdjustment
from storefront.services import loyalty as loyalty_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/users/{user_id}/adjust", response_model=LedgerUpdate)
async def adjust_user_points(
    user_id: int,
    adjustment: PointsAdjustment,
    db: Session = Depends(get_db),
    milestones: MilestoneTable = Depends(get_milestone_table),
    admin: User = Depends(get_admin_user)
):
    """
    [ADMIN] Credits or debits a user's balance with an ADJUSTED ledger entry.
    A debit larger than the balance is rejected.
    """
    logger.info(f"Admin {admin.id} adjusting user {user_id} by {adjustment.points:+d} points")
    return loyalty_service.adjust_points(
        db,
        milestones,
        user_id=user_id,
        points=adjustment.points,
        description=adjustment.description,
    )


@router.get("/users/{user_id}/transactions", response_model=LoyaltyHistory)
async def get_user_transactions(
    user_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """[ADMIN] Ledger of any user."""
    user = crud_user.get_user_by_id(db, user_id)
    if not user:
        raise UserNotFound()
    return loyalty_service.get_user_loyalty_history(db, user, limit=limit, offset=offset)
