# storefront/routers/v1/endpoints/loyalty.py

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.limiter import limiter
from storefront.core.milestones import MilestoneTable
from storefront.dependencies import get_current_user, get_db, get_milestone_table
from storefront.models.user import User
from storefront.schemas.loyalty import (
    LoyaltyBalance,
    LoyaltyHistory,
    MilestoneCheckResponse,
    MilestoneOverview,
    MilestoneProgress,
    RedeemRequest,
    RedemptionResult,
)
from storefront.services import loyalty as loyalty_service
from storefront.services import milestone as milestone_service
from storefront.services import redemption as redemption_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/loyalty")


@router.get("/balance", response_model=LoyaltyBalance)
async def get_balance(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return loyalty_service.get_balance_summary(db, current_user)


@router.get("/transactions", response_model=LoyaltyHistory)
async def get_transactions(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Ledger of the current user, newest first."""
    return loyalty_service.get_user_loyalty_history(db, current_user, limit=limit, offset=offset)


@router.post("/milestones", response_model=MilestoneCheckResponse)
async def check_milestones(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    milestones: MilestoneTable = Depends(get_milestone_table)
):
    """
    Issues vouchers for every milestone the balance has reached and that was not
    rewarded yet. Safe to call repeatedly.
    """
    return milestone_service.run_milestone_check(db, current_user.id, milestones)


@router.get("/milestones", response_model=MilestoneOverview)
async def get_milestones(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    milestones: MilestoneTable = Depends(get_milestone_table)
):
    return milestone_service.get_milestone_overview(db, current_user.id, milestones)


@router.get("/milestones/progress", response_model=MilestoneProgress)
async def get_progress(
    points: int = Query(..., ge=0),
    milestones: MilestoneTable = Depends(get_milestone_table)
):
    return milestone_service.get_milestone_progress(milestones, points)


@router.post("/redeem", response_model=RedemptionResult)
@limiter.limit(settings.REDEEM_RATE_LIMIT)
async def redeem(
    request: Request,
    redeem_data: RedeemRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Converts points into a single-use voucher (500 points = £5).
    Limited per user, see REDEEM_RATE_LIMIT.
    """
    return redemption_service.redeem_points(db, current_user.id, redeem_data.points_to_redeem)
