# storefront/routers/webhooks.py

import hmac
import hashlib
import base64
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.milestones import MilestoneTable
from storefront.dependencies import get_db, get_milestone_table
from storefront.schemas.loyalty import LedgerUpdate, OrderCompletedPayload
from storefront.services import loyalty as loyalty_service

logger = logging.getLogger(__name__)

# Mounted in main.py under /internal/webhooks
router = APIRouter()


def sign_payload(secret: str, raw_body: bytes) -> str:
    """base64(HMAC-SHA256(secret, body)), the value expected in X-Webhook-Signature."""
    return base64.b64encode(hmac.new(secret.encode('utf-8'), raw_body, hashlib.sha256).digest()).decode()


async def verify_webhook_signature(
    request: Request,
    x_webhook_signature: str | None = Header(None)
):
    """Rejects any request whose body was not signed with ORDER_WEBHOOK_SECRET."""
    if not settings.ORDER_WEBHOOK_SECRET:
        logger.error("ORDER_WEBHOOK_SECRET is not configured. Rejecting order webhook.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Webhook is not configured")

    if not x_webhook_signature:
        logger.warning("Order webhook without X-Webhook-Signature header.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing webhook signature")

    raw_body = await request.body()
    expected_signature = sign_payload(settings.ORDER_WEBHOOK_SECRET, raw_body)

    if not hmac.compare_digest(expected_signature, x_webhook_signature):
        logger.warning("Order webhook with an invalid signature.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature"
        )
    logger.debug("Webhook signature verified successfully.")


@router.post(
    "/order-completed",
    response_model=LedgerUpdate,
    dependencies=[Depends(verify_webhook_signature)]
)
async def order_completed_webhook(
    payload: OrderCompletedPayload,
    db: Session = Depends(get_db),
    milestones: MilestoneTable = Depends(get_milestone_table)
):
    """
    Credits points for a paid order and runs the milestone check.
    Redelivery of the same order_ref is acknowledged without crediting again.
    """
    logger.info(f"Order completed webhook: order {payload.order_ref}, user {payload.user_id}, total £{payload.order_total}")
    return loyalty_service.earn_points_for_order(db, milestones, payload)
