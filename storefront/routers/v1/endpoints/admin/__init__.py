# storefront/routers/v1/endpoints/admin/__init__.py

from fastapi import APIRouter, Depends
from storefront.dependencies import get_admin_user

from . import (
    coupons,
    loyalty,
)

# get_admin_user guards every endpoint included below
router = APIRouter(
    tags=["Admin"],
    dependencies=[Depends(get_admin_user)]
)

# /admin/loyalty/users/{id}/adjust
router.include_router(loyalty.router, prefix="/loyalty")

# /admin/coupons/stats
router.include_router(coupons.router, prefix="/coupons")
