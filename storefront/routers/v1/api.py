# storefront/routers/v1/api.py

from fastapi import APIRouter

from storefront.routers.v1.endpoints import coupon, loyalty
from storefront.routers.v1.endpoints import admin as admin_v1_router

# Mounted under /api in main.py, so everything here lives under /api/v1
api_router = APIRouter(prefix="/v1")

api_router.include_router(loyalty.router, tags=["Loyalty"])
api_router.include_router(coupon.router, tags=["Coupons"])

api_router.include_router(admin_v1_router.router, prefix="/admin")
