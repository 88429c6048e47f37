"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from kyc_core.api.routes.kyc_routes import router as kyc_router
from kyc_core.api.routes.admin_kyc_routes import router as admin_kyc_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(kyc_router)
api_router.include_router(admin_kyc_router)
