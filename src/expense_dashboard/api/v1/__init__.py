"""API version 1 routes."""

from fastapi import APIRouter

from expense_dashboard.api.v1 import auth, business, categorize, sessions, transactions

router = APIRouter(prefix="/api/v1")

# Include routers
router.include_router(auth.router)
router.include_router(business.router)
router.include_router(transactions.router)
router.include_router(categorize.router)
router.include_router(sessions.router)
